import os
from dataclasses import dataclass
from functools import lru_cache

import redis
from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables."""

    # Remote API
    api_base_url: str = os.getenv("API_BASE_URL", "http://localhost:3000/api")
    request_timeout: float = float(os.getenv("REQUEST_TIMEOUT", "30"))

    # Query cache
    stale_time: float = float(os.getenv("STALE_TIME", "300"))  # 5 minutes
    gc_time: float = float(os.getenv("GC_TIME", "86400"))  # 24 hours

    # Retry (server errors only)
    retry_attempts: int = int(os.getenv("RETRY_ATTEMPTS", "3"))
    retry_base_delay: float = float(os.getenv("RETRY_BASE_DELAY", "1.0"))
    retry_max_delay: float = float(os.getenv("RETRY_MAX_DELAY", "30.0"))

    # Persistence
    persist_key: str = os.getenv("PERSIST_KEY", "OFFLINE_CACHE")
    persist_throttle: float = float(os.getenv("PERSIST_THROTTLE", "1.0"))
    persist_max_age: float = float(os.getenv("PERSIST_MAX_AGE", "86400"))
    persist_buster: str = os.getenv("PERSIST_BUSTER", "")
    storage_backend: str = os.getenv("STORAGE_BACKEND", "memory")  # memory, file or redis
    storage_path: str = os.getenv("STORAGE_PATH", ".offline_cache")

    # Redis (only used by the redis storage backend)
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    redis_password: str | None = os.getenv("REDIS_PASSWORD")

    # Connectivity probing, 0 disables
    connectivity_probe_interval: float = float(os.getenv("CONNECTIVITY_PROBE_INTERVAL", "15"))

    # Local sync API
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_reload: bool = os.getenv("API_RELOAD", "false").lower() == "true"

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        if self.storage_backend not in ("memory", "file", "redis"):
            raise ValueError(
                f"STORAGE_BACKEND must be one of ['memory', 'file', 'redis'], "
                f"got {self.storage_backend}"
            )

        if self.retry_attempts < 1:
            raise ValueError("RETRY_ATTEMPTS must be at least 1")

        for name in ("stale_time", "gc_time", "persist_throttle", "persist_max_age"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name.upper()} must not be negative")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


def get_redis_client(config: Settings | None = None) -> redis.Redis:
    """Create a Redis client instance from ``config`` (global settings by default)."""
    config = config or settings
    return redis.from_url(
        config.redis_url,
        password=config.redis_password,
        decode_responses=True,
    )
