"""Local sync API.

Exposes one OfflineClient to a UI process running on the same machine.
"""

from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from offline_cache.config import settings
from offline_cache.dto import (
    ConnectivityRequest,
    EntriesResponse,
    EntryTextRequest,
    FilesResponse,
    HealthCheckResponse,
    LoginRequest,
    MutationResponse,
    StatusResponse,
)
from offline_cache.log_config import setup_logging

from .dependencies import ClientFactory, HandlerDep, build_lifespan, lifespan


def create_app(client_factory: ClientFactory | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        client_factory: Builds the OfflineClient. If None, ``OfflineClient.create``.
    """
    app = FastAPI(
        title="Offline Cache API",
        description="Offline-first cache and mutation sync for the entries API",
        version="0.1.0",
        lifespan=build_lifespan(client_factory) if client_factory else lifespan,
    )

    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "name": "Offline Cache API",
            "version": "0.1.0",
            "description": "Offline-first cache and mutation sync for the entries API",
            "endpoints": {
                "entries": "/entries",
                "files": "/files",
                "status": "/status",
                "health": "/health",
                "docs": "/docs",
            },
        }

    @app.get("/health", response_model=HealthCheckResponse)
    async def health(handler: HandlerDep) -> HealthCheckResponse:
        return await handler.health_check()

    @app.get("/status", response_model=StatusResponse)
    async def get_status(handler: HandlerDep) -> StatusResponse:
        return await handler.get_status()

    @app.get("/entries", response_model=EntriesResponse)
    async def list_entries(handler: HandlerDep) -> EntriesResponse:
        return await handler.list_entries()

    @app.post("/entries", response_model=MutationResponse)
    async def create_entry(request: EntryTextRequest, handler: HandlerDep) -> MutationResponse:
        return await handler.create_entry(request)

    @app.put("/entries/{entry_id}", response_model=MutationResponse)
    async def update_entry(
        entry_id: int, request: EntryTextRequest, handler: HandlerDep
    ) -> MutationResponse:
        return await handler.update_entry(entry_id, request)

    @app.delete("/entries/{entry_id}", response_model=MutationResponse)
    async def delete_entry(entry_id: int, handler: HandlerDep) -> MutationResponse:
        return await handler.delete_entry(entry_id)

    @app.get("/files", response_model=FilesResponse)
    async def list_files(handler: HandlerDep) -> FilesResponse:
        return await handler.list_files()

    @app.delete("/files/{file_id}", response_model=MutationResponse)
    async def delete_file(file_id: int, handler: HandlerDep) -> MutationResponse:
        return await handler.delete_file(file_id)

    @app.post("/connectivity", response_model=StatusResponse)
    async def set_connectivity(request: ConnectivityRequest, handler: HandlerDep) -> StatusResponse:
        """Report the platform's network state."""
        return await handler.set_connectivity(request)

    @app.post("/login")
    async def login(request: LoginRequest, handler: HandlerDep) -> dict:
        return await handler.login(request)

    @app.post("/logout")
    async def logout(handler: HandlerDep) -> dict:
        return await handler.logout()

    @app.delete("/cache")
    async def clear_cache(handler: HandlerDep) -> dict:
        """Clear cached collections and the persisted snapshot."""
        return await handler.clear_cache()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    setup_logging(settings.log_level)
    uvicorn.run(
        "offline_cache.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
