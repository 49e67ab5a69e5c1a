"""Response DTOs for the local sync API."""

from pydantic import BaseModel, Field

from .records import EntryItem, FileItem


class EntriesResponse(BaseModel):
    """Response DTO for the entries collection."""

    data: list[EntryItem] = Field(default_factory=list)
    is_loading: bool = Field(..., description="First load in progress")
    error: str | None = Field(None, description="Last fetch or mutation error")
    is_pending: bool = Field(False, description="A write is waiting for the server")


class FilesResponse(BaseModel):
    """Response DTO for the files collection."""

    data: list[FileItem] = Field(default_factory=list)
    is_loading: bool
    error: str | None = None


class MutationResponse(BaseModel):
    """Response DTO for a write operation."""

    success: bool = Field(..., description="Whether the write was accepted")
    paused: bool = Field(False, description="Write is queued until connectivity returns")
    error: str | None = None


class StatusResponse(BaseModel):
    """Response DTO for client status."""

    online: bool
    authenticated: bool
    cached_keys: list[str] = Field(default_factory=list)
    paused_mutations: int = Field(..., ge=0)
    pending_mutations: int = Field(..., ge=0)


class HealthCheckResponse(BaseModel):
    """Response DTO for health check."""

    status: str = Field(..., description="Health status: 'healthy' or 'degraded'")
    online: bool = Field(..., description="Client connectivity state")
    api_reachable: bool | None = Field(
        None,
        description="Whether the remote API answered its health endpoint",
    )
