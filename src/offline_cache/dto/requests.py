"""Request DTOs for the local sync API."""

from pydantic import BaseModel, Field


class EntryTextRequest(BaseModel):
    """Request DTO for creating or updating an entry."""

    text: str = Field(..., description="Entry content", min_length=1)


class LoginRequest(BaseModel):
    """Request DTO for logging in."""

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ConnectivityRequest(BaseModel):
    """Request DTO for reporting the platform's network state."""

    online: bool = Field(..., description="Whether the platform reports network connectivity")
