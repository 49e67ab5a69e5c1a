"""Record DTOs for payloads exchanged with the remote API."""

from pydantic import BaseModel, ConfigDict, Field

from offline_cache.entities import Entry, FileMetadata


class EntryItem(BaseModel):
    """An entry as sent by the server (and stored in the cache)."""

    id: int = Field(..., description="Entry identifier (negative for optimistic placeholders)")
    text: str = Field(..., description="Entry content")

    def to_entity(self) -> Entry:
        return Entry(id=self.id, text=self.text)


class FileItem(BaseModel):
    """File metadata as sent by the server (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    original_name: str = Field(..., alias="originalName")
    stored_name: str = Field(..., alias="storedName")
    mime_type: str = Field(..., alias="mimeType")
    size: int = Field(..., ge=0)
    user_id: int = Field(..., alias="userId")
    created_at: str = Field(..., alias="createdAt")
    description: str | None = None

    def to_entity(self) -> FileMetadata:
        return FileMetadata(
            id=self.id,
            original_name=self.original_name,
            stored_name=self.stored_name,
            mime_type=self.mime_type,
            size=self.size,
            user_id=self.user_id,
            created_at=self.created_at,
            description=self.description,
        )


class AuthResult(BaseModel):
    """Response body of the login and signup endpoints."""

    model_config = ConfigDict(extra="allow")

    token: str | None = None
    success: bool | None = None
    error: str | None = None
    message: str | None = None


class ResetTokenResult(BaseModel):
    """Response body of the reset token validation endpoint."""

    valid: bool = False
    error: str | None = None
