"""Domain records handled by the client.

The cache itself treats these as opaque payloads; only ``id`` matters for
optimistic list splicing.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Entry:
    """A user's text entry."""

    id: int
    text: str


@dataclass(frozen=True)
class FileMetadata:
    """Metadata of an uploaded file.

    Attributes:
        id: Database identifier
        original_name: Filename as uploaded
        stored_name: Server-side filename (UUID + extension)
        mime_type: MIME type of the file
        size: Size in bytes
        user_id: Owner
        created_at: Creation timestamp (ISO string as sent by the server)
        description: Optional user-supplied description
    """

    id: int
    original_name: str
    stored_name: str
    mime_type: str
    size: int
    user_id: int
    created_at: str
    description: str | None = None


@dataclass(frozen=True)
class DownloadedFile:
    """Binary content of a downloaded file."""

    content: bytes
    filename: str = "download"


@dataclass(frozen=True)
class AuthSession:
    """Authentication state gating cache reads and writes."""

    token: str = ""

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @classmethod
    def anonymous(cls) -> "AuthSession":
        return cls(token="")
