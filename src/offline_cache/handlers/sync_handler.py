"""HTTP handlers for the local sync API.

Handlers convert between DTOs (API contracts) and client calls.
They handle HTTP concerns like status codes and error responses.
"""

import logging

from fastapi import HTTPException, status

from offline_cache.dto import (
    ConnectivityRequest,
    EntriesResponse,
    EntryItem,
    EntryTextRequest,
    FileItem,
    FilesResponse,
    HealthCheckResponse,
    LoginRequest,
    MutationResponse,
    StatusResponse,
)
from offline_cache.entities import MutationState
from offline_cache.services import OfflineClient

logger = logging.getLogger(__name__)


class SyncHandler:
    """HTTP handlers exposing an OfflineClient to a local UI process.

    Example:
        ```python
        client = OfflineClient.create()
        await client.init()
        handler = SyncHandler(client=client)

        @app.get("/entries", response_model=EntriesResponse)
        async def list_entries():
            return await handler.list_entries()
        ```
    """

    def __init__(self, client: OfflineClient) -> None:
        self._client = client

    def _require_session(self) -> None:
        if not self._client.auth.is_authenticated:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authenticated",
            )

    def _mutation_response(self, success: bool, error: str | None) -> MutationResponse:
        # State of the write this request made, not of the whole queue.
        mutation = self._client.coordinator.created_in_task() if success else None
        return MutationResponse(
            success=success,
            paused=mutation is not None and mutation.state == MutationState.PAUSED,
            error=None if success else error,
        )

    async def list_entries(self) -> EntriesResponse:
        """Handle GET /entries requests.

        Waits for the first load only; afterwards cached entries are returned
        immediately and a stale collection is refreshed in the background.
        """
        self._require_session()
        entries = self._client.entries
        view = entries.collection()
        if not view.entry.has_data:
            await view.wait()
        return EntriesResponse(
            data=[EntryItem(id=entry.id, text=entry.text) for entry in entries.entries],
            is_loading=entries.loading,
            error=entries.error,
            is_pending=entries.is_pending,
        )

    async def create_entry(self, request: EntryTextRequest) -> MutationResponse:
        self._require_session()
        entries = self._client.entries
        ok = await entries.add(request.text)
        return self._mutation_response(ok, entries.error)

    async def update_entry(self, entry_id: int, request: EntryTextRequest) -> MutationResponse:
        self._require_session()
        entries = self._client.entries
        ok = await entries.update(entry_id, request.text)
        return self._mutation_response(ok, entries.error)

    async def delete_entry(self, entry_id: int) -> MutationResponse:
        self._require_session()
        entries = self._client.entries
        ok = await entries.delete(entry_id)
        return self._mutation_response(ok, entries.error)

    async def list_files(self) -> FilesResponse:
        self._require_session()
        files = self._client.files
        view = files.collection()
        if not view.entry.has_data:
            await view.wait()
        return FilesResponse(
            data=[
                FileItem(
                    id=item.id,
                    original_name=item.original_name,
                    stored_name=item.stored_name,
                    mime_type=item.mime_type,
                    size=item.size,
                    user_id=item.user_id,
                    created_at=item.created_at,
                    description=item.description,
                )
                for item in files.files
            ],
            is_loading=files.loading,
            error=files.error,
        )

    async def delete_file(self, file_id: int) -> MutationResponse:
        self._require_session()
        files = self._client.files
        ok = await files.delete(file_id)
        return self._mutation_response(ok, files.error)

    async def login(self, request: LoginRequest) -> dict:
        """Handle POST /login requests.

        Raises:
            HTTPException: 401 when the credentials are rejected
        """
        auth = self._client.auth
        if not await auth.login(request.username, request.password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=auth.error or "Login failed",
            )
        return {"success": True}

    async def logout(self) -> dict:
        await self._client.auth.logout()
        return {"success": True}

    async def set_connectivity(self, request: ConnectivityRequest) -> StatusResponse:
        """Handle POST /connectivity requests (platform network signal).

        Going online replays paused writes before answering.
        """
        self._client.set_online(request.online)
        if request.online:
            await self._client.coordinator.resume_paused()
        return await self.get_status()

    async def get_status(self) -> StatusResponse:
        client = self._client
        return StatusResponse(
            online=client.is_online(),
            authenticated=client.auth.is_authenticated,
            cached_keys=sorted(str(key) for key in client.cache.keys()),
            paused_mutations=len(client.coordinator.paused()),
            pending_mutations=len(client.coordinator.mutations),
        )

    async def clear_cache(self) -> dict:
        """Handle DELETE /cache requests."""
        count = len(self._client.cache.keys())
        await self._client.clear_cache()
        return {
            "success": True,
            "deleted_count": count,
            "message": "Cache cleared successfully",
        }

    async def health_check(self) -> HealthCheckResponse:
        """Handle GET /health requests."""
        try:
            reachable = await self._client.gateway.health()
        except Exception as e:
            logger.warning("Health probe failed: %s", e)
            reachable = False
        return HealthCheckResponse(
            status="healthy" if reachable else "degraded",
            online=self._client.is_online(),
            api_reachable=reachable,
        )
