"""Files service: uploaded file metadata, uploads and downloads."""

import logging

from offline_cache.dto import FileItem
from offline_cache.entities import (
    AuthSession,
    DownloadedFile,
    FileMetadata,
    GatewayResponse,
    MutationHandler,
    MutationKind,
    QueryKeys,
)
from offline_cache.errors import raise_for_response
from offline_cache.repositories import FilesApi

from .auth_service import AuthService
from .collection import CollectionView
from .connectivity import ConnectivityMonitor
from .entity_cache import EntityCache, QueryOptions
from .mutation_coordinator import MutationCoordinator

logger = logging.getLogger(__name__)

DELETE_FILE = "files.delete"


def remove_file(files: list[dict] | None, payload: dict) -> list[dict]:
    return [item for item in files or [] if item["id"] != payload["id"]]


class FilesService:
    """Read the files collection, upload, download and delete files.

    Uploads need the server to assign storage, so they are online-only and
    not optimistic. Deletes are optimistic and work offline.
    """

    def __init__(
        self,
        cache: EntityCache,
        coordinator: MutationCoordinator,
        monitor: ConnectivityMonitor,
        api: FilesApi,
        auth: AuthService,
        options: QueryOptions | None = None,
    ) -> None:
        self._cache = cache
        self._coordinator = coordinator
        self._monitor = monitor
        self._api = api
        self._auth = auth
        self._options = options or QueryOptions()
        self._view: CollectionView | None = None
        self._error: str | None = None
        self._uploading = False

        coordinator.register(
            MutationHandler(DELETE_FILE, MutationKind.DELETE, QueryKeys.FILES_LIST, remove_file, self._commit_delete)
        )
        auth.subscribe(self._on_session_change)

    def collection(self) -> CollectionView:
        if self._view is None or self._view.is_closed:
            options = QueryOptions(
                enabled=self._auth.is_authenticated,
                stale_time=self._options.stale_time,
                gc_time=self._options.gc_time,
            )
            self._view = CollectionView(self._cache, QueryKeys.FILES_LIST, self._fetch, options)
        return self._view

    @property
    def files(self) -> list[FileMetadata]:
        data = self.collection().read().data or []
        return [FileItem.model_validate(item).to_entity() for item in data]

    @property
    def loading(self) -> bool:
        return self.collection().is_loading

    @property
    def uploading(self) -> bool:
        return self._uploading

    @property
    def error(self) -> str | None:
        return self._error or self.collection().error

    def clear_error(self) -> None:
        self._error = None

    async def refresh(self) -> None:
        await self.collection().refresh()

    async def _fetch(self) -> list[dict]:
        response = raise_for_response(await self._api.get_all(self._auth.token))
        return [FileItem.model_validate(item).model_dump(by_alias=True) for item in response.data or []]

    async def upload(
        self,
        filename: str,
        content: bytes,
        mime_type: str = "application/octet-stream",
        description: str | None = None,
    ) -> bool:
        """Upload a file, then refresh the collection.

        Returns:
            True if the server stored the file
        """
        if not self._auth.is_authenticated:
            self._error = "Not authenticated"
            return False
        if not self._monitor.is_online():
            self._error = "Uploads require a network connection"
            return False
        self._uploading = True
        self._error = None
        try:
            response = await self._api.upload(self._auth.token, filename, content, mime_type, description)
            if response.is_unauthorized:
                self._auth.handle_unauthorized()
                return False
            if response.is_network_error:
                self._monitor.report_unreachable()
            if not response.ok:
                self._error = response.error
                logger.warning("Upload of %s failed: %s", filename, response.error)
                return False
            logger.info("Uploaded %s", filename)
            return True
        finally:
            self._uploading = False
            self._cache.invalidate(QueryKeys.FILES_LIST)

    async def delete(self, file_id: int) -> bool:
        if not self._auth.is_authenticated:
            self._error = "Not authenticated"
            return False
        self._error = None
        ok = await self._coordinator.dispatch(DELETE_FILE, {"id": file_id})
        if not ok:
            self._error = self._coordinator.last_error
        return ok

    async def download(self, file_id: int) -> DownloadedFile | None:
        """Download file content. Downloads are never cached."""
        if not self._auth.is_authenticated:
            self._error = "Not authenticated"
            return None
        response = await self._api.download(self._auth.token, file_id)
        if response.is_unauthorized:
            self._auth.handle_unauthorized()
            return None
        if not response.ok:
            self._error = response.error
            logger.error("Download of file %d failed: %s", file_id, response.error)
            return None
        return response.data

    async def _commit_delete(self, payload: dict) -> GatewayResponse:
        return await self._api.delete(self._auth.token, payload["id"])

    def _on_session_change(self, _session: AuthSession) -> None:
        if self._view is not None:
            self._view.close()
            self._view = None
        self._error = None
