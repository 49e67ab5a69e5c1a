"""Entries service: the user's text entries, cached and written optimistically."""

import logging
from typing import Any

from offline_cache.dto import EntryItem
from offline_cache.entities import (
    AuthSession,
    Entry,
    GatewayResponse,
    MutationHandler,
    MutationKind,
    QueryKeys,
)
from offline_cache.errors import raise_for_response
from offline_cache.repositories import EntriesApi

from .auth_service import AuthService
from .collection import CollectionView
from .entity_cache import EntityCache, QueryOptions
from .mutation_coordinator import MutationCoordinator, placeholder_id

logger = logging.getLogger(__name__)

CREATE_ENTRY = "entries.create"
UPDATE_ENTRY = "entries.update"
DELETE_ENTRY = "entries.delete"


def prepend_entry(entries: list[dict] | None, payload: dict) -> list[dict]:
    return [{"id": payload["temp_id"], "text": payload["text"]}, *(entries or [])]


def replace_entry_text(entries: list[dict] | None, payload: dict) -> list[dict]:
    return [
        {**entry, "text": payload["text"]} if entry["id"] == payload["id"] else entry
        for entry in entries or []
    ]


def remove_entry(entries: list[dict] | None, payload: dict) -> list[dict]:
    return [entry for entry in entries or [] if entry["id"] != payload["id"]]


class EntriesService:
    """Read and write the entries collection.

    Writes are optimistic and work offline; they are queued and replayed
    when connectivity returns.
    """

    def __init__(
        self,
        cache: EntityCache,
        coordinator: MutationCoordinator,
        api: EntriesApi,
        auth: AuthService,
        options: QueryOptions | None = None,
    ) -> None:
        self._cache = cache
        self._coordinator = coordinator
        self._api = api
        self._auth = auth
        self._options = options or QueryOptions()
        self._view: CollectionView | None = None
        self._error: str | None = None

        coordinator.register(
            MutationHandler(CREATE_ENTRY, MutationKind.CREATE, QueryKeys.ENTRIES_LIST, prepend_entry, self._commit_create)
        )
        coordinator.register(
            MutationHandler(UPDATE_ENTRY, MutationKind.UPDATE, QueryKeys.ENTRIES_LIST, replace_entry_text, self._commit_update)
        )
        coordinator.register(
            MutationHandler(DELETE_ENTRY, MutationKind.DELETE, QueryKeys.ENTRIES_LIST, remove_entry, self._commit_delete)
        )
        auth.subscribe(self._on_session_change)

    # ------------------------------------------------------------------ reads

    def collection(self) -> CollectionView:
        """Return the observed entries collection, creating it on first use."""
        if self._view is None or self._view.is_closed:
            options = QueryOptions(
                enabled=self._auth.is_authenticated,
                stale_time=self._options.stale_time,
                gc_time=self._options.gc_time,
            )
            self._view = CollectionView(self._cache, QueryKeys.ENTRIES_LIST, self._fetch, options)
        return self._view

    @property
    def entries(self) -> list[Entry]:
        data = self.collection().read().data or []
        return [EntryItem.model_validate(item).to_entity() for item in data]

    @property
    def loading(self) -> bool:
        return self.collection().is_loading

    @property
    def error(self) -> str | None:
        return self._error or self.collection().error

    def clear_error(self) -> None:
        """Forget the error of the last rejected write."""
        self._error = None
        self._coordinator.clear_error()

    @property
    def is_pending(self) -> bool:
        return self._coordinator.is_pending(QueryKeys.ENTRIES_LIST)

    async def refresh(self) -> None:
        await self.collection().refresh()

    async def _fetch(self) -> list[dict]:
        response = raise_for_response(await self._api.get_all(self._auth.token))
        return [EntryItem.model_validate(item).model_dump() for item in response.data or []]

    # ----------------------------------------------------------------- writes

    async def add(self, text: str) -> bool:
        if not text.strip():
            return False
        return await self._dispatch(CREATE_ENTRY, {"temp_id": placeholder_id(), "text": text})

    async def update(self, entry_id: int, text: str) -> bool:
        if not text.strip():
            return False
        return await self._dispatch(UPDATE_ENTRY, {"id": entry_id, "text": text})

    async def delete(self, entry_id: int) -> bool:
        return await self._dispatch(DELETE_ENTRY, {"id": entry_id})

    async def _dispatch(self, action: str, payload: dict[str, Any]) -> bool:
        if not self._auth.is_authenticated:
            self._error = "Not authenticated"
            return False
        self._error = None
        ok = await self._coordinator.dispatch(action, payload)
        if not ok:
            self._error = self._coordinator.last_error
        return ok

    async def _commit_create(self, payload: dict) -> GatewayResponse:
        return await self._api.create(self._auth.token, payload["text"])

    async def _commit_update(self, payload: dict) -> GatewayResponse:
        return await self._api.update(self._auth.token, payload["id"], payload["text"])

    async def _commit_delete(self, payload: dict) -> GatewayResponse:
        return await self._api.delete(self._auth.token, payload["id"])

    def _on_session_change(self, _session: AuthSession) -> None:
        if self._view is not None:
            self._view.close()
            self._view = None
        self._error = None
