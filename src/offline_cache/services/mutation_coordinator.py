"""Mutation coordinator: optimistic writes, commit, rollback and replay.

Every write is applied to the entity cache immediately, then committed to the
server. A write that cannot reach the server is paused and replayed in
creation order once connectivity returns. A write the server rejects is
rolled back to the exact data it replaced.
"""

import asyncio
import contextvars
import copy
import itertools
import logging
import time
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import replace
from typing import Any

from offline_cache.entities import (
    CommitFn,
    GatewayResponse,
    Mutation,
    MutationHandler,
    MutationKind,
    MutationState,
    OptimisticUpdater,
    QueryKey,
)
from offline_cache.errors import ServerError

from .connectivity import ConnectivityMonitor
from .entity_cache import EntityCache
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

_HISTORY_SIZE = 100

_placeholder_sequence = itertools.count()

# Id of the latest mutation created by the current asyncio task.
_created_in_task: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "created_in_task", default=None
)


def placeholder_id() -> int:
    """Return a unique negative id for an optimistically created record.

    Strictly decreasing within a process, and never collides with the
    positive ids assigned by the server.
    """
    return -(time.time_ns() // 1_000 + next(_placeholder_sequence))


class MutationCoordinator:
    """Owns the lifecycle of every write.

    The coordinator also installs itself as the cache's reconciler: fetched
    server data for a key gets the optimistic layers of that key's unresolved
    mutations re-applied, so a background refresh never hides a pending write.

    Example:
        ```python
        coordinator = MutationCoordinator(cache, monitor)
        ok = await coordinator.mutate(
            MutationKind.DELETE,
            QueryKeys.ENTRIES_LIST,
            {"id": 3},
            lambda entries, p: [e for e in entries if e["id"] != p["id"]],
            commit_delete,
        )
        ```
    """

    def __init__(
        self,
        cache: EntityCache,
        monitor: ConnectivityMonitor,
        retry: RetryPolicy | None = None,
        on_unauthorized: Callable[[], None] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the coordinator.

        Args:
            cache: The entity cache optimistic writes are applied to.
            monitor: Connectivity source deciding commit vs pause.
            retry: Retry policy for commits. Defaults to settings.
            on_unauthorized: Called after a commit is rejected with 401.
            clock: Source of Unix timestamps.
        """
        self._cache = cache
        self._monitor = monitor
        self._retry = retry or RetryPolicy()
        self._on_unauthorized = on_unauthorized
        self._clock = clock
        self._ids = itertools.count(1)
        self._mutations: dict[int, Mutation] = {}
        self._history: deque[Mutation] = deque(maxlen=_HISTORY_SIZE)
        # Committed writes not yet seen in a fetched server response.
        self._settled: dict[int, Mutation] = {}
        self._handlers: dict[str, MutationHandler] = {}
        self._listeners: list[Callable[[Mutation], None]] = []
        self._last_error: str | None = None
        self._replaying = False
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribe_monitor = monitor.subscribe(self._on_connectivity_change)
        cache.set_reconciler(self._reconcile)

    def set_unauthorized_handler(self, callback: Callable[[], None] | None) -> None:
        self._on_unauthorized = callback

    # -------------------------------------------------------------- handlers

    def register(self, handler: MutationHandler) -> None:
        """Register a named mutation so it can be dispatched and restored."""
        self._handlers[handler.action] = handler

    def handler(self, action: str) -> MutationHandler | None:
        return self._handlers.get(action)

    async def dispatch(self, action: str, payload: Any) -> bool:
        """Run a registered mutation by name.

        Raises:
            KeyError: If no handler is registered for ``action``
        """
        handler = self._handlers[action]
        return await self.mutate(
            handler.kind,
            handler.target_key,
            payload,
            handler.optimistic,
            handler.commit,
            action=action,
        )

    # ----------------------------------------------------------------- write

    async def mutate(
        self,
        kind: MutationKind,
        target_key: QueryKey,
        payload: Any,
        optimistic_updater: OptimisticUpdater,
        commit_fn: CommitFn,
        action: str | None = None,
    ) -> bool:
        """Apply a write optimistically and commit it.

        Never raises for remote failures.

        Returns:
            True if the write succeeded or is paused awaiting connectivity,
            False if it was rejected and rolled back
        """
        current = self._cache.get(target_key)
        mutation = Mutation(
            id=next(self._ids),
            kind=kind,
            target_key=target_key,
            payload=payload,
            optimistic_snapshot=copy.deepcopy(current.data) if current else None,
            created_at=self._clock(),
            action=action,
            epoch=self._cache.epoch,
            optimistic_updater=optimistic_updater,
            commit_fn=commit_fn,
        )
        self._store(mutation)
        _created_in_task.set(mutation.id)

        self._cache.cancel_in_flight(target_key)
        try:
            self._cache.write(target_key, lambda old: optimistic_updater(old, payload))
        except Exception as e:
            logger.exception("Optimistic update for %s failed", target_key)
            self._resolve(mutation.id, MutationState.ERROR, str(e) or e.__class__.__name__)
            return False

        if not self._monitor.is_online():
            self._update(mutation.id, state=MutationState.PAUSED)
            logger.info("Offline: paused %s mutation %d on %s", kind.value, mutation.id, target_key)
            return True

        if self._has_older_paused(mutation.id):
            # Keep creation order: queue behind the paused writes.
            self._update(mutation.id, state=MutationState.PAUSED)
            await self.resume_paused()
            return self._outcome(mutation.id)

        return await self._commit(mutation.id)

    # ---------------------------------------------------------------- replay

    async def resume_paused(self) -> int:
        """Commit paused mutations one at a time, oldest first.

        Stops at the first mutation that cannot reach the server; it stays
        paused with everything behind it.

        Returns:
            Number of commits attempted
        """
        if self._replaying:
            return 0
        self._replaying = True
        attempted = 0
        try:
            while self._monitor.is_online():
                mutation = next(
                    (m for m in self._mutations.values() if m.state == MutationState.PAUSED),
                    None,
                )
                if mutation is None:
                    break
                attempted += 1
                await self._commit(mutation.id)
                current = self._mutations.get(mutation.id)
                if current is not None and current.state == MutationState.PAUSED:
                    break
        finally:
            self._replaying = False
        if attempted:
            logger.info("Replayed %d paused mutation(s)", attempted)
        return attempted

    def restore(self, records: Iterable[Mutation]) -> int:
        """Re-queue paused mutations loaded from persistent storage.

        Commit and optimistic functions are rebuilt from the registered
        handler of each record's action; records without a handler are dropped.

        Returns:
            Number of mutations restored
        """
        restored = 0
        for record in records:
            handler = self._handlers.get(record.action or "")
            if handler is None:
                logger.warning("Dropping restored mutation %d: no handler for %r", record.id, record.action)
                continue
            self._mutations[record.id] = replace(
                record,
                state=MutationState.PAUSED,
                epoch=self._cache.epoch,
                optimistic_updater=handler.optimistic,
                commit_fn=handler.commit,
            )
            restored += 1
        if restored:
            self._mutations = dict(sorted(self._mutations.items()))
            self._ids = itertools.count(max(self._mutations) + 1)
            logger.info("Restored %d paused mutation(s)", restored)
        return restored

    # ------------------------------------------------------------ inspection

    @property
    def mutations(self) -> list[Mutation]:
        """Unresolved mutations in creation order."""
        return list(self._mutations.values())

    def paused(self) -> list[Mutation]:
        return [m for m in self._mutations.values() if m.state == MutationState.PAUSED]

    def pending(self, target_key: QueryKey | None = None) -> list[Mutation]:
        return [
            m
            for m in self._mutations.values()
            if target_key is None or m.target_key == target_key
        ]

    def is_pending(self, target_key: QueryKey | None = None) -> bool:
        return bool(self.pending(target_key))

    def get(self, mutation_id: int) -> Mutation | None:
        """Return a mutation by id, resolved ones included while in history."""
        mutation = self._mutations.get(mutation_id)
        if mutation is not None:
            return mutation
        return next((m for m in reversed(self._history) if m.id == mutation_id), None)

    def created_in_task(self) -> Mutation | None:
        """Return the latest mutation created by the calling asyncio task.

        Lets a caller that awaited ``mutate()`` or ``dispatch()`` inspect the
        state of its own write, unaffected by writes made by other tasks.
        """
        mutation_id = _created_in_task.get()
        return None if mutation_id is None else self.get(mutation_id)

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def clear_error(self) -> None:
        self._last_error = None

    def subscribe(self, listener: Callable[[Mutation], None]) -> Callable[[], None]:
        """Listen to every mutation state change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def clear(self) -> None:
        """Forget every mutation. Used on logout."""
        count = len(self._mutations)
        self._mutations.clear()
        self._history.clear()
        self._settled.clear()
        self._last_error = None
        if count:
            logger.info("Discarded %d unresolved mutation(s)", count)

    async def close(self) -> None:
        self._unsubscribe_monitor()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # ------------------------------------------------------------- internals

    async def _commit(self, mutation_id: int) -> bool:
        mutation = self._update(mutation_id, state=MutationState.COMMITTING)
        commit_fn = mutation.commit_fn
        assert commit_fn is not None
        attempts = mutation.attempts

        async def attempt() -> GatewayResponse:
            nonlocal attempts
            attempts += 1
            response = await commit_fn(mutation.payload)
            if response.is_server_error:
                raise ServerError(response.error or "Server error", response.status)
            return response

        key = mutation.target_key
        response: GatewayResponse | None = None
        failure = "Request failed"
        # No fetch may land while the server is applying the write.
        self._cache.hold(key)
        try:
            response = await self._retry.call(attempt)
        except ServerError as e:
            failure = e.message
        except Exception as e:
            logger.exception("Commit of mutation %d raised", mutation_id)
            failure = str(e) or e.__class__.__name__
        finally:
            if mutation.epoch == self._cache.epoch:
                self._cache.release(key)

        if response is None:
            return self._reject(mutation_id, failure, attempts)

        if mutation_id not in self._mutations:
            # Cleared (logout) while the commit was in flight.
            return response.ok

        if response.ok:
            self._resolve(mutation_id, MutationState.SUCCESS, None, attempts)
            if mutation.epoch == self._cache.epoch:
                self._remember_settled(mutation_id)
                self._cache.invalidate(key)
            return True

        if response.is_network_error:
            self._update(
                mutation_id,
                state=MutationState.PAUSED,
                error=response.error,
                attempts=attempts,
            )
            logger.info("Mutation %d could not reach the server, paused", mutation_id)
            self._monitor.report_unreachable()
            return True

        if response.is_unauthorized:
            self._reject(mutation_id, response.error or "Unauthorized", attempts)
            if self._on_unauthorized is not None:
                self._on_unauthorized()
            return False

        return self._reject(mutation_id, response.error or "Request failed", attempts)

    def _reject(self, mutation_id: int, message: str, attempts: int) -> bool:
        mutation = self._mutations.get(mutation_id)
        if mutation is None:
            return False
        logger.warning("Mutation %d rejected: %s", mutation_id, message)
        self._rollback(mutation)
        self._last_error = message
        self._resolve(mutation_id, MutationState.ERROR, message, attempts)
        return False

    def _rollback(self, mutation: Mutation) -> None:
        if mutation.epoch != self._cache.epoch:
            logger.debug("Skipping rollback of mutation %d from a torn down cache", mutation.id)
            return
        key = mutation.target_key
        # Later writes stay visible: those still unresolved and those already
        # committed but not yet part of a fetched server response.
        later = sorted(
            [
                m
                for m in (*self._mutations.values(), *self._settled.values())
                if m.target_key == key
                and m.id > mutation.id
                and m.epoch == mutation.epoch
            ],
            key=lambda m: m.id,
        )
        snapshot = copy.deepcopy(mutation.optimistic_snapshot)
        self._cache.cancel_in_flight(key)
        self._cache.write(key, lambda _old: self._relayer(snapshot, later))
        self._cache.invalidate(key)

    def _reconcile(self, key: QueryKey, server_data: Any) -> Any:
        # Fetches never overlap a commit, so this response includes every
        # write settled so far.
        for mutation_id in [i for i, m in self._settled.items() if m.target_key == key]:
            del self._settled[mutation_id]
        unresolved = [m for m in self._mutations.values() if m.target_key == key]
        if not unresolved:
            return server_data
        return self._relayer(server_data, unresolved)

    def _remember_settled(self, mutation_id: int) -> None:
        mutation = self.get(mutation_id)
        if mutation is None:
            return
        self._settled[mutation_id] = mutation
        while len(self._settled) > _HISTORY_SIZE:
            del self._settled[next(iter(self._settled))]

    def _relayer(self, base: Any, mutations: list[Mutation]) -> Any:
        """Apply ``mutations`` in order on top of ``base``.

        Each mutation's rollback snapshot is rebased to the value just below
        its own layer, so a later rollback cannot resurrect a discarded write.
        """
        data = base
        for mutation in mutations:
            if mutation.optimistic_updater is None:
                continue
            for records in (self._mutations, self._settled):
                if mutation.id in records:
                    records[mutation.id] = replace(
                        records[mutation.id], optimistic_snapshot=copy.deepcopy(data)
                    )
            try:
                data = mutation.optimistic_updater(data, mutation.payload)
            except Exception:
                logger.exception("Re-applying mutation %d failed", mutation.id)
        return data

    def _has_older_paused(self, mutation_id: int) -> bool:
        return any(
            m.state == MutationState.PAUSED and m.id < mutation_id for m in self._mutations.values()
        )

    def _outcome(self, mutation_id: int) -> bool:
        mutation = self.get(mutation_id)
        return mutation is not None and mutation.state != MutationState.ERROR

    def _store(self, mutation: Mutation) -> None:
        self._mutations[mutation.id] = mutation
        self._notify(mutation)

    def _update(self, mutation_id: int, **changes: Any) -> Mutation:
        mutation = replace(self._mutations[mutation_id], **changes)
        self._mutations[mutation_id] = mutation
        self._notify(mutation)
        return mutation

    def _resolve(
        self,
        mutation_id: int,
        state: MutationState,
        error: str | None,
        attempts: int | None = None,
    ) -> None:
        mutation = self._mutations.pop(mutation_id, None)
        if mutation is None:
            return
        changes: dict[str, Any] = {"state": state, "error": error}
        if attempts is not None:
            changes["attempts"] = attempts
        mutation = replace(mutation, **changes)
        self._history.append(mutation)
        self._notify(mutation)

    def _notify(self, mutation: Mutation) -> None:
        for listener in list(self._listeners):
            try:
                listener(mutation)
            except Exception:
                logger.exception("Mutation listener failed")

    def _on_connectivity_change(self, online: bool) -> None:
        if not online or not self.paused():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, replay deferred")
            return
        task = loop.create_task(self.resume_paused())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
