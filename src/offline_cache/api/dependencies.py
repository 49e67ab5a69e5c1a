"""Dependency injection configuration for FastAPI app.

Uses FastAPI's app.state pattern for storing service instances.

Pattern:
    - The offline client is built and initialized during lifespan
    - Dependency functions retrieve from request.app.state
    - Clean separation, no global mutable state
"""

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Request

from offline_cache.handlers import SyncHandler
from offline_cache.services import OfflineClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], OfflineClient]


def get_handler(request: Request) -> SyncHandler:
    """Dependency injection for SyncHandler from app.state.

    Raises:
        RuntimeError: If the handler is not initialized
    """
    handler = getattr(request.app.state, "sync_handler", None)
    if handler is None:
        raise RuntimeError("SyncHandler not initialized. Check lifespan setup.")
    return handler


def build_lifespan(client_factory: ClientFactory = OfflineClient.create):
    """Create a lifespan that builds its client with ``client_factory``.

    The client is initialized on startup (session and persisted state are
    restored) and torn down on shutdown (state is flushed).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = client_factory()
        await client.init()
        app.state.client = client
        app.state.sync_handler = SyncHandler(client=client)
        logger.info("Offline client ready (online=%s)", client.is_online())

        yield

        await client.teardown()
        del app.state.sync_handler
        del app.state.client
        logger.info("Offline client shut down")

    return lifespan


lifespan = build_lifespan()

# Type aliases for cleaner dependency injection
HandlerDep = Annotated[SyncHandler, Depends(get_handler)]
