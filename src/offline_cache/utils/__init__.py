"""Utility helpers for the offline cache client."""

import inspect
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


async def resolve(value: T | Awaitable[T]) -> T:
    """Await ``value`` if it is awaitable, otherwise return it unchanged.

    Lets callers treat synchronous and promise-returning key stores alike.
    """
    if inspect.isawaitable(value):
        return await value
    return value  # type: ignore[return-value]


__all__ = ["resolve"]
