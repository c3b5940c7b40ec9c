"""Utility functions for the muralla library.

This module provides:
- The package logger
- Event loop management for the synchronous wrappers
- An asyncio read/write lock used to guard hot-swappable configuration
- Relation type normalization shared by every graph repository
- Embedding similarity helpers
"""

import asyncio
import logging
import re
from contextlib import asynccontextmanager
from typing import AsyncIterator

import numpy as np
import numpy.typing as npt

# Logger for knowledge graph operations
logger = logging.getLogger("muralla")

_WHITESPACE_CHAR = re.compile(r"\s")


def get_event_loop() -> asyncio.AbstractEventLoop:
    """Get or create an asyncio event loop for the current thread.

    Returns:
        asyncio.AbstractEventLoop: The current or newly created event loop

    Example:
        loop = get_event_loop()
        loop.run_until_complete(async_function())
    """
    try:
        # If there is already an event loop, use it.
        loop = asyncio.get_event_loop()
    except RuntimeError:
        # If in a sub-thread, create a new event loop.
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop


def normalize_relation_type(relation_type: str) -> str:
    """Turn a free-text relation label into a storable edge kind.

    Every whitespace character becomes an underscore and the result is uppercased.
    The label is not trimmed, so surrounding spaces turn into underscores too.

    Example:
        >>> normalize_relation_type("same as")
        'SAME_AS'
    """
    return _WHITESPACE_CHAR.sub("_", relation_type).upper()


def normalize(a: npt.NDArray[np.float32]) -> npt.NDArray[np.float32]:
    """Scale vectors along the last axis to unit length; zero vectors stay zero."""
    norm = np.linalg.norm(a, axis=-1, keepdims=True)
    return np.divide(a, norm, out=np.zeros_like(a, dtype=np.float32), where=norm != 0)


class RWLock:
    """Asyncio read/write lock with writer preference.

    Any number of readers may hold the lock at once. A writer waits for the active
    readers to leave and, while it is waiting, new readers are held back, so a pending
    configuration swap cannot be starved by a stream of readers.

    Example:
        >>> lock = RWLock()
        >>> async with lock.read():
        ...     use(current_config)
        >>> async with lock.write():
        ...     current_config = new_config
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @property
    def readers(self) -> int:
        return self._readers

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._waiting_writers == 0)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            self._waiting_writers += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._waiting_writers -= 1
                self._cond.notify_all()
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()
