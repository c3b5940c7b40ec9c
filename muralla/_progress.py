"""Bounded channel carrying ingestion status lines to a consumer."""

import asyncio
from collections import deque
from typing import AsyncIterator, Deque

from muralla._utils import logger

DONE_MESSAGE = "DONE"
ERROR_PREFIX = "Critical ingestion error: "
# Per-chunk failure lines, e.g. "Error embedding chunk 2: ... Skipping..."
NOTICE_PREFIX = "Error "
DEFAULT_MAX_QUEUED = 10


class ProgressStream:
    """Fire-and-forget queue of human-readable progress lines.

    Producers call `emit`, which never blocks. When the queue is full the oldest plain
    status line is dropped; error lines are only dropped once nothing else is left to
    shed. The stream ends with exactly one terminal line, either `DONE_MESSAGE` or a
    line starting with `ERROR_PREFIX`; iterating the stream yields every line still
    queued up to and including the terminal one.

    Example:
        >>> stream = graph.ingest_stream(text)
        >>> async for line in stream:
        ...     print(line)
    """

    def __init__(self, maxsize: int = DEFAULT_MAX_QUEUED) -> None:
        self._maxsize = max(maxsize, 1)
        self._lines: Deque[str] = deque()
        self._ready = asyncio.Event()
        self._closed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        return self._closed

    @staticmethod
    def is_terminal(message: str) -> bool:
        return message == DONE_MESSAGE or message.startswith(ERROR_PREFIX)

    @staticmethod
    def is_notice(message: str) -> bool:
        return message.startswith(NOTICE_PREFIX)

    def _shed(self) -> None:
        for i, line in enumerate(self._lines):
            if not self.is_notice(line):
                del self._lines[i]
                break
        else:
            line = self._lines.popleft()
        logger.debug(f"Progress stream full, dropping: {line}")

    def emit(self, message: str) -> None:
        if self._closed:
            logger.debug(f"Progress stream closed, dropping: {message}")
            return
        if len(self._lines) >= self._maxsize:
            self._shed()
        self._lines.append(message)
        self._ready.set()

    def close_with_done(self) -> None:
        self.emit(DONE_MESSAGE)
        self._closed = True

    def close_with_error(self, error: BaseException) -> None:
        self.emit(f"{ERROR_PREFIX}{error}")
        self._closed = True

    def __aiter__(self) -> AsyncIterator[str]:
        return self

    async def __anext__(self) -> str:
        if self._finished:
            raise StopAsyncIteration
        while not self._lines:
            self._ready.clear()
            await self._ready.wait()
        message = self._lines.popleft()
        if self.is_terminal(message):
            self._finished = True
        return message
