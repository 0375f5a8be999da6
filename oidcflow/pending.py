"""Pending user-agent operations keyed by correlation id."""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from typing import Any

from .constants import LOGGER


class OperationPendingError(RuntimeError):
    def __init__(self, correlation_id: int) -> None:
        super().__init__(f"An operation for request {correlation_id} is already pending.")
        self.correlation_id = correlation_id


@dataclass(frozen=True)
class ExternalResult:
    outcome: Any
    envelope: Any = None


@dataclass
class PendingOperation:
    correlation_id: int
    future: asyncio.Future


def _settle(future: asyncio.Future, value: Any) -> None:
    if not future.done():
        future.set_result(value)


class PendingOperations:
    """Table of outstanding operations, at most one per correlation id.

    ``resolve`` removes the entry before handing the result to its future, so
    each operation is resumed once and later results for the same id find
    nothing. It may be called from any thread.
    """

    def __init__(self) -> None:
        self._pending: dict[int, PendingOperation] = {}
        self._lock = threading.Lock()

    def register(self, correlation_id: int) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        with self._lock:
            if correlation_id in self._pending:
                raise OperationPendingError(correlation_id)
            future = loop.create_future()
            self._pending[correlation_id] = PendingOperation(correlation_id, future)
        return future

    def resolve(self, correlation_id: int, result: ExternalResult) -> bool:
        with self._lock:
            pending = self._pending.pop(correlation_id, None)
        if pending is None:
            LOGGER.info("Ignoring result for request %s; nothing is pending", correlation_id)
            return False

        loop = pending.future.get_loop()
        if loop.is_closed():
            return False
        loop.call_soon_threadsafe(_settle, pending.future, result)
        return True

    def discard(self, correlation_id: int, future: asyncio.Future | None = None) -> None:
        with self._lock:
            pending = self._pending.get(correlation_id)
            if pending is None or (future is not None and pending.future is not future):
                return
            del self._pending[correlation_id]
        if not pending.future.done():
            pending.future.cancel()

    def is_pending(self, correlation_id: int) -> bool:
        with self._lock:
            return correlation_id in self._pending
