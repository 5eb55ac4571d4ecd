"""Bounded-time envelope around external store calls."""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable
from typing import TypeVar

from fleetsync.config import OperationTimeouts
from fleetsync.exceptions import OperationTimeoutError

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class Operation(enum.StrEnum):
    """Kind of external call, selects the time budget."""

    QUERY = "query"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    UPLOAD = "upload"
    DEFAULT = "default"


async def with_timeout(
    awaitable: Awaitable[T],
    timeout: float,
    message: str | None = None,
    *,
    operation: str = "",
) -> T:
    """Await *awaitable* for at most *timeout* seconds.

    On expiry the pending call is cancelled and an
    :class:`OperationTimeoutError` carrying *message* is raised. Errors
    raised by the call itself propagate unchanged.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except TimeoutError as exc:
        _logger.warning("%s call timed out after %.1fs", operation or "external", timeout)
        raise OperationTimeoutError(
            message or f"Operation timed out after {timeout:g}s. Please try again.",
            operation=operation,
            timeout=timeout,
        ) from exc


class TimeoutGuard:
    """Applies the configured per-operation budget to external calls.

    Usage::

        guard = TimeoutGuard(config.timeouts)
        rows = await guard.run(
            Operation.QUERY,
            store.select("vehicles", filters={"id": vehicle_id}),
            "Failed to verify vehicle access. Please try again.",
        )
    """

    def __init__(self, timeouts: OperationTimeouts) -> None:
        self._timeouts = timeouts

    def budget(self, operation: Operation) -> float:
        return float(getattr(self._timeouts, operation.value))

    async def run(self, operation: Operation, awaitable: Awaitable[T], message: str) -> T:
        return await with_timeout(
            awaitable,
            self.budget(operation),
            message,
            operation=operation.value,
        )
