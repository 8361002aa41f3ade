"""Deadline helper shared by the ranking and trending computations."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from loguru import logger

from marketpulse.core.errors import OperationTimeoutError

T = TypeVar("T")


async def run_with_timeout(operation: str, awaitable: Awaitable[T], timeout: float | None) -> T:
    """Await ``awaitable``, raising :class:`OperationTimeoutError` once ``timeout`` seconds elapse."""

    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.bind(operation=operation).warning("Operation exceeded deadline", timeout_seconds=timeout)
        raise OperationTimeoutError(operation, timeout) from exc


__all__ = ["run_with_timeout"]
