from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from ..core.concurrency import CancellationToken
from ..core.errors import AgentWorksError, ProviderCallError, RequestCancelledError, RequestTimeoutError
from ..core.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def call_with_deadline(
    call: Callable[[], Awaitable[T]],
    *,
    timeout: float,
    cancel_token: Optional[CancellationToken] = None,
    label: str = "provider call",
) -> T:
    """
    Run ``call`` as a task and abort it on timeout or cancellation.

    Args:
        call: Zero-argument factory for the provider coroutine.
        timeout: Seconds before the call is aborted.
        cancel_token: Optional token; when cancelled the call is aborted.
        label: Used in error messages and logs.

    Raises:
        RequestTimeoutError: The deadline passed first.
        RequestCancelledError: The token was cancelled first.
        ProviderCallError: The call raised anything that is not an ``AgentWorksError``.
    """
    if cancel_token is not None and cancel_token.cancelled:
        raise RequestCancelledError(f"{label} cancelled before start: {cancel_token.reason}")

    task = asyncio.ensure_future(call())
    waiters = {task}
    cancel_waiter: Optional[asyncio.Future] = None
    if cancel_token is not None:
        cancel_waiter = asyncio.ensure_future(cancel_token.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        if cancel_waiter is not None and not cancel_waiter.done():
            cancel_waiter.cancel()

    if task in done:
        try:
            return task.result()
        except AgentWorksError:
            raise
        except Exception as exc:
            raise ProviderCallError(f"{label} failed: {exc}", details={"error_type": type(exc).__name__}) from exc

    task.cancel()
    await asyncio.wait({task})
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"{label} raised while being aborted: {task.exception()!r}")

    if cancel_waiter is not None and cancel_waiter in done:
        logger.info(f"{label} aborted: {cancel_token.reason}")
        raise RequestCancelledError(f"{label} cancelled: {cancel_token.reason}")
    logger.warning(f"{label} timed out after {timeout}s")
    raise RequestTimeoutError(f"{label} timed out after {timeout}s", details={"timeout_seconds": timeout})
