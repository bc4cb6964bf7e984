"""Bounded waits for operations that must not be aborted."""

import asyncio
from collections.abc import Awaitable

import structlog

log = structlog.get_logger()


async def with_deadline[R](
    awaitable: Awaitable[R],
    timeout_seconds: float,
    operation_name: str = "operation",
) -> R:
    """Wait at most ``timeout_seconds`` for ``awaitable``.

    The underlying operation is shielded and keeps running after the deadline,
    so shared work (a sync other callers are joined to, a queued request) is
    never cancelled on behalf of one impatient caller. A failure it raises after
    the deadline is logged.

    Raises:
        TimeoutError: If the deadline passes first.
    """
    future = asyncio.ensure_future(awaitable)
    try:
        return await asyncio.wait_for(asyncio.shield(future), timeout=timeout_seconds)
    except TimeoutError as e:
        # Use log.error (not exception) to avoid traceback spam
        log.error(  # noqa: TRY400
            "Operation deadline exceeded",
            operation=operation_name,
            timeout=f"{timeout_seconds}s",
        )
        future.add_done_callback(lambda done: _log_late_failure(done, operation_name))
        raise TimeoutError(f"{operation_name} timed out after {timeout_seconds}s") from e


def _log_late_failure(future: asyncio.Future, operation_name: str) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        log.warning(
            "Operation failed after its deadline",
            operation=operation_name,
            error=str(error),
        )
