"""Tests for with_deadline."""

import asyncio
from unittest.mock import patch

import pytest

from stephie.utils.resilience import with_deadline


@pytest.mark.asyncio
async def test_returns_result_within_deadline() -> None:
    async def quick() -> str:
        return "done"

    assert await with_deadline(quick(), 1.0) == "done"


@pytest.mark.asyncio
async def test_operation_keeps_running_after_deadline() -> None:
    release = asyncio.Event()
    finished: list[str] = []

    async def slow() -> None:
        await release.wait()
        finished.append("slow")

    task = asyncio.ensure_future(slow())
    with pytest.raises(TimeoutError, match="metadata sync timed out"):
        await with_deadline(task, 0.01, "metadata sync")

    assert not task.cancelled()
    release.set()
    await task
    assert finished == ["slow"]


@pytest.mark.asyncio
async def test_late_failure_is_retrieved_and_logged() -> None:
    release = asyncio.Event()

    async def failing() -> None:
        await release.wait()
        raise RuntimeError("sync failed late")

    task = asyncio.ensure_future(failing())
    with patch("stephie.utils.resilience.log") as mock_log:
        with pytest.raises(TimeoutError):
            await with_deadline(task, 0.01, "metadata sync")

        release.set()
        await asyncio.gather(task, return_exceptions=True)
        await asyncio.sleep(0)

    mock_log.warning.assert_called_once_with(
        "Operation failed after its deadline",
        operation="metadata sync",
        error="sync failed late",
    )
