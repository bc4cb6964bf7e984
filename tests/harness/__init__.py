"""Test harness for STEPhie components.

Example usage:

    from tests.harness import FakeClock, FakeSource, make_board, make_cache

    async def test_cold_read():
        source = FakeSource()
        source.add(make_board("123", ["status", "owner"]))
        cache = make_cache(source)
        columns = await cache.get_columns("123")
"""

from tests.harness.context import (
    TEST_EMAIL,
    TEST_KEY,
    make_cache,
    make_credentials,
    make_queue,
)
from tests.harness.mocks import (
    START_TIME,
    FakeClock,
    FakeSigner,
    FakeSource,
    ScriptedTransport,
    SignerFactory,
    make_board,
)

__all__ = [
    "START_TIME",
    "TEST_EMAIL",
    "TEST_KEY",
    "FakeClock",
    "FakeSigner",
    "FakeSource",
    "ScriptedTransport",
    "SignerFactory",
    "make_board",
    "make_cache",
    "make_credentials",
    "make_queue",
]
