"""Shared fixtures."""

from collections.abc import Iterator

import pytest

import stephie.gam.client as gam_client_module
import stephie.gam.queue as queue_module
import stephie.metadata.resolver as resolver_module
import stephie.monday.client as monday_client_module
from stephie.gam.auth import reset_credential_cache
from stephie.metadata.cache import reset_metadata_cache
from tests.harness import FakeClock


@pytest.fixture(autouse=True)
def reset_singletons() -> Iterator[None]:
    """Drop process-wide instances so tests never share state."""
    yield
    reset_metadata_cache()
    reset_credential_cache()
    queue_module._gam_queue = None
    resolver_module._resolver = None
    monday_client_module._client = None
    gam_client_module._gam_client = None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
