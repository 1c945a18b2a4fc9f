from __future__ import annotations

from collections.abc import Iterator

import pytest

from chainwatch._context import clear_run
from chainwatch._registry import MetricsRegistry
from tests.fakes import FakeChain


@pytest.fixture(autouse=True)
def _clean_flow_context() -> Iterator[None]:
    clear_run()
    yield
    clear_run()


@pytest.fixture
def metrics() -> MetricsRegistry:
    return MetricsRegistry()


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()
