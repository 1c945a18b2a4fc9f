"""Interface of the tracing backends that wrap every flow step."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any


class TracingBackend(ABC):
    """Opens one span per step attempt of a flow run."""

    @abstractmethod
    @contextmanager
    def span(self, flow_name: str, step_name: str, timeout_ms: float, **attrs: Any) -> Iterator[None]:
        """Cover one step attempt, which has *timeout_ms* to finish.

        The span must close on every exit path, including a step timeout.
        """

    @abstractmethod
    def get_correlation_id(self) -> str:
        """ID that ties this backend's output to the open run, or ``""`` between runs."""
