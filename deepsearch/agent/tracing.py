"""Tracing context passed explicitly into the orchestration loop."""

import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Protocol

from deepsearch.utils.logging import get_logger

logger = get_logger(__name__)


class Tracer(Protocol):
    """Interface for turn tracing backends."""

    def span(self, name: str, **attributes: Any) -> Any:
        """Context manager timing one unit of work (a step, a tool call)."""
        ...


class NoopTracer:
    """Tracer that records nothing."""

    @contextmanager
    def span(self, name: str, **attributes: Any) -> Iterator[None]:
        yield


class LoggingTracer:
    """Tracer that writes spans to the service log."""

    def __init__(self, trace_id: str):
        self.trace_id = trace_id

    @contextmanager
    def span(self, name: str, **attributes: Any) -> Iterator[None]:
        started = time.perf_counter()
        logger.debug(f"[{self.trace_id}] start {name} {attributes}")
        try:
            yield
        except BaseException as e:
            elapsed = time.perf_counter() - started
            logger.info(f"[{self.trace_id}] {name} failed after {elapsed:.2f}s: {e!r}")
            raise
        elapsed = time.perf_counter() - started
        logger.info(f"[{self.trace_id}] {name} finished in {elapsed:.2f}s")
