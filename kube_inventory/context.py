"""Utilities for tracing the phases of a reconcile run."""

import contextvars
from contextlib import contextmanager
import logging
from time import perf_counter
from typing import Generator


_LOGGER = logging.getLogger(__name__)

# No public API
__all__: list[str] = []


inventory: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "inventory", default=None
)
phases: contextvars.ContextVar[tuple[str, ...]] = contextvars.ContextVar(
    "phases", default=()
)


@contextmanager
def inventory_context(namespaced_name: str) -> Generator[None, None, None]:
    """Associate the enclosed phases with an inventory."""
    token = inventory.set(namespaced_name)
    try:
        with trace_phase("run"):
            yield
    finally:
        inventory.reset(token)


@contextmanager
def trace_phase(name: str) -> Generator[None, None, None]:
    """Log the time spent in a phase of the current run."""
    stack = phases.get() + (name,)
    token = phases.set(stack)
    label = " > ".join(stack)
    if (inv := inventory.get()) is not None:
        label = f"{inv}: {label}"
    t1 = perf_counter()
    _LOGGER.debug("[Trace] > %s", label)
    try:
        yield
    finally:
        t2 = perf_counter()
        phases.reset(token)
        _LOGGER.debug("[Trace] < %s (%0.2fs)", label, (t2 - t1))
