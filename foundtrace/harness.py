"""Process-wide tracing state: the tracer, the span scopes and the live roots."""

from __future__ import annotations

import contextvars
import functools
import itertools
import threading
from typing import Any, Generic, Optional, TypeVar

from .live import ActiveRoots
from .sampling import RateLimitingProbabilisticSampler, TracingSettings
from .span import SpanReceiver, Tracer
from .testing import create_tracer_and_span_rx

T = TypeVar("T")

_stack_ids = itertools.count()
_install_lock = threading.Lock()
_installed: Optional["TracingHarness"] = None


class Scope(Generic[T]):
    """A value pushed onto a ScopeStack; it is removed again on close."""

    def __init__(self, stack: "ScopeStack[T]", value: T) -> None:
        self._stack = stack
        self.value = value
        self._active = True

    def close(self) -> None:
        """Remove the value from its stack; later calls do nothing."""
        if self._active:
            self._active = False
            self._stack._remove(self)

    def __enter__(self) -> "Scope[T]":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class ScopeStack(Generic[T]):
    """A stack of scoped values, local to the running thread or task."""

    def __init__(self) -> None:
        self._var: contextvars.ContextVar[tuple[Scope[T], ...]] = contextvars.ContextVar(
            f"foundtrace_scope_{next(_stack_ids)}", default=()
        )

    def current(self) -> Optional[T]:
        """Return the innermost value in scope, or None."""
        stack = self._var.get()
        return stack[-1].value if stack else None

    def enter(self, value: T) -> Scope[T]:
        """Push ``value``; it stays current until the returned scope is closed."""
        scope = Scope(self, value)
        self._var.set(self._var.get() + (scope,))
        return scope

    def _remove(self, scope: Scope[T]) -> None:
        self._var.set(tuple(s for s in self._var.get() if s is not scope))


class TracingHarness:
    """The tracer together with the scopes of spans and of test tracers."""

    def __init__(self, tracer: Tracer) -> None:
        self._tracer = tracer
        self.span_scope_stack: ScopeStack[Any] = ScopeStack()
        self.test_tracer_scope_stack: ScopeStack[Tracer] = ScopeStack()
        self.active_roots = ActiveRoots()

    @classmethod
    def get(cls) -> "TracingHarness":
        """Return the installed harness, or one whose tracer samples nothing."""
        installed = _installed
        return installed if installed is not None else _noop_harness()

    def tracer(self) -> Tracer:
        """Return the test tracer in scope, if any, else the harness's tracer."""
        test_tracer = self.test_tracer_scope_stack.current()
        return test_tracer if test_tracer is not None else self._tracer

    def current_span(self) -> Optional[Any]:
        """Return the innermost span in scope, or None."""
        return self.span_scope_stack.current()


@functools.lru_cache(maxsize=None)
def _noop_harness() -> TracingHarness:
    tracer, _ = Tracer.create(RateLimitingProbabilisticSampler())
    return TracingHarness(tracer)


def init(settings: Optional[TracingSettings] = None) -> Optional[SpanReceiver]:
    """Install the process-wide harness and return the receiver of its spans.

    Returns None when tracing is disabled. If a harness is already installed it
    is kept, and the returned receiver gets no spans.
    """
    global _installed
    settings = settings if settings is not None else TracingSettings()
    if not settings.enabled:
        return None

    tracer, span_rx = create_tracer_and_span_rx(settings)
    with _install_lock:
        if _installed is None:
            _installed = TracingHarness(tracer)
    return span_rx