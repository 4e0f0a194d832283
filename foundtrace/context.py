"""A tracing context for tests that collects the traces produced in its scope."""

from __future__ import annotations

from typing import Optional

from .harness import TracingHarness
from .sampling import TracingSettings
from .span import Tracer
from .testing import TestTrace, TestTraceOptions, create_test_tracer


class _ContextScope:
    """Makes a test tracer current and starts with no span in scope."""

    def __init__(self, tracer: Tracer) -> None:
        harness = TracingHarness.get()
        self._tracer_scope = harness.test_tracer_scope_stack.enter(tracer)
        self._span_scope = harness.span_scope_stack.enter(None)

    def close(self) -> None:
        """Leave the scope; later calls do nothing."""
        self._span_scope.close()
        self._tracer_scope.close()

    def __enter__(self) -> "_ContextScope":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class TestTracingContext:
    """Collects the traces of spans made while one of its scopes is active.

    Used as a context manager, the context enters a scope of its own.
    """

    __test__ = False

    def __init__(self, settings: Optional[TracingSettings] = None) -> None:
        self._tracer, self._sink = create_test_tracer(settings)
        self._scopes: list[_ContextScope] = []

    def scope(self) -> _ContextScope:
        """Make this context's tracer current until the returned scope closes."""
        return _ContextScope(self._tracer)

    def traces(self, options: Optional[TestTraceOptions] = None) -> list[TestTrace]:
        """Return the traces collected so far."""
        return self._sink.traces(options)

    def set_tracing_settings(self, settings: TracingSettings) -> None:
        """Replace the tracer and start collecting afresh; takes effect in new scopes."""
        self._tracer, self._sink = create_test_tracer(settings)

    def __enter__(self) -> "TestTracingContext":
        self._scopes.append(self.scope())
        return self

    def __exit__(self, *exc: object) -> None:
        self._scopes.pop().close()