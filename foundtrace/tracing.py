"""Distributed tracing: spans scoped to the running code, trace starting and stitching."""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional, Union

from .harness import TracingHarness
from .span import SAMPLING_PRIORITY_TAG, Span, SpanContextState

_FORK_NOTE = (
    "current trace was forked at this point, see the `trace_id` field to obtain the forked trace"
)


class SharedSpan:
    """A span shared between scopes, listed among active traces until it finishes."""

    def __init__(self, span: Span) -> None:
        self.span = span
        self.is_sampled = span.is_sampled
        self._handle: Optional[Any] = TracingHarness.get().active_roots.track(span)

    def finish(self) -> None:
        """End the span and stop listing it among active traces."""
        self.span.finish()
        self._handle = None

    def __repr__(self) -> str:
        return f"SharedSpan({self.span!r})"


@dataclass
class StartTraceOptions:
    """Options for a new trace.

    ``stitch_with_trace`` links the new trace with an existing one, given as a
    state or its serialized form. ``override_sampling_ratio`` replaces the
    configured sampling ratio; 1.0 forces sampling.
    """

    stitch_with_trace: Optional[Union[SpanContextState, str]] = None
    override_sampling_ratio: Optional[float] = None


class SpanScope:
    """The scope in which a span is current; closing it ends the span."""

    def __init__(self, span: SharedSpan) -> None:
        self.span = span
        self._scope = TracingHarness.get().span_scope_stack.enter(span)

    def close(self) -> None:
        """Leave the scope and finish the span; later calls do nothing."""
        self._scope.close()
        self.span.finish()

    def __enter__(self) -> "SpanScope":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def _current_span() -> Optional[SharedSpan]:
    return TracingHarness.get().current_span()


def write_current_span(write_fn: Callable[[Span], Any]) -> None:
    """Call ``write_fn`` with the current span if there is one and it is sampled."""
    current = _current_span()
    if current is not None and current.is_sampled:
        write_fn(current.span)


def should_sample(sampling_ratio: float) -> bool:
    """Decide randomly, with the given probability, whether to sample."""
    if sampling_ratio == 0.0:
        return False
    if sampling_ratio == 1.0:
        return True
    return random.random() < sampling_ratio


def _link_new_trace_with_current(current: Span, root_span_name: str, new_root: Span) -> None:
    ref_span = current.child(f"[{root_span_name} ref]")

    if new_root.trace_id is not None:
        ref_span.set_tag("note", _FORK_NOTE)
        ref_span.set_tag("trace_id", new_root.trace_id)

    if current.trace_id is not None:
        new_root.set_tag("trace_id", current.trace_id)

    if ref_span.span_id is not None:
        new_root.set_tag("fork_of_span_id", f"{ref_span.span_id:32x}")

    ref_span.finish()


def _start_trace(root_span_name: str, options: StartTraceOptions) -> Span:
    tracer = TracingHarness.get().tracer()
    name = str(root_span_name)

    stitch = options.stitch_with_trace
    if isinstance(stitch, str):
        stitch = SpanContextState.parse(stitch)

    tags = []
    if options.override_sampling_ratio is not None:
        tags.append(
            (SAMPLING_PRIORITY_TAG, 1 if should_sample(options.override_sampling_ratio) else 0)
        )

    new_root = tracer.span(name, child_of=stitch, tags=tags)

    current = _current_span()
    if current is None or not current.is_sampled:
        return new_root

    # A trace that was ongoing (stitching, forking) gets linked with the new one.
    _link_new_trace_with_current(current.span, name, new_root)
    return new_root


def _create_span(name: str) -> SharedSpan:
    parent = _current_span()
    if parent is not None:
        return SharedSpan(parent.span.child(str(name)))
    return SharedSpan(_start_trace(name, StartTraceOptions()))


def span(name: str) -> SpanScope:
    """Start a span, a child of the current one if any; it ends when its scope closes."""
    return SpanScope(_create_span(name))


def start_trace(root_span_name: str, options: Optional[StartTraceOptions] = None) -> SpanScope:
    """Start a new trace, linked with the current one if it is sampled."""
    options = options if options is not None else StartTraceOptions()
    return SpanScope(SharedSpan(_start_trace(root_span_name, options)))


def fork_trace(fork_name: str) -> SharedSpan:
    """Start a forcibly sampled trace forked from the current sampled span.

    Returns an inactive span when there is no sampled current span.
    """
    current = _current_span()
    if current is None or not current.is_sampled:
        return SharedSpan(Span.inactive())
    return SharedSpan(_start_trace(fork_name, StartTraceOptions(override_sampling_ratio=1.0)))


def trace_id() -> Optional[str]:
    """Return the trace id of the current span, or None if it is not sampled."""
    current = _current_span()
    return None if current is None else current.span.trace_id


def state_for_trace_stitching() -> Optional[SpanContextState]:
    """Return the current span's state for stitching traces across services."""
    current = _current_span()
    return None if current is None else current.span.state


def get_active_traces() -> str:
    """Return the spans still alive as a Chrome JSON trace log."""
    return TracingHarness.get().active_roots.get_active_traces()