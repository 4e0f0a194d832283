"""Collecting finished spans into trace trees for test assertions."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union

from .sampling import PassiveSampler, RateLimitingProbabilisticSampler, TracingSettings
from .span import FinishedSpan, SpanReceiver, TagValue, Tracer

UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_ParentId = Optional[int]


@dataclass
class TestSpan:
    """A span of a test trace; disabled fields keep their defaults."""

    __test__ = False

    name: str
    children: list["TestSpan"] = field(default_factory=list)
    logs: list[tuple[str, str]] = field(default_factory=list)
    tags: list[tuple[str, TagValue]] = field(default_factory=list)
    start_time: datetime = UNIX_EPOCH
    finish_time: datetime = UNIX_EPOCH


@dataclass
class TestTrace:
    """A trace collected in a test, rooted at ``root``."""

    __test__ = False

    root: TestSpan

    def iter(self) -> Iterator[TestSpan]:
        """Walk the trace's spans depth-first."""
        stack = [self.root]
        while stack:
            span = stack.pop()
            stack.extend(reversed(span.children))
            yield span

    def __iter__(self) -> Iterator[TestSpan]:
        return self.iter()


def _as_span(item: Union[TestTrace, TestSpan, str]) -> TestSpan:
    if isinstance(item, TestTrace):
        return item.root
    if isinstance(item, TestSpan):
        return item
    return TestSpan(str(item))


def _pairs(items: Union[Mapping[str, Any], Iterable[tuple[str, Any]]]) -> Iterable[tuple[str, Any]]:
    return items.items() if isinstance(items, Mapping) else items


def test_trace(
    name: str,
    children: Iterable[Union[TestTrace, TestSpan, str]] = (),
    logs: Union[Mapping[str, Any], Iterable[tuple[str, Any]]] = (),
    tags: Union[Mapping[str, TagValue], Iterable[tuple[str, TagValue]]] = (),
) -> TestTrace:
    """Build an expected trace; logs are sorted by field name, times are the epoch."""
    return TestTrace(
        TestSpan(
            name=str(name),
            children=[_as_span(child) for child in children],
            logs=sorted(((str(f), str(v)) for f, v in _pairs(logs)), key=lambda kv: kv[0]),
            tags=[(str(n), v) for n, v in _pairs(tags)],
        )
    )


test_trace.__test__ = False  # type: ignore[attr-defined]


@dataclass(frozen=True)
class TestTraceOptions:
    """Which span fields to fill in when building test traces."""

    __test__ = False

    include_logs: bool = False
    include_tags: bool = False
    include_start_time: bool = False
    include_finish_time: bool = False


def _parent_id(span: FinishedSpan) -> _ParentId:
    return next((ref.state.span_id for ref in span.references if ref.is_child_of), None)


def _create_test_span(
    raw_span: FinishedSpan,
    raw_spans: dict[_ParentId, list[FinishedSpan]],
    options: TestTraceOptions,
) -> TestSpan:
    return TestSpan(
        name=raw_span.operation_name,
        children=[
            _create_test_span(child, raw_spans, options)
            for child in raw_spans.get(raw_span.span_id, [])
        ],
        logs=[(f.name, f.value) for record in raw_span.logs for f in record]
        if options.include_logs
        else [],
        tags=list(raw_span.tags) if options.include_tags else [],
        start_time=raw_span.start_time if options.include_start_time else UNIX_EPOCH,
        finish_time=raw_span.finish_time if options.include_finish_time else UNIX_EPOCH,
    )


class TestTracesSink:
    """Gathers finished spans and assembles them into traces."""

    __test__ = False

    def __init__(self, span_rx: SpanReceiver) -> None:
        self._span_rx = span_rx
        self._raw_spans: dict[_ParentId, list[FinishedSpan]] = {}

    def traces(self, options: Optional[TestTraceOptions] = None) -> list[TestTrace]:
        """Return every trace seen so far, roots and children ordered by start time."""
        options = options if options is not None else TestTraceOptions()
        for span in self._span_rx:
            self._raw_spans.setdefault(_parent_id(span), []).append(span)
        for spans in self._raw_spans.values():
            spans.sort(key=lambda s: s.start_time)
        return [
            TestTrace(_create_test_span(root, self._raw_spans, options))
            for root in self._raw_spans.get(None, [])
        ]


def create_tracer_and_span_rx(settings: Optional[TracingSettings] = None) -> tuple[Tracer, SpanReceiver]:
    """Create a tracer whose sampler follows the settings' sampling strategy."""
    settings = settings if settings is not None else TracingSettings()
    strategy = settings.sampling_strategy
    if strategy.is_passive:
        sampler: Any = PassiveSampler()
    else:
        sampler = RateLimitingProbabilisticSampler.from_settings(strategy.settings)
    return Tracer.create(sampler)


def create_test_tracer(settings: Optional[TracingSettings] = None) -> tuple[Tracer, TestTracesSink]:
    """Create a tracer and a sink collecting its traces."""
    tracer, span_rx = create_tracer_and_span_rx(settings)
    return tracer, TestTracesSink(span_rx)