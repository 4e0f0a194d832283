import time
from datetime import datetime, timezone

import pytest

from foundtrace import testing as ft
from foundtrace.sampling import (
    ActiveSamplingSettings,
    RateLimitingSettings,
    SamplingStrategy,
    TracingSettings,
)
from foundtrace.span import SpanContextState


def make_test_spans(tracer):
    root1 = tracer.span("root1")
    root1_child1 = root1.child("root1_child1")
    root1_child1_1 = root1_child1.child("root1_child1_1")
    root1_child1_2 = root1_child1.child("root1_child1_2")

    root1_child1_1.finish()
    time.sleep(0.01)
    root1_child1_2.finish()

    root1_child2 = root1.child("root1_child2")

    root1_child1.finish()
    time.sleep(0.01)
    root1_child2.finish()

    root2 = tracer.span("root2")
    root2_child1 = root2.child("root2_child1")
    root2_child1.finish()
    root2.finish()
    root1.finish()


def test_span_tree():
    tracer, sink = ft.create_test_tracer()
    make_test_spans(tracer)
    assert sink.traces() == [
        ft.test_trace(
            "root1",
            [
                ft.test_trace("root1_child1", ["root1_child1_1", "root1_child1_2"]),
                "root1_child2",
            ],
        ),
        ft.test_trace("root2", ["root2_child1"]),
    ]


def test_span_iterator():
    tracer, sink = ft.create_test_tracer()
    make_test_spans(tracer)
    names = [s.name for s in sink.traces()[0].iter()]
    assert names == ["root1", "root1_child1", "root1_child1_1", "root1_child1_2", "root1_child2"]


def test_traces_are_repeatable():
    tracer, sink = ft.create_test_tracer()
    make_test_spans(tracer)
    first = sink.traces()
    assert sink.traces() == first


def test_test_trace_sorts_logs_and_uses_epoch():
    trace = ft.test_trace("root", logs=[("hello", "world"), ("foo", "bar")])
    assert trace.root.logs == [("foo", "bar"), ("hello", "world")]
    assert trace.root.start_time == ft.UNIX_EPOCH
    assert trace.root.finish_time == ft.UNIX_EPOCH


def test_test_trace_expands_to_spans():
    trace = ft.test_trace("root", ["child"], tags=[("tag1", 42)])
    assert trace == ft.TestTrace(
        ft.TestSpan(name="root", children=[ft.TestSpan(name="child")], tags=[("tag1", 42)])
    )


def test_tags_and_logs_included_on_request():
    tracer, sink = ft.create_test_tracer()
    root = tracer.span("root")
    root.set_tag("foo", 42)
    root.log({"hello": "world", "foo": "bar"})
    child = root.child("child")
    child.set_tag("qux", 13.37)
    child.finish()
    root.finish()

    options = ft.TestTraceOptions(include_logs=True, include_tags=True)
    assert sink.traces(options) == [
        ft.test_trace(
            "root",
            [ft.test_trace("child", tags=[("qux", 13.37)])],
            logs=[("hello", "world"), ("foo", "bar")],
            tags=[("foo", 42)],
        )
    ]
    assert sink.traces() == [ft.test_trace("root", ["child"])]


def test_times_included_on_request():
    tracer, sink = ft.create_test_tracer()
    start = datetime(2021, 5, 1, tzinfo=timezone.utc)
    finish = datetime(2021, 5, 2, tzinfo=timezone.utc)
    span = tracer.span("test span")
    span.set_start_time(start)
    span.set_finish_time(finish)
    span.finish()
    root = sink.traces(ft.TestTraceOptions(include_start_time=True, include_finish_time=True))[0].root
    assert (root.start_time, root.finish_time) == (start, finish)


def test_span_with_unseen_parent_is_not_a_root():
    tracer, sink = ft.create_test_tracer()
    tracer.span("remote child", child_of=SpanContextState.parse("abc:def:0:1")).finish()
    assert sink.traces() == []


def test_rate_limiter():
    settings = TracingSettings(
        sampling_strategy=SamplingStrategy.active(
            ActiveSamplingSettings(
                rate_limit=RateLimitingSettings(enabled=True, max_events_per_second=5)
            )
        )
    )
    tracer, sink = ft.create_test_tracer(settings)
    for i in range(10):
        root = tracer.span(f"root{i}")
        root.child(f"root{i}_child1").finish()
        root.finish()
    assert len(sink.traces()) == 5


def test_passive_sampler():
    tracer, sink = ft.create_test_tracer(TracingSettings(sampling_strategy=SamplingStrategy.passive()))
    for i in range(10):
        root = tracer.span(f"root{i}")
        root.child(f"root{i}_child1").finish()
        root.finish()
    assert len(sink.traces()) == 0


def test_invalid_sampling_ratio_raises():
    settings = TracingSettings(
        sampling_strategy=SamplingStrategy.active(ActiveSamplingSettings(sampling_ratio=1.5))
    )
    with pytest.raises(ValueError):
        ft.create_test_tracer(settings)