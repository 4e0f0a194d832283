import asyncio
from datetime import datetime, timezone

import pytest

from foundtrace.annotations import (
    add_span_log_fields,
    add_span_tags,
    set_span_finish_time,
    set_span_start_time,
    span_fn,
)
from foundtrace.context import TestTracingContext
from foundtrace.testing import TestTraceOptions, test_trace
from foundtrace.tracing import span


def test_add_span_tags():
    ctx = TestTracingContext()
    with ctx.scope():
        with span("root"):
            add_span_tags(foo=42, bar="hello", baz=True)
            with span("child"):
                add_span_tags([("qux", 13.37), ("quz", 4.2)])

    traces = ctx.traces(TestTraceOptions(include_tags=True))
    assert traces == [
        test_trace(
            "root",
            tags=[("foo", 42), ("bar", "hello"), ("baz", True)],
            children=[test_trace("child", tags=[("qux", 13.37), ("quz", 4.2)])],
        )
    ]


def test_add_span_tags_mapping_and_replacement():
    ctx = TestTracingContext()
    with ctx.scope():
        with span("root"):
            add_span_tags({"a": 1}, b=2)
            add_span_tags(a=3)

    traces = ctx.traces(TestTraceOptions(include_tags=True))
    assert traces[0].root.tags == [("b", 2), ("a", 3)]


def test_add_span_tags_rejects_several_iterables():
    with pytest.raises(TypeError):
        add_span_tags([("a", 1)], [("b", 2)])


def test_tags_without_current_span_are_dropped():
    ctx = TestTracingContext()
    with ctx.scope():
        add_span_tags(foo=1)
        with span("root"):
            pass

    assert ctx.traces(TestTraceOptions(include_tags=True)) == [test_trace("root")]


def test_add_span_log_fields():
    ctx = TestTracingContext()
    with ctx.scope():
        with span("root"):
            add_span_log_fields(foo="hello", bar="world")
            with span("child"):
                add_span_log_fields(qux="beep", quz="boop")

    traces = ctx.traces(TestTraceOptions(include_logs=True))
    assert traces == [
        test_trace(
            "root",
            logs=[("foo", "hello"), ("bar", "world")],
            children=[test_trace("child", logs=[("qux", "beep"), ("quz", "boop")])],
        )
    ]
    assert traces[0].root.logs == [("bar", "world"), ("foo", "hello")]


def test_set_span_start_time():
    start = datetime(2021, 5, 4, 3, 2, 1, tzinfo=timezone.utc)
    ctx = TestTracingContext()
    with ctx.scope():
        with span("test span"):
            set_span_start_time(start)

    traces = ctx.traces(TestTraceOptions(include_start_time=True))
    assert traces[0].root.start_time == start


def test_set_span_finish_time():
    finish = datetime(2021, 5, 4, 3, 2, 1, tzinfo=timezone.utc)
    ctx = TestTracingContext()
    with ctx.scope():
        with span("test span"):
            set_span_finish_time(finish)

    traces = ctx.traces(TestTraceOptions(include_finish_time=True))
    assert traces[0].root.finish_time == finish


@span_fn("foo")
def _foo():
    return "foo result"


@span_fn("bar")
def _bar(call_foo):
    if call_foo:
        _foo()


def test_span_fn_sync():
    ctx = TestTracingContext()
    with ctx.scope():
        result = _foo()

    assert result == "foo result"
    assert ctx.traces() == [test_trace("foo")]


def test_span_fn_nested_calls():
    ctx = TestTracingContext()
    with ctx.scope():
        _bar(True)
        _bar(False)

    traces = ctx.traces()
    assert [s.name for s in traces[0].iter()] == ["bar", "foo"]
    assert [s.name for s in traces[1].iter()] == ["bar"]


def test_span_fn_keeps_function_name():
    @span_fn("named")
    def named_work(value):
        return value + 1

    ctx = TestTracingContext()
    with ctx.scope():
        result = named_work(1)

    assert named_work.__name__ == "named_work"
    assert result == 2
    assert ctx.traces() == [test_trace("named")]


def test_span_fn_async():
    @span_fn("async_foo")
    async def work(value):
        with span("inner"):
            await asyncio.sleep(0)
        return value * 2

    ctx = TestTracingContext()
    with ctx.scope():
        result = asyncio.run(work(21))

    assert result == 42
    assert ctx.traces() == [test_trace("async_foo", children=["inner"])]