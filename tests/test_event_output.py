import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from foundtrace.event_output import spans_to_trace_events


@dataclass
class FakeSpan:
    operation_name: str
    trace_id: Optional[str]
    start_time: datetime
    finish_time: Optional[datetime] = None


def _epoch():
    return datetime.now(timezone.utc) - timedelta(hours=1)


def test_finished_span_gives_begin_and_end_events():
    epoch = _epoch()
    span = FakeSpan("work", "t1", epoch + timedelta(microseconds=1500), epoch + timedelta(microseconds=2500))

    events = json.loads(spans_to_trace_events(epoch, [span]))

    assert events[0] == {"pid": 1, "name": "work", "cat": "", "ph": "B", "ts": 1500, "id": "t1"}
    assert events[1] == {"pid": 1, "name": "work", "cat": "", "ph": "E", "ts": 2500, "id": "t1"}
    assert events[2]["name"] == "Trace dump requested"
    assert events[2]["ph"] == "i"
    assert events[2]["s"] == "g"
    assert len(events) == 3


def test_unfinished_span_ends_at_dump_time():
    epoch = _epoch()
    span = FakeSpan("open", "t2", epoch + timedelta(seconds=1))

    events = json.loads(spans_to_trace_events(epoch, [span]))

    assert events[1]["ts"] == events[2]["ts"]
    assert events[2]["ts"] >= events[0]["ts"]


def test_span_started_before_epoch_starts_at_zero():
    epoch = _epoch()
    span = FakeSpan("early", "t3", epoch - timedelta(seconds=1), epoch + timedelta(microseconds=10))

    events = json.loads(spans_to_trace_events(epoch, [span]))

    assert events[0]["ts"] == 0
    assert events[1]["ts"] == 10


def test_epoch_in_future_gives_max_end_timestamp():
    epoch = datetime.now(timezone.utc) + timedelta(days=1)

    events = json.loads(spans_to_trace_events(epoch, []))

    assert events == [
        {"pid": 1, "name": "Trace dump requested", "ph": "i", "ts": 2**64 - 1, "s": "g"}
    ]


def test_names_are_escaped():
    epoch = _epoch()
    span = FakeSpan('say "hi"\n', "t4", epoch, epoch)

    events = json.loads(spans_to_trace_events(epoch, [span]))

    assert events[0]["name"] == 'say "hi"\n'


def test_unsampled_span_is_left_out():
    epoch = _epoch()
    spans = [FakeSpan("hidden", None, epoch), FakeSpan("shown", "t5", epoch, epoch)]

    events = json.loads(spans_to_trace_events(epoch, spans))

    assert [e["name"] for e in events] == ["shown", "shown", "Trace dump requested"]