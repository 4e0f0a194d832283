"""Render spans in Chrome JSON trace format (the about:tracing format)."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Protocol

_U64_MAX = 2**64 - 1
_MICROSECOND = timedelta(microseconds=1)

_ESCAPES = {
    "\t": "\\t",
    "\r": "\\r",
    "\n": "\\n",
    "'": "\\'",
    '"': '\\"',
    "\\": "\\\\",
}


class InspectableSpan(Protocol):
    """What the renderer reads from a span."""

    operation_name: str
    trace_id: Optional[str]
    start_time: datetime
    finish_time: Optional[datetime]


class _EventType(Enum):
    BEGIN = "B"
    END = "E"


def _escape(text: str) -> str:
    out = []
    for ch in text:
        if ch in _ESCAPES:
            out.append(_ESCAPES[ch])
        elif " " <= ch <= "~":
            out.append(ch)
        else:
            out.append(f"\\u{{{ord(ch):x}}}")
    return "".join(out)


def _micros_since(epoch: datetime, when: datetime) -> Optional[int]:
    delta = when - epoch
    if delta < timedelta(0):
        return None
    micros = delta // _MICROSECOND
    return micros if micros <= _U64_MAX else None


def _event(trace_id: str, name: str, category: str, kind: _EventType, ts: int) -> str:
    return (
        f'{{"pid":1,"name":"{_escape(name)}","cat":"{_escape(category)}",'
        f'"ph":"{kind.value}","ts":{ts},"id":"{trace_id}"}},'
    )


def spans_to_trace_events(epoch: datetime, spans: Iterable[InspectableSpan]) -> str:
    """Render spans as a Chrome JSON trace log, timed relative to ``epoch``.

    Spans without a trace id (not sampled) are left out. Unfinished spans end
    at the moment of the dump.
    """
    now = datetime.now(epoch.tzinfo) if epoch.tzinfo else datetime.now(timezone.utc).replace(tzinfo=None)
    end_timestamp = _micros_since(epoch, now)
    if end_timestamp is None:
        end_timestamp = _U64_MAX

    parts = ["["]
    for span in spans:
        trace_id = span.trace_id
        if trace_id is None:
            continue
        name = span.operation_name
        start_ts = _micros_since(epoch, span.start_time) or 0
        end_ts = None
        if span.finish_time is not None:
            end_ts = _micros_since(epoch, span.finish_time)
        if end_ts is None:
            end_ts = end_timestamp

        parts.append(_event(str(trace_id), name, "", _EventType.BEGIN, start_ts))
        parts.append(_event(str(trace_id), name, "", _EventType.END, end_ts))

    parts.append(
        f'{{"pid":1,"name":"Trace dump requested","ph":"i","ts":{end_timestamp},"s":"g"}}'
    )
    parts.append("]")
    return "".join(parts)