"""Spans, span contexts and the tracer that starts them."""

from __future__ import annotations

import queue
import random
import re
import threading
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, Union
from urllib.parse import unquote

FLAG_SAMPLED = 0x1
FLAG_DEBUG = 0x2
SAMPLING_PRIORITY_TAG = "sampling.priority"

TagValue = Union[bool, int, float, str]
Tags = Union[Mapping[str, TagValue], Iterable[tuple[str, TagValue]]]

_HEX_RE = re.compile(r"[0-9a-fA-F]+")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id(bits: int) -> int:
    while True:
        value = random.getrandbits(bits)
        if value:
            return value


def _parse_hex(text: str, bits: int, what: str) -> int:
    if not _HEX_RE.fullmatch(text) or len(text) > bits // 4:
        raise ValueError(f"invalid {what}: {text!r}")
    return int(text, 16)


def _pairs(items: Union[Mapping[str, Any], Iterable[tuple[str, Any]], None]) -> Iterable[tuple[str, Any]]:
    if items is None:
        return ()
    if isinstance(items, Mapping):
        return items.items()
    return items


def _merge_tags(
    existing: Iterable[tuple[str, TagValue]], new: Iterable[tuple[str, TagValue]]
) -> tuple[tuple[str, TagValue], ...]:
    tags = list(existing)
    for name, value in new:
        name = str(name)
        tags = [tag for tag in tags if tag[0] != name]
        tags.append((name, value))
    return tuple(tags)


@dataclass(frozen=True)
class SpanContextState:
    """Trace and span identifiers plus flags; serializable for trace stitching."""

    trace_id: int
    span_id: int
    flags: int = FLAG_SAMPLED

    @property
    def is_sampled(self) -> bool:
        return bool(self.flags & FLAG_SAMPLED)

    def __str__(self) -> str:
        return f"{self.trace_id:x}:{self.span_id:x}:0:{self.flags:x}"

    @classmethod
    def parse(cls, text: str) -> "SpanContextState":
        """Parse ``trace_id:span_id:parent_id:flags`` (hex, possibly percent-encoded)."""
        parts = unquote(text).split(":")
        if len(parts) != 4:
            raise ValueError(f"expected 4 colon-separated fields, got {text!r}")
        trace_hex, span_hex, parent_hex, flags_hex = parts
        trace_id = _parse_hex(trace_hex, 128, "trace id")
        span_id = _parse_hex(span_hex, 64, "span id")
        _parse_hex(parent_hex, 64, "parent span id")
        flags = _parse_hex(flags_hex, 32, "flags")
        return cls(trace_id, span_id, flags)


@dataclass(frozen=True)
class SpanReference:
    """A reference from a span to another span's context."""

    state: SpanContextState
    follows_from: bool = False

    @property
    def is_child_of(self) -> bool:
        return not self.follows_from


@dataclass(frozen=True)
class LogField:
    """One field of a span log record."""

    name: str
    value: str


@dataclass(frozen=True)
class FinishedSpan:
    """A span that has ended and was handed to the receiver."""

    operation_name: str
    state: SpanContextState
    references: tuple[SpanReference, ...]
    tags: tuple[tuple[str, TagValue], ...]
    logs: tuple[tuple[LogField, ...], ...]
    start_time: datetime
    finish_time: datetime

    @property
    def span_id(self) -> int:
        return self.state.span_id

    @property
    def trace_id(self) -> str:
        return f"{self.state.trace_id:x}"


@dataclass(frozen=True)
class _CandidateSpan:
    operation_name: str
    references: tuple[SpanReference, ...]
    tags: tuple[tuple[str, TagValue], ...]


class Sampler(Protocol):
    def is_sampled(self, candidate: Any) -> bool: ...


class SpanReceiver:
    """Receiving end of the finished spans of a tracer."""

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[FinishedSpan] = queue.SimpleQueue()

    def _send(self, span: FinishedSpan) -> None:
        self._queue.put(span)

    def try_recv(self) -> Optional[FinishedSpan]:
        """Return the next finished span, or None if none is waiting."""
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def __iter__(self) -> Iterator[FinishedSpan]:
        return iter(self.try_recv, None)


class Span:
    """A span in progress; an inactive span (not sampled) ignores all writes."""

    def __init__(
        self,
        operation_name: str,
        state: Optional[SpanContextState],
        sink: Optional[SpanReceiver],
        references: Iterable[SpanReference] = (),
        tags: Iterable[tuple[str, TagValue]] = (),
        start_time: Optional[datetime] = None,
    ) -> None:
        self.operation_name = str(operation_name)
        self.state = state
        self.references = tuple(references)
        self.start_time = start_time if start_time is not None else _now()
        self.finish_time: Optional[datetime] = None
        self._tags = tuple(tags)
        self._logs: list[tuple[LogField, ...]] = []
        self._sink = sink
        self._finished = False
        self._lock = threading.Lock()

    @classmethod
    def inactive(cls) -> "Span":
        """A span that is not sampled and records nothing."""
        return cls("", None, None)

    @property
    def is_sampled(self) -> bool:
        return self.state is not None

    @property
    def trace_id(self) -> Optional[str]:
        return None if self.state is None else f"{self.state.trace_id:x}"

    @property
    def span_id(self) -> Optional[int]:
        return None if self.state is None else self.state.span_id

    @property
    def tags(self) -> tuple[tuple[str, TagValue], ...]:
        return self._tags

    @property
    def logs(self) -> tuple[tuple[LogField, ...], ...]:
        return tuple(self._logs)

    def child(self, name: str) -> "Span":
        """Start a child span; children of sampled spans are always sampled."""
        if self.state is None:
            return Span.inactive()
        state = SpanContextState(self.state.trace_id, _new_id(64), self.state.flags | FLAG_SAMPLED)
        return Span(name, state, self._sink, references=(SpanReference(self.state),))

    def set_tag(self, name: str, value: TagValue) -> None:
        """Set a tag, replacing any earlier tag of the same name."""
        if self.state is None:
            return
        with self._lock:
            self._tags = _merge_tags(self._tags, [(name, value)])

    def log(self, fields: Union[Mapping[str, Any], Iterable[tuple[str, Any]]]) -> None:
        """Add a log record; its fields are sorted by name, the last value of a name wins."""
        if self.state is None:
            return
        merged: dict[str, str] = {}
        for name, value in _pairs(fields):
            merged[str(name)] = str(value)
        if not merged:
            return
        record = tuple(LogField(n, v) for n, v in sorted(merged.items(), key=lambda kv: kv[0]))
        with self._lock:
            self._logs.append(record)

    def set_start_time(self, when: datetime) -> None:
        if self.state is not None:
            self.start_time = when

    def set_finish_time(self, when: datetime) -> None:
        if self.state is not None:
            self.finish_time = when

    def finish(self) -> None:
        """End the span and deliver it to the receiver; later calls do nothing."""
        if self.state is None or self._sink is None:
            return
        with self._lock:
            if self._finished:
                return
            self._finished = True
            if self.finish_time is None:
                self.finish_time = _now()
            finished = FinishedSpan(
                operation_name=self.operation_name,
                state=self.state,
                references=self.references,
                tags=self._tags,
                logs=tuple(self._logs),
                start_time=self.start_time,
                finish_time=self.finish_time,
            )
        self._sink._send(finished)

    def __enter__(self) -> "Span":
        return self

    def __exit__(self, *exc: object) -> None:
        self.finish()

    def __repr__(self) -> str:
        return f"Span({self.operation_name!r}, state={self.state})"


class Tracer:
    """Starts root spans, deciding whether they are sampled."""

    def __init__(self, sampler: Sampler, sink: SpanReceiver) -> None:
        self.sampler = sampler
        self._sink = sink

    @classmethod
    def create(cls, sampler: Sampler) -> tuple["Tracer", SpanReceiver]:
        """Return a tracer and the receiver its finished spans go to."""
        receiver = SpanReceiver()
        return cls(sampler, receiver), receiver

    def _decide(self, candidate: _CandidateSpan) -> bool:
        for name, value in candidate.tags:
            if name == SAMPLING_PRIORITY_TAG and isinstance(value, int):
                return value > 0
        if candidate.references:
            return candidate.references[0].state.is_sampled
        return self.sampler.is_sampled(candidate)

    def span(
        self,
        name: str,
        child_of: Union[SpanContextState, Span, None] = None,
        tags: Optional[Tags] = None,
    ) -> Span:
        """Start a span, optionally as a child of a context or span."""
        references: tuple[SpanReference, ...] = ()
        parent = child_of.state if isinstance(child_of, Span) else child_of
        if parent is not None:
            references = (SpanReference(parent),)
        tag_list = _merge_tags((), _pairs(tags))
        candidate = _CandidateSpan(str(name), references, tag_list)
        if not self._decide(candidate):
            return Span.inactive()
        if references:
            parent_state = references[0].state
            trace_id, flags = parent_state.trace_id, parent_state.flags | FLAG_SAMPLED
        else:
            trace_id, flags = _new_id(128), FLAG_SAMPLED
        state = SpanContextState(trace_id, _new_id(64), flags)
        return Span(name, state, self._sink, references, tag_list)