"""Helpers that annotate the current span: tags, log fields, timings and a decorator."""

from __future__ import annotations

import functools
import inspect
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any, TypeVar, Union

from .span import Span, TagValue
from .tracing import span, write_current_span

F = TypeVar("F", bound=Callable[..., Any])

_TagSource = Union[Mapping[str, TagValue], Iterable[tuple[str, TagValue]]]


def add_span_tags(*args: _TagSource, **kwargs: TagValue) -> None:
    """Add tags to the current span.

    Tags are given as keyword arguments, as one iterable of ``(name, value)``
    pairs or a mapping, or both. Nothing happens without a sampled current span.
    """
    if len(args) > 1:
        raise TypeError("add_span_tags() takes at most one iterable of tags")

    pairs: list[tuple[str, TagValue]] = []
    if args:
        tags = args[0]
        pairs.extend(tags.items() if isinstance(tags, Mapping) else tags)
    pairs.extend(kwargs.items())

    def write(current: Span) -> None:
        for name, value in pairs:
            current.set_tag(str(name), value)

    write_current_span(write)


def add_span_log_fields(**kwargs: Any) -> None:
    """Add one log record with the given fields to the current span."""
    write_current_span(lambda current: current.log(kwargs))


def set_span_start_time(when: datetime) -> None:
    """Override the start time of the current span."""
    write_current_span(lambda current: current.set_start_time(when))


def set_span_finish_time(when: datetime) -> None:
    """Override the finish time of the current span."""
    write_current_span(lambda current: current.set_finish_time(when))


def span_fn(name: str) -> Callable[[F], F]:
    """Decorate a function or coroutine function so each call runs in a span."""

    def decorate(func: F) -> F:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                with span(name):
                    return await func(*args, **kwargs)

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with span(name):
                return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorate