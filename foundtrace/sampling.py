"""Sampling settings and samplers, including a rate-limited one."""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Optional

_U32_MAX = 2**32 - 1
_NANOS_PER_SECOND = 1_000_000_000


@dataclass
class RateLimitingSettings:
    """Rate limit applied on top of sampling."""

    enabled: bool = False
    max_events_per_second: int = 0


@dataclass
class ActiveSamplingSettings:
    """Settings of probabilistic sampling."""

    sampling_ratio: float = 1.0
    rate_limit: RateLimitingSettings = field(default_factory=RateLimitingSettings)


@dataclass(frozen=True)
class SamplingStrategy:
    """Either passive sampling (``settings`` is None) or active sampling."""

    settings: Optional[ActiveSamplingSettings] = field(default_factory=ActiveSamplingSettings)

    @classmethod
    def passive(cls) -> "SamplingStrategy":
        """Sample only spans that continue a sampled trace."""
        return cls(settings=None)

    @classmethod
    def active(cls, settings: Optional[ActiveSamplingSettings] = None) -> "SamplingStrategy":
        """Sample spans with the given probabilistic settings."""
        return cls(settings=settings if settings is not None else ActiveSamplingSettings())

    @property
    def is_passive(self) -> bool:
        return self.settings is None


@dataclass
class TracingSettings:
    """Tracing settings."""

    enabled: bool = True
    sampling_strategy: SamplingStrategy = field(default_factory=SamplingStrategy)


class RateLimiter:
    """GCRA limiter allowing ``per_second`` events per second, with that burst."""

    def __init__(self, per_second: int, clock: Callable[[], int] = time.monotonic_ns) -> None:
        if per_second <= 0:
            raise ValueError("per_second must be positive")
        self._clock = clock
        self._interval = _NANOS_PER_SECOND // per_second
        self._tolerance = self._interval * per_second
        self._tat: Optional[int] = None

    def check(self) -> bool:
        """Take one event from the budget; False if the limit is reached."""
        now = self._clock()
        tat = now if self._tat is None else max(self._tat, now)
        new_tat = tat + self._interval
        if new_tat - now > self._tolerance:
            return False
        self._tat = new_tat
        return True


class PassiveSampler:
    """Samples a span only if it refers to another span."""

    def is_sampled(self, candidate: Any) -> bool:
        return bool(candidate.references)


class ProbabilisticSampler:
    """Samples spans with a fixed probability."""

    def __init__(self, sampling_rate: float, rng: Optional[random.Random] = None) -> None:
        if not 0.0 <= sampling_rate <= 1.0:
            raise ValueError(f"sampling rate must be within 0.0..=1.0, got {sampling_rate}")
        self.sampling_rate = sampling_rate
        self._rng = rng if rng is not None else random.Random()

    def is_sampled(self, candidate: Any) -> bool:
        return self._rng.random() < self.sampling_rate


class RateLimitingProbabilisticSampler:
    """A probabilistic sampler that optionally rate limits the sampled spans."""

    def __init__(
        self,
        inner: Optional[ProbabilisticSampler] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self.inner = inner if inner is not None else ProbabilisticSampler(0.0)
        self.rate_limiter = rate_limiter

    @classmethod
    def from_settings(cls, settings: ActiveSamplingSettings) -> "RateLimitingProbabilisticSampler":
        """Build a sampler; raises ValueError for a ratio outside 0.0..=1.0."""
        limit = settings.rate_limit
        rate_limiter = None
        if limit.enabled and 0 < limit.max_events_per_second <= _U32_MAX:
            rate_limiter = RateLimiter(limit.max_events_per_second)
        return cls(ProbabilisticSampler(settings.sampling_ratio), rate_limiter)

    def is_sampled(self, candidate: Any) -> bool:
        if not self.inner.is_sampled(candidate):
            return False
        return self.rate_limiter is None or self.rate_limiter.check()