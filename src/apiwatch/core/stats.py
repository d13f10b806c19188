from __future__ import annotations

import math
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Tuple

from apiwatch.config.settings import DEFAULT_STATS_WINDOW
from apiwatch.core.models import RequestEvent

CHART_POINTS = 10
CHART_MIN_SCALE = 1.0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _mean(samples: Deque[float]) -> float:
    try:
        mean = sum(samples) / len(samples)
    except OverflowError:
        mean = math.inf
    if math.isfinite(mean):
        return mean
    # Near the float ceiling the plain sum overflows; scale each sample first.
    return sum(float(value) / len(samples) for value in samples)


def is_counted_success(status_code: Optional[int]) -> bool:
    return status_code is not None and 200 <= status_code < 400


def is_history_success(status_code: Optional[int]) -> bool:
    # Laxer than the counters: no lower bound.
    return status_code is not None and status_code < 400


@dataclass(frozen=True)
class HistorySample:
    time: float
    success: bool


@dataclass(frozen=True)
class DerivedMetrics:
    success_rate_percent: int
    average_duration_ms: int


@dataclass(frozen=True)
class StatsSnapshot:
    total: int
    success_count: int
    error_count: int
    duration_samples: Tuple[float, ...]
    history: Tuple[HistorySample, ...]


@dataclass
class RollingStats:
    window: int = DEFAULT_STATS_WINDOW
    total: int = 0
    success_count: int = 0
    error_count: int = 0
    duration_samples: Deque[float] = field(init=False)
    history: Deque[HistorySample] = field(init=False)

    def __post_init__(self) -> None:
        self.window = max(1, int(self.window))
        self.duration_samples = deque(maxlen=self.window)
        self.history = deque(maxlen=self.window)


class StatsAggregator:
    """Rolling counters and fixed-capacity sample windows fed once per ingest."""

    def __init__(self, window: int = DEFAULT_STATS_WINDOW) -> None:
        self._stats = RollingStats(window=window)

    @property
    def window(self) -> int:
        return self._stats.window

    @property
    def total(self) -> int:
        return self._stats.total

    def update(self, event: RequestEvent, now: Optional[float] = None) -> None:
        stats = self._stats
        stats.total += 1
        if is_counted_success(event.status_code):
            stats.success_count += 1
        else:
            stats.error_count += 1

        if event.duration_ms is not None:
            stats.duration_samples.append(event.duration_ms)

        sample_time = time.time() if now is None else float(now)
        stats.history.append(HistorySample(time=sample_time, success=is_history_success(event.status_code)))

    def reset(self) -> None:
        self._stats = RollingStats(window=self._stats.window)

    def snapshot(self) -> StatsSnapshot:
        stats = self._stats
        return StatsSnapshot(
            total=stats.total,
            success_count=stats.success_count,
            error_count=stats.error_count,
            duration_samples=tuple(stats.duration_samples),
            history=tuple(stats.history),
        )

    def derived_metrics(self) -> DerivedMetrics:
        stats = self._stats
        if stats.total > 0:
            success_rate = round_half_up(100.0 * stats.success_count / stats.total)
        else:
            success_rate = 100
        if stats.duration_samples:
            average = round_half_up(_mean(stats.duration_samples))
        else:
            average = 0
        return DerivedMetrics(success_rate_percent=success_rate, average_duration_ms=average)


def volume_series(snapshot: StatsSnapshot, points: int = CHART_POINTS) -> List[int]:
    """Bar heights for the request-volume chart: a rising ramp, one bar per recent sample."""
    recent = snapshot.history[-points:]
    return [index + 1 for index in range(len(recent))]


def success_series(snapshot: StatsSnapshot, points: int = CHART_POINTS) -> List[bool]:
    return [sample.success for sample in snapshot.history[-points:]]


def latency_series(snapshot: StatsSnapshot, points: int = CHART_POINTS) -> List[float]:
    """Recent durations scaled to 0..1 against the largest visible sample."""
    recent = snapshot.duration_samples[-points:]
    scale = max([CHART_MIN_SCALE, *recent])
    return [float(value) / scale for value in recent]
