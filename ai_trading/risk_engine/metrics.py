"""In-process counters and latency histograms for the engine."""

from __future__ import annotations

import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Mapping, MutableMapping, Tuple

LabelKey = Tuple[str, Tuple[Tuple[str, str], ...]]

# Latency samples kept per series; the engine runs for days between restarts.
HISTOGRAM_WINDOW = 500


def _window() -> Deque[float]:
    return deque(maxlen=HISTOGRAM_WINDOW)


def _series_name(key: LabelKey) -> str:
    name, labels = key
    suffix = ",".join(f"{label}={value}" for label, value in labels)
    return f"{name}{{{suffix}}}" if suffix else name


@dataclass
class MetricRegistry:
    """Prometheus-style counters plus bounded latency windows."""

    counters: MutableMapping[LabelKey, float] = field(default_factory=lambda: defaultdict(float))
    histograms: MutableMapping[LabelKey, Deque[float]] = field(default_factory=lambda: defaultdict(_window))

    def inc(self, name: str, *, labels: Mapping[str, str] | None = None, amount: float = 1.0) -> None:
        self.counters[self._key(name, labels)] += amount

    def observe(self, name: str, value: float, *, labels: Mapping[str, str] | None = None) -> None:
        self.histograms[self._key(name, labels)].append(value)

    def counter_value(self, name: str, *, labels: Mapping[str, str] | None = None) -> float:
        return self.counters.get(self._key(name, labels), 0.0)

    def snapshot(self) -> Dict[str, Any]:
        """Flatten counters and latency summaries into ``name{label=value}`` keys."""

        payload: Dict[str, Any] = {_series_name(key): value for key, value in self.counters.items()}
        for key, samples in self.histograms.items():
            if not samples:
                continue
            payload[_series_name(key)] = {
                "count": len(samples),
                "mean": sum(samples) / len(samples),
                "max": max(samples),
            }
        return payload

    def _key(self, name: str, labels: Mapping[str, str] | None) -> LabelKey:
        return name, tuple(sorted((labels or {}).items()))


class Timer:
    """Record the elapsed time of a ``with`` block into a histogram."""

    def __init__(self, registry: MetricRegistry, name: str, *, labels: Mapping[str, str] | None = None) -> None:
        self._registry = registry
        self._name = name
        self._labels = labels
        self._started: float | None = None

    def __enter__(self) -> "Timer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._started is not None:
            self._registry.observe(self._name, time.perf_counter() - self._started, labels=self._labels)
