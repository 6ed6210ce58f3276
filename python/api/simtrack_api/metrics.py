"""In-process metrics rendered in the Prometheus text exposition format.

Usage::

    from .metrics import registry

    registry.inc("simtrack_jobs_created_total")
    registry.observe("http_request_duration_ms", 12.5)
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

LabelSet = Tuple[Tuple[str, str], ...]


def _labels(labels: Optional[dict]) -> LabelSet:
    return tuple(sorted((k, str(v)) for k, v in (labels or {}).items()))


def _series(name: str, labels: LabelSet, suffix: str = "") -> str:
    if not labels:
        return f"{name}{suffix}"
    rendered = ",".join(f'{k}="{v}"' for k, v in labels)
    return f"{name}{suffix}{{{rendered}}}"


@dataclass
class _Summary:
    count: int = 0
    total: float = 0.0
    maximum: float = 0.0

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.maximum = max(self.maximum, value)


@dataclass
class MetricsRegistry:
    counters: Dict[Tuple[str, LabelSet], float] = field(default_factory=dict)
    summaries: Dict[Tuple[str, LabelSet], _Summary] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def inc(self, name: str, labels: Optional[dict] = None, value: float = 1) -> None:
        key = (name, _labels(labels))
        with self._lock:
            self.counters[key] = self.counters.get(key, 0) + value

    def observe(self, name: str, value: float, labels: Optional[dict] = None) -> None:
        key = (name, _labels(labels))
        with self._lock:
            self.summaries.setdefault(key, _Summary()).add(value)

    def value(self, name: str, labels: Optional[dict] = None) -> float:
        with self._lock:
            return self.counters.get((name, _labels(labels)), 0)

    def reset(self) -> None:
        with self._lock:
            self.counters.clear()
            self.summaries.clear()

    def render(self) -> str:
        lines: list[str] = []
        with self._lock:
            for (name, labels), val in sorted(self.counters.items()):
                lines.append(f"{_series(name, labels)} {val:g}")
            for (name, labels), summary in sorted(self.summaries.items()):
                lines.append(f"{_series(name, labels, '_count')} {summary.count}")
                lines.append(f"{_series(name, labels, '_sum')} {summary.total:.3f}")
                lines.append(f"{_series(name, labels, '_max')} {summary.maximum:.3f}")
        return "\n".join(lines) + "\n" if lines else ""


registry = MetricsRegistry()
