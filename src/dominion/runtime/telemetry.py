"""Batch-scoped counters, rankings and a bounded event ring.

Everything here hangs off an evaluation batch, never off the world snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

REASON_PREFIX = "eligibility.reason."


@dataclass(slots=True)
class TopKEntry:
    key: str
    score: float


@dataclass(slots=True)
class TopK:
    """Highest scores seen per key; a repeated key keeps its best score."""

    k: int = 10
    entries: list[TopKEntry] = field(default_factory=list)

    def add(self, key: str, score: float) -> None:
        current = next((entry for entry in self.entries if entry.key == key), None)
        if current is None:
            self.entries.append(TopKEntry(key=key, score=float(score)))
        else:
            current.score = max(current.score, float(score))
        self.entries.sort(key=lambda e: (-e.score, e.key))
        del self.entries[max(1, int(self.k)) :]

    def keys(self) -> list[str]:
        return [entry.key for entry in self.entries]


@dataclass(slots=True)
class Metrics:
    counters: dict[str, float] = field(default_factory=dict)
    gauges: dict[str, Any] = field(default_factory=dict)
    topk: dict[str, TopK] = field(default_factory=dict)

    def inc(self, path: str, n: float = 1.0) -> float:
        self.counters[path] = self.counters.get(path, 0.0) + float(n)
        return self.counters[path]

    def get(self, path: str, default: float = 0.0) -> float:
        return self.counters.get(path, default)

    def set_gauge(self, path: str, value: Any) -> Any:
        self.gauges[path] = value
        return value

    def topk_add(self, path: str, key: str, score: float, *, k: int = 10) -> None:
        bucket = self.topk.setdefault(path, TopK(k=k))
        bucket.add(key, score)

    def reason_counts(self) -> dict[str, int]:
        """Blocked-reason tallies keyed by reason code."""

        return {
            path[len(REASON_PREFIX) :]: int(value)
            for path, value in sorted(self.counters.items())
            if path.startswith(REASON_PREFIX)
        }


@dataclass(slots=True)
class EventRing:
    capacity: int = 200
    events: list[dict[str, object]] = field(default_factory=list)

    def append(self, event: Mapping[str, object]) -> None:
        if self.capacity <= 0:
            return
        self.events.append(dict(event))
        overflow = len(self.events) - int(self.capacity)
        if overflow > 0:
            del self.events[:overflow]

    def tail(self, n: int = 10) -> list[dict[str, object]]:
        return self.events[-n:] if n > 0 else []


@dataclass(slots=True)
class DebugConfig:
    level: str = "minimal"  # minimal | standard | verbose
    ring_capacity: int = 200

    def has_event_ring(self) -> bool:
        return self.level in {"standard", "verbose"}


def ensure_metrics(holder: Any) -> Metrics:
    metrics = getattr(holder, "metrics", None)
    if not isinstance(metrics, Metrics):
        metrics = Metrics()
        holder.metrics = metrics
    return metrics


def ensure_event_ring(holder: Any) -> EventRing:
    ring = getattr(holder, "event_ring", None)
    if isinstance(ring, EventRing):
        return ring
    cfg = getattr(holder, "debug_cfg", None)
    if not isinstance(cfg, DebugConfig):
        cfg = DebugConfig()
    ring = EventRing(capacity=cfg.ring_capacity if cfg.has_event_ring() else 0)
    holder.event_ring = ring
    return ring


def record_event(holder: Any, event: Mapping[str, object]) -> None:
    ring = ensure_event_ring(holder)
    if ring.capacity <= 0:
        return
    ring.append({"turn": getattr(holder, "turn", 0), **event})


__all__ = [
    "DebugConfig",
    "EventRing",
    "Metrics",
    "REASON_PREFIX",
    "TopK",
    "TopKEntry",
    "ensure_event_ring",
    "ensure_metrics",
    "record_event",
]
