from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple


def _key(labels: Dict[str, Any]) -> Tuple:
    return tuple(sorted(labels.items()))


@dataclass
class Counter:
    name: str
    help: str
    values: Dict[Tuple, float] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def inc(self, value: float = 1.0, **labels: Any) -> None:
        key = _key(labels)
        with self._lock:
            self.values[key] = self.values.get(key, 0.0) + value

    def get(self, **labels: Any) -> float:
        return self.values.get(_key(labels), 0.0)

    def reset(self) -> None:
        with self._lock:
            self.values.clear()


@dataclass
class Histogram:
    name: str
    help: str
    buckets: List[float]
    counts: Dict[Tuple, List[int]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def observe(self, val: float, **labels: Any) -> None:
        key = _key(labels)
        with self._lock:
            if key not in self.counts:
                # last slot is the +Inf bucket
                self.counts[key] = [0 for _ in range(len(self.buckets) + 1)]
            for i, b in enumerate(self.buckets):
                if val <= b:
                    self.counts[key][i] += 1
                    break
            else:
                self.counts[key][-1] += 1

    def count(self, **labels: Any) -> int:
        return sum(self.counts.get(_key(labels), []))

    def reset(self) -> None:
        with self._lock:
            self.counts.clear()


# Predefined metrics
rpc_requests_total = Counter("rpc_requests_total", "Outgoing requests by method and outcome")
rpc_request_latency_seconds = Histogram(
    "rpc_request_latency_seconds",
    "Outgoing request round-trip latency",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0, 30.0],
)
rpc_inbound_messages_total = Counter("rpc_inbound_messages_total", "Inbound frames by kind")
rpc_frame_errors_total = Counter("rpc_frame_errors_total", "Frames rejected by the reader")

ALL_METRICS = (
    rpc_requests_total,
    rpc_request_latency_seconds,
    rpc_inbound_messages_total,
    rpc_frame_errors_total,
)


def reset_all() -> None:
    for metric in ALL_METRICS:
        metric.reset()
