from __future__ import annotations

import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Deque


@dataclass
class RouteStats:
    latencies_ms: Deque[float]
    total: int = 0
    errors: int = 0
    timeouts: int = 0
    client_errors: int = 0
    status_counts: dict[int, int] = field(default_factory=dict)


class MetricsRegistry:
    """In-memory per-route request metrics.

    - "METHOD path" 単位の直近レイテンシ窓（p95 算出用）
    - 例外/タイムアウト件数と 4xx 件数（不正な評価値・limit などの拒否）
    """

    def __init__(self, window_size: int = 200) -> None:
        self._window_size = window_size
        self._lock = threading.Lock()
        self._per_route: dict[str, RouteStats] = defaultdict(self._new_stats)

    def _new_stats(self) -> RouteStats:
        return RouteStats(latencies_ms=deque(maxlen=self._window_size))

    def record(
        self,
        method: str,
        path: str,
        latency_ms: float,
        *,
        status_code: int | None = None,
        is_error: bool = False,
        is_timeout: bool = False,
    ) -> None:
        with self._lock:
            stats = self._per_route[f"{method.upper()} {path}"]
            stats.latencies_ms.append(latency_ms)
            stats.total += 1
            if is_error:
                stats.errors += 1
            if is_timeout:
                stats.timeouts += 1
            if status_code is not None:
                stats.status_counts[status_code] = stats.status_counts.get(status_code, 0) + 1
                if 400 <= status_code < 500:
                    stats.client_errors += 1

    def snapshot(self) -> dict[str, dict[str, object]]:
        with self._lock:
            result: dict[str, dict[str, object]] = {}
            for route, stats in self._per_route.items():
                p95 = calculate_p95(list(stats.latencies_ms))
                result[route] = {
                    "p95_ms": round(p95, 2),
                    "count": stats.total,
                    "errors": stats.errors,
                    "timeouts": stats.timeouts,
                    "client_errors": stats.client_errors,
                    "status": {str(code): n for code, n in sorted(stats.status_counts.items())},
                }
            return result

    def reset(self) -> None:
        with self._lock:
            self._per_route.clear()


def calculate_p95(values: list[float]) -> float:
    if not values:
        return 0.0
    sorted_vals = sorted(values)
    k = int(0.95 * (len(sorted_vals) - 1))
    return sorted_vals[k]


registry = MetricsRegistry()
