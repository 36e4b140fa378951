import time
from collections import Counter


class MetricsCollector:
    """
    In-process request statistics for one application instance.

    Created alongside the app and stored on ``app.state.metrics``; the
    request middleware is the only writer.
    """

    def __init__(self) -> None:
        self.started_at = time.monotonic()
        self.total_requests = 0
        self.total_duration_ms = 0.0
        self.by_route: Counter[str] = Counter()
        self.by_status: Counter[str] = Counter()

    def record(self, method: str, route: str, status: int, duration_ms: float) -> None:
        self.total_requests += 1
        self.total_duration_ms += duration_ms
        self.by_route[f"{method} {route}"] += 1
        self.by_status[f"{status // 100}xx"] += 1

    def reset(self) -> None:
        self.__init__()

    def snapshot(self) -> dict:
        avg = self.total_duration_ms / self.total_requests if self.total_requests else 0.0
        return {
            "uptimeSeconds": round(time.monotonic() - self.started_at, 1),
            "totalRequests": self.total_requests,
            "averageResponseTimeMs": round(avg, 2),
            "byRoute": dict(self.by_route.most_common()),
            "byStatus": dict(sorted(self.by_status.items())),
        }
