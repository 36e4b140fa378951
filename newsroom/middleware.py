import logging
import time
from contextvars import ContextVar

from sqlalchemy import event
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from newsroom.metrics import MetricsCollector

logger = logging.getLogger("newsroom.requests")

# ---------------------------------------------------------------------------
# Per-request context variable
# ---------------------------------------------------------------------------

query_count_var: ContextVar[int] = ContextVar("query_count", default=0)


def install_query_counter(engine) -> None:
    """
    Count every SQL statement *engine* executes into ``query_count_var``.

    Eager-loading strategies issue their own statements, so this is the
    number to watch when a listing endpoint suddenly gets slower.  Call once
    per engine (the application engine in ``database.py``, the test engine
    in ``conftest.py``).
    """
    sync_engine = engine.sync_engine

    @event.listens_for(sync_engine, "before_cursor_execute")
    def _count_query(conn, cursor, statement, parameters, context, executemany):
        query_count_var.set(query_count_var.get() + 1)


def client_ip(scope: Scope) -> str:
    """
    Peer address of the connection.

    Forwarded headers are not read here; behind a reverse proxy,
    ``ProxyHeadersMiddleware`` rewrites ``scope["client"]`` first, and only
    for the hosts listed in ``TRUSTED_PROXIES``.
    """
    client = scope.get("client")
    return client[0] if client else "unknown"


def _route_template(scope: Scope) -> str:
    route = scope.get("route")
    path = getattr(route, "path", None)
    return path or scope.get("path", "")


# ---------------------------------------------------------------------------
# Middleware (pure ASGI so ContextVar writes made by the endpoint stay visible)
# ---------------------------------------------------------------------------

class RequestLoggingMiddleware:
    """
    Time each HTTP request, log one line for it and feed the metrics collector.

    Two diagnostic headers are added to every response:

    - ``X-Response-Time-Ms``: wall-clock time until the response started.
    - ``X-Query-Count``: SQL statements executed while handling the request.

    Completion is observed on the ``http.response.start`` message, so the
    status code is known without touching the framework's response objects.
    """

    def __init__(self, app: ASGIApp, metrics: MetricsCollector | None = None) -> None:
        self.app = app
        self.metrics = metrics

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        query_count_var.set(0)
        start = time.perf_counter()
        started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal started
            if message["type"] == "http.response.start":
                started = True
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                queries = query_count_var.get()
                headers = list(message.get("headers", []))
                headers.append((b"x-response-time-ms", str(duration_ms).encode()))
                headers.append((b"x-query-count", str(queries).encode()))
                message["headers"] = headers
                self._record(scope, message["status"], duration_ms, queries)
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            # The outermost error middleware renders the 500; count it here.
            if not started:
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                self._record(scope, 500, duration_ms, query_count_var.get())
            raise

    def _record(self, scope: Scope, status: int, duration_ms: float, queries: int) -> None:
        method = scope.get("method", "GET")
        user_id = scope.get("state", {}).get("user_id")

        line = "%s %s %d %.2fms user=%s ip=%s queries=%d"
        args = (method, scope.get("path", ""), status, duration_ms, user_id or "-", client_ip(scope), queries)
        if status >= 500:
            logger.error(line, *args)
        elif status >= 400:
            logger.warning(line, *args)
        else:
            logger.info(line, *args)

        if self.metrics is not None:
            self.metrics.record(method, _route_template(scope), status, duration_ms)
