import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match
from pythonjsonlogger import jsonlogger

from swiftlogix.metrics import record_http_request


request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

REQUEST_ID_HEADER = "X-Request-ID"

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("httpx", "hpack", "realtime", "postgrest", "gotrue")

# Paths that are not instrumented
UNTRACKED_PATHS = frozenset({"/metrics"})

# Metrics label for requests that matched no route
UNMATCHED_ROUTE = "unmatched"


class SiteJsonFormatter(jsonlogger.JsonFormatter):
    """Adds a UTC `ts`, the level name and the active request id to every record."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        # %(ts)s in the format string pre-fills the key with None
        if not log_record.get("ts"):
            log_record["ts"] = _utc_timestamp()
        log_record["level"] = record.levelname

        req_id = request_id_ctx.get()
        if req_id and "request_id" not in log_record:
            log_record["request_id"] = req_id


def _utc_timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def setup_logging(log_level: str = "INFO"):
    """
    Send every log record to stdout as one JSON object per line.

    Uvicorn's own loggers share the handler; its access log is turned off
    because RequestLoggingMiddleware writes one line per request instead.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(SiteJsonFormatter("%(ts)s %(level)s %(name)s %(message)s"))

    root = logging.getLogger()
    root.setLevel(log_level.upper())
    root.handlers = [handler]

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        server_logger = logging.getLogger(name)
        server_logger.handlers = [handler]
        server_logger.propagate = False
    logging.getLogger("uvicorn.access").disabled = True

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


def route_template(request: Request) -> str:
    """The path template of the route that served the request, e.g. /api/tracking/{session_token}/events."""
    route = request.scope.get("route")
    if route is not None:
        return route.path
    for candidate in request.app.router.routes:
        match, _ = candidate.matches(request.scope)
        if match == Match.FULL:
            return candidate.path
    return UNMATCHED_ROUTE


def _level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Writes one structured line per HTTP request and feeds the request metrics.

    Every line carries request_id, method, path, status and latency_ms. Routes
    add flow-specific keys with log_request_data(), for example the tracking
    number and lookup result, or the order number of a new order.

    A caller-supplied X-Request-ID header is reused; otherwise a uuid4 is minted.
    The id is echoed back on the response.
    """

    logger = logging.getLogger("swiftlogix.requests")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_ctx.set(request_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            elapsed = time.perf_counter() - started
            response.headers[REQUEST_ID_HEADER] = request_id

            path = request.url.path
            if path not in UNTRACKED_PATHS:
                record_http_request(
                    method=request.method,
                    route=route_template(request),
                    status=response.status_code,
                    latency_seconds=elapsed,
                )

            fields = {
                "request_id": request_id,
                "method": request.method,
                "path": path,
                "status": response.status_code,
                "latency_ms": round(elapsed * 1000, 2),
            }
            fields.update(getattr(request.state, "extra_log_data", {}))
            self.logger.log(_level_for(response.status_code), "Request completed", extra=fields)
            return response
        finally:
            request_id_ctx.reset(token)


def log_request_data(request: Request, **fields) -> None:
    """Attach keys to this request's log line. None values are dropped."""
    extra = getattr(request.state, "extra_log_data", {})
    extra.update({key: value for key, value in fields.items() if value is not None})
    request.state.extra_log_data = extra
