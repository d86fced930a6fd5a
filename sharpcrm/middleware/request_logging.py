from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from sharpcrm.metrics import observe_http_request, resolve_http_path_label


logger = logging.getLogger("sharpcrm.request")


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One log line and one metrics observation per request, 5xx logged as errors.

    The path label is resolved after routing so it is the route template, keeping
    record ids out of metric labels.
    """

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self._observe(request, 500, _elapsed_ms(started), exc_info=True)
            raise

        self._observe(request, response.status_code, _elapsed_ms(started))
        return response

    @staticmethod
    def _observe(request: Request, status_code: int, duration_ms: float, *, exc_info: bool = False) -> None:
        method = request.method
        path = resolve_http_path_label(request)
        observe_http_request(method=method, path=path, status=status_code, duration=duration_ms / 1000)
        logger.log(
            logging.ERROR if status_code >= 500 else logging.INFO,
            "http.error" if exc_info else "http.request",
            exc_info=exc_info,
            extra={"method": method, "path": path, "status_code": status_code, "duration_ms": duration_ms},
        )
