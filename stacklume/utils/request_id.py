from __future__ import annotations

import logging
import time
import uuid
from typing import Iterable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.types import ASGIApp


REQUEST_ID_HEADER = "X-Request-Id"
QUIET_PATHS = ("/livez", "/readyz")

_log = logging.getLogger("stacklume.request")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Tag every request with an id (client supplied or generated) and log one
    access line per request. Health-check paths are tagged but not logged.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        header_name: str = REQUEST_ID_HEADER,
        quiet_paths: Iterable[str] = QUIET_PATHS,
    ) -> None:
        super().__init__(app)
        self._header_name = header_name
        self._quiet = frozenset(quiet_paths)

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        rid = (request.headers.get(self._header_name) or "").strip()[:128]
        rid = rid or uuid.uuid4().hex
        request.state.request_id = rid
        path = request.url.path
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            _log.exception(
                "request failed request_id=%s method=%s path=%s duration_ms=%.3f",
                rid,
                request.method,
                path,
                (time.perf_counter() - start) * 1000.0,
            )
            raise

        response.headers[self._header_name] = rid
        if path not in self._quiet:
            _log.info(
                "request request_id=%s method=%s path=%s status_code=%s duration_ms=%.3f",
                rid,
                request.method,
                path,
                response.status_code,
                (time.perf_counter() - start) * 1000.0,
            )
        return response
