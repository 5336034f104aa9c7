"""Request timing and tracing middleware for the pricing API."""
import logging
import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("treeshop.api.middleware")

SKIP_LOG_PATHS = {"/health"}

# Caller-supplied ids are echoed into headers and logs, so keep them tame
_REQUEST_ID_RE = re.compile(r"[A-Za-z0-9._:-]{1,128}")


def resolve_request_id(incoming: str) -> str:
    """Reuse the caller's X-Request-ID when it is well formed, else mint one."""
    if incoming and _REQUEST_ID_RE.fullmatch(incoming):
        return incoming
    return str(uuid.uuid4())


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Tags every response with X-Request-ID and X-Process-Time (ms) and logs
    one line per request, except health probes. Client errors log at
    WARNING and server errors at ERROR so rejected quotes stand out.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = resolve_request_id(request.headers.get("X-Request-ID", ""))
        start_time = time.perf_counter()

        request.state.request_id = request_id

        response: Response = await call_next(request)

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)

        if request.url.path not in SKIP_LOG_PATHS:
            if response.status_code >= 500:
                level = logging.ERROR
            elif response.status_code >= 400:
                level = logging.WARNING
            else:
                level = logging.INFO
            logger.log(
                level,
                "%s %s -> %d",
                request.method,
                request.url.path,
                response.status_code,
                extra={"request_id": request_id, "duration_ms": duration_ms},
            )

        return response
