from __future__ import annotations

import asyncio
import re
import uuid

import structlog

API_PREFIX = "/api/"

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{8,128}$")

_STATIC_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}
# Foundations and replies are per-user conversation content.
_API_HEADERS = {
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
}

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


def coerce_request_id(value: str | None) -> str:
    """Reuse a well-formed caller-supplied id, otherwise mint one."""
    if value and _REQUEST_ID_RE.fullmatch(value):
        return value
    return uuid.uuid4().hex


def install_middlewares(app, *, cfg) -> None:
    """
    Wrap the app in two layers.

    The outer layer tags every request with an ``X-Request-Id`` bound into
    structlog's contextvars and sets response headers. The inner layer only
    guards ``/api/`` routes: oversized bodies get a 413 envelope and requests
    beyond ``max_inflight_requests`` get a 429 envelope.
    """
    from fastapi.responses import JSONResponse
    from starlette.middleware.base import BaseHTTPMiddleware
    from starlette.requests import Request

    from .api_models import make_error_response
    from .metrics import server_errors_total

    body_limit = max(0, int(cfg.max_request_body_bytes or 0))
    inflight = asyncio.Semaphore(max(1, int(cfg.max_inflight_requests or 1)))

    def _reject(status_code: int, kind: str, message: str, headers: dict[str, str] | None = None):
        server_errors_total.labels(type=kind).inc()
        return JSONResponse(status_code=status_code, content=make_error_response(message), headers=headers)

    async def _body_too_large(request: Request) -> bool:
        if body_limit <= 0 or request.method not in _BODY_METHODS:
            return False
        declared = request.headers.get("content-length", "")
        if declared.isdigit():
            return int(declared) > body_limit
        return len(await request.body()) > body_limit

    class ApiGuardMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next):
            if not request.url.path.startswith(API_PREFIX):
                return await call_next(request)
            if await _body_too_large(request):
                return _reject(413, "body_too_large", "Request body too large.")
            if inflight.locked():
                return _reject(429, "server_busy", "Server is busy. Try again later.", {"Retry-After": "1"})
            async with inflight:
                return await call_next(request)

    class RequestContextMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next):
            request_id = coerce_request_id(request.headers.get("x-request-id"))
            request.state.request_id = request_id
            structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path)
            try:
                response = await call_next(request)
            finally:
                structlog.contextvars.clear_contextvars()

            headers = dict(_STATIC_HEADERS, **{"X-Request-Id": request_id})
            if request.url.path.startswith(API_PREFIX):
                headers.update(_API_HEADERS)
            for name, value in headers.items():
                response.headers.setdefault(name, value)
            return response

    app.add_middleware(ApiGuardMiddleware)
    # Added last so it is outermost and stamps the guard's rejections too.
    app.add_middleware(RequestContextMiddleware)

    origins = list(cfg.cors_allow_origins or [])
    if not origins:
        return
    if cfg.cors_allow_credentials and "*" in origins:
        raise ValueError("CORS_ALLOW_ORIGINS cannot include '*' when CORS_ALLOW_CREDENTIALS=true.")

    from fastapi.middleware.cors import CORSMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=cfg.cors_allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-Id"],
        expose_headers=["X-Request-Id"],
        max_age=600,
    )
