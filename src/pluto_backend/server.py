from __future__ import annotations

import os
import time
from collections.abc import Awaitable
from contextlib import asynccontextmanager
from typing import TypeVar

import structlog

from .api_models import (
    ChatRequest,
    ChatResponse,
    DebugRequest,
    DebugResponse,
    InitializeRequest,
    InitializeResponse,
    make_error_response,
)
from .browser import BrowserManager
from .config import PlutoConfig
from .dispatcher import CompletionDispatcher
from .errors import (
    ConfigurationError,
    ExhaustedError,
    ExtractionFailedError,
    MalformedResponseError,
    PlutoError,
)
from .extractor import ContentExtractor
from .gate import ConcurrencyGate
from .http_security import install_middlewares
from .logging import configure_logging
from .metrics import maybe_start_metrics, server_errors_total, server_request_latency_seconds, server_requests_total
from .orchestrator import PlutoOrchestrator

log = structlog.get_logger()

T = TypeVar("T")


def build_orchestrator(cfg: PlutoConfig) -> PlutoOrchestrator:
    dispatcher = CompletionDispatcher(cfg)
    extractor = ContentExtractor(cfg, BrowserManager(cfg), ConcurrencyGate(cfg.extraction_concurrency))
    return PlutoOrchestrator(cfg, dispatcher, extractor)


def _error_type(exc: Exception) -> str:
    if isinstance(exc, ExhaustedError):
        return "exhausted"
    if isinstance(exc, ExtractionFailedError):
        return "extraction_failed"
    if isinstance(exc, MalformedResponseError):
        return "malformed_response"
    if isinstance(exc, ConfigurationError):
        return "configuration_error"
    if isinstance(exc, PlutoError):
        return "api_error"
    return "internal_error"


def create_app(cfg: PlutoConfig | None = None, orchestrator: PlutoOrchestrator | None = None):
    try:
        from fastapi import FastAPI
        from fastapi.exceptions import RequestValidationError
        from fastapi.responses import JSONResponse, PlainTextResponse
    except ImportError as e:  # pragma: no cover
        raise RuntimeError('Install the "server" extra: pip install -e ".[server]"') from e

    cfg = cfg or PlutoConfig()
    configure_logging(level=cfg.log_level, fmt=cfg.log_format, secrets=cfg.secrets())
    orchestrator = orchestrator or build_orchestrator(cfg)

    def _observe(path: str, status_code: int, started_at: float) -> None:
        server_requests_total.labels(path=path, status=str(status_code)).inc()
        server_request_latency_seconds.labels(path=path).observe(max(0.0, time.monotonic() - started_at))

    async def _guard(path: str, awaitable: Awaitable[T]) -> T:
        """Run one use case; anything it raises becomes a PlutoError for the envelope handler."""
        started_at = time.monotonic()
        try:
            result = await awaitable
        except PlutoError:
            _observe(path, 500, started_at)
            raise
        except Exception as e:
            _observe(path, 500, started_at)
            log.exception("unhandled_error", path=path)
            raise PlutoError(str(e) or "Internal server error.") from e
        _observe(path, 200, started_at)
        return result

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        maybe_start_metrics(enable=cfg.enable_metrics, bind=cfg.metrics_bind, port=cfg.metrics_port)
        try:
            yield
        finally:
            await orchestrator.close()

    app = FastAPI(
        title="pluto-backend",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if cfg.enable_api_docs else None,
        redoc_url="/redoc" if cfg.enable_api_docs else None,
        openapi_url="/openapi.json" if cfg.enable_api_docs else None,
    )
    install_middlewares(app, cfg=cfg)

    @app.exception_handler(PlutoError)
    async def _pluto_error_handler(request, exc: PlutoError):
        kind = _error_type(exc)
        server_errors_total.labels(type=kind).inc()
        log.error("request_failed", path=request.url.path, type=kind, error=str(exc))
        return JSONResponse(status_code=500, content=make_error_response(str(exc)))

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request, exc: RequestValidationError):
        server_errors_total.labels(type="invalid_request").inc()
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
            for err in exc.errors()
        )
        return JSONResponse(status_code=400, content=make_error_response(f"Invalid request: {details}"))

    @app.get("/health", response_class=PlainTextResponse)
    async def health() -> str:
        return "OK"

    @app.post("/api/initialize", response_model=InitializeResponse)
    async def initialize(req: InitializeRequest):
        foundation = await _guard("/api/initialize", orchestrator.initialize(req.urls(), req.title))
        return InitializeResponse(foundation=foundation)

    @app.post("/api/chat", response_model=ChatResponse)
    async def chat(req: ChatRequest):
        reply = await _guard("/api/chat", orchestrator.chat(req.foundation, req.messages()))
        return ChatResponse(reply=reply)

    @app.post("/api/debug", response_model=DebugResponse)
    async def debug(req: DebugRequest):
        trace = await _guard("/api/debug", orchestrator.debug(req.code, req.language))
        return DebugResponse(trace=trace)

    return app


app = create_app()


def main() -> None:  # pragma: no cover
    try:
        import uvicorn
    except ImportError as e:
        raise RuntimeError('Install the "server" extra: pip install -e ".[server]"') from e

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "10000"))
    uvicorn.run("pluto_backend.server:app", host=host, port=port)


if __name__ == "__main__":  # pragma: no cover
    main()
