import httpx
import pytest

from pluto_backend.browser import BrowserManager
from pluto_backend.completion_session import CompletionSession
from pluto_backend.config import PlutoConfig
from pluto_backend.dispatcher import CompletionDispatcher
from pluto_backend.errors import ExhaustedError, ExtractionFailedError
from pluto_backend.extractor import ContentExtractor
from pluto_backend.gate import ConcurrencyGate
from pluto_backend.orchestrator import PlutoOrchestrator


def _cfg(**kw) -> PlutoConfig:
    return PlutoConfig(
        enable_metrics=False,
        completion_api_keys=["gsk_test"],
        completion_models=["llama-big"],
        **kw,
    )


def _fake_orchestrator(initialize_error=None, debug_trace=None):
    class FakeOrchestrator:
        def __init__(self):
            self.closed = False
            self.chat_calls = []

        async def close(self):
            self.closed = True

        async def initialize(self, links, title=None):
            if initialize_error is not None:
                raise initialize_error
            return f"foundation for {len(links)} links"

        async def chat(self, foundation, history):
            self.chat_calls.append((foundation, history))
            return "reply"

        async def debug(self, code, language):
            return debug_trace or {"steps": []}

    return FakeOrchestrator()


def _client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_chat_end_to_end_with_stubbed_completion_endpoint():
    pytest.importorskip("fastapi")
    from pluto_backend.server import create_app

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["authorization"] == "Bearer gsk_test"
        return httpx.Response(200, json={"choices": [{"message": {"content": "hi"}}]})

    cfg = _cfg()
    session = CompletionSession(cfg.completion_api_url, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    orchestrator = PlutoOrchestrator(
        cfg,
        CompletionDispatcher(cfg, session=session),
        ContentExtractor(cfg, BrowserManager(cfg), ConcurrencyGate(1)),
    )
    app = create_app(cfg=cfg, orchestrator=orchestrator)

    async with _client(app) as client:
        resp = await client.post(
            "/api/chat",
            json={"foundation": "F", "history": [{"role": "user", "content": "hello"}]},
        )
    await session.close()

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "reply": "hi"}


@pytest.mark.asyncio
async def test_health_is_plain_ok():
    pytest.importorskip("fastapi")
    from pluto_backend.server import create_app

    app = create_app(cfg=_cfg(), orchestrator=_fake_orchestrator())
    async with _client(app) as client:
        resp = await client.get("/health")

    assert resp.status_code == 200
    assert resp.text == "OK"


@pytest.mark.asyncio
async def test_initialize_success_ignores_blank_links():
    pytest.importorskip("fastapi")
    from pluto_backend.server import create_app

    app = create_app(cfg=_cfg(), orchestrator=_fake_orchestrator())
    async with _client(app) as client:
        resp = await client.post(
            "/api/initialize",
            json={"links": [{"url": "https://chatgpt.com/share/a"}, {"url": "  "}, {}], "title": "T"},
        )

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "foundation": "foundation for 1 links"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        ExtractionFailedError("Could not extract usable content from the provided links: timeout"),
        ExhaustedError("Every account and every fallback model has hit its limit. Last error: Rate limited"),
        RuntimeError("boom"),
    ],
)
async def test_use_case_failure_maps_to_error_envelope(error):
    pytest.importorskip("fastapi")
    from pluto_backend.server import create_app

    app = create_app(cfg=_cfg(), orchestrator=_fake_orchestrator(initialize_error=error))
    async with _client(app) as client:
        resp = await client.post("/api/initialize", json={"links": [{"url": "https://x.test/a"}]})

    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert str(error) in body["error"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "path,payload",
    [
        ("/api/chat", {"foundation": "F", "history": []}),
        ("/api/chat", {"foundation": "F"}),
        ("/api/debug", {"code": "   "}),
        ("/api/initialize", {"links": "not-a-list"}),
    ],
)
async def test_invalid_request_is_400_envelope(path, payload):
    pytest.importorskip("fastapi")
    from pluto_backend.server import create_app

    app = create_app(cfg=_cfg(), orchestrator=_fake_orchestrator())
    async with _client(app) as client:
        resp = await client.post(path, json=payload)

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"].startswith("Invalid request:")


@pytest.mark.asyncio
async def test_debug_returns_trace():
    pytest.importorskip("fastapi")
    from pluto_backend.server import create_app

    trace = {"steps": [{"line": 1, "description": "x = 1", "variables": {"x": 1}, "output": None}]}
    app = create_app(cfg=_cfg(), orchestrator=_fake_orchestrator(debug_trace=trace))
    async with _client(app) as client:
        resp = await client.post("/api/debug", json={"code": "x = 1"})

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "trace": trace}


@pytest.mark.asyncio
async def test_request_id_and_security_headers():
    pytest.importorskip("fastapi")
    from pluto_backend.server import create_app

    app = create_app(cfg=_cfg(), orchestrator=_fake_orchestrator())
    async with _client(app) as client:
        echoed = await client.post(
            "/api/chat",
            headers={"X-Request-Id": "req-12345678"},
            json={"history": [{"role": "user", "content": "hi"}]},
        )
        generated = await client.get("/health", headers={"X-Request-Id": "bad id!"})

    assert echoed.headers["x-request-id"] == "req-12345678"
    assert echoed.headers["cache-control"] == "no-store"
    assert echoed.headers["x-content-type-options"] == "nosniff"
    assert generated.headers["x-request-id"] != "bad id!"
    assert "cache-control" not in generated.headers


@pytest.mark.asyncio
async def test_oversized_body_is_413_envelope():
    pytest.importorskip("fastapi")
    from pluto_backend.server import create_app

    app = create_app(cfg=_cfg(max_request_body_bytes=60), orchestrator=_fake_orchestrator())
    async with _client(app) as client:
        payload = b'{"foundation":"' + (b"x" * 200) + b'","history":[]}'
        resp = await client.post("/api/chat", content=payload, headers={"Content-Type": "application/json"})

    assert resp.status_code == 413
    assert resp.json() == {"success": False, "error": "Request body too large."}


@pytest.mark.asyncio
async def test_initialize_without_api_keys_is_500_before_browser_work():
    pytest.importorskip("fastapi")
    from pluto_backend.server import create_app

    cfg = PlutoConfig(enable_metrics=False, completion_api_keys=[], completion_models=["llama-big"])
    browser = BrowserManager(cfg)
    orchestrator = PlutoOrchestrator(
        cfg,
        CompletionDispatcher(cfg, session=CompletionSession(cfg.completion_api_url)),
        ContentExtractor(cfg, browser, ConcurrencyGate(1)),
    )
    app = create_app(cfg=cfg, orchestrator=orchestrator)

    async with _client(app) as client:
        resp = await client.post("/api/initialize", json={"links": [{"url": "https://chatgpt.com/share/a"}]})
    await orchestrator.dispatcher.close()

    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "No completion API keys configured."}
    assert not browser.is_running
