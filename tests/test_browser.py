import asyncio

import pytest

from pluto_backend.browser import LAUNCH_ARGS, BrowserManager
from pluto_backend.config import PlutoConfig
from pluto_backend.errors import BrowserUnavailableError


class FakeRoute:
    def __init__(self, resource_type):
        self.request = type("R", (), {"resource_type": resource_type})()
        self.outcome = None

    async def abort(self):
        self.outcome = "abort"

    async def continue_(self):
        self.outcome = "continue"


class FakePage:
    def __init__(self):
        self.routes = []

    async def route(self, pattern, handler):
        self.routes.append((pattern, handler))


class FakeContext:
    def __init__(self, kwargs):
        self.kwargs = kwargs
        self.closed = False
        self.page = FakePage()

    async def new_page(self):
        return self.page

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self):
        self.connected = True
        self.closed = False
        self.contexts = []

    def is_connected(self):
        return self.connected

    async def new_context(self, **kwargs):
        ctx = FakeContext(kwargs)
        self.contexts.append(ctx)
        return ctx

    async def close(self):
        self.closed = True
        self.connected = False


class FakeChromium:
    def __init__(self, fail=False):
        self.fail = fail
        self.launches = []

    async def launch(self, **kwargs):
        await asyncio.sleep(0)
        if self.fail:
            raise RuntimeError("Executable doesn't exist")
        self.launches.append(kwargs)
        return FakeBrowser()


class FakePlaywright:
    def __init__(self, chromium):
        self.chromium = chromium
        self.stopped = False

    async def stop(self):
        self.stopped = True


def _factory(chromium):
    runtime = FakePlaywright(chromium)

    class _Starter:
        async def start(self):
            return runtime

    return (lambda: _Starter()), runtime


def _cfg(**kw):
    return PlutoConfig(browser_executable_path="/usr/bin/chromium", **kw)


@pytest.mark.asyncio
async def test_acquire_reuses_connected_browser():
    chromium = FakeChromium()
    factory, _ = _factory(chromium)
    mgr = BrowserManager(_cfg(), playwright_factory=factory)

    first = await mgr.acquire()
    second = await mgr.acquire()

    assert first is second
    assert len(chromium.launches) == 1
    launch = chromium.launches[0]
    assert launch["executable_path"] == "/usr/bin/chromium"
    assert launch["args"] == list(LAUNCH_ARGS)
    assert "--no-sandbox" in launch["args"] and "--single-process" in launch["args"]


@pytest.mark.asyncio
async def test_concurrent_first_acquire_launches_once():
    chromium = FakeChromium()
    factory, _ = _factory(chromium)
    mgr = BrowserManager(_cfg(), playwright_factory=factory)

    browsers = await asyncio.gather(*(mgr.acquire() for _ in range(5)))

    assert len({id(b) for b in browsers}) == 1
    assert len(chromium.launches) == 1


@pytest.mark.asyncio
async def test_disconnected_browser_is_relaunched():
    chromium = FakeChromium()
    factory, _ = _factory(chromium)
    mgr = BrowserManager(_cfg(), playwright_factory=factory)

    first = await mgr.acquire()
    first.connected = False
    second = await mgr.acquire()

    assert second is not first
    assert len(chromium.launches) == 2


@pytest.mark.asyncio
async def test_launch_failure_raises_and_next_acquire_retries():
    chromium = FakeChromium(fail=True)
    factory, _ = _factory(chromium)
    mgr = BrowserManager(_cfg(), playwright_factory=factory)

    with pytest.raises(BrowserUnavailableError):
        await mgr.acquire()
    assert not mgr.is_running

    chromium.fail = False
    assert await mgr.acquire() is not None


@pytest.mark.asyncio
async def test_page_context_closed_even_when_caller_fails():
    chromium = FakeChromium()
    factory, _ = _factory(chromium)
    mgr = BrowserManager(_cfg(block_heavy_resources=True), playwright_factory=factory)

    with pytest.raises(RuntimeError):
        async with mgr.page():
            raise RuntimeError("evaluate blew up")

    browser = await mgr.acquire()
    ctx = browser.contexts[0]
    assert ctx.closed
    assert "Mozilla/5.0" in ctx.kwargs["user_agent"]

    pattern, handler = ctx.page.routes[0]
    assert pattern == "**/*"
    image, document = FakeRoute("image"), FakeRoute("document")
    await handler(image)
    await handler(document)
    assert image.outcome == "abort"
    assert document.outcome == "continue"


@pytest.mark.asyncio
async def test_shutdown_closes_browser_and_stops_runtime():
    chromium = FakeChromium()
    factory, runtime = _factory(chromium)
    mgr = BrowserManager(_cfg(), playwright_factory=factory)

    browser = await mgr.acquire()
    await mgr.shutdown()
    await mgr.shutdown()

    assert browser.closed
    assert runtime.stopped
    assert not mgr.is_running
