"""Unit tests for the asset cache service worker."""

import pytest

from src.core.asset_cache import (
    AssetServiceWorker, CacheStorage, FetchRequest, FetchResponse, NetworkError,
    RequestClass, WorkerState, classify_request,
)

ORIGIN = "http://app.test"


class FakeFetcher:
    """Serves canned responses; raises NetworkError while offline"""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.offline = False
        self.requests = []

    async def __call__(self, request):
        self.requests.append(request)
        if self.offline:
            raise NetworkError("offline")
        return self.routes.get(request.url, FetchResponse(status=404, body=b"not found"))


def _page(text, status=200):
    return FetchResponse(status=status, body=text.encode(), headers={"content-type": "text/html"})


@pytest.fixture
async def caches():
    storage = CacheStorage("sqlite+aiosqlite://")
    await storage.initialize()
    yield storage
    await storage.close()


@pytest.fixture
def fetcher():
    return FakeFetcher({
        f"{ORIGIN}/": _page("root"),
        f"{ORIGIN}/index.html": _page("shell"),
        f"{ORIGIN}/offline.html": _page("offline"),
        f"{ORIGIN}/assets/app.js": FetchResponse(status=200, body=b"console.log(1)"),
    })


@pytest.fixture
async def worker(caches, fetcher):
    sw = AssetServiceWorker(caches, fetcher, "branch-gear-v3", ORIGIN)
    await sw.install()
    await sw.activate()
    return sw


@pytest.mark.parametrize("request_,expected", [
    (FetchRequest(url="chrome-extension://abc/script.js"), RequestClass.BYPASS),
    (FetchRequest(url=f"{ORIGIN}/rest/v1/customers"), RequestClass.BYPASS),
    (FetchRequest(url=f"{ORIGIN}/auth/v1/token", mode="navigate"), RequestClass.BYPASS),
    (FetchRequest(url=f"{ORIGIN}/assets/app.js", method="POST"), RequestClass.BYPASS),
    (FetchRequest(url=f"{ORIGIN}/dashboard", mode="navigate"), RequestClass.NAVIGATE),
    (FetchRequest(url=f"{ORIGIN}/assets/app.js"), RequestClass.ASSET),
])
def test_classify_request(request_, expected):
    assert classify_request(request_) is expected


@pytest.mark.asyncio
async def test_install_precaches_shell(caches, fetcher):
    sw = AssetServiceWorker(caches, fetcher, "branch-gear-v3", ORIGIN)

    await sw.install()

    assert sw.state is WorkerState.INSTALLED
    bucket = await caches.open("branch-gear-v3")
    assert sorted(await bucket.keys()) == sorted([
        f"{ORIGIN}/", f"{ORIGIN}/index.html", f"{ORIGIN}/offline.html"
    ])


@pytest.mark.asyncio
async def test_install_tolerates_missing_shell_files(caches, fetcher):
    del fetcher.routes[f"{ORIGIN}/offline.html"]
    sw = AssetServiceWorker(caches, fetcher, "branch-gear-v3", ORIGIN)

    await sw.install()

    bucket = await caches.open("branch-gear-v3")
    assert f"{ORIGIN}/offline.html" not in await bucket.keys()
    assert sw.state is WorkerState.INSTALLED


@pytest.mark.asyncio
async def test_activate_purges_old_buckets(caches, fetcher):
    old = await caches.open("branch-gear-v2")
    await old.put(f"{ORIGIN}/index.html", _page("old shell"))

    sw = AssetServiceWorker(caches, fetcher, "branch-gear-v3", ORIGIN)
    await sw.install()
    await sw.activate()

    assert await caches.keys() == ["branch-gear-v3"]
    assert sw.controls_clients is True


@pytest.mark.asyncio
async def test_waiting_worker_does_not_intercept(caches, fetcher):
    sw = AssetServiceWorker(caches, fetcher, "branch-gear-v3", ORIGIN)
    await sw.install()

    assert await sw.handle_fetch(FetchRequest(url=f"{ORIGIN}/assets/app.js")) is None


@pytest.mark.asyncio
async def test_skip_waiting_message_activates(caches, fetcher):
    sw = AssetServiceWorker(caches, fetcher, "branch-gear-v3", ORIGIN)
    await sw.install()

    await sw.post_message({"type": "HELLO"})
    assert sw.state is WorkerState.INSTALLED

    await sw.post_message({"type": "SKIP_WAITING"})
    assert sw.state is WorkerState.ACTIVATED


@pytest.mark.asyncio
async def test_api_requests_are_never_intercepted(worker, fetcher):
    fetcher.offline = True

    assert await worker.handle_fetch(FetchRequest(url=f"{ORIGIN}/rest/v1/customers")) is None


@pytest.mark.asyncio
async def test_navigation_is_network_first(worker, fetcher):
    fetcher.routes[f"{ORIGIN}/dashboard"] = _page("fresh dashboard")

    response = await worker.handle_fetch(FetchRequest(url=f"{ORIGIN}/dashboard", mode="navigate"))

    assert response.text == "fresh dashboard"


@pytest.mark.asyncio
async def test_offline_navigation_falls_back_to_shell(worker, fetcher):
    fetcher.offline = True

    response = await worker.handle_fetch(FetchRequest(url=f"{ORIGIN}/rentals/42", mode="navigate"))

    assert response.status == 200
    assert response.text == "shell"


@pytest.mark.asyncio
async def test_offline_navigation_without_shell_is_503(caches):
    fetcher = FakeFetcher()
    fetcher.offline = True
    sw = AssetServiceWorker(caches, fetcher, "branch-gear-v3", ORIGIN)
    await sw.install()
    await sw.activate()

    response = await sw.handle_fetch(FetchRequest(url=f"{ORIGIN}/", mode="navigate"))

    assert response.status == 503
    assert response.text == "Offline - App shell not cached"


@pytest.mark.asyncio
async def test_asset_is_cached_then_served_offline(worker, fetcher):
    request = FetchRequest(url=f"{ORIGIN}/assets/app.js")

    first = await worker.handle_fetch(request)
    fetcher.offline = True
    second = await worker.handle_fetch(request)
    await worker.wait_background()

    assert first.body == second.body == b"console.log(1)"


@pytest.mark.asyncio
async def test_cache_hit_revalidates_in_background(worker, fetcher, caches):
    url = f"{ORIGIN}/assets/app.js"
    await worker.handle_fetch(FetchRequest(url=url))
    fetcher.routes[url] = FetchResponse(status=200, body=b"console.log(2)")

    stale = await worker.handle_fetch(FetchRequest(url=url))
    await worker.wait_background()
    fresh = await caches.match(url)

    assert stale.body == b"console.log(1)"
    assert fresh.body == b"console.log(2)"


@pytest.mark.asyncio
async def test_failed_revalidation_keeps_cached_copy(worker, fetcher, caches, caplog):
    url = f"{ORIGIN}/assets/app.js"
    await worker.handle_fetch(FetchRequest(url=url))

    async def broken(request):
        raise RuntimeError("upstream exploded")

    worker.fetcher = broken
    served = await worker.handle_fetch(FetchRequest(url=url))
    await worker.wait_background()

    assert served.body == b"console.log(1)"
    assert (await caches.match(url)).body == b"console.log(1)"
    assert f"Revalidation of {url} failed: upstream exploded" in caplog.text


@pytest.mark.asyncio
async def test_error_responses_are_not_cached(worker, fetcher, caches):
    url = f"{ORIGIN}/assets/missing.js"

    response = await worker.handle_fetch(FetchRequest(url=url))

    assert response.status == 404
    assert await caches.match(url) is None


@pytest.mark.asyncio
async def test_uncached_asset_offline_gets_offline_page(worker, fetcher):
    fetcher.offline = True

    response = await worker.handle_fetch(FetchRequest(url=f"{ORIGIN}/assets/other.js"))

    assert response.text == "offline"


@pytest.mark.asyncio
async def test_uncached_asset_offline_without_offline_page_is_503(caches):
    fetcher = FakeFetcher()
    fetcher.offline = True
    sw = AssetServiceWorker(caches, fetcher, "branch-gear-v3", ORIGIN)
    await sw.install()
    await sw.activate()

    response = await sw.handle_fetch(FetchRequest(url=f"{ORIGIN}/assets/app.js"))

    assert response.status == 503
    assert response.text == "Offline - Resource not cached"
