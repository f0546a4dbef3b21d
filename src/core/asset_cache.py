"""
Asset and navigation cache

An in-process service worker: a single version-suffixed cache bucket,
install/activate lifecycle, and per-request interception with three
strategies (bypass, network-first navigation, cache-first assets).
Buckets are stored with the async SQLAlchemy engine.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set
from urllib.parse import urljoin, urlsplit

import httpx
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from src.core.models import Base, CacheBucketDB, CacheEntryDB, utcnow

logger = logging.getLogger(__name__)

SKIP_WAITING_MESSAGE = "SKIP_WAITING"
DEFAULT_API_PREFIXES = ("/rest/v1/", "/auth/v1/")


class NetworkError(Exception):
    """The network could not deliver a response"""


@dataclass
class FetchRequest:
    url: str
    method: str = "GET"
    mode: str = "no-cors"
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def scheme(self) -> str:
        return urlsplit(self.url).scheme

    @property
    def is_navigation(self) -> bool:
        return self.mode == "navigate"


@dataclass
class FetchResponse:
    status: int
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.body.decode('utf-8', errors='replace')


Fetcher = Callable[[FetchRequest], Awaitable[FetchResponse]]


class HttpxFetcher:
    """Network fetcher backed by httpx"""

    def __init__(self, timeout_seconds: Optional[float] = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport,
                                         follow_redirects=True)

    async def __call__(self, request: FetchRequest) -> FetchResponse:
        try:
            response = await self._client.request(request.method, request.url, headers=request.headers)
        except httpx.TransportError as e:
            raise NetworkError(f"{request.method} {request.url}: {e}") from e

        headers = {k: v for k, v in response.headers.items()
                   if k.lower() not in ('content-encoding', 'content-length', 'transfer-encoding')}
        return FetchResponse(status=response.status_code, body=response.content, headers=headers)

    async def close(self):
        await self._client.aclose()


class CacheBucket:
    """One named bucket of cached responses"""

    def __init__(self, storage: 'CacheStorage', name: str):
        self.storage = storage
        self.name = name

    async def match(self, url: str) -> Optional[FetchResponse]:
        async with self.storage.SessionLocal() as session:
            entry = await session.get(CacheEntryDB, (self.name, url))
            if entry is None:
                return None
            return FetchResponse(
                status=entry.status,
                body=entry.body,
                headers=json.loads(entry.headers) if entry.headers else {}
            )

    async def put(self, url: str, response: FetchResponse):
        async with self.storage.SessionLocal() as session:
            entry = await session.get(CacheEntryDB, (self.name, url))
            if entry is None:
                entry = CacheEntryDB(bucket=self.name, url=url)
                session.add(entry)
            entry.status = response.status
            entry.headers = json.dumps(response.headers)
            entry.body = response.body
            entry.stored_at = utcnow()
            await session.commit()

    async def keys(self) -> List[str]:
        async with self.storage.SessionLocal() as session:
            result = await session.execute(
                select(CacheEntryDB.url).where(CacheEntryDB.bucket == self.name)
            )
            return [row[0] for row in result]


class CacheStorage:
    """Set of named cache buckets"""

    def __init__(self, database_url: str = "sqlite+aiosqlite:///./data/offline.db"):
        self.database_url = database_url
        self.engine = create_async_engine(
            database_url,
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False}
        )
        self.SessionLocal = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

    async def initialize(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(
                Base.metadata.create_all,
                tables=[CacheBucketDB.__table__, CacheEntryDB.__table__]
            )

    async def open(self, name: str) -> CacheBucket:
        """Open a bucket, creating it if needed"""
        async with self.SessionLocal() as session:
            if await session.get(CacheBucketDB, name) is None:
                session.add(CacheBucketDB(name=name))
                await session.commit()
        return CacheBucket(self, name)

    async def keys(self) -> List[str]:
        async with self.SessionLocal() as session:
            result = await session.execute(select(CacheBucketDB.name))
            return [row[0] for row in result]

    async def delete(self, name: str) -> bool:
        async with self.SessionLocal() as session:
            await session.execute(delete(CacheEntryDB).where(CacheEntryDB.bucket == name))
            result = await session.execute(delete(CacheBucketDB).where(CacheBucketDB.name == name))
            await session.commit()
            return result.rowcount > 0

    async def match(self, url: str) -> Optional[FetchResponse]:
        """Look a URL up across all buckets"""
        for name in await self.keys():
            response = await CacheBucket(self, name).match(url)
            if response is not None:
                return response
        return None

    async def close(self):
        await self.engine.dispose()


class RequestClass(Enum):
    BYPASS = "bypass"
    NAVIGATE = "navigate"
    ASSET = "asset"


def classify_request(request: FetchRequest,
                     api_prefixes: Iterable[str] = DEFAULT_API_PREFIXES) -> RequestClass:
    """Decide how a request is handled before any async work"""
    if request.scheme not in ("http", "https"):
        return RequestClass.BYPASS
    if request.method.upper() != "GET" or any(prefix in request.url for prefix in api_prefixes):
        return RequestClass.BYPASS
    if request.is_navigation:
        return RequestClass.NAVIGATE
    return RequestClass.ASSET


class WorkerState(Enum):
    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"


class AssetServiceWorker:
    """Cache lifecycle and fetch interception"""

    def __init__(self, caches: CacheStorage, fetcher: Fetcher, cache_name: str, origin: str,
                 shell_manifest: Iterable[str] = ("/", "/index.html", "/offline.html"),
                 entry_page: str = "/index.html", offline_page: str = "/offline.html",
                 api_prefixes: Iterable[str] = DEFAULT_API_PREFIXES):
        self.caches = caches
        self.fetcher = fetcher
        self.cache_name = cache_name
        self.origin = origin.rstrip('/') + '/'
        self.shell_manifest = [self.resolve(path) for path in shell_manifest]
        self.entry_url = self.resolve(entry_page)
        self.offline_url = self.resolve(offline_page)
        self.api_prefixes = tuple(api_prefixes)

        self.state = WorkerState.PARSED
        self.controls_clients = False
        self._skip_waiting = False
        self._background: Set[asyncio.Task] = set()

    def resolve(self, path: str) -> str:
        return urljoin(self.origin, path)

    # Lifecycle

    async def install(self):
        """Pre-populate the bucket with the shell manifest"""
        self.state = WorkerState.INSTALLING
        logger.info("Installing asset cache")

        bucket = await self.caches.open(self.cache_name)
        for url in self.shell_manifest:
            try:
                response = await self.fetcher(FetchRequest(url=url))
            except NetworkError as e:
                logger.error(f"Could not pre-cache {url}: {e}")
                continue
            if response.status == 200:
                await bucket.put(url, response)
            else:
                logger.error(f"Could not pre-cache {url}: HTTP {response.status}")

        self.state = WorkerState.INSTALLED
        logger.info(f"Asset cache {self.cache_name} installed")

        if self._skip_waiting:
            await self.activate()

    async def activate(self):
        """Purge every bucket but the current one and take control"""
        self.state = WorkerState.ACTIVATING
        logger.info("Activating asset cache")

        for name in await self.caches.keys():
            if name != self.cache_name:
                logger.info(f"Deleting old cache: {name}")
                await self.caches.delete(name)

        self.state = WorkerState.ACTIVATED
        self.controls_clients = True

    async def skip_waiting(self):
        self._skip_waiting = True
        if self.state is WorkerState.INSTALLED:
            await self.activate()

    async def post_message(self, message: Any):
        """Handle a control message from the application"""
        if isinstance(message, dict) and message.get('type') == SKIP_WAITING_MESSAGE:
            await self.skip_waiting()
        else:
            logger.debug(f"Ignoring message: {message!r}")

    # Interception

    async def handle_fetch(self, request: FetchRequest) -> Optional[FetchResponse]:
        """Response for an intercepted request, or None to let it go to the network untouched"""
        if self.state is not WorkerState.ACTIVATED:
            return None

        request_class = classify_request(request, self.api_prefixes)
        if request_class is RequestClass.BYPASS:
            return None
        if request_class is RequestClass.NAVIGATE:
            return await self._network_first(request)
        return await self._cache_first(request)

    async def _network_first(self, request: FetchRequest) -> FetchResponse:
        try:
            return await self.fetcher(request)
        except NetworkError:
            pass

        bucket = await self.caches.open(self.cache_name)
        for url in (self.entry_url, self.offline_url):
            cached = await bucket.match(url)
            if cached is not None:
                return cached
        return FetchResponse(status=503, body=b"Offline - App shell not cached",
                             headers={"content-type": "text/plain"})

    async def _cache_first(self, request: FetchRequest) -> FetchResponse:
        cached = await self.caches.match(request.url)
        if cached is not None:
            self._spawn(self._revalidate(request))
            return cached

        try:
            response = await self.fetcher(request)
        except NetworkError:
            bucket = await self.caches.open(self.cache_name)
            offline_page = await bucket.match(self.offline_url)
            if offline_page is not None:
                return offline_page
            return FetchResponse(status=503, body=b"Offline - Resource not cached",
                                 headers={"content-type": "text/plain"})

        if response.status == 200:
            await self._store(request.url, response)
        return response

    async def _revalidate(self, request: FetchRequest):
        try:
            response = await self.fetcher(request)
        except NetworkError:
            return
        except Exception as e:
            logger.warning(f"Revalidation of {request.url} failed: {e}")
            return
        if response.status == 200:
            await self._store(request.url, response)

    async def _store(self, url: str, response: FetchResponse):
        try:
            bucket = await self.caches.open(self.cache_name)
            await bucket.put(url, response)
        except Exception as e:
            logger.warning(f"Failed to cache {url}: {e}")

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def wait_background(self):
        """Wait for background revalidations to settle"""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
