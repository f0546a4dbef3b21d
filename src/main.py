"""
Main entry point for the offline sync service
Wires storage, queue, sync engine, session layer and asset cache,
and exposes them through FastAPI
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, Any, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config.config_loader import load_config, cache_bucket_name
from src.core.asset_cache import AssetServiceWorker, CacheStorage, HttpxFetcher
from src.core.backend_client import BackendClient
from src.core.connectivity import ConnectivityMonitor
from src.core.host import HostCapability, host_from_config
from src.core.logging_manager import setup_logging
from src.core.offline_auth import OfflineCredentialStore, OfflineProfileStore
from src.core.operation_queue import OperationQueue
from src.core.session import SessionManager
from src.core.session_resolver import SessionResolver
from src.core.storage import DurableStore
from src.core.sync_engine import SyncEngine
from src.api import sync, auth, assets
from src.api.dependencies import init_api_dependencies
from src.api.exceptions import ServiceUnavailableError

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


class OfflineServices:
    """Builds and owns every component of the offline layer"""

    def __init__(self, config: Dict[str, Any], host: Optional[HostCapability] = None,
                 backend: Optional[BackendClient] = None, fetcher=None):
        self.config = config
        self.host = host or host_from_config(config)

        storage_config = config['storage']
        backend_config = config['backend']
        connectivity_config = config['connectivity']
        cache_config = config['cache']

        self.store = DurableStore(storage_config['url'])
        self.queue = OperationQueue(self.store, max_attempts=int(config['queue']['max_attempts']))
        self.credentials = OfflineCredentialStore(self.store)
        self.profiles = OfflineProfileStore(self.store)
        self.resolver = SessionResolver(self.store)

        self.backend = backend or BackendClient(
            base_url=backend_config['base_url'],
            api_key=backend_config.get('api_key', ''),
            timeout_seconds=backend_config.get('timeout_seconds'),
            role_lookup_timeout=float(backend_config.get('role_lookup_timeout_seconds', 2))
        )

        self.monitor = ConnectivityMonitor(
            reconnect_grace=float(connectivity_config['reconnect_grace_seconds']),
            heartbeat_interval=float(connectivity_config['heartbeat_interval_seconds']),
            probe=self.backend.ping if connectivity_config.get('probe_enabled') else None,
            probe_interval=float(connectivity_config.get('probe_interval_seconds', 10)),
            drain_timeout=float(connectivity_config.get('drain_timeout_seconds', 10))
        )
        self.sync_engine = SyncEngine(self.queue, self.backend, self.monitor)
        self.session_manager = SessionManager(
            self.store, self.credentials, self.profiles, self.resolver,
            backend=self.backend, monitor=self.monitor
        )

        self.caches = CacheStorage(storage_config['cache_url'])
        self.fetcher = fetcher or HttpxFetcher(timeout_seconds=backend_config.get('timeout_seconds'))
        self.service_worker = AssetServiceWorker(
            self.caches,
            self.fetcher,
            cache_name=cache_bucket_name(config),
            origin=cache_config['origin'],
            shell_manifest=cache_config['shell_manifest'],
            entry_page=cache_config['entry_page'],
            offline_page=cache_config['offline_page'],
            api_prefixes=cache_config['api_prefixes']
        )

    async def startup(self):
        recovered = self.queue.recover_in_flight()
        if recovered:
            logger.info(f"{recovered} interrupted operations returned to the queue")

        self.session_manager.restore()

        await self.caches.initialize()
        await self.service_worker.install()
        await self.service_worker.activate()

        await self.monitor.start()

    async def shutdown(self):
        await self.monitor.stop()
        await self.backend.close()
        if hasattr(self.fetcher, 'close'):
            await self.fetcher.close()
        await self.caches.close()
        self.store.close()


class OfflineApp:
    """FastAPI application around the offline services"""

    def __init__(self, config: Dict[str, Any], services: Optional[OfflineServices] = None):
        self.config = config
        self.services = services or OfflineServices(config)

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            logger.info("Starting offline sync service...")
            await self.services.startup()
            logger.info("Offline sync service started")
            yield
            logger.info("Shutting down offline sync service...")
            await self.services.shutdown()
            logger.info("Offline sync service shutdown complete")

        self.app = FastAPI(
            title="Offline Sync Service",
            description="Offline-first queue, sync and session layer",
            version=VERSION,
            lifespan=lifespan
        )

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=config.get('api', {}).get('cors_origins', ["*"]),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"]
        )

        api_key = config.get('api', {}).get('api_key', 'development-key')
        init_api_dependencies(api_key, self.services)

        @self.app.get("/health")
        async def health_check():
            """Health check with queue and host details"""
            try:
                services = self.services
                return {
                    "status": "healthy",
                    "version": VERSION,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "online": services.monitor.is_online,
                    "queue": {
                        "pending": services.queue.count(),
                        "failed": len(services.queue.failed())
                    },
                    "service_worker": services.service_worker.state.value,
                    "host": {
                        "hosted": services.host.is_hosted,
                        "platform": services.host.platform,
                        "info": await services.host.get_app_info()
                    }
                }
            except Exception as e:
                raise ServiceUnavailableError(f"Service unhealthy: {e}")

        self.app.include_router(sync.router, prefix="/api/v1/sync", tags=["Synchronization"])
        self.app.include_router(auth.router, prefix="/api/v1/auth", tags=["Session"])
        self.app.include_router(assets.control_router, prefix="/api/v1/sw", tags=["Asset Cache"])
        # Catch-all shell route goes last
        self.app.include_router(assets.shell_router)


def create_app(config: Dict[str, Any] = None, services: Optional[OfflineServices] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    if config is None:
        config = load_config()
    return OfflineApp(config, services).app


def main(config: Dict[str, Any] = None):
    """Main entry point"""
    try:
        if config is None:
            config = load_config()
        setup_logging(config)

        app = create_app(config)

        api_config = config.get('api', {})
        host = api_config.get('host', '127.0.0.1')
        port = api_config.get('port', 8080)

        logger.info(f"Starting offline sync service on {host}:{port}")

        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level="info",
            access_log=True
        )

    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    except Exception as e:
        logger.error(f"Failed to start offline sync service: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
