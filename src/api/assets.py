"""
Asset API Router
Serves the application shell through the asset service worker and
accepts its control messages
"""

import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from src.api.dependencies import verify_api_key, get_service_worker, get_fetcher
from src.api.exceptions import handle_api_errors
from src.api.schemas import ServiceWorkerMessage
from src.core.asset_cache import FetchRequest, NetworkError

logger = logging.getLogger(__name__)

control_router = APIRouter()
shell_router = APIRouter()

FORWARDED_HEADERS = ('accept', 'accept-language', 'user-agent')


@control_router.post("/message")
@handle_api_errors
async def post_message(
    message: ServiceWorkerMessage,
    authenticated: bool = Depends(verify_api_key),
    worker=Depends(get_service_worker)
):
    await worker.post_message(message.model_dump())
    return {"state": worker.state.value}


@control_router.get("/state")
@handle_api_errors
async def get_state(
    authenticated: bool = Depends(verify_api_key),
    worker=Depends(get_service_worker)
):
    return {
        "state": worker.state.value,
        "cache_name": worker.cache_name,
        "controls_clients": worker.controls_clients,
    }


def _is_navigation(request: Request) -> bool:
    if request.headers.get('sec-fetch-mode') == 'navigate':
        return True
    return 'text/html' in request.headers.get('accept', '')


@shell_router.get("/{path:path}", include_in_schema=False)
async def serve_shell(
    path: str,
    request: Request,
    worker=Depends(get_service_worker),
    fetcher=Depends(get_fetcher)
):
    url = worker.resolve(path)
    if request.url.query:
        url = f"{url}?{request.url.query}"

    fetch_request = FetchRequest(
        url=url,
        method=request.method,
        mode="navigate" if _is_navigation(request) else "no-cors",
        headers={k: v for k, v in request.headers.items() if k.lower() in FORWARDED_HEADERS}
    )

    response = await worker.handle_fetch(fetch_request)
    if response is None:
        try:
            response = await fetcher(fetch_request)
        except NetworkError as e:
            logger.warning(f"Upstream unreachable: {e}")
            return Response(content=b"Bad Gateway", status_code=502, media_type="text/plain")

    return Response(content=response.body, status_code=response.status, headers=response.headers)
