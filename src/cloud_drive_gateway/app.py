"""FastAPI application exposing one API over several cloud drives."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from redis.asyncio import Redis
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from cloud_drive_gateway.config import get_settings
from cloud_drive_gateway.drives.factory import create_drive
from cloud_drive_gateway.errors import (
    AuthRequiredError,
    InvalidProviderError,
    InvalidShareLinkError,
)
from cloud_drive_gateway.gateway import router, share_router
from cloud_drive_gateway.links import ShareLinkStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, POST, OPTIONS",
    "Access-Control-Allow-Headers": (
        "Content-Type, Authorization, Content-Length, X-Requested-With, Accept, Range"
    ),
    "Access-Control-Expose-Headers": "Content-Length, Content-Range, Content-Disposition",
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the backend HTTP client and the share-link store for the app's lifetime."""
    settings = get_settings()
    http_client = httpx.AsyncClient(follow_redirects=True)
    redis = Redis.from_url(settings.redis_url, decode_responses=True)
    app.state.http_client = http_client
    app.state.link_store = ShareLinkStore(redis, ttl=settings.share_link_ttl)
    logger.info("Cloud drive gateway started")
    try:
        yield
    finally:
        await http_client.aclose()
        await redis.aclose()
        logger.info("Cloud drive gateway stopped")


app = FastAPI(title="Cloud Drive Gateway", lifespan=lifespan)


@app.middleware("http")
async def cors(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Answer preflight requests and add CORS headers to every response."""
    if request.method == "OPTIONS":
        return Response(status_code=204, headers=CORS_HEADERS)
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(AuthRequiredError)
async def auth_required(request: Request, exc: AuthRequiredError) -> Response:
    """Send the caller to the provider's consent screen."""
    drive = getattr(request.state, "drive", None)
    if drive is None:
        drive = create_drive(exc.provider, get_settings(), request.app.state.http_client)
    drive.clear_token()
    logger.info("[%s] Redirecting to consent screen: %s", exc.provider, exc)
    return RedirectResponse(drive.build_auth_url(), status_code=302)


@app.exception_handler(InvalidProviderError)
async def invalid_provider(request: Request, exc: InvalidProviderError) -> Response:
    return PlainTextResponse("Invalid provider", status_code=400)


@app.exception_handler(InvalidShareLinkError)
async def invalid_share_link(request: Request, exc: InvalidShareLinkError) -> Response:
    return PlainTextResponse("Not Found", status_code=404)


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException) -> Response:
    """Errors are a status code plus a short plain-text body."""
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)


@app.get("/")
async def index() -> JSONResponse:
    return JSONResponse({"message": "Welcome to the cloud drive API"})


app.include_router(share_router)
app.include_router(router)


def start() -> None:
    """Run the web application with uvicorn (used by the console script)."""
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s | %(message)s",
    )
    uvicorn.run("cloud_drive_gateway.app:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    start()
