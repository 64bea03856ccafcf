"""FastAPI web application."""

import json
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, List, Optional, Union

from fastapi import FastAPI, Request
from fastapi.responses import FileResponse, JSONResponse, Response

from icaowx.aggregator import LocationAggregator, LocationData
from icaowx.config import AppConfig
from icaowx.dispatcher import ENDPOINTS, RequestError, dispatch
from icaowx.ingest import build_ingestors
from icaowx.scheduler import build_scheduler
from icaowx.storage import Storage, StorageError, open_storage

logger = logging.getLogger(__name__)

ALLOWED_METHODS = "GET, HEAD, OPTIONS"

STATIC_PAGES = {
    "/": "index.html",
    "/help": "help.html",
    "/help/": "help.html",
}

default_static_dir = Path(__file__).parent / "templates"


def error_response(status_code: int, detail: str, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    """Build the JSON error body used for every failed request."""
    return JSONResponse(status_code=status_code, content={"detail": detail, "error": True}, headers=headers)


def set_cors_headers(response: Response) -> None:
    """Add headers which allow cross-origin requests."""
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Methods"] = ALLOWED_METHODS
    response.headers["Access-Control-Allow-Headers"] = "*"


def options_response(request: Request, enable_cors: bool) -> Response:
    """
    Answer an OPTIONS request.

    A CORS preflight gets the CORS headers; any other OPTIONS request gets
    the list of allowed methods.
    """
    response = Response(status_code=204)
    preflight = any(
        request.headers.get(h)
        for h in ("Access-Control-Request-Method", "Access-Control-Request-Headers", "Origin")
    )
    if enable_cors and preflight:
        set_cors_headers(response)
    else:
        response.headers["Allow"] = ALLOWED_METHODS
        response.headers["Cache-Control"] = "no-cache"
    return response


def create_app(config: Optional[AppConfig] = None, storage: Optional[Storage] = None) -> FastAPI:
    """
    Create the API application.

    Args:
        config: Application configuration (defaults to AppConfig())
        storage: Storage to serve from. If None, the backend from config is
            opened on startup and closed on shutdown.
    """
    if config is None:
        config = AppConfig()
    server = config.server
    static_dir = Path(server.static_dir) if server.static_dir else default_static_dir

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_storage = app.state.storage is None
        if owns_storage:
            app.state.storage = await open_storage(config.storage)

        scheduler = None
        if server.run_updater:
            scheduler = build_scheduler(build_ingestors(config, app.state.storage))
            scheduler.start()
        logger.info(f"icaowx API ready on {server.host}:{server.port}")
        try:
            yield
        finally:
            if scheduler is not None:
                if not await scheduler.shutdown(config.fetch.total_timeout_seconds + 5):
                    logger.warning("Feed updates did not finish before shutdown and were cancelled")
            if owns_storage:
                await app.state.storage.close()
            logger.info("icaowx API stopped")

    app = FastAPI(title="icaowx", lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.config = config
    app.state.storage = storage

    @app.exception_handler(RequestError)
    async def request_error_handler(request: Request, exc: RequestError):
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error(f"Storage error serving {request.url.path}: {exc}")
        return error_response(500, f"Error retrieving data: {exc}")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all other exceptions and return JSON."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return error_response(500, str(exc))

    @app.middleware("http")
    async def check_method(request: Request, call_next):
        start = time.monotonic()
        if request.method in ("GET", "HEAD"):
            response = await call_next(request)
            if server.enable_cors:
                set_cors_headers(response)
        elif request.method == "OPTIONS":
            response = options_response(request, server.enable_cors)
        else:
            response = error_response(
                405, f"Method {request.method} is not allowed", headers={"Allow": ALLOWED_METHODS}
            )
        logger.info(f"{request.method} {request.url} {response.status_code} {time.monotonic() - start:.3f}s")
        return response

    def encode(data: Union[Dict, List]) -> Response:
        if server.pretty_json:
            body = json.dumps(data, indent=2, ensure_ascii=False)
        else:
            body = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
        return Response(content=body + "\n", media_type=server.json_content_type)

    def serve_static(name: str) -> Response:
        path = static_dir / name
        if not path.is_file():
            return error_response(500, f"Error serving file {name}")
        return FileResponse(path, media_type="text/html; charset=utf-8")

    @app.api_route("/{path:path}", methods=["GET", "HEAD"])
    async def serve(request: Request, path: str):
        url_path = request.url.path
        if url_path in STATIC_PAGES:
            return serve_static(STATIC_PAGES[url_path])
        if url_path.split("/")[1] not in ENDPOINTS:
            return error_response(403, f"Unknown endpoint or path {url_path}")

        req = dispatch(url_path, request.url.query, server.max_locations)
        aggregator = LocationAggregator(request.app.state.storage)
        if req.single:
            data: LocationData = await aggregator.query_single(req.endpoint, req.locations[0])
            return encode(data.to_dict())
        result = await aggregator.query(req.endpoint, req.locations)
        return encode([d.to_dict() for d in result])

    return app
