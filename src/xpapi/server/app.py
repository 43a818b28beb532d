"""Starlette application: the batch endpoint, docs page and hot reload.

The endpoint decodes the request (JSON body, or multipart with the batch
JSON in the ``xpapi`` field), stages uploads to the upload directory and
hands everything to :meth:`Runtime.process` on the threadpool.  Rejected
batches answer 406 with a plain-text reason and their staged uploads are
deleted; processed batches answer 200 with the aggregated response, whatever
their commands returned.
"""

from __future__ import annotations

import contextlib
import json
import logging
import shutil
import tempfile
from collections.abc import AsyncIterator
from pathlib import Path
from typing import TYPE_CHECKING, Any

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from xpapi.domain.batch import Rejection, RequestContext, UploadedFile
from xpapi.server.middleware import BodySizeMiddleware
from xpapi.services.dispatch import BatchRejection, normalize_namespace
from xpapi.services.docs import DocsService

if TYPE_CHECKING:
    from xpapi.runtime import Runtime

logger = logging.getLogger(__name__)

FORM_FIELD = "xpapi"


class _Undecodable(Exception):
    def __init__(self, reason: str, files: dict[str, UploadedFile] | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.files = files or {}


def _route_path(path: str) -> str:
    return "/" + path.strip("/")


def stage_upload(upload: UploadFile, upload_dir: Path) -> UploadedFile:
    """Copy an uploaded file into *upload_dir* and describe it."""
    upload_dir.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(dir=upload_dir, prefix="xpapi-", delete=False) as fh:
        upload.file.seek(0)
        shutil.copyfileobj(upload.file, fh)
        size = fh.tell()
    return UploadedFile(
        size=size,
        path=fh.name,
        name=upload.filename or "",
        type=upload.content_type,
    )


def discard_uploads(files: dict[str, UploadedFile]) -> None:
    """Remove staged files belonging to a request that was never dispatched."""
    for field_name, staged in files.items():
        Path(staged.path).unlink(missing_ok=True)
        logger.debug("Discarded upload %s at %s", field_name, staged.path)


async def _decode(request: Request, upload_dir: Path) -> tuple[Any, dict[str, UploadedFile]]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        return await _decode_multipart(request, upload_dir)

    body = await request.body()
    if not body.strip():
        return None, {}
    try:
        return json.loads(body), {}
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise _Undecodable(Rejection.MALFORMED) from None


async def _decode_multipart(
    request: Request, upload_dir: Path
) -> tuple[Any, dict[str, UploadedFile]]:
    files: dict[str, UploadedFile] = {}
    async with request.form() as form:
        raw = form.get(FORM_FIELD)
        if isinstance(raw, UploadFile):
            raw = (await raw.read()).decode("utf-8", errors="replace")
        for field_name, value in form.multi_items():
            if isinstance(value, UploadFile) and field_name != FORM_FIELD:
                files[field_name] = await run_in_threadpool(stage_upload, value, upload_dir)
                logger.debug("Staged upload %s at %s", field_name, files[field_name].path)

    if raw is None:
        return None, files
    try:
        return json.loads(raw), files
    except json.JSONDecodeError:
        raise _Undecodable(Rejection.MALFORMED, files) from None


def _client(request: Request) -> str | None:
    return request.client.host if request.client else None


def create_app(runtime: Runtime, *, watch: bool = True) -> Starlette:
    """Build the ASGI application for a bootstrapped *runtime*.

    Args:
        runtime: Must have completed :meth:`Runtime.bootstrap`.
        watch: Start the handler watcher in the lifespan when autoreload
            is configured.
    """
    settings = runtime.settings
    api_path = _route_path(settings.api.path)
    upload_dir = settings.upload_dir

    async def api_endpoint(request: Request) -> Response:
        try:
            params, files = await _decode(request, upload_dir)
        except _Undecodable as exc:
            await run_in_threadpool(discard_uploads, exc.files)
            return PlainTextResponse(exc.reason, status_code=406)

        context = RequestContext(
            params=params,
            files=files,
            namespace=normalize_namespace(request.path_params.get("namespace")),
            headers=dict(request.headers),
            cookies=dict(request.cookies),
            client=_client(request),
        )
        outcome = await run_in_threadpool(runtime.process, params, context)
        if isinstance(outcome, BatchRejection):
            await run_in_threadpool(discard_uploads, files)
            return PlainTextResponse(outcome.reason, status_code=outcome.status)

        response = JSONResponse(outcome.response.to_wire())
        for cookie in outcome.cookies:
            response.headers.append("set-cookie", cookie)
        return response

    routes = [Route(api_path, api_endpoint, methods=["POST"])]
    if settings.api.multi:
        prefix = api_path.rstrip("/")
        routes.append(Route(f"{prefix}/{{namespace:path}}", api_endpoint, methods=["POST"]))

    if settings.docs.path:
        docs = DocsService(runtime)

        async def docs_endpoint(request: Request) -> Response:
            html = await run_in_threadpool(docs.render_html)
            return HTMLResponse(html)

        routes.append(Route(_route_path(settings.docs.path), docs_endpoint, methods=["GET"]))

    middleware: list[Middleware] = []
    if settings.api.cors_origins:
        origins = list(settings.api.cors_origins)
        middleware.append(
            Middleware(
                CORSMiddleware,
                allow_origins=origins,
                allow_methods=["GET", "POST", "OPTIONS"],
                allow_headers=["*"],
                allow_credentials="*" not in origins,
            )
        )
    middleware.append(Middleware(BodySizeMiddleware, max_size=settings.api.max_body_size))
    middleware.append(Middleware(GZipMiddleware, minimum_size=1024))
    middleware.extend(runtime.plugins.middleware())

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        watcher = runtime.watcher() if watch else None
        if watcher is not None:
            watcher.start()
            logger.info("Handler autoreload enabled")
        try:
            yield
        finally:
            if watcher is not None:
                watcher.stop()

    app = Starlette(routes=routes, middleware=middleware, lifespan=lifespan)
    app.state.runtime = runtime
    logger.debug("Serving %s (multi=%s)", api_path, settings.api.multi)
    return app
