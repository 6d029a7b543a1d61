from __future__ import annotations

import asyncio
import contextlib
import re
import traceback
import uuid
from datetime import datetime, timezone
from typing import Any

import uvicorn
from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .browser import probe_browser
from .config import Settings
from .errors import EncodingFailure, InputError, RenderError, RendererUnavailable, RenderTimeout
from .frontmatter import parse_front_matter, split_front_matter
from .logging_utils import configure_logging, get_logger, request_logger
from .renderers import Renderer, build_renderer
from .schemas import DEFAULT_FILENAME, ErrorResponse, GeneratePdfRequest, HealthResponse, ServiceInfo

log = get_logger(__name__)

_FILENAME_RE = re.compile(r"[^A-Za-z0-9._ -]")

ENDPOINTS = {
    "POST /generate-pdf": "Generate PDF from markdown",
    "GET /health": "Health check",
}


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def safe_filename(name: str | None) -> str:
    raw = str(name or "").strip().replace("\\", "/").split("/")[-1]
    cleaned = _FILENAME_RE.sub("_", raw).strip(" .")
    return cleaned or DEFAULT_FILENAME


def require_markdown(req: GeneratePdfRequest | None) -> str:
    if req is None or not req.markdown or not req.markdown.strip():
        raise InputError("Markdown is required")
    return req.markdown


def _failure(exc: BaseException, settings: Settings) -> JSONResponse:
    payload: dict[str, Any] = {"error": "Failed to generate PDF", "message": str(exc)}
    if not settings.is_production:
        payload["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=500, content=payload)


def create_app(settings: Settings | None = None, *, renderer: Renderer | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    renderer = renderer or build_renderer(settings)
    renderer_status: dict[str, Any] = {
        "ready": True if renderer.name == "direct" else None,
        "error": None,
    }
    allowed_origins = set(settings.allowed_origins)
    probe_tasks: list[asyncio.Task[None]] = []

    app = FastAPI(title="mdpdf", description="Markdown to PDF generation API")
    app.state.settings = settings
    app.state.renderer = renderer

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "Content-Length"],
    )

    @app.middleware("http")
    async def _limit_body_size(request: Request, call_next):
        if request.method in ("POST", "PUT", "PATCH"):
            declared = request.headers.get("content-length")
            if declared is not None and declared.strip().isdigit():
                size = int(declared)
            else:
                size = len(await request.body())
            if size > settings.max_body_bytes:
                log.warning("Rejected %d byte body (limit %d)", size, settings.max_body_bytes)
                return JSONResponse(status_code=413, content={"error": "Request body too large"})
        return await call_next(request)

    @app.middleware("http")
    async def _reject_unknown_origins(request: Request, call_next):
        origin = request.headers.get("origin")
        if origin and origin.rstrip("/") not in allowed_origins:
            log.warning("Rejected request from origin %s", origin)
            return JSONResponse(status_code=403, content={"error": "Origin not allowed"})
        return await call_next(request)

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    async def _probe_renderer() -> None:
        log.info("Testing browser in background...")
        error = await probe_browser(settings)
        renderer_status["ready"] = error is None
        renderer_status["error"] = error
        if error:
            log.error("Browser probe failed: %s", error)
            log.error("PDF generation may not work properly")
        else:
            log.info("Browser probe successful")

    @app.on_event("startup")
    async def _startup() -> None:
        log.info("Starting PDF API server...")
        log.info("Port: %d", settings.port)
        log.info("Environment: %s", settings.environment)
        log.info("Renderer: %s", renderer.name)
        if renderer.name == "reflow":
            log.info("Chromium executable: %s", settings.chromium_path or "playwright default")
            if settings.probe_on_startup:
                probe_tasks.append(asyncio.create_task(_probe_renderer()))

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        for task in probe_tasks:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        log.info("PDF API shutting down")

    @app.get("/", response_model=ServiceInfo)
    def root() -> ServiceInfo:
        return ServiceInfo(
            message="PDF Generation API",
            status="running",
            port=settings.port,
            renderer=renderer.name,
            endpoints=ENDPOINTS,
        )

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(
            status="OK",
            timestamp=_utc_now(),
            port=settings.port,
            environment=settings.environment,
            renderer=renderer.name,
            renderer_ready=renderer_status["ready"],
            renderer_error=renderer_status["error"],
        )

    @app.post(
        "/generate-pdf",
        response_class=Response,
        responses={
            200: {"content": {"application/pdf": {}}},
            400: {"model": ErrorResponse},
            500: {"model": ErrorResponse},
        },
    )
    async def generate_pdf(req: GeneratePdfRequest | None = Body(default=None)) -> Response:
        rlog = request_logger(log, uuid.uuid4().hex[:8])
        try:
            markdown = require_markdown(req)
        except InputError as e:
            rlog.info("Rejected request: %s", e)
            return JSONResponse(status_code=400, content={"error": str(e)})

        block, body = split_front_matter(markdown)
        title = parse_front_matter(block).get("title")
        filename = safe_filename(req.filename if req is not None else None)
        rlog.info("Generating PDF with %s renderer (%d chars, filename=%s)", renderer.name, len(body), filename)

        try:
            pdf_bytes = await renderer.render(body, title=title, logger=rlog)
            if not pdf_bytes:
                raise EncodingFailure("Renderer returned an empty document")
        except RenderTimeout as e:
            rlog.error("PDF rendering timed out: %s", e)
            return _failure(e, settings)
        except RendererUnavailable as e:
            rlog.error("Rendering engine unavailable: %s", e)
            return _failure(e, settings)
        except RenderError as e:
            rlog.error("PDF rendering failed: %s", e, exc_info=True)
            return _failure(e, settings)
        except Exception as e:
            rlog.exception("Unexpected error generating PDF")
            return _failure(e, settings)

        rlog.info("PDF generated successfully (%d bytes)", len(pdf_bytes))
        return Response(
            content=pdf_bytes,
            media_type="application/pdf",
            headers={
                "Content-Disposition": f'attachment; filename="{filename}"',
                "Content-Length": str(len(pdf_bytes)),
            },
        )

    return app


app = create_app()


def main() -> None:
    settings: Settings = app.state.settings
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
