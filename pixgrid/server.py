"""FastAPI application factory for the upload-once, convert-many service."""

from __future__ import annotations

import io
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import numpy as np
from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from pixgrid.config import ServiceConfig
from pixgrid.errors import (
    ImageDecodeError,
    ImageEncodeError,
    InvalidImageError,
    InvalidParameterError,
    PixelGridError,
    SessionIdError,
    SessionNotFoundError,
    UnsupportedFormatError,
)
from pixgrid.image_io import decode_image, encode_png, to_data_url
from pixgrid.pipeline import ConversionParameters, convert
from pixgrid.sessions import SessionStore

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: dict[type[PixelGridError], int] = {
    SessionNotFoundError: 404,
    InvalidParameterError: 400,
    InvalidImageError: 400,
    ImageDecodeError: 400,
    UnsupportedFormatError: 400,
    SessionIdError: 500,
    ImageEncodeError: 500,
}


class ConvertRequest(BaseModel):
    """Body of /api/convert and /api/download (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId", min_length=1)
    size: int = 0
    scale: int = 0
    colors: int = 0


class UploadResponse(BaseModel):
    session_id: str = Field(serialization_alias="sessionId")
    width: int
    height: int
    original: str


class ConvertResponse(BaseModel):
    image: str
    width: int
    height: int


def resolve_parameters(
    req: ConvertRequest,
    config: ServiceConfig,
    source_width: int,
) -> ConversionParameters:
    """Apply the service's default policy to a request.

    ``size`` and ``scale`` fall back to the configured defaults when <= 0.
    ``colors`` is passed through untouched because 0 means "keep colours".
    A size wider than the source is clamped to the source width.
    """
    size = req.size if req.size > 0 else config.default_pixel_size
    scale = req.scale if req.scale > 0 else config.default_scale_factor
    if size > config.max_pixel_size:
        raise InvalidParameterError(
            "request", "size", size, f"must be <= {config.max_pixel_size}",
        )
    if scale > config.max_scale_factor:
        raise InvalidParameterError(
            "request", "scale", scale, f"must be <= {config.max_scale_factor}",
        )
    return ConversionParameters(
        pixel_size=min(size, source_width),
        scale_factor=scale,
        colors=req.colors,
    )


def create_app(
    store: SessionStore | None = None,
    config: ServiceConfig | None = None,
) -> FastAPI:
    """Create a FastAPI app bound to *store*.

    The store's reaper runs for the lifetime of the app.
    """
    config = config or ServiceConfig()
    if store is None:
        store = SessionStore(
            idle_timeout=config.idle_timeout,
            reap_interval=config.reap_interval,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.store.start()
        logger.info(
            "Session reaper started (idle timeout %.0fs, every %.0fs)",
            app.state.store.idle_timeout, app.state.store.reap_interval,
        )
        try:
            yield
        finally:
            app.state.store.stop()

    app = FastAPI(title="pixgrid", lifespan=lifespan)
    app.state.store = store
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(PixelGridError)
    async def pixgrid_error_handler(request: Request, exc: PixelGridError) -> JSONResponse:
        status = next(
            (code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)),
            500,
        )
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    def _lookup(session_id: str) -> np.ndarray:
        image = store.get(session_id)
        if image is None:
            raise SessionNotFoundError(session_id)
        return image

    def _convert(req: ConvertRequest) -> np.ndarray:
        source = _lookup(req.session_id)
        params = resolve_parameters(req, config, source.shape[1])
        result = convert(source, params)
        logger.debug(
            "Session %s: size=%d scale=%d colors=%d -> %dx%d",
            req.session_id[:8], params.pixel_size, params.scale_factor,
            params.colors, result.shape[1], result.shape[0],
        )
        return result

    @app.get("/health")
    def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/api/upload", response_model=UploadResponse, response_model_by_alias=True)
    def upload(image: UploadFile = File(...)) -> UploadResponse:
        """Decode an upload, open a session for it and echo a PNG preview."""
        data = image.file.read(config.max_upload_bytes + 1)
        if len(data) > config.max_upload_bytes:
            raise HTTPException(status_code=413, detail="Image too large")
        decoded = decode_image(data)
        session_id = store.create(decoded)
        h, w = decoded.shape[:2]
        logger.info("Session %s created for %dx%d upload", session_id[:8], w, h)
        return UploadResponse(
            session_id=session_id,
            width=w,
            height=h,
            original=to_data_url(encode_png(decoded)),
        )

    @app.post("/api/convert", response_model=ConvertResponse)
    def convert_image(req: ConvertRequest) -> ConvertResponse:
        """Convert a stored upload and return the result inline."""
        result = _convert(req)
        h, w = result.shape[:2]
        return ConvertResponse(image=to_data_url(encode_png(result)), width=w, height=h)

    @app.post("/api/download")
    def download(req: ConvertRequest) -> StreamingResponse:
        """Convert a stored upload and stream it back as an attachment."""
        png = encode_png(_convert(req))
        return StreamingResponse(
            io.BytesIO(png),
            media_type="image/png",
            headers={
                "Content-Disposition": f"attachment; filename={config.download_filename}",
            },
        )

    return app
