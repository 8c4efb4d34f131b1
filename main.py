import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from PIL import Image
from starlette.datastructures import UploadFile

from imaging import processing
from imaging.config import Settings
from imaging.errors import AppError, InternalServerError, NotFoundError
from imaging.models import ProcessedImage
from imaging.storage import CACHE_CONTROL, build_storage
from workers.compute_pool import ComputePool

LOGGER = logging.getLogger("pixel_proxy")

router = APIRouter()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# --- Transform Endpoints ---
@router.get("/scale/{options}/{key:path}")
async def scale_endpoint(options: str, key: str, request: Request):
    state = request.app.state
    body = await processing.scale(state.pool, state.storage, options, key)
    return Response(content=body, media_type="image/jpeg", headers={"Cache-Control": CACHE_CONTROL})


@router.post("/api/v1/process-image", response_model=List[ProcessedImage])
async def process_image_endpoint(request: Request):
    """Process one uploaded image into every configured output.

    The multipart body carries the raw bytes in the ``image`` field and a
    JSON ``ImageProcessingRequest`` in the ``details`` field. Outputs are
    uploaded to storage while later configurations are still being
    transformed; the response lists them in the order they were produced.
    """
    state = request.app.state
    form_data = await request.form(max_part_size=state.settings.max_body_size)
    image_field = form_data.get("image")
    details_field = form_data.get("details")

    image: Optional[bytes] = None
    if isinstance(image_field, UploadFile):
        image = await image_field.read()
    if image and len(image) > state.settings.max_body_size:
        raise HTTPException(status_code=413, detail="Image exceeds the upload limit.")

    details = await details_field.read() if isinstance(details_field, UploadFile) else details_field

    return await processing.process_image(state.pool, state.storage, image, details)


@router.get("/healthz", response_class=PlainTextResponse)
async def healthz():
    return "pong"


# --- Error Handling ---
async def app_error_handler(request: Request, exc: AppError):
    if isinstance(exc, NotFoundError):
        return PlainTextResponse("Not Found", status_code=exc.status_code)
    if isinstance(exc, InternalServerError):
        # Detail was logged where the error happened.
        content = "" if request.url.path.startswith("/scale/") else "Internal server error"
        return PlainTextResponse(content, status_code=exc.status_code)
    return PlainTextResponse(exc.message, status_code=exc.status_code)


# --- App Init ---
def create_app(settings: Optional[Settings] = None, storage=None) -> FastAPI:
    """Build the application.

    ``storage`` overrides the backend selected by ``settings``; tests use
    it to inject failing or recording backends.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    # Process-wide Pillow setup
    Image.MAX_IMAGE_PIXELS = settings.max_image_pixels

    pool = ComputePool(settings.compute_workers)
    storage = storage or build_storage(settings)
    print(f"[startup] storage backend: {settings.storage_backend}")
    print(f"[startup] compute pool with {pool.max_workers} workers")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        pool.shutdown(wait=False)

    app = FastAPI(
        title="Pixel Proxy",
        description="Image proxy service that applies image transformations on the fly.",
        lifespan=lifespan,
        docs_url="/docs" if settings.enable_openapi else None,
        redoc_url="/redoc" if settings.enable_openapi else None,
        openapi_url="/openapi.json" if settings.enable_openapi else None,
    )
    app.state.settings = settings
    app.state.pool = pool
    app.state.storage = storage

    # --- Middleware ---
    @app.middleware("http")
    async def request_timeout(request: Request, call_next):
        started = time.perf_counter()
        try:
            response = await asyncio.wait_for(call_next(request), timeout=settings.request_timeout_seconds)
        except asyncio.TimeoutError:
            LOGGER.error("request timed out: %s %s", request.method, request.url.path)
            response = JSONResponse(status_code=408, content={"detail": "Request timed out."})
        LOGGER.info(
            "%s %s -> %d (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    app.add_exception_handler(AppError, app_error_handler)
    app.include_router(router)
    return app


app = create_app()
