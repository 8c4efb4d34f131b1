"""Request orchestration for the transform endpoints.

``process_image`` coordinates a batch request: it validates the
multipart fields, probes the source on the compute pool, fetches the
environment image, streams the pipeline worker and uploads every output
as soon as it is delivered, so uploads overlap with further transforms.
``scale`` is the single-URI path that returns one JPEG directly.

Both translate pipeline and storage failures into the HTTP error types of
:mod:`imaging.errors`.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import ValidationError

from modifiers import EnvironmentOptions
from workers.compute_pool import ComputePool
from workers.pipeline import EnvironmentSource, process_configurations, scale_image

from . import image_ops
from .errors import (
    BadRequestError,
    ImageOperationError,
    InternalServerError,
    NoValidOptionsError,
    NotFoundError,
    ObjectNotFoundError,
    PipelineError,
    StorageError,
)
from .models import ImageProcessingRequest, ProcessedImage
from .storage import Storage

LOGGER = logging.getLogger(__name__)


def parse_request(details: Optional[str | bytes]) -> ImageProcessingRequest:
    if not details:
        raise BadRequestError("missing image or details")
    try:
        return ImageProcessingRequest.model_validate_json(details)
    except ValidationError as e:
        raise BadRequestError(str(e)) from e


async def fetch_environment(
    storage: Storage, request: ImageProcessingRequest, portrait: bool
) -> Optional[EnvironmentSource]:
    """Download the environment image matching the source orientation.

    Nothing is downloaded when no configuration composites into it.
    """
    if not request.needs_environment_image():
        return None
    descriptor = request.environment_image_for(portrait)
    if descriptor is None:
        return None

    try:
        data = await storage.download_object(descriptor.path)
    except StorageError as e:
        LOGGER.warning("environment image %s unavailable: %s", descriptor.path, e)
        raise NotFoundError() from e

    return EnvironmentSource(
        data=data,
        opts=EnvironmentOptions(
            width=descriptor.width,
            height=descriptor.height,
            x=descriptor.x,
            y=descriptor.y,
            margin_percent=descriptor.margin_percent,
        ),
    )


async def process_image(
    pool: ComputePool,
    storage: Storage,
    image: Optional[bytes],
    details: Optional[str | bytes],
) -> List[ProcessedImage]:
    """Run a batch request and return one record per uploaded output.

    Raises:
        BadRequestError: Missing fields, invalid details, unreadable or
            undersized source.
        NotFoundError: The environment image cannot be downloaded.
        InternalServerError: A transform or an upload failed.
    """
    if not image or not details:
        raise BadRequestError("missing image or details")
    request = parse_request(details)

    try:
        info = await pool.run(image_ops.probe, image)
    except ImageOperationError as e:
        raise BadRequestError(str(e)) from e

    if request.min_size is not None and info.width < request.min_size and info.height < request.min_size:
        raise BadRequestError("image too small")

    environment = await fetch_environment(storage, request, info.portrait)

    channel, completion = pool.stream(
        process_configurations,
        image,
        request,
        environment,
        maxsize=max(1, len(request.configurations)),
    )

    processed_images: List[ProcessedImage] = []
    try:
        async for img in channel:
            try:
                result = await storage.upload_object(img.data, img.path, img.mime, img.image_type)
            except StorageError as e:
                LOGGER.error("failed to upload image %s: %s", img.path, e)
                raise InternalServerError(str(e)) from e

            processed_images.append(
                ProcessedImage(
                    id=img.id,
                    alternative_to=img.alternative_to,
                    path=img.path,
                    url=result.url,
                    mime=img.mime,
                    hash=result.etag,
                    size=result.size,
                )
            )
    finally:
        # Releases a worker blocked on a full channel if we stopped early.
        channel.close()

    try:
        await completion
    except PipelineError as e:
        LOGGER.error("failed to process image %s: %s", request.id, e)
        raise InternalServerError(str(e)) from e
    except Exception as e:
        LOGGER.exception("image worker for %s crashed", request.id)
        raise InternalServerError(str(e)) from e

    return processed_images


async def scale(pool: ComputePool, storage: Storage, options: str, key: str) -> bytes:
    """Transform the object under ``key`` with an option string.

    Raises:
        NotFoundError: The source object does not exist.
        InternalServerError: No valid options, or the pipeline failed.
    """
    try:
        data = await storage.download_object(key)
    except ObjectNotFoundError as e:
        raise NotFoundError() from e
    except StorageError as e:
        LOGGER.error("failed to download %s: %s", key, e)
        raise NotFoundError() from e

    try:
        return await pool.run(scale_image, data, options)
    except (NoValidOptionsError, PipelineError) as e:
        LOGGER.error("failed to transform image %s: %s", key, e)
        raise InternalServerError(str(e)) from e
    except Exception as e:
        LOGGER.exception("scale worker for %s crashed", key)
        raise InternalServerError(str(e)) from e
