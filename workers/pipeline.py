"""Pipeline executor run on the compute pool.

``process_configurations`` is the worker body of the batch endpoint: it
walks the configurations of a request, builds and runs the modifier chain
for each one against an independent decode of the shared source bytes,
and sends every encoded output to the delivery channel. ``scale_image``
is the single-URI variant that returns one JPEG.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from PIL import Image  # type: ignore[import]

import modifiers
from imaging import image_ops
from imaging.errors import ImageOperationError, NoValidOptionsError, PipelineError
from imaging.models import (
    ImageConfiguration,
    ImageProcessingRequest,
    ImageType,
    UploadImage,
    alternative_possible,
    loader_to_mime_ext,
)
from modifiers.grammar import parse_options

from .compute_pool import DeliveryChannel

LOGGER = logging.getLogger(__name__)

SCALE_QUALITY = 80


@dataclass(frozen=True)
class EnvironmentSource:
    """Downloaded environment image plus its placement."""

    data: bytes = field(repr=False)
    opts: modifiers.EnvironmentOptions


def build_modifiers(
    configuration: ImageConfiguration, environment: Optional[EnvironmentSource] = None
) -> List[modifiers.Modifier]:
    conditions = configuration.conditions
    chain: List[modifiers.Modifier] = []

    if conditions.black_and_white:
        chain.append(modifiers.BlackAndWhite())

    if conditions.trim:
        chain.append(modifiers.Trim())

    # A trimmed subject is letterboxed, never cropped.
    chain.append(
        modifiers.Scale(
            aspect=configuration.aspect,
            margin_percent=configuration.margin_percent,
            size=configuration.size,
            crop=not conditions.trim,
        )
    )

    if conditions.use_environment_image and environment is not None:
        chain.append(modifiers.Environment(environment.data, environment.opts))

    return chain


def run_modifiers(img: Image.Image, chain: Sequence[modifiers.Modifier]) -> Image.Image:
    for modifier in chain:
        result = modifiers.apply(modifier, img)
        if result is not None:
            img = result
    return img


def encode_configuration(configuration: ImageConfiguration, img: Image.Image) -> UploadImage:
    """Encode the primary output: PNG when transparent, JPEG otherwise."""
    if configuration.conditions.transparent:
        data = image_ops.encode_png(img)
        path, mime = f"{configuration.path}.png", "image/png"
    else:
        data = image_ops.encode_jpeg(img, configuration.quality)
        path, mime = f"{configuration.path}.jpg", "image/jpeg"
    return UploadImage(id=configuration.id, path=path, mime=mime, data=data)


def encode_alternative(configuration: ImageConfiguration, img: Image.Image) -> UploadImage:
    return UploadImage(
        id=str(uuid.uuid4()),
        path=f"{configuration.path}.webp",
        mime="image/webp",
        data=image_ops.encode_webp(img, configuration.quality),
        alternative_to=configuration.id,
    )


def process_configuration(
    channel: DeliveryChannel,
    data: bytes,
    configuration: ImageConfiguration,
    environment: Optional[EnvironmentSource] = None,
) -> None:
    """Produce the outputs of one configuration and send them in order."""
    loader = image_ops.detect_loader(data)

    if configuration.conditions.allow_vector and loader == "SVG":
        channel.send(
            UploadImage(
                id=configuration.id,
                path=f"{configuration.path}.svg",
                mime="image/svg+xml",
                data=data,
            )
        )
        return

    img = image_ops.decode(data)
    img = run_modifiers(img, build_modifiers(configuration, environment))

    channel.send(encode_configuration(configuration, img))

    if alternative_possible(loader):
        channel.send(encode_alternative(configuration, img))


def process_configurations(
    channel: DeliveryChannel,
    data: bytes,
    request: ImageProcessingRequest,
    environment: Optional[EnvironmentSource] = None,
) -> None:
    """Worker body for a batch request.

    Configurations are processed in request order. When the request asks
    for it, the untouched source is sent last under the request path with
    the extension and MIME type of its loader.

    Raises:
        PipelineError: On the first failure; nothing after it is produced.
    """
    for configuration in request.configurations:
        LOGGER.debug("processing configuration %s", configuration.id)
        try:
            process_configuration(channel, data, configuration, environment)
        except ImageOperationError as e:
            raise PipelineError(f"configuration {configuration.id}: {e}") from e

    if not request.save_original:
        return

    try:
        loader = image_ops.detect_loader(data)
    except ImageOperationError as e:
        raise PipelineError(f"original: {e}") from e
    mime, ext = loader_to_mime_ext(loader)
    channel.send(
        UploadImage(
            id=request.id,
            path=f"{request.path}.{ext}",
            mime=mime,
            data=data,
            image_type=ImageType.ORIGINAL,
        )
    )


def scale_image(data: bytes, options: str) -> bytes:
    """Apply an option string to ``data`` and return a JPEG.

    Raises:
        NoValidOptionsError: If the option string yields no modifiers.
        PipelineError: If decoding, a modifier or encoding fails.
    """
    chain = parse_options(options)
    if not chain:
        raise NoValidOptionsError(f"no valid options provided: {options!r}")

    try:
        img = run_modifiers(image_ops.decode(data), chain)
        return image_ops.encode_jpeg(img, SCALE_QUALITY)
    except ImageOperationError as e:
        raise PipelineError(str(e)) from e
