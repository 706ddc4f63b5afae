"""Declared-dimension checks for images.

An image header is a promise about how much memory decoding will take:
``width * height * bands`` bytes.  A 50-byte PNG can promise 4 GiB.
``inspect_image`` opens the file with Pillow (which parses only the
header until ``load()`` is called), checks the promise, and closes it
again; ``open_image`` decodes only after the check passed.

The pixel product is computed with ``checked_mul`` in ``SIZE_T`` so that
a crafted header cannot wrap the product into a small number.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import IO

from PIL import Image, UnidentifiedImageError

from resguard.core.errors import DimensionLimitError, InvalidArgumentError, OverflowLimitError
from resguard.core.limits import SIZE_T, checked_mul
from resguard.core.logging import get_logger
from resguard.core.settings import get_settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class ImageInfo:
    format: str | None
    width: int
    height: int
    mode: str
    bands: int

    @property
    def pixels(self) -> int:
        return self.width * self.height

    @property
    def decoded_bytes(self) -> int:
        return self.pixels * self.bands


def check_dimensions(
    width: int,
    height: int,
    *,
    channels: int = 1,
    max_pixels: int | None = None,
    max_dimension: int | None = None,
) -> int:
    """Validate declared dimensions; return the decoded size in bytes.

    Raises:
        InvalidArgumentError: non-positive dimensions
        DimensionLimitError: a side, the pixel count, or the byte size is too large
    """
    settings = get_settings()
    max_pixels = max_pixels if max_pixels is not None else settings.max_image_pixels
    max_dimension = max_dimension if max_dimension is not None else settings.max_image_dimension

    if width <= 0 or height <= 0 or channels <= 0:
        raise InvalidArgumentError(f"Invalid dimensions {width}x{height}x{channels}", operation="check_dimensions")

    for side, value in (("width", width), ("height", height)):
        if value > max_dimension:
            logger.warning("image_rejected", reason=side, observed=value, limit=max_dimension)
            raise DimensionLimitError(
                f"Image {side} {value} exceeds {max_dimension}",
                operation="check_dimensions",
                limit=max_dimension,
                observed=value,
            )

    try:
        pixels = checked_mul(width, height, SIZE_T)
        decoded = checked_mul(pixels, channels, SIZE_T)
    except OverflowLimitError as exc:
        raise DimensionLimitError(
            f"Image size {width}x{height}x{channels} overflows {SIZE_T.name}",
            operation="check_dimensions",
            cause=exc,
        ) from exc

    if pixels > max_pixels:
        logger.warning("image_rejected", reason="pixels", observed=pixels, limit=max_pixels)
        raise DimensionLimitError(
            f"Image has {pixels} pixels, limit is {max_pixels}",
            operation="check_dimensions",
            limit=max_pixels,
            observed=pixels,
        )
    return decoded


def inspect_image(
    source: str | Path | IO[bytes],
    *,
    max_pixels: int | None = None,
    max_dimension: int | None = None,
) -> ImageInfo:
    """Read an image header and validate its declared dimensions."""
    try:
        with Image.open(source) as img:
            info = ImageInfo(
                format=img.format,
                width=img.width,
                height=img.height,
                mode=img.mode,
                bands=len(img.getbands()),
            )
    except Image.DecompressionBombError as exc:
        raise DimensionLimitError(str(exc), operation="inspect_image", cause=exc) from exc
    except UnidentifiedImageError as exc:
        raise InvalidArgumentError(f"Unrecognized image: {exc}", operation="inspect_image", cause=exc) from exc

    check_dimensions(
        info.width,
        info.height,
        channels=info.bands,
        max_pixels=max_pixels,
        max_dimension=max_dimension,
    )
    return info


def open_image(
    source: str | Path | IO[bytes],
    *,
    max_pixels: int | None = None,
    max_dimension: int | None = None,
) -> Image.Image:
    """Decode an image after its header passed :func:`inspect_image`.

    The returned image owns its pixel data; the source file is closed.
    """
    inspect_image(source, max_pixels=max_pixels, max_dimension=max_dimension)
    if hasattr(source, "seek"):
        source.seek(0)
    with Image.open(source) as img:
        img.load()
        return img.copy()


__all__ = ["ImageInfo", "check_dimensions", "inspect_image", "open_image"]
