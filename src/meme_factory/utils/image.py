"""Image processing utilities."""

import base64
import binascii
import logging
import os
import re
from functools import lru_cache
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, ImageFont, ImageOps, UnidentifiedImageError

from ..models.meme import ImageBuffer

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,", re.IGNORECASE)

# Bold faces first; the first one found on the host wins.
SYSTEM_FONTS = (
    "Impact.ttf",
    "/usr/share/fonts/truetype/msttcorefonts/Impact.ttf",
    "/Library/Fonts/Impact.ttf",
    "C:/Windows/Fonts/impact.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf",
    "/System/Library/Fonts/Supplemental/Arial Bold.ttf",
    "C:/Windows/Fonts/arialbd.ttf",
)


def decode_base64_image(payload: str) -> bytes:
    """Decode a base64 image string, with or without a ``data:`` URL prefix.

    Args:
        payload: Base64 text from the client

    Returns:
        Raw encoded image bytes

    Raises:
        ValueError: If the payload is not valid base64 or decodes to nothing
    """
    body = DATA_URL_PREFIX.sub("", payload.strip(), count=1)
    body = "".join(body.split())
    try:
        data = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 image data: {e}") from e
    if not data:
        raise ValueError("Image data is empty")
    return data


def open_image(data: bytes) -> Image.Image:
    """Decode image bytes and apply any EXIF orientation.

    Raises:
        ValueError: If Pillow cannot decode the data or the size is not positive
    """
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise ValueError(f"Could not decode image: {e}") from e

    image = ImageOps.exif_transpose(image)
    width, height = image.size
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid image dimensions {width}x{height}")
    return image


def probe_image(data: bytes) -> Tuple[int, int]:
    """Read image dimensions without decoding pixel data.

    Raises:
        ValueError: If the header cannot be parsed
    """
    try:
        with Image.open(BytesIO(data)) as image:
            width, height = image.size
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise ValueError(f"Could not read image header: {e}") from e
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid image dimensions {width}x{height}")
    return width, height


def fit_inside_size(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    """Size that fits within a ``max_dimension`` square, preserving aspect ratio.

    Never upscales; the longer side becomes exactly ``max_dimension``.
    """
    if width <= max_dimension and height <= max_dimension:
        return width, height
    if width > height:
        return max_dimension, max(1, int(height / width * max_dimension))
    return max(1, int(width / height * max_dimension)), max_dimension


def fit_inside(image: Image.Image, max_dimension: int) -> Image.Image:
    """Downscale an image so neither side exceeds ``max_dimension``."""
    target = fit_inside_size(image.width, image.height, max_dimension)
    if target == image.size:
        return image
    logger.debug(f"Downscaling image from {image.size} to {target}")
    return image.resize(target, Image.Resampling.LANCZOS)


def scale_to_width(image: Image.Image, target_width: int) -> Image.Image:
    """Resize to ``target_width``, scaling height to keep the aspect ratio."""
    height = max(1, int(image.height / image.width * target_width))
    return image.resize((target_width, height), Image.Resampling.LANCZOS)


def encode_png(image: Image.Image) -> ImageBuffer:
    """Encode a Pillow image as PNG."""
    output = BytesIO()
    image.save(output, format="PNG", optimize=False)
    return ImageBuffer(
        data=output.getvalue(),
        width=image.width,
        height=image.height,
        mime_type="image/png",
    )


@lru_cache(maxsize=64)
def load_font(size: int, font_path: Optional[str] = None) -> ImageFont.FreeTypeFont:
    """
    Load a TrueType font at ``size`` pixels.

    Tries ``font_path``, then common bold system fonts, then Pillow's bundled
    scalable default.

    Args:
        size: Font size in pixels
        font_path: Optional path to a font file

    Returns:
        A scalable font object
    """
    candidates = ([font_path] if font_path else []) + list(SYSTEM_FONTS)
    for candidate in candidates:
        if not os.path.isabs(candidate) or os.path.exists(candidate):
            try:
                return ImageFont.truetype(candidate, size)
            except OSError:
                continue
    if font_path:
        logger.warning(f"Font {font_path} could not be loaded, using a fallback font")
    return ImageFont.load_default(size=size)
