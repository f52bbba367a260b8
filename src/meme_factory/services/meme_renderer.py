"""Caption overlay rendering and collage assembly."""

import logging
from typing import Optional, Sequence

from PIL import Image, ImageDraw

from ..exceptions import InvalidCollageInputError, InvalidImageError, RenderFailedError
from ..models.meme import ImageBuffer, RenderOptions, TextLayout, WatermarkOptions
from ..utils.image import encode_png, fit_inside, load_font, open_image, scale_to_width
from ..utils.logging import log_performance
from ..utils.text import layout_text

logger = logging.getLogger(__name__)

MAX_IMAGE_DIMENSION = 1600
VERTICAL_PADDING_RATIO = 0.05

TEXT_FILL = (255, 255, 255, 255)
OUTLINE_FILL = (0, 0, 0, 255)
OUTLINE_WIDTH = 4

WATERMARK_FONT_DIVISOR = 40
WATERMARK_PADDING_RATIO = 0.02
WATERMARK_ALPHA = 77  # ~30% opacity
WATERMARK_OUTLINE_WIDTH = 1

COLLAGE_SIZE = 3
COLLAGE_TARGET_WIDTH = 600
COLLAGE_GAP = 20
COLLAGE_BACKGROUND = (255, 255, 255, 255)


def caption_baselines(layout: TextLayout, image_height: int, position: str) -> list[float]:
    """
    Baseline y coordinate for each laid-out line.

    Args:
        layout: Text layout for the caption
        image_height: Height of the image the caption is drawn on
        position: ``"top"`` or ``"bottom"``

    Returns:
        One baseline per line, top to bottom
    """
    padding = image_height * VERTICAL_PADDING_RATIO
    line_height = layout.line_height
    if position == "top":
        first = padding + layout.font_size
    elif position == "bottom":
        first = image_height - padding - (len(layout.lines) - 1) * line_height
    else:
        raise ValueError(f"Invalid position {position!r}. Must be 'top' or 'bottom'")
    return [first + index * line_height for index in range(len(layout.lines))]


def create_caption_layer(
    size: tuple[int, int],
    layout: TextLayout,
    position: str,
    font_path: Optional[str] = None,
) -> Image.Image:
    """Draw uppercased, outlined caption lines on a transparent layer."""
    width, height = size
    layer = Image.new("RGBA", size, (0, 0, 0, 0))
    if not layout.lines:
        return layer

    draw = ImageDraw.Draw(layer)
    font = load_font(layout.font_size, font_path)
    # Pillow paints the stroke before the fill, so the outline never covers glyphs.
    for line, baseline in zip(layout.lines, caption_baselines(layout, height, position)):
        draw.text(
            (width / 2, baseline),
            line.upper(),
            font=font,
            fill=TEXT_FILL,
            anchor="ms",
            stroke_width=OUTLINE_WIDTH,
            stroke_fill=OUTLINE_FILL,
        )
    return layer


def create_watermark_layer(
    size: tuple[int, int],
    watermark: WatermarkOptions,
    font_path: Optional[str] = None,
) -> Image.Image:
    """Draw small translucent text anchored to the bottom-right corner."""
    width, height = size
    layer = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    font = load_font(max(1, width // WATERMARK_FONT_DIVISOR), font_path)
    padding = width * WATERMARK_PADDING_RATIO
    draw.text(
        (width - padding, height - padding),
        watermark.text,
        font=font,
        fill=(255, 255, 255, WATERMARK_ALPHA),
        anchor="rs",
        stroke_width=WATERMARK_OUTLINE_WIDTH,
        stroke_fill=(0, 0, 0, WATERMARK_ALPHA),
    )
    return layer


def render_meme(
    image_data: bytes,
    caption: str,
    options: RenderOptions,
    font_path: Optional[str] = None,
) -> ImageBuffer:
    """
    Burn a caption (and optionally a watermark) onto a copy of an image.

    The base image is downscaled to fit within 1600x1600 if needed, the
    caption is laid out for the resulting width and composited as an overlay,
    followed by the watermark layer when one is enabled.

    Args:
        image_data: Encoded source image
        caption: Caption text
        options: Placement and watermark options
        font_path: Optional font file override

    Returns:
        PNG-encoded meme

    Raises:
        InvalidImageError: If the image dimensions cannot be read
        RenderFailedError: If decoding, drawing or compositing fails
    """
    try:
        base = open_image(image_data)
    except ValueError as e:
        raise InvalidImageError(str(e), original_error=e) from e

    try:
        base = fit_inside(base, MAX_IMAGE_DIMENSION).convert("RGBA")
        layout = layout_text(caption, base.width)
        logger.debug(
            f"Caption layout: font_size={layout.font_size} lines={len(layout.lines)} "
            f"size={base.size}"
        )

        layers = [create_caption_layer(base.size, layout, options.position, font_path)]
        if options.watermark is not None and options.watermark.active:
            layers.append(create_watermark_layer(base.size, options.watermark, font_path))

        for layer in layers:
            base = Image.alpha_composite(base, layer)

        return encode_png(base)
    except RenderFailedError:
        raise
    except Exception as e:
        logger.error(f"Meme rendering error: {e}", exc_info=True)
        raise RenderFailedError(original_error=e) from e


@log_performance
def create_collage(images: Sequence[ImageBuffer]) -> ImageBuffer:
    """
    Lay out exactly three memes side by side on a white canvas.

    Every image is scaled to a width of 600 keeping its own aspect ratio, and
    images are separated by a 20 pixel gap and centred vertically. Input order
    is preserved left to right.

    Args:
        images: Exactly three rendered memes

    Returns:
        PNG-encoded collage, 1840 pixels wide

    Raises:
        InvalidCollageInputError: If not given exactly three images
        RenderFailedError: If any image fails to decode or compose
    """
    if len(images) != COLLAGE_SIZE:
        raise InvalidCollageInputError(len(images))

    try:
        resized = [
            scale_to_width(open_image(buffer.data), COLLAGE_TARGET_WIDTH).convert("RGBA")
            for buffer in images
        ]
        canvas_width = COLLAGE_SIZE * COLLAGE_TARGET_WIDTH + (COLLAGE_SIZE - 1) * COLLAGE_GAP
        canvas_height = max(image.height for image in resized)
        canvas = Image.new("RGBA", (canvas_width, canvas_height), COLLAGE_BACKGROUND)

        for index, image in enumerate(resized):
            left = index * (COLLAGE_TARGET_WIDTH + COLLAGE_GAP)
            top = (canvas_height - image.height) // 2
            canvas.alpha_composite(image, dest=(left, top))

        return encode_png(canvas)
    except Exception as e:
        logger.error(f"Collage creation error: {e}", exc_info=True)
        raise RenderFailedError("Failed to create collage", original_error=e) from e
