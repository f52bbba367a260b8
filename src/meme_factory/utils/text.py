"""Text layout for meme captions."""

from typing import List

from ..models.meme import TextLayout

MAX_LINES = 3
WIDTH_FILL_RATIO = 0.92
CHAR_WIDTH_RATIO = 0.6
LINE_HEIGHT_RATIO = 1.1
FONT_SIZE_DIVISOR = 12
MIN_FONT_SIZE_DIVISOR = 20
FONT_SIZE_STEP = 2


def max_chars_per_line(max_width: float, font_size: int) -> int:
    """Estimate how many glyphs fit in ``max_width`` at ``font_size``."""
    return int(max_width // (font_size * CHAR_WIDTH_RATIO))


def wrap_text(text: str, max_width: float, font_size: int) -> List[str]:
    """Greedily pack whitespace-separated words into lines.

    Args:
        text: Caption text
        max_width: Usable line width in pixels
        font_size: Font size the estimate is made for

    Returns:
        All wrapped lines, uncapped. A word wider than the line sits on its own line.
    """
    limit = max_chars_per_line(max_width, font_size)
    lines: List[str] = []
    current = ""

    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= limit:
            current = candidate
        else:
            if current:
                lines.append(current)
            current = word

    if current:
        lines.append(current)

    return lines


def layout_text(text: str, image_width: int) -> TextLayout:
    """
    Fit caption text to an image width.

    Starts at ``image_width // 12`` and steps the font size down by 2 while the
    text needs more than three lines, never going below ``image_width // 20``.
    If the text still overflows at the floor, only the first three lines are kept.

    Args:
        text: Caption text
        image_width: Width of the target image in pixels

    Returns:
        TextLayout with the chosen font size and at most three lines
    """
    if image_width <= 0:
        raise ValueError(f"Image width must be positive, got {image_width}")

    max_width = image_width * WIDTH_FILL_RATIO
    font_size = max(1, image_width // FONT_SIZE_DIVISOR)
    min_font_size = max(1, image_width // MIN_FONT_SIZE_DIVISOR)

    lines = wrap_text(text, max_width, font_size)
    while len(lines) > MAX_LINES and font_size > min_font_size:
        font_size = max(min_font_size, font_size - FONT_SIZE_STEP)
        lines = wrap_text(text, max_width, font_size)

    lines = lines[:MAX_LINES]
    return TextLayout(
        font_size=font_size,
        lines=tuple(lines),
        total_height=len(lines) * font_size * LINE_HEIGHT_RATIO,
    )
