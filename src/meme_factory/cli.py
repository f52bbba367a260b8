"""Command-line interface for Meme Factory."""

from pathlib import Path
from typing import List, Optional

import typer

from .config.config import get_settings
from .exceptions import RenderFailedError
from .models.meme import RenderOptions, WatermarkOptions
from .services.meme_renderer import create_collage, render_meme
from .utils.logging import setup_logging

app = typer.Typer(help="Meme Factory CLI")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run("meme_factory.api.main:app", host=host, port=port, reload=reload)


@app.command()
def render(
    image: Path = typer.Option(..., "--image", "-i", exists=True, dir_okay=False, help="Source image"),
    caption: List[str] = typer.Option(..., "--caption", "-c", help="Caption; pass three times for a collage"),
    position: str = typer.Option("top", "--position", help="top or bottom"),
    watermark: Optional[str] = typer.Option(None, "--watermark", "-w", help="Watermark text"),
    output: Path = typer.Option(Path("./meme.png"), "--output", "-o", help="Output PNG path"),
) -> None:
    """
    Render captions onto a local image without calling any external service.

    With one caption the meme itself is written; with three captions the
    collage of all three is written.
    """
    settings = get_settings()
    setup_logging(level=settings.log_level, json_format=False)

    if position not in ("top", "bottom"):
        raise typer.BadParameter("position must be 'top' or 'bottom'")
    if len(caption) not in (1, 3):
        raise typer.BadParameter("pass --caption once, or three times for a collage")

    options = RenderOptions(
        position=position,
        watermark=WatermarkOptions(text=watermark) if watermark else None,
    )
    data = image.read_bytes()
    try:
        memes = [render_meme(data, text, options, settings.font_path) for text in caption]
        result = memes[0] if len(memes) == 1 else create_collage(memes)
    except RenderFailedError as e:
        typer.echo(f"Rendering failed: {e.message}", err=True)
        raise typer.Exit(code=1)

    output.write_bytes(result.data)
    typer.echo(f"Wrote {result.width}x{result.height} image to {output}")


if __name__ == "__main__":
    app()
