"""Tests for the command-line interface."""

from pathlib import Path
from typing import Callable

from PIL import Image
from typer.testing import CliRunner

from meme_factory.cli import app

runner = CliRunner()


def test_render_single_meme(tmp_path: Path, image_factory: Callable[..., bytes]) -> None:
    source = tmp_path / "source.png"
    source.write_bytes(image_factory(640, 480))
    output = tmp_path / "meme.png"

    result = runner.invoke(
        app,
        ["render", "-i", str(source), "-c", "Monday mornings", "--watermark", "test", "-o", str(output)],
    )

    assert result.exit_code == 0, result.output
    with Image.open(output) as image:
        assert image.size == (640, 480)


def test_render_collage(tmp_path: Path, image_factory: Callable[..., bytes]) -> None:
    source = tmp_path / "source.png"
    source.write_bytes(image_factory(300, 300))
    output = tmp_path / "collage.png"

    result = runner.invoke(
        app,
        ["render", "-i", str(source), "-c", "one", "-c", "two", "-c", "three", "-o", str(output)],
    )

    assert result.exit_code == 0, result.output
    with Image.open(output) as image:
        assert image.size == (1840, 600)


def test_render_rejects_two_captions(tmp_path: Path, image_factory: Callable[..., bytes]) -> None:
    source = tmp_path / "source.png"
    source.write_bytes(image_factory(100, 100))

    result = runner.invoke(app, ["render", "-i", str(source), "-c", "one", "-c", "two"])

    assert result.exit_code != 0


def test_render_reports_unreadable_image(tmp_path: Path) -> None:
    source = tmp_path / "broken.png"
    source.write_bytes(b"not an image")

    result = runner.invoke(
        app, ["render", "-i", str(source), "-c", "hi", "-o", str(tmp_path / "out.png")]
    )

    assert result.exit_code == 1
    assert not (tmp_path / "out.png").exists()
