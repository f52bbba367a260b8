"""Meme Factory: topic-driven meme captioning, rendering and collage service."""

__version__ = "0.1.0"
