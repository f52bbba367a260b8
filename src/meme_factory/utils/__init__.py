"""Utility helpers for images, text layout and logging."""
