"""Structured field extraction from images with a multimodal model."""

__version__ = "0.1.0"
