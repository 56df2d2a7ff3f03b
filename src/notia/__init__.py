"""Notia: personal notes with a synchronized vector index and retrieval-augmented chat."""

__version__ = "0.1.0"
