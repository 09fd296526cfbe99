"""Configuration parsing, annotation patches and in-memory signature storage for task-run provenance."""

__version__ = "0.1.0"