"""Devlog Feed: ranking and curation engine for a real-time social feed."""

__version__ = "0.1.0"
