"""Content curation and ranking pipeline for a daily local-news digest."""

__version__ = "0.1.0"
