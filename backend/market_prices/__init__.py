"""Market price aggregation and caching service."""

__version__ = "1.0.0"
