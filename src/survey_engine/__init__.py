"""Response-evaluation engine for multi-page surveys."""

__version__ = "0.1.0"
