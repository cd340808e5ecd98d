"""In-memory mock REST data backend."""

__version__ = "1.0.0"
