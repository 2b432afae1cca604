"""Sprint lifecycle and metrics engine."""

__version__ = "0.3.0"
