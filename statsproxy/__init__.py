"""Edge proxy for the sports-stats API."""

__version__ = "1.0.0"
