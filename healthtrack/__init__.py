"""healthtrack: credential encryption and Redis result caching for a health-tracking backend."""

__version__ = "1.0.0"
