"""Real-estate listing backend with a Redis caching layer."""

__version__ = "1.0.0"
