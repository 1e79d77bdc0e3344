"""techpress: blog service with a shared Redis cache and queue-driven invalidation."""

__version__ = "0.1.0"
