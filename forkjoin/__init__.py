"""Heartbeat-driven fork-join parallelism on a pool of threads."""

__version__ = "0.2.1"
__all__ = ["context", "job", "pool"]