"""
Cacher — Observability Module

Logging configuration for the caching layer.
"""

from .logging import JSONFormatter, configure_logging

__all__ = [
    "JSONFormatter",
    "configure_logging",
]
