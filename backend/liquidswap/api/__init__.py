"""API routers package."""

from liquidswap.api import offers, events, deps

__all__ = [
    "offers",
    "events",
    "deps",
]
