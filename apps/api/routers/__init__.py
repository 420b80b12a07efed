"""Routers package."""

from . import (
    health,
    graph,
    analytics,
)
