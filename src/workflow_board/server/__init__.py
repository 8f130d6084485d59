"""HTTP API for browser front ends."""

from .api import create_app

__all__ = ["create_app"]
