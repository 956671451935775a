"""Todo list backend with per-user ownership and an admin role."""

from .api import app

__all__ = ["app"]
