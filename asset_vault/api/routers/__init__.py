"""API routers."""

from . import backup

__all__ = ["backup"]
