"""Host environment ports."""

from .base import BrowserPlatform, TabInfo

__all__ = ["BrowserPlatform", "TabInfo"]
