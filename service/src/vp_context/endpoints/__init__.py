"""Bus endpoints."""

from .background import BackgroundCoordinator
from .page import PageAffordance
from .panel import PanelEndpoint

__all__ = ["BackgroundCoordinator", "PageAffordance", "PanelEndpoint"]
