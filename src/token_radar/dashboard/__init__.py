"""Dashboard package exports."""

from .app import create_dashboard_app
from .state import DashboardState

__all__ = ["create_dashboard_app", "DashboardState"]
