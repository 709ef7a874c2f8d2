"""
API package for the codraw FastAPI backend.

This package provides the REST API endpoints for:
- Stroke simplification and draw turns (draw.py)
- Page-view counting (views.py, view_store.py)
- System health and info (system.py)
"""

from .app_config import AppConfig, get_app_config
from .view_store import ViewStore, ViewStoreError

__all__ = [
    "AppConfig",
    "get_app_config",
    "ViewStore",
    "ViewStoreError",
]
