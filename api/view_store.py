"""
Persistent page-view counter.

The count lives in ``views.json`` inside the configured data directory.
Reads and writes go through a lock so concurrent increments are not lost
within one process, and each write replaces the file in one step.
"""

import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

from .app_config import get_app_config
from .shared.logger import get_logger

logger = get_logger(__name__)

VIEWS_FILE_NAME = "views.json"


class ViewStoreError(Exception):
    """Raised when the counter cannot be read or written."""


class ViewStore:
    """JSON-file-backed view counter."""

    def __init__(self, data_dir: Optional[Path] = None):
        self.data_dir = Path(data_dir) if data_dir else get_app_config().data_dir
        self.path = self.data_dir / VIEWS_FILE_NAME
        self._lock = threading.Lock()

    def _read(self) -> int:
        if not self.path.exists():
            return 0
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return int(data.get("page_views", 0))
        except (OSError, ValueError, TypeError, AttributeError) as e:
            raise ViewStoreError(f"Failed to read {self.path}: {e}") from e

    def _write(self, views: int) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump({"page_views": views, "last_updated": datetime.now().isoformat()}, f, indent=2)
            tmp_path.replace(self.path)
        except OSError as e:
            raise ViewStoreError(f"Failed to write {self.path}: {e}") from e

    def get(self) -> int:
        with self._lock:
            return self._read()

    def increment(self) -> int:
        """Add one view. An unreadable counter file restarts the count."""
        with self._lock:
            try:
                current = self._read()
            except ViewStoreError as e:
                logger.warning("Resetting page views: %s", e)
                current = 0
            views = current + 1
            self._write(views)
        logger.debug("Page views now %d", views)
        return views


_view_store: Optional[ViewStore] = None


def get_view_store() -> ViewStore:
    global _view_store
    if _view_store is None:
        _view_store = ViewStore()
    return _view_store


def reset_view_store() -> None:
    global _view_store
    _view_store = None
