"""
Root conftest.py for codraw backend tests.

This file contains shared fixtures and pytest configuration
that applies to all test modules.
"""

import sys
from pathlib import Path

import pytest

# Ensure the backend root is in the path
backend_root = Path(__file__).parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))


# ============================================================================
# Pytest Hooks
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "streaming: mark test as consuming an SSE stream",
    )


def pytest_collection_modifyitems(config, items):
    """Mark tests with 'stream' in their name as streaming tests."""
    for item in items:
        if "stream" in item.name.lower():
            item.add_marker(pytest.mark.streaming)


# ============================================================================
# Shared Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point persistent state at a temp dir and reload configuration."""
    from api.app_config import reset_app_config
    from api.shared.llm import reset_client
    from api.view_store import reset_view_store

    monkeypatch.setenv("CODRAW_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("DRAW_WEB_API_KEY", "test-key")
    reset_app_config()
    reset_client()
    reset_view_store()
    yield
    reset_app_config()
    reset_client()
    reset_view_store()


@pytest.fixture
def wavy_stroke():
    """A horizontal stroke with small jitter and one sharp spike."""
    return [
        (0.0, 0.0), (1.0, 0.1), (2.0, -0.1), (3.0, 0.0),
        (4.0, 0.2), (5.0, 8.0), (6.0, 0.1), (7.0, -0.2),
        (8.0, 0.0), (9.0, 0.1), (10.0, 0.0),
    ]
