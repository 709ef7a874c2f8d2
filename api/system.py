"""
System API routes for the codraw backend.

Health check and a diagnostics endpoint showing the resolved configuration,
the model aliases draw turns can use and installed library versions.
"""

import platform
import sys
from importlib import metadata
from typing import Any, Dict

from fastapi import APIRouter

from .app_config import get_app_config
from .shared.llm import MODEL_MAP, resolve_model

router = APIRouter()

# Distribution names as published on the package index
_DISTRIBUTIONS = ("anthropic", "fastapi", "numpy", "orjson", "platformdirs", "pydantic", "uvicorn")


def _distribution_versions() -> Dict[str, str]:
    versions = {}
    for name in _DISTRIBUTIONS:
        try:
            versions[name] = metadata.version(name)
        except metadata.PackageNotFoundError:
            versions[name] = "not installed"
    return versions


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "message": "codraw backend is running",
        "llm_configured": bool(get_app_config().api_key),
    }


@router.get("/system/info")
async def system_info() -> Dict[str, Any]:
    """Runtime, configuration and model information for debugging deployments."""
    config = get_app_config()
    return {
        "python": {
            "version": sys.version,
            "implementation": platform.python_implementation(),
        },
        "os": f"{platform.system()} {platform.release()} ({platform.machine()})",
        "config": config.to_dict(),
        "models": {
            "aliases": MODEL_MAP,
            "default": resolve_model(None),
        },
        "packages": _distribution_versions(),
    }
