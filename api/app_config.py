"""
Runtime configuration for the codraw backend.

All values come from environment variables with defaults suitable for
local development:

- DRAW_WEB_API_KEY / ANTHROPIC_API_KEY: server-side Anthropic key
- CODRAW_DEFAULT_MODEL: model alias used when a request names none (haiku, sonnet, opus)
- CODRAW_MAX_TOKENS, CODRAW_TEMPERATURE: default LLM sampling parameters
- CODRAW_SIMPLIFY_EPSILON: default stroke simplification tolerance in pixels
- CODRAW_DATA_DIR: where persistent state (view counter) lives.
  Defaults to the platform user data directory.
- CODRAW_PORT, CODRAW_LOG_LEVEL: server settings
"""

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import platformdirs

APP_NAME = "codraw"
APP_AUTHOR = "codraw"


def _float(key: str, default: float) -> float:
    return float(os.environ.get(key, str(default)))


def _int(key: str, default: int) -> int:
    return int(os.environ.get(key, str(default)))


@dataclass
class AppConfig:
    """Settings resolved once from the environment."""
    api_key: Optional[str]
    default_model: str
    max_tokens: int
    temperature: float
    simplify_epsilon: float
    data_dir: Path
    port: int
    log_level: str

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["data_dir"] = str(self.data_dir)
        # never echo the key itself
        data["api_key"] = bool(self.api_key)
        return data

    @classmethod
    def from_env(cls) -> "AppConfig":
        data_dir = os.environ.get("CODRAW_DATA_DIR")
        return cls(
            api_key=os.environ.get("DRAW_WEB_API_KEY") or os.environ.get("ANTHROPIC_API_KEY"),
            default_model=os.environ.get("CODRAW_DEFAULT_MODEL", "sonnet"),
            max_tokens=_int("CODRAW_MAX_TOKENS", 768),
            temperature=_float("CODRAW_TEMPERATURE", 0.8),
            simplify_epsilon=_float("CODRAW_SIMPLIFY_EPSILON", 2.0),
            data_dir=Path(data_dir) if data_dir else Path(platformdirs.user_data_dir(APP_NAME, APP_AUTHOR)),
            port=_int("CODRAW_PORT", 8000),
            log_level=os.environ.get("CODRAW_LOG_LEVEL", "INFO"),
        )


_app_config: Optional[AppConfig] = None


def get_app_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _app_config
    if _app_config is None:
        _app_config = AppConfig.from_env()
    return _app_config


def reset_app_config() -> None:
    """Forget the cached configuration so the next access re-reads the environment."""
    global _app_config
    _app_config = None
