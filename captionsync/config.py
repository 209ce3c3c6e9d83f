"""Process-wide settings read from environment variables (and an optional .env)."""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()

_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

DEFAULT_LOG_LEVEL = "DEBUG"
DEFAULT_LOG_FILE = os.path.join(_ROOT, "app.log")
DEFAULT_UPDATE_INTERVAL_MS = 16
DEFAULT_EXPORT_FPS = 30
DEFAULT_READY_TIMEOUT_MS = 5000
DEFAULT_THEME = "default"
DEFAULT_CAPTION_BOTTOM_OFFSET = 50
DEFAULT_ASSEMBLYAI_BASE_URL = "https://api.assemblyai.com/v2"
DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_MAX_POLLS = 60
DEFAULT_REQUEST_TIMEOUT = 30.0


def _env_number(name: str, default, cast=int):
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s=%r, using %r", name, raw, default)
        return default


class Config:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        self.log_level = os.environ.get("CAPTIONSYNC_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
        self.log_file = os.environ.get("CAPTIONSYNC_LOG_FILE", DEFAULT_LOG_FILE)
        self.update_interval_ms = _env_number("CAPTIONSYNC_UPDATE_INTERVAL_MS", DEFAULT_UPDATE_INTERVAL_MS)
        self.export_fps = _env_number("CAPTIONSYNC_EXPORT_FPS", DEFAULT_EXPORT_FPS)
        self.ready_timeout_ms = _env_number("CAPTIONSYNC_READY_TIMEOUT_MS", DEFAULT_READY_TIMEOUT_MS)
        self.default_theme = os.environ.get("CAPTIONSYNC_DEFAULT_THEME", DEFAULT_THEME)
        self.caption_bottom_offset = _env_number(
            "CAPTIONSYNC_CAPTION_BOTTOM_OFFSET", DEFAULT_CAPTION_BOTTOM_OFFSET
        )
        self.assemblyai_api_key = os.environ.get("ASSEMBLYAI_API_KEY")
        self.assemblyai_base_url = os.environ.get("ASSEMBLYAI_BASE_URL", DEFAULT_ASSEMBLYAI_BASE_URL)
        self.poll_interval = _env_number("ASSEMBLYAI_POLL_INTERVAL", DEFAULT_POLL_INTERVAL, float)
        self.max_polls = _env_number("ASSEMBLYAI_MAX_POLLS", DEFAULT_MAX_POLLS)
        self.request_timeout = _env_number("ASSEMBLYAI_TIMEOUT", DEFAULT_REQUEST_TIMEOUT, float)

    def get_assemblyai_api_key(self) -> Optional[str]:
        return self.assemblyai_api_key

    def as_dict(self) -> Dict[str, Any]:
        return {
            "log_level": self.log_level,
            "log_file": self.log_file,
            "update_interval_ms": self.update_interval_ms,
            "export_fps": self.export_fps,
            "ready_timeout_ms": self.ready_timeout_ms,
            "default_theme": self.default_theme,
            "caption_bottom_offset": self.caption_bottom_offset,
            "assemblyai_base_url": self.assemblyai_base_url,
            "poll_interval": self.poll_interval,
            "max_polls": self.max_polls,
            "request_timeout": self.request_timeout,
            "has_assemblyai_key": self.assemblyai_api_key is not None,
        }


config = Config()


def get_config() -> Config:
    return config
