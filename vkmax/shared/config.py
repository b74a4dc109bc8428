from __future__ import annotations
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from vkmax.shared.log import get_logger

logger = get_logger(__name__)

# ========================================
#           PROTOCOL CONSTANTS
# ========================================

WS_HOST = "wss://ws-api.oneme.ru/websocket"
RPC_VERSION = 11
APP_VERSION = "25.6.8"

USER_AGENT: Dict[str, str] = {
    "deviceType": "WEB",
    "locale": "ru_RU",
    "osVersion": "macOS",
    "deviceName": "vkmax Python",
    "headerUserAgent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/137.0.0.0 Safari/537.36",
    "deviceLocale": "ru-RU",
    "appVersion": APP_VERSION,
    "screen": "956x1470 2.0x",
    "timezone": "Asia/Vladivostok",
}

# Values of the privacy settings in UPDATE_SETTINGS
PRIVACY_ALL = "ALL"
PRIVACY_CONTACTS = "CONTACTS"

UPLOAD_ENDPOINTS: Dict[str, str] = {
    "images": "https://iu.oneme.ru/uploadImage",
    "files": "https://fu.oneme.ru/api/upload.do",
}

PHOTO_BASE_URL = "https://i.oneme.ru/i"

MIME_TYPES: Dict[str, tuple] = {
    "image": (
        "image/jpeg", "image/jpg", "image/png", "image/gif",
        "image/webp", "image/bmp", "image/tiff",
    ),
    "video": (
        "video/mp4", "video/avi", "video/mov", "video/wmv",
        "video/flv", "video/webm", "video/mkv", "video/3gp",
    ),
    "audio": (
        "audio/mp3", "audio/wav", "audio/flac", "audio/aac",
        "audio/ogg", "audio/wma", "audio/m4a",
    ),
    "document": (
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "text/plain", "text/csv",
        "application/zip", "application/rar", "application/7z",
    ),
}

MIME_BY_EXTENSION: Dict[str, str] = {
    ".jpg": "image/jpeg", ".jpeg": "image/jpeg", ".png": "image/png",
    ".gif": "image/gif", ".webp": "image/webp", ".bmp": "image/bmp",
    ".tiff": "image/tiff",
    ".mp4": "video/mp4", ".avi": "video/avi", ".mov": "video/mov",
    ".wmv": "video/wmv", ".flv": "video/flv", ".webm": "video/webm",
    ".mkv": "video/mkv", ".3gp": "video/3gp",
    ".mp3": "audio/mp3", ".wav": "audio/wav", ".flac": "audio/flac",
    ".aac": "audio/aac", ".ogg": "audio/ogg", ".wma": "audio/wma",
    ".m4a": "audio/m4a",
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".ppt": "application/vnd.ms-powerpoint",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ".txt": "text/plain", ".csv": "text/csv",
    ".zip": "application/zip", ".rar": "application/rar", ".7z": "application/7z",
}

FILE_SIZE_LIMITS: Dict[str, int] = {
    "image": 10 * 1024 * 1024,
    "video": 100 * 1024 * 1024,
    "audio": 50 * 1024 * 1024,
    "document": 4 * 1024 * 1024 * 1024,
}


# ========================================
#           CLIENT CONFIGURATION
# ========================================

@dataclass
class ClientConfig:
    """Tunables for one MaxClient. Defaults match the web client."""
    ws_url: str = WS_HOST
    request_timeout: float = 30.0
    keepalive_interval: float = 30.0
    file_ready_timeout: float = 30.0
    ping_interval: Optional[float] = 15.0
    ping_timeout: Optional[float] = 45.0
    language: str = "ru"
    chats_count: int = 40

    @classmethod
    def from_env(cls, **overrides: Any) -> "ClientConfig":
        """Build a config from VKMAX_* environment variables."""
        values: Dict[str, Any] = {}
        if os.getenv("VKMAX_WS_URL"):
            values["ws_url"] = os.environ["VKMAX_WS_URL"]
        if os.getenv("VKMAX_REQUEST_TIMEOUT"):
            values["request_timeout"] = float(os.environ["VKMAX_REQUEST_TIMEOUT"])
        if os.getenv("VKMAX_KEEPALIVE_INTERVAL"):
            values["keepalive_interval"] = float(os.environ["VKMAX_KEEPALIVE_INTERVAL"])
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Path) -> "ClientConfig":
        """Load a config from a YAML mapping; unknown keys are ignored with a warning."""
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping at the top level")

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning("Ignoring unknown config keys in %s: %s", path, sorted(unknown))
        return cls(**{k: v for k, v in data.items() if k in known})
