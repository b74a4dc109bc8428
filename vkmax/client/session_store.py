from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from vkmax.shared.log import get_logger

logger = get_logger(__name__)


class SessionStore:
    """Auth tokens by phone number, kept in a small YAML file."""

    def __init__(self, base: Optional[Path] = None) -> None:
        self.base = base or (Path.home() / ".vkmax" / "session.yaml")
        self._data: Dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        if not self.base.exists():
            return
        try:
            data = yaml.safe_load(self.base.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            logger.warning("Ignoring unreadable session file %s: %s", self.base, e)
            data = {}
        self._data = data if isinstance(data, dict) else {}

    def save(self) -> None:
        self.base.parent.mkdir(parents=True, exist_ok=True)
        self.base.write_text(yaml.safe_dump(self._data, sort_keys=True), encoding="utf-8")

    def set_token(self, phone: str, token: str) -> None:
        tokens = self._data.setdefault("tokens", {})
        tokens[phone] = token
        self._data["default"] = phone
        self.save()

    def get_token(self, phone: Optional[str] = None) -> Optional[str]:
        phone = phone or self._data.get("default")
        if not phone:
            return None
        return (self._data.get("tokens") or {}).get(phone)

    def forget(self, phone: str) -> None:
        (self._data.get("tokens") or {}).pop(phone, None)
        if self._data.get("default") == phone:
            self._data.pop("default")
        self.save()
