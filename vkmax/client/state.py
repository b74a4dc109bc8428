from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class SessionState:
    """What a successful login leaves behind; reset on disconnect or close."""
    logged_in: bool = False
    profile: Dict[str, Any] = field(default_factory=dict)
    token: Optional[str] = None

    def login(self, payload: Any, token: Optional[str] = None) -> None:
        self.logged_in = True
        if isinstance(payload, dict):
            profile = payload.get("profile")
            self.profile = profile if isinstance(profile, dict) else {}
            # VERIFY_CODE hands out the long-lived token under tokenAttrs.LOGIN
            token_attrs = payload.get("tokenAttrs")
            login_attrs = token_attrs.get("LOGIN") if isinstance(token_attrs, dict) else None
            if isinstance(login_attrs, dict):
                token = token or login_attrs.get("token")
        self.token = token

    def clear(self) -> None:
        self.logged_in = False
        self.profile = {}
        self.token = None

    @property
    def phone(self) -> Optional[str]:
        contact = self.profile.get("contact") if isinstance(self.profile, dict) else None
        if isinstance(contact, dict) and contact.get("phone"):
            return str(contact["phone"])
        phone = self.profile.get("phone") if isinstance(self.profile, dict) else None
        return str(phone) if phone else None
