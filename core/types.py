from __future__ import annotations

import copy
from dataclasses import asdict, dataclass
from typing import Any, Dict


FALLBACK_APP_DATA: Dict[str, Any] = {
    "app": {"name": "Sample DevOps App", "version": "1.0.0"},
    "items": [],
    "stats": {},
}


def fallback_app_data() -> Dict[str, Any]:
    """Return a private copy of the fallback document."""

    return copy.deepcopy(FALLBACK_APP_DATA)


@dataclass(frozen=True)
class ContactSubmission:
    """A validated contact-form payload."""

    name: str
    email: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class ContactLogEntry:
    """One line of the append-only contact log."""

    timestamp: str
    client_ip: str
    user_agent: str
    payload: ContactSubmission
    type: str = "contact"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "timestamp": self.timestamp,
            "clientIp": self.client_ip,
            "userAgent": self.user_agent,
            "payload": self.payload.to_dict(),
        }
