from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from .types import ContactLogEntry, ContactSubmission


_EMAIL_PATTERN = re.compile(r".+@.+\..+")


class InvalidSubmission(ValueError):
    """Raised when a contact payload fails validation."""


def _non_empty(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def validate_submission(data: Optional[Mapping[str, Any]]) -> ContactSubmission:
    """Validate a raw request body into a :class:`ContactSubmission`.

    All three fields must be non-blank strings and the email has to look like
    ``something@domain.tld``.  Values are stored trimmed.
    """

    if not isinstance(data, Mapping):
        raise InvalidSubmission("body must be an object")

    name = _non_empty(data.get("name"))
    email = _non_empty(data.get("email"))
    message = _non_empty(data.get("message"))

    if name is None:
        raise InvalidSubmission("name is required")
    if email is None or not _EMAIL_PATTERN.search(email):
        raise InvalidSubmission("email is invalid")
    if message is None:
        raise InvalidSubmission("message is required")

    return ContactSubmission(name=name, email=email, message=message)


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""

    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def build_log_entry(
    submission: ContactSubmission,
    *,
    client_ip: Optional[str],
    user_agent: Optional[str],
    moment: Optional[datetime] = None,
) -> ContactLogEntry:
    return ContactLogEntry(
        timestamp=utc_timestamp(moment),
        client_ip=client_ip or "unknown",
        user_agent=user_agent or "unknown",
        payload=submission,
    )
