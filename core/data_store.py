"""Read-only access to the JSON data file backing ``/api/data``."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

from .types import fallback_app_data


logger = logging.getLogger(__name__)


class DataStore:
    """Load the application document fresh on every call.

    Nothing is cached, so edits to the file show up on the next request.
    A missing, unreadable or malformed file never raises; callers get the
    complete fallback document instead.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load_app_data(self) -> Dict[str, Any]:
        try:
            raw = self.path.read_text(encoding="utf-8")
            data = json.loads(raw)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning(
                "Data file missing or invalid (%s). Returning fallback.",
                exc,
                extra={"path": str(self.path)},
            )
            return fallback_app_data()

        if not isinstance(data, dict):
            logger.warning(
                "Data file %s does not contain a JSON object. Returning fallback.",
                self.path,
            )
            return fallback_app_data()
        return data
