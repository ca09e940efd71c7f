from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from .types import ContactLogEntry


logger = logging.getLogger(__name__)


class ContactLog:
    """Append-only, newline-delimited JSON log of contact submissions."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def append(self, entry: ContactLogEntry) -> bool:
        """Append ``entry`` as one line.

        Writing is best-effort: failures are logged and reported through the
        return value, never raised.  Each line goes out in a single
        ``os.write`` on an ``O_APPEND`` descriptor so concurrent writers
        cannot interleave partial lines.
        """

        try:
            line = (json.dumps(entry.to_dict(), ensure_ascii=False) + "\n").encode("utf-8")
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
            try:
                written = os.write(fd, line)
            finally:
                os.close(fd)
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Failed to write contact log: %s", exc, extra={"path": str(self.path)})
            return False

        if written != len(line):
            logger.error(
                "Short write to contact log %s (%d of %d bytes)", self.path, written, len(line)
            )
            return False
        return True
