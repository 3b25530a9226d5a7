"""Append-only audit log file.

Every entry is one ``[yyyy:mm:dd hh:mm:ss]: <message>`` record followed by a
newline. Multi-line messages (captured command output) repeat the prefix on
each line, so every line in the file carries a timestamp. Entries are
written with a single append call while holding a process-wide lock, so
overlapping requests never interleave mid-line.
"""

from __future__ import annotations

import threading
from datetime import datetime
from pathlib import Path
from typing import Callable

from relhook.utils.logging import get_logger

log = get_logger(__name__)

TIMESTAMP_FORMAT = "%Y:%m:%d %H:%M:%S"


def format_entry(message: str, when: datetime) -> str:
    """Render one audit entry, including the trailing newline."""
    prefix = f"[{when.strftime(TIMESTAMP_FORMAT)}]: "
    lines = message.rstrip().splitlines() or [""]
    return "".join(f"{prefix}{line}\n" for line in lines)


class AuditLog:
    """Flat operator trail shared by every request in the process."""

    def __init__(
        self,
        path: str | Path,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._path = Path(path)
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def write(self, message: str) -> None:
        # Timestamp is taken under the lock so file order matches time order.
        with self._lock:
            entry = format_entry(message, self._clock())
            try:
                with open(self._path, "a", encoding="utf-8") as f:
                    f.write(entry)
            except OSError:
                log.exception("audit_write_failed", path=str(self._path))
                return
        log.debug("audit_entry", message=message)

    def read_entries(self) -> list[str]:
        """Return the raw entry lines currently in the file."""
        if not self._path.exists():
            return []
        return self._path.read_text(encoding="utf-8").splitlines()
