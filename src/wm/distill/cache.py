"""Per-session extraction cache.

Maps a session id to the fingerprint of the transcript that was last
processed and the time it was read. A session is re-processed only when its
fingerprint changes (or on force). The cache file is rewritten atomically.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path

from wm.state import atomic_write_text

logger = logging.getLogger(__name__)

STATUS_PROCESSED = "processed"
STATUS_EMPTY = "empty"
STATUS_FAILED = "failed"


@dataclass
class CacheEntry:
    """Cache record for one session."""

    fingerprint: str
    last_processed: str
    status: str = STATUS_PROCESSED
    extracted_at: str = ""
    error: str | None = None

    @property
    def last_processed_at(self) -> datetime | None:
        try:
            dt = datetime.fromisoformat(self.last_processed.replace("Z", "+00:00"))
        except ValueError:
            return None
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: datetime) -> str:
    return _utc(dt).isoformat()


class ExtractionCache:
    """JSON-backed map of session id -> CacheEntry."""

    def __init__(self, path: Path, entries: dict[str, CacheEntry] | None = None) -> None:
        self.path = path
        self._entries: dict[str, CacheEntry] = entries or {}

    @classmethod
    def load(cls, path: Path) -> ExtractionCache:
        """Load the cache; a missing or unreadable file yields an empty cache."""
        if not path.exists():
            return cls(path)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.warning("Ignoring unreadable extraction cache %s: %s", path, e)
            return cls(path)
        if not isinstance(raw, dict):
            logger.warning("Ignoring malformed extraction cache %s", path)
            return cls(path)

        entries: dict[str, CacheEntry] = {}
        for session_id, data in raw.items():
            if not isinstance(data, dict) or "fingerprint" not in data:
                logger.warning("Dropping malformed cache entry for %s", session_id)
                continue
            entries[session_id] = CacheEntry(
                fingerprint=str(data["fingerprint"]),
                last_processed=str(data.get("last_processed", "")),
                status=str(data.get("status", STATUS_PROCESSED)),
                extracted_at=str(data.get("extracted_at", "")),
                error=data.get("error"),
            )
        return cls(path, entries)

    def save(self) -> None:
        data = {sid: asdict(entry) for sid, entry in sorted(self._entries.items())}
        atomic_write_text(self.path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")

    # ── Queries ───────────────────────────────────────────────

    def get(self, session_id: str) -> CacheEntry | None:
        return self._entries.get(session_id)

    def should_process(self, session_id: str, fingerprint: str, force: bool = False) -> bool:
        if force:
            return True
        entry = self._entries.get(session_id)
        return entry is None or entry.fingerprint != fingerprint

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ── Updates ───────────────────────────────────────────────

    def record_processed(
        self,
        session_id: str,
        fingerprint: str,
        marker: datetime,
        status: str = STATUS_PROCESSED,
        error: str | None = None,
    ) -> CacheEntry:
        """Record an outcome for a session and persist the cache.

        The stored marker never moves backward: an older ``marker`` keeps the
        previous value.
        """
        previous = self._entries.get(session_id)
        last_processed = _iso(marker)
        if previous is not None:
            prev_at = previous.last_processed_at
            if prev_at is not None and prev_at > _utc(marker):
                last_processed = previous.last_processed

        entry = CacheEntry(
            fingerprint=fingerprint,
            last_processed=last_processed,
            status=status,
            extracted_at=_iso(datetime.now(timezone.utc)),
            error=error,
        )
        self._entries[session_id] = entry
        self.save()
        return entry

    def reset(self, session_id: str | None = None) -> None:
        """Forget one session, or every session when no id is given."""
        if session_id is None:
            self._entries.clear()
        else:
            self._entries.pop(session_id, None)
        self.save()
