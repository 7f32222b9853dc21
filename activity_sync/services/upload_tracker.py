"""
UploadTracker - Local record of workouts already uploaded.

Each record is fingerprinted with blake3 over its identity and payload, so a
record that changed locally after its upload is sent again.
"""
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from blake3 import blake3

from ..models import ActivityRecord

logger = logging.getLogger(__name__)

# Default cache location
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "activity-sync"
DEFAULT_TRACKER_FILE = "uploaded.json"


def fingerprint(record: ActivityRecord, payload: Optional[Dict[str, Any]] = None) -> str:
    """Stable blake3 hex digest of a record and its upload payload."""
    hasher = blake3()
    hasher.update(record.record_id.encode("utf-8"))
    hasher.update(record.start_time.isoformat().encode("utf-8"))
    body = payload if payload is not None else record.payload
    hasher.update(json.dumps(body, sort_keys=True, default=str).encode("utf-8"))
    return hasher.hexdigest()


class UploadTracker:
    """
    Persistent set of uploaded record fingerprints.

    Keyed by record id; an entry only counts when its fingerprint still
    matches the record being uploaded.
    """

    def __init__(self, cache_dir: Optional[Path] = None, cache_file: str = DEFAULT_TRACKER_FILE):
        self._cache_dir = cache_dir or DEFAULT_CACHE_DIR
        self._cache_file = self._cache_dir / cache_file
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._dirty = False

    async def load(self) -> None:
        """Load tracker from disk."""
        try:
            if self._cache_file.exists():
                with open(self._cache_file, "r", encoding="utf-8") as f:
                    self._entries = json.load(f)
                logger.info("UploadTracker: Loaded %d entries from %s", len(self._entries), self._cache_file)
            else:
                logger.debug("UploadTracker: No file at %s, starting fresh", self._cache_file)
                self._entries = {}
        except json.JSONDecodeError as e:
            logger.warning("UploadTracker: Failed to parse %s: %s - starting fresh", self._cache_file, e)
            self._entries = {}

    async def save(self) -> None:
        """Save tracker to disk if dirty."""
        if not self._dirty:
            return

        self._cache_dir.mkdir(parents=True, exist_ok=True)
        with open(self._cache_file, "w", encoding="utf-8") as f:
            json.dump(self._entries, f, indent=2)

        self._dirty = False
        logger.info("UploadTracker: Saved %d entries to %s", len(self._entries), self._cache_file)

    def is_uploaded(self, record: ActivityRecord, payload: Optional[Dict[str, Any]] = None) -> bool:
        entry = self._entries.get(record.record_id)
        if entry is None:
            return False
        return entry.get("fingerprint") == fingerprint(record, payload)

    def uploaded_at(self, record: ActivityRecord) -> Optional[datetime]:
        entry = self._entries.get(record.record_id)
        if not entry or not entry.get("uploaded_at"):
            return None
        return datetime.fromisoformat(entry["uploaded_at"])

    def mark_uploaded(self, record: ActivityRecord, payload: Optional[Dict[str, Any]] = None) -> None:
        self._entries[record.record_id] = {
            "fingerprint": fingerprint(record, payload),
            "uploaded_at": datetime.now().isoformat(),
        }
        self._dirty = True

    def forget(self, record_id: str) -> None:
        if record_id in self._entries:
            del self._entries[record_id]
            self._dirty = True

    def stats(self) -> Dict[str, Any]:
        return {
            "entries": len(self._entries),
            "dirty": self._dirty,
        }
