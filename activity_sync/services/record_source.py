"""Record source backed by a directory of exported workout JSON files."""
import asyncio
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Tuple

from ..errors import PermissionDeniedError
from ..models import ActivityRecord
from ..protocols import IRecordSource

logger = logging.getLogger(__name__)

_RESERVED_KEYS = {"id", "start_time", "end_time", "activity_type"}


def _parse_time(value: str) -> datetime:
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be a string, got {value!r}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_record(data: Dict[str, Any], fallback_id: str) -> ActivityRecord:
    """Build an ActivityRecord from one exported workout dict."""
    if not isinstance(data, dict):
        raise ValueError(f"workout {fallback_id} is not a JSON object")
    if "start_time" not in data:
        raise ValueError(f"workout {fallback_id} has no start_time")
    return ActivityRecord(
        record_id=str(data.get("id") or fallback_id),
        start_time=_parse_time(data["start_time"]),
        end_time=_parse_time(data["end_time"]) if data.get("end_time") else None,
        activity_type=data.get("activity_type", "running"),
        payload={k: v for k, v in data.items() if k not in _RESERVED_KEYS},
    )


class JsonRecordSource(IRecordSource):
    """
    Reads ``*.json`` workouts from a folder.

    Sample series (heart rate, pace) may live beside a workout as
    ``<stem>.heart_rate.json`` and ``<stem>.pace.json``; ``prepare`` loads
    them concurrently.
    """

    SAMPLE_KINDS = ("heart_rate", "pace")

    def __init__(self, folder: Path):
        self._folder = Path(folder)
        self._paths: Dict[str, Path] = {}

    async def request_authorization(self) -> None:
        if not self._folder.is_dir():
            raise PermissionDeniedError(f"records folder not found: {self._folder}")
        if not os.access(self._folder, os.R_OK):
            raise PermissionDeniedError(f"records folder is not readable: {self._folder}")

    async def list_records(self, start: datetime, end: datetime) -> List[ActivityRecord]:
        found = await asyncio.to_thread(self._scan, start, end)
        records = []
        for record, path in found:
            self._paths[record.record_id] = path
            records.append(record)
        records.sort(key=lambda r: r.start_time)
        logger.info(f"Found {len(records)} workouts between {start:%Y-%m-%d} and {end:%Y-%m-%d}")
        return records

    async def prepare(self, record: ActivityRecord) -> Dict[str, Any]:
        payload = dict(record.payload)
        path = self._paths.get(record.record_id)
        if path is None:
            return payload

        kinds = [k for k in self.SAMPLE_KINDS if k not in payload]
        samples = await asyncio.gather(
            *(asyncio.to_thread(self._read_samples, path, kind) for kind in kinds)
        )
        for kind, values in zip(kinds, samples):
            if values is not None:
                payload[kind] = values
        return payload

    def _scan(self, start: datetime, end: datetime) -> List[Tuple[ActivityRecord, Path]]:
        found = []
        for path in sorted(self._folder.glob("*.json")):
            if self._is_sample_file(path):
                continue
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                record = parse_record(data, path.stem)
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping unreadable workout {path.name}: {e}")
                continue
            if start <= record.start_time <= end:
                found.append((record, path))
        return found

    def _is_sample_file(self, path: Path) -> bool:
        return any(path.name.endswith(f".{kind}.json") for kind in self.SAMPLE_KINDS)

    @staticmethod
    def _read_samples(path: Path, kind: str):
        sample_path = path.with_name(f"{path.stem}.{kind}.json")
        if not sample_path.exists():
            return None
        return json.loads(sample_path.read_text(encoding="utf-8"))
