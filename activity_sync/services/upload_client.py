"""Per-record upload client."""
import logging
from typing import Any, Dict

from ..errors import TransportError, UploadError
from ..models import ActivityRecord
from .api_client import HTTPAPIClient

logger = logging.getLogger(__name__)


class HTTPItemUploadClient:
    """Implements IItemUploadClient: one ``POST /workouts`` per record."""

    def __init__(self, api_client: HTTPAPIClient, endpoint: str = "/workouts", source: str = "apple_health"):
        self._api = api_client
        self._endpoint = endpoint
        self._source = source

    async def upload_item(self, record: ActivityRecord, payload: Dict[str, Any]) -> None:
        body = {
            "id": record.record_id,
            "source": self._source,
            "activity_type": record.activity_type,
            "start_time": record.start_time.isoformat(),
            "end_time": record.end_time.isoformat() if record.end_time else None,
            **payload,
        }
        try:
            await self._api.post(self._endpoint, json=body)
        except TransportError as e:
            raise UploadError(str(e), record_id=record.record_id) from e
        logger.debug(f"Uploaded record {record.record_id}")
