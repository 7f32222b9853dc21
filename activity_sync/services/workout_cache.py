"""
WorkoutCache - Local copy of the backend's unified workout list.

Used as the reconciliation step after a sync: ``refresh`` pulls the list
again and rewrites the local file.
"""
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..protocols import IReconciliationPort
from .api_client import HTTPAPIClient
from .upload_tracker import DEFAULT_CACHE_DIR

logger = logging.getLogger(__name__)

DEFAULT_CACHE_FILE = "workouts.json"


class WorkoutCache(IReconciliationPort):
    """File-backed workout cache refreshed from ``GET /workouts``."""

    def __init__(
        self,
        api_client: HTTPAPIClient,
        cache_dir: Optional[Path] = None,
        endpoint: str = "/workouts",
        page_size: int = 100,
    ):
        self._api = api_client
        self._cache_dir = cache_dir or DEFAULT_CACHE_DIR
        self._cache_file = self._cache_dir / DEFAULT_CACHE_FILE
        self._endpoint = endpoint
        self._page_size = page_size
        self._workouts: List[Dict[str, Any]] = []
        self._refreshed_at: Optional[datetime] = None

    @property
    def workouts(self) -> List[Dict[str, Any]]:
        return list(self._workouts)

    @property
    def refreshed_at(self) -> Optional[datetime]:
        return self._refreshed_at

    async def refresh(self) -> None:
        response = await self._api.get(self._endpoint, params={"page_size": self._page_size})
        body = response.json()
        data = body.get("data", body) if isinstance(body, dict) else body
        if isinstance(data, dict):
            data = data.get("workouts", [])
        self._workouts = list(data or [])
        self._refreshed_at = datetime.now()

        self._cache_dir.mkdir(parents=True, exist_ok=True)
        with open(self._cache_file, "w", encoding="utf-8") as f:
            json.dump(
                {"refreshed_at": self._refreshed_at.isoformat(), "workouts": self._workouts},
                f,
                indent=2,
            )
        logger.info("WorkoutCache: %d workouts cached at %s", len(self._workouts), self._cache_file)
