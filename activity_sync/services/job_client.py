"""Remote historical import job client."""
import logging
from typing import Optional

from ..errors import APIError, AlreadyInProgressError, TransportError, TriggerError
from ..models import JobAccepted, JobStatusReport
from .api_client import HTTPAPIClient

logger = logging.getLogger(__name__)

# Status codes the server uses for "a job is already running".
CONFLICT_STATUS_CODES = frozenset({409, 429})


class HTTPJobStatusClient:
    """
    Implements IJobStatusClient over the backend job endpoints.

    Conflicts are decided here from the HTTP status code; callers only ever
    see AlreadyInProgressError.
    """

    def __init__(
        self,
        api_client: HTTPAPIClient,
        trigger_endpoint: str = "/jobs/historical",
        status_endpoint: str = "/jobs/historical/status",
    ):
        self._api = api_client
        self._trigger_endpoint = trigger_endpoint
        self._status_endpoint = status_endpoint

    async def trigger_historical_job(self, days_back: int) -> JobAccepted:
        if days_back <= 0:
            raise ValueError(f"days_back must be > 0, got {days_back}")

        try:
            response = await self._api.post(self._trigger_endpoint, json={"days_back": days_back})
        except APIError as e:
            if e.status_code in CONFLICT_STATUS_CODES:
                logger.info(f"Historical job already in progress (HTTP {e.status_code})")
                raise AlreadyInProgressError(str(e)) from e
            raise TriggerError(str(e)) from e
        except TransportError as e:
            raise TriggerError(str(e)) from e

        body = _json_or_empty(response)
        data = body.get("data", body) if isinstance(body, dict) else {}
        estimated = data.get("estimated_duration")
        accepted = JobAccepted(
            days_back=int(data.get("days_back") or days_back),
            estimated_duration=str(estimated) if estimated is not None else None,
            message=data.get("message"),
        )
        logger.info(
            f"Historical job triggered: days_back={accepted.days_back} "
            f"estimated_duration={accepted.estimated_duration}"
        )
        return accepted

    async def get_job_status(self) -> JobStatusReport:
        response = await self._api.get(self._status_endpoint)
        body = _json_or_empty(response)
        if not isinstance(body, dict):
            raise TransportError(f"Unexpected status payload from {self._status_endpoint}")
        try:
            report = JobStatusReport.from_payload(body)
        except (TypeError, ValueError) as e:
            raise TransportError(f"Malformed status payload from {self._status_endpoint}: {e}") from e
        logger.debug(
            f"Job status: in_progress={report.status.in_progress} "
            f"processed={report.status.processed_count} total={report.status.total_count} "
            f"pct={report.status.progress_percentage}"
        )
        return report


def _json_or_empty(response) -> Optional[dict]:
    try:
        return response.json()
    except ValueError:
        return {}
