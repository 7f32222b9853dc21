"""
Protocols (Interfaces) for Dependency Inversion.

Small, focused interfaces for the collaborators a sync session talks to.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Protocol, runtime_checkable

from .models import ActivityRecord, JobAccepted, JobStatusReport


@runtime_checkable
class IJobStatusClient(Protocol):
    """Interface to the remote historical import job."""

    async def trigger_historical_job(self, days_back: int) -> JobAccepted:
        """
        Start a historical import.

        Raises AlreadyInProgressError if a job is running, TriggerError otherwise.
        """
        ...

    async def get_job_status(self) -> JobStatusReport:
        """Read job status. Side-effect free; raises TransportError."""
        ...


@runtime_checkable
class IItemUploadClient(Protocol):
    """Interface for uploading one record."""

    async def upload_item(self, record: ActivityRecord, payload: Dict[str, Any]) -> None:
        """Upload a single record. Raises UploadError."""
        ...


class IRecordSource(ABC):
    """Local on-device activity data."""

    @abstractmethod
    async def request_authorization(self) -> None:
        """Ensure read access. Raises PermissionDeniedError."""
        pass

    @abstractmethod
    async def list_records(self, start: datetime, end: datetime) -> List[ActivityRecord]:
        """Records whose start time falls in [start, end]."""
        pass

    async def prepare(self, record: ActivityRecord) -> Dict[str, Any]:
        """Build the upload payload (samples etc.) for a record."""
        return dict(record.payload)


class IReconciliationPort(ABC):
    """Refreshes locally cached data once a sync has finished."""

    @abstractmethod
    async def refresh(self) -> None:
        pass
