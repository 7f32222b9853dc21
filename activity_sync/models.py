"""
Models for activity_sync module.

Immutable dataclasses describing job status, progress and sync outcomes.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List


class DataSource(Enum):
    """How a data source gets its history into the backend."""
    DIRECT_UPLOAD = "direct_upload"  # client uploads record by record
    REMOTE_JOB = "remote_job"        # server imports history as a job


class SessionState(Enum):
    """State of a sync session."""
    IDLE = "idle"
    CHECKING_STATUS = "checking_status"
    TRIGGERING = "triggering"
    POLLING = "polling"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED)


class SyncOutcome(Enum):
    """Why a session ended."""
    SUCCESS = "success"
    NO_RECORDS = "no_records"    # nothing in range, not an error of the sync itself
    ALL_FAILED = "all_failed"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class JobSummary:
    """Per-job summary reported by the server once a job ends."""
    processed_count: int
    error_count: int
    total_files: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobSummary":
        return cls(
            processed_count=int(data.get("processed_count") or 0),
            error_count=int(data.get("error_count") or 0),
            total_files=int(data.get("total_files") or 0),
        )


@dataclass(frozen=True)
class JobStatus:
    """
    Processing status of the remote import job.

    Every field but ``in_progress`` may be missing while the job initializes.
    """
    in_progress: bool
    processed_count: Optional[int] = None
    total_count: Optional[int] = None
    progress_percentage: Optional[float] = None
    current_item: Optional[str] = None
    start_time: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobStatus":
        if not isinstance(data, dict) or data.get("in_progress") is None:
            raise ValueError("processing status without in_progress")
        percentage = data.get("progress_percentage")
        return cls(
            in_progress=bool(data["in_progress"]),
            processed_count=data.get("processed_count"),
            total_count=data.get("total_count"),
            progress_percentage=float(percentage) if percentage is not None else None,
            current_item=data.get("current_item"),
            start_time=data.get("start_time"),
        )


@dataclass(frozen=True)
class JobStatusReport:
    """Full status payload: current status plus summaries of recent jobs."""
    status: JobStatus
    recent_summaries: List[JobSummary] = field(default_factory=list)

    @property
    def in_progress(self) -> bool:
        return self.status.in_progress

    @property
    def latest_summary(self) -> Optional[JobSummary]:
        return self.recent_summaries[0] if self.recent_summaries else None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "JobStatusReport":
        """Parse a ``GET /jobs/historical/status`` body (optionally wrapped in ``data``)."""
        data = payload.get("data", payload) if isinstance(payload, dict) else {}
        if not isinstance(data, dict):
            data = {}
        status = JobStatus.from_dict(data.get("processing_status"))
        summaries = [
            JobSummary.from_dict(item["summary"])
            for item in data.get("recent_results") or []
            if isinstance(item, dict) and item.get("summary")
        ]
        return cls(status=status, recent_summaries=summaries)


@dataclass(frozen=True)
class JobAccepted:
    """Server accepted a historical import job."""
    days_back: int
    estimated_duration: Optional[str] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class ProgressState:
    """Snapshot of sync progress handed out by value."""
    processed_count: int = 0
    total_count: int = 0
    progress_percentage: float = 0.0
    current_item: Optional[str] = None

    def merge(self, status: JobStatus) -> "ProgressState":
        """
        Fold a new job status into this progress.

        Missing fields keep their previous value and the percentage never
        goes below what was already shown.
        """
        percentage = self.progress_percentage
        if status.progress_percentage is not None:
            percentage = max(percentage, status.progress_percentage)
        return ProgressState(
            processed_count=status.processed_count if status.processed_count is not None else self.processed_count,
            total_count=status.total_count if status.total_count is not None else self.total_count,
            progress_percentage=percentage,
            current_item=status.current_item if status.current_item is not None else self.current_item,
        )


@dataclass(frozen=True)
class SyncResult:
    """Terminal summary of a session."""
    processed_count: int
    error_count: int
    total_files: int

    def __post_init__(self):
        if self.processed_count < 0 or self.error_count < 0:
            raise ValueError("counts must be non-negative")
        if self.processed_count + self.error_count > self.total_files:
            raise ValueError(
                f"processed ({self.processed_count}) + errors ({self.error_count}) "
                f"exceed total files ({self.total_files})"
            )

    @property
    def all_success(self) -> bool:
        return self.error_count == 0

    @classmethod
    def empty(cls) -> "SyncResult":
        return cls(processed_count=0, error_count=0, total_files=0)

    @classmethod
    def from_summary(cls, summary: JobSummary) -> "SyncResult":
        total = max(summary.total_files, summary.processed_count + summary.error_count)
        return cls(summary.processed_count, summary.error_count, total)

    @classmethod
    def from_status(cls, status: JobStatus) -> "SyncResult":
        """Fallback when the server sent no summary: errors are unknown, reported as 0."""
        total = status.total_count or 0
        processed = status.processed_count if status.processed_count is not None else total
        return cls(processed_count=min(max(processed, 0), total), error_count=0, total_files=total)


@dataclass(frozen=True)
class ActivityRecord:
    """One local workout record waiting to be uploaded."""
    record_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    activity_type: str = "running"
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return f"{self.activity_type} {self.start_time:%Y-%m-%d %H:%M}"


@dataclass(frozen=True)
class SyncSnapshot:
    """What the UI sees of a session at one point in time."""
    state: SessionState = SessionState.IDLE
    data_source: Optional[DataSource] = None
    current_step: str = ""
    progress: ProgressState = field(default_factory=ProgressState)
    sync_result: Optional[SyncResult] = None
    sync_error: Optional[str] = None
    outcome: Optional[SyncOutcome] = None
    can_cancel: bool = True

    @property
    def is_processing(self) -> bool:
        return self.state != SessionState.IDLE and not self.state.is_terminal

    @property
    def is_completed(self) -> bool:
        return self.state == SessionState.COMPLETED

    @property
    def has_error(self) -> bool:
        return self.state == SessionState.FAILED

    @property
    def processed_count(self) -> int:
        return self.progress.processed_count

    @property
    def total_count(self) -> int:
        return self.progress.total_count

    @property
    def progress_percentage(self) -> float:
        return self.progress.progress_percentage

    @property
    def current_item(self) -> Optional[str]:
        return self.progress.current_item


@dataclass(frozen=True)
class SyncConfig:
    """Immutable configuration for sync sessions."""
    days_back: int = 14               # remote job window
    upload_window_days: int = 30      # direct-upload window
    poll_interval: float = 5.0
    backoff_factor: float = 1.0       # 1.0 keeps the interval fixed
    max_poll_interval: float = 60.0
    max_transport_errors: Optional[int] = 5  # consecutive; None = never give up
    max_session_seconds: Optional[float] = None
    max_parallel_prepare: int = 3

    def __post_init__(self):
        if self.days_back <= 0:
            raise ValueError("days_back must be > 0")
        if self.upload_window_days <= 0:
            raise ValueError("upload_window_days must be > 0")
        if self.poll_interval < 0:
            raise ValueError("poll_interval must be >= 0")
        if self.backoff_factor < 1.0:
            raise ValueError("backoff_factor must be >= 1.0")
        if self.max_parallel_prepare < 1:
            raise ValueError("max_parallel_prepare must be >= 1")

    def get_poll_delay(self, consecutive_errors: int = 0) -> float:
        """Delay before the next poll, growing with consecutive transport errors."""
        if consecutive_errors <= 0 or self.backoff_factor == 1.0:
            return self.poll_interval
        delay = self.poll_interval * (self.backoff_factor ** consecutive_errors)
        return min(delay, max(self.max_poll_interval, self.poll_interval))
