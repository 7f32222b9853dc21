"""
activity_sync - Client-side orchestration of workout history imports.

Two ways to get a data source's history into the backend:
- Remote job: the server imports history as an asynchronous job; the client
  checks status, triggers the job only if none is running, and polls it.
- Direct upload: the client reads local records and uploads them one by one,
  continuing past individual failures.

Collaborators are injected into the orchestrator.

Usage:
    from activity_sync import SyncOrchestrator, DataSource, SyncConfig

    async with HTTPAPIClient(api_url) as api:
        orchestrator = SyncOrchestrator(
            job_client=HTTPJobStatusClient(api),
            upload_client=HTTPItemUploadClient(api),
            reconciler=WorkoutCache(api),
            record_source=JsonRecordSource(records_dir),
        )
        orchestrator.on_update(lambda snap: print(snap.current_step))

        await orchestrator.start(DataSource.REMOTE_JOB)
        snapshot = await orchestrator.wait()
        print(snapshot.sync_result)
"""
from .orchestrator import SyncOrchestrator, StatusPoller, SyncSession
from .models import (
    ActivityRecord,
    DataSource,
    JobAccepted,
    JobStatus,
    JobStatusReport,
    JobSummary,
    ProgressState,
    SessionState,
    SyncConfig,
    SyncOutcome,
    SyncResult,
    SyncSnapshot,
)
from .errors import (
    AlreadyInProgressError,
    PermissionDeniedError,
    SyncError,
    TransportError,
    TriggerError,
    UploadError,
)
from .services import (
    HTTPAPIClient,
    HTTPItemUploadClient,
    HTTPJobStatusClient,
    JsonRecordSource,
    UploadTracker,
    WorkoutCache,
)

__version__ = "0.1.0"
__all__ = [
    # Main
    "SyncOrchestrator",
    "StatusPoller",
    "SyncSession",
    # Models
    "ActivityRecord",
    "DataSource",
    "JobAccepted",
    "JobStatus",
    "JobStatusReport",
    "JobSummary",
    "ProgressState",
    "SessionState",
    "SyncConfig",
    "SyncOutcome",
    "SyncResult",
    "SyncSnapshot",
    # Errors
    "AlreadyInProgressError",
    "PermissionDeniedError",
    "SyncError",
    "TransportError",
    "TriggerError",
    "UploadError",
    # Services
    "HTTPAPIClient",
    "HTTPItemUploadClient",
    "HTTPJobStatusClient",
    "JsonRecordSource",
    "UploadTracker",
    "WorkoutCache",
]
