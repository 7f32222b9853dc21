"""Services for activity_sync module."""
from .api_client import HTTPAPIClient
from .job_client import HTTPJobStatusClient
from .upload_client import HTTPItemUploadClient
from .upload_tracker import UploadTracker
from .record_source import JsonRecordSource
from .workout_cache import WorkoutCache

__all__ = [
    "HTTPAPIClient",
    "HTTPJobStatusClient",
    "HTTPItemUploadClient",
    "UploadTracker",
    "JsonRecordSource",
    "WorkoutCache",
]
