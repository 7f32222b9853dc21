"""Tests for activity_sync services."""
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from activity_sync.errors import (
    AlreadyInProgressError,
    APIError,
    PermissionDeniedError,
    TransportError,
    TriggerError,
    UploadError,
)
from activity_sync.models import ActivityRecord, JobSummary, SessionState, SyncConfig, SyncResult
from activity_sync.orchestrator.poller import StatusPoller
from activity_sync.services import (
    HTTPAPIClient,
    HTTPItemUploadClient,
    HTTPJobStatusClient,
    JsonRecordSource,
    UploadTracker,
    WorkoutCache,
)
from activity_sync.utils.cancellation import CancellationToken


def _api(handler, **kwargs):
    return HTTPAPIClient(
        "http://backend.test",
        transport=httpx.MockTransport(handler),
        retry_delay=0,
        **kwargs,
    )


class TestHTTPAPIClient:
    @pytest.mark.asyncio
    async def test_requires_context(self):
        client = HTTPAPIClient("http://backend.test")
        with pytest.raises(RuntimeError, match="not initialized"):
            await client.get("/anything")

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json={"ok": True})

        async with _api(handler) as api:
            response = await api.get("/jobs/historical/status")

        assert response.json() == {"ok": True}
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_server_error_after_retries_is_transport_error(self):
        async with _api(lambda request: httpx.Response(502), max_retries=2) as api:
            with pytest.raises(TransportError) as exc_info:
                await api.get("/jobs/historical/status")
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_connection_error_is_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _api(handler, max_retries=2) as api:
            with pytest.raises(TransportError):
                await api.get("/jobs/historical/status")

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404, json={"error": "not found"})

        async with _api(handler) as api:
            with pytest.raises(APIError) as exc_info:
                await api.get("/missing")

        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == {"error": "not found"}
        assert len(calls) == 1


class TestHTTPJobStatusClient:
    @pytest.mark.asyncio
    async def test_trigger_accepted(self):
        def handler(request):
            assert request.method == "POST"
            assert request.url.path == "/jobs/historical"
            assert json.loads(request.content) == {"days_back": 14}
            return httpx.Response(202, json={"data": {"days_back": 14, "estimated_duration": "3-5 minutes"}})

        async with _api(handler) as api:
            accepted = await HTTPJobStatusClient(api).trigger_historical_job(14)

        assert accepted.days_back == 14
        assert accepted.estimated_duration == "3-5 minutes"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [409, 429])
    async def test_trigger_conflict_is_structured(self, status_code):
        handler = lambda request: httpx.Response(status_code, json={"error": "already in progress"})

        async with _api(handler) as api:
            with pytest.raises(AlreadyInProgressError):
                await HTTPJobStatusClient(api).trigger_historical_job(14)

    @pytest.mark.asyncio
    async def test_trigger_other_error(self):
        handler = lambda request: httpx.Response(400, json={"error": "bad request mentions 429"})

        async with _api(handler) as api:
            with pytest.raises(TriggerError) as exc_info:
                await HTTPJobStatusClient(api).trigger_historical_job(14)

        assert not isinstance(exc_info.value, AlreadyInProgressError)

    @pytest.mark.asyncio
    async def test_trigger_rejects_non_positive_days(self):
        async with _api(lambda request: httpx.Response(202)) as api:
            with pytest.raises(ValueError):
                await HTTPJobStatusClient(api).trigger_historical_job(0)

    @pytest.mark.asyncio
    async def test_get_job_status(self):
        body = {
            "processing_status": {
                "in_progress": False,
                "processed_count": 20,
                "total_count": 20,
                "progress_percentage": 100.0,
            },
            "recent_results": [{"summary": {"processed_count": 19, "error_count": 1, "total_files": 20}}],
        }

        async with _api(lambda request: httpx.Response(200, json=body)) as api:
            report = await HTTPJobStatusClient(api).get_job_status()

        assert report.in_progress is False
        assert report.status.total_count == 20
        assert report.latest_summary == JobSummary(19, 1, 20)

    @pytest.mark.asyncio
    async def test_status_without_in_progress_is_transport_error(self):
        body = {"data": {"processing_status": None}}

        async with _api(lambda request: httpx.Response(200, json=body)) as api:
            with pytest.raises(TransportError, match="Malformed status payload"):
                await HTTPJobStatusClient(api).get_job_status()

    @pytest.mark.asyncio
    async def test_malformed_status_is_retried_by_poller(self):
        bodies = iter([
            {"processing_status": {"in_progress": True, "processed_count": 1, "total_count": 4}},
            {"data": {"processing_status": None}},
            {"processing_status": {"in_progress": False, "processed_count": 4, "total_count": 4}},
        ])

        async with _api(lambda request: httpx.Response(200, json=next(bodies))) as api:
            poller = StatusPoller(HTTPJobStatusClient(api), SyncConfig(poll_interval=0), CancellationToken())
            outcome = await poller.run()

        assert outcome.state == SessionState.COMPLETED
        assert outcome.result == SyncResult(4, 0, 4)
        assert poller.poll_count == 3


class TestHTTPItemUploadClient:
    @pytest.mark.asyncio
    async def test_upload_posts_record(self):
        sent = []

        def handler(request):
            sent.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True})

        record = ActivityRecord("w1", datetime(2024, 5, 1, 7, 0, tzinfo=timezone.utc))
        async with _api(handler) as api:
            await HTTPItemUploadClient(api).upload_item(record, {"distance": 5000})

        assert sent[0]["id"] == "w1"
        assert sent[0]["distance"] == 5000
        assert sent[0]["start_time"] == "2024-05-01T07:00:00+00:00"

    @pytest.mark.asyncio
    async def test_upload_failure_raises_upload_error(self):
        record = ActivityRecord("w1", datetime(2024, 5, 1, tzinfo=timezone.utc))
        async with _api(lambda request: httpx.Response(422, json={"error": "invalid"})) as api:
            with pytest.raises(UploadError) as exc_info:
                await HTTPItemUploadClient(api).upload_item(record, {})

        assert exc_info.value.record_id == "w1"


class TestUploadTracker:
    @pytest.mark.asyncio
    async def test_persists_between_instances(self, tmp_path):
        record = ActivityRecord("w1", datetime(2024, 5, 1, tzinfo=timezone.utc), payload={"distance": 1})
        tracker = UploadTracker(cache_dir=tmp_path)
        tracker.mark_uploaded(record)
        await tracker.save()

        reloaded = UploadTracker(cache_dir=tmp_path)
        await reloaded.load()

        assert reloaded.is_uploaded(record) is True
        assert reloaded.uploaded_at(record) is not None

    def test_changed_payload_is_not_uploaded(self, tmp_path):
        record = ActivityRecord("w1", datetime(2024, 5, 1, tzinfo=timezone.utc))
        tracker = UploadTracker(cache_dir=tmp_path)
        tracker.mark_uploaded(record, {"heart_rate": [120]})

        assert tracker.is_uploaded(record, {"heart_rate": [120]}) is True
        assert tracker.is_uploaded(record, {"heart_rate": [120, 130]}) is False

    @pytest.mark.asyncio
    async def test_corrupt_file_starts_fresh(self, tmp_path):
        (tmp_path / "uploaded.json").write_text("{not json", encoding="utf-8")
        tracker = UploadTracker(cache_dir=tmp_path)
        await tracker.load()
        assert tracker.stats() == {"entries": 0, "dirty": False}


class TestJsonRecordSource:
    @pytest.mark.asyncio
    async def test_missing_folder_denied(self, tmp_path):
        source = JsonRecordSource(tmp_path / "missing")
        with pytest.raises(PermissionDeniedError):
            await source.request_authorization()

    @pytest.mark.asyncio
    async def test_lists_records_in_window_with_samples(self, tmp_path):
        now = datetime.now(timezone.utc)
        (tmp_path / "recent.json").write_text(
            json.dumps({"id": "recent", "start_time": (now - timedelta(days=2)).isoformat(), "distance": 5000}),
            encoding="utf-8",
        )
        (tmp_path / "recent.heart_rate.json").write_text(json.dumps([120, 140]), encoding="utf-8")
        (tmp_path / "old.json").write_text(
            json.dumps({"id": "old", "start_time": (now - timedelta(days=90)).isoformat()}),
            encoding="utf-8",
        )
        (tmp_path / "broken.json").write_text("{", encoding="utf-8")
        (tmp_path / "list.json").write_text(json.dumps([1, 2]), encoding="utf-8")
        (tmp_path / "epoch.json").write_text(json.dumps({"id": "epoch", "start_time": 1714546800}), encoding="utf-8")

        source = JsonRecordSource(tmp_path)
        await source.request_authorization()
        records = await source.list_records(now - timedelta(days=30), now)

        assert [r.record_id for r in records] == ["recent"]
        payload = await source.prepare(records[0])
        assert payload == {"distance": 5000, "heart_rate": [120, 140]}


class TestWorkoutCache:
    @pytest.mark.asyncio
    async def test_refresh_writes_cache_file(self, tmp_path):
        body = {"data": {"workouts": [{"id": "w1"}, {"id": "w2"}]}}

        async with _api(lambda request: httpx.Response(200, json=body)) as api:
            cache = WorkoutCache(api, cache_dir=tmp_path)
            await cache.refresh()

        assert [w["id"] for w in cache.workouts] == ["w1", "w2"]
        assert cache.refreshed_at is not None
        stored = json.loads((tmp_path / "workouts.json").read_text(encoding="utf-8"))
        assert len(stored["workouts"]) == 2
