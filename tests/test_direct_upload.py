"""Tests for the direct-upload sync path."""
import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from activity_sync.errors import PermissionDeniedError, UploadError
from activity_sync.models import ActivityRecord, DataSource, SessionState, SyncConfig, SyncOutcome, SyncResult
from activity_sync.orchestrator import SyncOrchestrator
from activity_sync.orchestrator.direct_upload import DirectUploadStrategy
from activity_sync.orchestrator.session import SyncSession
from activity_sync.protocols import IRecordSource
from activity_sync.services.upload_tracker import UploadTracker
from activity_sync.utils.cancellation import CancellationToken
from activity_sync.utils.events import SnapshotChannel


class FakeRecordSource(IRecordSource):
    def __init__(self, records=None, denied=False):
        self.records = records or []
        self.denied = denied
        self.prepared = []

    async def request_authorization(self):
        if self.denied:
            raise PermissionDeniedError("HealthKit access denied")

    async def list_records(self, start, end):
        return list(self.records)

    async def prepare(self, record):
        self.prepared.append(record.record_id)
        return {"distance": 5000}


def _records(count):
    now = datetime.now(timezone.utc)
    return [
        ActivityRecord(record_id=f"w{i}", start_time=now - timedelta(days=i))
        for i in range(1, count + 1)
    ]


def _failing_on(*record_ids):
    async def upload(record, payload):
        if record.record_id in record_ids:
            raise UploadError("server rejected workout", record_id=record.record_id)
    return upload


def _build(source, upload_client=None, tracker=None):
    upload_client = upload_client or AsyncMock()
    reconciler = AsyncMock()
    orchestrator = SyncOrchestrator(
        upload_client=upload_client,
        reconciler=reconciler,
        record_source=source,
        config=SyncConfig(poll_interval=0),
        upload_tracker=tracker,
    )
    return orchestrator, upload_client, reconciler


class TestDirectUploadSync:
    @pytest.mark.asyncio
    async def test_partial_failures_are_counted(self):
        upload_client = AsyncMock()
        upload_client.upload_item.side_effect = _failing_on("w3", "w7")
        orchestrator, _, reconciler = _build(FakeRecordSource(_records(10)), upload_client)

        await orchestrator.start(DataSource.DIRECT_UPLOAD)
        snapshot = await orchestrator.wait()

        assert snapshot.state == SessionState.COMPLETED
        assert snapshot.sync_result == SyncResult(processed_count=8, error_count=2, total_files=10)
        assert upload_client.upload_item.await_count == 10
        reconciler.refresh.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_records_fails_without_reconciliation(self):
        orchestrator, upload_client, reconciler = _build(FakeRecordSource([]))

        await orchestrator.start(DataSource.DIRECT_UPLOAD)
        snapshot = await orchestrator.wait()

        assert snapshot.state == SessionState.FAILED
        assert snapshot.outcome == SyncOutcome.NO_RECORDS
        assert snapshot.sync_result == SyncResult(0, 0, 0)
        assert "No workout records" in snapshot.sync_error
        upload_client.upload_item.assert_not_awaited()
        reconciler.refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_all_failed_is_total_failure(self):
        upload_client = AsyncMock()
        upload_client.upload_item.side_effect = UploadError("server down")
        orchestrator, _, reconciler = _build(FakeRecordSource(_records(3)), upload_client)

        await orchestrator.start(DataSource.DIRECT_UPLOAD)
        snapshot = await orchestrator.wait()

        assert snapshot.state == SessionState.FAILED
        assert snapshot.outcome == SyncOutcome.ALL_FAILED
        assert snapshot.sync_result == SyncResult(0, 3, 3)
        assert "server down" in snapshot.sync_error
        reconciler.refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_permission_denied_is_fatal(self):
        orchestrator, upload_client, reconciler = _build(FakeRecordSource(_records(2), denied=True))

        await orchestrator.start(DataSource.DIRECT_UPLOAD)
        snapshot = await orchestrator.wait()

        assert snapshot.state == SessionState.FAILED
        assert "denied" in snapshot.sync_error
        upload_client.upload_item.assert_not_awaited()
        reconciler.refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_duplicate_record_ids_uploaded_once(self):
        records = _records(2)
        orchestrator, upload_client, _ = _build(FakeRecordSource(records + [records[0]]))

        await orchestrator.start(DataSource.DIRECT_UPLOAD)
        snapshot = await orchestrator.wait()

        assert snapshot.sync_result == SyncResult(2, 0, 2)
        assert upload_client.upload_item.await_count == 2

    @pytest.mark.asyncio
    async def test_cancel_while_listing_ends_cancelled(self):
        listing = asyncio.Event()
        release = asyncio.Event()

        class SlowSource(FakeRecordSource):
            async def list_records(self, start, end):
                listing.set()
                await release.wait()
                return []

        orchestrator, upload_client, reconciler = _build(SlowSource())

        await orchestrator.start(DataSource.DIRECT_UPLOAD)
        await asyncio.wait_for(listing.wait(), timeout=1)
        cancelling = asyncio.create_task(orchestrator.cancel())
        await asyncio.sleep(0)
        release.set()
        await asyncio.wait_for(cancelling, timeout=1)

        snapshot = orchestrator.snapshot
        assert snapshot.state == SessionState.CANCELLED
        assert snapshot.outcome == SyncOutcome.CANCELLED
        assert snapshot.sync_error is None
        upload_client.upload_item.assert_not_awaited()
        reconciler.refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_during_last_failing_upload_ends_cancelled(self):
        orchestrator, upload_client, reconciler = _build(FakeRecordSource(_records(1)))

        async def upload(record, payload):
            uploading.set()
            await release.wait()
            raise UploadError("server down", record_id=record.record_id)

        uploading = asyncio.Event()
        release = asyncio.Event()
        upload_client.upload_item.side_effect = upload

        await orchestrator.start(DataSource.DIRECT_UPLOAD)
        await asyncio.wait_for(uploading.wait(), timeout=1)
        cancelling = asyncio.create_task(orchestrator.cancel())
        await asyncio.sleep(0)
        release.set()
        await asyncio.wait_for(cancelling, timeout=1)

        assert orchestrator.snapshot.state == SessionState.CANCELLED
        assert orchestrator.snapshot.sync_error is None
        reconciler.refresh.assert_not_awaited()


class TestUploadTracking:
    @pytest.mark.asyncio
    async def test_already_uploaded_records_are_skipped(self, tmp_path):
        tracker = UploadTracker(cache_dir=tmp_path)
        source = FakeRecordSource(_records(3))
        orchestrator, upload_client, _ = _build(source, tracker=tracker)

        await orchestrator.start(DataSource.DIRECT_UPLOAD)
        await orchestrator.wait()
        await orchestrator.start(DataSource.DIRECT_UPLOAD)
        snapshot = await orchestrator.wait()

        assert upload_client.upload_item.await_count == 3
        assert snapshot.sync_result == SyncResult(3, 0, 3)
        assert (tmp_path / "uploaded.json").exists()

    @pytest.mark.asyncio
    async def test_force_uploads_again(self, tmp_path):
        tracker = UploadTracker(cache_dir=tmp_path)
        orchestrator, upload_client, _ = _build(FakeRecordSource(_records(2)), tracker=tracker)

        await orchestrator.start(DataSource.DIRECT_UPLOAD)
        await orchestrator.wait()
        await orchestrator.start(DataSource.DIRECT_UPLOAD, force=True)
        await orchestrator.wait()

        assert upload_client.upload_item.await_count == 4


class TestDirectUploadStrategy:
    @pytest.mark.asyncio
    async def test_cancel_stops_before_next_upload(self):
        token = CancellationToken()
        upload_client = AsyncMock()

        async def upload(record, payload):
            token.cancel()

        upload_client.upload_item.side_effect = upload
        strategy = DirectUploadStrategy(
            upload_client, FakeRecordSource(_records(5)), SyncConfig(), token
        )
        session = SyncSession(DataSource.DIRECT_UPLOAD, SnapshotChannel())

        outcome = await strategy.run(session)

        assert outcome.state == SessionState.CANCELLED
        assert upload_client.upload_item.await_count == 1

    @pytest.mark.asyncio
    async def test_prepare_failure_counts_as_item_error(self):
        class FlakySource(FakeRecordSource):
            async def prepare(self, record):
                if record.record_id == "w2":
                    raise OSError("sample read failed")
                return {}

        upload_client = AsyncMock()
        strategy = DirectUploadStrategy(
            upload_client, FlakySource(_records(3)), SyncConfig(), CancellationToken()
        )
        session = SyncSession(DataSource.DIRECT_UPLOAD, SnapshotChannel())

        outcome = await strategy.run(session)

        assert outcome.result == SyncResult(2, 1, 3)
        assert upload_client.upload_item.await_count == 2

    @pytest.mark.asyncio
    async def test_progress_reaches_full_percentage(self):
        channel = SnapshotChannel()
        queue = channel.subscribe()
        strategy = DirectUploadStrategy(
            AsyncMock(), FakeRecordSource(_records(4)), SyncConfig(), CancellationToken()
        )

        await strategy.run(SyncSession(DataSource.DIRECT_UPLOAD, channel))

        percentages = []
        while not queue.empty():
            percentages.append(queue.get_nowait().progress_percentage)
        assert percentages == sorted(percentages)
        assert percentages[-1] == 100.0
