"""Record-by-record upload for data sources without a server-side job."""
from datetime import datetime, timedelta, timezone
from typing import List, Optional
import asyncio
import logging

from ..errors import PermissionDeniedError
from ..models import ActivityRecord, ProgressState, SessionState, SyncConfig, SyncOutcome, SyncResult
from ..protocols import IItemUploadClient, IRecordSource
from ..services.upload_tracker import UploadTracker
from ..utils.cancellation import CancellationToken
from .models import SessionOutcome
from .session import SyncSession
logger = logging.getLogger(__name__)


def _unique(records: List[ActivityRecord]) -> List[ActivityRecord]:
    seen = set()
    unique = []
    for record in records:
        if record.record_id in seen:
            continue
        seen.add(record.record_id)
        unique.append(record)
    return unique


class DirectUploadStrategy:
    """
    Upload every local record in the window, continuing past failures.

    Payloads are prepared in small concurrent batches; each batch is joined
    before its uploads run, and uploads go one at a time so counts have a
    single writer.
    """

    def __init__(
        self,
        client: IItemUploadClient,
        source: IRecordSource,
        config: SyncConfig,
        token: CancellationToken,
        tracker: Optional[UploadTracker] = None,
        force: bool = False,
    ):
        self._client = client
        self._source = source
        self._config = config
        self._token = token
        self._tracker = tracker
        self._force = force
        self._semaphore = asyncio.Semaphore(config.max_parallel_prepare)

    async def run(self, session: SyncSession) -> SessionOutcome:
        await session.transition(SessionState.UPLOADING, current_step="Checking data access...")

        try:
            await self._source.request_authorization()
        except PermissionDeniedError as e:
            logger.error(f"Access to local activity data denied: {e}")
            return SessionOutcome.failed(f"Access to activity data denied: {e}")

        if self._token.is_cancelled:
            return SessionOutcome.cancelled(session.progress)

        days = self._config.upload_window_days
        await session.update(current_step=f"Getting workout records from the last {days} days...")
        end = datetime.now(timezone.utc)
        records = _unique(await self._source.list_records(end - timedelta(days=days), end))
        if self._token.is_cancelled:
            return SessionOutcome.cancelled(session.progress)

        if not records:
            logger.info(f"No records in the last {days} days")
            return SessionOutcome.failed(
                f"No workout records found in the last {days} days",
                outcome=SyncOutcome.NO_RECORDS,
                result=SyncResult.empty(),
            )

        try:
            return await self._upload_all(session, records)
        finally:
            if self._tracker is not None:
                await self._tracker.save()

    async def _upload_all(self, session: SyncSession, records: List[ActivityRecord]) -> SessionOutcome:
        total = len(records)
        processed = 0
        errors = 0
        last_error: Optional[Exception] = None
        progress = ProgressState(total_count=total)
        await session.report_progress(progress, f"Uploading {total} workout records...")

        batch_size = self._config.max_parallel_prepare
        for start in range(0, total, batch_size):
            batch = records[start:start + batch_size]
            if self._token.is_cancelled:
                return SessionOutcome.cancelled(progress)

            payloads = await asyncio.gather(
                *(self._prepare(record) for record in batch),
                return_exceptions=True,
            )

            for index, (record, payload) in enumerate(zip(batch, payloads), start + 1):
                if self._token.is_cancelled:
                    return SessionOutcome.cancelled(progress)

                await session.report_progress(
                    ProgressState(
                        processed_count=processed,
                        total_count=total,
                        progress_percentage=progress.progress_percentage,
                        current_item=record.label,
                    ),
                    f"Uploading workout record {index}/{total}...",
                )

                if isinstance(payload, PermissionDeniedError):
                    logger.error(f"Access denied while reading {record.record_id}: {payload}")
                    return SessionOutcome.failed(f"Access to activity data denied: {payload}", progress=progress)

                try:
                    if isinstance(payload, BaseException):
                        raise payload
                    await self._upload(record, payload)
                    processed += 1
                except PermissionDeniedError as e:
                    logger.error(f"Access denied while uploading {record.record_id}: {e}")
                    return SessionOutcome.failed(f"Access to activity data denied: {e}", progress=progress)
                except Exception as e:
                    errors += 1
                    last_error = e
                    logger.warning(f"[{index}/{total}] Upload failed for {record.record_id}: {e}")

                progress = ProgressState(
                    processed_count=processed,
                    total_count=total,
                    progress_percentage=(processed + errors) / total * 100,
                    current_item=record.label,
                )
                await session.report_progress(progress)

        logger.info(f"Record uploads complete: {processed} successful, {errors} failed")
        result = SyncResult(processed_count=processed, error_count=errors, total_files=total)

        if processed == 0:
            reason = str(last_error) if last_error else "Unknown error"
            return SessionOutcome.failed(
                f"All {total} workout records failed to upload: {reason}",
                outcome=SyncOutcome.ALL_FAILED,
                result=result,
                progress=progress,
            )
        return SessionOutcome.completed(result, progress)

    async def _prepare(self, record: ActivityRecord):
        async with self._semaphore:
            return await self._source.prepare(record)

    async def _upload(self, record: ActivityRecord, payload) -> None:
        if self._tracker is not None and not self._force and self._tracker.is_uploaded(record, payload):
            logger.debug(f"Record {record.record_id} already uploaded, skipping")
            return
        await self._client.upload_item(record, payload)
        if self._tracker is not None:
            self._tracker.mark_uploaded(record, payload)
