"""Core orchestrator - runs one sync session per data source."""
import asyncio
import logging
from typing import Callable, Optional

from ..models import DataSource, SessionState, SyncConfig, SyncOutcome, SyncSnapshot
from ..protocols import IItemUploadClient, IJobStatusClient, IRecordSource, IReconciliationPort
from ..services.upload_tracker import UploadTracker
from ..utils.cancellation import CancellationToken
from ..utils.events import SnapshotChannel
from .direct_upload import DirectUploadStrategy
from .models import SessionOutcome
from .remote_job import RemoteJobStrategy
from .session import SyncSession

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """
    Orchestrates sync sessions using injected collaborators.

    Usage:
        orchestrator = SyncOrchestrator(job_client, upload_client, workout_cache,
                                        record_source=source)
        orchestrator.on_update(lambda snap: print(snap.current_step))

        await orchestrator.start(DataSource.REMOTE_JOB)
        snapshot = await orchestrator.wait()

    Only one session is active at a time. Calling ``start`` while a session
    runs cancels it, waits for it to settle, then starts the new one.
    """

    def __init__(
        self,
        job_client: Optional[IJobStatusClient] = None,
        upload_client: Optional[IItemUploadClient] = None,
        reconciler: Optional[IReconciliationPort] = None,
        record_source: Optional[IRecordSource] = None,
        config: Optional[SyncConfig] = None,
        upload_tracker: Optional[UploadTracker] = None,
    ):
        """
        Initialize orchestrator with dependencies.

        Args:
            job_client: Remote job client (required for REMOTE_JOB)
            upload_client: Per-record upload client (required for DIRECT_UPLOAD)
            reconciler: Refreshes local data once a session completes
            record_source: Local records (required for DIRECT_UPLOAD)
            config: Sync configuration
            upload_tracker: Optional tracker to skip already-uploaded records
        """
        if reconciler is None:
            raise ValueError("reconciler is required")
        self._job_client = job_client
        self._upload_client = upload_client
        self._reconciler = reconciler
        self._record_source = record_source
        self._config = config or SyncConfig()
        self._tracker = upload_tracker

        self._channel = SnapshotChannel()
        self._session: Optional[SyncSession] = None
        self._token: Optional[CancellationToken] = None
        self._task: Optional[asyncio.Task] = None
        self._start_lock = asyncio.Lock()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.cancel()
        self._channel.close()

    # Subscription
    def on_update(self, callback: Callable[[SyncSnapshot], None]):
        """Called with every published SyncSnapshot, in order."""
        self._channel.on_update(callback)

    def off_update(self, callback: Callable[[SyncSnapshot], None]):
        self._channel.off_update(callback)

    def subscribe(self) -> asyncio.Queue:
        """Queue receiving every SyncSnapshot published from now on."""
        return self._channel.subscribe()

    def unsubscribe(self, queue: asyncio.Queue):
        self._channel.unsubscribe(queue)

    # State
    @property
    def config(self) -> SyncConfig:
        return self._config

    @property
    def session(self) -> Optional[SyncSession]:
        return self._session

    @property
    def snapshot(self) -> SyncSnapshot:
        if self._session is not None:
            return self._session.snapshot
        return SyncSnapshot()

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    # Control
    async def start(self, data_source: DataSource, force: bool = False) -> None:
        """Begin a session for ``data_source``; progress goes to subscribers."""
        async with self._start_lock:
            if self.is_active:
                logger.info(f"Restarting: cancelling active {self._session.data_source.value} session")
                await self._cancel_active()

            token = CancellationToken()
            strategy = self._build_strategy(data_source, token, force)
            session = SyncSession(data_source, self._channel)

            self._token = token
            self._session = session
            self._task = asyncio.create_task(self._run(session, strategy, token))
            logger.info(f"Started {data_source.value} sync session")

    async def cancel(self) -> None:
        """Request cooperative cancellation and wait for the session to settle."""
        async with self._start_lock:
            await self._cancel_active()

    async def wait(self) -> SyncSnapshot:
        """Wait for the active session and return its final snapshot."""
        if self._task is not None:
            await asyncio.shield(self._task)
        return self.snapshot

    # Internal methods
    def _build_strategy(self, data_source: DataSource, token: CancellationToken, force: bool):
        if data_source == DataSource.REMOTE_JOB:
            if self._job_client is None:
                raise ValueError("job_client is required for remote job sync")
            return RemoteJobStrategy(self._job_client, self._config, token)

        if data_source == DataSource.DIRECT_UPLOAD:
            if self._upload_client is None or self._record_source is None:
                raise ValueError("upload_client and record_source are required for direct upload sync")
            return DirectUploadStrategy(
                self._upload_client,
                self._record_source,
                self._config,
                token,
                tracker=self._tracker,
                force=force,
            )

        raise ValueError(f"Unsupported data source: {data_source}")

    async def _cancel_active(self) -> None:
        if not self.is_active:
            return
        self._token.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def _run(self, session: SyncSession, strategy, token: CancellationToken) -> None:
        try:
            outcome = await strategy.run(session)
        except asyncio.CancelledError:
            if not session.is_terminal:
                await session.transition(SessionState.CANCELLED, current_step="Cancelled", outcome=SyncOutcome.CANCELLED)
            raise
        except Exception as e:
            logger.error(f"Sync session failed: {e}", exc_info=True)
            outcome = SessionOutcome.failed(str(e) or type(e).__name__)

        if token.is_cancelled and outcome.state != SessionState.CANCELLED:
            outcome = SessionOutcome.cancelled(outcome.progress)

        await self._finish(session, outcome)

    async def _finish(self, session: SyncSession, outcome: SessionOutcome) -> None:
        progress = {"progress": outcome.progress} if outcome.progress is not None else {}

        if outcome.state == SessionState.COMPLETED:
            await session.update(current_step="Reloading workout data...", can_cancel=False, **progress)
            try:
                await self._reconciler.refresh()
            except Exception as e:
                logger.warning(f"Reconciliation failed after sync: {e}", exc_info=True)
            await session.transition(
                SessionState.COMPLETED,
                current_step="Sync complete",
                sync_result=outcome.result,
                outcome=outcome.outcome,
            )
            result = outcome.result
            logger.info(
                f"Sync completed: {result.processed_count}/{result.total_files} processed, "
                f"{result.error_count} errors"
            )
        elif outcome.state == SessionState.FAILED:
            await session.transition(
                SessionState.FAILED,
                current_step="Sync failed",
                sync_result=outcome.result,
                sync_error=outcome.error,
                outcome=outcome.outcome,
                can_cancel=False,
                **progress,
            )
            logger.error(f"Sync failed ({outcome.outcome.value}): {outcome.error}")
        else:
            await session.transition(
                SessionState.CANCELLED,
                current_step="Cancelled",
                outcome=SyncOutcome.CANCELLED,
                can_cancel=False,
                **progress,
            )
            logger.info("Sync cancelled")
