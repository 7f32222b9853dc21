"""Trigger-then-poll sync for data sources imported by a server-side job."""
import logging

from ..errors import AlreadyInProgressError, TransportError, TriggerError
from ..models import ProgressState, SessionState, SyncConfig
from ..protocols import IJobStatusClient
from ..utils.cancellation import CancellationToken
from .models import SessionOutcome
from .poller import StatusPoller
from .session import SyncSession

logger = logging.getLogger(__name__)


def progress_step(progress: ProgressState) -> str:
    """Human-readable label for a polling update."""
    if progress.total_count > 0:
        return (
            f"Processing history: {progress.processed_count}/{progress.total_count} "
            f"({int(progress.progress_percentage)}%)"
        )
    return "Processing history: initializing..."


class RemoteJobStrategy:
    """
    Attach to a running import job, or start one, then poll it.

    Status is always checked before triggering; a trigger rejected because a
    job is already running is treated the same as finding one running.
    """

    def __init__(self, client: IJobStatusClient, config: SyncConfig, token: CancellationToken):
        self._client = client
        self._config = config
        self._token = token
        self.triggered = False

    async def run(self, session: SyncSession) -> SessionOutcome:
        await session.transition(
            SessionState.CHECKING_STATUS,
            current_step="Checking processing status...",
        )

        try:
            report = await self._client.get_job_status()
        except TransportError as e:
            logger.error(f"Initial status check failed: {e}")
            return SessionOutcome.failed(f"Unable to check processing status: {e}")

        if self._token.is_cancelled:
            return SessionOutcome.cancelled(session.progress)

        if report.in_progress:
            logger.info("Import already in progress, attaching without trigger")
            await session.transition(
                SessionState.POLLING,
                current_step="Detected data already being processed...",
                progress=session.progress.merge(report.status),
            )
        else:
            await session.transition(
                SessionState.TRIGGERING,
                current_step="Starting historical data processing...",
            )
            try:
                accepted = await self._client.trigger_historical_job(self._config.days_back)
            except AlreadyInProgressError:
                logger.info("Trigger lost the race to another job, attaching to it")
                step = "Detected processing in progress..."
            except TriggerError as e:
                logger.error(f"Trigger failed: {e}")
                return SessionOutcome.failed(f"Sync failed: {e}")
            else:
                self.triggered = True
                if accepted.estimated_duration:
                    step = f"Processing history (estimated {accepted.estimated_duration})..."
                else:
                    step = "Processing history..."
            await session.transition(SessionState.POLLING, current_step=step)

        async def on_progress(progress: ProgressState):
            await session.report_progress(progress, progress_step(progress))

        poller = StatusPoller(self._client, self._config, self._token)
        return await poller.run(on_progress, initial=session.progress)
