"""Status polling for the remote import job."""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..errors import APIError, PollTimeoutError, TooManyTransportErrors, TransportError
from ..models import JobStatusReport, ProgressState, SyncConfig, SyncResult
from ..protocols import IJobStatusClient
from ..utils.cancellation import CancellationToken
from .models import SessionOutcome

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressState], Awaitable[None]]


def build_result(report: JobStatusReport) -> SyncResult:
    """Prefer the server's job summary; fall back to the raw status counts."""
    summary = report.latest_summary
    if summary is not None:
        return SyncResult.from_summary(summary)
    return SyncResult.from_status(report.status)


class StatusPoller:
    """
    Polls job status until the job ends, the token is cancelled, or polling
    gives up.

    Each tick: check cancellation, sleep, check cancellation again, then call
    ``get_job_status``. Transport errors are retried on the next tick with an
    optional backoff; a 4xx from the status endpoint ends the loop.
    """

    def __init__(
        self,
        client: IJobStatusClient,
        config: SyncConfig,
        token: CancellationToken,
    ):
        self._client = client
        self._config = config
        self._token = token
        self._polls = 0

    @property
    def poll_count(self) -> int:
        return self._polls

    async def run(
        self,
        on_progress: Optional[ProgressCallback] = None,
        initial: Optional[ProgressState] = None,
    ) -> SessionOutcome:
        progress = initial or ProgressState()
        consecutive_errors = 0
        loop = asyncio.get_running_loop()
        started = loop.time()

        while True:
            if self._token.is_cancelled:
                logger.info("Polling cancelled")
                return SessionOutcome.cancelled(progress)

            limit = self._config.max_session_seconds
            if limit is not None and loop.time() - started >= limit:
                error = PollTimeoutError(f"job did not finish within {limit:.0f}s")
                logger.warning(str(error))
                return SessionOutcome.failed(str(error), progress=progress)

            delay = self._config.get_poll_delay(consecutive_errors)
            if not await self._token.sleep(delay) or self._token.is_cancelled:
                logger.info("Polling cancelled")
                return SessionOutcome.cancelled(progress)

            self._polls += 1
            try:
                report = await self._client.get_job_status()
            except APIError as e:
                logger.error(f"Status check rejected: {e}")
                return SessionOutcome.failed(str(e), progress=progress)
            except TransportError as e:
                consecutive_errors += 1
                logger.warning(f"Status check failed ({consecutive_errors} in a row): {e}")
                max_errors = self._config.max_transport_errors
                if max_errors is not None and consecutive_errors >= max_errors:
                    error = TooManyTransportErrors(
                        f"giving up after {consecutive_errors} failed status checks: {e}",
                        status_code=e.status_code,
                    )
                    return SessionOutcome.failed(str(error), progress=progress)
                continue

            consecutive_errors = 0
            progress = progress.merge(report.status)
            if on_progress is not None:
                await on_progress(progress)

            if not report.in_progress:
                result = build_result(report)
                logger.info(
                    f"Job finished: processed={result.processed_count} "
                    f"errors={result.error_count} total={result.total_files}"
                )
                return SessionOutcome.completed(result, progress)
