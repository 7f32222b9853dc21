from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, FrozenSet
import logging

from ..models import DataSource, ProgressState, SessionState, SyncSnapshot
from ..utils.events import SnapshotChannel
logger = logging.getLogger(__name__)


_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.IDLE: frozenset({
        SessionState.CHECKING_STATUS,
        SessionState.UPLOADING,
        SessionState.FAILED,
        SessionState.CANCELLED,
    }),
    SessionState.CHECKING_STATUS: frozenset({
        SessionState.TRIGGERING,
        SessionState.POLLING,
        SessionState.FAILED,
        SessionState.CANCELLED,
    }),
    SessionState.TRIGGERING: frozenset({
        SessionState.POLLING,
        SessionState.FAILED,
        SessionState.CANCELLED,
    }),
    SessionState.POLLING: frozenset({
        SessionState.COMPLETED,
        SessionState.FAILED,
        SessionState.CANCELLED,
    }),
    SessionState.UPLOADING: frozenset({
        SessionState.COMPLETED,
        SessionState.FAILED,
        SessionState.CANCELLED,
    }),
    SessionState.COMPLETED: frozenset(),
    SessionState.FAILED: frozenset(),
    SessionState.CANCELLED: frozenset(),
}


class InvalidTransitionError(RuntimeError):
    """Raised when a session is asked to move against its state machine."""


class SyncSession:
    """
    One sync run for one data source.

    The session owns the current snapshot and is the only writer to the
    snapshot channel while it runs; every change is published as a new
    immutable SyncSnapshot.
    """

    def __init__(self, data_source: DataSource, channel: SnapshotChannel):
        self._data_source = data_source
        self._channel = channel
        self._started_at = datetime.now(timezone.utc)
        self._snapshot = SyncSnapshot(state=SessionState.IDLE, data_source=data_source)

    @property
    def data_source(self) -> DataSource:
        return self._data_source

    @property
    def started_at(self) -> datetime:
        return self._started_at

    @property
    def state(self) -> SessionState:
        return self._snapshot.state

    @property
    def snapshot(self) -> SyncSnapshot:
        return self._snapshot

    @property
    def progress(self) -> ProgressState:
        return self._snapshot.progress

    @property
    def is_terminal(self) -> bool:
        return self._snapshot.state.is_terminal

    def can_transition(self, state: SessionState) -> bool:
        return state in _TRANSITIONS[self._snapshot.state]

    async def transition(self, state: SessionState, **changes):
        """Move to ``state`` and publish the new snapshot."""
        if not self.can_transition(state):
            raise InvalidTransitionError(
                f"{self._data_source.value}: cannot go from {self.state.value} to {state.value}"
            )
        logger.debug(f"[{self._data_source.value}] {self.state.value} -> {state.value}")
        await self._publish(replace(self._snapshot, state=state, **changes))

    async def update(self, **changes):
        """Publish changed fields without a state change."""
        if self.is_terminal:
            raise InvalidTransitionError(f"session already {self.state.value}")
        await self._publish(replace(self._snapshot, **changes))

    async def report_progress(self, progress: ProgressState, current_step: str = None):
        changes = {"progress": progress}
        if current_step is not None:
            changes["current_step"] = current_step
        await self.update(**changes)

    async def _publish(self, snapshot: SyncSnapshot):
        self._snapshot = snapshot
        await self._channel.publish(snapshot)
