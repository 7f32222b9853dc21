"""Orchestrator data models."""
from dataclasses import dataclass
from typing import Optional

from ..models import ProgressState, SessionState, SyncOutcome, SyncResult


@dataclass(frozen=True)
class SessionOutcome:
    """How a strategy (or the poller) ended."""
    state: SessionState
    outcome: SyncOutcome
    result: Optional[SyncResult] = None
    error: Optional[str] = None
    progress: Optional[ProgressState] = None

    @property
    def success(self) -> bool:
        return self.state == SessionState.COMPLETED

    @classmethod
    def completed(cls, result: SyncResult, progress: Optional[ProgressState] = None):
        return cls(
            state=SessionState.COMPLETED,
            outcome=SyncOutcome.SUCCESS,
            result=result,
            progress=progress,
        )

    @classmethod
    def failed(
        cls,
        error: str,
        outcome: SyncOutcome = SyncOutcome.ERROR,
        result: Optional[SyncResult] = None,
        progress: Optional[ProgressState] = None,
    ):
        return cls(
            state=SessionState.FAILED,
            outcome=outcome,
            result=result,
            error=error,
            progress=progress,
        )

    @classmethod
    def cancelled(cls, progress: Optional[ProgressState] = None):
        return cls(
            state=SessionState.CANCELLED,
            outcome=SyncOutcome.CANCELLED,
            progress=progress,
        )
