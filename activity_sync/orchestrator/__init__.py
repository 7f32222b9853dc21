"""Orchestrator package - coordinates sync sessions."""
from .core import SyncOrchestrator
from .models import SessionOutcome
from .poller import StatusPoller
from .session import SyncSession, InvalidTransitionError

__all__ = ["SyncOrchestrator", "SessionOutcome", "StatusPoller", "SyncSession", "InvalidTransitionError"]
