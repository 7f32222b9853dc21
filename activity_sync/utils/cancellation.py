"""Cooperative cancellation token."""
import asyncio
from typing import Optional


class CancellationToken:
    """
    Flag checked by long-running loops at their check points.

    ``sleep`` returns early when the token is cancelled, so a cancelled session
    never keeps a poll timer alive.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by user") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    async def sleep(self, seconds: float) -> bool:
        """
        Sleep up to ``seconds``.

        Returns True if the full interval elapsed, False if cancelled first.
        """
        if self.is_cancelled:
            return False
        if seconds <= 0:
            await asyncio.sleep(0)
            return not self.is_cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False
