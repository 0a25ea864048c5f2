"""Cooperative cancellation shared by ingestion and the scheduler."""

import threading


class CancellationToken:
    """One-shot cancel flag checked at chunk and item boundaries.

    Cancelling never interrupts work already in flight; the holder notices
    the flag at its next boundary check.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
