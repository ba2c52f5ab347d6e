"""Cooperative cancellation for long-running batch work."""

import threading


class CancellationToken:
    """Best-effort cancellation flag shared between a caller and a worker.

    The worker polls ``is_cancelled`` between units of work; cancelling never
    interrupts a unit already in progress.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()
