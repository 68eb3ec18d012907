import logging
from typing import Any, Callable

from ..errors import ScanInterrupted

logger = logging.getLogger(__name__)


class CancellationToken:
    """One-shot abort flag shared by the scan and the code that may stop it.

    cancel() only flips the flag and runs the registered callbacks, so it is safe to
    call from a signal handler. Observers poll `cancelled` at their suspension points.
    """

    def __init__(self):
        self._cancelled = False
        self._reason: Any = None
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Any:
        """Signal number or exception passed to cancel(), if any."""
        return self._reason

    def cancel(self, reason: Any = None) -> bool:
        """Mark the token cancelled.

        Returns:
            True if this call cancelled the token, False if it was already cancelled
        """
        if self._cancelled:
            return False

        self._cancelled = True
        self._reason = reason
        logger.info(f"Cancellation requested (reason={reason!r})")

        for callback in list(self._callbacks):
            callback()
        return True

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run callback on cancellation, or right away if already cancelled."""
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            signum = self._reason if isinstance(self._reason, int) else None
            raise ScanInterrupted(signum)
