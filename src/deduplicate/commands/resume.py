import logging
import os
import signal
from contextlib import contextmanager
from typing import Callable

from .scan import HashScheduler
from ..state.checkpoint import CheckpointStore
from ..state.work_list import WorkListStore
from ..utils.cancellation import CancellationToken
from ..utils.signals import TERMINATION_SIGNALS

logger = logging.getLogger(__name__)

# Controller whose handlers are currently bound; handlers are process-wide state.
_installed: 'ResumeController | None' = None


def reraise(signum: int) -> None:
    """Terminate the process with the default action of signum.

    Restores the default disposition and sends the signal to this process, so the
    exit status reports the signal just like an unhandled one would.
    """
    signal.signal(signum, signal.SIG_DFL)
    os.kill(os.getpid(), signum)


class ResumeController:
    """Decides what happens to the persisted scan state when the process ends.

    On graceful completion the work list and the lock file are removed. On abnormal
    termination the active session is aborted and its last confirmed offset is
    written to the lock file, so that the next run can resume from there.

    Termination signals are bound by install(). The first signal only cancels the
    token: intake stops, in-flight hashes finish and the owner checkpoints through
    checkpoint(). A second signal saves what can be saved immediately and terminates.
    """

    def __init__(self, work_list: WorkListStore, checkpoint: CheckpointStore,
                 token: CancellationToken | None = None,
                 *, terminate: Callable[[int], None] = reraise):
        """Initialize the controller.

        Args:
            work_list: Work list of the session
            checkpoint: Lock file of the session
            token: Token cancelled on the first termination signal
            terminate: Called with the signal number to end the process after a forced
                       abort
        """
        self._work_list = work_list
        self._checkpoint = checkpoint
        self._token = token if token is not None else CancellationToken()
        self._terminate = terminate
        self._previous_handlers: dict[int, object] = {}
        self._scheduler: HashScheduler | None = None
        self._generating = False

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def installed(self) -> bool:
        return _installed is self

    def __enter__(self):
        self.install()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.uninstall()

    def install(self):
        """Bind the termination signals to this controller.

        Raises:
            RuntimeError: Another controller already holds the handlers
        """
        global _installed
        if _installed is self:
            return
        if _installed is not None:
            raise RuntimeError("Termination handlers are already installed by another controller")

        for signum in TERMINATION_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)
        _installed = self
        logger.debug(f"Installed termination handlers for {[s.name for s in TERMINATION_SIGNALS]}")

    def uninstall(self):
        """Restore the handlers that were active before install()."""
        global _installed
        if _installed is not self:
            return

        for signum, handler in self._previous_handlers.items():
            # None means the handler was not installed from Python
            signal.signal(signum, signal.SIG_DFL if handler is None else handler)
        self._previous_handlers.clear()
        _installed = None

    @contextmanager
    def generating(self):
        """Mark that the work list is being written; a forced abort then removes it."""
        self._generating = True
        try:
            yield
        finally:
            self._generating = False

    @contextmanager
    def attached(self, scheduler: HashScheduler):
        """Make scheduler the one whose session is checkpointed on abort."""
        self._scheduler = scheduler
        try:
            yield scheduler
        finally:
            self._scheduler = None

    def _handle_signal(self, signum, frame):
        if self._token.cancel(signum):
            logger.warning(f"Received signal {signum}, stopping after in-flight files are hashed")
            return

        logger.warning(f"Received signal {signum} again, terminating now")
        self.abort(signum)

    def abort(self, signum: int):
        """Save the state immediately and terminate the process with signum.

        Safe to call when no scan is active: during work list generation the partial
        list is removed, otherwise nothing is written.
        """
        self._token.cancel(signum)
        if self._scheduler is not None:
            self.checkpoint()
        elif self._generating:
            self._work_list.delete()

        self.uninstall()
        self._terminate(signum)

    def checkpoint(self) -> int | None:
        """Abort the attached scheduler's session and persist its safe offset.

        Returns:
            The persisted offset, or None if there was no session to checkpoint
        """
        session = self._scheduler.session if self._scheduler is not None else None
        if session is None:
            logger.info("No active scan session, nothing to checkpoint")
            return None

        session.abort()
        offset = session.safe_offset
        self._checkpoint.write(offset)
        return offset

    def complete(self):
        """Graceful completion: remove the work list and the lock file."""
        self._work_list.delete()
        self._checkpoint.delete()
        logger.info("Scan finished, session state removed")
