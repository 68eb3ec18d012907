"""Exceptions raised by deduplicate and the exit codes the CLI maps them to."""

from pathlib import Path

EXIT_SCAN_FAILED = 1
EXIT_SETUP_ERROR = 3


class DeduplicateError(Exception):
    """Base class for all errors raised by deduplicate."""


class SetupError(DeduplicateError):
    """The persisted work list and checkpoint are inconsistent or unusable.

    Raised before any scanning happens, e.g. a lock file without a work list, a
    work list without a lock file when resuming, or a checkpoint offset that does
    not point at a line boundary of the work list.
    """


class TransientFileError(DeduplicateError):
    """A listed file disappeared before it could be hashed."""

    def __init__(self, path: Path):
        super().__init__(f"File vanished before hashing: {path}")
        self.path = path


class HashError(DeduplicateError):
    """Computing the digest of a listed file failed."""

    def __init__(self, path: Path, cause: OSError):
        reason = cause.strerror or str(cause)
        super().__init__(f"Failed to hash {path}: {reason}")
        self.path = path
        self.cause = cause


class ScanInterrupted(DeduplicateError):
    """The scan was stopped by a termination signal."""

    def __init__(self, signum: int | None = None):
        if signum is None:
            super().__init__("Scan interrupted")
        else:
            super().__init__(f"Scan interrupted by signal {signum}")
        self.signum = signum
