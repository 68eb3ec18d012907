import logging
import os
from pathlib import Path

from .paths import SessionPaths
from ..errors import SetupError

logger = logging.getLogger(__name__)


class CheckpointStore:
    """The lock file: a single decimal byte offset into the work list.

    The file exists only between an abnormal termination and the end of the run that
    resumes from it, so its presence alone means "a previous scan was interrupted".
    """

    def __init__(self, paths: SessionPaths):
        self._path = paths.checkpoint

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def read(self) -> int:
        """Read the stored offset.

        Raises:
            SetupError: The lock file is missing or does not hold a non-negative integer
        """
        try:
            text = self._path.read_text(encoding='utf-8')
        except FileNotFoundError:
            raise SetupError(f"Lock file {self._path} is missing, cannot resume") from None

        try:
            offset = int(text.strip())
        except ValueError:
            raise SetupError(f"Lock file {self._path} does not contain an offset: {text.strip()!r}") from None

        if offset < 0:
            raise SetupError(f"Lock file {self._path} contains a negative offset: {offset}")

        return offset

    def write(self, offset: int) -> None:
        """Persist the offset, replacing any previous value atomically."""
        if offset < 0:
            raise ValueError(f"offset must not be negative, got {offset}")

        temporary = self._path.with_name(self._path.name + '.tmp')
        with open(temporary, 'w', encoding='utf-8') as f:
            f.write(str(offset))
            f.flush()
            os.fsync(f.fileno())
        os.replace(temporary, self._path)

        logger.info(f"Saved checkpoint at offset {offset} to {self._path}")

    def delete(self) -> bool:
        try:
            self._path.unlink()
        except FileNotFoundError:
            return False
        logger.info(f"Removed lock file: {self._path}")
        return True
