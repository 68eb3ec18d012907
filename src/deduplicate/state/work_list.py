"""The work list: the persisted, append-only list of files a scan has to hash.

Each line holds one absolute path. Lines are written in text mode, so they end with
the platform's line terminator, and read back in binary mode so that every line has
an exact byte offset. Those offsets are what the checkpoint file records.
"""

import logging
import os
from pathlib import Path
from typing import NamedTuple

from .paths import SessionPaths
from ..errors import SetupError
from ..utils.cancellation import CancellationToken
from ..utils.walker import WalkPolicy, list_files

logger = logging.getLogger(__name__)

# Small on purpose: the reader never runs far ahead of the line being processed.
DEFAULT_BUFFER_SIZE = 256

_ENCODING = 'utf-8'
_ERRORS = 'surrogateescape'


class WorkItem(NamedTuple):
    """One line of the work list.

    Attributes:
        sequence: Position of the line among the lines read by one reader (0-based)
        path: The listed file
        start_offset: Byte offset of the first byte of the line
        end_offset: Byte offset just past the line terminator, i.e. where the next
                    line starts
    """
    sequence: int
    path: Path
    start_offset: int
    end_offset: int


class WorkListReader:
    """Forward-only iterator of WorkItems starting at a byte offset."""

    def __init__(self, path: Path, offset: int = 0, buffer_size: int = DEFAULT_BUFFER_SIZE):
        self._file = open(path, 'rb', buffering=buffer_size)
        try:
            self._file.seek(offset)
        except BaseException:
            self._file.close()
            raise
        self._offset = offset
        self._sequence = 0

    def __iter__(self):
        return self

    def __next__(self) -> WorkItem:
        if self._file.closed:
            raise StopIteration

        while True:
            raw = self._file.readline()
            if not raw:
                raise StopIteration

            start = self._offset
            self._offset += len(raw)

            text = raw.rstrip(b'\r\n')
            if not text:
                continue

            item = WorkItem(self._sequence, Path(text.decode(_ENCODING, _ERRORS)), start, self._offset)
            self._sequence += 1
            return item

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def offset(self) -> int:
        """Byte offset just past the last line returned."""
        return self._offset

    @property
    def closed(self) -> bool:
        return self._file.closed

    def close(self):
        self._file.close()


class WorkListStore:
    """Creates, reads and removes the work list file of a session."""

    def __init__(self, paths: SessionPaths, buffer_size: int = DEFAULT_BUFFER_SIZE):
        if buffer_size < 1:
            raise ValueError(f"buffer_size must be positive, got {buffer_size}")

        self._path = paths.work_list
        self._buffer_size = buffer_size

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def size(self) -> int:
        return self._path.stat().st_size

    def delete(self) -> bool:
        """Remove the work list.

        Returns:
            True if a file was removed, False if there was none
        """
        try:
            self._path.unlink()
        except FileNotFoundError:
            return False
        logger.info(f"Removed work list: {self._path}")
        return True

    def generate(self, root: Path, policy: WalkPolicy | None = None,
                 token: CancellationToken | None = None) -> int:
        """Walk root and append every accepted file to the work list.

        The list is only ever appended to. Callers must not generate into an existing
        list, since offsets recorded against it would no longer describe a finished
        prefix.

        Args:
            root: Directory to enumerate
            policy: Exclusions and extension filter; the work list itself is always
                    excluded
            token: Checked between files

        Returns:
            Number of paths written

        Raises:
            ScanInterrupted: token was cancelled; the list is left partially written
        """
        if policy is None:
            policy = WalkPolicy()
        policy = policy._replace(excluded_paths=set(policy.excluded_paths) | {self._path})

        logger.info(f"Generating work list {self._path} from {root}")

        count = 0
        with open(self._path, 'a', encoding=_ENCODING, errors=_ERRORS) as f:
            for file_path in list_files(root, policy):
                if token is not None:
                    token.raise_if_cancelled()

                line = os.fspath(file_path)
                if '\n' in line or '\r' in line:
                    logger.warning(f"Skipping path containing a line break: {line!r}")
                    continue

                f.write(line + '\n')
                count += 1

        logger.info(f"Listed {count} files in {self._path}")
        return count

    def open_for_read(self, from_offset: int = 0) -> WorkListReader:
        """Open the work list for reading from a byte offset.

        Raises:
            FileNotFoundError: The work list does not exist
            SetupError: from_offset is negative, beyond the end of the list or not at
                        the start of a line
        """
        if from_offset < 0:
            raise SetupError(f"Negative offset {from_offset} for work list {self._path}")

        size = self.size()
        if from_offset > size:
            raise SetupError(f"Offset {from_offset} is beyond the end of work list {self._path} ({size} bytes)")

        if from_offset > 0:
            with open(self._path, 'rb') as f:
                f.seek(from_offset - 1)
                if f.read(1) != b'\n':
                    raise SetupError(f"Offset {from_offset} is not at a line boundary of work list {self._path}")

        logger.info(f"Reading work list {self._path} from offset {from_offset}")
        return WorkListReader(self._path, from_offset, self._buffer_size)
