"""Locations of the files that make up a scan's persisted state."""

from pathlib import Path
from typing import NamedTuple

WORK_LIST_NAME = 'deduplicate-list'
CHECKPOINT_NAME = 'deduplicate.lock'
SETTINGS_NAME = 'deduplicate.toml'


class SessionPaths(NamedTuple):
    """Paths of the work list and the checkpoint (lock) file.

    Attributes:
        work_list: Newline-delimited list of files to scan
        checkpoint: File holding the byte offset reached in the work list; its
                    presence marks an interrupted run
    """
    work_list: Path
    checkpoint: Path

    @classmethod
    def in_directory(cls, directory: Path) -> 'SessionPaths':
        """Use the fixed file names inside the given state directory.

        Both paths are made absolute so that a later change of the working directory
        does not move the session.
        """
        directory = directory.absolute()
        return cls(directory / WORK_LIST_NAME, directory / CHECKPOINT_NAME)

    def all(self) -> set[Path]:
        return {self.work_list, self.checkpoint}
