"""Result sinks receiving one line per detected duplicate."""

import os
import sys
import time
from pathlib import Path
from typing import NamedTuple, TextIO


class DuplicateRecord(NamedTuple):
    """A detected duplicate paired with the original it duplicates.

    Serialized as a single line: the original path, a tab, the duplicate path.
    """
    original: Path
    duplicate: Path

    def to_line(self) -> str:
        return f"{os.fspath(self.original)}\t{os.fspath(self.duplicate)}"

    @classmethod
    def from_line(cls, line: str) -> 'DuplicateRecord':
        original, sep, duplicate = line.rstrip('\r\n').partition('\t')
        if not sep:
            raise ValueError(f"Not a duplicate record: {line!r}")
        return cls(Path(original), Path(duplicate))


def default_result_path(timestamp: float | None = None) -> Path:
    """Name of the result file used when none is given: dedup-results-<ms>.txt."""
    if timestamp is None:
        timestamp = time.time()
    return Path(f"dedup-results-{int(timestamp * 1000)}.txt")


class ResultSink:
    """Scoped line logger: open() before the first log(), close() once at the end.

    Subclasses implement _open(), _write() and _close().
    """

    def __init__(self):
        self._opened = False
        self._closed = False

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def open(self) -> None:
        if self._opened:
            raise RuntimeError(f"{type(self).__name__} is already open")
        self._opened = True
        self._open()

    def log(self, line: str) -> None:
        if not self._opened or self._closed:
            raise RuntimeError(f"{type(self).__name__} must be open to log")
        self._write(line)

    def log_record(self, record: DuplicateRecord) -> None:
        self.log(record.to_line())

    def close(self) -> None:
        if not self._opened or self._closed:
            return
        self._closed = True
        self._close()

    def _open(self) -> None:
        pass

    def _write(self, line: str) -> None:
        raise NotImplementedError

    def _close(self) -> None:
        pass


class FileResultSink(ResultSink):
    """Appends records to a file, flushing after each one."""

    def __init__(self, path: Path | None = None):
        super().__init__()
        self.path: Path = default_result_path() if path is None else path
        self._stream: TextIO | None = None

    def _open(self) -> None:
        self._stream = open(self.path, 'a', encoding='utf-8', errors='surrogateescape')

    def _write(self, line: str) -> None:
        self._stream.write(line + '\n')
        self._stream.flush()

    def _close(self) -> None:
        self._stream.close()
        self._stream = None


class ConsoleResultSink(ResultSink):
    """Prints records to a stream, standard output by default."""

    def __init__(self, stream: TextIO | None = None):
        super().__init__()
        self._stream = stream

    def _write(self, line: str) -> None:
        print(line, file=self._stream if self._stream is not None else sys.stdout, flush=True)
