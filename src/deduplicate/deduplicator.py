import asyncio
import logging
import os
from pathlib import Path
from typing import Awaitable, Callable, Iterable, NamedTuple

from .commands.resume import ResumeController
from .commands.scan import DEFAULT_CONCURRENCY, HashScheduler
from .errors import HashError, ScanInterrupted, SetupError
from .report.sink import ResultSink
from .state.checkpoint import CheckpointStore
from .state.paths import SessionPaths
from .state.settings import (Settings, SETTING_BUFFER_SIZE, SETTING_CONCURRENCY, SETTING_HASH_ALGORITHM,
                             SETTING_KEEP_GOING, SETTING_TYPES)
from .state.work_list import DEFAULT_BUFFER_SIZE, WorkListStore
from .utils.processor import DEFAULT_HASH_ALGORITHM
from .utils.walker import WalkPolicy, normalize_extensions

logger = logging.getLogger(__name__)


class ScanOptions(NamedTuple):
    """Tunables of a scan."""
    concurrency: int = DEFAULT_CONCURRENCY
    buffer_size: int = DEFAULT_BUFFER_SIZE
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM
    extensions: tuple[str, ...] | None = None  # Allowed suffixes, None for all files
    isolate_errors: bool = False  # Skip unhashable files instead of failing the scan

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> 'ScanOptions':
        """Build options from settings, letting non-None overrides win.

        Args:
            settings: Loaded deduplicate.toml
            overrides: Field values from the command line; None means "not given"
        """
        options = cls(
            concurrency=int(settings.get(SETTING_CONCURRENCY, DEFAULT_CONCURRENCY)),
            buffer_size=int(settings.get(SETTING_BUFFER_SIZE, DEFAULT_BUFFER_SIZE)),
            hash_algorithm=str(settings.get(SETTING_HASH_ALGORITHM, DEFAULT_HASH_ALGORITHM)),
            extensions=normalize_extensions(settings.get(SETTING_TYPES)),
            isolate_errors=bool(settings.get(SETTING_KEEP_GOING, False)),
        )

        unknown = set(overrides) - set(cls._fields)
        if unknown:
            raise TypeError(f"Unknown scan options: {', '.join(sorted(unknown))}")

        return options._replace(**{k: v for k, v in overrides.items() if v is not None})


class ScanResult(NamedTuple):
    """Summary of a finished Deduplicator.process() call."""
    resumed: bool
    start_offset: int
    listed: int | None  # Files written to the work list, None when resuming
    classified: int
    distinct: int  # Distinct contents among the classified files
    duplicates: int
    skipped: int
    failed: int


class Deduplicator:
    """Workflow of one deduplication run over a directory tree.

    process() decides between resuming an interrupted scan and starting over,
    generates the work list when needed, runs the HashScheduler and finally either
    removes the session state (success) or checkpoints it (interruption or failure).

    Contrast with HashScheduler, which only knows how to scan a given work list from a
    given offset. Deduplicator owns the persisted files and the process lifetime
    around that scan.
    """

    def __init__(self,
                 directory: str | os.PathLike,
                 calculate_digest: Callable[[Path], Awaitable[bytes]],
                 state_directory: str | os.PathLike | None = None,
                 options: ScanOptions | None = None):
        """Initialize the run.

        Args:
            directory: Root of the tree to scan
            calculate_digest: Coroutine function returning a file's content digest,
                              typically Processor.digest
            state_directory: Where the work list and lock file live; defaults to the
                             current working directory
            options: Scan tunables, defaults to ScanOptions()
        """
        self._directory = Path(directory)
        self._calculate_digest = calculate_digest
        self._options = options if options is not None else ScanOptions()

        if state_directory is None:
            state_directory = Path.cwd()
        self._paths = SessionPaths.in_directory(Path(state_directory))
        self._work_list = WorkListStore(self._paths, self._options.buffer_size)
        self._checkpoint = CheckpointStore(self._paths)

    @property
    def paths(self) -> SessionPaths:
        return self._paths

    @property
    def options(self) -> ScanOptions:
        return self._options

    def process(self,
                sink: ResultSink,
                should_resume: Callable[[Path], bool] | None = None,
                excluded_paths: Iterable[Path] = ()) -> ScanResult:
        """Run a complete scan, resuming an interrupted one if asked to.

        Args:
            sink: Receives the duplicate records; opened and closed here
            should_resume: Called with the work list path when a previous work list
                           exists; True resumes from the lock file, False starts over.
                           None always resumes.
            excluded_paths: Additional files never listed, e.g. the result file

        Raises:
            SetupError: Work list and lock file are inconsistent
            HashError: A file could not be hashed (checkpoint saved)
            ScanInterrupted: A termination signal stopped the scan (checkpoint saved)
        """
        start_offset, resumed = self._prepare(should_resume)

        with ResumeController(self._work_list, self._checkpoint) as controller:
            listed = None
            if not resumed:
                listed = self._generate(controller, excluded_paths)

            scheduler = HashScheduler(
                self._calculate_digest, sink, self._options.concurrency,
                token=controller.token, isolate_errors=self._options.isolate_errors)

            with controller.attached(scheduler):
                try:
                    with sink:
                        asyncio.run(scheduler.run(self._work_list, start_offset))
                except (ScanInterrupted, HashError):
                    controller.checkpoint()
                    raise

            controller.complete()

        session = scheduler.session
        return ScanResult(resumed, start_offset, listed, session.classified, len(session.index),
                          session.duplicates, session.skipped, session.failed)

    def _prepare(self, should_resume: Callable[[Path], bool] | None) -> tuple[int, bool]:
        """Check the persisted state and pick the offset to start from.

        Returns:
            Tuple of (start_offset, resumed)
        """
        list_exists = self._work_list.exists()
        lock_exists = self._checkpoint.exists()

        if lock_exists and not list_exists:
            raise SetupError(f"Lock file {self._checkpoint.path} exists but work list {self._work_list.path} "
                             f"is missing")

        if not list_exists:
            return 0, False

        if should_resume is None or should_resume(self._work_list.path):
            offset = self._checkpoint.read()
            logger.info(f"Resuming scan from offset {offset} of {self._work_list.path}")
            return offset, True

        logger.info(f"Discarding unfinished scan in {self._work_list.path}")
        self._work_list.delete()
        self._checkpoint.delete()
        return 0, False

    def _generate(self, controller: ResumeController, excluded_paths: Iterable[Path]) -> int:
        policy = WalkPolicy(
            excluded_paths=self._paths.all() | {Path(p) for p in excluded_paths},
            extensions=self._options.extensions)

        with controller.generating():
            try:
                return self._work_list.generate(self._directory, policy, controller.token)
            except BaseException:
                # A partial list would look like a resumable scan on the next run
                self._work_list.delete()
                raise
