import asyncio
import logging
from asyncio import TaskGroup
from enum import StrEnum
from pathlib import Path
from typing import Awaitable, Callable

from ..errors import HashError, ScanInterrupted, TransientFileError
from ..index.dedup_index import DedupIndex
from ..report.sink import DuplicateRecord, ResultSink
from ..state.work_list import WorkItem, WorkListReader, WorkListStore
from ..utils.cancellation import CancellationToken
from ..utils.text import shorten_path
from ..utils.throttler import Throttler

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 10


class ScanState(StrEnum):
    IDLE = 'idle'
    SCANNING = 'scanning'
    PAUSED = 'paused'
    COMPLETED = 'completed'
    ABORTED = 'aborted'


class CheckpointCandidates:
    """The two most recent distinct offsets up to which the work list is processed.

    Only `previous` is ever persisted: when a scan is stopped, `current` may belong to
    a line whose record has not made it to the sink yet.
    """

    def __init__(self, offset: int):
        self.previous = offset
        self.current = offset

    def record(self, offset: int):
        if offset != self.current:
            self.previous = self.current
            self.current = offset


class ScanSession:
    """State of one HashScheduler.run() call.

    Owns the work list reader and the DedupIndex. Finished hashes wait in a reorder
    buffer keyed by dispatch sequence until every earlier item is accounted for, so
    classification always happens in work-list order.
    """

    def __init__(self, reader: WorkListReader, start_offset: int):
        self.reader = reader
        self.index = DedupIndex()
        self.start_offset = start_offset
        self.candidates = CheckpointCandidates(start_offset)
        self.aborted = False
        self.exhausted = False

        self.dispatched = 0
        self.accounted = 0
        self.classified = 0
        self.skipped = 0
        self.failed = 0
        self.duplicates = 0

        self.finished: dict[int, tuple[WorkItem, bytes | None]] = {}

    @property
    def in_flight(self) -> int:
        return self.dispatched - self.accounted

    @property
    def safe_offset(self) -> int:
        return self.candidates.previous

    @property
    def complete(self) -> bool:
        return self.exhausted and self.in_flight == 0

    def abort(self):
        """Stop the session: nothing is classified afterwards and the reader is closed."""
        self.aborted = True
        self.reader.close()


class HashScheduler:
    """Hashes the files of a work list with bounded concurrency and finds duplicates.

    Lines are read one at a time. Each one takes a credit from a Throttler before it is
    hashed and gives it back only once it has been classified, so reading pauses while
    `concurrency` items are outstanding and resumes when one is accounted for.

    Digests are computed concurrently and may complete in any order. Classification
    against the DedupIndex, record emission and checkpoint bookkeeping happen strictly
    in dispatch order, and only after re-checking that the scan has not been aborted.
    """

    def __init__(self,
                 calculate_digest: Callable[[Path], Awaitable[bytes]],
                 sink: ResultSink | None = None,
                 concurrency: int = DEFAULT_CONCURRENCY,
                 *,
                 token: CancellationToken | None = None,
                 isolate_errors: bool = False):
        """Initialize the scheduler.

        Args:
            calculate_digest: Coroutine function returning the content digest of a file
            sink: Receives one line per duplicate found
            concurrency: Maximum number of items between dispatch and classification
            token: Cancellation token observed at every suspension point
            isolate_errors: Skip files that fail to hash instead of failing the scan
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")

        self._calculate_digest = calculate_digest
        self._sink = sink
        self._concurrency = concurrency
        self._token = token if token is not None else CancellationToken()
        self._isolate_errors = isolate_errors

        self._state = ScanState.IDLE
        self._session: ScanSession | None = None
        self._throttler: Throttler | None = None
        self._failure: HashError | None = None

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def session(self) -> ScanSession | None:
        return self._session

    @property
    def token(self) -> CancellationToken:
        return self._token

    async def run(self, work_list: WorkListStore, start_offset: int = 0) -> DedupIndex:
        """Process every line from start_offset to the end of the work list.

        Returns:
            The DedupIndex built during the scan

        Raises:
            FileNotFoundError: The work list does not exist
            SetupError: start_offset is not a valid position in the work list
            HashError: A file could not be hashed and errors are not isolated
            ScanInterrupted: The token was cancelled before all lines were accounted for
        """
        if self._state != ScanState.IDLE:
            raise RuntimeError(f"Scheduler already used (state: {self._state})")

        reader = work_list.open_for_read(start_offset)
        session = self._session = ScanSession(reader, start_offset)
        loop = asyncio.get_running_loop()

        def wake():
            if self._throttler is not None:
                loop.call_soon_threadsafe(self._throttler.wake)

        self._state = ScanState.SCANNING
        logger.info(f"Scanning {work_list.path} from offset {start_offset} with concurrency {self._concurrency}")

        self._token.add_callback(wake)
        try:
            async with TaskGroup() as tg:
                self._throttler = Throttler(tg, self._concurrency)
                await self._dispatch(session, self._throttler)
        finally:
            self._token.remove_callback(wake)
            session.reader.close()

        if self._failure is not None:
            self._state = ScanState.ABORTED
            raise self._failure

        if self._aborted() and not session.complete:
            self._state = ScanState.ABORTED
            reason = self._token.reason
            logger.info(f"Scan aborted, safe offset is {session.safe_offset}")
            raise ScanInterrupted(reason if isinstance(reason, int) else None)

        self._state = ScanState.COMPLETED
        logger.info(f"Scan completed: {session.classified} files classified, {session.duplicates} duplicates, "
                    f"{session.skipped} skipped, {session.failed} failed")
        return session.index

    def _aborted(self) -> bool:
        return self._token.cancelled or self._failure is not None or \
            (self._session is not None and self._session.aborted)

    async def _dispatch(self, session: ScanSession, throttler: Throttler):
        """Read the work list and hand each line to hashing, one credit per line."""
        for item in session.reader:
            if self._aborted():
                return

            if throttler.saturated:
                self._state = ScanState.PAUSED
                logger.debug(f"Pausing intake with {throttler.in_flight} items in flight")

            if not item.path.exists():
                if not await throttler.acquire(self._aborted):
                    return
                self._resume_intake()
                session.dispatched += 1
                session.skipped += 1
                logger.info(f"Skipping missing file: {item.path}")
                self._finish(item, None)
                continue

            if await throttler.schedule(self._hash(item), self._aborted) is None:
                return
            self._resume_intake()
            session.dispatched += 1

        session.exhausted = not session.aborted

    def _resume_intake(self):
        if self._state == ScanState.PAUSED:
            self._state = ScanState.SCANNING
            logger.debug("Resuming intake")

    async def _digest(self, path: Path) -> bytes:
        try:
            return await self._calculate_digest(path)
        except FileNotFoundError:
            raise TransientFileError(path) from None
        except OSError as e:
            raise HashError(path, e) from e

    async def _hash(self, item: WorkItem):
        session = self._session
        try:
            digest = await self._digest(item.path)
        except TransientFileError as e:
            if self._aborted():
                return
            logger.info(f"{e}, skipping")
            session.skipped += 1
            self._finish(item, None)
            return
        except HashError as error:
            if self._aborted():
                return

            if not self._isolate_errors:
                logger.error(str(error))
                self._failure = error
                self._throttler.wake()
                return

            logger.warning(f"{error}, skipping")
            session.failed += 1
            self._finish(item, None)
            return

        if self._aborted():
            logger.debug(f"Discarding digest of {item.path} computed after abort")
            return

        logger.info(f'Hashing "{shorten_path(item.path)}" -> {digest.hex()}')
        self._finish(item, digest)

    def _finish(self, item: WorkItem, digest: bytes | None):
        """Park a finished item and classify every item that is now next in order."""
        if self._aborted():
            return

        session = self._session
        session.finished[item.sequence] = (item, digest)

        while session.accounted in session.finished:
            item, digest = session.finished.pop(session.accounted)

            if digest is not None:
                classification = session.index.classify(digest, item.path)
                session.classified += 1
                if classification.is_duplicate:
                    session.duplicates += 1
                    logger.info(f"Duplicate: {item.path} (original: {classification.original})")
                    if self._sink is not None:
                        self._sink.log_record(DuplicateRecord(classification.original, item.path))

            session.candidates.record(item.end_offset)
            session.accounted += 1
            self._throttler.release()
