import asyncio
import hashlib
import logging
import multiprocessing
import pathlib
import signal
from multiprocessing.pool import Pool
from typing import Awaitable

import mmh3

from .signals import TERMINATION_SIGNALS

logger = logging.getLogger(__name__)

DEFAULT_HASH_ALGORITHM = 'md5'

# Digest sizes of the supported algorithms
HASH_ALGORITHMS = {
    'md5': 16,
    'sha1': 20,
    'sha256': 32,
    'mmh3': 16,
}

_MMH3_CHUNK_SIZE = 1 << 20


def compute_digest_for_path(path: pathlib.Path, algorithm: str) -> bytes:
    with open(path, "rb") as f:
        if algorithm == 'mmh3':
            hasher = mmh3.mmh3_x64_128()
            while chunk := f.read(_MMH3_CHUNK_SIZE):
                hasher.update(chunk)
            return hasher.digest()

        # noinspection PyTypeChecker
        return hashlib.file_digest(f, algorithm).digest()


def _ignore_interrupts():
    # Terminal and group-wide signals reach the workers too; only the main process handles them.
    # A worker killed mid-task is replaced by the pool but its result never arrives.
    for signum in TERMINATION_SIGNALS:
        signal.signal(signum, signal.SIG_IGN)


class Processor:
    """Pool of worker processes computing file digests for asyncio code."""

    def __init__(self, concurrency: int | None = None, algorithm: str = DEFAULT_HASH_ALGORITHM):
        if concurrency is None:
            concurrency = multiprocessing.cpu_count()

        if algorithm not in HASH_ALGORITHMS:
            raise ValueError(f"Unknown hash algorithm: {algorithm}")

        self._concurrency = concurrency
        self._algorithm = algorithm
        self._pool: Pool = Pool(self._concurrency, initializer=_ignore_interrupts)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.close()
        else:
            self.terminate()

    def close(self):
        self._pool.close()
        self._pool.join()

    def terminate(self):
        self._pool.terminate()
        self._pool.join()

    def digest(self, path: pathlib.Path) -> Awaitable[bytes]:
        """Compute the content digest of a file.

        Errors raised in the worker (FileNotFoundError, PermissionError, ...) are
        raised again when the result is awaited.
        """
        logger.debug(f"Starting hash computation for: {path}")

        async def log_and_compute():
            result = await self._evaluate(compute_digest_for_path, path, self._algorithm)
            logger.debug(f"Completed hash computation for: {path}")
            return result

        return log_and_compute()

    def _evaluate(self, func, *args):
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def resolve(v):
            if not future.done():
                future.set_result(v)

        def reject(e):
            if not future.done():
                future.set_exception(e)

        self._pool.apply_async(func, args=args,
                               callback=lambda v: loop.call_soon_threadsafe(resolve, v),
                               error_callback=lambda e: loop.call_soon_threadsafe(reject, e))

        return future
