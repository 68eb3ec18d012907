from pathlib import Path
from typing import NamedTuple


class Classification(NamedTuple):
    """Outcome of classifying one path against the index.

    Attributes:
        path: The classified path
        digest: Its content digest
        original: The first path seen with the same digest, or None if path is itself
                  the original
    """
    path: Path
    digest: bytes
    original: Path | None = None

    @property
    def is_duplicate(self) -> bool:
        return self.original is not None


class DedupIndex:
    """In-memory map from content digest to the first path seen with it.

    The first path classified for a digest becomes the original; every later one is
    a duplicate of that original, never of an earlier duplicate. Callers feed paths in
    work-list order, which makes "first" mean earliest in the list. Size, mtime and
    name play no part.
    """

    def __init__(self):
        self._originals: dict[bytes, Path] = {}

    def classify(self, digest: bytes, path: Path) -> Classification:
        original = self._originals.get(digest)
        if original is None:
            self._originals[digest] = path
            return Classification(path, digest)

        return Classification(path, digest, original)

    def __len__(self) -> int:
        return len(self._originals)
