import logging
import os
import stat
from pathlib import Path
from typing import Iterable, Iterator, NamedTuple

logger = logging.getLogger(__name__)


def walk(path: Path, excluded_paths: set[Path] = frozenset()) -> Iterator[Path]:
    """Recursively traverse a directory, depth-first, yielding regular files.

    Directories are descended into but never yielded. Symlinks are not followed and,
    like sockets, FIFOs and devices, not yielded either. Entries whose absolute path is
    in excluded_paths are skipped (for directories, with everything below them).

    Sibling order is whatever the filesystem returns.
    """
    try:
        children = list(path.iterdir())
    except (PermissionError, FileNotFoundError, NotADirectoryError) as e:
        # Unreadable, or removed or replaced since it was listed
        logger.warning(f"Skipping directory: {path} ({e.strerror})")
        return

    child: Path
    for child in children:
        if child in excluded_paths:
            continue

        try:
            st = child.stat(follow_symlinks=False)
        except (PermissionError, FileNotFoundError) as e:
            logger.warning(f"Skipping entry: {child} ({e.strerror})")
            continue

        if stat.S_ISDIR(st.st_mode):
            yield from walk(child, excluded_paths)
        elif stat.S_ISREG(st.st_mode):
            yield child


class WalkPolicy(NamedTuple):
    """Policy controlling which files are listed.

    Attributes:
        excluded_paths: Absolute paths never listed, e.g. the session's own state and
                        result files when they live inside the scanned tree
        extensions: Allowed file name suffixes such as '.txt', matched
                    case-sensitively; None lists every file
    """
    excluded_paths: set[Path] = frozenset()
    extensions: tuple[str, ...] | None = None

    def accepts(self, path: Path) -> bool:
        if self.extensions is None:
            return True
        return path.name.endswith(self.extensions)


def normalize_extensions(types: str | Iterable[str] | None) -> tuple[str, ...] | None:
    """Turn a comma-separated list (or an iterable) of extensions into suffixes.

    A missing leading dot is added, so 'txt,.jpg' becomes ('.txt', '.jpg'). Empty
    input means no filtering and returns None.

    >>> normalize_extensions('txt, .jpg,')
    ('.txt', '.jpg')
    """
    if types is None:
        return None

    if isinstance(types, str):
        types = types.split(',')

    extensions = []
    for item in types:
        item = item.strip()
        if not item:
            continue
        if not item.startswith('.'):
            item = '.' + item
        if item not in extensions:
            extensions.append(item)

    return tuple(extensions) or None


def list_files(root: Path, policy: WalkPolicy) -> Iterator[Path]:
    """List absolute paths of the regular files under root that the policy accepts.

    Args:
        root: Directory to walk; a relative path is resolved against the current
              working directory (without following symlinks)
        policy: WalkPolicy instance controlling exclusions and extension filtering

    Raises:
        FileNotFoundError: root does not exist
        NotADirectoryError: root is not a directory
    """
    root = Path(os.path.normpath(root.absolute()))

    if not root.exists():
        raise FileNotFoundError(f"Directory does not exist: {root}")
    if not root.is_dir():
        raise NotADirectoryError(f"Not a directory: {root}")

    excluded = {Path(os.path.normpath(p.absolute())) for p in policy.excluded_paths}

    for file_path in walk(root, excluded):
        if policy.accepts(file_path):
            yield file_path
