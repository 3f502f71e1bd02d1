"""Source file enumeration and batched concurrent reads."""
import fnmatch
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Sequence, Tuple

from .errors import FileReadError, InputNotFoundError

logger = logging.getLogger(__name__)

# Never descend into these, whatever the include patterns say
EXCLUDED_DIRS = {
    'node_modules', 'vendor', 'bower_components', '.git', '.svn', '.hg',
    '.usedby_cache', '__pycache__', '.venv', 'venv',
}


@dataclass
class SourceFile:
    """A file path paired with its text."""
    path: str
    content: str


def _is_excluded(relative: str, exclude_patterns: Sequence[str]) -> bool:
    for pattern in exclude_patterns:
        if fnmatch.fnmatch(relative, pattern):
            return True
        # 'vendor/**' also excludes a nested 'lib/vendor/x.php'
        if pattern.endswith('/**') and f"/{pattern[:-3]}/" in f"/{relative}":
            return True
    return False


def discover_files(root: Path, include_patterns: Sequence[str], exclude_patterns: Sequence[str] = (),
                   max_files: int = 0) -> List[Path]:
    """Find files under ``root`` matching the include globs.

    Args:
        root: Directory to search
        include_patterns: Glob patterns relative to root (e.g. '**/*.php')
        exclude_patterns: Glob patterns relative to root to skip
        max_files: Stop after this many files (0 for no limit)

    Returns:
        Sorted, de-duplicated absolute paths

    Raises:
        InputNotFoundError: If root does not exist
    """
    root = Path(root).resolve()
    if not root.exists():
        raise InputNotFoundError(f"Path does not exist: {root}")
    if root.is_file():
        return [root]

    found = set()
    for pattern in include_patterns:
        if not pattern.startswith('**'):
            pattern = f'**/{pattern}'
        for file_path in root.glob(pattern):
            if not file_path.is_file():
                continue
            relative = file_path.relative_to(root)
            if any(part in EXCLUDED_DIRS for part in relative.parts[:-1]):
                continue
            if _is_excluded(relative.as_posix(), exclude_patterns):
                continue
            found.add(file_path)

    files = sorted(found)
    if max_files and len(files) > max_files:
        logger.warning("Limiting scan to %d files (out of %d found)", max_files, len(files))
        files = files[:max_files]
    return files


def read_source(path: Path) -> SourceFile:
    """Read one file as UTF-8 text.

    Raises:
        FileReadError: If the file cannot be read or decoded
    """
    try:
        with open(path, encoding='utf-8', newline='') as handle:
            return SourceFile(path=str(path), content=handle.read())
    except (OSError, UnicodeDecodeError) as e:
        raise FileReadError(path, e) from e


def read_files(paths: Sequence[Path], max_workers: int = 8) -> Tuple[List[SourceFile], List[FileReadError]]:
    """Read a batch of files concurrently.

    Unreadable files are logged and reported, never raised.

    Args:
        paths: Files to read
        max_workers: Thread pool size

    Returns:
        Tuple of (files read, in input order; read errors)
    """
    if not paths:
        return [], []

    def attempt(path):
        try:
            return read_source(path)
        except FileReadError as e:
            return e

    sources, errors = [], []
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(paths)))) as executor:
        for outcome in executor.map(attempt, paths):
            if isinstance(outcome, FileReadError):
                logger.warning("Skipping %s: %s", outcome.path, outcome.reason)
                errors.append(outcome)
            else:
                sources.append(outcome)
    return sources, errors


def iter_batches(paths: Sequence[Path], size: int) -> Iterator[List[Path]]:
    """Split paths into consecutive batches of at most ``size``."""
    size = max(1, size)
    for start in range(0, len(paths), size):
        yield list(paths[start:start + size])
