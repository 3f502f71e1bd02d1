"""Write annotated text back to disk."""
import logging
from pathlib import Path

from usedby.analyzer.errors import FileWriteError

logger = logging.getLogger(__name__)


def write_if_changed(path: Path, new_content: str) -> bool:
    """Replace a file's text only when it differs from what is on disk.

    Args:
        path: File to update
        new_content: Full new text

    Returns:
        True if the file was written, False if it was already up to date

    Raises:
        FileWriteError: If the file cannot be read back or written
    """
    path = Path(path)
    try:
        with open(path, encoding='utf-8', newline='') as f:
            if f.read() == new_content:
                return False

        # Write to temp file first for atomic operation
        temp_path = path.with_name(f"{path.name}.usedby.tmp")
        with open(temp_path, 'w', encoding='utf-8', newline='') as f:
            f.write(new_content)
        temp_path.replace(path)
    except (OSError, UnicodeError) as e:
        logger.error("Failed to write %s: %s", path, e)
        raise FileWriteError(path, e) from e

    logger.debug("Updated %s", path)
    return True
