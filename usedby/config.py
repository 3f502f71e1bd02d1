"""Configuration management for usedby.

Loads environment variables and provides centralized config access.
"""
import os
from pathlib import Path
from typing import List
from dotenv import load_dotenv

__version__ = "0.3.0"

DEFAULT_INCLUDE = ["**/*.php", "**/*.js", "**/*.css"]
DEFAULT_EXCLUDE = ["node_modules/**", "vendor/**", "dist/**", "build/**"]


def _split_list(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    """Configuration loader with environment variable support."""

    def __init__(self, env_path: Path = None):
        """Initialize config by loading .env file.

        Args:
            env_path: Optional explicit .env location (defaults to the
                      current working directory)
        """
        load_dotenv(env_path or Path.cwd() / ".env")

    @property
    def include_patterns(self) -> List[str]:
        """Get glob patterns of files to scan.

        Returns:
            List of include patterns (USEDBY_INCLUDE, comma separated)
        """
        raw = os.getenv("USEDBY_INCLUDE")
        return _split_list(raw) if raw else list(DEFAULT_INCLUDE)

    @property
    def exclude_patterns(self) -> List[str]:
        """Get glob patterns of files to skip.

        Returns:
            List of exclude patterns (USEDBY_EXCLUDE, comma separated)
        """
        raw = os.getenv("USEDBY_EXCLUDE")
        return _split_list(raw) if raw else list(DEFAULT_EXCLUDE)

    @property
    def scan_depth(self) -> str:
        """Get default scan depth ('basic' or 'deep')."""
        depth = os.getenv("USEDBY_SCAN_DEPTH", "deep").lower()
        return depth if depth in ("basic", "deep") else "deep"

    @property
    def batch_size(self) -> int:
        """Get the number of files read concurrently per batch."""
        return int(os.getenv("USEDBY_BATCH_SIZE", "50"))

    @property
    def max_files(self) -> int:
        """Get the maximum number of files a single scan will process."""
        return int(os.getenv("USEDBY_MAX_FILES", "1000"))

    @property
    def cache_dir(self) -> str:
        """Get symbol cache directory name.

        Returns:
            Directory name, relative to the scanned project root
        """
        return os.getenv("USEDBY_CACHE_DIR", ".usedby_cache")

    @property
    def diagram_type(self) -> str:
        """Get default inline diagram flavour ('flowchart' or 'graph')."""
        return os.getenv("USEDBY_DIAGRAM_TYPE", "flowchart")


# Singleton instance
_config = None


def get_config() -> Config:
    """Get or create singleton Config instance.

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config()
    return _config
