"""On-disk cache of parsed symbol definitions.

Repeat scans skip extraction for files whose content has not changed.

Cache Strategy:
- Key each file's entry by a SHA-256 digest of its content
- Store the parsed definitions (without usages) as JSON
- Usages are never cached; they depend on every other file in the scan

Cache Format: SQLite database
Location: .usedby_cache/ in project root
"""

import hashlib
import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Dict, List, Optional

from .models import Symbol

logger = logging.getLogger(__name__)


def content_digest(content: str) -> str:
    """SHA-256 hex digest of file text."""
    return hashlib.sha256(content.encode('utf-8', errors='surrogatepass')).hexdigest()


class SymbolCache:
    """Per-file cache of symbol definitions keyed by content digest."""

    def __init__(self, project_root: Path, cache_dir_name: str = '.usedby_cache'):
        """Initialize cache database.

        Args:
            project_root: Root directory of the project being scanned
            cache_dir_name: Name of the cache directory inside the project root
        """
        self.project_root = Path(project_root)
        self.cache_dir = self.project_root / cache_dir_name
        self.cache_file = self.cache_dir / 'symbols.db'

        self.cache_dir.mkdir(parents=True, exist_ok=True)

        self.conn = sqlite3.connect(str(self.cache_file))
        self._init_database()

    def _init_database(self):
        """Create cache tables if they don't exist."""
        cursor = self.conn.cursor()
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS symbol_definitions (
                file_path TEXT PRIMARY KEY,
                digest TEXT NOT NULL,
                symbol_data TEXT NOT NULL,
                timestamp REAL NOT NULL
            )
        ''')
        cursor.execute('''
            CREATE INDEX IF NOT EXISTS idx_digest
            ON symbol_definitions(digest)
        ''')
        self.conn.commit()

    def get_symbols(self, file_path: str, content: str) -> Optional[List[Symbol]]:
        """Get cached definitions for a file if its content is unchanged.

        Args:
            file_path: Path the symbols were recorded under
            content: Current file text

        Returns:
            List of Symbol objects, or None on a cache miss
        """
        cursor = self.conn.cursor()
        cursor.execute('''
            SELECT digest, symbol_data FROM symbol_definitions
            WHERE file_path = ?
        ''', (str(file_path),))

        result = cursor.fetchone()
        if not result or result[0] != content_digest(content):
            return None

        try:
            return [Symbol.from_dict(data) for data in json.loads(result[1])]
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            logger.warning("Discarding corrupt cache entry for %s: %s", file_path, e)
            self.invalidate_file(file_path)
            return None

    def set_symbols(self, file_path: str, content: str, symbols: List[Symbol]):
        """Cache definitions for a file.

        Args:
            file_path: Path the symbols were recorded under
            content: File text the symbols were parsed from
            symbols: Parsed definitions (usages are dropped)
        """
        symbol_data = json.dumps([
            {**symbol.to_dict(), 'usages': []} for symbol in symbols
        ])
        cursor = self.conn.cursor()
        cursor.execute('''
            INSERT OR REPLACE INTO symbol_definitions (file_path, digest, symbol_data, timestamp)
            VALUES (?, ?, ?, ?)
        ''', (str(file_path), content_digest(content), symbol_data, time.time()))
        self.conn.commit()

    def invalidate_file(self, file_path: str):
        """Invalidate cache for a specific file."""
        cursor = self.conn.cursor()
        cursor.execute('DELETE FROM symbol_definitions WHERE file_path = ?', (str(file_path),))
        self.conn.commit()

    def clear_cache(self):
        """Clear all cached data."""
        cursor = self.conn.cursor()
        cursor.execute('DELETE FROM symbol_definitions')
        self.conn.commit()

    def get_cache_stats(self) -> Dict[str, int]:
        """Get cache statistics."""
        cursor = self.conn.cursor()
        cursor.execute('SELECT COUNT(*) FROM symbol_definitions')
        total_files = cursor.fetchone()[0]

        symbols_cached = 0
        cursor.execute('SELECT symbol_data FROM symbol_definitions')
        for (symbol_data,) in cursor.fetchall():
            try:
                symbols_cached += len(json.loads(symbol_data))
            except json.JSONDecodeError:
                continue

        return {
            'total_files': total_files,
            'symbols_cached': symbols_cached,
        }

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
