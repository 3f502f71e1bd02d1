"""Symbol table owner: drives extractors over batches of files.

A batch runs in two passes. Pass 1 re-extracts the definitions of every file
(clear-by-file, then insert). Pass 2, in deep mode only, recomputes the full
usage list of every known symbol against every file of the batch.
"""
import logging
import time
from pathlib import PurePath
from typing import Dict, Iterable, List, Optional

from .cache import SymbolCache
from .css_extractor import StylesheetExtractor
from .extractor import LanguageExtractor, LineIndex
from .js_extractor import BehaviorExtractor
from .models import ScanOptions, ScanResult, Symbol, Usage
from .php_extractor import ScriptClassExtractor

logger = logging.getLogger(__name__)


def _normalize_extension(extension: str) -> str:
    extension = extension.lower()
    return extension if extension.startswith('.') else f'.{extension}'


class Scanner:
    """Authoritative symbol table for one scan session."""

    def __init__(self, cache: Optional[SymbolCache] = None):
        """Initialize an empty scanner.

        Args:
            cache: Optional on-disk definition cache consulted by ``scan_file``
        """
        self.cache = cache
        self._parsers: Dict[str, LanguageExtractor] = {}
        self._symbols: Dict[str, Symbol] = {}
        self._file_symbols: Dict[str, List[str]] = {}
        self._file_timestamps: Dict[str, float] = {}

    def register_parser(self, extension: str, parser: LanguageExtractor):
        """Map a file extension to an extractor (last registration wins)."""
        self._parsers[_normalize_extension(extension)] = parser

    def get_parser_for_file(self, file_path: str) -> Optional[LanguageExtractor]:
        return self._parsers.get(PurePath(file_path).suffix.lower())

    @property
    def symbols(self) -> List[Symbol]:
        """All known symbols in deterministic order."""
        return sorted(
            self._symbols.values(),
            key=lambda s: (s.file_path, s.position.line, s.position.character, s.name),
        )

    def scan_file(self, file_path: str, content: str, use_cache: bool = True) -> List[Symbol]:
        """Replace the definitions recorded for a file.

        Args:
            file_path: Path of the file
            content: Current file text
            use_cache: Consult and update the on-disk cache when one is attached

        Returns:
            Symbols now attributed to the file (without usages)
        """
        parser = self.get_parser_for_file(file_path)
        if parser is None:
            return []

        self._clear_file(file_path)

        symbols = None
        if self.cache is not None and use_cache:
            symbols = self.cache.get_symbols(file_path, content)
        if symbols is None:
            symbols = parser.parse_symbols(content, file_path)
            if self.cache is not None and use_cache:
                self.cache.set_symbols(file_path, content, symbols)

        for symbol in symbols:
            self._symbols[symbol.id] = symbol
        self._file_symbols[file_path] = [symbol.id for symbol in symbols]
        self._file_timestamps[file_path] = time.time()
        return symbols

    def find_usages_in_file(self, symbol: Symbol, file_path: str, content: str,
                            index: Optional[LineIndex] = None) -> List[Usage]:
        """Run the extractor registered for ``file_path`` against one symbol."""
        parser = self.get_parser_for_file(file_path)
        if parser is None:
            return []
        return parser.find_usages(content, file_path, symbol, index)

    def process_batch(self, files: Iterable, options: Optional[ScanOptions] = None) -> ScanResult:
        """Scan a batch of files.

        Args:
            files: SourceFile records (or any objects with ``path`` and ``content``)
            options: Scan options; ``scan_depth == 'deep'`` enables pass 2

        Returns:
            ScanResult covering the whole symbol table
        """
        options = options or ScanOptions()
        start_time = time.perf_counter()
        files = list(files)
        symbols_found = 0
        usages_found = 0

        for source in files:
            symbols_found += len(self.scan_file(source.path, source.content,
                                                use_cache=options.cache_results))

        if options.scan_depth == 'deep':
            ordered = sorted(files, key=lambda source: source.path)
            indexes = {source.path: LineIndex(source.content) for source in ordered}
            for symbol in self.symbols:
                usages = []
                for source in ordered:
                    for usage in self.find_usages_in_file(symbol, source.path, source.content,
                                                           indexes[source.path]):
                        if usage.file_path == symbol.file_path and usage.position.line == symbol.position.line:
                            continue
                        usages.append(usage)
                symbol.usages = usages
                usages_found += len(usages)

        logger.debug("Processed %d files: %d symbols, %d usages",
                     len(files), symbols_found, usages_found)
        return ScanResult(
            symbols=self.symbols,
            scan_time=int((time.perf_counter() - start_time) * 1000),
            files_scanned=len(files),
            symbols_found=symbols_found,
            usages_found=usages_found,
        )

    def file_needs_rescan(self, file_path: str, timestamp: float) -> bool:
        """True if the file was never scanned or changed after its last scan."""
        recorded = self._file_timestamps.get(file_path)
        return recorded is None or timestamp > recorded

    def get_symbols_in_file(self, file_path: str) -> List[Symbol]:
        return [self._symbols[symbol_id] for symbol_id in self._file_symbols.get(file_path, [])]

    def get_symbol(self, symbol_id: str) -> Optional[Symbol]:
        return self._symbols.get(symbol_id)

    def find_symbol_at_position(self, file_path: str, line: int, character: int) -> Optional[Symbol]:
        """Find the symbol whose range contains a position in a file."""
        for symbol in self.get_symbols_in_file(file_path):
            if symbol.range.contains(line, character):
                return symbol
        return None

    def clear_cache(self):
        """Forget every symbol and timestamp (the on-disk cache is untouched)."""
        self._symbols.clear()
        self._file_symbols.clear()
        self._file_timestamps.clear()

    def _clear_file(self, file_path: str):
        for symbol_id in self._file_symbols.pop(file_path, []):
            self._symbols.pop(symbol_id, None)
        # Usages found in this file are stale until the next deep pass
        for symbol in self._symbols.values():
            if any(usage.file_path == file_path for usage in symbol.usages):
                symbol.usages = [usage for usage in symbol.usages if usage.file_path != file_path]


def create_default_scanner(cache: Optional[SymbolCache] = None) -> Scanner:
    """Scanner with the script, behavior and stylesheet extractors registered."""
    scanner = Scanner(cache=cache)
    for extractor in (ScriptClassExtractor(), BehaviorExtractor(), StylesheetExtractor()):
        for extension in extractor.EXTENSIONS:
            scanner.register_parser(extension, extractor)
    return scanner
