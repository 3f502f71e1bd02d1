"""Lexical symbol extraction shared by every language variant.

Extractors are pure: they see only the text and path handed to them. Each
variant finds definitions with regular expressions and, given a symbol, finds
the places that reference it in another file's text.
"""
import bisect
import logging
import re
from abc import ABC, abstractmethod
from pathlib import PurePath
from typing import Iterable, List, Optional, Tuple

from .errors import ParseAmbiguityError
from .models import Position, Range, Symbol, Usage

logger = logging.getLogger(__name__)

SCRIPT_EXTENSIONS = ('.php',)
BEHAVIOR_EXTENSIONS = ('.js', '.jsx', '.ts', '.tsx', '.mjs')
STYLESHEET_EXTENSIONS = ('.css', '.scss', '.less')


def language_for_path(file_path: str) -> Optional[str]:
    """Map a path to 'script', 'behavior' or 'stylesheet' by extension."""
    ext = PurePath(file_path).suffix.lower()
    if ext in SCRIPT_EXTENSIONS:
        return 'script'
    if ext in BEHAVIOR_EXTENSIONS:
        return 'behavior'
    if ext in STYLESHEET_EXTENSIONS:
        return 'stylesheet'
    return None


class LineIndex:
    """Offset to (line, column) lookup built once per file content."""

    def __init__(self, content: str):
        self.content = content
        self._line_starts = [0]
        for match in re.finditer('\n', content):
            self._line_starts.append(match.end())

    def position(self, offset: int) -> Position:
        """Zero-indexed position of a character offset."""
        line = bisect.bisect_right(self._line_starts, offset) - 1
        return Position(line=line, character=offset - self._line_starts[line])

    def span(self, start: int, end: int) -> Range:
        return Range(start=self.position(start), end=self.position(end))

    def line_text(self, line: int) -> str:
        """Raw text of a zero-indexed line, without its newline."""
        start = self._line_starts[line]
        end = self._line_starts[line + 1] - 1 if line + 1 < len(self._line_starts) else len(self.content)
        return self.content[start:end]

    def context(self, offset: int) -> str:
        """Trimmed text of the line containing an offset."""
        return self.line_text(self.position(offset).line).strip()

    @property
    def line_count(self) -> int:
        return len(self._line_starts)


def find_block_end(content: str, open_brace: int) -> int:
    """Find the brace that closes the block opened at ``open_brace``.

    Args:
        content: Source text
        open_brace: Offset of a '{' character

    Returns:
        Offset of the matching '}'

    Raises:
        ParseAmbiguityError: If the block is never closed
    """
    depth = 0
    for i in range(open_brace, len(content)):
        char = content[i]
        if char == '{':
            depth += 1
        elif char == '}':
            depth -= 1
            if depth == 0:
                return i
    raise ParseAmbiguityError('block', open_brace)


def extract_doc_comment(index: LineIndex, line: int) -> Optional[str]:
    """Return the ``/** ... */`` block ending directly above ``line``.

    Nothing is returned when the line above is not a block terminator, or
    when the opening delimiter cannot be found before another terminator.
    """
    end = line - 1
    if end < 0 or not index.line_text(end).strip().endswith('*/'):
        return None

    for start in range(end, -1, -1):
        text = index.line_text(start).strip()
        if text.startswith('/*'):
            return '\n'.join(index.line_text(i) for i in range(start, end + 1))
        if start != end and text.endswith('*/'):
            return None
    return None


class LanguageExtractor(ABC):
    """Base class for the per-language extractor variants."""

    LANGUAGE = ''
    EXTENSIONS: Tuple[str, ...] = ()

    # --- definitions -----------------------------------------------------

    def parse_symbols(self, content: str, file_path: str) -> List[Symbol]:
        """Extract definitions from file text.

        Args:
            content: Full file text
            file_path: Path recorded on every symbol

        Returns:
            Symbols ordered by position, without usages
        """
        index = LineIndex(content)
        symbols = {}
        for symbol in self._extract_symbols(content, file_path, index):
            symbols.setdefault(symbol.id, symbol)
        return sorted(symbols.values(), key=lambda s: (s.position.line, s.position.character, s.name))

    @abstractmethod
    def _extract_symbols(self, content: str, file_path: str, index: LineIndex) -> Iterable[Symbol]:
        """Yield the definitions found in ``content``."""

    # --- usages ----------------------------------------------------------

    def find_usages(self, content: str, file_path: str, symbol: Symbol,
                    index: Optional[LineIndex] = None) -> List[Usage]:
        """Find references to ``symbol`` in one file's text.

        The definition site itself (same file, same line) is never reported,
        and two patterns matching the same spot produce one usage.

        Args:
            content: Text of the file being searched
            file_path: Path of the file being searched
            symbol: The symbol to look for
            index: Line index of ``content``, reused across symbols when given

        Returns:
            Usages ordered by position
        """
        if not symbol.name:
            return []

        if index is None:
            index = LineIndex(content)
        found = {}
        for usage in self._collect_usages(content, file_path, symbol, index):
            if usage.file_path == symbol.file_path and usage.position.line == symbol.position.line:
                continue
            found.setdefault((usage.position.line, usage.position.character), usage)
        return [found[key] for key in sorted(found)]

    @abstractmethod
    def _collect_usages(self, content: str, file_path: str, symbol: Symbol,
                        index: LineIndex) -> Iterable[Usage]:
        """Yield candidate usages of ``symbol`` in ``content``."""

    # --- helpers shared by the variants ------------------------------------

    @staticmethod
    def generate_symbol_id(file_path: str, name: str, position: Position) -> str:
        """Deterministic id: ``<path>#<name>#<line>:<character>``."""
        return f"{file_path}#{name}#{position.line}:{position.character}"

    def make_symbol(self, index: LineIndex, file_path: str, name: str, kind: str,
                    start: int, end: int, container: Optional[str] = None) -> Symbol:
        position = index.position(start)
        return Symbol(
            id=self.generate_symbol_id(file_path, name, position),
            name=name,
            kind=kind,
            file_path=file_path,
            position=position,
            range=Range(start=position, end=index.position(end)),
            container=container,
            documentation=extract_doc_comment(index, position.line),
        )

    @staticmethod
    def make_usage(index: LineIndex, file_path: str, start: int, end: int, kind: str) -> Usage:
        return Usage(
            file_path=file_path,
            position=index.position(start),
            range=index.span(start, end),
            context=index.context(start),
            kind=kind,
        )

    @staticmethod
    def block_spans(content: str, starts: Iterable[Tuple[str, int]]) -> List[Tuple[str, int, int, bool]]:
        """Resolve the brace-delimited bodies of named constructs.

        Args:
            content: Source text
            starts: (name, offset) pairs, each offset at or before the opening brace

        Returns:
            (name, body_start, body_end, closed) tuples. A construct whose
            braces never close extends to the end of the text with
            ``closed`` False; callers must not attribute members to it.
        """
        spans = []
        for name, offset in starts:
            open_brace = content.find('{', offset)
            if open_brace == -1:
                continue
            try:
                spans.append((name, open_brace + 1, find_block_end(content, open_brace), True))
            except ParseAmbiguityError as e:
                logger.debug("Stopped extracting %s: %s", name, e)
                spans.append((name, open_brace + 1, len(content), False))
        return spans

    @staticmethod
    def enclosing_span(spans: List[Tuple], offset: int) -> Optional[Tuple]:
        """Innermost span containing ``offset``, if any."""
        inside = [span for span in spans if span[1] <= offset < span[2]]
        if not inside:
            return None
        return max(inside, key=lambda span: span[1])

    @staticmethod
    def word(name: str) -> str:
        """Regex for ``name`` not glued to other identifier characters."""
        return rf"(?<![A-Za-z0-9_$]){re.escape(name)}(?![A-Za-z0-9_$])"
