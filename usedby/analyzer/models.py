"""Symbol and usage records shared by extractors, scanner, annotator and graph.

Serialization follows the persisted scan-result schema, which uses camelCase
keys and stores the kind of a symbol or usage under ``type``.
"""
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

SYMBOL_KINDS = ('class', 'function', 'method', 'selector', 'variable', 'event', 'file')
USAGE_KINDS = ('call', 'reference', 'extend', 'implement', 'import', 'inclusion')


@dataclass(frozen=True, order=True)
class Position:
    """Zero-indexed line/column location."""
    line: int
    character: int

    def to_dict(self) -> Dict:
        return {'line': self.line, 'character': self.character}

    @classmethod
    def from_dict(cls, data: Dict) -> 'Position':
        return cls(line=int(data['line']), character=int(data['character']))


@dataclass(frozen=True)
class Range:
    """Span between two positions (both ends inclusive)."""
    start: Position
    end: Position

    def contains(self, line: int, character: int) -> bool:
        """Check whether a line/column falls inside the span (bounds inclusive)."""
        if line < self.start.line or line > self.end.line:
            return False
        if line == self.start.line and character < self.start.character:
            return False
        if line == self.end.line and character > self.end.character:
            return False
        return True

    def to_dict(self) -> Dict:
        return {'start': self.start.to_dict(), 'end': self.end.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict) -> 'Range':
        return cls(start=Position.from_dict(data['start']), end=Position.from_dict(data['end']))


@dataclass
class Usage:
    """A reference to a symbol found in some file."""
    file_path: str
    position: Position
    range: Range
    context: str  # trimmed source line, for display
    kind: str  # one of USAGE_KINDS

    def to_dict(self) -> Dict:
        return {
            'filePath': self.file_path,
            'position': self.position.to_dict(),
            'range': self.range.to_dict(),
            'context': self.context,
            'type': self.kind,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Usage':
        return cls(
            file_path=data['filePath'],
            position=Position.from_dict(data['position']),
            range=Range.from_dict(data['range']),
            context=data.get('context', ''),
            kind=data.get('type', 'reference'),
        )


@dataclass
class Symbol:
    """A named definition site.

    ``id`` is derived from file path, name and position, so rescanning
    unchanged code yields the same id.
    """
    id: str
    name: str
    kind: str  # one of SYMBOL_KINDS
    file_path: str
    position: Position
    range: Range
    container: Optional[str] = None  # enclosing class, namespace or full selector
    documentation: Optional[str] = None
    usages: List[Usage] = field(default_factory=list)

    def sorted_usages(self) -> List[Usage]:
        """Usages ordered by (file path, line), the order used for output."""
        return sorted(self.usages, key=lambda u: (u.file_path, u.position.line, u.position.character))

    def to_dict(self) -> Dict:
        data = {
            'id': self.id,
            'name': self.name,
            'type': self.kind,
            'filePath': self.file_path,
            'position': self.position.to_dict(),
            'range': self.range.to_dict(),
        }
        if self.container is not None:
            data['container'] = self.container
        if self.documentation is not None:
            data['documentation'] = self.documentation
        data['usages'] = [usage.to_dict() for usage in self.sorted_usages()]
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'Symbol':
        return cls(
            id=data['id'],
            name=data['name'],
            kind=data['type'],
            file_path=data['filePath'],
            position=Position.from_dict(data['position']),
            range=Range.from_dict(data['range']),
            container=data.get('container'),
            documentation=data.get('documentation'),
            usages=[Usage.from_dict(u) for u in data.get('usages') or []],
        )


@dataclass
class ScanOptions:
    """Options for a batch scan."""
    include_patterns: List[str] = field(default_factory=list)
    exclude_patterns: List[str] = field(default_factory=list)
    scan_depth: str = 'basic'  # 'basic' (definitions only) or 'deep' (plus usages)
    max_files_to_scan: int = 1000
    cache_results: bool = True


@dataclass
class ScanResult:
    """Outcome of ``Scanner.process_batch``."""
    symbols: List[Symbol]
    scan_time: int  # milliseconds
    files_scanned: int
    symbols_found: int
    usages_found: int

    def to_dict(self) -> Dict:
        return {
            'symbols': [symbol.to_dict() for symbol in self.symbols],
            'scanTime': self.scan_time,
            'filesScanned': self.files_scanned,
            'symbolsFound': self.symbols_found,
            'usagesFound': self.usages_found,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'ScanResult':
        symbols = [Symbol.from_dict(s) for s in data.get('symbols') or []]
        return cls(
            symbols=symbols,
            scan_time=int(data.get('scanTime', 0)),
            files_scanned=int(data.get('filesScanned', 0)),
            symbols_found=int(data.get('symbolsFound', len(symbols))),
            usages_found=int(data.get('usagesFound', sum(len(s.usages) for s in symbols))),
        )

    def save(self, path: Path):
        """Write the result as indented JSON."""
        Path(path).write_text(json.dumps(self.to_dict(), indent=2), encoding='utf-8')


def load_scan_result(path: Path) -> ScanResult:
    """Read a persisted scan result.

    Args:
        path: JSON file written by ``ScanResult.save``

    Returns:
        ScanResult with symbols and usages rebuilt

    Raises:
        InputNotFoundError: If the file does not exist
        ScanResultFormatError: If the file is not a valid scan result
    """
    from .errors import InputNotFoundError, ScanResultFormatError

    path = Path(path)
    if not path.is_file():
        raise InputNotFoundError(f"Scan result not found: {path}")
    try:
        data = json.loads(path.read_text(encoding='utf-8'))
        return ScanResult.from_dict(data)
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise ScanResultFormatError(f"Invalid scan result {path}: {e}") from e
