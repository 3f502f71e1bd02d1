"""Synthesize and merge ``@usedby`` doc blocks above symbol definitions.

Every rewrite is a pure function of (file text, symbol, annotations): the
comment blocks directly above the definition line are located, their
``@usedby`` entries merged with the fresh ones, and the whole span replaced
by a single block. Running it twice with the same inputs changes nothing
the second time.
"""
import logging
import os
import re
from dataclasses import dataclass, replace
from pathlib import PurePath
from typing import Dict, List, Optional, Sequence

from usedby.analyzer.errors import MalformedDocBlockError
from usedby.analyzer.graph_builder import GraphOptions, RelationshipGraph, generate_mermaid_diagram, sanitize_id
from usedby.analyzer.models import Symbol, Usage

from .comment_style import CommentStyle

logger = logging.getLogger(__name__)

USEDBY_PATTERN = re.compile(r'@usedby\s+(.*)')
ANNOTATION_PATTERN = re.compile(r'^(?P<path>.+?):(?P<lines>\d+(?:\s*,\s*\d+)*)(?:\s+\((?P<kind>[a-z]+)\))?\s*$')
DIAGRAM_MARKER = 'Usage diagram:'

KIND_DESCRIPTIONS = {
    'class': 'class',
    'function': 'function',
    'method': 'method',
    'selector': 'CSS selector',
    'variable': 'CSS variable',
    'event': 'event handler',
}

__all__ = [
    'AnnotationOptions', 'Annotator', 'DocBlock', 'count_line_numbers', 'deduplicate_annotations',
    'extract_used_by_entries', 'is_entry_point_file', 'relative_path', 'sanitize_id',
]


@dataclass
class AnnotationOptions:
    """Options for doc block generation."""
    include_mermaid: bool = False
    mermaid_diagram_type: str = 'flowchart'  # 'flowchart' or 'graph'
    group_usages_by_file: bool = True


@dataclass
class DocBlock:
    """Line span of one comment block (both ends inclusive, zero-indexed)."""
    start: int
    end: int


def is_entry_point_file(file_path: str) -> bool:
    """Guess whether a script file is a plugin/theme entry point.

    A ``.php`` file counts when its directory shares a name with its parent
    directory, or when the file stem and a directory name contain one
    another (``my-plugin/my-plugin.php``). Usages inside entry points are
    left out of annotations.
    """
    path = PurePath(file_path)
    if path.suffix.lower() != '.php':
        return False

    stem = path.stem
    dir_name = path.parent.name
    parent_dir_name = path.parent.parent.name
    if not dir_name:
        return False
    if dir_name == parent_dir_name:
        return True
    return bool(
        (parent_dir_name and stem in parent_dir_name)
        or stem in dir_name
        or dir_name in stem
    )


def relative_path(file_path: str, reference_path: str) -> str:
    """Path of ``file_path`` as seen from the directory of ``reference_path``.

    Files in the same directory are reduced to their basename. Separators
    are always '/'.
    """
    file_dir = os.path.dirname(file_path)
    reference_dir = os.path.dirname(reference_path)
    if file_dir == reference_dir:
        return os.path.basename(file_path)
    try:
        relative = os.path.relpath(file_path, reference_dir or os.curdir)
    except ValueError:
        # Different drives on Windows
        relative = file_path
    return relative.replace(os.sep, '/')


def count_line_numbers(annotation: str) -> int:
    """Number of line numbers an annotation cites (0 if unparseable)."""
    match = ANNOTATION_PATTERN.match(annotation.strip())
    if not match:
        return 0
    return len(match.group('lines').split(','))


def annotation_path(annotation: str) -> Optional[str]:
    match = ANNOTATION_PATTERN.match(annotation.strip())
    return match.group('path') if match else None


def deduplicate_annotations(annotations: Sequence[str]) -> List[str]:
    """Keep one annotation per target path.

    The variant citing the most line numbers wins; on a tie the earlier one
    is kept. Unparseable entries are kept verbatim (exact duplicates
    dropped). Order of first appearance is preserved.
    """
    best: Dict[str, str] = {}
    order: List[str] = []
    for annotation in annotations:
        annotation = annotation.strip()
        if not annotation:
            continue
        key = annotation_path(annotation) or annotation
        if key not in best:
            best[key] = annotation
            order.append(key)
        elif count_line_numbers(annotation) > count_line_numbers(best[key]):
            best[key] = annotation
    return [best[key] for key in order]


def extract_used_by_entries(block: str) -> List[str]:
    """Return the text after each ``@usedby`` tag in a comment block."""
    entries = []
    for line in block.split('\n'):
        match = USEDBY_PATTERN.search(line)
        if match and match.group(1).strip():
            entries.append(match.group(1).strip())
    return entries


class Annotator:
    """Generate and rewrite ``@usedby`` doc blocks for one file at a time."""

    def __init__(self, options: Optional[AnnotationOptions] = None):
        """Initialize the annotator.

        Args:
            options: Annotation options (defaults to AnnotationOptions())
        """
        self.options = options or AnnotationOptions()

    # --- annotation text -------------------------------------------------

    def annotatable_usages(self, symbol: Symbol) -> List[Usage]:
        """Usages worth documenting: other files, never entry points."""
        if is_entry_point_file(symbol.file_path):
            return []
        return [
            usage for usage in symbol.sorted_usages()
            if usage.file_path != symbol.file_path and not is_entry_point_file(usage.file_path)
        ]

    def generate_usage_annotations(self, symbol: Symbol,
                                   group_usages_by_file: Optional[bool] = None) -> List[str]:
        """Build annotation strings for a symbol's usages.

        Args:
            symbol: Symbol with usages
            group_usages_by_file: One annotation per file (default from options)
                                  instead of one per usage

        Returns:
            Strings like ``cart.php:5,22 (call)``, ordered by path
        """
        if group_usages_by_file is None:
            group_usages_by_file = self.options.group_usages_by_file

        usages = self.annotatable_usages(symbol)
        annotations = []
        if group_usages_by_file:
            by_file: Dict[str, List[Usage]] = {}
            for usage in usages:
                by_file.setdefault(usage.file_path, []).append(usage)
            for file_path, group in by_file.items():
                lines = sorted({usage.position.line + 1 for usage in group})
                line_list = ','.join(str(line) for line in lines)
                annotations.append(f"{relative_path(file_path, symbol.file_path)}:{line_list} ({group[0].kind})")
        else:
            for usage in usages:
                annotation = (f"{relative_path(usage.file_path, symbol.file_path)}:"
                              f"{usage.position.line + 1} ({usage.kind})")
                if annotation not in annotations:
                    annotations.append(annotation)
        return annotations

    @staticmethod
    def describe(symbol: Symbol) -> str:
        kind = KIND_DESCRIPTIONS.get(symbol.kind)
        return f"{symbol.name} {kind}" if kind else symbol.name

    # --- diagrams --------------------------------------------------------

    def diagram_lines(self, symbol: Symbol) -> List[str]:
        """Mermaid lines for the inline usage diagram (empty when disabled)."""
        if not self.options.include_mermaid:
            return []
        usages = self.annotatable_usages(symbol)
        if not usages:
            return []
        if self.options.mermaid_diagram_type == 'graph':
            return self._graph_diagram(symbol, usages)
        return self._flowchart_diagram(symbol, usages)

    def _flowchart_diagram(self, symbol: Symbol, usages: List[Usage]) -> List[str]:
        symbol_id = sanitize_id(symbol.name)
        lines = ['flowchart TD', f'    {symbol_id}["{symbol.name} ({symbol.kind})"]']
        by_file: Dict[str, List[int]] = {}
        for usage in usages:
            by_file.setdefault(usage.file_path, []).append(usage.position.line + 1)
        for file_path, line_numbers in by_file.items():
            file_id = sanitize_id(f"file_{PurePath(file_path).name}")
            line_list = ','.join(str(line) for line in sorted(set(line_numbers)))
            lines.append(f'    {file_id}["{PurePath(file_path).name}"]')
            lines.append(f'    {symbol_id} -- "Used at lines {line_list}" --> {file_id}')
        return lines

    def _graph_diagram(self, symbol: Symbol, usages: List[Usage]) -> List[str]:
        # Node ids come from paths relative to the symbol, never absolute ones
        scoped = replace(
            symbol,
            id=symbol.name,
            file_path=PurePath(symbol.file_path).name,
            usages=[replace(usage, file_path=relative_path(usage.file_path, symbol.file_path))
                    for usage in usages],
        )
        options = GraphOptions(direction='LR', edge_labels=False)
        relationships = RelationshipGraph(options)
        return generate_mermaid_diagram(relationships.build_symbol_graph(scoped), options).split('\n')

    # --- doc block rendering ----------------------------------------------

    def render_block(self, description: List[str], annotations: Sequence[str], diagram: Sequence[str],
                     comment_style: CommentStyle, indent: str = '') -> List[str]:
        """Lay out one doc block as lines (no trailing newline)."""
        prefix = f"{indent}{comment_style.line_prefix}"
        lines = [f"{indent}{comment_style.block_start}"]
        lines.extend(description)
        if description and annotations:
            lines.append(prefix)
        lines.extend(f"{prefix} @usedby {annotation}" for annotation in annotations)
        if diagram:
            lines.append(prefix)
            lines.append(f"{prefix} {DIAGRAM_MARKER}")
            lines.append(f"{prefix} ```mermaid")
            lines.extend(f"{prefix} {line}" for line in diagram)
            lines.append(f"{prefix} ```")
        lines.append(f"{indent}{comment_style.block_end}")
        return lines

    def create_doc_block(self, symbol: Symbol, annotations: Sequence[str],
                         comment_style: CommentStyle) -> str:
        """Render a fresh doc block for a symbol, ending with a newline."""
        description = [f"{comment_style.line_prefix} {self.describe(symbol)}"]
        lines = self.render_block(description, annotations, self.diagram_lines(symbol), comment_style)
        return '\n'.join(lines) + '\n'

    def update_doc_block(self, existing_block: str, annotations: Sequence[str],
                         comment_style: CommentStyle, symbol: Optional[Symbol] = None) -> str:
        """Merge annotations into an existing block's text.

        Args:
            existing_block: Text of one comment block, delimiters included
            annotations: Fresh annotation strings
            comment_style: Delimiters of the block
            symbol: When given, supplies the fallback description and the
                    inline diagram

        Returns:
            The rewritten block (unchanged when there is nothing to add)
        """
        if not annotations:
            return existing_block
        block_lines = existing_block.split('\n')
        indent = _leading_whitespace(block_lines[0])
        merged = deduplicate_annotations(list(annotations) + extract_used_by_entries(existing_block))
        description = self._description_lines(block_lines, comment_style, indent)
        if not description and symbol is not None:
            description = [f"{indent}{comment_style.line_prefix} {self.describe(symbol)}"]
        diagram = self.diagram_lines(symbol) if symbol is not None else []
        return '\n'.join(self.render_block(description, merged, diagram, comment_style, indent))

    def _description_lines(self, block_lines: List[str], comment_style: CommentStyle, indent: str) -> List[str]:
        """Body lines of a block with annotations and diagrams removed."""
        prefix = f"{indent}{comment_style.line_prefix}"
        first = block_lines[0].strip()
        last = block_lines[-1].strip()

        head = _strip_opener(first, comment_style)
        if len(block_lines) == 1:
            head = _strip_closer(head, comment_style)
            body = []
        else:
            body = list(block_lines[1:-1])
            tail = _strip_closer(last, comment_style).strip()
            if tail and tail != '*':
                body.append(f"{prefix} {tail}")
        head = head.strip()
        if head and head != '*':
            body.insert(0, f"{prefix} {head}")

        kept = []
        in_diagram = False
        for line in body:
            text = comment_style.body_text(line)
            if in_diagram:
                if text.startswith('```') and text != '```mermaid':
                    in_diagram = False
                continue
            if text == DIAGRAM_MARKER:
                in_diagram = True
                continue
            if USEDBY_PATTERN.search(line):
                continue
            kept.append(line)

        while kept and not comment_style.body_text(kept[-1]):
            kept.pop()
        while kept and not comment_style.body_text(kept[0]):
            kept.pop(0)
        return kept

    # --- locating existing blocks -----------------------------------------

    @staticmethod
    def find_doc_blocks(lines: List[str], line_index: int, comment_style: CommentStyle) -> List[DocBlock]:
        """Find the contiguous comment blocks ending directly above a line.

        Args:
            lines: File text split into lines
            line_index: Zero-indexed definition line
            comment_style: Delimiters to look for

        Returns:
            Blocks in file order (empty when none precede the line)

        Raises:
            MalformedDocBlockError: If comment text directly above the line
                                    opens a block that is never terminated
        """
        blocks = []
        end = line_index - 1
        while end >= 0 and lines[end].strip().endswith(comment_style.closer):
            start = _find_block_start(lines, end, comment_style)
            if start is None:
                break
            blocks.append(DocBlock(start=start, end=end))
            end = start - 1

        if not blocks:
            _check_unterminated(lines, line_index, comment_style)
        blocks.reverse()
        return blocks

    # --- rewriting -------------------------------------------------------

    def process_doc_blocks(self, content: str, symbol: Symbol, annotations: Sequence[str],
                           comment_style: CommentStyle) -> str:
        """Rewrite the doc block(s) above one symbol.

        Existing ``@usedby`` entries from every block directly above the
        definition are merged with ``annotations`` and de-duplicated by path.
        The first block's description survives; the whole span becomes one
        block. Without an existing block a new one is inserted.

        Args:
            content: Full file text
            symbol: Symbol whose definition line anchors the block
            annotations: Fresh annotation strings
            comment_style: Delimiters for the file type

        Returns:
            New file text (``content`` itself when nothing would change)
        """
        lines = content.split('\n')
        line_index = symbol.position.line
        if line_index >= len(lines):
            logger.warning("Definition line %d of %s is past the end of the file",
                           line_index + 1, symbol.file_path)
            return content

        try:
            blocks = self.find_doc_blocks(lines, line_index, comment_style)
        except MalformedDocBlockError as e:
            logger.warning("%s above %s in %s; inserting a new block", e, symbol.name, symbol.file_path)
            blocks = []

        existing = []
        for block in blocks:
            existing.extend(extract_used_by_entries('\n'.join(_bare(lines[block.start:block.end + 1]))))
        merged = deduplicate_annotations(list(annotations) + existing)
        if not merged:
            return content

        if blocks:
            indent = _leading_whitespace(lines[blocks[0].start])
            first = blocks[0]
            description = self._description_lines(_bare(lines[first.start:first.end + 1]), comment_style, indent)
            start, end = blocks[0].start, blocks[-1].end + 1
        else:
            indent = _leading_whitespace(lines[line_index])
            description = []
            start = end = line_index
        if not description:
            description = [f"{indent}{comment_style.line_prefix} {self.describe(symbol)}"]

        block = self.render_block(description, merged, self.diagram_lines(symbol), comment_style, indent)
        carriage = '\r' if _line_ending(lines, line_index) == '\r\n' else ''
        return '\n'.join(lines[:start] + [line + carriage for line in block] + lines[end:])

    def annotate_content(self, content: str, symbols: Sequence[Symbol], comment_style: CommentStyle) -> str:
        """Apply ``process_doc_blocks`` to every annotatable symbol of a file.

        Symbols are processed bottom-up so earlier line numbers stay valid.
        Only the first symbol (by column) on a line gets a block.

        Args:
            content: Full file text
            symbols: Symbols defined in this file, with usages
            comment_style: Delimiters for the file type

        Returns:
            New file text
        """
        lines = content.split('\n')
        annotated_lines = set()
        for symbol in sorted(symbols, key=lambda s: (-s.position.line, s.position.character)):
            annotations = self.generate_usage_annotations(symbol)
            if not annotations:
                continue
            line = symbol.position.line
            if line in annotated_lines:
                logger.debug("Skipping %s: line %d of %s already annotated",
                             symbol.name, line + 1, symbol.file_path)
                continue
            if line >= len(lines) or symbol.name not in lines[line]:
                logger.warning("Skipping %s: not found at line %d of %s (stale scan result?)",
                               symbol.name, line + 1, symbol.file_path)
                continue
            annotated_lines.add(line)
            content = self.process_doc_blocks(content, symbol, annotations, comment_style)
        return content


def _leading_whitespace(line: str) -> str:
    line = line.rstrip('\r')
    return line[:len(line) - len(line.lstrip())]


def _bare(lines: List[str]) -> List[str]:
    return [line.rstrip('\r') for line in lines]


def _line_ending(lines: List[str], line_index: int) -> str:
    """Line ending of the definition line, or of the file when it has none."""
    if line_index + 1 < len(lines):
        return '\r\n' if lines[line_index].endswith('\r') else '\n'
    return '\r\n' if any(line.endswith('\r') for line in lines[:-1]) else '\n'


def _strip_opener(text: str, comment_style: CommentStyle) -> str:
    for token in (comment_style.block_start.strip(), comment_style.opener):
        if text.startswith(token):
            return text[len(token):]
    return text


def _strip_closer(text: str, comment_style: CommentStyle) -> str:
    if text.rstrip().endswith(comment_style.closer):
        return text.rstrip()[:-len(comment_style.closer)]
    return text


def _find_block_start(lines: List[str], end: int, comment_style: CommentStyle) -> Optional[int]:
    """Line where the block terminated at ``end`` opens, None if ambiguous."""
    if comment_style.is_one_line_block(lines[end].strip()):
        return end
    for i in range(end - 1, -1, -1):
        text = lines[i].strip()
        if text.startswith(comment_style.opener):
            return i
        if text.endswith(comment_style.closer):
            return None
    return None


def _check_unterminated(lines: List[str], line_index: int, comment_style: CommentStyle):
    """Raise if comment body lines directly above lead back to an unclosed opener."""
    prefix = comment_style.line_prefix.strip()
    for i in range(line_index - 1, -1, -1):
        text = lines[i].strip()
        if text.startswith(comment_style.opener):
            raise MalformedDocBlockError(i)
        if not text or not (text.startswith('*') or (prefix and text.startswith(prefix))):
            return
