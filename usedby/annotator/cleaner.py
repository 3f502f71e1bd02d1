"""Strip ``@usedby`` annotations and usage diagrams from comment blocks."""
from typing import Tuple

from .annotator import DIAGRAM_MARKER, USEDBY_PATTERN
from .comment_style import CommentStyle


def remove_usage_annotations(content: str, comment_style: CommentStyle) -> Tuple[str, int]:
    """Remove generated annotations from every comment block in a file.

    Descriptions and other tags are left alone. Blank prefix lines left
    dangling before a block terminator are dropped with the annotations.

    Args:
        content: Full file text
        comment_style: Delimiters for the file type

    Returns:
        Tuple of (new text, number of @usedby lines removed)
    """
    kept = []
    removed = 0
    in_block = False
    in_diagram = False
    changed = False

    # Lines keep their '\r'; every comparison below strips it
    for line in content.split('\n'):
        text = line.strip()
        if not in_block:
            if text.startswith(comment_style.opener) and not comment_style.is_one_line_block(text):
                in_block = True
                changed = False
            kept.append(line)
            continue

        if in_diagram and not text.endswith(comment_style.closer):
            if comment_style.body_text(line) == '```':
                in_diagram = False
            continue
        in_diagram = False

        if text.endswith(comment_style.closer):
            if changed:
                while kept and not comment_style.body_text(kept[-1]):
                    kept.pop()
            kept.append(line)
            in_block = False
            continue

        if comment_style.body_text(line) == DIAGRAM_MARKER:
            in_diagram = True
            changed = True
            continue
        if USEDBY_PATTERN.search(line):
            removed += 1
            changed = True
            continue
        kept.append(line)

    return '\n'.join(kept), removed
