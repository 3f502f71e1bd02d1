"""Block comment delimiters per file type."""
from dataclasses import dataclass
from pathlib import PurePath
from typing import Dict


@dataclass(frozen=True)
class CommentStyle:
    """Delimiters used when reading and writing doc blocks."""
    block_start: str
    block_end: str
    line_start: str
    line_prefix: str

    @property
    def opener(self) -> str:
        """Shortest token that opens a block ('/*' also opens a '/**' style)."""
        if self.block_start.endswith('**'):
            return self.block_start[:-1]
        return self.block_start

    @property
    def closer(self) -> str:
        return self.block_end.strip()

    def body_text(self, line: str) -> str:
        """Text of a comment body line without indentation or line prefix."""
        text = line.strip()
        prefix = self.line_prefix.strip()
        if prefix and text.startswith(prefix):
            text = text[len(prefix):]
        return text.strip()

    def is_one_line_block(self, text: str) -> bool:
        """True when a stripped line both opens and closes a block."""
        return (text.startswith(self.opener) and text.endswith(self.closer)
                and len(text) >= len(self.opener) + len(self.closer))


C_STYLE = CommentStyle(block_start='/**', block_end=' */', line_start='//', line_prefix=' *')

COMMENT_STYLES: Dict[str, CommentStyle] = {
    '.php': C_STYLE,
    '.js': C_STYLE,
    '.jsx': C_STYLE,
    '.mjs': C_STYLE,
    '.ts': C_STYLE,
    '.tsx': C_STYLE,
    '.css': C_STYLE,
    '.scss': C_STYLE,
    '.less': C_STYLE,
}


def get_comment_style(extension: str) -> CommentStyle:
    """Look up the comment style for an extension or a file path.

    Args:
        extension: '.php', 'php' or a path such as 'src/cart.php'

    Returns:
        The matching CommentStyle, C style for anything unknown
    """
    ext = extension.lower()
    if not ext.startswith('.') or '/' in ext or '\\' in ext or ext.count('.') > 1:
        suffix = PurePath(ext).suffix
        ext = suffix if suffix else f'.{ext.lstrip(".")}'
    return COMMENT_STYLES.get(ext, C_STYLE)
