"""Error taxonomy for scanning and annotation.

Only InputNotFoundError and ScanResultFormatError concern the invocation as a
whole; the rest describe a single file or construct and are isolated by the
caller.
"""


class UsedByError(Exception):
    """Base class for all usedby errors."""


class InputNotFoundError(UsedByError):
    """A named target directory or input manifest does not exist."""


class ScanResultFormatError(UsedByError):
    """A persisted scan result could not be parsed."""


class FileReadError(UsedByError):
    """A single source file could not be read."""

    def __init__(self, path, reason):
        self.path = str(path)
        self.reason = str(reason)
        super().__init__(f"Cannot read {self.path}: {self.reason}")


class FileWriteError(UsedByError):
    """Annotated content could not be written back."""

    def __init__(self, path, reason):
        self.path = str(path)
        self.reason = str(reason)
        super().__init__(f"Cannot write {self.path}: {self.reason}")


class MalformedDocBlockError(UsedByError):
    """A comment block above a definition has no terminator."""

    def __init__(self, line: int):
        self.line = line
        super().__init__(f"Unterminated comment block starting at line {line + 1}")


class ParseAmbiguityError(UsedByError):
    """Unmatched nesting while extracting a construct."""

    def __init__(self, construct: str, offset: int):
        self.construct = construct
        self.offset = offset
        super().__init__(f"Unmatched braces in {construct} at offset {offset}")
