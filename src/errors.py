#!/usr/bin/env python3
"""
Exception types raised by the rate fill pipeline.
Archive, structure and column errors are fatal for one file only; row misses
are recorded and never abort a file.
"""

from typing import Optional


class RateFillError(Exception):
    """Base class for all pipeline errors"""

    stage = "pipeline"

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path:
            return f"{self.message} ({self.path})"
        return self.message


class ArchiveError(RateFillError):
    """Input is not a ZIP archive, or the archive is truncated/corrupt"""

    stage = "archive"


class StructureError(RateFillError):
    """Workbook part missing, no sheets declared, or worksheet part unresolvable"""

    stage = "structure"


class ColumnIdentificationError(RateFillError):
    """No header row found within the scan window"""

    stage = "columns"


class NoWorkToDoError(RateFillError):
    """No rows need filling. Not a failure, callers report a zero result."""

    stage = "scan"


class RowMatchMiss(RateFillError):
    """A single target row found no candidate"""

    stage = "match"

    def __init__(self, message: str, row_number: int):
        super().__init__(message)
        self.row_number = row_number


class WriteError(RateFillError):
    """XML mutation or repack failed; the original bytes must be kept"""

    stage = "write"


class FileAccessError(RateFillError):
    """File locked by another process or permission denied"""

    stage = "io"

    GUIDANCE = "Close the file in other software (e.g. Excel) and try again."

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(f"{message}. {self.GUIDANCE}", path)
