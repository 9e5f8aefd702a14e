from __future__ import annotations

from typing import Optional


class MidiCompareError(Exception):
    """Base exception for decode/compare failures."""


class FormatError(MidiCompareError):
    """Buffer is not a valid Standard MIDI File (bad magic, corrupt length, truncation)."""

    def __init__(self, message: str, offset: Optional[int] = None):
        if offset is not None:
            message = f"{message} (at byte {offset})"
        super().__init__(message)
        self.offset = offset


class EmptyInputError(MidiCompareError):
    """Decoded fine, but there is nothing to compare and the caller required notes."""


# Older name kept for callers that think in terms of "data" problems.
DataError = EmptyInputError


class ConfigError(MidiCompareError, ValueError):
    """Tolerance, window or weight value outside its valid range."""
