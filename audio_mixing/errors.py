"""Error types raised by the mixing pipeline.

Every failure is fatal for the run: nothing here is retried or skipped, the
exception propagates up to the caller (the CLI turns it into exit code 1).
"""
from __future__ import annotations

from typing import Optional


class MixError(Exception):
    """Base class for all mixing errors."""


class ConfigError(MixError):
    """An option or config file value is invalid."""


class InputFormatError(MixError):
    """A clip-list row cannot be parsed into a `ClipSpec`.

    Attributes:
        row: 1-based row number in the clip list (0 when the file itself is unreadable).
    """

    def __init__(self, row: int, message: str):
        self.row = row
        super().__init__(f"row {row}: {message}" if row else message)


class DecodeFailure(MixError):
    """The decoder could not read a source file."""

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        self.path = str(path)
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to decode {self.path}{detail}")


class DecodeGeometryError(MixError):
    """Decoded audio has an impossible sample rate or interleaving."""


class UnsupportedChannelLayoutError(MixError):
    """Decoded audio is neither mono nor stereo."""

    def __init__(self, channel_count: int):
        self.channel_count = channel_count
        super().__init__(f"Unsupported channel count: {channel_count} (expected 1 or 2)")


class InvalidOffsetError(MixError):
    """A clip starts before time zero (or at a non-finite time)."""

    def __init__(self, offset_ms: float):
        self.offset_ms = offset_ms
        super().__init__(f"Invalid clip start offset: {offset_ms} ms")


class EncodeFailure(MixError):
    """The encoder could not write the output file."""

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        self.path = str(path)
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to encode {self.path}{detail}")
