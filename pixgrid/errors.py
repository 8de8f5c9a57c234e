"""Typed failures raised by the pipeline, the session store and the codecs.

Core code raises these and never logs them; the CLI and the HTTP service
decide how each one is reported.
"""

from __future__ import annotations


class PixelGridError(Exception):
    """Base class for every failure raised by :mod:`pixgrid`."""


class InvalidParameterError(PixelGridError, ValueError):
    """A conversion parameter violates a stage constraint.

    Attributes:
        stage:      Pipeline stage that rejected the value.
        parameter:  Name of the offending parameter.
        value:      The rejected value.
        constraint: Human-readable description of the violated rule.
    """

    def __init__(self, stage: str, parameter: str, value: object, constraint: str) -> None:
        self.stage = stage
        self.parameter = parameter
        self.value = value
        self.constraint = constraint
        super().__init__(f"{stage}: {parameter}={value!r} ({constraint})")


class InvalidImageError(PixelGridError, ValueError):
    """The array handed to a stage is not an (H, W, 4) uint8 image."""


class UnsupportedFormatError(PixelGridError, ValueError):
    """Output path has an extension no encoder is registered for."""

    def __init__(self, extension: str) -> None:
        self.extension = extension
        shown = extension or "(none)"
        super().__init__(f"unsupported output format: {shown}")


class ImageDecodeError(PixelGridError):
    """Image bytes or file could not be decoded."""


class ImageEncodeError(PixelGridError):
    """An image could not be encoded or written."""


class SessionNotFoundError(PixelGridError, LookupError):
    """Session id is unknown or has already been reaped."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__("Session not found")


class SessionIdError(PixelGridError):
    """Secure randomness was unavailable while minting a session id."""
