"""Exception taxonomy shared by the caption engine, export pipeline and workers."""
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Reason an export job ended in the ``FAILED`` state."""

    UNSUPPORTED_FORMAT = "unsupported_format"
    MEDIA_LOAD_TIMEOUT = "media_load_timeout"
    STREAM_CREATION    = "stream_creation"
    ENCODING           = "encoding"
    CANCELLED          = "cancelled"


class CaptionSyncError(Exception):
    """Base class for every error raised by captionsync."""


class ExportError(CaptionSyncError):
    """An export job failed. ``kind`` is preserved on the job for display."""

    kind: ErrorKind = ErrorKind.ENCODING


class UnsupportedFormatError(ExportError):
    kind = ErrorKind.UNSUPPORTED_FORMAT


class MediaLoadTimeoutError(ExportError):
    kind = ErrorKind.MEDIA_LOAD_TIMEOUT


class StreamCreationError(ExportError):
    kind = ErrorKind.STREAM_CREATION


class EncodingError(ExportError):
    kind = ErrorKind.ENCODING


class ExportCancelled(ExportError):
    """User-initiated stop. Not shown as an error."""

    kind = ErrorKind.CANCELLED


class InvalidTransitionError(CaptionSyncError):
    """An export job was asked to move to a state it cannot reach."""


class IndexOutOfRange(CaptionSyncError, IndexError):
    """Utterance index outside the store."""


class ThemeRegistrationError(CaptionSyncError):
    """A theme id is already taken by a built-in theme."""


class TranscriptionError(CaptionSyncError):
    """The remote transcription service failed or timed out."""
