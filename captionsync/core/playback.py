"""Abstract collaborators the engine reads media time and frames from."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from PySide6.QtGui import QImage


class ReadyState(str, Enum):
    READY     = "ready"
    SEEKING   = "seeking"
    BUFFERING = "buffering"


@dataclass(frozen=True)
class AudioTrack:
    """Opaque audio handle; the encoder is the only thing that looks inside."""

    source: str
    stream_index: int = 0


class PlaybackSource(ABC):
    @abstractmethod
    def current_time_ms(self) -> float:
        """Current media position."""

    @abstractmethod
    def duration_ms(self) -> float:
        """Total media duration (0 when unknown)."""

    @abstractmethod
    def ready_state(self) -> ReadyState:
        """Whether the media can be played from the current position."""


class MediaSource(PlaybackSource):
    """A playable source that also yields frames and an audio track."""

    @abstractmethod
    def frame(self) -> Optional[QImage]:
        """Frame at the current position, or None before the first decode."""

    @abstractmethod
    def frame_size(self) -> Tuple[int, int]:
        """(width, height) in pixels."""

    @abstractmethod
    def audio_track(self) -> Optional[AudioTrack]:
        """The source's audio, or None if it has none."""

    @abstractmethod
    def play(self) -> None: ...

    @abstractmethod
    def pause(self) -> None: ...

    @abstractmethod
    def ended(self) -> bool: ...

    def close(self) -> None:
        """Release decoders/handles. Safe to call more than once."""
