"""Export job bookkeeping: format/quality enums, encoder profiles and the job state machine."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from captionsync.errors import ErrorKind, ExportError, InvalidTransitionError

logger = logging.getLogger(__name__)


class ExportFormat(str, Enum):
    WEBM = "webm"
    MP4  = "mp4"


class ExportQuality(str, Enum):
    HIGH   = "high"
    MEDIUM = "medium"
    LOW    = "low"


class ExportState(str, Enum):
    IDLE       = "idle"
    PREPARING  = "preparing"
    RECORDING  = "recording"
    FINALIZING = "finalizing"
    COMPLETED  = "completed"
    FAILED     = "failed"


# (video bits/s, audio bits/s)
QUALITY_BITRATES: Dict[ExportQuality, tuple] = {
    ExportQuality.HIGH:   (8_000_000, 128_000),
    ExportQuality.MEDIUM: (4_000_000,  96_000),
    ExportQuality.LOW:    (2_000_000,  64_000),
}

_TRANSITIONS: Dict[ExportState, FrozenSet[ExportState]] = {
    ExportState.IDLE:       frozenset({ExportState.PREPARING, ExportState.FAILED}),
    ExportState.PREPARING:  frozenset({ExportState.RECORDING, ExportState.FAILED}),
    ExportState.RECORDING:  frozenset({ExportState.FINALIZING, ExportState.FAILED}),
    ExportState.FINALIZING: frozenset({ExportState.COMPLETED, ExportState.FAILED}),
    ExportState.COMPLETED:  frozenset(),
    ExportState.FAILED:     frozenset(),
}


@dataclass(frozen=True)
class ExportConfig:
    format: ExportFormat = ExportFormat.WEBM
    quality: ExportQuality = ExportQuality.HIGH

    @classmethod
    def from_values(cls, fmt: str, quality: str) -> "ExportConfig":
        """Build from plain strings; unknown values raise ``ValueError``."""
        return cls(ExportFormat(fmt), ExportQuality(quality))


@dataclass(frozen=True)
class EncoderProfile:
    """A concrete (container, codecs, bitrates) combination the encoder can produce."""

    format: ExportFormat
    video_codec: str        # ffmpeg encoder name
    audio_codec: str
    mime_type: str
    video_bitrate: int
    audio_bitrate: int

    @property
    def codec_profile(self) -> str:
        return f"{self.video_codec},{self.audio_codec}"


@dataclass
class ExportJob:
    """State of one export run. Owned by :class:`~captionsync.core.export.ExportPipeline`."""

    config: ExportConfig
    state: ExportState = ExportState.IDLE
    progress: float = 0.0
    error: Optional[ErrorKind] = None
    message: str = ""
    profile: Optional[EncoderProfile] = None
    artifact: Optional[bytes] = None
    progress_history: List[float] = field(default_factory=list)

    # ------------------------------------------------------------------ state
    @property
    def is_terminal(self) -> bool:
        return self.state in (ExportState.COMPLETED, ExportState.FAILED)

    @property
    def cancelled(self) -> bool:
        return self.error is ErrorKind.CANCELLED

    def transition(self, new_state: ExportState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"cannot move export job from {self.state.value} to {new_state.value}"
            )
        logger.info("Export job %s -> %s", self.state.value, new_state.value)
        self.state = new_state

    def fail(self, exc: ExportError) -> None:
        """Move to ``FAILED`` keeping the originating reason for display."""
        self.transition(ExportState.FAILED)
        self.error = exc.kind
        self.message = str(exc)
        self.artifact = None

    def set_progress(self, value: float) -> bool:
        """Record a progress update; returns False when it would not move forward."""
        value = max(0.0, min(100.0, value))
        if value <= self.progress and self.progress_history:
            return False
        self.progress = value
        self.progress_history.append(value)
        return True
