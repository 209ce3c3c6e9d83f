"""Encoder collaborators: capability query, sink interface and profile selection."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Tuple

from PySide6.QtGui import QImage

from captionsync.core.playback import AudioTrack
from captionsync.errors import UnsupportedFormatError
from captionsync.models.export_job import (
    QUALITY_BITRATES,
    EncoderProfile,
    ExportConfig,
    ExportFormat,
)

logger = logging.getLogger(__name__)

# (video encoder, audio encoder, mime type) in order of preference
CODEC_CANDIDATES: Dict[ExportFormat, List[Tuple[str, str, str]]] = {
    ExportFormat.WEBM: [
        ("libvpx-vp9", "libopus",   "video/webm;codecs=vp9,opus"),
        ("libvpx",     "libvorbis", "video/webm;codecs=vp8,vorbis"),
    ],
    ExportFormat.MP4: [
        ("h264_nvenc", "aac", "video/mp4;codecs=h264,aac"),
        ("libx264",    "aac", "video/mp4;codecs=h264,aac"),
    ],
}


class EncoderCapabilities(ABC):
    @abstractmethod
    def supports(self, fmt: ExportFormat, codec_profile: str) -> bool:
        """True if ``"<video>,<audio>"`` can be encoded into *fmt*."""


class EncoderSink(ABC):
    """Accepts painted frames and yields encoded container bytes."""

    @abstractmethod
    def write_frame(self, surface: QImage) -> None: ...

    @abstractmethod
    def drain(self) -> List[bytes]:
        """Encoded chunks produced since the last call (never blocks)."""

    @abstractmethod
    def finish(self) -> bytes:
        """Stop encoding and return whatever output was still pending."""

    @abstractmethod
    def abort(self) -> None:
        """Stop immediately, discarding output."""


SinkFactory = Callable[[EncoderProfile, int, int, float, AudioTrack], EncoderSink]


def select_profile(config: ExportConfig, capabilities: EncoderCapabilities) -> EncoderProfile:
    """First supported codec pair for the requested format, with the quality's bitrates."""
    video_bps, audio_bps = QUALITY_BITRATES[config.quality]
    for video_codec, audio_codec, mime in CODEC_CANDIDATES[config.format]:
        if capabilities.supports(config.format, f"{video_codec},{audio_codec}"):
            profile = EncoderProfile(
                format=config.format,
                video_codec=video_codec,
                audio_codec=audio_codec,
                mime_type=mime,
                video_bitrate=video_bps,
                audio_bitrate=audio_bps,
            )
            logger.info(
                "Encoder profile: %s (%s/%s @ %d bps)",
                mime, video_codec, audio_codec, video_bps,
            )
            return profile
    raise UnsupportedFormatError(
        f"{config.format.value.upper()} format not supported by the installed encoder"
    )
