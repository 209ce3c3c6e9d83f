"""Tests for export job bookkeeping and profile selection."""

from __future__ import annotations

import pytest

from captionsync.core.encoding import EncoderCapabilities, select_profile
from captionsync.errors import (
    ErrorKind,
    InvalidTransitionError,
    MediaLoadTimeoutError,
    UnsupportedFormatError,
)
from captionsync.models.export_job import (
    ExportConfig,
    ExportFormat,
    ExportJob,
    ExportQuality,
    ExportState,
)


class OnlyCodecs(EncoderCapabilities):
    def __init__(self, *profiles: str) -> None:
        self._profiles = set(profiles)

    def supports(self, fmt: ExportFormat, codec_profile: str) -> bool:
        return codec_profile in self._profiles


def test_happy_path_transitions() -> None:
    """A job walks forward through every state."""
    job = ExportJob(ExportConfig())
    for state in (ExportState.PREPARING, ExportState.RECORDING, ExportState.FINALIZING, ExportState.COMPLETED):
        job.transition(state)

    assert job.is_terminal


def test_completed_job_cannot_fail() -> None:
    """Terminal states have no way out."""
    job = ExportJob(ExportConfig(), state=ExportState.COMPLETED)

    with pytest.raises(InvalidTransitionError):
        job.transition(ExportState.FAILED)


def test_skipping_a_state_is_rejected() -> None:
    """Preparing cannot jump straight to finalizing."""
    job = ExportJob(ExportConfig(), state=ExportState.PREPARING)

    with pytest.raises(InvalidTransitionError):
        job.transition(ExportState.FINALIZING)


def test_fail_keeps_the_reason() -> None:
    """The error kind and message survive on the job."""
    job = ExportJob(ExportConfig(), state=ExportState.PREPARING)

    job.fail(MediaLoadTimeoutError("too slow"))

    assert job.state is ExportState.FAILED
    assert job.error is ErrorKind.MEDIA_LOAD_TIMEOUT
    assert job.message == "too slow"
    assert not job.cancelled


def test_progress_never_goes_backwards() -> None:
    """Regressions and repeats are ignored; values are clamped."""
    job = ExportJob(ExportConfig())

    assert job.set_progress(0) is True
    assert job.set_progress(40) is True
    assert job.set_progress(30) is False
    assert job.set_progress(40) is False
    assert job.set_progress(250) is True

    assert job.progress == 100
    assert job.progress_history == [0, 40, 100]


def test_config_from_values_parses_strings() -> None:
    """Form values map onto the enums."""
    assert ExportConfig.from_values("mp4", "low") == ExportConfig(ExportFormat.MP4, ExportQuality.LOW)
    with pytest.raises(ValueError):
        ExportConfig.from_values("avi", "low")


def test_profile_prefers_first_supported_codec_pair() -> None:
    """Fallback codecs are used when the preferred one is missing."""
    profile = select_profile(
        ExportConfig(ExportFormat.MP4, ExportQuality.LOW),
        OnlyCodecs("libx264,aac"),
    )

    assert profile.video_codec == "libx264"
    assert profile.codec_profile == "libx264,aac"
    assert (profile.video_bitrate, profile.audio_bitrate) == (2_000_000, 64_000)
    assert profile.mime_type.startswith("video/mp4")


def test_no_supported_profile_raises() -> None:
    """Nothing usable for the format is an unsupported-format error."""
    with pytest.raises(UnsupportedFormatError, match="WEBM format not supported"):
        select_profile(ExportConfig(ExportFormat.WEBM), OnlyCodecs())
