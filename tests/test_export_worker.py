"""Tests for the export worker's signal flow on a virtual clock."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

import pytest
from PySide6.QtGui import QColor, QImage

from captionsync.core.clock import Clock, ManualClock
from captionsync.core.encoding import EncoderCapabilities, EncoderSink
from captionsync.core.playback import AudioTrack, MediaSource, ReadyState
from captionsync.models.export_job import ExportConfig, ExportFormat
from captionsync.models.theme import ThemeTable
from captionsync.models.utterance import Utterance
from captionsync.workers import export_worker
from captionsync.workers.export_worker import ExportWorker

pytestmark = pytest.mark.usefixtures("qapp")


class ClipMedia(MediaSource):
    """A short solid-colour clip that is ready at once."""

    def __init__(self, video_path: str, clock: Clock, fps: float = 30.0) -> None:
        self._clock = clock
        self._started_at: Optional[float] = None
        self._frame = QImage(32, 18, QImage.Format_RGB32)
        self._frame.fill(QColor("#336699"))

    def current_time_ms(self) -> float:
        if self._started_at is None:
            return 0.0
        return min(200.0, self._clock.now_ms() - self._started_at)

    def duration_ms(self) -> float:
        return 200.0

    def ready_state(self) -> ReadyState:
        return ReadyState.READY

    def frame(self) -> Optional[QImage]:
        return self._frame

    def frame_size(self) -> Tuple[int, int]:
        return 32, 18

    def audio_track(self) -> Optional[AudioTrack]:
        return AudioTrack("clip.mp4")

    def play(self) -> None:
        self._started_at = self._clock.now_ms()

    def pause(self) -> None:
        pass

    def ended(self) -> bool:
        return self.current_time_ms() >= 200.0

    def close(self) -> None:
        pass


class BytesSink(EncoderSink):
    def __init__(self, profile, width, height, fps, audio) -> None:
        self._pending: List[bytes] = []

    def write_frame(self, surface: QImage) -> None:
        self._pending.append(b"f")

    def drain(self) -> List[bytes]:
        chunks, self._pending = self._pending, []
        return chunks

    def finish(self) -> bytes:
        return b"!"

    def abort(self) -> None:
        pass


class WebmOnly(EncoderCapabilities):
    def supports(self, fmt: ExportFormat, codec_profile: str) -> bool:
        return fmt is ExportFormat.WEBM


@pytest.fixture
def fake_ffmpeg(monkeypatch: pytest.MonkeyPatch) -> None:
    """Swaps the ffmpeg-backed collaborators for in-memory ones."""
    monkeypatch.setattr(export_worker, "FFmpegMediaSource", ClipMedia)
    monkeypatch.setattr(export_worker, "FFmpegEncoderSink", BytesSink)
    monkeypatch.setattr(export_worker, "FFmpegCapabilities", WebmOnly)


def _worker(tmp_path: Path, clock: ManualClock, config: ExportConfig) -> ExportWorker:
    return ExportWorker(
        "clip.mp4",
        [Utterance("A", 0, 150, "burned in words")],
        ThemeTable(),
        "default",
        str(tmp_path / "out.bin"),
        config,
        clock=clock,
    )


def test_completed_export_is_written_and_acknowledged(
    tmp_path: Path, clock: ManualClock, fake_ffmpeg: None
) -> None:
    """The artifact lands on disk, done and finished fire once and the job is cleared."""
    worker = _worker(tmp_path, clock, ExportConfig())
    done: List[str] = []
    finished: List[bool] = []
    worker.done.connect(done.append)
    worker.finished.connect(lambda: finished.append(True))

    worker.run()
    clock.run_until_idle()

    output = tmp_path / "out.bin"
    assert done == [str(output)]
    assert finished == [True]
    assert output.read_bytes().endswith(b"!")
    assert worker._pipeline.job is None
    assert not worker._pipeline.busy


def test_immediate_failure_is_reported_and_acknowledged(
    tmp_path: Path, clock: ManualClock, fake_ffmpeg: None
) -> None:
    """An unsupported format fails inside start and still leaves the pipeline idle."""
    worker = _worker(tmp_path, clock, ExportConfig(format=ExportFormat.MP4))
    errors: List[str] = []
    finished: List[bool] = []
    worker.error.connect(errors.append)
    worker.finished.connect(lambda: finished.append(True))

    worker.run()

    assert len(errors) == 1
    assert finished == [True]
    assert worker._pipeline.job is None
    assert clock.pending == 0
    assert not (tmp_path / "out.bin").exists()
