"""Tests for the export pipeline state machine, driven by a manual clock."""

from __future__ import annotations

from typing import List, Optional, Tuple

import pytest
from PySide6.QtGui import QColor, QImage

from captionsync.core.clock import Clock, ManualClock
from captionsync.core.encoding import EncoderCapabilities, EncoderSink
from captionsync.core.export import ExportPipeline
from captionsync.core.playback import AudioTrack, MediaSource, ReadyState
from captionsync.core.store import UtteranceStore
from captionsync.core.style import StyleResolver
from captionsync.errors import ErrorKind, InvalidTransitionError
from captionsync.models.export_job import ExportConfig, ExportFormat, ExportQuality, ExportState
from captionsync.models.utterance import Utterance

pytestmark = pytest.mark.usefixtures("qapp")


class FakeMedia(MediaSource):
    """One second of solid frames whose time follows the clock once playing."""

    def __init__(
        self,
        clock: Clock,
        duration_ms: float = 1000.0,
        ready_after_ms: Optional[float] = 0.0,
        audio: Optional[AudioTrack] = AudioTrack("fake.mp4"),
    ) -> None:
        self._clock = clock
        self._duration = duration_ms
        self._ready_at = None if ready_after_ms is None else clock.now_ms() + ready_after_ms
        self._audio = audio
        self._started_at: Optional[float] = None
        self._frame = QImage(64, 36, QImage.Format_RGB32)
        self._frame.fill(QColor("#204060"))
        self.closed = False
        self.paused = False

    def current_time_ms(self) -> float:
        if self._started_at is None:
            return 0.0
        return min(self._duration, self._clock.now_ms() - self._started_at)

    def duration_ms(self) -> float:
        return self._duration

    def ready_state(self) -> ReadyState:
        if self._ready_at is None or self._clock.now_ms() < self._ready_at:
            return ReadyState.BUFFERING
        return ReadyState.READY

    def frame(self) -> Optional[QImage]:
        return self._frame

    def frame_size(self) -> Tuple[int, int]:
        return 64, 36

    def audio_track(self) -> Optional[AudioTrack]:
        return self._audio

    def play(self) -> None:
        self._started_at = self._clock.now_ms()

    def pause(self) -> None:
        self.paused = True

    def ended(self) -> bool:
        return self._started_at is not None and self.current_time_ms() >= self._duration

    def close(self) -> None:
        self.closed = True


class FakeSink(EncoderSink):
    """Counts frames; each frame becomes one encoded byte."""

    def __init__(self, fail_on_frame: Optional[int] = None, fail_on_finish: bool = False) -> None:
        self.frames = 0
        self.aborted = False
        self.finished = False
        self._pending: List[bytes] = []
        self._fail_on_frame = fail_on_frame
        self._fail_on_finish = fail_on_finish

    def write_frame(self, surface: QImage) -> None:
        if self._fail_on_frame is not None and self.frames >= self._fail_on_frame:
            raise RuntimeError("encoder crashed")
        assert surface.size().width() == 64
        self.frames += 1
        self._pending.append(b"f")

    def drain(self) -> List[bytes]:
        chunks, self._pending = self._pending, []
        return chunks

    def finish(self) -> bytes:
        if self._fail_on_finish:
            raise RuntimeError("muxer failed")
        self.finished = True
        return b"END"

    def abort(self) -> None:
        self.aborted = True


class FakeCapabilities(EncoderCapabilities):
    def __init__(self, supported: Tuple[str, ...] = ("webm", "mp4")) -> None:
        self._supported = supported

    def supports(self, fmt: ExportFormat, codec_profile: str) -> bool:
        return fmt.value in self._supported


class Harness:
    """Pipeline plus the fakes it was built with and a log of listener calls."""

    def __init__(self, clock: ManualClock, media_kwargs=None, sink: Optional[FakeSink] = None,
                 capabilities: Optional[FakeCapabilities] = None, open_error: Optional[Exception] = None,
                 ready_timeout_ms: float = 5000) -> None:
        self.clock = clock
        self.media: Optional[FakeMedia] = None
        self.sink = sink or FakeSink()
        self.events: List[tuple] = []
        self.artifacts: List[bytes] = []
        self.failures = []
        self.sink_args = None
        self._media_kwargs = media_kwargs or {}
        self._open_error = open_error

        store = UtteranceStore([Utterance("A", 0, 800, "we are exporting these words now")])
        self.pipeline = ExportPipeline(
            store=store,
            resolver=StyleResolver(),
            open_media=self._open,
            capabilities=capabilities or FakeCapabilities(),
            sink_factory=self._make_sink,
            clock=clock,
            theme_id="default",
            fps=30,
            ready_timeout_ms=ready_timeout_ms,
        )
        self.pipeline.listen(
            state=lambda s: self.events.append(("state", s)),
            progress=lambda p: self.events.append(("progress", p)),
            completed=self.artifacts.append,
            failed=self.failures.append,
        )

    def _open(self, clock: Clock) -> FakeMedia:
        if self._open_error is not None:
            raise self._open_error
        self.media = FakeMedia(clock, **self._media_kwargs)
        return self.media

    def _make_sink(self, profile, width, height, fps, audio) -> FakeSink:
        self.sink_args = (profile, width, height, fps, audio)
        return self.sink

    @property
    def states(self) -> List[ExportState]:
        return [value for kind, value in self.events if kind == "state"]

    @property
    def progress(self) -> List[float]:
        return [value for kind, value in self.events if kind == "progress"]


def test_unsupported_mp4_fails_during_preparing(clock: ManualClock) -> None:
    """No mp4 encoder: Preparing -> Failed with progress still zero."""
    harness = Harness(clock, capabilities=FakeCapabilities(supported=("webm",)))

    job = harness.pipeline.start(ExportConfig(ExportFormat.MP4, ExportQuality.HIGH))

    assert harness.states == [ExportState.PREPARING, ExportState.FAILED]
    assert job.error is ErrorKind.UNSUPPORTED_FORMAT
    assert job.message == "MP4 format not supported by the installed encoder"
    assert job.progress == 0
    assert harness.media is None
    assert clock.pending == 0


def test_full_export_completes_with_monotonic_progress(clock: ManualClock) -> None:
    """A run goes through every state and reports 100 only after completion."""
    harness = Harness(clock)

    job = harness.pipeline.start(ExportConfig(ExportFormat.WEBM, ExportQuality.MEDIUM))
    clock.run_until_idle()

    assert harness.states == [
        ExportState.PREPARING,
        ExportState.RECORDING,
        ExportState.FINALIZING,
        ExportState.COMPLETED,
    ]
    progress = harness.progress
    assert progress[0] == 0
    assert progress[-1] == 100
    assert all(a < b for a, b in zip(progress, progress[1:]))
    assert max(progress[:-1]) <= 99
    assert harness.events.index(("progress", 100.0)) > harness.events.index(("state", ExportState.COMPLETED))

    assert job.state is ExportState.COMPLETED
    assert harness.sink.frames >= 30
    assert harness.artifacts == [b"f" * harness.sink.frames + b"END"]
    assert job.artifact == harness.artifacts[0]
    assert job.profile.video_codec == "libvpx-vp9"
    assert job.profile.video_bitrate == 4_000_000
    assert harness.sink_args[1:4] == (64, 36, 30.0)
    assert harness.media.closed
    assert not harness.sink.aborted
    assert clock.pending == 0


def test_media_that_never_loads_times_out(clock: ManualClock) -> None:
    """Waiting past the ready timeout fails the job and releases the media."""
    harness = Harness(clock, media_kwargs={"ready_after_ms": None}, ready_timeout_ms=200)

    job = harness.pipeline.start(ExportConfig())
    clock.run_until_idle()

    assert job.state is ExportState.FAILED
    assert job.error is ErrorKind.MEDIA_LOAD_TIMEOUT
    assert harness.states == [ExportState.PREPARING, ExportState.FAILED]
    assert harness.media.closed
    assert clock.now_ms() >= 200
    assert clock.pending == 0


def test_slow_media_within_timeout_still_records(clock: ManualClock) -> None:
    """Readiness after a short delay is waited for."""
    harness = Harness(clock, media_kwargs={"ready_after_ms": 150, "duration_ms": 200})

    job = harness.pipeline.start(ExportConfig())
    clock.run_until_idle()

    assert job.state is ExportState.COMPLETED


def test_source_without_audio_cannot_create_stream(clock: ManualClock) -> None:
    """A missing audio track is a stream creation failure."""
    harness = Harness(clock, media_kwargs={"audio": None})

    job = harness.pipeline.start(ExportConfig())
    clock.run_until_idle()

    assert job.error is ErrorKind.STREAM_CREATION
    assert harness.failures == [job]
    assert harness.sink_args is None


def test_media_open_failure_is_a_stream_creation_error(clock: ManualClock) -> None:
    """Errors from opening the media are reported, not raised."""
    harness = Harness(clock, open_error=OSError("no such file"))

    job = harness.pipeline.start(ExportConfig())

    assert job.error is ErrorKind.STREAM_CREATION
    assert "no such file" in job.message


def test_encoder_failure_while_recording(clock: ManualClock) -> None:
    """A crashing encoder fails the job and is aborted."""
    harness = Harness(clock, sink=FakeSink(fail_on_frame=5))

    job = harness.pipeline.start(ExportConfig())
    clock.run_until_idle()

    assert job.state is ExportState.FAILED
    assert job.error is ErrorKind.ENCODING
    assert job.artifact is None
    assert harness.sink.aborted
    assert harness.artifacts == []
    assert clock.pending == 0


def test_encoder_failure_while_finalizing(clock: ManualClock) -> None:
    """A muxer error during finalizing still aborts the sink."""
    harness = Harness(clock, sink=FakeSink(fail_on_finish=True))

    job = harness.pipeline.start(ExportConfig())
    clock.run_until_idle()

    assert harness.states[-2:] == [ExportState.FINALIZING, ExportState.FAILED]
    assert job.error is ErrorKind.ENCODING
    assert harness.sink.aborted


def test_cancel_while_recording(clock: ManualClock) -> None:
    """Cancelling stops the clock callbacks and discards output."""
    harness = Harness(clock)
    job = harness.pipeline.start(ExportConfig())
    clock.advance(300)
    assert job.state is ExportState.RECORDING

    assert harness.pipeline.cancel() is True

    assert job.state is ExportState.FAILED
    assert job.cancelled
    assert harness.sink.aborted
    assert harness.media.closed
    assert clock.pending == 0
    assert harness.pipeline.cancel() is False


def test_only_one_export_at_a_time(clock: ManualClock) -> None:
    """A second start while busy is rejected until the job is acknowledged."""
    harness = Harness(clock)
    harness.pipeline.start(ExportConfig())

    with pytest.raises(InvalidTransitionError):
        harness.pipeline.start(ExportConfig())

    harness.pipeline.cancel()
    harness.pipeline.acknowledge()
    assert harness.pipeline.job is None
    assert not harness.pipeline.busy


def test_cancel_while_preparing(clock: ManualClock) -> None:
    """Cancelling before the media is ready closes it and leaves no callbacks behind."""
    harness = Harness(clock, media_kwargs={"ready_after_ms": 1000})
    job = harness.pipeline.start(ExportConfig())
    clock.advance(100)
    assert job.state is ExportState.PREPARING

    assert harness.pipeline.cancel() is True

    assert job.state is ExportState.FAILED
    assert job.error is ErrorKind.CANCELLED
    assert harness.media.closed
    assert harness.sink_args is None
    assert clock.pending == 0


def test_listener_error_on_recording_fails_the_job(clock: ManualClock) -> None:
    """A state listener raising on RECORDING fails the job and releases everything."""
    harness = Harness(clock)

    def explode(state: ExportState) -> None:
        if state is ExportState.RECORDING:
            raise RuntimeError("listener bug")

    harness.pipeline.listen(state=explode)
    job = harness.pipeline.start(ExportConfig())
    clock.run_until_idle()

    assert job.state is ExportState.FAILED
    assert job.error is ErrorKind.ENCODING
    assert harness.sink.aborted
    assert harness.media.closed
    assert clock.pending == 0
    assert harness.failures == [job]


def test_listener_error_after_completion_is_logged(clock: ManualClock, caplog: pytest.LogCaptureFixture) -> None:
    """A completed listener that raises does not undo a finished export."""
    harness = Harness(clock)

    def explode(artifact: bytes) -> None:
        raise RuntimeError("listener bug")

    harness.pipeline.listen(completed=explode)
    job = harness.pipeline.start(ExportConfig())
    with caplog.at_level("ERROR", logger="captionsync.core.export"):
        clock.run_until_idle()

    assert job.state is ExportState.COMPLETED
    assert job.progress == 100.0
    assert harness.artifacts
    assert "Export listener" in caplog.text
