"""FFmpeg-backed media source, encoder sink and encoder detection for export."""
from __future__ import annotations

import logging
import queue
import subprocess
import threading
from typing import List, Optional, Set, Tuple

import ffmpeg
from PySide6.QtGui import QImage

from captionsync.core.clock import Clock
from captionsync.core.encoding import EncoderCapabilities, EncoderSink
from captionsync.core.playback import AudioTrack, MediaSource, ReadyState
from captionsync.errors import EncodingError
from captionsync.models.export_job import EncoderProfile, ExportFormat

log = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024


# --------------------------------------------------------------------------- #
#  Media info
# --------------------------------------------------------------------------- #

def get_video_info(video_path: str) -> dict:
    """Return basic metadata dict: duration (s), width, height, fps, has_audio."""
    info  = ffmpeg.probe(video_path)
    vstream = next(
        (s for s in info["streams"] if s["codec_type"] == "video"), {}
    )
    has_audio = any(s["codec_type"] == "audio" for s in info["streams"])
    duration = float(info["format"].get("duration", 0))
    width    = vstream.get("width", 0)
    height   = vstream.get("height", 0)

    raw_fps = vstream.get("r_frame_rate", "25/1")
    try:
        num, den = raw_fps.split("/")
        fps = float(num) / float(den)
    except (ValueError, ZeroDivisionError):
        fps = 25.0

    return {
        "duration": duration, "width": width, "height": height,
        "fps": fps, "has_audio": has_audio,
    }


# --------------------------------------------------------------------------- #
#  Encoder detection
# --------------------------------------------------------------------------- #

def _detect_encoders() -> Set[str]:
    """Names of the encoders the installed ffmpeg was built with."""
    try:
        result = subprocess.run(
            ["ffmpeg", "-hide_banner", "-encoders"],
            capture_output=True, text=True, timeout=10,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        log.warning("Could not list ffmpeg encoders: %s", exc)
        return set()

    names: Set[str] = set()
    in_table = False
    for line in result.stdout.splitlines():
        parts = line.split()
        if not in_table:
            # legend rows precede a " ------" separator
            in_table = parts[:1] == ["------"]
            continue
        # " V....D libx264   libx264 H.264 / AVC ..."
        if len(parts) >= 2 and len(parts[0]) == 6 and parts[0][0] in "VAS":
            names.add(parts[1])
    return names


# Cache the result so ffmpeg is asked only once per process lifetime.
_ENCODERS: Set[str] | None = None


def _available_encoders() -> Set[str]:
    global _ENCODERS
    if _ENCODERS is None:
        _ENCODERS = _detect_encoders()
        log.debug("ffmpeg encoders detected: %d", len(_ENCODERS))
    return _ENCODERS


class FFmpegCapabilities(EncoderCapabilities):
    """Answers ``supports()`` from ``ffmpeg -encoders``."""

    def __init__(self, encoders: Optional[Set[str]] = None):
        self._encoders = encoders

    def supports(self, fmt: ExportFormat, codec_profile: str) -> bool:
        encoders = self._encoders if self._encoders is not None else _available_encoders()
        codecs = [c.strip() for c in codec_profile.split(",") if c.strip()]
        return bool(codecs) and all(c in encoders for c in codecs)


def _log_stderr(stream, tag: str, tail: List[str]) -> None:
    for line in stream:
        text = line.decode("utf-8", errors="ignore").rstrip()
        if text:
            log.debug("[%s] %s", tag, text)
            tail.append(text)
            del tail[:-20]


# --------------------------------------------------------------------------- #
#  Export source
# --------------------------------------------------------------------------- #

class FFmpegMediaSource(MediaSource):
    """Decodes the source to RGBA frames on a reader thread.

    Position is driven by the export's clock once :meth:`play` is called, so
    the export runs at normal playback rate independent of any preview.
    """

    def __init__(self, video_path: str, clock: Clock, fps: float = 30.0):
        self._path = video_path
        self._clock = clock
        self._fps = fps
        info = get_video_info(video_path)
        self._width = int(info["width"])
        self._height = int(info["height"])
        self._duration_ms = info["duration"] * 1000.0
        self._has_audio = info["has_audio"]
        if not self._width or not self._height:
            raise ValueError(f"no video stream in {video_path}")

        self._frames: "queue.Queue[Tuple[int, bytes]]" = queue.Queue(maxsize=int(fps * 2))
        self._current: Optional[QImage] = None
        self._current_index = -1
        self._position_ms = 0.0
        self._play_started_ms: Optional[float] = None
        self._closed = threading.Event()
        self._stderr_tail: List[str] = []

        out = (
            ffmpeg
            .input(video_path)
            .output("pipe:", format="rawvideo", pix_fmt="rgba", r=fps)
        )
        log.debug("[ffmpeg decode] command: %s", " ".join(ffmpeg.compile(out)))
        self._process = out.run_async(pipe_stdout=True, pipe_stderr=True)
        self._reader = threading.Thread(target=self._read_frames, daemon=True)
        self._reader.start()
        threading.Thread(
            target=_log_stderr, args=(self._process.stderr, "ffmpeg decode", self._stderr_tail),
            daemon=True,
        ).start()

    def _read_frames(self) -> None:
        frame_bytes = self._width * self._height * 4
        index = 0
        while not self._closed.is_set():
            data = self._process.stdout.read(frame_bytes)
            if not data or len(data) < frame_bytes:
                break
            while not self._closed.is_set():
                try:
                    self._frames.put((index, data), timeout=0.1)
                    break
                except queue.Full:
                    continue
            index += 1
        log.debug("[ffmpeg decode] reader stopped after %d frames", index)

    def _advance_to(self, target_index: int) -> None:
        while self._current_index < target_index:
            try:
                index, data = self._frames.get_nowait()
            except queue.Empty:
                return
            self._current_index = index
            self._current = QImage(
                data, self._width, self._height, self._width * 4, QImage.Format_RGBA8888
            ).copy()

    # ------------------------------------------------------------------ PlaybackSource
    def current_time_ms(self) -> float:
        if self._play_started_ms is None:
            return self._position_ms
        elapsed = self._clock.now_ms() - self._play_started_ms
        return min(self._duration_ms, self._position_ms + elapsed)

    def duration_ms(self) -> float:
        return self._duration_ms

    def ready_state(self) -> ReadyState:
        target = int(self.current_time_ms() * self._fps / 1000.0)
        self._advance_to(target)
        return ReadyState.READY if self._current is not None else ReadyState.BUFFERING

    # ------------------------------------------------------------------ MediaSource
    def frame(self) -> Optional[QImage]:
        self._advance_to(int(self.current_time_ms() * self._fps / 1000.0))
        return self._current

    def frame_size(self) -> Tuple[int, int]:
        return self._width, self._height

    def audio_track(self) -> Optional[AudioTrack]:
        return AudioTrack(self._path, 0) if self._has_audio else None

    def play(self) -> None:
        if self._play_started_ms is None:
            self._play_started_ms = self._clock.now_ms()

    def pause(self) -> None:
        if self._play_started_ms is not None:
            self._position_ms = self.current_time_ms()
            self._play_started_ms = None

    def ended(self) -> bool:
        return self.current_time_ms() >= self._duration_ms

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        if self._process.poll() is None:
            self._process.kill()
        self._process.wait()
        self._reader.join(timeout=1)


# --------------------------------------------------------------------------- #
#  Export sink
# --------------------------------------------------------------------------- #

class FFmpegEncoderSink(EncoderSink):
    """Pipes raw RGBA frames into ffmpeg and collects the muxed container bytes."""

    def __init__(
        self,
        profile: EncoderProfile,
        width: int,
        height: int,
        fps: float,
        audio: AudioTrack,
    ):
        self._frame_bytes = width * height * 4
        self._output: "queue.Queue[bytes]" = queue.Queue()
        self._stderr_tail: List[str] = []

        video_in = ffmpeg.input(
            "pipe:", format="rawvideo", pix_fmt="rgba", s=f"{width}x{height}", framerate=fps
        )
        audio_in = ffmpeg.input(audio.source)[f"a:{audio.stream_index}"]

        extra: dict = {}
        if profile.format is ExportFormat.MP4:
            # a seekable index cannot be written to a pipe
            extra["movflags"] = "frag_keyframe+empty_moov"
        out = ffmpeg.output(
            video_in,
            audio_in,
            "pipe:",
            format=profile.format.value,
            vcodec=profile.video_codec,
            acodec=profile.audio_codec,
            video_bitrate=profile.video_bitrate,
            audio_bitrate=profile.audio_bitrate,
            pix_fmt="yuv420p",
            shortest=None,
            **extra,
        ).overwrite_output()

        log.info(
            "[ffmpeg export] codec=%s/%s  size=%dx%d  fps=%.0f",
            profile.video_codec, profile.audio_codec, width, height, fps,
        )
        log.debug("[ffmpeg export] command: %s", " ".join(ffmpeg.compile(out)))

        self._process = out.run_async(pipe_stdin=True, pipe_stdout=True, pipe_stderr=True)
        self._reader = threading.Thread(target=self._read_output, daemon=True)
        self._reader.start()
        self._stderr_reader = threading.Thread(
            target=_log_stderr, args=(self._process.stderr, "ffmpeg export", self._stderr_tail),
            daemon=True,
        )
        self._stderr_reader.start()

    def _read_output(self) -> None:
        while True:
            data = self._process.stdout.read1(_READ_CHUNK)
            if not data:
                break
            self._output.put(data)

    def _error(self, reason: str) -> EncodingError:
        tail = "\n".join(self._stderr_tail[-20:])
        return EncodingError(f"{reason}\n{tail}" if tail else reason)

    def write_frame(self, surface: QImage) -> None:
        data = surface.constBits().tobytes()
        if len(data) != self._frame_bytes:
            raise EncodingError(
                f"frame is {len(data)} bytes, encoder expects {self._frame_bytes}"
            )
        try:
            self._process.stdin.write(data)
        except (BrokenPipeError, OSError) as exc:
            raise self._error(f"ffmpeg stopped accepting frames: {exc}") from exc

    def drain(self) -> List[bytes]:
        chunks: List[bytes] = []
        while True:
            try:
                chunks.append(self._output.get_nowait())
            except queue.Empty:
                return chunks

    def finish(self) -> bytes:
        try:
            self._process.stdin.close()
        except (BrokenPipeError, OSError):
            pass
        self._process.wait()
        self._reader.join()
        self._stderr_reader.join(timeout=1)
        if self._process.returncode:
            raise self._error(f"ffmpeg exited with code {self._process.returncode}")
        return b"".join(self.drain())

    def abort(self) -> None:
        if self._process.poll() is None:
            self._process.kill()
            self._process.wait()
        log.info("[ffmpeg export] aborted")
