"""Export pipeline: play the source, burn captions into each frame, encode.

States: idle -> preparing -> recording -> finalizing -> completed, or
-> failed from anywhere short of completed. The pipeline runs on its own
clock and owns its own surface, independent of the live preview.
"""
from __future__ import annotations

import logging
import math
from typing import Callable, List, Optional

from PySide6.QtGui import QImage

from captionsync.core.clock import Clock, TimerHandle
from captionsync.core.encoding import EncoderCapabilities, EncoderSink, SinkFactory, select_profile
from captionsync.core.playback import MediaSource, ReadyState
from captionsync.core.renderer import DEFAULT_BOTTOM_OFFSET, new_surface, render_frame
from captionsync.core.scheduler import collect_chunks
from captionsync.core.store import UtteranceStore
from captionsync.core.style import StyleResolver
from captionsync.errors import (
    EncodingError,
    ExportCancelled,
    ExportError,
    InvalidTransitionError,
    MediaLoadTimeoutError,
    StreamCreationError,
)
from captionsync.models.export_job import ExportConfig, ExportJob, ExportState

logger = logging.getLogger(__name__)

MediaOpener = Callable[[Clock], MediaSource]

DEFAULT_FPS = 30
DEFAULT_READY_TIMEOUT_MS = 5000


class ExportPipeline:
    """Drives one export job at a time.

    Listeners registered with :meth:`listen` are called synchronously from
    the pipeline's clock callbacks: ``state(ExportState)``,
    ``progress(float)``, ``completed(bytes)`` and ``failed(ExportJob)``.
    """

    def __init__(
        self,
        store: UtteranceStore,
        resolver: StyleResolver,
        open_media: MediaOpener,
        capabilities: EncoderCapabilities,
        sink_factory: SinkFactory,
        clock: Clock,
        theme_id: Optional[str] = None,
        fps: float = DEFAULT_FPS,
        ready_timeout_ms: float = DEFAULT_READY_TIMEOUT_MS,
        bottom_offset: float = DEFAULT_BOTTOM_OFFSET,
    ):
        self._store = store
        # own resolver over the current table; later theme additions do not leak in
        self._resolver = StyleResolver(resolver.table)
        self._open_media = open_media
        self._capabilities = capabilities
        self._sink_factory = sink_factory
        self._clock = clock
        self._theme_id = theme_id
        self._fps = float(fps)
        self._frame_interval_ms = 1000.0 / self._fps
        self._ready_timeout_ms = ready_timeout_ms
        self._bottom_offset = bottom_offset

        self.job: Optional[ExportJob] = None
        self._media: Optional[MediaSource] = None
        self._sink: Optional[EncoderSink] = None
        self._surface: Optional[QImage] = None
        self._timer: Optional[TimerHandle] = None
        self._chunks: List[bytes] = []
        self._duration_ms = 0.0
        self._prepare_started_ms = 0.0
        self._frames_written = 0

        self._state_listeners: List[Callable[[ExportState], None]] = []
        self._progress_listeners: List[Callable[[float], None]] = []
        self._completed_listeners: List[Callable[[bytes], None]] = []
        self._failed_listeners: List[Callable[[ExportJob], None]] = []

    # ------------------------------------------------------------------ listeners
    def listen(self, state=None, progress=None, completed=None, failed=None) -> None:
        if state is not None:
            self._state_listeners.append(state)
        if progress is not None:
            self._progress_listeners.append(progress)
        if completed is not None:
            self._completed_listeners.append(completed)
        if failed is not None:
            self._failed_listeners.append(failed)

    def _enter(self, state: ExportState) -> None:
        self.job.transition(state)
        for callback in list(self._state_listeners):
            callback(state)

    def _report_progress(self, value: float) -> None:
        if self.job.set_progress(value):
            for callback in list(self._progress_listeners):
                callback(self.job.progress)

    def _notify_terminal(self, callbacks, *args) -> None:
        """Call listeners once the job can no longer change state; errors are logged."""
        for callback in list(callbacks):
            try:
                callback(*args)
            except Exception:
                logger.exception("Export listener %r failed", callback)

    # ------------------------------------------------------------------ API
    @property
    def busy(self) -> bool:
        return self.job is not None and not self.job.is_terminal

    def start(self, config: ExportConfig) -> ExportJob:
        if self.busy:
            raise InvalidTransitionError("an export is already in progress")
        self.job = ExportJob(config=config)
        self._chunks = []
        self._frames_written = 0
        logger.info("Export requested — format=%s quality=%s", config.format.value, config.quality.value)
        try:
            self._enter(ExportState.PREPARING)
        except Exception as exc:
            self._fail(EncodingError(f"Export listener failed: {exc}"))
            return self.job

        try:
            self.job.profile = select_profile(config, self._capabilities)
        except ExportError as exc:
            self._fail(exc)
            return self.job

        try:
            self._media = self._open_media(self._clock)
        except Exception as exc:
            self._fail(StreamCreationError(f"Failed to create stream: {exc}"))
            return self.job

        self._prepare_started_ms = self._clock.now_ms()
        self._timer = self._clock.schedule_next(self._await_ready, 0)
        return self.job

    def cancel(self) -> bool:
        """Stop a preparing/recording export. Returns False when there is nothing to cancel."""
        if self.job is None or self.job.state not in (ExportState.PREPARING, ExportState.RECORDING):
            logger.debug("Export cancel ignored (state=%s)", self.job.state.value if self.job else None)
            return False
        logger.info("Export cancelled by user")
        self._fail(ExportCancelled("Export cancelled"))
        return True

    def acknowledge(self) -> None:
        """Forget a finished job so a new export can start from idle."""
        if self.job is not None and self.job.is_terminal:
            self.job = None

    # ------------------------------------------------------------------ preparing
    def _await_ready(self) -> None:
        if self.job is None or self.job.state is not ExportState.PREPARING:
            return
        try:
            ready = self._media.ready_state() is ReadyState.READY
        except Exception as exc:
            self._fail(StreamCreationError(f"Failed to create stream: {exc}"))
            return

        if not ready:
            waited = self._clock.now_ms() - self._prepare_started_ms
            if waited >= self._ready_timeout_ms:
                self._fail(MediaLoadTimeoutError(
                    f"Source media did not become ready within {self._ready_timeout_ms / 1000:.1f} s. "
                    "Check that the file is readable and try again."
                ))
            else:
                self._timer = self._clock.schedule_next(self._await_ready, self._frame_interval_ms)
            return

        try:
            audio = self._media.audio_track()
            if audio is None:
                raise StreamCreationError("Failed to create stream: source has no audio track")
            width, height = self._media.frame_size()
            self._duration_ms = float(self._media.duration_ms())
            self._surface = new_surface(width, height)
            self._sink = self._sink_factory(self.job.profile, width, height, self._fps, audio)
            self._media.play()
        except ExportError as exc:
            self._fail(exc)
            return
        except Exception as exc:
            self._fail(StreamCreationError(f"Failed to create stream: {exc}"))
            return

        try:
            self._enter(ExportState.RECORDING)
            self._report_progress(0.0)
        except Exception as exc:
            self._fail(EncodingError(f"Export listener failed: {exc}"))
            return
        self._timer = self._clock.schedule_next(self._record_frame, 0)

    # ------------------------------------------------------------------ recording
    def _record_frame(self) -> None:
        if self.job is None or self.job.state is not ExportState.RECORDING:
            return
        try:
            if self._media.ended():
                self._finalize()
                return

            t_ms = self._media.current_time_ms()
            chunks = collect_chunks(self._store.all(), t_ms)
            style = self._resolver.resolve(self._theme_id)
            render_frame(
                self._surface, self._media.frame(), chunks, style,
                t_ms=t_ms, bottom_offset=self._bottom_offset,
            )
            # Repeat the frame if ticks fell behind so video stays in step with audio.
            due = int(math.floor(t_ms * self._fps / 1000.0)) + 1
            for _ in range(max(1, due - self._frames_written)):
                self._sink.write_frame(self._surface)
                self._frames_written += 1
            self._chunks.extend(self._sink.drain())

            if self._duration_ms > 0:
                self._report_progress(min(99.0, 100.0 * t_ms / self._duration_ms))
        except Exception as exc:
            logger.error("Export failed while recording: %s", exc)
            self._fail(EncodingError(f"Encoding failed: {exc}"))
            return

        self._timer = self._clock.schedule_next(self._record_frame, self._frame_interval_ms)

    # ------------------------------------------------------------------ finalizing
    def _finalize(self) -> None:
        self._cancel_timer()
        try:
            self._enter(ExportState.FINALIZING)
            self._media.pause()
            self._chunks.extend(self._sink.drain())
            self._chunks.append(self._sink.finish())
            self._sink = None
            artifact = b"".join(self._chunks)
        except Exception as exc:
            logger.error("Export failed while finalizing: %s", exc)
            self._fail(EncodingError(f"Encoding failed: {exc}"))
            return

        self._release()
        self.job.transition(ExportState.COMPLETED)
        self.job.artifact = artifact
        self._notify_terminal(self._state_listeners, ExportState.COMPLETED)
        if self.job.set_progress(100.0):
            self._notify_terminal(self._progress_listeners, self.job.progress)
        logger.info("Export completed — %d bytes (%s)", len(artifact), self.job.profile.mime_type)
        self._notify_terminal(self._completed_listeners, artifact)

    # ------------------------------------------------------------------ teardown
    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _release(self) -> None:
        self._cancel_timer()
        if self._sink is not None:
            try:
                self._sink.abort()
            except Exception as exc:
                logger.warning("Encoder abort failed: %s", exc)
            self._sink = None
        if self._media is not None:
            try:
                self._media.pause()
                self._media.close()
            except Exception as exc:
                logger.warning("Releasing source media failed: %s", exc)
            self._media = None
        self._surface = None

    def _fail(self, exc: ExportError) -> None:
        self._release()
        self._chunks = []
        if isinstance(exc, ExportCancelled):
            logger.info("Export stopped: %s", exc)
        else:
            logger.error("Export failed (%s): %s", exc.kind.value, exc)
        self.job.fail(exc)
        self._notify_terminal(self._state_listeners, ExportState.FAILED)
        self._notify_terminal(self._failed_listeners, self.job)
