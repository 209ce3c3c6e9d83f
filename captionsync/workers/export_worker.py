"""QThread worker: burn captions into the video and save the encoded file."""
from __future__ import annotations

import logging
import traceback
from dataclasses import replace
from typing import List, Optional

from PySide6.QtCore import QObject, Signal

from captionsync.config import get_config
from captionsync.core.clock import Clock, QtClock
from captionsync.core.export import ExportPipeline
from captionsync.core.store import UtteranceStore
from captionsync.engine import CaptionEngine
from captionsync.models.export_job import ExportConfig, ExportJob, ExportState
from captionsync.models.theme import ThemeTable
from captionsync.models.utterance import Utterance
from captionsync.utils.ffmpeg_utils import (
    FFmpegCapabilities,
    FFmpegEncoderSink,
    FFmpegMediaSource,
)

logger = logging.getLogger(__name__)


class ExportWorker(QObject):
    """Run an :class:`ExportPipeline` on the worker thread's event loop.

    The pipeline gets its own clock and a private copy of the utterances,
    so the live preview can keep playing (and the user keep editing) while
    the export records.

    Signals
    -------
    progress(int):        0–100 percent; 100 only once the file is assembled.
    state_changed(str):   ExportState value on every transition.
    done(str):            output path, emitted on success.
    cancelled():          emitted when the user cancelled.
    error(str):           emitted on failure, with a displayable message.
    finished():           always emitted at the end (for QThread cleanup).
    """

    progress      = Signal(int)
    state_changed = Signal(str)
    done          = Signal(str)
    cancelled     = Signal()
    error         = Signal(str)
    finished      = Signal()

    _cancel_requested = Signal()

    def __init__(
        self,
        video_path: str,
        utterances: List[Utterance],
        themes: ThemeTable,
        theme_id: str,
        output_path: str,
        config: ExportConfig,
        clock: Optional[Clock] = None,
    ):
        super().__init__()
        self._video_path  = video_path
        self._utterances  = [replace(u) for u in utterances]
        self._themes      = themes
        self._theme_id    = theme_id
        self._output_path = output_path
        self._config      = config
        self._clock = clock
        self._pipeline: Optional[ExportPipeline] = None
        self._cancel_requested.connect(self._on_cancel_requested)

    def cancel(self) -> None:
        """Request cancellation; handled on the worker thread."""
        logger.info("ExportWorker cancel requested")
        self._cancel_requested.emit()

    # ------------------------------------------------------------------ slot
    def run(self) -> None:
        logger.info(
            "ExportWorker starting — output=%s format=%s quality=%s",
            self._output_path, self._config.format.value, self._config.quality.value,
        )
        cfg = get_config()
        try:
            if self._clock is None:
                self._clock = QtClock()
            engine = CaptionEngine(
                UtteranceStore(self._utterances),
                self._themes,
                self._theme_id,
                bottom_offset=cfg.caption_bottom_offset,
            )
            self._pipeline = engine.start_export(
                self._config,
                open_media=lambda clock: FFmpegMediaSource(self._video_path, clock, cfg.export_fps),
                clock=self._clock,
                capabilities=FFmpegCapabilities(),
                sink_factory=FFmpegEncoderSink,
                fps=cfg.export_fps,
                ready_timeout_ms=cfg.ready_timeout_ms,
                on_state=self._on_state,
                on_progress=lambda pct: self.progress.emit(int(pct)),
                on_completed=self._on_completed,
                on_failed=self._on_failed,
            )
            # a job that failed inside start() was reported before we had the handle
            if not self._pipeline.busy:
                self._pipeline.acknowledge()
        except Exception as exc:
            logger.error("ExportWorker failed: %s", exc)
            logger.debug(traceback.format_exc())
            self.error.emit(str(exc))
            self.finished.emit()

    # ------------------------------------------------------------------ pipeline callbacks
    def _on_state(self, state: ExportState) -> None:
        self.state_changed.emit(state.value)

    def _on_completed(self, artifact: bytes) -> None:
        try:
            with open(self._output_path, "wb") as fh:
                fh.write(artifact)
            logger.info("ExportWorker done — %s (%d bytes)", self._output_path, len(artifact))
            self.done.emit(self._output_path)
        except OSError as exc:
            logger.error("ExportWorker could not write %s: %s", self._output_path, exc)
            self.error.emit(f"Could not save export: {exc}")
        finally:
            self._acknowledge()
            self.finished.emit()

    def _on_failed(self, job: ExportJob) -> None:
        if job.cancelled:
            self.cancelled.emit()
        else:
            self.error.emit(job.message)
        self._acknowledge()
        self.finished.emit()

    def _acknowledge(self) -> None:
        if self._pipeline is not None:
            self._pipeline.acknowledge()

    def _on_cancel_requested(self) -> None:
        if self._pipeline is not None:
            self._pipeline.cancel()
