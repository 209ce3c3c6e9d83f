"""CaptionEngine: the surface the UI talks to.

Holds the utterance store and theme table, runs the live time-sync
scheduler against a playback source, paints snapshots, and starts exports
on an independent clock.
"""
from __future__ import annotations

import logging
from typing import Callable, List, Optional

from PySide6.QtGui import QImage

from captionsync.core.clock import Clock
from captionsync.core.encoding import EncoderCapabilities, SinkFactory
from captionsync.core.export import ExportPipeline, MediaOpener
from captionsync.core.playback import PlaybackSource
from captionsync.core.renderer import DEFAULT_BOTTOM_OFFSET, new_surface, render_frame
from captionsync.core.scheduler import TimeSyncScheduler, collect_chunks
from captionsync.core.store import UtteranceStore
from captionsync.core.style import StyleResolver
from captionsync.models.export_job import ExportConfig
from captionsync.models.theme import DEFAULT_THEME_ID, PaintSpec, ThemeTable
from captionsync.models.utterance import Utterance, WordChunk
from captionsync.utils.transcript_utils import write_vtt

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[List[WordChunk]], None]


class CaptionEngine:
    def __init__(
        self,
        store: Optional[UtteranceStore] = None,
        themes: Optional[ThemeTable] = None,
        theme_id: str = DEFAULT_THEME_ID,
        bottom_offset: float = DEFAULT_BOTTOM_OFFSET,
    ):
        self.store = store if store is not None else UtteranceStore()
        self.resolver = StyleResolver(themes)
        self.theme_id = theme_id
        self.bottom_offset = bottom_offset
        self.scheduler: Optional[TimeSyncScheduler] = None
        self._subscribers: List[ChunkCallback] = []
        self._unsubscribers: List[Callable[[], None]] = []

    # ------------------------------------------------------------------ themes
    @property
    def themes(self) -> ThemeTable:
        return self.resolver.table

    def select_theme(self, theme_id: str) -> None:
        if theme_id not in self.themes:
            logger.warning("Unknown theme %r selected; captions will use '%s'", theme_id, DEFAULT_THEME_ID)
        self.theme_id = theme_id
        if self.scheduler is not None:
            self.scheduler.invalidate()

    def add_custom_theme(self, spec: PaintSpec, theme_id: str = "custom") -> ThemeTable:
        """Register *spec* in a new table and select it; existing tables are untouched."""
        self.resolver = StyleResolver(self.themes.with_theme(theme_id, spec))
        logger.info("Custom theme '%s' registered", theme_id)
        self.select_theme(theme_id)
        return self.themes

    # ------------------------------------------------------------------ utterances
    def load_utterances(self, utterances: List[Utterance]) -> None:
        self.store.replace_all(utterances)

    def edit_utterance_text(self, index: int, text: str) -> Utterance:
        return self.store.edit_text(index, text)

    def export_vtt(self, path: str) -> None:
        write_vtt(self.store.all(), path)
        logger.info("WebVTT written to %s", path)

    # ------------------------------------------------------------------ live sync
    def attach_playback(self, playback: PlaybackSource, clock: Clock, interval_ms: float = 16) -> TimeSyncScheduler:
        """Create (and start) the live scheduler for *playback*; replaces any previous one."""
        self.detach_playback()
        self.scheduler = TimeSyncScheduler(self.store, playback, clock, interval_ms)
        self._unsubscribers = [self.scheduler.subscribe(cb) for cb in self._subscribers]
        self.scheduler.start()
        return self.scheduler

    def detach_playback(self) -> None:
        if self.scheduler is not None:
            self.scheduler.stop()
            for unsubscribe in self._unsubscribers:
                unsubscribe()
            self._unsubscribers = []
            self.scheduler = None

    def subscribe_active_chunks(self, callback: ChunkCallback) -> None:
        self._subscribers.append(callback)
        if self.scheduler is not None:
            self._unsubscribers.append(self.scheduler.subscribe(callback))

    # ------------------------------------------------------------------ painting
    def render_once(
        self,
        surface: QImage,
        chunks: List[WordChunk],
        theme_id: Optional[str] = None,
        frame: Optional[QImage] = None,
        t_ms: Optional[float] = None,
    ) -> QImage:
        style = self.resolver.resolve(theme_id or self.theme_id)
        return render_frame(surface, frame, chunks, style, t_ms=t_ms, bottom_offset=self.bottom_offset)

    def snapshot(self, frame: QImage, t_ms: float, path: str, theme_id: Optional[str] = None) -> bool:
        """Save a JPEG of *frame* with the captions active at *t_ms*."""
        surface = new_surface(frame.width(), frame.height())
        chunks = collect_chunks(self.store.all(), t_ms)
        self.render_once(surface, chunks, theme_id, frame=frame, t_ms=t_ms)
        ok = surface.convertToFormat(QImage.Format_RGB888).save(path, "JPG", 95)
        if not ok:
            logger.error("Could not write preview snapshot to %s", path)
        return ok

    # ------------------------------------------------------------------ export
    def start_export(
        self,
        config: ExportConfig,
        open_media: MediaOpener,
        clock: Clock,
        capabilities: EncoderCapabilities,
        sink_factory: SinkFactory,
        fps: float = 30,
        ready_timeout_ms: float = 5000,
        on_state=None,
        on_progress=None,
        on_completed=None,
        on_failed=None,
    ) -> ExportPipeline:
        """Start an export; the returned pipeline is the job handle (``.job``, ``.cancel()``).

        Listeners are attached before the job starts so an immediate failure
        (unsupported format) is still reported.
        """
        pipeline = ExportPipeline(
            store=self.store,
            resolver=self.resolver,
            open_media=open_media,
            capabilities=capabilities,
            sink_factory=sink_factory,
            clock=clock,
            theme_id=self.theme_id,
            fps=fps,
            ready_timeout_ms=ready_timeout_ms,
            bottom_offset=self.bottom_offset,
        )
        pipeline.listen(state=on_state, progress=on_progress, completed=on_completed, failed=on_failed)
        pipeline.start(config)
        return pipeline
