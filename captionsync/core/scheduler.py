"""Live time-sync: map the playback position to active utterances and chunks."""
from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from captionsync.core.clock import Clock, TimerHandle
from captionsync.core.playback import PlaybackSource, ReadyState
from captionsync.core.segmenter import active_chunk
from captionsync.core.store import UtteranceStore
from captionsync.models.utterance import Utterance, WordChunk

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[List[WordChunk]], None]

MIN_UPDATE_INTERVAL_MS = 16


def active_utterances(utterances: Sequence[Utterance], t_ms: float) -> List[Utterance]:
    """Utterances containing *t_ms*, by ascending start; ties keep store order."""
    return sorted((u for u in utterances if u.contains(t_ms)), key=lambda u: u.start_ms)


def collect_chunks(utterances: Sequence[Utterance], t_ms: float) -> List[WordChunk]:
    """One chunk per active utterance, in stacking order, all from the same *t_ms*."""
    chunks: List[WordChunk] = []
    for utterance in active_utterances(utterances, t_ms):
        chunk = active_chunk(utterance, t_ms)
        if chunk is not None:
            chunks.append(chunk)
    return chunks


class TimeSyncScheduler:
    """Recomputes the active chunk list on a bounded cadence.

    Each recompute reads the playback position once and derives everything
    from that snapshot. Output identical to the previous emission is dropped.
    Nothing happens while the source is seeking or buffering; the first tick
    after it becomes ready recomputes immediately.
    """

    def __init__(
        self,
        store: UtteranceStore,
        playback: PlaybackSource,
        clock: Clock,
        min_interval_ms: float = MIN_UPDATE_INTERVAL_MS,
    ):
        self._store = store
        self._playback = playback
        self._clock = clock
        self._min_interval_ms = max(float(min_interval_ms), float(MIN_UPDATE_INTERVAL_MS))
        self._subscribers: List[ChunkCallback] = []
        self._last_output: Optional[List[WordChunk]] = None
        self._last_store_revision = -1
        self._last_recompute_ms: Optional[float] = None
        self._was_ready = False
        self._timer: Optional[TimerHandle] = None
        self.active: List[Utterance] = []

    # ------------------------------------------------------------------ subscribers
    def subscribe(self, callback: ChunkCallback) -> Callable[[], None]:
        """Register *callback*; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    @property
    def last_output(self) -> List[WordChunk]:
        return list(self._last_output or [])

    # ------------------------------------------------------------------ loop
    @property
    def running(self) -> bool:
        return self._timer is not None and self._timer.active

    def start(self) -> None:
        if self.running:
            return
        logger.debug("Time-sync scheduler started (interval=%.0f ms)", self._min_interval_ms)
        self._timer = self._clock.schedule_next(self._loop, 0)

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        logger.debug("Time-sync scheduler stopped")

    def _loop(self) -> None:
        try:
            self.tick()
        except Exception:
            logger.exception("Time-sync tick failed")
        finally:
            # stop() during the tick clears the handle
            if self._timer is not None:
                self._timer = self._clock.schedule_next(self._loop, self._min_interval_ms)

    def invalidate(self) -> None:
        """Force the next tick to recompute and emit (e.g. after a theme change)."""
        self._last_output = None
        self._last_recompute_ms = None

    # ------------------------------------------------------------------ tick
    def tick(self) -> Optional[List[WordChunk]]:
        """Run one scheduler step. Returns the emitted chunks, or None if nothing was emitted."""
        if self._playback.ready_state() is not ReadyState.READY:
            self._was_ready = False
            return None

        now = self._clock.now_ms()
        resumed = not self._was_ready
        self._was_ready = True
        store_changed = self._store.revision != self._last_store_revision
        if (
            not resumed
            and not store_changed
            and self._last_recompute_ms is not None
            and now - self._last_recompute_ms < self._min_interval_ms
        ):
            return None
        self._last_recompute_ms = now
        self._last_store_revision = self._store.revision

        t_ms = self._playback.current_time_ms()
        utterances = self._store.all()
        self.active = active_utterances(utterances, t_ms)
        chunks = collect_chunks(utterances, t_ms)

        if chunks == self._last_output:
            return None
        self._last_output = chunks
        for callback in list(self._subscribers):
            try:
                callback(list(chunks))
            except Exception:
                logger.exception("Caption subscriber %r failed", callback)
        return chunks
