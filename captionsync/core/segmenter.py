"""Split an utterance into word chunks and compute their fade/scale envelope.

Everything here is a pure function of ``(utterance, t_ms)``; the live
scheduler and the export pipeline both call into it with their own clocks.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from captionsync.models.utterance import Utterance, WordChunk

CHUNK_WORDS = 4


@dataclass(frozen=True)
class ChunkWindow:
    text: str
    start_ms: float
    end_ms: float
    first_word: int
    word_count: int


def chunk_windows(utterance: Utterance, chunk_words: int = CHUNK_WORDS) -> List[ChunkWindow]:
    """Partition the utterance's words into groups with proportional time windows.

    Words share the utterance duration equally; there are no per-word
    timestamps to do better with.
    """
    words = utterance.text.split()
    if not words:
        return []
    n = len(words)
    span = utterance.end_ms - utterance.start_ms

    def word_start(k: int) -> float:
        # the last boundary is the utterance end, exactly
        if k >= n:
            return float(utterance.end_ms)
        return utterance.start_ms + k * span / n

    windows: List[ChunkWindow] = []
    for first in range(0, n, chunk_words):
        group = words[first:first + chunk_words]
        windows.append(ChunkWindow(
            text=" ".join(group),
            start_ms=word_start(first),
            end_ms=word_start(first + len(group)),
            first_word=first,
            word_count=len(group),
        ))
    return windows


def envelope(progress: float) -> Tuple[float, float, float]:
    """Return ``(opacity, scale, translate_y)`` for a chunk at *progress* in [0, 1].

    Fades/scales in over the first 10%, out over the last 10%, and slides up
    only while fading in.
    """
    progress = min(1.0, max(0.0, progress))
    if progress < 0.1:
        return progress * 10, 0.8 + progress * 0.2, (1 - progress) * 20
    if progress > 0.9:
        return (1 - progress) * 10, 1 - (progress - 0.9) * 0.2, 0.0
    return 1.0, 1.0, 0.0


def active_chunk(utterance: Utterance, t_ms: float) -> Optional[WordChunk]:
    """The chunk of *utterance* on screen at *t_ms*, or None.

    Windows are closed on both ends; at a shared boundary the earlier chunk wins.
    """
    for window in chunk_windows(utterance):
        if window.start_ms <= t_ms <= window.end_ms:
            span = window.end_ms - window.start_ms
            progress = (t_ms - window.start_ms) / span if span > 0 else 1.0
            opacity, scale, translate_y = envelope(progress)
            return WordChunk(
                text=window.text,
                start_ms=window.start_ms,
                end_ms=window.end_ms,
                speaker=utterance.speaker,
                opacity=opacity,
                scale=scale,
                translate_y=translate_y,
            )
    return None
