"""Ordered, speaker-tagged utterance storage."""
from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional

from captionsync.errors import IndexOutOfRange
from captionsync.models.utterance import Utterance

logger = logging.getLogger(__name__)


class UtteranceStore:
    """Holds utterances in arrival order (not necessarily sorted by time).

    Only the text of an utterance can be changed through the store; timing
    is whatever the transcription service produced.
    """

    def __init__(self, utterances: Iterable[Utterance] = ()):
        self._utterances: List[Utterance] = list(utterances)
        self._revision = 0

    def __len__(self) -> int:
        return len(self._utterances)

    @property
    def revision(self) -> int:
        """Incremented on every change; lets consumers notice edits cheaply."""
        return self._revision

    # ------------------------------------------------------------------ API
    def all(self) -> List[Utterance]:
        return list(self._utterances)

    def filter(self, predicate: Callable[[Utterance], bool]) -> List[Utterance]:
        return [u for u in self._utterances if predicate(u)]

    def replace_all(self, utterances: Iterable[Utterance]) -> None:
        """Swap in a fresh transcript (e.g. after a new transcription)."""
        self._utterances = list(utterances)
        self._revision += 1
        logger.info("Utterance store loaded — %d utterances", len(self._utterances))

    def edit_text(self, index: int, text: str) -> Utterance:
        if not 0 <= index < len(self._utterances):
            raise IndexOutOfRange(
                f"utterance index {index} out of range (0..{len(self._utterances) - 1})"
            )
        utterance = self._utterances[index]
        utterance.text = text
        self._revision += 1
        logger.debug("Edited utterance %d text", index)
        return utterance

    def speakers(self) -> List[str]:
        """Distinct speakers in first-appearance order."""
        seen: List[str] = []
        for u in self._utterances:
            if u.speaker not in seen:
                seen.append(u.speaker)
        return seen

    def search(self, query: str = "", speaker: Optional[str] = None) -> List[int]:
        """Indices of utterances matching *speaker* and containing *query*.

        The query is a case-insensitive substring; an empty query matches all.
        Indices are returned so callers can feed them back into :meth:`edit_text`.
        """
        needle = query.strip().lower()
        return [
            i for i, u in enumerate(self._utterances)
            if (speaker is None or u.speaker == speaker)
            and (not needle or needle in u.text.lower())
        ]
