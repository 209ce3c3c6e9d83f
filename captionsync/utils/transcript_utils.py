"""Transcript JSON loading and WebVTT export."""
from __future__ import annotations

import json
import logging
from typing import Iterable, List

from captionsync.models.utterance import Utterance

log = logging.getLogger(__name__)


# --------------------------------------------------------------------------- #
#  Helpers
# --------------------------------------------------------------------------- #

def format_vtt_timestamp(ms: float) -> str:
    """Convert milliseconds to a WebVTT timestamp HH:MM:SS.mmm."""
    assert ms >= 0
    ms = int(round(ms))
    h  = ms // 3_600_000;  ms -= h * 3_600_000
    m  = ms //    60_000;  ms -= m *    60_000
    s  = ms //     1_000;  ms -= s *     1_000
    return f"{h:02d}:{m:02d}:{s:02d}.{ms:03d}"


# --------------------------------------------------------------------------- #
#  Parse
# --------------------------------------------------------------------------- #

def utterances_from_payload(payload: dict) -> List[Utterance]:
    """Build utterances from a transcription response (``{"utterances": [...]}``).

    Entries with empty or inverted timing are skipped with a warning.
    """
    utterances: List[Utterance] = []
    for i, item in enumerate(payload.get("utterances") or []):
        try:
            utterances.append(Utterance(
                speaker=str(item.get("speaker", "")),
                start_ms=int(item["start"]),
                end_ms=int(item["end"]),
                text=str(item.get("text", "")).strip(),
            ))
        except (KeyError, TypeError, ValueError) as exc:
            log.warning("Skipping malformed utterance #%d: %s", i, exc)
    return utterances


def load_transcript_json(path: str) -> List[Utterance]:
    """Read a saved transcription response and return its utterances."""
    with open(path, "r", encoding="utf-8-sig") as fh:
        payload = json.load(fh)
    utterances = utterances_from_payload(payload)
    log.info("Loaded %d utterances from %s", len(utterances), path)
    return utterances


# --------------------------------------------------------------------------- #
#  Write
# --------------------------------------------------------------------------- #

def generate_vtt(utterances: Iterable[Utterance]) -> str:
    """Render utterances as WebVTT text with numbered cues."""
    parts = ["WEBVTT\n\n"]
    for i, u in enumerate(utterances, start=1):
        parts.append(
            f"{i}\n"
            f"{format_vtt_timestamp(u.start_ms)} --> {format_vtt_timestamp(u.end_ms)}\n"
            f"{u.text}\n\n"
        )
    return "".join(parts)


def write_vtt(utterances: Iterable[Utterance], path: str) -> None:
    """Write utterances to a ``.vtt`` file."""
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(generate_vtt(utterances))
