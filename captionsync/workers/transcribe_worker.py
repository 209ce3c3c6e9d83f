"""QThread worker: transcribe a video with speaker labels via AssemblyAI."""
from __future__ import annotations

import logging
import traceback

from PySide6.QtCore import QObject, Signal

from captionsync.config import get_config
from captionsync.utils.assemblyai import AssemblyAIClient
from captionsync.utils.transcript_utils import utterances_from_payload

logger = logging.getLogger(__name__)


class TranscribeWorker(QObject):
    """Upload, transcribe and poll in a background thread.

    Signals
    -------
    progress(int):            0–100 percent estimate (poll-based).
    utterances_ready(list):   list of Utterance on success.
    error(str):               emitted on exception.
    finished():               always emitted at the end.
    """

    progress         = Signal(int)
    utterances_ready = Signal(list)
    error            = Signal(str)
    finished         = Signal()

    def __init__(self, video_path: str, client: AssemblyAIClient | None = None):
        super().__init__()
        self._video_path = video_path
        self._client     = client

    # ------------------------------------------------------------------ slot
    def run(self) -> None:
        logger.info("TranscribeWorker starting — video=%s", self._video_path)
        try:
            cfg = get_config()
            client = self._client
            if client is None:
                client = AssemblyAIClient(
                    cfg.get_assemblyai_api_key(),
                    base_url=cfg.assemblyai_base_url,
                    poll_interval=cfg.poll_interval,
                    max_polls=cfg.max_polls,
                    timeout=cfg.request_timeout,
                )

            self.progress.emit(5)
            audio_url = client.upload(self._video_path)
            self.progress.emit(20)
            transcript_id = client.request_transcript(audio_url)
            self.progress.emit(25)

            result = client.wait_for_transcript(
                transcript_id,
                on_poll=lambda n: self.progress.emit(25 + int(min(n / max(1, cfg.max_polls), 1.0) * 70)),
            )
            utterances = utterances_from_payload(result)
            self.progress.emit(100)
            logger.info("TranscribeWorker done — %d utterances", len(utterances))
            self.utterances_ready.emit(utterances)

        except Exception as exc:
            logger.error("TranscribeWorker failed: %s", exc)
            logger.debug(traceback.format_exc())
            self.error.emit(str(exc))
        finally:
            self.finished.emit()
