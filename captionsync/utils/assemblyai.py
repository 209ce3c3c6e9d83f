"""Minimal AssemblyAI client: upload, request a speaker-labelled transcript, poll."""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import requests

from captionsync.errors import TranscriptionError

log = logging.getLogger(__name__)


class AssemblyAIClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.assemblyai.com/v2",
        poll_interval: float = 3.0,
        max_polls: int = 60,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not api_key:
            raise TranscriptionError("ASSEMBLYAI_API_KEY is not set")
        self._base_url = base_url.rstrip("/")
        self._poll_interval = poll_interval
        self._max_polls = max_polls
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Authorization": api_key})
        self._sleep = sleep

    def _send(self, method: str, url: str, what: str, **kwargs) -> dict:
        try:
            response = getattr(self._session, method)(url, timeout=self._timeout, **kwargs)
        except requests.RequestException as exc:
            raise TranscriptionError(f"{what} failed: {exc}") from exc
        return self._check(response, what)

    def _check(self, response: requests.Response, what: str) -> dict:
        if not response.ok:
            raise TranscriptionError(f"{what} failed with status: {response.status_code}")
        return response.json()

    def upload(self, path: str) -> str:
        """Upload a local media file; returns the service-side URL."""
        with open(path, "rb") as fh:
            result = self._send("post", f"{self._base_url}/upload", "Upload", data=fh)
        url = result.get("upload_url")
        if not url:
            raise TranscriptionError("Failed to get audio URL")
        log.info("Uploaded %s", path)
        return url

    def request_transcript(self, audio_url: str) -> str:
        result = self._send(
            "post",
            f"{self._base_url}/transcript",
            "Transcription request",
            json={"audio_url": audio_url, "speaker_labels": True},
        )
        transcript_id = result.get("id")
        if not transcript_id:
            raise TranscriptionError("Failed to get transcript ID")
        log.info("Transcription started — id=%s", transcript_id)
        return transcript_id

    def wait_for_transcript(self, transcript_id: str, on_poll: Optional[Callable[[int], None]] = None) -> dict:
        """Poll until the transcript completes; returns the final response body."""
        for attempt in range(1, self._max_polls + 1):
            result = self._send("get", f"{self._base_url}/transcript/{transcript_id}", "Polling")
            status = result.get("status")
            log.debug("Polling attempt %d: status=%s", attempt, status)
            if on_poll is not None:
                on_poll(attempt)
            if status == "completed":
                return result
            if status == "error":
                raise TranscriptionError(result.get("error") or "Transcription failed")
            self._sleep(self._poll_interval)
        raise TranscriptionError("Transcription timed out. Please try again.")

    def transcribe(self, path: str, on_poll: Optional[Callable[[int], None]] = None) -> dict:
        return self.wait_for_transcript(self.request_transcript(self.upload(path)), on_poll)
