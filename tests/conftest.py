"""Shared fixtures: an offscreen QApplication and small utterance builders."""

from __future__ import annotations

import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest  # noqa: E402
from PySide6.QtWidgets import QApplication  # noqa: E402

from captionsync.core.clock import ManualClock  # noqa: E402
from captionsync.models.utterance import Utterance  # noqa: E402


@pytest.fixture(scope="session")
def qapp() -> QApplication:
    """One QApplication for every test that paints or uses fonts."""
    app = QApplication.instance() or QApplication([])
    yield app


@pytest.fixture
def clock() -> ManualClock:
    """Virtual clock starting at zero."""
    return ManualClock()


@pytest.fixture
def two_speakers() -> list[Utterance]:
    """Overlapping utterances from two speakers."""
    return [
        Utterance("A", 0, 1000, "hello there friend"),
        Utterance("B", 500, 1500, "hi back"),
    ]
