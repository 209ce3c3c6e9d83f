"""Tests for word-chunk partitioning and the fade/scale envelope."""

from __future__ import annotations

import pytest

from captionsync.core.segmenter import active_chunk, chunk_windows, envelope
from captionsync.models.utterance import Utterance


def test_eight_words_split_into_two_equal_chunks() -> None:
    """Eight words over two seconds give two four-word chunks of one second each."""
    utterance = Utterance("A", 0, 2000, "a b c d e f g h")

    windows = chunk_windows(utterance)

    assert [(w.text, w.start_ms, w.end_ms) for w in windows] == [
        ("a b c d", 0, 1000),
        ("e f g h", 1000, 2000),
    ]


def test_chunk_near_end_of_window_is_fading_out() -> None:
    """At 95% through its window a chunk is half transparent and slightly shrunk."""
    utterance = Utterance("A", 0, 2000, "a b c d e f g h")

    chunk = active_chunk(utterance, 950)

    assert chunk is not None
    assert chunk.text == "a b c d"
    assert chunk.opacity == pytest.approx(0.5)
    assert chunk.scale == pytest.approx(0.99)
    assert chunk.translate_y == pytest.approx(0.0)


def test_chunks_partition_words_in_order() -> None:
    """Joining chunk texts reproduces the utterance's words exactly once each."""
    utterance = Utterance("B", 1000, 6000, "one  two three four five\tsix seven eight nine ten")

    windows = chunk_windows(utterance)

    assert [w.word_count for w in windows] == [4, 4, 2]
    assert " ".join(w.text for w in windows).split() == utterance.text.split()
    assert windows[0].start_ms == 1000
    assert windows[-1].end_ms == pytest.approx(6000)
    for left, right in zip(windows, windows[1:]):
        assert left.end_ms == pytest.approx(right.start_ms)


def test_word_time_is_uniform_regardless_of_word_length() -> None:
    """Every word gets the same share of the duration."""
    utterance = Utterance("A", 0, 1000, "a extraordinarily b c d")

    windows = chunk_windows(utterance)

    assert windows[0].end_ms == pytest.approx(800)
    assert windows[1].start_ms == pytest.approx(800)


def test_active_chunk_is_deterministic() -> None:
    """The same utterance and time always give the same chunk."""
    utterance = Utterance("A", 0, 2000, "a b c d e f g h")

    assert active_chunk(utterance, 1234) == active_chunk(utterance, 1234)


def test_shared_boundary_belongs_to_the_earlier_chunk() -> None:
    """At exactly the end of one window the first chunk is still shown."""
    utterance = Utterance("A", 0, 2000, "a b c d e f g h")

    chunk = active_chunk(utterance, 1000)

    assert chunk is not None
    assert chunk.text == "a b c d"
    assert chunk.opacity == pytest.approx(0.0)


def test_blank_text_has_no_chunks() -> None:
    """Whitespace-only text yields nothing to display."""
    utterance = Utterance("A", 0, 1000, "   ")

    assert chunk_windows(utterance) == []
    assert active_chunk(utterance, 500) is None


def test_time_outside_utterance_has_no_chunk() -> None:
    """Times before or after the utterance are never matched."""
    utterance = Utterance("A", 1000, 2000, "a b")

    assert active_chunk(utterance, 999) is None
    assert active_chunk(utterance, 2001) is None


def test_envelope_is_full_in_the_middle() -> None:
    """Between 10% and 90% a chunk is fully visible at natural size."""
    assert envelope(0.5) == (1.0, 1.0, 0.0)


def test_envelope_fade_in_is_monotonic() -> None:
    """Opacity and scale rise while the slide offset falls during fade-in."""
    samples = [envelope(p / 100) for p in range(0, 11)]

    opacities = [s[0] for s in samples]
    scales = [s[1] for s in samples]
    offsets = [s[2] for s in samples[:-1]]

    assert opacities == sorted(opacities)
    assert scales == sorted(scales)
    assert offsets == sorted(offsets, reverse=True)
    assert envelope(0.0) == pytest.approx((0.0, 0.8, 20.0))


def test_envelope_clamps_out_of_range_progress() -> None:
    """Progress outside [0, 1] behaves like the nearest bound."""
    assert envelope(-1.0) == envelope(0.0)
    assert envelope(2.0) == envelope(1.0)
    assert envelope(1.0) == pytest.approx((0.0, 0.98, 0.0))


def test_envelope_fade_out_is_monotonic() -> None:
    """Opacity and scale never rise over the last 10% of a window."""
    samples = [envelope(0.9 + i / 1000) for i in range(0, 101)]

    opacities = [s[0] for s in samples]
    scales = [s[1] for s in samples]

    assert opacities == sorted(opacities, reverse=True)
    assert scales == sorted(scales, reverse=True)
    assert all(s[2] == 0.0 for s in samples)


@pytest.mark.parametrize("word_count", [1, 7, 14, 15, 28, 29, 79])
@pytest.mark.parametrize("end_ms", [997, 1001, 1333, 7919, 12345])
def test_windows_cover_the_whole_utterance_exactly(word_count: int, end_ms: int) -> None:
    """The last window ends on the utterance end and neighbours share boundaries."""
    utterance = Utterance("A", 0, end_ms, " ".join(["w"] * word_count))

    windows = chunk_windows(utterance)

    assert windows[0].start_ms == utterance.start_ms
    assert windows[-1].end_ms == utterance.end_ms
    for left, right in zip(windows, windows[1:]):
        assert left.end_ms == right.start_ms
    assert active_chunk(utterance, end_ms) is not None
