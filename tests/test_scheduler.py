"""Tests for active-utterance selection and the live time-sync scheduler."""

from __future__ import annotations

from captionsync.core.clock import ManualClock
from captionsync.core.playback import PlaybackSource, ReadyState
from captionsync.core.scheduler import (
    MIN_UPDATE_INTERVAL_MS,
    TimeSyncScheduler,
    active_utterances,
    collect_chunks,
)
from captionsync.core.store import UtteranceStore
from captionsync.models.utterance import Utterance


class FakePlayback(PlaybackSource):
    """Playback position and readiness set directly by the test."""

    def __init__(self, t_ms: float = 0.0, duration: float = 10_000.0) -> None:
        self.t_ms = t_ms
        self.duration = duration
        self.state = ReadyState.READY

    def current_time_ms(self) -> float:
        return self.t_ms

    def duration_ms(self) -> float:
        return self.duration

    def ready_state(self) -> ReadyState:
        return self.state


def _scheduler(utterances, playback, clock) -> TimeSyncScheduler:
    return TimeSyncScheduler(UtteranceStore(utterances), playback, clock)


def test_overlapping_speakers_are_both_active_in_start_order(two_speakers) -> None:
    """Two overlapping utterances are both active, earliest start first."""
    active = active_utterances(list(reversed(two_speakers)), 700)

    assert [u.speaker for u in active] == ["A", "B"]


def test_equal_starts_keep_store_order() -> None:
    """Ties on start time do not reorder utterances."""
    utterances = [
        Utterance("B", 0, 1000, "second speaker"),
        Utterance("A", 0, 1000, "first speaker"),
    ]

    assert [u.speaker for u in active_utterances(utterances, 10)] == ["B", "A"]


def test_utterance_windows_are_closed() -> None:
    """Start and end instants both count as active."""
    utterances = [Utterance("A", 100, 200, "edge")]

    assert active_utterances(utterances, 100) == utterances
    assert active_utterances(utterances, 200) == utterances
    assert active_utterances(utterances, 201) == []


def test_collect_chunks_returns_one_chunk_per_active_utterance(two_speakers) -> None:
    """Each active utterance contributes its current chunk."""
    chunks = collect_chunks(two_speakers, 700)

    assert [(c.speaker, c.text) for c in chunks] == [("A", "hello there friend"), ("B", "hi back")]


def test_tick_emits_to_subscribers(two_speakers, clock: ManualClock) -> None:
    """A recompute hands the chunk list to every subscriber."""
    playback = FakePlayback(700)
    scheduler = _scheduler(two_speakers, playback, clock)
    received = []
    scheduler.subscribe(received.append)

    emitted = scheduler.tick()

    assert emitted is not None
    assert received == [emitted]
    assert [u.speaker for u in scheduler.active] == ["A", "B"]


def test_unchanged_output_is_not_re_emitted(two_speakers, clock: ManualClock) -> None:
    """A paused position produces no second emission."""
    playback = FakePlayback(700)
    scheduler = _scheduler(two_speakers, playback, clock)
    received = []
    scheduler.subscribe(received.append)

    scheduler.tick()
    clock.advance(MIN_UPDATE_INTERVAL_MS)

    assert scheduler.tick() is None
    assert len(received) == 1


def test_recomputes_no_faster_than_the_minimum_interval(two_speakers, clock: ManualClock) -> None:
    """Ticks within 16 ms of the last recompute are skipped."""
    playback = FakePlayback(50)
    scheduler = _scheduler(two_speakers, playback, clock)

    assert scheduler.tick() is not None
    playback.t_ms = 300
    clock.advance(10)
    assert scheduler.tick() is None
    clock.advance(6)
    assert scheduler.tick() is not None


def test_unsubscribe_stops_delivery(two_speakers, clock: ManualClock) -> None:
    """An unsubscribed callback is not called again."""
    playback = FakePlayback(100)
    scheduler = _scheduler(two_speakers, playback, clock)
    received = []
    unsubscribe = scheduler.subscribe(received.append)

    unsubscribe()
    scheduler.tick()

    assert received == []


def test_inert_while_seeking_and_immediate_on_resume(two_speakers, clock: ManualClock) -> None:
    """Nothing is computed while not ready; readiness triggers a recompute at once."""
    playback = FakePlayback(100)
    scheduler = _scheduler(two_speakers, playback, clock)
    received = []
    scheduler.subscribe(received.append)
    scheduler.tick()

    playback.state = ReadyState.SEEKING
    playback.t_ms = 1200
    clock.advance(20)
    assert scheduler.tick() is None

    playback.state = ReadyState.READY
    clock.advance(1)
    emitted = scheduler.tick()

    assert emitted is not None
    assert [c.speaker for c in emitted] == ["B"]
    assert len(received) == 2


def test_text_edit_is_picked_up_without_waiting(two_speakers, clock: ManualClock) -> None:
    """Editing the store forces the next tick to recompute."""
    store = UtteranceStore(two_speakers)
    scheduler = TimeSyncScheduler(store, FakePlayback(100), clock)
    scheduler.tick()

    store.edit_text(0, "goodbye")
    clock.advance(1)
    emitted = scheduler.tick()

    assert emitted is not None
    assert emitted[0].text == "goodbye"


def test_start_runs_on_the_clock_and_stop_cancels(two_speakers, clock: ManualClock) -> None:
    """The loop reschedules itself until stopped."""
    playback = FakePlayback(100)
    scheduler = _scheduler(two_speakers, playback, clock)
    received = []
    scheduler.subscribe(received.append)

    scheduler.start()
    clock.advance(0)
    assert scheduler.running
    assert len(received) == 1

    playback.t_ms = 600
    clock.advance(MIN_UPDATE_INTERVAL_MS)
    assert len(received) == 2

    scheduler.stop()
    assert not scheduler.running
    assert clock.pending == 0


def test_invalidate_forces_re_emission(two_speakers, clock: ManualClock) -> None:
    """After invalidation the same output is delivered again."""
    scheduler = _scheduler(two_speakers, FakePlayback(700), clock)
    received = []
    scheduler.subscribe(received.append)
    scheduler.tick()

    scheduler.invalidate()
    scheduler.tick()

    assert len(received) == 2
    assert received[0] == received[1]


def test_failing_subscriber_does_not_stop_the_loop(two_speakers, clock: ManualClock) -> None:
    """An exception in one subscriber is logged; the loop and other subscribers carry on."""
    playback = FakePlayback(100)
    scheduler = _scheduler(two_speakers, playback, clock)
    calls = []

    def broken(chunks) -> None:
        calls.append("broken")
        raise RuntimeError("subscriber bug")

    received = []
    scheduler.subscribe(broken)
    scheduler.subscribe(received.append)

    scheduler.start()
    clock.advance(0)
    playback.t_ms = 600
    clock.advance(MIN_UPDATE_INTERVAL_MS)
    playback.t_ms = 1500
    clock.advance(MIN_UPDATE_INTERVAL_MS)

    assert scheduler.running
    assert calls == ["broken"] * 3
    assert len(received) == 3
    assert clock.pending == 1

    scheduler.stop()
    assert clock.pending == 0
