from __future__ import annotations

import random

import pytest

import gameplay_models
from game_state import GameStateMachine, ScoreTable
from gameplay_models import GameState, NoteResult, SessionFinished, SessionStarted

PLAYER = "0xabc"


class _Clock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def wall_clock() -> _Clock:
    return _Clock()


@pytest.fixture
def machine(song, command_sink, wall_clock) -> GameStateMachine:
    return GameStateMachine(
        song,
        ScoreTable(labels={"perfect": "PERFECT!", "good": "GOOD!", "miss": "MISS!"}),
        command_sink=command_sink,
        countdown_steps=3,
        feedback_lifetime_seconds=1.0,
        time_source=wall_clock,
    )


def _play(machine: GameStateMachine, start_block: int = 1000) -> None:
    assert machine.begin_session(PLAYER)
    assert machine.apply_event(SessionStarted(identity=PLAYER, start_block=start_block))
    for _ in range(3):
        machine.tick_countdown()
    assert machine.state() == GameState.PLAYING


def _hit(index: int, quality: str = "perfect", identity: str = PLAYER) -> NoteResult:
    return NoteResult(identity=identity, note_index=index, quality=quality, points=0)


def test_initial_state_is_menu(machine):
    snapshot = machine.snapshot()
    assert snapshot.state == GameState.MENU
    assert snapshot.start_block == gameplay_models.NOT_STARTED
    assert snapshot.score == 0
    assert snapshot.song_length == 3


def test_begin_session_requests_start_and_waits_in_menu(machine, command_sink):
    assert machine.begin_session("0xABC")

    assert command_sink.start_requests == [gameplay_models.RequestSessionStart(identity=PLAYER, song_id=0)]
    assert machine.state() == GameState.MENU
    assert machine.has_pending_session()
    assert not machine.begin_session(PLAYER)
    assert len(command_sink.start_requests) == 1


def test_start_event_arms_countdown(machine):
    machine.begin_session(PLAYER)

    assert machine.apply_event(SessionStarted(identity=PLAYER, start_block=1000))

    snapshot = machine.snapshot()
    assert snapshot.state == GameState.COUNTDOWN
    assert snapshot.start_block == 1000
    assert snapshot.countdown_remaining == 3


def test_start_block_is_never_reassigned(machine):
    machine.begin_session(PLAYER)
    machine.apply_event(SessionStarted(identity=PLAYER, start_block=1000))

    assert not machine.apply_event(SessionStarted(identity=PLAYER, start_block=2000))
    machine.tick_countdown()
    machine.tick_countdown()
    machine.tick_countdown()
    assert not machine.apply_event(SessionStarted(identity=PLAYER, start_block=3000))
    assert machine.snapshot().start_block == 1000


def test_countdown_expiry_starts_play(machine):
    machine.begin_session(PLAYER)
    machine.apply_event(SessionStarted(identity=PLAYER, start_block=1000))

    machine.tick_countdown()
    machine.tick_countdown()
    assert machine.state() == GameState.COUNTDOWN
    assert machine.snapshot().countdown_remaining == 1
    machine.tick_countdown()
    assert machine.state() == GameState.PLAYING
    assert not machine.tick_countdown()


def test_events_without_session_are_dropped(machine):
    assert not machine.apply_event(SessionStarted(identity=PLAYER, start_block=1000))
    assert not machine.apply_event(_hit(0))
    assert not machine.apply_event(SessionFinished(identity=PLAYER))
    assert machine.state() == GameState.MENU


def test_start_event_for_other_identity_is_dropped(machine):
    machine.begin_session(PLAYER)
    assert not machine.apply_event(SessionStarted(identity="0xdef", start_block=1000))
    assert machine.state() == GameState.MENU
    assert machine.snapshot().start_block == gameplay_models.NOT_STARTED


def test_sentinel_start_block_is_rejected(machine):
    machine.begin_session(PLAYER)
    assert not machine.apply_event(SessionStarted(identity=PLAYER, start_block=gameplay_models.NOT_STARTED))
    assert machine.state() == GameState.MENU


def test_perfect_hit_scores_and_shows_feedback(machine, wall_clock):
    _play(machine)

    assert machine.apply_event(_hit(0, "perfect"))

    snapshot = machine.snapshot()
    assert snapshot.score == 100
    assert snapshot.consumed_note_index == 1
    token = machine.live_feedback()
    assert token is not None
    assert token.quality == "perfect"
    assert token.text == "PERFECT!"
    assert token.expires_at_seconds == pytest.approx(wall_clock.now + 1.0)


def test_replayed_result_is_ignored(machine):
    _play(machine)
    machine.apply_event(_hit(0, "perfect"))

    assert not machine.apply_event(_hit(0, "perfect"))

    assert machine.snapshot().score == 100
    assert machine.consumed_note_index() == 1


def test_out_of_order_result_is_ignored(machine):
    _play(machine)

    assert not machine.apply_event(_hit(1, "good"))

    assert machine.snapshot().score == 0
    assert machine.consumed_note_index() == 0


def test_scores_follow_quality_table(machine):
    _play(machine)
    machine.apply_event(_hit(0, "good"))
    machine.apply_event(_hit(1, "MISS"))
    machine.apply_event(_hit(2, "perfect"))

    snapshot = machine.snapshot()
    assert snapshot.score == 150
    assert snapshot.consumed_note_index == 3
    assert not machine.apply_event(_hit(3, "perfect"))


def test_unknown_quality_advances_without_points(machine):
    _play(machine)

    assert machine.apply_event(_hit(0, "early"))

    assert machine.snapshot().score == 0
    assert machine.consumed_note_index() == 1
    assert machine.live_feedback().text == "EARLY!"


def test_note_results_outside_playing_are_dropped(machine):
    machine.begin_session(PLAYER)
    machine.apply_event(SessionStarted(identity=PLAYER, start_block=1000))

    assert not machine.apply_event(_hit(0))
    assert machine.consumed_note_index() == 0


def test_feedback_expires_and_is_superseded(machine, wall_clock):
    _play(machine)
    machine.apply_event(_hit(0, "good"))
    wall_clock.now += 0.5
    machine.apply_event(_hit(1, "perfect"))

    assert machine.live_feedback().quality == "perfect"
    wall_clock.now += 0.9
    assert machine.live_feedback() is not None
    wall_clock.now += 0.2
    assert machine.live_feedback() is None


def test_attempt_hit_forwards_expected_index(machine, command_sink):
    assert not machine.attempt_hit()
    _play(machine)

    assert machine.attempt_hit()
    machine.apply_event(_hit(0))
    assert machine.attempt_hit()

    assert [command.note_index for command in command_sink.hit_attempts] == [0, 1]
    assert machine.snapshot().score == 100


def test_attempt_hit_after_last_note_is_rejected(machine, command_sink):
    _play(machine)
    for index in range(3):
        machine.apply_event(_hit(index))

    assert not machine.attempt_hit()
    assert command_sink.hit_attempts == []


def test_finish_freezes_session(machine):
    _play(machine)
    machine.apply_event(_hit(0))

    assert machine.apply_event(SessionFinished(identity=PLAYER))

    assert machine.state() == GameState.FINISHED
    assert not machine.apply_event(_hit(1))
    assert machine.snapshot().score == 100
    assert machine.final_snapshot().consumed_note_index == 1
    assert not machine.attempt_hit()


def test_finish_outside_playing_is_dropped(machine):
    machine.begin_session(PLAYER)
    machine.apply_event(SessionStarted(identity=PLAYER, start_block=1000))

    assert not machine.apply_event(SessionFinished(identity=PLAYER))
    assert machine.state() == GameState.COUNTDOWN


def test_reset_returns_to_menu(machine):
    _play(machine)
    machine.apply_event(_hit(0))
    machine.apply_event(SessionFinished(identity=PLAYER))

    assert machine.reset()

    snapshot = machine.snapshot()
    assert snapshot.state == GameState.MENU
    assert snapshot.score == 0
    assert snapshot.consumed_note_index == 0
    assert snapshot.start_block == gameplay_models.NOT_STARTED
    assert machine.live_feedback() is None
    assert machine.final_snapshot() is None


def test_reset_outside_finished_is_rejected(machine):
    assert not machine.reset()
    _play(machine)
    assert not machine.reset()
    assert machine.state() == GameState.PLAYING


def test_cancel_pending_session(machine):
    assert not machine.cancel_pending_session()
    machine.begin_session(PLAYER)

    assert machine.cancel_pending_session()

    assert not machine.has_pending_session()
    assert not machine.apply_event(SessionStarted(identity=PLAYER, start_block=1000))


def test_listeners_see_every_transition_in_order(machine):
    seen = []
    machine.add_listener(lambda state, snapshot: seen.append((state, snapshot.score)))

    _play(machine)
    machine.apply_event(_hit(0))
    machine.apply_event(SessionFinished(identity=PLAYER))
    machine.reset()

    assert seen == [
        (GameState.COUNTDOWN, 0),
        (GameState.PLAYING, 0),
        (GameState.FINISHED, 100),
        (GameState.MENU, 0),
    ]


def test_removed_listener_is_not_called(machine):
    seen = []

    def listener(state, snapshot):
        seen.append(state)

    machine.add_listener(listener)
    machine.remove_listener(listener)
    _play(machine)
    assert seen == []


def test_index_and_score_are_monotone_under_noisy_delivery(machine):
    _play(machine)
    rng = random.Random(1234)
    qualities = ["perfect", "good", "miss"]
    last_index = 0
    last_score = 0

    for _ in range(200):
        event = _hit(rng.randint(0, 4), rng.choice(qualities), identity=rng.choice([PLAYER, "0xdef"]))
        machine.apply_event(event)
        snapshot = machine.snapshot()
        assert last_index <= snapshot.consumed_note_index <= snapshot.song_length
        assert snapshot.score >= last_score
        last_index = snapshot.consumed_note_index
        last_score = snapshot.score

    assert machine.consumed_note_index() == 3
