# -*- coding: utf-8 -*-
########################
# game_state.py
########################
# Purpose:
# - Authoritative gameplay state machine: menu -> countdown -> playing -> finished -> menu.
# - Owns the live Session (identity, start block, consumed note index, score) and the
#   transient FeedbackToken.
#
# Design notes:
# - No Qt usage. Pure gameplay logic.
# - Never scores locally. Points come from upstream NoteResult events, mapped through ScoreTable.
# - Single writer: only apply_event and the local commands mutate the Session.
# - Illegal commands and irrelevant events are rejected as no-ops (False), never raised.
# - The countdown is advanced by tick_countdown() from a wall-clock timer owned by the caller.
#
########################
# Interfaces:
# Public protocols:
# - CommandSink.request_session_start(RequestSessionStart) -> None
# - CommandSink.attempt_note_hit(AttemptNoteHit) -> None
#
# Public dataclasses:
# - ScoreTable(points: dict[str, int], labels: dict[str, str])
# - Session(identity: str, start_block: int, consumed_note_index: int, score: int)
#
# Public classes:
# - class GameStateMachine
#   - __init__(song, score_table, *, command_sink, countdown_steps=3, feedback_lifetime_seconds=1.0, time_source=time.monotonic)
#   - state() -> GameState
#   - song() -> Song
#   - snapshot() -> SessionSnapshot
#   - final_snapshot() -> Optional[SessionSnapshot]
#   - consumed_note_index() -> int
#   - has_pending_session() -> bool
#   - begin_session(identity: str) -> bool
#   - cancel_pending_session() -> bool
#   - apply_event(event: DomainEvent) -> bool
#   - tick_countdown() -> bool
#   - attempt_hit() -> bool
#   - reset() -> bool
#   - live_feedback(now_seconds: Optional[float] = None) -> Optional[FeedbackToken]
#   - add_listener(callback) / remove_listener(callback)
#
# Inputs:
# - Domain events forwarded by EventBridge.
# - Local commands from GameEngine (begin, attempt hit, reset, countdown ticks).
#
# Outputs:
# - Outbound commands to the CommandSink.
# - (state, SessionSnapshot) notifications to listeners on every transition.
#
########################

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol

import gameplay_models
from gameplay_models import GameState

logger = logging.getLogger(__name__)

StateListener = Callable[[GameState, gameplay_models.SessionSnapshot], None]

_LEGAL_TRANSITIONS = {
    GameState.MENU: GameState.COUNTDOWN,
    GameState.COUNTDOWN: GameState.PLAYING,
    GameState.PLAYING: GameState.FINISHED,
    GameState.FINISHED: GameState.MENU,
}


class CommandSink(Protocol):
    def request_session_start(self, command: gameplay_models.RequestSessionStart) -> None:
        ...

    def attempt_note_hit(self, command: gameplay_models.AttemptNoteHit) -> None:
        ...


@dataclass(frozen=True)
class ScoreTable:
    points: Dict[str, int] = field(default_factory=lambda: {"perfect": 100, "good": 50, "miss": 0})
    labels: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, scoring_config: Any) -> "ScoreTable":
        return cls(points=dict(scoring_config.points), labels=dict(scoring_config.labels))

    def points_for(self, quality: str) -> int:
        # Unknown labels are worth nothing.
        return int(self.points.get(str(quality).strip().lower(), 0))

    def label_for(self, quality: str) -> str:
        key = str(quality).strip().lower()
        return self.labels.get(key) or (key.upper() + "!")

    def quality_for_points(self, points: int) -> str:
        """Reverse lookup used when an upstream result carries points but no label."""
        value = int(points)
        for quality, quality_points in self.points.items():
            if int(quality_points) == value:
                return quality
        return "miss"


@dataclass
class Session:
    identity: str
    start_block: int = gameplay_models.NOT_STARTED
    consumed_note_index: int = 0
    score: int = 0


class GameStateMachine:
    def __init__(
        self,
        song: gameplay_models.Song,
        score_table: ScoreTable,
        *,
        command_sink: CommandSink,
        countdown_steps: int = 3,
        feedback_lifetime_seconds: float = 1.0,
        time_source: Callable[[], float] = time.monotonic,
    ) -> None:
        self._song = song
        self._score_table = score_table
        self._command_sink = command_sink
        self._countdown_steps = int(max(1, countdown_steps))
        self._feedback_lifetime_seconds = float(feedback_lifetime_seconds)
        self._time_source = time_source

        self._state = GameState.MENU
        self._session: Optional[Session] = None
        self._countdown_remaining = 0
        self._feedback: Optional[gameplay_models.FeedbackToken] = None
        self._final_snapshot: Optional[gameplay_models.SessionSnapshot] = None
        self._listeners: List[StateListener] = []

    # -----------------
    # Queries
    # -----------------

    def state(self) -> GameState:
        return self._state

    def song(self) -> gameplay_models.Song:
        return self._song

    def consumed_note_index(self) -> int:
        if self._session is None:
            return 0
        return int(self._session.consumed_note_index)

    def has_pending_session(self) -> bool:
        return self._state == GameState.MENU and self._session is not None

    def snapshot(self) -> gameplay_models.SessionSnapshot:
        session = self._session
        return gameplay_models.SessionSnapshot(
            state=self._state,
            identity=session.identity if session is not None else "",
            start_block=session.start_block if session is not None else gameplay_models.NOT_STARTED,
            consumed_note_index=session.consumed_note_index if session is not None else 0,
            score=session.score if session is not None else 0,
            song_length=len(self._song),
            countdown_remaining=self._countdown_remaining,
        )

    def final_snapshot(self) -> Optional[gameplay_models.SessionSnapshot]:
        return self._final_snapshot

    def live_feedback(self, now_seconds: Optional[float] = None) -> Optional[gameplay_models.FeedbackToken]:
        token = self._feedback
        if token is None:
            return None
        now_value = float(self._time_source()) if now_seconds is None else float(now_seconds)
        if not token.is_live(now_value):
            return None
        return token

    # -----------------
    # Listeners
    # -----------------

    def add_listener(self, callback: StateListener) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: StateListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    # -----------------
    # Local commands
    # -----------------

    def begin_session(self, identity: str) -> bool:
        normalized_identity = gameplay_models.normalize_identity(identity)
        if self._state != GameState.MENU or self._session is not None or not normalized_identity:
            logger.debug("Rejected begin_session in state %s", self._state.value)
            return False

        self._session = Session(identity=normalized_identity)
        logger.info("Requesting session start for %s (song %d)", normalized_identity, self._song.song_id)
        self._command_sink.request_session_start(
            gameplay_models.RequestSessionStart(identity=normalized_identity, song_id=int(self._song.song_id))
        )
        return True

    def cancel_pending_session(self) -> bool:
        if not self.has_pending_session():
            return False
        logger.info("Cancelled pending session for %s", self._session.identity if self._session else "")
        self._session = None
        return True

    def attempt_hit(self) -> bool:
        session = self._session
        if self._state != GameState.PLAYING or session is None:
            logger.debug("Rejected attempt_hit in state %s", self._state.value)
            return False
        if session.consumed_note_index >= len(self._song):
            return False

        self._command_sink.attempt_note_hit(
            gameplay_models.AttemptNoteHit(identity=session.identity, note_index=int(session.consumed_note_index))
        )
        return True

    def tick_countdown(self) -> bool:
        if self._state != GameState.COUNTDOWN:
            return False
        self._countdown_remaining = max(0, self._countdown_remaining - 1)
        if self._countdown_remaining == 0:
            self._transition(GameState.PLAYING)
        return True

    def reset(self) -> bool:
        if self._state != GameState.FINISHED:
            logger.debug("Rejected reset in state %s", self._state.value)
            return False
        self._transition(GameState.MENU)
        return True

    # -----------------
    # Upstream events
    # -----------------

    def apply_event(self, event: gameplay_models.DomainEvent) -> bool:
        session = self._session
        if session is None:
            logger.debug("Dropped %s without an active session", type(event).__name__)
            return False
        if gameplay_models.normalize_identity(event.identity) != session.identity:
            logger.debug("Dropped %s for another identity", type(event).__name__)
            return False

        if isinstance(event, gameplay_models.SessionStarted):
            return self._on_session_started(session, event)
        if isinstance(event, gameplay_models.NoteResult):
            return self._on_note_result(session, event)
        if isinstance(event, gameplay_models.SessionFinished):
            return self._on_session_finished(event)
        return False

    def _on_session_started(self, session: Session, event: gameplay_models.SessionStarted) -> bool:
        if self._state != GameState.MENU:
            # start_block is set once per session.
            return False
        if int(event.start_block) == gameplay_models.NOT_STARTED:
            return False
        session.start_block = int(event.start_block)
        self._transition(GameState.COUNTDOWN)
        return True

    def _on_note_result(self, session: Session, event: gameplay_models.NoteResult) -> bool:
        if self._state != GameState.PLAYING:
            return False
        if int(event.note_index) != session.consumed_note_index:
            logger.debug(
                "Ignored note result %d, expecting %d",
                int(event.note_index),
                session.consumed_note_index,
            )
            return False
        if session.consumed_note_index >= len(self._song):
            return False

        quality = str(event.quality).strip().lower()
        session.score += self._score_table.points_for(quality)
        session.consumed_note_index += 1
        self._feedback = gameplay_models.FeedbackToken(
            quality=quality,
            text=self._score_table.label_for(quality),
            expires_at_seconds=float(self._time_source()) + self._feedback_lifetime_seconds,
        )
        logger.debug(
            "Note %d resolved as %s, score %d",
            int(event.note_index),
            quality,
            session.score,
        )
        return True

    def _on_session_finished(self, event: gameplay_models.SessionFinished) -> bool:
        if self._state != GameState.PLAYING:
            return False
        self._transition(GameState.FINISHED)
        return True

    # -----------------
    # Transitions
    # -----------------

    def _transition(self, new_state: GameState) -> None:
        if _LEGAL_TRANSITIONS.get(self._state) != new_state:
            raise RuntimeError(f"Illegal transition {self._state.value} -> {new_state.value}")

        previous_state = self._state
        self._state = new_state

        if new_state == GameState.MENU:
            self._session = None
            self._countdown_remaining = 0
            self._feedback = None
            self._final_snapshot = None
        elif new_state == GameState.COUNTDOWN:
            self._countdown_remaining = self._countdown_steps
        elif new_state == GameState.PLAYING:
            self._countdown_remaining = 0
        elif new_state == GameState.FINISHED:
            self._final_snapshot = self.snapshot()

        snapshot = self.snapshot()
        logger.info(
            "State %s -> %s (score=%d, note=%d/%d)",
            previous_state.value,
            new_state.value,
            snapshot.score,
            snapshot.consumed_note_index,
            snapshot.song_length,
        )
        for listener in list(self._listeners):
            listener(new_state, snapshot)


def _run_unit_tests() -> None:
    class _Sink:
        def __init__(self) -> None:
            self.commands: List[object] = []

        def request_session_start(self, command: gameplay_models.RequestSessionStart) -> None:
            self.commands.append(command)

        def attempt_note_hit(self, command: gameplay_models.AttemptNoteHit) -> None:
            self.commands.append(command)

    song = gameplay_models.Song(song_id=0, title="test", note_offsets=(0, 50, 120))
    sink = _Sink()
    machine = GameStateMachine(song, ScoreTable(), command_sink=sink, countdown_steps=1, time_source=lambda: 0.0)

    assert machine.begin_session("0xABC")
    assert machine.apply_event(gameplay_models.SessionStarted(identity="0xabc", start_block=1000))
    assert machine.state() == GameState.COUNTDOWN
    assert machine.tick_countdown()
    assert machine.state() == GameState.PLAYING

    hit = gameplay_models.NoteResult(identity="0xabc", note_index=0, quality="perfect", points=100)
    assert machine.apply_event(hit)
    assert not machine.apply_event(hit)
    assert machine.snapshot().score == 100
    assert machine.consumed_note_index() == 1

    assert machine.apply_event(gameplay_models.SessionFinished(identity="0xabc"))
    assert machine.reset()
    assert machine.snapshot().start_block == gameplay_models.NOT_STARTED


if __name__ == "__main__":
    _run_unit_tests()
    print("game_state.py: ok")
