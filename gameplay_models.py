# -*- coding: utf-8 -*-
########################
# gameplay_models.py
########################
# Purpose:
# - Core gameplay data models for the block-synchronized gameplay pipeline.
# - Defines the Song representation, session snapshots, upstream domain events,
#   outbound commands and per-frame render payloads.
#
# Design notes:
# - Keep these models stable. Prefer extending with new optional fields rather than breaking changes.
# - No Qt usage. These are plain dataclasses.
# - Block numbers are plain ints. 0 is the "session not started" sentinel for start_block.
#
########################
# Interfaces:
# Public constants:
# - NOT_STARTED = 0
#
# Public enums:
# - class GameState(str, Enum): MENU, COUNTDOWN, PLAYING, FINISHED
#
# Public functions:
# - normalize_identity(identity: str) -> str
#
# Public dataclasses:
# - Song(song_id: int, title: str, note_offsets: tuple[int, ...])
# - SessionSnapshot(state, identity, start_block, consumed_note_index, score, song_length, countdown_remaining)
# - FeedbackToken(quality: str, text: str, expires_at_seconds: float)
# - SessionStarted(identity: str, start_block: int)
# - NoteResult(identity: str, note_index: int, quality: str, points: int)
# - SessionFinished(identity: str)
# - RequestSessionStart(identity: str, song_id: int)
# - AttemptNoteHit(identity: str, note_index: int)
# - NoteProjection(index: int, distance_to_hit: int, visible: bool, y: Optional[float])
# - RenderFrame(block_number: int, notes: tuple[NoteProjection, ...], feedback, state, consumed_note_index)
#
# Inputs/Outputs:
# - These types are exchanged between BlockClock, NoteTimeline, EventBridge, GameStateMachine,
#   AnimationDriver, GameEngine and the render boundary.
#
########################

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

NOT_STARTED = 0


class GameState(str, Enum):
    MENU = "menu"
    COUNTDOWN = "countdown"
    PLAYING = "playing"
    FINISHED = "finished"


def normalize_identity(identity: str) -> str:
    # Account addresses are case-insensitive hex strings.
    return str(identity or "").strip().lower()


@dataclass(frozen=True)
class Song:
    song_id: int
    title: str
    note_offsets: Tuple[int, ...]

    def __len__(self) -> int:
        return len(self.note_offsets)


@dataclass(frozen=True)
class SessionSnapshot:
    state: GameState
    identity: str
    start_block: int
    consumed_note_index: int
    score: int
    song_length: int
    countdown_remaining: int = 0


@dataclass(frozen=True)
class FeedbackToken:
    quality: str
    text: str
    expires_at_seconds: float

    def is_live(self, now_seconds: float) -> bool:
        return float(now_seconds) < float(self.expires_at_seconds)


# Upstream domain events (forwarded by EventBridge).


@dataclass(frozen=True)
class SessionStarted:
    identity: str
    start_block: int


@dataclass(frozen=True)
class NoteResult:
    identity: str
    note_index: int
    quality: str
    points: int


@dataclass(frozen=True)
class SessionFinished:
    identity: str


DomainEvent = Union[SessionStarted, NoteResult, SessionFinished]


# Outbound commands (fire-and-forget to the command sink).


@dataclass(frozen=True)
class RequestSessionStart:
    identity: str
    song_id: int


@dataclass(frozen=True)
class AttemptNoteHit:
    identity: str
    note_index: int


# Render payloads.


@dataclass(frozen=True)
class NoteProjection:
    index: int
    distance_to_hit: int
    visible: bool
    # Lane y in pixels, set when projected with a LaneGeometry.
    y: Optional[float] = None


@dataclass(frozen=True)
class RenderFrame:
    block_number: int
    notes: Tuple[NoteProjection, ...]
    feedback: Optional[FeedbackToken]
    state: GameState
    consumed_note_index: int

    @property
    def head_note(self) -> Optional[NoteProjection]:
        for note in self.notes:
            if note.index == self.consumed_note_index:
                return note
        return None
