"""
event_bridge.py

Upstream event filter between the chain log subscription and the GameStateMachine.

Purpose
- Subscribe to the three gameplay log categories (GameStarted, NoteHit, GameFinished)
  for exactly one active identity.
- Validate raw logs, drop the ones that do not concern this session, and forward the rest
  as typed domain events in delivery order.

How it works
- attach(identity) registers one callback per category and returns immediately.
- Every callback is bound to the attach generation. detach() unsubscribes synchronously and
  bumps the generation, so a callback captured earlier can never forward anything.
- Note results below the state machine's consumed note index were already applied and are
  dropped. Upstream delivery is at-least-once, this makes application exactly-once per index.
- GameFinished is held back and forwarded by flush(). Without a flush requester flush() runs at
  the end of each batch. With one, the host calls flush() once the current delivery turn is over,
  so a NoteHit delivered in a later callback of the same turn is still applied first.

Raw log shape
    {"eventName": "NoteHit", "args": {"player": "0xabc...", "noteIndex": 3, "score": 100}}

Public API
- EventSource, Subscription (protocols)
- BridgeStats
- EventBridge
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from pydantic import BaseModel, Field, ValidationError

import gameplay_models
from game_state import ScoreTable

logger = logging.getLogger(__name__)

EVENT_GAME_STARTED = "GameStarted"
EVENT_NOTE_HIT = "NoteHit"
EVENT_GAME_FINISHED = "GameFinished"

EVENT_NAMES = (EVENT_GAME_STARTED, EVENT_NOTE_HIT, EVENT_GAME_FINISHED)

LogBatchCallback = Callable[[List[Dict[str, Any]]], None]


class Subscription(Protocol):
    def unsubscribe(self) -> None:
        ...


class EventSource(Protocol):
    def subscribe(self, event_name: str, callback: LogBatchCallback) -> Subscription:
        ...


class GameStartedArgs(BaseModel):
    player: str
    startBlock: int = Field(ge=0)


class NoteHitArgs(BaseModel):
    player: str
    noteIndex: int = Field(ge=0)
    score: int = Field(default=0, ge=0)
    quality: Optional[str] = None


class GameFinishedArgs(BaseModel):
    player: str


@dataclass
class BridgeStats:
    forwarded: int = 0
    dropped_identity: int = 0
    dropped_stale: int = 0
    dropped_malformed: int = 0
    dropped_detached: int = 0


class EventBridge:
    def __init__(
        self,
        event_source: EventSource,
        event_sink: Callable[[gameplay_models.DomainEvent], Any],
        consumed_index_provider: Callable[[], int],
        score_table: ScoreTable,
        *,
        flush_requester: Optional[Callable[[], Any]] = None,
    ) -> None:
        self._event_source = event_source
        self._event_sink = event_sink
        self._consumed_index_provider = consumed_index_provider
        self._score_table = score_table
        self._flush_requester = flush_requester

        self._identity: Optional[str] = None
        self._generation = 0
        self._subscriptions: List[Subscription] = []
        self._held_finishes: List[gameplay_models.SessionFinished] = []
        self._stats = BridgeStats()

    @property
    def stats(self) -> BridgeStats:
        return self._stats

    def identity(self) -> Optional[str]:
        return self._identity

    def is_attached(self) -> bool:
        return self._identity is not None

    def held_finish_count(self) -> int:
        return len(self._held_finishes)

    def attach(self, identity: str) -> None:
        self.detach()

        normalized_identity = gameplay_models.normalize_identity(identity)
        if not normalized_identity:
            raise ValueError("identity must be a non-empty string")

        self._identity = normalized_identity
        self._generation += 1
        generation = self._generation
        for event_name in EVENT_NAMES:
            subscription = self._event_source.subscribe(event_name, self._make_handler(generation, event_name))
            self._subscriptions.append(subscription)
        logger.debug("Attached event bridge for %s", normalized_identity)

    def detach(self) -> None:
        subscriptions = self._subscriptions
        self._subscriptions = []
        self._generation += 1
        was_attached = self._identity is not None
        self._identity = None
        self._stats.dropped_detached += len(self._held_finishes)
        self._held_finishes = []
        for subscription in subscriptions:
            subscription.unsubscribe()
        if was_attached:
            logger.debug("Detached event bridge")

    def deliver_batch(self, raw_logs: Iterable[Any], default_event_name: Optional[str] = None) -> int:
        """Filter and forward one delivered batch. Returns the number of forwarded events."""
        logs = list(raw_logs)
        if self._identity is None:
            self._stats.dropped_detached += len(logs)
            return 0

        events: List[gameplay_models.DomainEvent] = []
        for raw_log in logs:
            event = self._parse_log(raw_log, default_event_name)
            if event is not None:
                events.append(event)

        generation = self._generation
        forwarded = 0
        for position, event in enumerate(events):
            if generation != self._generation:
                # The sink detached us mid-batch (return to menu).
                self._stats.dropped_detached += len(events) - position
                break
            if isinstance(event, gameplay_models.SessionFinished):
                self._hold_finish(event)
            elif self._forward(event):
                forwarded += 1

        if generation != self._generation or not self._held_finishes:
            return forwarded
        if self._flush_requester is None:
            forwarded += self.flush()
        else:
            self._flush_requester()
        return forwarded

    def flush(self) -> int:
        """Forward held GameFinished events. Returns the number of forwarded events."""
        held = self._held_finishes
        self._held_finishes = []
        generation = self._generation
        forwarded = 0
        for position, event in enumerate(held):
            if generation != self._generation:
                self._stats.dropped_detached += len(held) - position
                break
            if self._forward(event):
                forwarded += 1
        return forwarded

    def _hold_finish(self, event: gameplay_models.SessionFinished) -> None:
        if gameplay_models.normalize_identity(event.identity) != self._identity:
            self._stats.dropped_identity += 1
            return
        self._held_finishes.append(event)

    def _make_handler(self, generation: int, event_name: str) -> LogBatchCallback:
        def handle_logs(raw_logs: List[Dict[str, Any]]) -> None:
            if generation != self._generation:
                self._stats.dropped_detached += len(list(raw_logs))
                return
            self.deliver_batch(raw_logs, default_event_name=event_name)

        return handle_logs

    def _forward(self, event: gameplay_models.DomainEvent) -> bool:
        if gameplay_models.normalize_identity(event.identity) != self._identity:
            self._stats.dropped_identity += 1
            return False

        if isinstance(event, gameplay_models.NoteResult):
            consumed_index = int(self._consumed_index_provider())
            if int(event.note_index) < consumed_index:
                self._stats.dropped_stale += 1
                logger.debug("Dropped replayed note result %d (consumed %d)", event.note_index, consumed_index)
                return False

        self._stats.forwarded += 1
        self._event_sink(event)
        return True

    def _parse_log(self, raw_log: Any, default_event_name: Optional[str]) -> Optional[gameplay_models.DomainEvent]:
        if not isinstance(raw_log, dict):
            self._stats.dropped_malformed += 1
            logger.warning("Dropped malformed log of type %s", type(raw_log).__name__)
            return None

        event_name = str(raw_log.get("eventName") or default_event_name or "").strip()
        args_payload = raw_log.get("args")
        if not isinstance(args_payload, dict):
            args_payload = {}

        try:
            if event_name == EVENT_GAME_STARTED:
                started = GameStartedArgs.model_validate(args_payload)
                return gameplay_models.SessionStarted(identity=started.player, start_block=int(started.startBlock))

            if event_name == EVENT_NOTE_HIT:
                hit = NoteHitArgs.model_validate(args_payload)
                quality_text = (hit.quality or "").strip().lower()
                if not quality_text:
                    quality_text = self._score_table.quality_for_points(int(hit.score))
                return gameplay_models.NoteResult(
                    identity=hit.player,
                    note_index=int(hit.noteIndex),
                    quality=quality_text,
                    points=int(hit.score),
                )

            if event_name == EVENT_GAME_FINISHED:
                finished = GameFinishedArgs.model_validate(args_payload)
                return gameplay_models.SessionFinished(identity=finished.player)
        except ValidationError as exception:
            self._stats.dropped_malformed += 1
            logger.warning("Dropped malformed %s log: %s", event_name, exception)
            return None

        self._stats.dropped_malformed += 1
        logger.warning("Dropped log with unknown event name %r", event_name)
        return None
