# -*- coding: utf-8 -*-
########################
# demo_chain.py
########################
# Purpose:
# - Deterministic in-process stand-in for the game ledger, for offline play and tests.
# - Implements the three external collaborators the engine needs:
#   - CounterSource (block_number)
#   - EventSource (subscribe GameStarted / NoteHit / GameFinished log batches)
#   - CommandSink (request_session_start, attempt_note_hit)
#
# Design notes:
# - No Qt usage. Blocks advance only when advance() is called (the entry point drives it from a QTimer).
# - Judging lives here, not in the client: points depend on the block distance to the note's target block.
# - Logs are delivered confirmation_delay_blocks after the command, grouped per event name in
#   first-seen order. duplicate_delivery delivers every batch twice (at-least-once upstream).
#
########################
# Interfaces:
# Public classes:
# - class DemoChain
#   - from_config(app_config) -> DemoChain
#   - block_number() -> int
#   - advance(blocks: int = 1) -> int
#   - subscribe(event_name: str, callback) -> DemoSubscription
#   - subscriber_count() -> int
#   - request_session_start(RequestSessionStart) -> None
#   - attempt_note_hit(AttemptNoteHit) -> None
#   - inject_log(event_name: str, args: dict, *, delay_blocks: int = 0) -> None
#
########################

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import gameplay_models

logger = logging.getLogger(__name__)

LogBatchCallback = Callable[[List[Dict[str, Any]]], None]


@dataclass
class _DemoGame:
    player: str
    start_block: int
    next_note_index: int = 0
    total_points: int = 0
    finished: bool = False


@dataclass
class _PendingLog:
    deliver_at_block: int
    event_name: str
    args: Dict[str, Any] = field(default_factory=dict)


class DemoSubscription:
    def __init__(self, chain: "DemoChain", event_name: str, callback: LogBatchCallback) -> None:
        self._chain = chain
        self.event_name = str(event_name)
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._chain._remove_subscription(self)


class DemoChain:
    def __init__(
        self,
        song: gameplay_models.Song,
        *,
        lead_in_blocks: int = 400,
        perfect_window_blocks: int = 5,
        good_window_blocks: int = 15,
        perfect_points: int = 100,
        good_points: int = 50,
        confirmation_delay_blocks: int = 2,
        duplicate_delivery: bool = False,
        initial_block: int = 1,
    ) -> None:
        self._song = song
        self._lead_in_blocks = int(max(0, lead_in_blocks))
        self._perfect_window_blocks = int(max(0, perfect_window_blocks))
        self._good_window_blocks = int(max(self._perfect_window_blocks, good_window_blocks))
        self._perfect_points = int(perfect_points)
        self._good_points = int(good_points)
        self._confirmation_delay_blocks = int(max(0, confirmation_delay_blocks))
        self._duplicate_delivery = bool(duplicate_delivery)

        self._block_number = int(max(1, initial_block))
        self._games: Dict[str, _DemoGame] = {}
        self._pending_logs: List[_PendingLog] = []
        self._subscriptions: List[DemoSubscription] = []

    @classmethod
    def from_config(cls, app_config: Any) -> "DemoChain":
        chain_config = app_config.chain
        points = app_config.scoring.points
        return cls(
            app_config.song.to_song(),
            lead_in_blocks=int(chain_config.lead_in_blocks),
            perfect_window_blocks=int(chain_config.perfect_window_blocks),
            good_window_blocks=int(chain_config.good_window_blocks),
            perfect_points=int(points.get("perfect", 100)),
            good_points=int(points.get("good", 50)),
            confirmation_delay_blocks=int(chain_config.confirmation_delay_blocks),
            duplicate_delivery=bool(chain_config.duplicate_delivery),
        )

    # -----------------
    # CounterSource
    # -----------------

    def block_number(self) -> int:
        return int(self._block_number)

    def advance(self, blocks: int = 1) -> int:
        for _ in range(int(max(0, blocks))):
            self._block_number += 1
            self._deliver_due_logs()
        return self._block_number

    # -----------------
    # EventSource
    # -----------------

    def subscribe(self, event_name: str, callback: LogBatchCallback) -> DemoSubscription:
        subscription = DemoSubscription(self, event_name, callback)
        self._subscriptions.append(subscription)
        return subscription

    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def _remove_subscription(self, subscription: DemoSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    # -----------------
    # CommandSink
    # -----------------

    def request_session_start(self, command: gameplay_models.RequestSessionStart) -> None:
        if int(command.song_id) != int(self._song.song_id):
            logger.warning("Demo chain rejected unknown song %d", int(command.song_id))
            return

        start_block = self._block_number + self._lead_in_blocks
        player = str(command.identity)
        self._games[gameplay_models.normalize_identity(player)] = _DemoGame(player=player, start_block=start_block)
        self._emit("GameStarted", {"player": player, "startBlock": start_block})

    def attempt_note_hit(self, command: gameplay_models.AttemptNoteHit) -> None:
        game = self._games.get(gameplay_models.normalize_identity(command.identity))
        if game is None or game.finished:
            logger.debug("Demo chain rejected hit without an active game")
            return

        note_index = int(command.note_index)
        if note_index != game.next_note_index or note_index >= len(self._song):
            logger.debug("Demo chain rejected hit for note %d, expecting %d", note_index, game.next_note_index)
            return

        target_block = game.start_block + int(self._song.note_offsets[note_index])
        delta_blocks = abs(self._block_number - target_block)
        if delta_blocks <= self._perfect_window_blocks:
            points = self._perfect_points
        elif delta_blocks <= self._good_window_blocks:
            points = self._good_points
        else:
            points = 0

        game.next_note_index += 1
        game.total_points += points
        self._emit("NoteHit", {"player": game.player, "noteIndex": note_index, "score": points})

        if game.next_note_index >= len(self._song):
            game.finished = True
            self._emit("GameFinished", {"player": game.player})

    # -----------------
    # Test helpers
    # -----------------

    def inject_log(self, event_name: str, args: Dict[str, Any], *, delay_blocks: int = 0) -> None:
        self._pending_logs.append(
            _PendingLog(
                deliver_at_block=self._block_number + int(max(0, delay_blocks)),
                event_name=str(event_name),
                args=dict(args),
            )
        )
        if delay_blocks <= 0:
            self._deliver_due_logs()

    def game_points(self, identity: str) -> Optional[int]:
        game = self._games.get(gameplay_models.normalize_identity(identity))
        return game.total_points if game is not None else None

    # -----------------
    # Delivery
    # -----------------

    def _emit(self, event_name: str, args: Dict[str, Any]) -> None:
        self._pending_logs.append(
            _PendingLog(
                deliver_at_block=self._block_number + self._confirmation_delay_blocks,
                event_name=event_name,
                args=args,
            )
        )
        if self._confirmation_delay_blocks == 0:
            self._deliver_due_logs()

    def _deliver_due_logs(self) -> None:
        due = [log for log in self._pending_logs if log.deliver_at_block <= self._block_number]
        if not due:
            return
        self._pending_logs = [log for log in self._pending_logs if log.deliver_at_block > self._block_number]

        batches: Dict[str, List[Dict[str, Any]]] = {}
        for log in due:
            batches.setdefault(log.event_name, []).append({"eventName": log.event_name, "args": dict(log.args)})

        repeats = 2 if self._duplicate_delivery else 1
        for event_name, batch in batches.items():
            for _ in range(repeats):
                for subscription in list(self._subscriptions):
                    if subscription.active and subscription.event_name == event_name:
                        subscription.callback([dict(item) for item in batch])
