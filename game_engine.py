# -*- coding: utf-8 -*-
########################
# game_engine.py
########################
# Purpose:
# - Gameplay engine that integrates BlockClock + BlockClockPoller + EventBridge + GameStateMachine
#   + AnimationDriver + InputRouter behind one QObject.
#
# Design notes:
# - Every external collaborator is passed in explicitly: counter source, event source,
#   command sink and render sink. Nothing is looked up from ambient state.
# - Two clocks, kept apart:
#   - wall clock (QTimer) paces the pre-game countdown only
#   - BlockClock is the only gameplay clock once the start block exists
# - Reacts to state transitions:
#   - countdown: start the countdown timer
#   - playing: stop the countdown timer, start the AnimationDriver
#   - finished: stop the AnimationDriver
#   - menu: stop timers and driver, detach the EventBridge
# - GameFinished logs are held by the EventBridge and flushed by a zero-interval single-shot
#   QTimer, so every NoteHit delivered in the same event loop turn is applied first.
# - shutdown() is idempotent and leaves no timer, subscription or driver alive.
#
########################
# Interfaces:
# Public classes:
# - class GameEngine(PyQt6.QtCore.QObject)
#   - Signals:
#     - stateChanged(GameState, SessionSnapshot)
#     - frameReady(RenderFrame)
#     - countdownTicked(int)
#   - Methods:
#     - start() -> None
#     - shutdown() -> None
#     - set_identity(identity: str) -> bool
#     - begin_session() -> bool
#     - cancel_pending_session() -> bool
#     - attempt_hit() -> bool
#     - reset() -> bool
#     - on_block_number(block_number: int) -> None
#     - tick_countdown() -> bool
#
# Inputs:
# - Block numbers (polled or pushed), chain log batches, key events via eventFilter.
#
# Outputs:
# - Outbound commands to the command sink, frames and state changes to the render sink.
#
########################

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from PyQt6.QtCore import QEvent, QObject, QTimer, pyqtSignal
from PyQt6.QtGui import QKeyEvent

import animation_driver
import block_clock
import block_poller
import event_bridge
import game_state
import gameplay_models
import input_router
import note_timeline
from gameplay_models import GameState

logger = logging.getLogger(__name__)


class GameEngine(QObject):
    stateChanged = pyqtSignal(object, object)
    frameReady = pyqtSignal(object)
    countdownTicked = pyqtSignal(int)

    def __init__(
        self,
        *,
        app_config: Any,
        counter_source: Optional[block_clock.CounterSource],
        event_source: event_bridge.EventSource,
        command_sink: game_state.CommandSink,
        render_sink: animation_driver.RenderSink,
        time_source: Callable[[], float] = time.monotonic,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._render_sink = render_sink
        self._identity = ""
        self._is_shut_down = False

        song = app_config.song.to_song()
        score_table = game_state.ScoreTable.from_config(app_config.scoring)

        self._clock = block_clock.BlockClock()
        self._poller = block_poller.BlockClockPoller(
            self._clock,
            counter_source,
            poll_interval_ms=int(app_config.chain.block_poll_interval_ms),
            parent=self,
        )

        self._state_machine = game_state.GameStateMachine(
            song,
            score_table,
            command_sink=command_sink,
            countdown_steps=int(app_config.timing.countdown_steps),
            feedback_lifetime_seconds=float(app_config.timing.feedback_lifetime_seconds),
            time_source=time_source,
        )
        self._state_machine.add_listener(self._on_state_changed)

        # Held GameFinished events are released once the current delivery turn is over.
        self._finish_flush_timer = QTimer(self)
        self._finish_flush_timer.setSingleShot(True)
        self._finish_flush_timer.setInterval(0)

        self._bridge = event_bridge.EventBridge(
            event_source,
            self._state_machine.apply_event,
            self._state_machine.consumed_note_index,
            score_table,
            flush_requester=self._finish_flush_timer.start,
        )
        self._finish_flush_timer.timeout.connect(self._bridge.flush)

        self._driver = animation_driver.AnimationDriver(
            self._clock,
            self._state_machine,
            render_sink,
            window=note_timeline.DisplayWindow(margin_blocks=int(app_config.display.margin_blocks)),
            geometry=note_timeline.LaneGeometry(
                hit_line_y=float(app_config.display.hit_line_y),
                pixels_per_block=float(app_config.display.pixels_per_block),
            ),
            frame_interval_ms=int(app_config.display.frame_interval_ms),
            parent=self,
        )
        self._driver.frameReady.connect(self.frameReady)

        self._countdown_timer = QTimer(self)
        self._countdown_timer.setInterval(int(app_config.timing.countdown_step_ms))
        self._countdown_timer.timeout.connect(self.tick_countdown)

        self._router = input_router.InputRouter(parent=self)
        self._router.hitRequested.connect(self.attempt_hit)

    # -----------------
    # Accessors
    # -----------------

    @property
    def clock(self) -> block_clock.BlockClock:
        return self._clock

    @property
    def state_machine(self) -> game_state.GameStateMachine:
        return self._state_machine

    @property
    def bridge(self) -> event_bridge.EventBridge:
        return self._bridge

    @property
    def driver(self) -> animation_driver.AnimationDriver:
        return self._driver

    @property
    def input_router(self) -> input_router.InputRouter:
        return self._router

    def identity(self) -> str:
        return self._identity

    def state(self) -> GameState:
        return self._state_machine.state()

    def snapshot(self) -> gameplay_models.SessionSnapshot:
        return self._state_machine.snapshot()

    def is_countdown_running(self) -> bool:
        return bool(self._countdown_timer.isActive())

    # -----------------
    # Lifecycle
    # -----------------

    def start(self) -> None:
        if self._is_shut_down:
            return
        self._poller.start()

    def shutdown(self) -> None:
        if self._is_shut_down:
            return
        self._is_shut_down = True
        self._state_machine.remove_listener(self._on_state_changed)
        self._poller.stop()
        self._countdown_timer.stop()
        self._finish_flush_timer.stop()
        self._driver.stop()
        self._bridge.detach()
        self._router.clear_pressed_keys()
        logger.info("Engine shut down")

    # -----------------
    # Commands
    # -----------------

    def set_identity(self, identity: str) -> bool:
        if self._is_shut_down or self._state_machine.state() != GameState.MENU:
            return False
        if self._state_machine.has_pending_session():
            return False
        normalized_identity = gameplay_models.normalize_identity(identity)
        if not normalized_identity:
            return False
        self._identity = normalized_identity
        return True

    def begin_session(self) -> bool:
        if self._is_shut_down or not self._identity:
            return False
        if self._state_machine.state() != GameState.MENU or self._state_machine.has_pending_session():
            return False

        # Subscribe before requesting, so the start log cannot be missed.
        self._bridge.attach(self._identity)
        if not self._state_machine.begin_session(self._identity):
            self._bridge.detach()
            return False
        return True

    def cancel_pending_session(self) -> bool:
        if not self._state_machine.cancel_pending_session():
            return False
        self._bridge.detach()
        return True

    def attempt_hit(self) -> bool:
        if self._is_shut_down:
            return False
        return self._state_machine.attempt_hit()

    def reset(self) -> bool:
        if self._is_shut_down:
            return False
        return self._state_machine.reset()

    def tick_countdown(self) -> bool:
        if self._is_shut_down:
            return False
        if not self._state_machine.tick_countdown():
            self._countdown_timer.stop()
            return False
        if self._state_machine.state() == GameState.COUNTDOWN:
            self.countdownTicked.emit(int(self._state_machine.snapshot().countdown_remaining))
        return True

    def on_block_number(self, block_number: int) -> None:
        if self._is_shut_down:
            return
        self._poller.on_block_number(block_number)

    def poll_block_number(self) -> bool:
        if self._is_shut_down:
            return False
        return self._poller.poll_once()

    # -----------------
    # Key routing
    # -----------------

    def eventFilter(self, watched: QObject, event: QEvent) -> bool:  # noqa: N802
        if event.type() == QEvent.Type.KeyPress and isinstance(event, QKeyEvent):
            if self._router.handle_key_press(event):
                return True
        if event.type() == QEvent.Type.KeyRelease and isinstance(event, QKeyEvent):
            if self._router.handle_key_release(event):
                return True
        if event.type() in (QEvent.Type.WindowDeactivate, QEvent.Type.FocusOut):
            self._router.clear_pressed_keys()
        return super().eventFilter(watched, event)

    # -----------------
    # State transitions
    # -----------------

    def _on_state_changed(self, state: GameState, snapshot: gameplay_models.SessionSnapshot) -> None:
        # Tear down what the new state does not use before anyone hears about it.
        if state != GameState.COUNTDOWN:
            self._countdown_timer.stop()
        if state != GameState.PLAYING:
            self._driver.stop()
        if state == GameState.MENU:
            self._finish_flush_timer.stop()
            self._bridge.detach()
            self._router.clear_pressed_keys()

        self._render_sink.on_state_changed(state, snapshot)
        self.stateChanged.emit(state, snapshot)

        if state == GameState.COUNTDOWN:
            self._countdown_timer.start()
            self.countdownTicked.emit(int(snapshot.countdown_remaining))
        elif state == GameState.PLAYING:
            self._driver.start()
            self._driver.render_once()
