# -*- coding: utf-8 -*-
########################
# animation_driver.py
########################
# Purpose:
# - Per-frame presentation loop for the playing state.
# - Re-samples NoteTimeline against BlockClock and GameStateMachine on every frame and
#   hands the result to the render boundary.
#
########################
# Key Logic:
# - Frame:
#   - read BlockClock.current_block (no value: skip the frame, positions stay frozen)
#   - read GameStateMachine.snapshot once (no event is applied mid-projection)
#   - project the remaining notes with their lane y, attach the live FeedbackToken
#   - release notes that left the frame, hand the frame to the sink, then emit it
#     unless the sink stopped the driver
# - Strict boundaries:
#   - No state mutation. The driver only reads clock and state machine.
#   - Rendering primitives live behind RenderSink.
# - Cancellation:
#   - stop() stops the QTimer and clears the running flag synchronously. A timeout that
#     was already queued does nothing. All live notes are released.
#
########################
# Interfaces:
# Public protocols:
# - RenderSink.on_frame(RenderFrame) -> None
# - RenderSink.on_state_changed(GameState, SessionSnapshot) -> None
# - RenderSink.release_note(note_index: int) -> None
#
# Public classes:
# - class AnimationDriver(PyQt6.QtCore.QObject)
#   - Signals:
#     - frameReady(RenderFrame)
#   - start() -> None
#   - stop() -> None
#   - is_running() -> bool
#   - render_once() -> Optional[RenderFrame]
#   - live_note_indices() -> set[int]
#   - last_frame() -> Optional[RenderFrame]
#
########################

from __future__ import annotations

from typing import Optional, Protocol, Set

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

import block_clock
import game_state
import gameplay_models
import note_timeline


class RenderSink(Protocol):
    def on_frame(self, frame: gameplay_models.RenderFrame) -> None:
        ...

    def on_state_changed(
        self,
        state: gameplay_models.GameState,
        snapshot: gameplay_models.SessionSnapshot,
    ) -> None:
        ...

    def release_note(self, note_index: int) -> None:
        ...


class AnimationDriver(QObject):
    frameReady = pyqtSignal(object)

    def __init__(
        self,
        clock: block_clock.BlockClock,
        state_machine: game_state.GameStateMachine,
        render_sink: RenderSink,
        *,
        window: Optional[note_timeline.DisplayWindow] = None,
        geometry: Optional[note_timeline.LaneGeometry] = None,
        frame_interval_ms: int = 16,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._clock = clock
        self._state_machine = state_machine
        self._render_sink = render_sink
        self._window = window or note_timeline.DisplayWindow()
        self._geometry = geometry or note_timeline.LaneGeometry()

        self._running = False
        self._live_notes: Set[int] = set()
        self._last_frame: Optional[gameplay_models.RenderFrame] = None

        self._frame_timer = QTimer(self)
        self._frame_timer.setInterval(int(max(1, frame_interval_ms)))
        self._frame_timer.timeout.connect(self._on_frame_timer)

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._frame_timer.start()

    def stop(self) -> None:
        self._frame_timer.stop()
        self._running = False
        for note_index in sorted(self._live_notes):
            self._render_sink.release_note(note_index)
        self._live_notes = set()
        self._last_frame = None

    def is_running(self) -> bool:
        return self._running

    def live_note_indices(self) -> Set[int]:
        return set(self._live_notes)

    def last_frame(self) -> Optional[gameplay_models.RenderFrame]:
        return self._last_frame

    def render_once(self) -> Optional[gameplay_models.RenderFrame]:
        if not self._running:
            return None

        current_block = self._clock.current_block()
        if current_block is None:
            return None

        snapshot = self._state_machine.snapshot()
        notes = note_timeline.project(
            snapshot.start_block,
            self._state_machine.song().note_offsets,
            current_block,
            snapshot.consumed_note_index,
            self._window,
            geometry=self._geometry,
        )
        frame = gameplay_models.RenderFrame(
            block_number=int(current_block),
            notes=tuple(notes),
            feedback=self._state_machine.live_feedback(),
            state=snapshot.state,
            consumed_note_index=snapshot.consumed_note_index,
        )

        shown_notes = {note.index for note in notes}
        for note_index in sorted(self._live_notes - shown_notes):
            self._render_sink.release_note(note_index)
        self._live_notes = shown_notes
        self._last_frame = frame

        self._render_sink.on_frame(frame)
        if not self._running:
            # on_frame led to stop(), which already released the notes.
            return None
        self.frameReady.emit(frame)
        return frame

    def _on_frame_timer(self) -> None:
        if not self._running:
            return
        self.render_once()
