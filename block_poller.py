# -*- coding: utf-8 -*-
########################
# block_poller.py
########################
# Purpose:
# - Qt adapter that feeds the BlockClock from an upstream counter source.
# - Polls a CounterSource on a QTimer and accepts pushed values through a slot.
#
# Design notes:
# - Cadence is outside gameplay control. A stalled source simply produces no signal.
# - blockAdvanced is emitted only when BlockClock actually advanced.
#
########################
# Interfaces:
# Public classes:
# - class BlockClockPoller(PyQt6.QtCore.QObject)
#   - Signals:
#     - blockAdvanced(int)
#   - Methods:
#     - start() -> None
#     - stop() -> None
#     - is_running() -> bool
#     - poll_once() -> bool
#     - on_block_number(int) -> None
#
# Inputs:
# - CounterSource.block_number() (polled) or on_block_number (pushed).
#
# Outputs:
# - Updated BlockClock and blockAdvanced for UI subscribers.
#
########################

from __future__ import annotations

from typing import Optional

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

import block_clock


class BlockClockPoller(QObject):
    blockAdvanced = pyqtSignal(int)

    def __init__(
        self,
        clock: block_clock.BlockClock,
        source: Optional[block_clock.CounterSource] = None,
        *,
        poll_interval_ms: int = 10,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._clock = clock
        self._source = source

        self._poll_timer = QTimer(self)
        self._poll_timer.setInterval(int(max(1, poll_interval_ms)))
        self._poll_timer.timeout.connect(self.poll_once)

    def start(self) -> None:
        if self._source is None:
            # Push-only configuration.
            return
        self._poll_timer.start()

    def stop(self) -> None:
        self._poll_timer.stop()

    def is_running(self) -> bool:
        return bool(self._poll_timer.isActive())

    def poll_once(self) -> bool:
        if self._source is None:
            return False
        if not self._clock.observe(self._source):
            return False
        self._emit_advanced()
        return True

    def on_block_number(self, block_number: int) -> None:
        if self._clock.update_block_number(block_number):
            self._emit_advanced()

    def _emit_advanced(self) -> None:
        current = self._clock.current_block()
        if current is not None:
            self.blockAdvanced.emit(int(current))
