# -*- coding: utf-8 -*-
########################
# input_router.py
########################
# Purpose:
# - Single keyboard listener for the gameplay hit key.
# - Translates QKeyEvent into a hitRequested Qt signal.
#
# Design notes:
# - This must be the only hit input source. No duplicate key mapping elsewhere.
# - Debounce rules:
#   - Ignore auto repeat.
#   - Track pressed keys to avoid duplicate presses.
# - The router never judges or scores. GameEngine turns hitRequested into an
#   "attempt note hit" command and the external authority decides the outcome.
#
########################
# Interfaces:
# Public classes:
# - class InputRouter(PyQt6.QtCore.QObject)
#   - Signals:
#     - hitRequested()
#   - Methods:
#     - handle_key_press(event: QKeyEvent) -> bool
#     - handle_key_release(event: QKeyEvent) -> bool
#     - clear_pressed_keys() -> None
#     - reset_stats() -> None
#
# Inputs:
# - Raw QKeyEvent from the Qt event loop (GameEngine.eventFilter).
#
# Outputs:
# - hitRequested consumed by GameEngine.attempt_hit.
#
########################

from __future__ import annotations

from typing import Iterable, Optional, Set

from PyQt6.QtCore import QObject, Qt, pyqtSignal
from PyQt6.QtGui import QKeyEvent


def _build_default_hit_keys() -> Set[int]:
    """
    Default hit keys: Space, with Enter as an alternative for keypads.
    """
    return {int(Qt.Key.Key_Space), int(Qt.Key.Key_Return), int(Qt.Key.Key_Enter)}


class InputRouter(QObject):
    """
    Central keyboard router for the hit key.

    This object never judges timing. Its only job is to:
      - recognize hit keys
      - emit hitRequested once per physical press
    """

    hitRequested = pyqtSignal()

    def __init__(
        self,
        parent: Optional[QObject] = None,
        hit_keys: Optional[Iterable[int]] = None,
    ) -> None:
        super().__init__(parent)

        self._hit_keys: Set[int] = (
            {int(key) for key in hit_keys} if hit_keys is not None else _build_default_hit_keys()
        )

        # Press tracking for debounce and focus loss handling.
        self._pressed_keys: Set[int] = set()

        self._total_presses: int = 0
        self._ignored_presses: int = 0

    # ------------------------------------------------------------------
    # Public API used by game_engine
    # ------------------------------------------------------------------

    def handle_key_press(self, event: QKeyEvent) -> bool:
        """
        Handle a Qt key press.

        Returns True if this router consumed the event, False otherwise.
        """
        key_code = int(event.key())
        if key_code not in self._hit_keys:
            return False

        # Holding the key must not spam hit attempts.
        if event.isAutoRepeat() or key_code in self._pressed_keys:
            self._ignored_presses += 1
            return True

        self._pressed_keys.add(key_code)
        self._total_presses += 1
        self.hitRequested.emit()
        return True

    def handle_key_release(self, event: QKeyEvent) -> bool:
        """
        Handle a Qt key release.

        Returns True if this router consumed the event, False otherwise.
        """
        key_code = int(event.key())

        if event.isAutoRepeat():
            return key_code in self._hit_keys

        self._pressed_keys.discard(key_code)
        return key_code in self._hit_keys

    def clear_pressed_keys(self) -> None:
        """
        Clear pressed state for all keys.

        Called on focus loss or window deactivation.
        """
        self._pressed_keys.clear()

    def reset_stats(self) -> None:
        self._total_presses = 0
        self._ignored_presses = 0

    @property
    def hit_keys(self) -> Set[int]:
        return set(self._hit_keys)

    @property
    def total_presses(self) -> int:
        return self._total_presses

    @property
    def ignored_presses(self) -> int:
        return self._ignored_presses
