# -*- coding: utf-8 -*-
########################
# block_clock.py
########################
# Purpose:
# - Single source of truth for gameplay time.
# - Holds the latest known value of the external block counter.
#
# Design notes:
# - Gameplay code must use BlockClock.current_block. Wall-clock time is only used for
#   the pre-game countdown and feedback expiry.
# - No Qt usage. Keep this module pure and deterministic.
# - The reported value never decreases. A regression from upstream is held, not applied.
# - "Value unavailable" (None, negative, source error) means no progress this frame.
#
########################
# Interfaces:
# Public protocols:
# - CounterSource.block_number() -> Optional[int]
#
# Public dataclasses:
# - BlockClockSnapshot(block_number: Optional[int], updates_applied: int, regressions_ignored: int)
#
# Public classes:
# - class BlockClock
#   - current_block() -> Optional[int]
#   - update_block_number(value: Optional[int]) -> bool
#   - observe(source: CounterSource) -> bool
#   - snapshot() -> BlockClockSnapshot
#
# Inputs:
# - Block numbers pushed by a subscription or polled from a CounterSource.
#
# Outputs:
# - current_block used by NoteTimeline projection and AnimationDriver.
#
########################

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class CounterSource(Protocol):
    def block_number(self) -> Optional[int]:
        ...


@dataclass(frozen=True)
class BlockClockSnapshot:
    block_number: Optional[int]
    updates_applied: int
    regressions_ignored: int


class BlockClock:
    def __init__(self) -> None:
        self._block_number: Optional[int] = None
        self._updates_applied = 0
        self._regressions_ignored = 0

    def current_block(self) -> Optional[int]:
        return self._block_number

    def update_block_number(self, value: Optional[int]) -> bool:
        if value is None:
            return False
        block_number = int(value)
        if block_number < 0:
            return False
        if self._block_number is not None and block_number <= self._block_number:
            if block_number < self._block_number:
                self._regressions_ignored += 1
                logger.debug("Ignored block regression %d < %d", block_number, self._block_number)
            return False
        self._block_number = block_number
        self._updates_applied += 1
        return True

    def observe(self, source: CounterSource) -> bool:
        try:
            value = source.block_number()
        except Exception as exc:
            # Upstream failures are indistinguishable from a stalled counter here.
            logger.debug("Block counter unavailable: %s", exc)
            return False
        return self.update_block_number(value)

    def snapshot(self) -> BlockClockSnapshot:
        return BlockClockSnapshot(
            block_number=self._block_number,
            updates_applied=self._updates_applied,
            regressions_ignored=self._regressions_ignored,
        )


def _run_unit_tests() -> None:
    clock = BlockClock()
    assert clock.current_block() is None
    assert not clock.update_block_number(None)

    assert clock.update_block_number(1000)
    assert not clock.update_block_number(999)
    assert clock.current_block() == 1000
    assert not clock.update_block_number(-3)

    assert clock.update_block_number(1001)
    snap = clock.snapshot()
    assert snap.block_number == 1001
    assert snap.regressions_ignored == 1


if __name__ == "__main__":
    _run_unit_tests()
    print("block_clock.py: ok")
