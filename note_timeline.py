# -*- coding: utf-8 -*-
########################
# note_timeline.py
########################
# Purpose:
# - Project the song's notes onto the current block number.
# - Answers "how far is each remaining note from the hit line" and "where should it be drawn".
#
# Design notes:
# - No Qt usage. Pure gameplay logic, no state.
# - Identical inputs always produce identical output lists.
# - Note offsets are in non-decreasing order, so iteration stops at the first note
#   beyond the approaching edge of the display window.
# - distance_to_hit > 0: approaching, == 0: on the hit line, < 0: past the line, unconsumed.
#
########################
# Interfaces:
# Public dataclasses:
# - DisplayWindow(margin_blocks: int)
# - LaneGeometry(hit_line_y: float, pixels_per_block: float)
#
# Public functions:
# - project(start_block, note_offsets, current_block, consumed_note_index, window, *, include_hidden=False,
#           geometry=None)
#     -> list[NoteProjection]
# - note_y(distance_to_hit: int, geometry: LaneGeometry) -> float
#
# Inputs:
# - start_block and consumed_note_index from GameStateMachine.
# - current_block from BlockClock.
#
# Outputs:
# - NoteProjection lists consumed by AnimationDriver and the render boundary.
#
########################

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

import gameplay_models


@dataclass(frozen=True)
class DisplayWindow:
    margin_blocks: int = 550

    def contains(self, distance_to_hit: int) -> bool:
        return abs(int(distance_to_hit)) <= int(self.margin_blocks)


@dataclass(frozen=True)
class LaneGeometry:
    hit_line_y: float = 500.0
    pixels_per_block: float = 1.0


def project(
    start_block: int,
    note_offsets: Sequence[int],
    current_block: int,
    consumed_note_index: int,
    window: DisplayWindow,
    *,
    include_hidden: bool = False,
    geometry: Optional[LaneGeometry] = None,
) -> List[gameplay_models.NoteProjection]:
    if int(start_block) == gameplay_models.NOT_STARTED:
        return []

    first_index = max(0, int(consumed_note_index))
    margin = int(window.margin_blocks)
    projected: List[gameplay_models.NoteProjection] = []

    for index in range(first_index, len(note_offsets)):
        distance_to_hit = (int(start_block) + int(note_offsets[index])) - int(current_block)
        visible = window.contains(distance_to_hit)
        if not visible:
            if distance_to_hit > margin and not include_hidden:
                break
            if not include_hidden:
                continue
        projected.append(
            gameplay_models.NoteProjection(
                index=index,
                distance_to_hit=distance_to_hit,
                visible=visible,
                y=note_y(distance_to_hit, geometry) if geometry is not None else None,
            )
        )

    return projected


def note_y(distance_to_hit: int, geometry: LaneGeometry) -> float:
    return float(geometry.hit_line_y) - float(distance_to_hit) * float(geometry.pixels_per_block)


def _run_unit_tests() -> None:
    window = DisplayWindow(margin_blocks=100)
    song = [0, 50, 120]

    assert project(gameplay_models.NOT_STARTED, song, 1000, 0, window) == []

    notes = project(1000, song, 1000, 0, window)
    assert [(n.index, n.distance_to_hit) for n in notes] == [(0, 0), (1, 50)]
    assert all(n.visible for n in notes)

    hidden = project(1000, song, 1000, 0, window, include_hidden=True)
    assert [(n.index, n.visible) for n in hidden] == [(0, True), (1, True), (2, False)]

    later = project(1000, song, 1060, 1, window)
    assert [(n.index, n.distance_to_hit) for n in later] == [(1, -10), (2, 60)]

    assert note_y(0, LaneGeometry()) == 500.0
    assert note_y(50, LaneGeometry()) == 450.0

    placed = project(1000, song, 1000, 0, window, geometry=LaneGeometry(hit_line_y=400.0, pixels_per_block=2.0))
    assert [n.y for n in placed] == [400.0, 300.0]
    assert all(n.y is None for n in notes)


if __name__ == "__main__":
    _run_unit_tests()
    print("note_timeline.py: ok")
