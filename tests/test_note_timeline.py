from __future__ import annotations

import gameplay_models
import note_timeline
from note_timeline import DisplayWindow, LaneGeometry


def _distances(projections):
    return [(item.index, item.distance_to_hit) for item in projections]


def test_notes_at_start_block(song):
    window = DisplayWindow(margin_blocks=100)

    projected = note_timeline.project(1000, song.note_offsets, 1000, 0, window)

    assert projected[0] == gameplay_models.NoteProjection(index=0, distance_to_hit=0, visible=True)
    assert projected[1].index == 1
    assert projected[1].distance_to_hit == 50
    assert projected[1].visible


def test_not_started_projects_nothing(song):
    window = DisplayWindow(margin_blocks=10_000)
    assert note_timeline.project(gameplay_models.NOT_STARTED, song.note_offsets, 1000, 0, window) == []
    assert note_timeline.project(gameplay_models.NOT_STARTED, song.note_offsets, 1000, 0, window, include_hidden=True) == []


def test_projection_is_deterministic(song):
    window = DisplayWindow(margin_blocks=80)
    first = note_timeline.project(1000, song.note_offsets, 1030, 1, window, include_hidden=True)
    second = note_timeline.project(1000, song.note_offsets, 1030, 1, window, include_hidden=True)
    assert first == second


def test_distance_never_increases_while_counter_advances():
    offsets = (5, 40, 41, 300)
    window = DisplayWindow(margin_blocks=1_000)
    previous = {}
    for current_block in (900, 900, 901, 950, 1005, 1005, 1040, 1400):
        for item in note_timeline.project(1000, offsets, current_block, 0, window):
            if item.index in previous:
                assert item.distance_to_hit <= previous[item.index]
            previous[item.index] = item.distance_to_hit


def test_notes_outside_window_are_excluded(song):
    window = DisplayWindow(margin_blocks=30)

    projected = note_timeline.project(1000, song.note_offsets, 1000, 0, window)

    assert _distances(projected) == [(0, 0)]


def test_missed_notes_stay_until_consumed_then_leave_window(song):
    window = DisplayWindow(margin_blocks=30)

    assert _distances(note_timeline.project(1000, song.note_offsets, 1020, 0, window)) == [(0, -20), (1, 30)]
    # Past the window behind the hit line but still unconsumed: excluded, later notes remain.
    assert _distances(note_timeline.project(1000, song.note_offsets, 1040, 0, window)) == [(1, 10)]


def test_consumed_notes_are_skipped(song):
    window = DisplayWindow(margin_blocks=500)

    assert [item.index for item in note_timeline.project(1000, song.note_offsets, 1000, 2, window)] == [2]
    assert note_timeline.project(1000, song.note_offsets, 1000, 3, window) == []


def test_include_hidden_reports_visibility(song):
    window = DisplayWindow(margin_blocks=60)

    projected = note_timeline.project(1000, song.note_offsets, 1000, 0, window, include_hidden=True)

    assert [(item.index, item.visible) for item in projected] == [(0, True), (1, True), (2, False)]


def test_note_y_places_approaching_notes_above_hit_line():
    geometry = LaneGeometry(hit_line_y=500.0, pixels_per_block=2.0)
    assert note_timeline.note_y(0, geometry) == 500.0
    assert note_timeline.note_y(50, geometry) == 400.0
    assert note_timeline.note_y(-10, geometry) == 520.0


def test_projection_places_notes_when_geometry_is_given(song):
    geometry = LaneGeometry(hit_line_y=500.0, pixels_per_block=2.0)

    placed = note_timeline.project(1000, song.note_offsets, 1010, 0, DisplayWindow(margin_blocks=100), geometry=geometry)
    unplaced = note_timeline.project(1000, song.note_offsets, 1010, 0, DisplayWindow(margin_blocks=100))

    assert [item.y for item in placed] == [520.0, 420.0]
    assert [item.y for item in unplaced] == [None, None]
