from __future__ import annotations

import sys

import config
import gameplay_models
import megabeat
from gameplay_models import GameState


def _snapshot(state: GameState, score: int = 0) -> gameplay_models.SessionSnapshot:
    return gameplay_models.SessionSnapshot(
        state=state,
        identity="0xabc",
        start_block=1000,
        consumed_note_index=0,
        score=score,
        song_length=3,
    )


def test_console_sink_prints_transitions(capsys):
    sink = megabeat.ConsoleRenderSink(megabeat._RuntimeState())

    sink.on_state_changed(GameState.COUNTDOWN, _snapshot(GameState.COUNTDOWN))
    sink.on_state_changed(GameState.FINISHED, _snapshot(GameState.FINISHED, score=250))

    output = capsys.readouterr().out
    assert "block 1000" in output
    assert "Final score 250" in output


def test_console_sink_prints_each_feedback_once(capsys):
    runtime_state = megabeat._RuntimeState()
    sink = megabeat.ConsoleRenderSink(runtime_state)
    token = gameplay_models.FeedbackToken(quality="good", text="GOOD!", expires_at_seconds=5.0)
    frame = gameplay_models.RenderFrame(
        block_number=1010,
        notes=(gameplay_models.NoteProjection(index=1, distance_to_hit=40, visible=True),),
        feedback=token,
        state=GameState.PLAYING,
        consumed_note_index=1,
    )

    sink.on_frame(frame)
    sink.on_frame(frame)
    sink.release_note(1)

    assert capsys.readouterr().out.count("GOOD!") == 1
    assert runtime_state.last_feedback == token


def test_console_sink_reports_maximum_score(capsys):
    sink = megabeat.ConsoleRenderSink(megabeat._RuntimeState(), points_per_note=100)

    sink.on_state_changed(GameState.FINISHED, _snapshot(GameState.FINISHED, score=150))

    assert "Final score 150 out of 300." in capsys.readouterr().out


def test_blank_identity_exits_with_usage_error(monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["megabeat", "--identity", "   "])
    monkeypatch.setattr(megabeat.config_module, "load_config", lambda path: (config.AppConfig(), None))

    assert megabeat.main() == 2
    assert "Invalid identity" in capsys.readouterr().err
