from __future__ import annotations

import pytest

import config
import gameplay_models
from fakes import FakeEventSource, RecordingCommandSink, RecordingRenderSink


@pytest.fixture(scope="session")
def qapp():
    from PyQt6.QtCore import QCoreApplication

    application = QCoreApplication.instance()
    if application is None:
        application = QCoreApplication([])
    yield application


@pytest.fixture
def song() -> gameplay_models.Song:
    return gameplay_models.Song(song_id=0, title="Three Steps", note_offsets=(0, 50, 120))


@pytest.fixture
def app_config() -> config.AppConfig:
    return config.AppConfig.model_validate(
        {
            "song": {"song_id": 0, "title": "Three Steps", "note_offsets": [0, 50, 120]},
            "display": {"margin_blocks": 100, "frame_interval_ms": 16},
            "timing": {"countdown_steps": 3, "countdown_step_ms": 1000, "feedback_lifetime_seconds": 1.0},
            "chain": {
                "lead_in_blocks": 20,
                "perfect_window_blocks": 2,
                "good_window_blocks": 6,
                "confirmation_delay_blocks": 1,
            },
        }
    )


@pytest.fixture
def command_sink() -> RecordingCommandSink:
    return RecordingCommandSink()


@pytest.fixture
def render_sink() -> RecordingRenderSink:
    return RecordingRenderSink()


@pytest.fixture
def event_source() -> FakeEventSource:
    return FakeEventSource()
