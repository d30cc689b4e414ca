"""
megabeat.py

Entry point that runs a full play-through against the in-process demo chain.

Integration
- Creates QCoreApplication (headless, no window)
- Loads config
- Instantiates DemoChain (ticked by a QTimer), a console render sink and GameEngine
- An autoplay bot presses the hit key when the head note reaches the hit line,
  optionally early or late by a seeded random number of blocks
- Exits once the session reaches the finished state
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PyQt6.QtCore import QCoreApplication, QTimer

import config as config_module
import demo_chain
import game_engine
import gameplay_models
from gameplay_models import GameState


@dataclass
class _RuntimeState:
    last_feedback: Optional[gameplay_models.FeedbackToken] = None
    attempted_note_index: int = -1
    planned_offset_blocks: int = 0
    exit_code: int = 1


class ConsoleRenderSink:
    """Render boundary that prints transitions and hit feedback instead of drawing."""

    def __init__(self, runtime_state: _RuntimeState, *, points_per_note: int = 100) -> None:
        self._runtime_state = runtime_state
        self._points_per_note = int(points_per_note)

    def on_frame(self, frame: gameplay_models.RenderFrame) -> None:
        feedback = frame.feedback
        if feedback is not None and feedback != self._runtime_state.last_feedback:
            print(f"[block {frame.block_number}] {feedback.text}")
        self._runtime_state.last_feedback = feedback

    def on_state_changed(self, state: GameState, snapshot: gameplay_models.SessionSnapshot) -> None:
        if state == GameState.COUNTDOWN:
            print(f"Session armed at block {snapshot.start_block}. Get ready!")
        elif state == GameState.PLAYING:
            print(f"Go! {snapshot.song_length} notes.")
        elif state == GameState.FINISHED:
            max_score = int(snapshot.song_length) * self._points_per_note
            print(f"Game complete. Final score {snapshot.score} out of {max_score}.")
        else:
            print("Back to menu.")

    def release_note(self, note_index: int) -> None:
        """Nothing is drawn, so nothing is released."""


def _parse_args() -> argparse.Namespace:
    argument_parser = argparse.ArgumentParser(description="MegaBeat demo player")
    argument_parser.add_argument("--config", type=Path, default=None, help="Path to a megabeat_config.json file.")
    argument_parser.add_argument("--identity", default="0x000000000000000000000000000000000000beef", help="Player identity.")
    argument_parser.add_argument("--jitter-blocks", type=int, default=0, help="Autoplay timing error range in blocks.")
    argument_parser.add_argument("--seed", type=int, default=7, help="Autoplay random seed.")
    argument_parser.add_argument("--max-seconds", type=float, default=120.0, help="Give up after this many seconds.")
    argument_parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return argument_parser.parse_args()


def main() -> int:
    parsed_args = _parse_args()

    logging.basicConfig(
        level=logging.DEBUG if parsed_args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        app_config, _config_path = config_module.load_config(parsed_args.config)
    except (OSError, ValueError) as exception:
        print(f"Config error: {exception}", file=sys.stderr)
        return 2

    identity = gameplay_models.normalize_identity(parsed_args.identity)
    if not identity:
        print("Invalid identity", file=sys.stderr)
        return 2

    qt_application = QCoreApplication(sys.argv)

    runtime_state = _RuntimeState()
    chain = demo_chain.DemoChain.from_config(app_config)
    render_sink = ConsoleRenderSink(
        runtime_state,
        points_per_note=max(int(points) for points in app_config.scoring.points.values()),
    )
    engine = game_engine.GameEngine(
        app_config=app_config,
        counter_source=chain,
        event_source=chain,
        command_sink=chain,
        render_sink=render_sink,
    )

    block_timer = QTimer()
    block_timer.setInterval(int(app_config.chain.block_interval_ms))
    block_timer.timeout.connect(lambda: chain.advance(1))

    jitter_blocks = int(max(0, parsed_args.jitter_blocks))
    rng = random.Random(int(parsed_args.seed))

    def autoplay(frame: gameplay_models.RenderFrame) -> None:
        head_note = frame.head_note
        if head_note is None or head_note.index == runtime_state.attempted_note_index:
            return
        if head_note.distance_to_hit > -runtime_state.planned_offset_blocks:
            return
        runtime_state.attempted_note_index = head_note.index
        runtime_state.planned_offset_blocks = rng.randint(-jitter_blocks, jitter_blocks) if jitter_blocks else 0
        engine.attempt_hit()

    def on_state_changed(state: GameState, _snapshot: gameplay_models.SessionSnapshot) -> None:
        if state == GameState.FINISHED:
            runtime_state.exit_code = 0
            QTimer.singleShot(250, qt_application.quit)

    engine.frameReady.connect(autoplay)
    engine.stateChanged.connect(on_state_changed)

    engine.set_identity(identity)
    engine.start()
    block_timer.start()
    QTimer.singleShot(0, engine.begin_session)
    QTimer.singleShot(int(max(1.0, parsed_args.max_seconds) * 1000), qt_application.quit)

    qt_application.exec()

    block_timer.stop()
    engine.shutdown()
    return int(runtime_state.exit_code)


if __name__ == "__main__":
    raise SystemExit(main())
