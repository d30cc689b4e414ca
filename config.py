"""
config.py

Typed configuration loading and validation for MegaBeat.

Design goals
- Load at most one UTF-8 JSON config file
- Validate with pydantic (defaults included)
- Support environment variable overrides
- No other I/O beyond reading the config file (no directory creation)

Config file location
- If MEGABEAT_CONFIG_PATH is set, that file is used.
- Otherwise MegaBeat searches these paths in order and uses the first one that exists:
  1) ./megabeat_config.json (current working directory)
  2) <user config dir>/MegaBeat/MegaBeat/megabeat_config.json
  3) <user config dir>/MegaBeat/MegaBeat/config.json
- If none exists the built-in defaults are used.

Example config file (megabeat_config.json)
{
  "song": {
    "song_id": 0,
    "title": "Demo Song",
    "note_offsets": [100, 150, 200, 260, 320]
  },
  "display": {
    "margin_blocks": 550,
    "frame_interval_ms": 16
  },
  "timing": {
    "countdown_steps": 3,
    "countdown_step_ms": 1000,
    "feedback_lifetime_seconds": 1.0
  },
  "scoring": {
    "points": {"perfect": 100, "good": 50, "miss": 0}
  },
  "chain": {
    "block_interval_ms": 10,
    "lead_in_blocks": 400
  }
}
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from platformdirs import user_config_dir
from pydantic import BaseModel, Field, ValidationError, field_validator

import gameplay_models


def _default_note_offsets() -> List[int]:
    # Sixteen notes, a steady 60 block pulse with two quicker pairs.
    offsets: List[int] = []
    current_offset = 100
    for note_index in range(16):
        offsets.append(current_offset)
        current_offset += 30 if note_index in (5, 11) else 60
    return offsets


class SongConfig(BaseModel):
    song_id: int = Field(default=0, ge=0, description="Song selector sent with the session start request.")
    title: str = Field(default="Demo Song")
    note_offsets: List[int] = Field(
        default_factory=_default_note_offsets,
        description="Block offsets from the session start block, in hit order.",
    )

    @field_validator("note_offsets")
    @classmethod
    def validate_note_offsets(cls, value: List[int]) -> List[int]:
        if not value:
            raise ValueError("note_offsets must contain at least one note")
        previous_offset = 0
        for offset in value:
            if int(offset) < 0:
                raise ValueError("note_offsets must be non-negative")
            if int(offset) < previous_offset:
                raise ValueError("note_offsets must be in non-decreasing order")
            previous_offset = int(offset)
        return [int(offset) for offset in value]

    def to_song(self) -> gameplay_models.Song:
        return gameplay_models.Song(
            song_id=int(self.song_id),
            title=str(self.title),
            note_offsets=tuple(int(offset) for offset in self.note_offsets),
        )


class DisplayConfig(BaseModel):
    margin_blocks: int = Field(default=550, ge=0, description="Symmetric display window around the hit line, in blocks.")
    hit_line_y: float = Field(default=500.0, description="Hit line position in render units.")
    pixels_per_block: float = Field(default=1.0, gt=0.0, description="Render units a note travels per block.")
    frame_interval_ms: int = Field(default=16, ge=1, description="Animation frame interval.")


class TimingConfig(BaseModel):
    countdown_steps: int = Field(default=3, ge=1, description="Countdown length in steps.")
    countdown_step_ms: int = Field(default=1000, ge=1, description="Wall-clock duration of one countdown step.")
    feedback_lifetime_seconds: float = Field(default=1.0, gt=0.0, description="How long a hit label stays visible.")


class ScoringConfig(BaseModel):
    points: Dict[str, int] = Field(default_factory=lambda: {"perfect": 100, "good": 50, "miss": 0})
    labels: Dict[str, str] = Field(default_factory=lambda: {"perfect": "PERFECT!", "good": "GOOD!", "miss": "MISS!"})

    @field_validator("points")
    @classmethod
    def validate_points(cls, value: Dict[str, int]) -> Dict[str, int]:
        normalized: Dict[str, int] = {}
        for quality, points in value.items():
            if int(points) < 0:
                raise ValueError("points must be non-negative")
            normalized[str(quality).strip().lower()] = int(points)
        if "miss" not in normalized:
            normalized["miss"] = 0
        return normalized

    @field_validator("labels")
    @classmethod
    def normalize_labels(cls, value: Dict[str, str]) -> Dict[str, str]:
        return {str(quality).strip().lower(): str(text) for quality, text in value.items()}


class ChainConfig(BaseModel):
    block_poll_interval_ms: int = Field(default=10, ge=1, description="How often the block counter is polled.")
    block_interval_ms: int = Field(default=10, ge=1, description="Demo chain block production interval.")
    lead_in_blocks: int = Field(default=400, ge=0, description="Demo chain: blocks between start request and start block.")
    perfect_window_blocks: int = Field(default=5, ge=0)
    good_window_blocks: int = Field(default=15, ge=0)
    confirmation_delay_blocks: int = Field(default=2, ge=0, description="Demo chain: blocks before an event is delivered.")
    duplicate_delivery: bool = Field(default=False, description="Demo chain: deliver every event batch twice.")


class AppConfig(BaseModel):
    song: SongConfig = Field(default_factory=SongConfig)
    display: DisplayConfig = Field(default_factory=DisplayConfig)
    timing: TimingConfig = Field(default_factory=TimingConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    chain: ChainConfig = Field(default_factory=ChainConfig)


def _default_config_candidates() -> List[Path]:
    config_directory = Path(user_config_dir("MegaBeat", "MegaBeat"))
    return [
        Path.cwd() / "megabeat_config.json",
        config_directory / "megabeat_config.json",
        config_directory / "config.json",
    ]


def _resolve_config_path() -> Optional[Path]:
    explicit_path_text = os.environ.get("MEGABEAT_CONFIG_PATH", "").strip()
    if explicit_path_text:
        return Path(explicit_path_text)

    for candidate_path in _default_config_candidates():
        if candidate_path.exists():
            return candidate_path

    return None


def _read_json_file_utf8(config_path: Path) -> Dict[str, Any]:
    try:
        raw_text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise
    except OSError as exception:
        raise OSError(f"Failed to read config file: {config_path}. Error: {exception}") from exception

    try:
        parsed = json.loads(raw_text)
    except json.JSONDecodeError as exception:
        raise ValueError(f"Config file is not valid JSON: {config_path}. Error: {exception}") from exception

    if not isinstance(parsed, dict):
        raise ValueError(f"Config file root must be a JSON object: {config_path}")

    return parsed


def _apply_environment_overrides(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Environment overrides are optional. The config file is the primary source of truth.

    Override variables:
    - MEGABEAT_DISPLAY_MARGIN_BLOCKS
    - MEGABEAT_DISPLAY_FRAME_INTERVAL_MS
    - MEGABEAT_TIMING_COUNTDOWN_STEPS
    - MEGABEAT_TIMING_COUNTDOWN_STEP_MS
    - MEGABEAT_CHAIN_BLOCK_POLL_INTERVAL_MS
    - MEGABEAT_CHAIN_BLOCK_INTERVAL_MS
    - MEGABEAT_CHAIN_LEAD_IN_BLOCKS
    - MEGABEAT_CHAIN_DUPLICATE_DELIVERY
    """
    def ensure_nested(config_root: Dict[str, Any], section_name: str) -> Dict[str, Any]:
        section = config_root.get(section_name)
        if isinstance(section, dict):
            return section
        section = {}
        config_root[section_name] = section
        return section

    updated_config = dict(config_dict)

    display_section = ensure_nested(updated_config, "display")
    timing_section = ensure_nested(updated_config, "timing")
    chain_section = ensure_nested(updated_config, "chain")

    def override_int(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "").strip()
        if not value_text:
            return
        try:
            target_dict[key_name] = int(value_text)
        except ValueError:
            return

    def override_bool(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "").strip().lower()
        if not value_text:
            return
        truthy = {"1", "true", "yes", "on"}
        falsy = {"0", "false", "no", "off"}
        if value_text in truthy:
            target_dict[key_name] = True
        elif value_text in falsy:
            target_dict[key_name] = False

    override_int("MEGABEAT_DISPLAY_MARGIN_BLOCKS", display_section, "margin_blocks")
    override_int("MEGABEAT_DISPLAY_FRAME_INTERVAL_MS", display_section, "frame_interval_ms")

    override_int("MEGABEAT_TIMING_COUNTDOWN_STEPS", timing_section, "countdown_steps")
    override_int("MEGABEAT_TIMING_COUNTDOWN_STEP_MS", timing_section, "countdown_step_ms")

    override_int("MEGABEAT_CHAIN_BLOCK_POLL_INTERVAL_MS", chain_section, "block_poll_interval_ms")
    override_int("MEGABEAT_CHAIN_BLOCK_INTERVAL_MS", chain_section, "block_interval_ms")
    override_int("MEGABEAT_CHAIN_LEAD_IN_BLOCKS", chain_section, "lead_in_blocks")
    override_bool("MEGABEAT_CHAIN_DUPLICATE_DELIVERY", chain_section, "duplicate_delivery")

    return updated_config


def load_config(config_path: Optional[Path] = None) -> Tuple[AppConfig, Optional[Path]]:
    resolved_path = config_path if config_path is not None else _resolve_config_path()
    json_dict: Dict[str, Any] = {}
    if resolved_path is not None:
        json_dict = _read_json_file_utf8(resolved_path)
    json_dict = _apply_environment_overrides(json_dict)

    try:
        config = AppConfig.model_validate(json_dict)
    except ValidationError as exception:
        source_text = str(resolved_path) if resolved_path is not None else "(defaults)"
        raise ValueError(f"Config validation failed for {source_text}:\n{exception}") from exception

    return config, resolved_path


def main() -> int:
    try:
        config, resolved_path = load_config()
    except Exception as exception:
        error_payload = {"ok": False, "error": str(exception)}
        print(json.dumps(error_payload, ensure_ascii=False, indent=2))
        return 2

    output_payload = {
        "ok": True,
        "config_path": str(resolved_path) if resolved_path is not None else None,
        "config": config.model_dump(),
    }
    print(json.dumps(output_payload, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
