"""
User configuration persistence.

Stores engine settings (text speed, offline mode, remote provider, strict
data checks) in a JSON file next to the saves.
"""

import json
import logging
import os
from pathlib import Path
from typing import TypedDict

from .state.world import WorldState

logger = logging.getLogger(__name__)


DEFAULT_TEXT_SPEED = 18
MIN_TEXT_SPEED = 6
MAX_TEXT_SPEED = 80

OFFLINE_FLAG = "offline"


class Config(TypedDict, total=False):
    """User configuration."""
    text_speed: int  # Characters per tick in the dialogue box
    soften_language: bool  # Swap harsher phrasing variants for gentler ones
    offline_mode: bool  # Never call the remote provider
    provider_url: str | None  # OpenAI-compatible chat completions endpoint
    provider_model: str | None
    error_exit_delay: float  # Seconds a fatal story error stays on screen
    strict_lines: bool  # Reject duplicate line ids at load time
    strict_services: bool  # Reject invalid story service bindings at load time


DEFAULT_CONFIG: Config = {
    "text_speed": DEFAULT_TEXT_SPEED,
    "soften_language": False,
    "offline_mode": False,
    "provider_url": None,
    "provider_model": None,
    "error_exit_delay": 1.2,
    "strict_lines": False,
    "strict_services": False,
}


def clamp_text_speed(speed: int | float) -> int:
    return int(round(min(max(speed, MIN_TEXT_SPEED), MAX_TEXT_SPEED)))


def get_config_path(saves_dir: Path | str = "saves") -> Path:
    """Get path to config file."""
    return Path(saves_dir) / ".yishi_config.json"


def load_config(saves_dir: Path | str = "saves") -> Config:
    """Load config from file, or return defaults if not found."""
    path = get_config_path(saves_dir)

    if not path.exists():
        config = DEFAULT_CONFIG.copy()
    else:
        try:
            with open(path, "r", encoding="utf-8") as f:
                saved = json.load(f)
            # Merge with defaults to handle missing keys
            config = DEFAULT_CONFIG.copy()
            config.update(saved)
        except (json.JSONDecodeError, IOError) as e:
            logger.error("Failed to read settings: %s", e)
            config = DEFAULT_CONFIG.copy()

    config["text_speed"] = clamp_text_speed(config.get("text_speed", DEFAULT_TEXT_SPEED))
    config["soften_language"] = bool(config.get("soften_language"))
    config["offline_mode"] = bool(config.get("offline_mode"))

    # Environment overrides for the remote provider
    config["provider_url"] = os.environ.get("YISHI_PROVIDER_URL", config.get("provider_url"))
    config["provider_model"] = os.environ.get("YISHI_PROVIDER_MODEL", config.get("provider_model"))
    return config


def save_config(config: Config, saves_dir: Path | str = "saves") -> bool:
    """Save config to file. Returns True on success."""
    path = get_config_path(saves_dir)
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except IOError as e:
        logger.error("Failed to save settings: %s", e)
        return False


def set_text_speed(speed: int, saves_dir: Path | str = "saves") -> int:
    """Save text speed preference. Returns the clamped value."""
    config = load_config(saves_dir)
    config["text_speed"] = clamp_text_speed(speed)
    save_config(config, saves_dir)
    return config["text_speed"]


def set_offline_mode(enabled: bool, saves_dir: Path | str = "saves") -> None:
    config = load_config(saves_dir)
    config["offline_mode"] = enabled
    save_config(config, saves_dir)


def set_soften_language(enabled: bool, saves_dir: Path | str = "saves") -> None:
    config = load_config(saves_dir)
    config["soften_language"] = enabled
    save_config(config, saves_dir)


def apply_world_flags(config: Config, world: WorldState) -> None:
    """Mirror settings the core reads from flags."""
    world.set_flag(OFFLINE_FLAG, bool(config.get("offline_mode", False)))
