"""Runtime configuration loading helpers for the mirror testing toolkit."""

from __future__ import annotations

import configparser
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .settings import REPLAY_STYLES, AppSettings

logger = logging.getLogger(__name__)

_ENV_PREFIX = "MIRROR_TESTING_"
_CONFIG_NAME = "mirror_testing.ini"


@dataclass(slots=True)
class RuntimeConfig:
    """Declarative overrides sourced from environment variables or config files."""

    config_source: Optional[Path] = None
    window_owner: Optional[str] = None
    move_threshold: Optional[float] = None
    click_threshold: Optional[float] = None
    wait_threshold: Optional[float] = None
    retry_attempts: Optional[int] = None
    retry_backoff: Optional[float] = None
    window_poll_interval: Optional[float] = None
    replay_style: Optional[str] = None

    def apply_to_settings(self, settings: AppSettings) -> None:
        """Project runtime overrides onto persisted settings without destroying saved values."""

        if self.window_owner is not None:
            settings.window_owner = self.window_owner
        if self.move_threshold is not None:
            settings.move_threshold = self.move_threshold
        if self.click_threshold is not None:
            settings.click_threshold = self.click_threshold
        if self.wait_threshold is not None:
            settings.wait_threshold = self.wait_threshold
        if self.retry_attempts is not None:
            settings.retry_attempts = self.retry_attempts
        if self.retry_backoff is not None:
            settings.retry_backoff = self.retry_backoff
        if self.window_poll_interval is not None:
            settings.window_poll_interval = self.window_poll_interval
        if self.replay_style is not None:
            settings.replay_style = self.replay_style


def load_runtime_config(
    env: Mapping[str, str] | None = None,
    config_path: Optional[Path] = None,
) -> RuntimeConfig:
    """Load runtime configuration overrides from environment variables and optional INI files."""

    source_env = os.environ if env is None else env
    config_file = _determine_config_path(source_env, config_path)
    config = RuntimeConfig(config_source=config_file)

    if config_file is not None and config_file.is_file():
        parser: Optional[configparser.ConfigParser] = configparser.ConfigParser()
        try:
            parser.read(config_file, encoding="utf-8")
        except configparser.Error as exc:
            logger.warning("Ignoring malformed config file %s: %s", config_file, exc)
            parser = None
        if parser and parser.has_section("runtime"):
            section = parser["runtime"]
            config.window_owner = section.get("window_owner", config.window_owner)
            config.move_threshold = _get_float(section, "move_threshold", config.move_threshold)
            config.click_threshold = _get_float(section, "click_threshold", config.click_threshold)
            config.wait_threshold = _get_float(section, "wait_threshold", config.wait_threshold)
            config.retry_attempts = _get_int(section, "retry_attempts", config.retry_attempts)
            config.retry_backoff = _get_float(section, "retry_backoff", config.retry_backoff)
            config.window_poll_interval = _get_float(section, "window_poll_interval", config.window_poll_interval)
            config.replay_style = _get_style(section, "replay_style", config.replay_style)

    _apply_env_overrides(config, source_env)
    return config


def _determine_config_path(env: Mapping[str, str], explicit: Optional[Path]) -> Optional[Path]:
    if explicit is not None:
        return explicit
    env_override = env.get(f"{_ENV_PREFIX}CONFIG_FILE")
    if env_override:
        return Path(env_override).expanduser()
    candidates = (
        Path(env.get(f"{_ENV_PREFIX}ROOT", "")) / _CONFIG_NAME if env.get(f"{_ENV_PREFIX}ROOT") else None,
        Path.cwd() / _CONFIG_NAME,
        Path.cwd() / "mirror-testing.ini",
    )
    for candidate in candidates:
        if candidate and candidate.is_file():
            return candidate
    return None


def _apply_env_overrides(config: RuntimeConfig, env: Mapping[str, str]) -> None:
    config.window_owner = env.get(f"{_ENV_PREFIX}WINDOW_OWNER", config.window_owner)
    config.move_threshold = _get_float(env, f"{_ENV_PREFIX}MOVE_THRESHOLD", config.move_threshold)
    config.click_threshold = _get_float(env, f"{_ENV_PREFIX}CLICK_THRESHOLD", config.click_threshold)
    config.wait_threshold = _get_float(env, f"{_ENV_PREFIX}WAIT_THRESHOLD", config.wait_threshold)
    config.retry_attempts = _get_int(env, f"{_ENV_PREFIX}RETRY_ATTEMPTS", config.retry_attempts)
    config.retry_backoff = _get_float(env, f"{_ENV_PREFIX}RETRY_BACKOFF", config.retry_backoff)
    config.window_poll_interval = _get_float(env, f"{_ENV_PREFIX}WINDOW_POLL_INTERVAL", config.window_poll_interval)
    config.replay_style = _get_style(env, f"{_ENV_PREFIX}REPLAY_STYLE", config.replay_style)


def _get_float(source: Mapping[str, str], key: str, default: Optional[float]) -> Optional[float]:
    raw = source.get(key)
    if raw is None:
        return default
    try:
        return float(str(raw).strip())
    except (TypeError, ValueError):
        return default


def _get_int(source: Mapping[str, str], key: str, default: Optional[int]) -> Optional[int]:
    raw = source.get(key)
    if raw is None:
        return default
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return default


def _get_style(source: Mapping[str, str], key: str, default: Optional[str]) -> Optional[str]:
    raw = source.get(key)
    if raw is None:
        return default
    value = str(raw).strip().lower()
    return value if value in REPLAY_STYLES else default
