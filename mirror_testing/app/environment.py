# mirror_testing/app/environment.py
from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

_ROOT_ENV = "MIRROR_TESTING_ROOT"


@dataclass
class Paths:
    """Resolved filesystem locations used by the mirror tester."""

    root: Path
    data_root: Path
    recordings_dir: Path
    logs_dir: Path

    @property
    def settings_file(self) -> Path:
        return self.data_root / "settings.json"


def build_default_paths(env: Optional[Mapping[str, str]] = None) -> Paths:
    """Create the default Paths collection and ensure directories exist."""
    source_env = os.environ if env is None else env
    package_root = Path(getattr(sys, "_MEIPASS", Path(__file__).resolve().parents[1]))
    override = source_env.get(_ROOT_ENV)
    data_root = Path(override).expanduser() if override else package_root / "data"
    paths = Paths(
        root=package_root,
        data_root=data_root,
        recordings_dir=data_root / "recordings",
        logs_dir=data_root / "logs",
    )
    _ensure_dirs(paths.data_root, paths.recordings_dir, paths.logs_dir)
    return paths


def _ensure_dirs(*directories: Path) -> None:
    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)
