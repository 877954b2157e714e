"""Application-level utilities (environment, settings)."""

from .settings import AppSettings
from .environment import Paths, build_default_paths
