"""Automation engines (recorder/player) and helpers."""

from .action import Action, Recording
from .player import ReplayEngine, ReplayOutcome, ReplayStatus, ReplayStyle
from .recorder import InputEvent, Recorder
