"""Tunable parameters for adaptive selection and gauntlet sessions.

Everything here is a constant or a frozen dataclass so callers can import
defaults directly or build an adjusted copy with ``dataclasses.replace``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

DB_PATH_ENV = "DOJOTRAINER_DB"
DEFAULT_DB_PATH = Path(".dojotrainer") / "progress.db"


class GameMode(StrEnum):
    """How the learner answers a gauntlet question."""

    PICK = "Pick"
    TYPE = "Type"


class Difficulty(StrEnum):
    """Gauntlet difficulty; selects starting lives and regeneration."""

    EASY = "easy"
    NORMAL = "normal"
    HARD = "hard"


@dataclass(frozen=True)
class DifficultySettings:
    lives: int
    regenerates: bool


DIFFICULTY_CONFIG: dict[Difficulty, DifficultySettings] = {
    Difficulty.EASY: DifficultySettings(lives=5, regenerates=True),
    Difficulty.NORMAL: DifficultySettings(lives=3, regenerates=True),
    Difficulty.HARD: DifficultySettings(lives=1, regenerates=False),
}

REPETITION_CHOICES: tuple[int, ...] = (1, 2, 3)


@dataclass(frozen=True)
class SelectorParams:
    """Weighting for adaptive item selection."""

    default_weight: float = 1.0
    correct_factor: float = 0.8
    wrong_factor: float = 1.5
    min_weight_ratio: float = 0.1
    max_weight_ratio: float = 5.0
    exclude_retries: int = 10

    @property
    def min_weight(self) -> float:
        return self.default_weight * self.min_weight_ratio

    @property
    def max_weight(self) -> float:
        return self.default_weight * self.max_weight_ratio


@dataclass(frozen=True)
class GauntletParams:
    """Queue and life-economy knobs for one gauntlet session."""

    regen_ratio: float = 0.1
    regen_min: int = 5
    regen_max: int = 20
    requeue_min_offset: int = 2
    requeue_max_offset: int = 5
    queue_growth_cap: int = 3
    option_count: int = 4


def default_db_path() -> Path:
    """Return the progress database path, honouring ``DOJOTRAINER_DB``."""
    override = os.environ.get(DB_PATH_ENV, "").strip()
    if override:
        return Path(override)
    return DEFAULT_DB_PATH
