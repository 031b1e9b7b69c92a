"""Exceptions raised by the trainer."""

from __future__ import annotations


class DojoError(Exception):
    """Base exception for the trainer."""


class EmptyItemSetError(DojoError, ValueError):
    """Raised when a drill or session is requested over zero items."""


class ModeConfigurationError(DojoError, ValueError):
    """Raised when a game mode lacks the collaborators it needs."""

    def __init__(self, game_mode: str, missing: list[str]) -> None:
        self.game_mode = game_mode
        self.missing = missing
        super().__init__(f"{game_mode} mode requires: {', '.join(missing)}")


class InvalidTransitionError(DojoError, RuntimeError):
    """Raised when an action is not valid in the current session phase."""

    def __init__(self, action: str, phase: str) -> None:
        self.action = action
        self.phase = phase
        super().__init__(f"Cannot {action} while in {phase} phase.")
