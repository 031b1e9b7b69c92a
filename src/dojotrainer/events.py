"""Gauntlet session events and their signals.

The engine never plays audio or draws anything. Each transition yields typed
events which are sent through these signals with the emitting ``Gauntlet`` as
sender; presentation code subscribes to the ones it cares about.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from blinker import Namespace, Signal

if TYPE_CHECKING:
    from .gauntlet import SessionResult

_signals = Namespace()

# Arguments: sender, event=SessionStarted
session_started = _signals.signal("gauntlet-session-started")

# Arguments: sender, event=Correct
answer_correct = _signals.signal("gauntlet-answer-correct")

# Arguments: sender, event=Incorrect
answer_incorrect = _signals.signal("gauntlet-answer-incorrect")

# Arguments: sender, event=LifeGained
life_gained = _signals.signal("gauntlet-life-gained")

# Arguments: sender, event=SessionEnded
session_ended = _signals.signal("gauntlet-session-ended")

# Arguments: sender, event=SessionCancelled
session_cancelled = _signals.signal("gauntlet-session-cancelled")


@dataclass(frozen=True)
class SessionStarted:
    total_questions: int
    lives: int
    regen_threshold: int


@dataclass(frozen=True)
class Correct:
    item_id: str
    current_streak: int
    correct_answers: int


@dataclass(frozen=True)
class Incorrect:
    item_id: str
    lives_remaining: int
    requeued: bool


@dataclass(frozen=True)
class LifeGained:
    lives: int
    lives_regenerated: int


@dataclass(frozen=True)
class SessionEnded:
    result: SessionResult


@dataclass(frozen=True)
class SessionCancelled:
    correct_answers: int
    wrong_answers: int


GauntletEvent = SessionStarted | Correct | Incorrect | LifeGained | SessionEnded | SessionCancelled

SIGNALS: dict[type, Signal] = {
    SessionStarted: session_started,
    Correct: answer_correct,
    Incorrect: answer_incorrect,
    LifeGained: life_gained,
    SessionEnded: session_ended,
    SessionCancelled: session_cancelled,
}


def signal_for(event_type: type) -> Signal:
    """Return the signal carrying events of ``event_type``."""
    try:
        return SIGNALS[event_type]
    except KeyError:
        raise ValueError(f"Unknown gauntlet event type: {event_type!r}") from None


def emit(sender: object, event: GauntletEvent) -> None:
    signal_for(type(event)).send(sender, event=event)
