"""Gauntlet: lives-limited quiz sessions over a shuffled, self-repairing question queue.

The session is a synchronous reducer, ``reduce(state, action) -> Transition``,
over immutable state. ``Gauntlet`` wraps it with a clock, a random source,
signal emission and a one-shot persistence hook, and guarantees each action
runs to completion before the next one is applied.

Phases::

    pregame --start--> playing --(lives == 0 | target reached)--> results
       ^                  |                                          |
       +-----cancel-------+           +------restart----> playing <--+
       +------------------------------+---change settings----------+
"""

from __future__ import annotations

import logging
import math
import random
import time
from collections import deque
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from types import MappingProxyType
from typing import cast

from blinker import Signal

from .config import DIFFICULTY_CONFIG, REPETITION_CHOICES, Difficulty, GameMode, GauntletParams
from .errors import EmptyItemSetError, InvalidTransitionError, ModeConfigurationError
from .events import (
    Correct,
    GauntletEvent,
    Incorrect,
    LifeGained,
    SessionCancelled,
    SessionEnded,
    SessionStarted,
    emit,
    signal_for,
)
from .models import item_id

logger = logging.getLogger(__name__)

Identity = Callable[[object], str]
OptionGenerator = Callable[[object, Sequence[object], int, bool], Sequence[str]]
OptionFn = Callable[[object, bool], str]
CheckFn = Callable[[str, object, bool], bool]
ResultSink = Callable[["SessionResult"], object]


class Phase(StrEnum):
    PREGAME = "pregame"
    PLAYING = "playing"
    RESULTS = "results"


class EndReason(StrEnum):
    COMPLETED = "completed"
    OUT_OF_LIVES = "out_of_lives"
    QUEUE_EXHAUSTED = "queue_exhausted"


@dataclass(frozen=True)
class GauntletSettings:
    """Pregame choices."""

    game_mode: GameMode = GameMode.PICK
    difficulty: Difficulty = Difficulty.NORMAL
    repetitions: int = 1


@dataclass(frozen=True)
class GauntletConfig:
    """Item pool plus the mode collaborators supplied by the caller.

    ``render_question``/``render_option`` are carried for presentation code
    only; the engine never calls them.
    """

    items: Sequence[object]
    dojo_type: str = "kana"
    identity: Identity = item_id
    generate_options: OptionGenerator | None = None
    get_correct_option: OptionFn | None = None
    check_answer: CheckFn | None = None
    get_correct_answer: Callable[[object, bool], str] | None = None
    render_question: Callable[[object, bool], object] | None = None
    render_option: Callable[[str, Sequence[object], bool], object] | None = None
    selected_sets: tuple[str, ...] = ()
    params: GauntletParams = field(default_factory=GauntletParams)

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(self.items))
        object.__setattr__(self, "selected_sets", tuple(self.selected_sets))

    @property
    def pick_mode_supported(self) -> bool:
        return self.generate_options is not None and self.get_correct_option is not None

    def missing_collaborators(self, game_mode: GameMode) -> list[str]:
        """Return the collaborator names ``game_mode`` needs but this config lacks."""
        if game_mode == GameMode.PICK:
            required = {"generate_options": self.generate_options, "get_correct_option": self.get_correct_option}
        else:
            required = {"check_answer": self.check_answer}
        return [name for name, value in required.items() if value is None]


@dataclass(frozen=True)
class QuestionEntry:
    """One slot in the question queue."""

    item: object
    queue_index: int
    repetition_number: int


@dataclass(frozen=True)
class ItemTally:
    correct: int = 0
    wrong: int = 0


@dataclass(frozen=True)
class SessionState:
    """Everything that changes while playing; replaced wholesale by each transition."""

    queue: tuple[QuestionEntry, ...]
    current_index: int
    lives: int
    max_lives: int
    correct_since_last_regen: int
    regen_threshold: int
    total_questions: int
    correct_answers: int = 0
    wrong_answers: int = 0
    current_streak: int = 0
    best_streak: int = 0
    lives_regenerated: int = 0
    item_stats: Mapping[str, ItemTally] = field(default_factory=lambda: MappingProxyType({}))
    answer_times_ms: tuple[int, ...] = ()
    started_at_ms: int = 0
    last_answer_at_ms: int | None = None
    options: tuple[str, ...] = ()

    @property
    def current_entry(self) -> QuestionEntry | None:
        if 0 <= self.current_index < len(self.queue):
            return self.queue[self.current_index]
        return None


@dataclass(frozen=True)
class SessionResult:
    """Immutable end-of-session snapshot handed to the persistence collaborator."""

    timestamp: str
    dojo_type: str
    difficulty: str
    game_mode: str
    total_questions: int
    correct_answers: int
    wrong_answers: int
    accuracy: float
    best_streak: int
    current_streak: int
    starting_lives: int
    lives_remaining: int
    lives_lost: int
    lives_regenerated: int
    total_time_ms: int
    average_time_per_question_ms: float
    fastest_answer_ms: int
    slowest_answer_ms: int
    completed: bool
    end_reason: str
    questions_completed: int
    item_stats: Mapping[str, ItemTally]
    total_items: int
    repetitions_per_item: int
    selected_sets: tuple[str, ...]

    @property
    def is_perfect(self) -> bool:
        return self.completed and self.accuracy == 1


@dataclass(frozen=True)
class GauntletState:
    phase: Phase = Phase.PREGAME
    settings: GauntletSettings = field(default_factory=GauntletSettings)
    session: SessionState | None = None
    result: SessionResult | None = None


@dataclass(frozen=True)
class Configure:
    game_mode: GameMode | None = None
    difficulty: Difficulty | None = None
    repetitions: int | None = None


@dataclass(frozen=True)
class Start:
    at_ms: int


@dataclass(frozen=True)
class SubmitAnswer:
    is_correct: bool
    at_ms: int


@dataclass(frozen=True)
class Cancel:
    pass


@dataclass(frozen=True)
class Restart:
    at_ms: int


@dataclass(frozen=True)
class ChangeSettings:
    pass


Action = Configure | Start | SubmitAnswer | Cancel | Restart | ChangeSettings


@dataclass(frozen=True)
class Transition:
    state: GauntletState
    events: tuple[GauntletEvent, ...] = ()


def calculate_regen_threshold(total_questions: int, params: GauntletParams | None = None) -> int:
    """Correct answers needed per regenerated life: 10% of the session, clamped to [5, 20].

    The product is rounded before ``ceil`` so float noise cannot push an exact
    multiple up a step (70 questions give 7, not 8).
    """
    params = params or GauntletParams()
    scaled = math.ceil(round(total_questions * params.regen_ratio, 6))
    return max(params.regen_min, min(params.regen_max, scaled))


def stabilize_no_immediate_repeats(entries: list[QuestionEntry], identity: Identity = item_id) -> list[QuestionEntry]:
    """Reorder ``entries`` in place so no two neighbours share an identity where possible.

    Each adjacent duplicate is repaired by swapping in the nearest later entry
    with a different identity. When only duplicates remain ahead, the extra
    copies are moved back into earlier gaps whose neighbours both differ.
    """
    for index in range(len(entries) - 1):
        current = identity(entries[index].item)
        if identity(entries[index + 1].item) != current:
            continue
        swap_index = _next_different(entries, index + 2, current, identity)
        if swap_index is not None:
            entries[index + 1], entries[swap_index] = entries[swap_index], entries[index + 1]
        else:
            _spread_trailing_run(entries, index, current, identity)
            break
    return entries


def _next_different(entries: Sequence[QuestionEntry], start: int, key: str, identity: Identity) -> int | None:
    for index in range(start, len(entries)):
        if identity(entries[index].item) != key:
            return index
    return None


def _spread_trailing_run(entries: list[QuestionEntry], run_start: int, key: str, identity: Identity) -> None:
    """Move copies of a trailing same-identity run into earlier slots flanked by other identities."""
    while len(entries) - run_start > 1:
        slot = None
        for position in range(run_start):
            left_ok = position == 0 or identity(entries[position - 1].item) != key
            if left_ok and identity(entries[position].item) != key:
                slot = position
                break
        if slot is None:
            return
        entries.insert(slot, entries.pop())
        run_start += 1


def build_question_queue(
    items: Sequence[object],
    repetitions: int,
    rng: random.Random,
    identity: Identity = item_id,
) -> tuple[QuestionEntry, ...]:
    """Cross items with repetitions, Fisher-Yates shuffle, stabilize, then number the slots."""
    entries = [
        QuestionEntry(item=item, queue_index=0, repetition_number=repetition)
        for item in items
        for repetition in range(1, repetitions + 1)
    ]
    for index in range(len(entries) - 1, 0, -1):
        swap = rng.randint(0, index)
        entries[index], entries[swap] = entries[swap], entries[index]
    stabilize_no_immediate_repeats(entries, identity)
    return tuple(replace(entry, queue_index=position) for position, entry in enumerate(entries))


def ensure_next_is_different(
    queue: tuple[QuestionEntry, ...], answered_index: int, identity: Identity = item_id
) -> tuple[QuestionEntry, ...]:
    """Repair the (answered, next) pair if both slots hold the same item."""
    next_index = answered_index + 1
    if next_index >= len(queue):
        return queue
    current = identity(queue[answered_index].item)
    if identity(queue[next_index].item) != current:
        return queue
    swap_index = _next_different(queue, next_index + 1, current, identity)
    if swap_index is None:
        return queue
    working = list(queue)
    working[next_index], working[swap_index] = working[swap_index], working[next_index]
    return tuple(working)


def requeue_failed(
    queue: tuple[QuestionEntry, ...],
    current_index: int,
    total_questions: int,
    rng: random.Random,
    params: GauntletParams | None = None,
) -> tuple[tuple[QuestionEntry, ...], bool]:
    """Insert a copy of the failed entry a few slots ahead; return (queue, requeued).

    Nothing is inserted once the queue holds ``queue_growth_cap`` times the
    target, so repeated misses cannot grow it without bound.
    """
    params = params or GauntletParams()
    if len(queue) >= total_questions * params.queue_growth_cap:
        return queue, False

    remaining = len(queue) - (current_index + 1)
    min_offset = params.requeue_min_offset if remaining >= params.requeue_min_offset else 1
    max_offset = max(min_offset, min(remaining, params.requeue_max_offset))
    offset = rng.randint(min_offset, max_offset) if remaining > 0 else 1
    position = current_index + offset
    clone = replace(queue[current_index], queue_index=len(queue))
    return queue[:position] + (clone,) + queue[position:], True


def summarize_session(
    session: SessionState,
    settings: GauntletSettings,
    config: GauntletConfig,
    ended_at_ms: int,
    end_reason: EndReason,
    questions_completed: int,
) -> SessionResult:
    answered = session.correct_answers + session.wrong_answers
    valid_times = [duration for duration in session.answer_times_ms if duration > 0]
    return SessionResult(
        timestamp=datetime.fromtimestamp(ended_at_ms / 1000, UTC).isoformat(),
        dojo_type=config.dojo_type,
        difficulty=settings.difficulty.value,
        game_mode=settings.game_mode.value,
        total_questions=session.total_questions,
        correct_answers=session.correct_answers,
        wrong_answers=session.wrong_answers,
        accuracy=session.correct_answers / answered if answered > 0 else 0.0,
        best_streak=session.best_streak,
        current_streak=session.current_streak,
        starting_lives=session.max_lives,
        lives_remaining=session.lives,
        lives_lost=session.max_lives - session.lives + session.lives_regenerated,
        lives_regenerated=session.lives_regenerated,
        total_time_ms=max(0, ended_at_ms - session.started_at_ms),
        average_time_per_question_ms=sum(valid_times) / len(valid_times) if valid_times else 0.0,
        fastest_answer_ms=min(valid_times) if valid_times else 0,
        slowest_answer_ms=max(valid_times) if valid_times else 0,
        completed=end_reason == EndReason.COMPLETED,
        end_reason=end_reason.value,
        questions_completed=questions_completed,
        item_stats=MappingProxyType(dict(session.item_stats)),
        total_items=len(config.items),
        repetitions_per_item=settings.repetitions,
        selected_sets=config.selected_sets,
    )


def new_session(
    config: GauntletConfig, settings: GauntletSettings, rng: random.Random, now_ms: int
) -> SessionState:
    queue = build_question_queue(config.items, settings.repetitions, rng, config.identity)
    difficulty = DIFFICULTY_CONFIG[settings.difficulty]
    total = len(queue)
    return SessionState(
        queue=queue,
        current_index=0,
        lives=difficulty.lives,
        max_lives=difficulty.lives,
        correct_since_last_regen=0,
        regen_threshold=calculate_regen_threshold(total, config.params),
        total_questions=total,
        started_at_ms=now_ms,
        options=_prepare_options(config, settings, queue[0] if queue else None, rng),
    )


def _prepare_options(
    config: GauntletConfig, settings: GauntletSettings, entry: QuestionEntry | None, rng: random.Random
) -> tuple[str, ...]:
    if entry is None or settings.game_mode != GameMode.PICK or config.generate_options is None:
        return ()
    options = list(config.generate_options(entry.item, config.items, config.params.option_count, False))
    rng.shuffle(options)
    return tuple(options)


def _with_tally(stats: Mapping[str, ItemTally], key: str, correct: bool) -> Mapping[str, ItemTally]:
    previous = stats.get(key, ItemTally())
    updated = dict(stats)
    if correct:
        updated[key] = ItemTally(correct=previous.correct + 1, wrong=previous.wrong)
    else:
        updated[key] = ItemTally(correct=previous.correct, wrong=previous.wrong + 1)
    return MappingProxyType(updated)


def _configured(settings: GauntletSettings, action: Configure) -> GauntletSettings:
    repetitions = settings.repetitions if action.repetitions is None else int(action.repetitions)
    if repetitions not in REPETITION_CHOICES:
        raise ValueError(f"Repetitions must be one of {REPETITION_CHOICES}, got {repetitions}.")
    return GauntletSettings(
        game_mode=GameMode(action.game_mode) if action.game_mode is not None else settings.game_mode,
        difficulty=Difficulty(action.difficulty) if action.difficulty is not None else settings.difficulty,
        repetitions=repetitions,
    )


def _require_phase(state: GauntletState, phase: Phase, action: str) -> None:
    if state.phase != phase:
        raise InvalidTransitionError(action, state.phase.value)


def _begin(state: GauntletState, config: GauntletConfig, rng: random.Random, at_ms: int) -> Transition:
    if not config.items:
        raise EmptyItemSetError("Cannot start a gauntlet without items.")
    missing = config.missing_collaborators(state.settings.game_mode)
    if missing:
        raise ModeConfigurationError(state.settings.game_mode.value, missing)

    session = new_session(config, state.settings, rng, at_ms)
    started = SessionStarted(
        total_questions=session.total_questions, lives=session.lives, regen_threshold=session.regen_threshold
    )
    return Transition(GauntletState(phase=Phase.PLAYING, settings=state.settings, session=session), (started,))


def _finish(
    state: GauntletState,
    session: SessionState,
    config: GauntletConfig,
    at_ms: int,
    end_reason: EndReason,
    events: list[GauntletEvent],
) -> Transition:
    result = summarize_session(session, state.settings, config, at_ms, end_reason, session.current_index + 1)
    events.append(SessionEnded(result=result))
    finished = GauntletState(phase=Phase.RESULTS, settings=state.settings, session=session, result=result)
    return Transition(finished, tuple(events))


def _submit(state: GauntletState, action: SubmitAnswer, config: GauntletConfig, rng: random.Random) -> Transition:
    session = state.session
    if session is None or session.current_entry is None:
        raise InvalidTransitionError("submit an answer", state.phase.value)

    current_index = session.current_index
    key = config.identity(session.queue[current_index].item)
    answer_times = session.answer_times_ms
    if session.last_answer_at_ms is not None:
        answer_times = answer_times + (action.at_ms - session.last_answer_at_ms,)

    events: list[GauntletEvent] = []
    if action.is_correct:
        lives = session.lives
        since_regen = session.correct_since_last_regen
        regenerated = session.lives_regenerated
        gained = False
        if DIFFICULTY_CONFIG[state.settings.difficulty].regenerates and lives < session.max_lives:
            since_regen += 1
            if since_regen >= session.regen_threshold:
                lives = min(lives + 1, session.max_lives)
                since_regen = 0
                regenerated += 1
                gained = True
        streak = session.current_streak + 1
        session = replace(
            session,
            correct_answers=session.correct_answers + 1,
            current_streak=streak,
            best_streak=max(session.best_streak, streak),
            lives=lives,
            correct_since_last_regen=since_regen,
            lives_regenerated=regenerated,
            item_stats=_with_tally(session.item_stats, key, True),
            answer_times_ms=answer_times,
            last_answer_at_ms=action.at_ms,
        )
        events.append(Correct(item_id=key, current_streak=streak, correct_answers=session.correct_answers))
        if gained:
            events.append(LifeGained(lives=lives, lives_regenerated=regenerated))
    else:
        session = replace(
            session,
            wrong_answers=session.wrong_answers + 1,
            current_streak=0,
            correct_since_last_regen=0,
            lives=max(0, session.lives - 1),
            item_stats=_with_tally(session.item_stats, key, False),
            answer_times_ms=answer_times,
            last_answer_at_ms=action.at_ms,
        )

    if session.lives <= 0:
        events.append(Incorrect(item_id=key, lives_remaining=0, requeued=False))
        return _finish(state, session, config, action.at_ms, EndReason.OUT_OF_LIVES, events)
    if session.correct_answers >= session.total_questions:
        return _finish(state, session, config, action.at_ms, EndReason.COMPLETED, events)

    queue = session.queue
    if not action.is_correct:
        queue, requeued = requeue_failed(queue, current_index, session.total_questions, rng, config.params)
        events.append(Incorrect(item_id=key, lives_remaining=session.lives, requeued=requeued))
    queue = ensure_next_is_different(queue, current_index, config.identity)

    next_index = current_index + 1
    if next_index >= len(queue):
        return _finish(state, replace(session, queue=queue), config, action.at_ms, EndReason.QUEUE_EXHAUSTED, events)

    session = replace(
        session,
        queue=queue,
        current_index=next_index,
        options=_prepare_options(config, state.settings, queue[next_index], rng),
    )
    return Transition(replace(state, session=session), tuple(events))


def reduce(state: GauntletState, action: Action, config: GauntletConfig, rng: random.Random) -> Transition:
    """Apply one action to the session state machine."""
    if isinstance(action, Configure):
        _require_phase(state, Phase.PREGAME, "change settings")
        return Transition(replace(state, settings=_configured(state.settings, action)))
    if isinstance(action, Start):
        _require_phase(state, Phase.PREGAME, "start")
        return _begin(state, config, rng, action.at_ms)
    if isinstance(action, Restart):
        _require_phase(state, Phase.RESULTS, "restart")
        return _begin(state, config, rng, action.at_ms)
    if isinstance(action, SubmitAnswer):
        _require_phase(state, Phase.PLAYING, "submit an answer")
        return _submit(state, action, config, rng)
    if isinstance(action, Cancel):
        if state.phase == Phase.PREGAME:
            return Transition(state)
        _require_phase(state, Phase.PLAYING, "cancel")
        session = state.session
        cancelled = SessionCancelled(
            correct_answers=session.correct_answers if session else 0,
            wrong_answers=session.wrong_answers if session else 0,
        )
        return Transition(GauntletState(phase=Phase.PREGAME, settings=state.settings), (cancelled,))
    if isinstance(action, ChangeSettings):
        _require_phase(state, Phase.RESULTS, "change settings")
        return Transition(GauntletState(phase=Phase.PREGAME, settings=state.settings))
    raise TypeError(f"Unknown gauntlet action: {action!r}")


def _now_ms() -> int:
    return int(time.time() * 1000)


class Gauntlet:
    """Stateful front for one gauntlet: dispatches actions, emits events, persists results."""

    def __init__(
        self,
        config: GauntletConfig,
        settings: GauntletSettings | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], int] | None = None,
        persist: ResultSink | None = None,
    ) -> None:
        self.config = config
        self.rng = rng or random.Random()
        self._clock = clock or _now_ms
        self._persist = persist
        self._state = GauntletState(settings=settings or GauntletSettings())
        self._pending: deque[Action] = deque()
        self._dispatching = False
        self._receivers: list[tuple[Signal, Callable[..., object]]] = []
        self.last_save: object | None = None

    @property
    def state(self) -> GauntletState:
        return self._state

    @property
    def phase(self) -> Phase:
        return self._state.phase

    @property
    def settings(self) -> GauntletSettings:
        return self._state.settings

    @property
    def session(self) -> SessionState | None:
        return self._state.session

    @property
    def result(self) -> SessionResult | None:
        return self._state.result

    @property
    def pick_mode_supported(self) -> bool:
        return self.config.pick_mode_supported

    @property
    def current_item(self) -> object | None:
        if self.phase != Phase.PLAYING or self.session is None:
            return None
        entry = self.session.current_entry
        return entry.item if entry is not None else None

    @property
    def options(self) -> tuple[str, ...]:
        if self.phase != Phase.PLAYING or self.session is None:
            return ()
        return self.session.options

    def dispatch(self, action: Action) -> tuple[GauntletEvent, ...]:
        """Apply ``action``; actions dispatched from event receivers are queued until this one finishes."""
        self._pending.append(action)
        if self._dispatching:
            return ()

        self._dispatching = True
        emitted: list[GauntletEvent] = []
        try:
            while self._pending:
                transition = reduce(self._state, self._pending.popleft(), self.config, self.rng)
                self._state = transition.state
                for event in transition.events:
                    self._handle(event)
                emitted.extend(transition.events)
        except Exception:
            self._pending.clear()
            raise
        finally:
            self._dispatching = False
        return tuple(emitted)

    def _handle(self, event: GauntletEvent) -> None:
        if isinstance(event, SessionStarted):
            logger.info(
                "Gauntlet started: %d questions, %d lives, regen every %d",
                event.total_questions,
                event.lives,
                event.regen_threshold,
            )
        elif isinstance(event, SessionEnded):
            result = event.result
            logger.info(
                "Gauntlet ended (%s): %d correct, %d wrong",
                result.end_reason,
                result.correct_answers,
                result.wrong_answers,
            )
            if self._persist is not None:
                self.last_save = self._persist(result)
        elif isinstance(event, SessionCancelled):
            logger.info("Gauntlet cancelled; nothing recorded")
        emit(self, event)

    def configure(
        self,
        game_mode: GameMode | str | None = None,
        difficulty: Difficulty | str | None = None,
        repetitions: int | None = None,
    ) -> GauntletSettings:
        self.dispatch(
            Configure(
                game_mode=GameMode(game_mode) if game_mode is not None else None,
                difficulty=Difficulty(difficulty) if difficulty is not None else None,
                repetitions=repetitions,
            )
        )
        return self.settings

    def start(self) -> tuple[GauntletEvent, ...]:
        self.last_save = None
        return self.dispatch(Start(at_ms=self._clock()))

    def submit_answer(self, is_correct: bool) -> tuple[GauntletEvent, ...]:
        return self.dispatch(SubmitAnswer(is_correct=bool(is_correct), at_ms=self._clock()))

    def is_correct_response(self, response: str) -> bool:
        """Judge a raw response for the current item using the mode collaborators."""
        item = self.current_item
        if item is None:
            raise InvalidTransitionError("check an answer", self.phase.value)
        if self.settings.game_mode == GameMode.PICK:
            get_correct_option = cast(OptionFn, self.config.get_correct_option)
            return response == get_correct_option(item, False)
        check_answer = cast(CheckFn, self.config.check_answer)
        return bool(check_answer(response, item, False))

    def answer(self, response: str) -> bool:
        """Judge ``response`` and submit it; return whether it was correct."""
        correct = self.is_correct_response(response)
        self.submit_answer(correct)
        return correct

    def correct_answer(self) -> str:
        item = self.current_item
        if item is None:
            return ""
        if self.settings.game_mode == GameMode.PICK and self.config.get_correct_option is not None:
            return self.config.get_correct_option(item, False)
        if self.config.get_correct_answer is not None:
            return self.config.get_correct_answer(item, False)
        return ""

    def cancel(self) -> tuple[GauntletEvent, ...]:
        return self.dispatch(Cancel())

    def restart(self) -> tuple[GauntletEvent, ...]:
        self.last_save = None
        return self.dispatch(Restart(at_ms=self._clock()))

    def change_settings(self) -> tuple[GauntletEvent, ...]:
        return self.dispatch(ChangeSettings())

    def on(self, event_type: type, receiver: Callable[..., object]) -> Callable[..., object]:
        """Subscribe ``receiver(sender, event=...)`` to one event type from this gauntlet."""
        signal = signal_for(event_type)
        signal.connect(receiver, sender=self, weak=False)
        self._receivers.append((signal, receiver))
        return receiver

    def off(self, event_type: type, receiver: Callable[..., object]) -> None:
        signal = signal_for(event_type)
        signal.disconnect(receiver, sender=self)
        self._receivers = [pair for pair in self._receivers if pair != (signal, receiver)]

    def close(self) -> None:
        """Disconnect every receiver registered through ``on``."""
        for signal, receiver in self._receivers:
            signal.disconnect(receiver, sender=self)
        self._receivers.clear()
