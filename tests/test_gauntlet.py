import random
from collections.abc import Iterable

import pytest

from dojotrainer.config import Difficulty, GameMode, GauntletParams
from dojotrainer.errors import EmptyItemSetError, InvalidTransitionError, ModeConfigurationError
from dojotrainer.events import Correct, Incorrect, LifeGained, SessionCancelled, SessionEnded, SessionStarted
from dojotrainer.gauntlet import (
    EndReason,
    Gauntlet,
    GauntletConfig,
    GauntletSettings,
    Phase,
    QuestionEntry,
    build_question_queue,
    calculate_regen_threshold,
    ensure_next_is_different,
    new_session,
    requeue_failed,
    stabilize_no_immediate_repeats,
    summarize_session,
)


def _items(count: int) -> list[str]:
    return [f"k{index}" for index in range(count)]


def _config(items: Iterable[object], **overrides: object) -> GauntletConfig:
    values: dict[str, object] = {
        "items": list(items),
        "generate_options": lambda item, pool, count, reverse: [str(item), *[str(o) for o in pool if o != item][:3]],
        "get_correct_option": lambda item, reverse: str(item),
        "check_answer": lambda response, item, reverse: response == str(item),
        "get_correct_answer": lambda item, reverse: str(item),
    }
    values.update(overrides)
    return GauntletConfig(**values)  # type: ignore[arg-type]


class StepClock:
    def __init__(self, start: int = 1_000, step: int = 500) -> None:
        self.now = start - step
        self.step = step

    def __call__(self) -> int:
        self.now += self.step
        return self.now


def _gauntlet(
    items: Iterable[object],
    difficulty: Difficulty = Difficulty.NORMAL,
    repetitions: int = 1,
    seed: int = 0,
    **kwargs: object,
) -> Gauntlet:
    settings = GauntletSettings(game_mode=GameMode.TYPE, difficulty=difficulty, repetitions=repetitions)
    return Gauntlet(_config(items), settings=settings, rng=random.Random(seed), clock=StepClock(), **kwargs)  # type: ignore[arg-type]


def _ids(queue: Iterable[QuestionEntry]) -> list[str]:
    return [str(entry.item) for entry in queue]


def _entries(ids: list[str]) -> list[QuestionEntry]:
    return [QuestionEntry(item=value, queue_index=index, repetition_number=1) for index, value in enumerate(ids)]


@pytest.mark.parametrize(
    ("total", "expected"),
    [(1, 5), (10, 5), (50, 5), (60, 6), (70, 7), (110, 11), (100, 10), (150, 15), (200, 20), (1000, 20)],
)
def test_regen_threshold_is_ten_percent_clamped(total: int, expected: int) -> None:
    assert calculate_regen_threshold(total) == expected


def test_build_question_queue_crosses_items_and_repetitions() -> None:
    queue = build_question_queue(_items(4), 3, random.Random(7))
    assert len(queue) == 12
    assert [entry.queue_index for entry in queue] == list(range(12))
    for item in _items(4):
        reps = sorted(entry.repetition_number for entry in queue if entry.item == item)
        assert reps == [1, 2, 3]


def test_initial_queue_never_starts_with_adjacent_repeats() -> None:
    for seed in range(300):
        rng = random.Random(seed)
        item_count = rng.randint(2, 6)
        repetitions = rng.randint(1, 3)
        queue = build_question_queue(_items(item_count), repetitions, rng)
        ids = _ids(queue)
        assert all(left != right for left, right in zip(ids, ids[1:])), (seed, ids)


def test_stabilize_spreads_a_trailing_run_back_into_the_queue() -> None:
    entries = _entries(["b", "c", "b", "c", "b", "c", "a", "a", "a"])
    ids = _ids(stabilize_no_immediate_repeats(entries))
    assert sorted(ids) == sorted(["a", "a", "a", "b", "b", "b", "c", "c", "c"])
    assert all(left != right for left, right in zip(ids, ids[1:])), ids


def test_stabilize_leaves_single_identity_queue_alone() -> None:
    entries = _entries(["a", "a", "a"])
    assert _ids(stabilize_no_immediate_repeats(entries)) == ["a", "a", "a"]


def test_ensure_next_is_different_swaps_nearest_later_entry() -> None:
    queue = tuple(_entries(["a", "a", "a", "b", "c"]))
    assert _ids(ensure_next_is_different(queue, 0)) == ["a", "b", "a", "a", "c"]


def test_ensure_next_is_different_without_candidate_or_at_end() -> None:
    queue = tuple(_entries(["b", "a", "a"]))
    assert ensure_next_is_different(queue, 1) is queue
    assert ensure_next_is_different(queue, 2) is queue


def test_requeue_inserts_two_to_five_slots_ahead() -> None:
    queue = tuple(_entries(_items(10)))
    for seed in range(50):
        updated, requeued = requeue_failed(queue, 0, 10, random.Random(seed))
        assert requeued is True
        assert len(updated) == 11
        positions = [index for index, entry in enumerate(updated) if entry.item == "k0"]
        assert positions[0] == 0
        assert 2 <= positions[1] <= 5


def test_requeue_with_little_queue_left() -> None:
    queue = tuple(_entries(["a", "b", "c"]))
    one_left, _ = requeue_failed(queue, 1, 3, random.Random(0))
    assert _ids(one_left) == ["a", "b", "b", "c"]
    none_left, _ = requeue_failed(queue, 2, 3, random.Random(0))
    assert _ids(none_left) == ["a", "b", "c", "c"]
    assert none_left[-1].queue_index == 3


def test_requeue_stops_at_growth_cap() -> None:
    queue = tuple(_entries(["a", "b", "a", "b", "a", "b"]))
    updated, requeued = requeue_failed(queue, 0, 2, random.Random(0), GauntletParams(queue_growth_cap=3))
    assert requeued is False
    assert updated is queue


def test_start_builds_session_for_difficulty() -> None:
    gauntlet = _gauntlet(_items(5), difficulty=Difficulty.EASY, repetitions=2)
    events = gauntlet.start()
    assert gauntlet.phase == Phase.PLAYING
    session = gauntlet.session
    assert session is not None
    assert (session.lives, session.max_lives, session.total_questions) == (5, 5, 10)
    assert session.regen_threshold == 5
    assert events == (SessionStarted(total_questions=10, lives=5, regen_threshold=5),)


def test_single_item_correct_answer_completes_in_one_step() -> None:
    saved = []
    gauntlet = _gauntlet(["あ"], persist=saved.append)
    gauntlet.start()
    gauntlet.submit_answer(True)

    result = gauntlet.result
    assert gauntlet.phase == Phase.RESULTS
    assert result is not None
    assert (result.completed, result.correct_answers, result.wrong_answers) == (True, 1, 0)
    assert result.accuracy == 1.0
    assert result.is_perfect
    assert result.end_reason == EndReason.COMPLETED
    assert result.questions_completed == 1
    assert saved == [result]


def test_single_life_wrong_answer_ends_run() -> None:
    gauntlet = _gauntlet(_items(3), difficulty=Difficulty.HARD)
    gauntlet.start()
    events = gauntlet.submit_answer(False)

    result = gauntlet.result
    assert result is not None
    assert result.completed is False
    assert result.lives_remaining == 0
    assert result.lives_lost == 1
    assert result.end_reason == EndReason.OUT_OF_LIVES
    assert result.questions_completed == 1
    assert [type(event) for event in events] == [Incorrect, SessionEnded]


def test_ten_correct_answers_restore_one_life_at_hundred_questions() -> None:
    gauntlet = _gauntlet(_items(100))
    gauntlet.start()
    gauntlet.submit_answer(False)
    session = gauntlet.session
    assert session is not None
    assert session.regen_threshold == 10
    assert session.lives == 2

    for _ in range(9):
        gauntlet.submit_answer(True)
    assert gauntlet.session is not None
    assert gauntlet.session.lives == 2
    assert gauntlet.session.correct_since_last_regen == 9

    events = gauntlet.submit_answer(True)
    session = gauntlet.session
    assert session is not None
    assert session.lives == 3
    assert session.correct_since_last_regen == 0
    assert session.lives_regenerated == 1
    assert LifeGained(lives=3, lives_regenerated=1) in events


def test_wrong_answer_resets_regen_progress() -> None:
    gauntlet = _gauntlet(_items(100), difficulty=Difficulty.EASY)
    gauntlet.start()
    gauntlet.submit_answer(False)
    for _ in range(5):
        gauntlet.submit_answer(True)
    gauntlet.submit_answer(False)
    assert gauntlet.session is not None
    assert gauntlet.session.correct_since_last_regen == 0
    assert gauntlet.session.lives == 3

    for _ in range(9):
        gauntlet.submit_answer(True)
    assert gauntlet.session.lives == 3
    gauntlet.submit_answer(True)
    assert gauntlet.session.lives == 4


def test_full_lives_do_not_accumulate_regen_progress() -> None:
    gauntlet = _gauntlet(_items(20))
    gauntlet.start()
    for _ in range(10):
        gauntlet.submit_answer(True)
    session = gauntlet.session
    assert session is not None
    assert session.lives == session.max_lives
    assert session.correct_since_last_regen == 0


def test_random_sessions_keep_invariants() -> None:
    for seed in range(60):
        rng = random.Random(seed)
        difficulty = rng.choice(list(Difficulty))
        gauntlet = _gauntlet(_items(rng.randint(1, 8)), difficulty=difficulty, repetitions=rng.randint(1, 3), seed=seed)
        gauntlet.start()
        submitted = 0
        last_index = 0
        while gauntlet.phase == Phase.PLAYING:
            gauntlet.submit_answer(rng.random() < 0.6)
            submitted += 1
            session = gauntlet.session
            assert session is not None
            assert 0 <= session.lives <= session.max_lives
            assert session.correct_answers + session.wrong_answers == submitted
            assert len(session.queue) <= 3 * session.total_questions
            assert session.current_index >= last_index
            last_index = session.current_index

        result = gauntlet.result
        assert result is not None
        assert result.accuracy == result.correct_answers / (result.correct_answers + result.wrong_answers)


def test_consecutive_misses_never_grow_queue_past_cap() -> None:
    gauntlet = _gauntlet(_items(2), difficulty=Difficulty.EASY)
    gauntlet.start()
    while gauntlet.phase == Phase.PLAYING:
        gauntlet.submit_answer(False)
        assert gauntlet.session is not None
        assert len(gauntlet.session.queue) <= 6


def test_requeued_item_must_be_answered_again() -> None:
    gauntlet = _gauntlet(_items(6))
    gauntlet.start()
    missed = gauntlet.current_item
    events = gauntlet.submit_answer(False)
    assert Incorrect(item_id=str(missed), lives_remaining=2, requeued=True) in events
    session = gauntlet.session
    assert session is not None
    assert _ids(session.queue).count(str(missed)) == 2
    assert gauntlet.current_item != missed


def test_queue_exhaustion_ends_run_without_completion() -> None:
    config = _config(["a", "b"], params=GauntletParams(queue_growth_cap=1))
    gauntlet = Gauntlet(
        config,
        settings=GauntletSettings(game_mode=GameMode.TYPE, difficulty=Difficulty.EASY),
        rng=random.Random(3),
        clock=StepClock(),
    )
    gauntlet.start()
    gauntlet.submit_answer(False)
    gauntlet.submit_answer(True)

    result = gauntlet.result
    assert gauntlet.phase == Phase.RESULTS
    assert result is not None
    assert result.completed is False
    assert result.end_reason == EndReason.QUEUE_EXHAUSTED
    assert result.questions_completed == 2


def test_accuracy_is_zero_without_answers() -> None:
    config = _config(_items(3))
    settings = GauntletSettings()
    session = new_session(config, settings, random.Random(0), now_ms=5_000)
    result = summarize_session(session, settings, config, 5_000, EndReason.OUT_OF_LIVES, 0)
    assert result.accuracy == 0.0
    assert result.average_time_per_question_ms == 0.0
    assert result.fastest_answer_ms == 0
    assert result.slowest_answer_ms == 0


def test_timing_ignores_first_answer_and_non_positive_gaps() -> None:
    ticks = iter([1_000, 1_500, 1_500, 2_300])
    gauntlet = Gauntlet(
        _config(_items(5)),
        settings=GauntletSettings(game_mode=GameMode.TYPE, difficulty=Difficulty.EASY),
        rng=random.Random(0),
        clock=lambda: next(ticks),
    )
    gauntlet.start()
    gauntlet.submit_answer(True)
    gauntlet.submit_answer(True)
    gauntlet.submit_answer(True)
    assert gauntlet.session is not None
    assert gauntlet.session.answer_times_ms == (0, 800)

    result = summarize_session(
        gauntlet.session, gauntlet.settings, gauntlet.config, 2_300, EndReason.COMPLETED, 3
    )
    assert result.total_time_ms == 1_300
    assert result.average_time_per_question_ms == 800
    assert (result.fastest_answer_ms, result.slowest_answer_ms) == (800, 800)


def test_cancel_records_nothing() -> None:
    saved = []
    gauntlet = _gauntlet(_items(4), persist=saved.append)
    gauntlet.start()
    gauntlet.submit_answer(True)
    events = gauntlet.cancel()

    assert events == (SessionCancelled(correct_answers=1, wrong_answers=0),)
    assert gauntlet.phase == Phase.PREGAME
    assert gauntlet.session is None
    assert gauntlet.result is None
    assert saved == []
    assert gauntlet.cancel() == ()


def test_persist_called_once_per_finished_run() -> None:
    saved = []

    def persist(result: object) -> str:
        saved.append(result)
        return f"save-{len(saved)}"

    gauntlet = _gauntlet(["a", "b"], persist=persist)
    gauntlet.start()
    gauntlet.submit_answer(True)
    gauntlet.submit_answer(True)
    assert len(saved) == 1
    assert gauntlet.last_save == "save-1"

    gauntlet.restart()
    assert gauntlet.phase == Phase.PLAYING
    assert gauntlet.last_save is None
    gauntlet.submit_answer(True)
    gauntlet.submit_answer(True)
    assert len(saved) == 2
    assert gauntlet.last_save == "save-2"


def test_change_settings_returns_to_pregame() -> None:
    gauntlet = _gauntlet(["a"])
    gauntlet.start()
    gauntlet.submit_answer(True)
    gauntlet.change_settings()
    assert gauntlet.phase == Phase.PREGAME
    assert gauntlet.result is None

    settings = gauntlet.configure(difficulty="hard", repetitions=3)
    assert settings == GauntletSettings(game_mode=GameMode.TYPE, difficulty=Difficulty.HARD, repetitions=3)
    gauntlet.start()
    assert gauntlet.session is not None
    assert gauntlet.session.total_questions == 3


def test_invalid_transitions_raise() -> None:
    gauntlet = _gauntlet(_items(3))
    with pytest.raises(InvalidTransitionError, match="pregame"):
        gauntlet.submit_answer(True)
    with pytest.raises(InvalidTransitionError):
        gauntlet.restart()

    gauntlet.start()
    with pytest.raises(InvalidTransitionError, match="playing"):
        gauntlet.configure(difficulty=Difficulty.EASY)
    with pytest.raises(InvalidTransitionError):
        gauntlet.start()


def test_configure_rejects_unknown_repetitions() -> None:
    gauntlet = _gauntlet(_items(3))
    with pytest.raises(ValueError, match="Repetitions"):
        gauntlet.configure(repetitions=4)


def test_start_checks_items_and_mode_collaborators() -> None:
    with pytest.raises(EmptyItemSetError):
        _gauntlet([]).start()

    pick_without_options = Gauntlet(_config(_items(3), generate_options=None), settings=GauntletSettings())
    assert pick_without_options.pick_mode_supported is False
    with pytest.raises(ModeConfigurationError, match="generate_options"):
        pick_without_options.start()

    type_without_checker = Gauntlet(
        _config(_items(3), check_answer=None), settings=GauntletSettings(game_mode=GameMode.TYPE)
    )
    with pytest.raises(ModeConfigurationError, match="check_answer"):
        type_without_checker.start()


def test_pick_mode_prepares_shuffled_options_with_correct_answer() -> None:
    gauntlet = Gauntlet(_config(_items(6)), rng=random.Random(4), clock=StepClock())
    gauntlet.start()
    item = gauntlet.current_item
    assert str(item) in gauntlet.options
    assert len(gauntlet.options) == 4
    assert gauntlet.correct_answer() == str(item)

    assert gauntlet.answer(str(item)) is True
    assert gauntlet.session is not None
    assert gauntlet.session.correct_answers == 1
    next_item = gauntlet.current_item
    assert str(next_item) in gauntlet.options

    wrong = next(option for option in gauntlet.options if option != str(next_item))
    assert gauntlet.answer(wrong) is False


def test_type_mode_uses_answer_checker() -> None:
    gauntlet = _gauntlet(_items(3))
    gauntlet.start()
    assert gauntlet.options == ()
    assert gauntlet.answer("nope") is False
    assert gauntlet.answer(str(gauntlet.current_item)) is True


def test_is_correct_response_judges_without_submitting() -> None:
    gauntlet = _gauntlet(_items(3))
    with pytest.raises(InvalidTransitionError):
        gauntlet.is_correct_response("k0")

    gauntlet.start()
    item = gauntlet.current_item
    assert gauntlet.is_correct_response(str(item)) is True
    assert gauntlet.is_correct_response("nope") is False
    assert gauntlet.current_item == item
    assert gauntlet.session is not None
    assert gauntlet.session.correct_answers == 0


def test_events_are_sent_to_receivers_of_this_gauntlet_only() -> None:
    seen: list[tuple[object, object]] = []
    gauntlet = _gauntlet(_items(3))
    other = _gauntlet(_items(3))
    gauntlet.on(Correct, lambda sender, event: seen.append((sender, event)))

    other.start()
    other.submit_answer(True)
    assert seen == []

    gauntlet.start()
    gauntlet.submit_answer(True)
    assert len(seen) == 1
    assert seen[0][0] is gauntlet
    assert isinstance(seen[0][1], Correct)


def test_off_and_close_disconnect_receivers() -> None:
    seen: list[object] = []

    def receiver(sender: object, event: object) -> None:
        seen.append(event)

    gauntlet = _gauntlet(_items(5))
    gauntlet.on(Correct, receiver)
    gauntlet.off(Correct, receiver)
    gauntlet.on(Incorrect, receiver)
    gauntlet.close()
    gauntlet.start()
    gauntlet.submit_answer(True)
    gauntlet.submit_answer(False)
    assert seen == []


def test_actions_from_receivers_wait_for_current_transition() -> None:
    order: list[str] = []
    gauntlet = _gauntlet(_items(4))

    def on_correct(sender: Gauntlet, event: Correct) -> None:
        order.append("correct")
        assert sender.cancel() == ()
        assert sender.phase == Phase.PLAYING

    gauntlet.on(Correct, on_correct)
    gauntlet.on(SessionCancelled, lambda sender, event: order.append("cancelled"))
    gauntlet.start()
    events = gauntlet.submit_answer(True)

    assert order == ["correct", "cancelled"]
    assert [type(event) for event in events] == [Correct, SessionCancelled]
    assert gauntlet.phase == Phase.PREGAME


def test_session_ended_listener_sees_saved_outcome() -> None:
    seen: list[object] = []
    gauntlet = _gauntlet(["a"], persist=lambda result: "stored")
    gauntlet.on(SessionEnded, lambda sender, event: seen.append(sender.last_save))
    gauntlet.start()
    gauntlet.submit_answer(True)
    assert seen == ["stored"]
