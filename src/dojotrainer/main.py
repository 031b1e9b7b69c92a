"""CLI entrypoint for the kana and vocabulary dojo."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import cast

from .config import REPETITION_CHOICES, Difficulty, GameMode, default_db_path
from .drill import PracticeDrill, QuizType
from .events import LifeGained
from .gauntlet import Gauntlet, GauntletSettings, Phase, SessionResult
from .models import ItemSet, StudyItem
from .progress import SaveOutcome
from .service import DojoService

InputFn = Callable[[str], str]
PrintFn = Callable[[str], None]
MENU_QUIT_COMMANDS = {"q"}
MENU_BACK_COMMANDS = {"b"}
FLOW_EXIT_COMMANDS = {":quit", ":exit", ":q"}
SKIP_COMMANDS = {":skip", ":s"}
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
DRILL_DIRECTIONS = [("normal", "Item to answer"), ("reverse", "Answer to item")]


class QuitApp(Exception):
    """Signal immediate app exit from nested menu flows."""


def _service(db_path: Path | None = None) -> DojoService:
    """Create app service with local database path."""
    return DojoService(db_path=db_path or default_db_path())


def run(argv: list[str] | None = None) -> int:
    """Run the CLI application."""
    parser = argparse.ArgumentParser(prog="dojotrainer", description="Kana and vocabulary gauntlet trainer")
    parser.add_argument("command", nargs="?", default="play", choices=["play", "history"])
    parser.add_argument("--db", type=Path, default=None, help="progress database path")
    parser.add_argument("--log-level", default="WARNING", choices=LOG_LEVELS, type=str.upper)
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")

    if args.command == "history":
        service = _service(args.db)
        try:
            _history_flow(service, print)
        finally:
            service.close()
        return 0
    return play_shell(db_path=args.db)


def play_shell(input_fn: InputFn = input, print_fn: PrintFn = print, db_path: Path | None = None) -> int:
    """Run persistent menu-driven shell."""
    service = _service(db_path)
    try:
        while True:
            print_fn("\n=== Dojo ===")
            print_fn("1) Gauntlet")
            print_fn("2) Practice drill")
            print_fn("3) History")
            print_fn("4) Weakest items")
            print_fn("q) Quit")
            choice = input_fn("Choose: ").strip().lower()

            try:
                if choice == "1":
                    _gauntlet_flow(service, input_fn, print_fn)
                elif choice == "2":
                    _drill_flow(service, input_fn, print_fn)
                elif choice == "3":
                    _history_flow(service, print_fn)
                elif choice == "4":
                    _weakest_flow(service, input_fn, print_fn)
                elif choice in MENU_QUIT_COMMANDS:
                    return 0
                else:
                    print_fn("Invalid choice.")
            except QuitApp:
                return 0
    finally:
        service.close()


def _select_set(service: DojoService, input_fn: InputFn, print_fn: PrintFn) -> ItemSet | None:
    """Pick one item set; None means back."""
    item_sets = service.list_item_sets()
    while True:
        print_fn("\n=== Item Sets ===")
        for idx, item_set in enumerate(item_sets, start=1):
            print_fn(f"{idx}) {item_set.title} ({len(item_set.all_items())} items)")
        print_fn("b) Back")
        print_fn("q) Quit")
        choice = input_fn("Choose set: ").strip().lower()
        if choice in MENU_BACK_COMMANDS:
            return None
        if choice in MENU_QUIT_COMMANDS:
            raise QuitApp()
        if choice.isdigit() and 0 <= int(choice) - 1 < len(item_sets):
            return item_sets[int(choice) - 1]
        print_fn("Invalid choice.")


def _select_groups(item_set: ItemSet, input_fn: InputFn, print_fn: PrintFn) -> list[str] | None:
    """Pick groups by number; blank selects all, None means back."""
    while True:
        print_fn(f"\n=== {item_set.title} groups ===")
        for idx, group in enumerate(item_set.groups, start=1):
            print_fn(f"{idx}) {group.title} ({len(group.items)})")
        print_fn("Enter numbers separated by spaces (blank = all), b) Back")
        raw = input_fn("Groups: ").strip().lower()
        if raw in MENU_BACK_COMMANDS:
            return None
        if not raw:
            return []
        tokens = raw.replace(",", " ").split()
        if all(token.isdigit() and 0 <= int(token) - 1 < len(item_set.groups) for token in tokens):
            chosen = sorted({int(token) - 1 for token in tokens})
            return [item_set.groups[index].id for index in chosen]
        print_fn("Invalid group selection.")


def _choose(
    label: str, options: list[tuple[str, str]], current: str, input_fn: InputFn, print_fn: PrintFn
) -> str | None:
    """Numbered choice among (value, title) pairs; blank keeps ``current``, None means back."""
    while True:
        print_fn(f"\n{label}:")
        for idx, (value, title) in enumerate(options, start=1):
            marker = " *" if value == current else ""
            print_fn(f"{idx}) {title}{marker}")
        choice = input_fn(f"{label} (blank = keep): ").strip().lower()
        if not choice:
            return current
        if choice in MENU_BACK_COMMANDS:
            return None
        if choice in MENU_QUIT_COMMANDS:
            raise QuitApp()
        if choice.isdigit() and 0 <= int(choice) - 1 < len(options):
            return options[int(choice) - 1][0]
        print_fn("Invalid choice.")


def _configure_settings(
    current: GauntletSettings, pick_supported: bool, input_fn: InputFn, print_fn: PrintFn
) -> GauntletSettings | None:
    modes = [(GameMode.TYPE.value, "Type the answer")]
    if pick_supported:
        modes.insert(0, (GameMode.PICK.value, "Pick from options"))
    mode = _choose("Mode", modes, current.game_mode.value, input_fn, print_fn)
    if mode is None:
        return None
    difficulty = _choose(
        "Difficulty",
        [
            (Difficulty.EASY.value, "Easy (5 lives, regenerating)"),
            (Difficulty.NORMAL.value, "Normal (3 lives, regenerating)"),
            (Difficulty.HARD.value, "Hard (1 life)"),
        ],
        current.difficulty.value,
        input_fn,
        print_fn,
    )
    if difficulty is None:
        return None
    repetitions = _choose(
        "Repetitions",
        [(str(value), f"{value}x each item") for value in REPETITION_CHOICES],
        str(current.repetitions),
        input_fn,
        print_fn,
    )
    if repetitions is None:
        return None
    return GauntletSettings(game_mode=GameMode(mode), difficulty=Difficulty(difficulty), repetitions=int(repetitions))


def _gauntlet_flow(service: DojoService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Configure, play, and review gauntlet runs until the user backs out."""
    item_set = _select_set(service, input_fn, print_fn)
    if item_set is None:
        return
    group_ids = _select_groups(item_set, input_fn, print_fn)
    if group_ids is None:
        return

    gauntlet = service.new_gauntlet(item_set.id, group_ids)
    gauntlet.on(LifeGained, lambda sender, event: print_fn(f"Life regenerated! Lives: {event.lives}"))
    try:
        settings = _configure_settings(gauntlet.settings, gauntlet.pick_mode_supported, input_fn, print_fn)
        if settings is None:
            return
        gauntlet.configure(settings.game_mode, settings.difficulty, settings.repetitions)
        gauntlet.start()
        while True:
            if not _play_gauntlet(gauntlet, input_fn, print_fn):
                print_fn("Gauntlet cancelled. Nothing was recorded.")
                return
            result = gauntlet.result
            if result is None:
                return
            _print_results(result, cast(SaveOutcome | None, gauntlet.last_save), print_fn)

            print_fn("r) Restart")
            print_fn("s) Change settings")
            print_fn("b) Back")
            print_fn("q) Quit")
            choice = input_fn("Choose: ").strip().lower()
            if choice == "r":
                gauntlet.restart()
            elif choice == "s":
                gauntlet.change_settings()
                settings = _configure_settings(gauntlet.settings, gauntlet.pick_mode_supported, input_fn, print_fn)
                if settings is None:
                    return
                gauntlet.configure(settings.game_mode, settings.difficulty, settings.repetitions)
                gauntlet.start()
            elif choice in MENU_QUIT_COMMANDS:
                raise QuitApp()
            else:
                return
    finally:
        gauntlet.close()


def _play_gauntlet(gauntlet: Gauntlet, input_fn: InputFn, print_fn: PrintFn) -> bool:
    """Ask questions until the run ends; False when the user cancelled."""
    print_fn("Type :q to abandon the run.")
    while gauntlet.phase == Phase.PLAYING:
        session = gauntlet.session
        item = cast(StudyItem, gauntlet.current_item)
        if session is None or item is None:
            return False
        print_fn(
            f"\n[{session.correct_answers}/{session.total_questions}] "
            f"Lives: {session.lives}/{session.max_lives}  Streak: {session.current_streak}"
        )
        print_fn(f"  {item.text}")

        response = _read_response(gauntlet, input_fn, print_fn)
        if response is None:
            gauntlet.cancel()
            return False
        expected = gauntlet.correct_answer()
        if gauntlet.answer(response):
            print_fn("Correct.")
        else:
            print_fn(f"Incorrect. Answer: {expected}")
    return True


def _read_response(gauntlet: Gauntlet, input_fn: InputFn, print_fn: PrintFn) -> str | None:
    """Read one answer in the current mode; None means the user asked to leave."""
    if gauntlet.settings.game_mode == GameMode.PICK:
        options = gauntlet.options
        for idx, option in enumerate(options, start=1):
            print_fn(f"  {idx}) {option}")
        while True:
            choice = input_fn("Pick: ").strip().lower()
            if choice in FLOW_EXIT_COMMANDS:
                return None
            if choice.isdigit() and 0 <= int(choice) - 1 < len(options):
                return options[int(choice) - 1]
            print_fn("Invalid choice.")

    while True:
        response = input_fn("Answer: ").strip()
        if response.lower() in FLOW_EXIT_COMMANDS:
            return None
        if response:
            return response


def _print_results(result: SessionResult, outcome: SaveOutcome | None, print_fn: PrintFn) -> None:
    print_fn("\n=== Results ===")
    if result.is_perfect:
        print_fn("Perfect run!")
    elif result.completed:
        print_fn("Gauntlet cleared.")
    elif result.end_reason == "out_of_lives":
        print_fn("Out of lives.")
    else:
        print_fn("Ran out of questions.")
    if outcome is not None and outcome.is_new_best:
        print_fn("New best!")
    print_fn(f"Correct: {result.correct_answers}/{result.total_questions}  Wrong: {result.wrong_answers}")
    print_fn(f"Accuracy: {result.accuracy:.0%}  Best streak: {result.best_streak}")
    print_fn(
        f"Lives: {result.lives_remaining}/{result.starting_lives} "
        f"(lost {result.lives_lost}, regenerated {result.lives_regenerated})"
    )
    print_fn(
        f"Time: {result.total_time_ms / 1000:.1f}s  "
        f"avg {result.average_time_per_question_ms / 1000:.1f}s  "
        f"fastest {result.fastest_answer_ms / 1000:.1f}s  slowest {result.slowest_answer_ms / 1000:.1f}s"
    )


def _drill_question(drill: PracticeDrill) -> str:
    if drill.quiz_type == QuizType.READING:
        return "reading"
    return "word" if drill.is_reverse else "meaning"


def _drill_flow(service: DojoService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Run the endless weighted drill until the user exits."""
    item_set = _select_set(service, input_fn, print_fn)
    if item_set is None:
        return
    group_ids = _select_groups(item_set, input_fn, print_fn)
    if group_ids is None:
        return

    direction = _choose("Direction", DRILL_DIRECTIONS, "normal", input_fn, print_fn)
    if direction is None:
        return

    drill = service.new_drill(item_set.id, group_ids, is_reverse=direction == "reverse")
    print_fn("\n=== Practice Drill ===")
    print_fn("Type :s to skip, :q to stop.")
    while True:
        print_fn(f"\n  {drill.prompt()}   [{_drill_question(drill)}]  (score {drill.score})")
        response = input_fn("Answer: ").strip()
        lowered = response.lower()
        if lowered in FLOW_EXIT_COMMANDS:
            break
        if lowered in SKIP_COMMANDS:
            print_fn(f"Skipped. Answer: {drill.expected_answer()}")
            drill.skip()
            continue
        if not response:
            continue
        feedback = drill.answer(response)
        if feedback.correct:
            print_fn("Correct.")
        else:
            print_fn(f"Incorrect. Answer: {feedback.expected}")

    summary = drill.summary()
    print_fn(
        f"\nDrill ended: {summary.correct}/{summary.answered} correct "
        f"({summary.accuracy:.0%}), score {summary.score}, skipped {summary.skipped}"
    )


def _history_flow(service: DojoService, print_fn: PrintFn) -> None:
    """Print recent gauntlet runs and lifetime totals."""
    print_fn("\n=== Gauntlet History ===")
    records = service.history(limit=10)
    if not records:
        print_fn("No gauntlet runs yet.")
        return
    header = f"{'When':<16} {'Dojo':<10} {'Mode':<5} {'Level':<6} {'Score':>7} {'Acc':>5}  Result"
    print_fn(header)
    print_fn("-" * len(header))
    for record in records:
        outcome = "cleared" if record.completed else record.end_reason.replace("_", " ")
        best = " *best*" if record.is_new_best else ""
        score = f"{record.correct_answers}/{record.total_questions}"
        print_fn(
            f"{_format_local_time(record.timestamp):<16} {record.dojo_type:<10} {record.game_mode:<5} "
            f"{record.difficulty:<6} {score:>7} {record.accuracy:>5.0%}  {outcome}{best}"
        )
    totals = service.totals()
    print_fn(
        f"\nRuns: {totals.runs}  cleared: {totals.completed_runs}  perfect: {totals.perfect_runs}  "
        f"best streak: {totals.best_streak}"
    )


def _weakest_flow(service: DojoService, input_fn: InputFn, print_fn: PrintFn) -> None:
    item_set = _select_set(service, input_fn, print_fn)
    if item_set is None:
        return
    print_fn(f"\n=== Weakest items: {item_set.title} ===")
    for weak in service.weakest_items(item_set.id, limit=10):
        answers = " / ".join(weak.item.answers)
        print_fn(f"{weak.item.text:<6} {answers:<20} weight {weak.weight:.2f}  ({weak.correct} ok, {weak.wrong} missed)")


def _format_local_time(timestamp: str) -> str:
    """Convert ISO timestamp to local human-readable datetime."""
    try:
        dt = datetime.fromisoformat(timestamp)
    except ValueError:
        return timestamp
    return dt.astimezone().strftime("%Y-%m-%d %H:%M")


def main_entry() -> None:
    """Console script entrypoint."""
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
