"""SQLite persistence for gauntlet results and adaptive item weights."""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .gauntlet import SessionResult

SCHEMA_VERSION = 2

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaveOutcome:
    """Row id of a stored session and whether it beat every earlier run in its bucket."""

    session_id: int
    is_new_best: bool


@dataclass(frozen=True)
class SessionRecord:
    """One stored gauntlet run."""

    id: int
    timestamp: str
    dojo_type: str
    difficulty: str
    game_mode: str
    total_questions: int
    correct_answers: int
    wrong_answers: int
    accuracy: float
    best_streak: int
    lives_lost: int
    lives_regenerated: int
    total_time_ms: int
    completed: bool
    end_reason: str
    questions_completed: int
    is_new_best: bool


@dataclass(frozen=True)
class GauntletTotals:
    runs: int
    completed_runs: int
    perfect_runs: int
    lives_lost: int
    lives_regenerated: int
    best_streak: int


_SESSION_COLUMNS = """
    id, timestamp, dojo_type, difficulty, game_mode, total_questions, correct_answers,
    wrong_answers, accuracy, best_streak, lives_lost, lives_regenerated, total_time_ms,
    completed, end_reason, questions_completed, is_new_best
"""


def _rank(completed: bool, correct_answers: int, accuracy: float, total_time_ms: int) -> tuple[int, int, float, int]:
    """Ordering key for "better run": finish first, then more correct, higher accuracy, faster."""
    return (int(completed), correct_answers, accuracy, -total_time_ms)


def _record_from_row(row: sqlite3.Row) -> SessionRecord:
    return SessionRecord(
        id=int(row["id"]),
        timestamp=str(row["timestamp"]),
        dojo_type=str(row["dojo_type"]),
        difficulty=str(row["difficulty"]),
        game_mode=str(row["game_mode"]),
        total_questions=int(row["total_questions"]),
        correct_answers=int(row["correct_answers"]),
        wrong_answers=int(row["wrong_answers"]),
        accuracy=float(row["accuracy"]),
        best_streak=int(row["best_streak"]),
        lives_lost=int(row["lives_lost"]),
        lives_regenerated=int(row["lives_regenerated"]),
        total_time_ms=int(row["total_time_ms"]),
        completed=bool(row["completed"]),
        end_reason=str(row["end_reason"]),
        questions_completed=int(row["questions_completed"]),
        is_new_best=bool(row["is_new_best"]),
    )


class ProgressStore:
    """Database access layer for gauntlet history and item weights."""

    def __init__(self, db_path: Path | str) -> None:
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_path)
        else:
            target = db_path
        self._conn = sqlite3.connect(target)
        self._conn.row_factory = sqlite3.Row
        self._apply_migrations()
        self._ensure_column("gauntlet_sessions", "end_reason", "TEXT NOT NULL DEFAULT 'completed'")

    def _apply_migrations(self) -> None:
        """Apply forward-only schema migrations to latest version."""
        current = int(self._conn.execute("PRAGMA user_version").fetchone()[0])
        if current > SCHEMA_VERSION:
            raise RuntimeError(f"Database schema version {current} is newer than supported {SCHEMA_VERSION}.")

        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """)

        for version in range(current + 1, SCHEMA_VERSION + 1):
            if version == 1:
                self._migrate_to_v1()
            elif version == 2:
                self._migrate_to_v2()
            with self._conn:
                self._conn.execute(f"PRAGMA user_version = {version}")
                self._conn.execute(
                    "INSERT OR REPLACE INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now(UTC).isoformat()),
                )
            logger.info("Progress database migrated to schema version %d", version)

    def _migrate_to_v1(self) -> None:
        """Create the gauntlet history table."""
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS gauntlet_sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    dojo_type TEXT NOT NULL,
                    difficulty TEXT NOT NULL,
                    game_mode TEXT NOT NULL,
                    total_questions INTEGER NOT NULL,
                    correct_answers INTEGER NOT NULL,
                    wrong_answers INTEGER NOT NULL,
                    accuracy REAL NOT NULL,
                    best_streak INTEGER NOT NULL,
                    lives_lost INTEGER NOT NULL,
                    lives_regenerated INTEGER NOT NULL,
                    total_time_ms INTEGER NOT NULL,
                    completed INTEGER NOT NULL,
                    questions_completed INTEGER NOT NULL,
                    is_new_best INTEGER NOT NULL,
                    selected_sets TEXT NOT NULL,
                    item_stats TEXT NOT NULL
                )
                """)

    def _migrate_to_v2(self) -> None:
        """Add adaptive weight storage."""
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS item_weights (
                    item_id TEXT PRIMARY KEY,
                    weight REAL NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """)

    def _ensure_column(self, table: str, column: str, definition: str) -> None:
        rows = self._conn.execute(f"PRAGMA table_info({table})").fetchall()
        names = {str(row["name"]) for row in rows}
        if column in names:
            return
        with self._conn:
            self._conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    def save_session(self, result: SessionResult) -> SaveOutcome:
        """Store one finished gauntlet and report whether it is the best in its bucket."""
        candidate = _rank(result.completed, result.correct_answers, result.accuracy, result.total_time_ms)
        rows = self._conn.execute(
            """
            SELECT completed, correct_answers, accuracy, total_time_ms
            FROM gauntlet_sessions
            WHERE dojo_type = ? AND difficulty = ? AND game_mode = ?
            """,
            (result.dojo_type, result.difficulty, result.game_mode),
        ).fetchall()
        is_new_best = all(
            candidate
            > _rank(bool(row["completed"]), int(row["correct_answers"]), float(row["accuracy"]), int(row["total_time_ms"]))
            for row in rows
        )
        item_stats = {key: {"correct": tally.correct, "wrong": tally.wrong} for key, tally in result.item_stats.items()}

        with self._conn:
            cursor = self._conn.execute(
                """
                INSERT INTO gauntlet_sessions (
                    timestamp, dojo_type, difficulty, game_mode, total_questions, correct_answers,
                    wrong_answers, accuracy, best_streak, lives_lost, lives_regenerated, total_time_ms,
                    completed, end_reason, questions_completed, is_new_best, selected_sets, item_stats
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    result.timestamp,
                    result.dojo_type,
                    result.difficulty,
                    result.game_mode,
                    result.total_questions,
                    result.correct_answers,
                    result.wrong_answers,
                    result.accuracy,
                    result.best_streak,
                    result.lives_lost,
                    result.lives_regenerated,
                    result.total_time_ms,
                    int(result.completed),
                    result.end_reason,
                    result.questions_completed,
                    int(is_new_best),
                    json.dumps(list(result.selected_sets)),
                    json.dumps(item_stats, ensure_ascii=False, sort_keys=True),
                ),
            )
        row_id = cursor.lastrowid
        if row_id is None:
            raise RuntimeError("Could not store gauntlet session.")
        logger.info("Stored gauntlet session %d (new best: %s)", row_id, is_new_best)
        return SaveOutcome(session_id=int(row_id), is_new_best=is_new_best)

    def list_sessions(self, dojo_type: str | None = None, limit: int = 20) -> list[SessionRecord]:
        """Return the most recent sessions, newest first."""
        if dojo_type is None:
            rows = self._conn.execute(
                f"SELECT {_SESSION_COLUMNS} FROM gauntlet_sessions ORDER BY id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        else:
            rows = self._conn.execute(
                f"SELECT {_SESSION_COLUMNS} FROM gauntlet_sessions WHERE dojo_type = ? ORDER BY id DESC LIMIT ?",
                (dojo_type, limit),
            ).fetchall()
        return [_record_from_row(row) for row in rows]

    def best_session(self, dojo_type: str, difficulty: str, game_mode: str) -> SessionRecord | None:
        rows = self._conn.execute(
            f"""
            SELECT {_SESSION_COLUMNS}
            FROM gauntlet_sessions
            WHERE dojo_type = ? AND difficulty = ? AND game_mode = ?
            ORDER BY id ASC
            """,
            (dojo_type, difficulty, game_mode),
        ).fetchall()
        records = [_record_from_row(row) for row in rows]
        if not records:
            return None
        # max() keeps the earliest of equally ranked runs
        return max(
            records,
            key=lambda record: _rank(record.completed, record.correct_answers, record.accuracy, record.total_time_ms),
        )

    def gauntlet_totals(self, dojo_type: str | None = None) -> GauntletTotals:
        query = """
            SELECT
                COUNT(*) AS runs,
                COALESCE(SUM(completed), 0) AS completed_runs,
                COALESCE(SUM(CASE WHEN completed = 1 AND wrong_answers = 0 THEN 1 ELSE 0 END), 0) AS perfect_runs,
                COALESCE(SUM(lives_lost), 0) AS lives_lost,
                COALESCE(SUM(lives_regenerated), 0) AS lives_regenerated,
                COALESCE(MAX(best_streak), 0) AS best_streak
            FROM gauntlet_sessions
        """
        if dojo_type is None:
            row = self._conn.execute(query).fetchone()
        else:
            row = self._conn.execute(query + " WHERE dojo_type = ?", (dojo_type,)).fetchone()
        return GauntletTotals(
            runs=int(row["runs"]),
            completed_runs=int(row["completed_runs"]),
            perfect_runs=int(row["perfect_runs"]),
            lives_lost=int(row["lives_lost"]),
            lives_regenerated=int(row["lives_regenerated"]),
            best_streak=int(row["best_streak"]),
        )

    def item_totals(self, dojo_type: str | None = None) -> dict[str, tuple[int, int]]:
        """Return per-item (correct, wrong) sums across stored sessions."""
        if dojo_type is None:
            rows = self._conn.execute("SELECT item_stats FROM gauntlet_sessions").fetchall()
        else:
            rows = self._conn.execute(
                "SELECT item_stats FROM gauntlet_sessions WHERE dojo_type = ?", (dojo_type,)
            ).fetchall()
        totals: dict[str, tuple[int, int]] = {}
        for row in rows:
            for key, tally in json.loads(row["item_stats"]).items():
                correct, wrong = totals.get(key, (0, 0))
                totals[key] = (correct + int(tally.get("correct", 0)), wrong + int(tally.get("wrong", 0)))
        return totals

    def clear_sessions(self) -> int:
        """Delete all stored gauntlet runs; return how many were removed."""
        with self._conn:
            cursor = self._conn.execute("DELETE FROM gauntlet_sessions")
        return cursor.rowcount

    def get_weight(self, item_id: str) -> float | None:
        row = self._conn.execute("SELECT weight FROM item_weights WHERE item_id = ?", (item_id,)).fetchone()
        if row is None:
            return None
        return float(row["weight"])

    def set_weight(self, item_id: str, weight: float) -> None:
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO item_weights (item_id, weight, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(item_id) DO UPDATE SET
                    weight = excluded.weight,
                    updated_at = excluded.updated_at
                """,
                (item_id, weight, datetime.now(UTC).isoformat()),
            )

    def all_weights(self) -> dict[str, float]:
        rows = self._conn.execute("SELECT item_id, weight FROM item_weights").fetchall()
        return {str(row["item_id"]): float(row["weight"]) for row in rows}

    def close(self) -> None:
        """Close db connection."""
        self._conn.close()
