"""SQLite-backed task, evaluation, assignment, and update storage."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from marketplace_service.services.database import Database


class EvaluationAlreadyAcceptedError(Exception):
    """Raised when a second evaluation of the same task is marked accepted."""


class TaskStore:
    """Storage for tasks and the records hanging off them."""

    _TASK_COLUMNS: tuple[str, ...] = (
        "task_id",
        "client_id",
        "specialist_id",
        "title",
        "description",
        "category",
        "priority",
        "status",
        "estimated_hours",
        "hourly_rate",
        "total_cost",
        "deadline",
        "created_at",
        "updated_at",
        "completed_at",
    )
    _TASK_COLUMNS_SQL = ", ".join(_TASK_COLUMNS)
    _TASK_INSERT_SQL = (
        "INSERT INTO tasks (" + _TASK_COLUMNS_SQL + ") VALUES ("  # nosec B608
        + ", ".join("?" for _ in _TASK_COLUMNS)
        + ")"
    )
    _TASK_SELECT_BASE_SQL = "SELECT " + _TASK_COLUMNS_SQL + " FROM tasks"  # nosec B608

    _EVALUATION_COLUMNS: tuple[str, ...] = (
        "evaluation_id",
        "task_id",
        "specialist_id",
        "estimated_hours",
        "hourly_rate",
        "total_cost",
        "notes",
        "status",
        "created_at",
    )
    _EVALUATION_SELECT_SQL = (
        "SELECT " + ", ".join(_EVALUATION_COLUMNS) + " FROM evaluations"  # nosec B608
    )

    _ASSIGNMENT_COLUMNS: tuple[str, ...] = (
        "assignment_id",
        "task_id",
        "specialist_id",
        "assigned_by",
        "assigned_at",
        "status",
        "notes",
    )
    _UPDATE_COLUMNS: tuple[str, ...] = (
        "update_id",
        "task_id",
        "user_id",
        "content",
        "type",
        "created_at",
    )

    def __init__(self, database: Database) -> None:
        self._db = database

    @staticmethod
    def _row(row: sqlite3.Row, columns: tuple[str, ...]) -> dict[str, Any]:
        return {column: row[column] for column in columns}

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def insert_task(self, task_data: dict[str, Any]) -> None:
        """Insert a new task row."""
        values = tuple(task_data[column] for column in self._TASK_COLUMNS)
        with self._db.transaction() as conn:
            conn.execute(self._TASK_INSERT_SQL, values)

    def get_task(self, task_id: str) -> dict[str, Any] | None:
        """Fetch a task by ID."""
        with self._db.reading() as conn:
            row = conn.execute(
                self._TASK_SELECT_BASE_SQL + " WHERE task_id = ?", (task_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row(row, self._TASK_COLUMNS)

    def update_task(
        self,
        task_id: str,
        updates: dict[str, Any],
        *,
        expected_status: str | None,
    ) -> int:
        """
        Update task columns and return the number of affected rows.

        With expected_status set, the update only applies while the task
        is still in that status; a concurrent transition makes it return 0.
        """
        if len(updates) == 0:
            return 0

        if any(column not in self._TASK_COLUMNS for column in updates):
            msg = "Attempted to update unknown task column"
            raise ValueError(msg)

        set_clause = ", ".join(f"{column} = ?" for column in updates)
        params: list[object] = list(updates.values())

        query = "UPDATE tasks SET " + set_clause + " WHERE task_id = ?"  # nosec B608
        params.append(task_id)
        if expected_status is not None:
            query += " AND status = ?"
            params.append(expected_status)

        with self._db.transaction() as conn:
            cursor = conn.execute(query, params)
        return int(cursor.rowcount)

    def list_tasks(
        self,
        statuses: tuple[str, ...] | None,
        client_id: str | None,
        specialist_id: str | None,
        limit: int | None,
        offset: int | None,
    ) -> list[dict[str, Any]]:
        """List tasks newest first with optional filters."""
        query = self._TASK_SELECT_BASE_SQL
        clauses: list[str] = []
        params: list[object] = []

        if statuses:
            clauses.append("status IN (" + ", ".join("?" for _ in statuses) + ")")
            params.extend(statuses)
        if client_id is not None:
            clauses.append("client_id = ?")
            params.append(client_id)
        if specialist_id is not None:
            clauses.append("specialist_id = ?")
            params.append(specialist_id)

        if len(clauses) > 0:
            query += " WHERE " + " AND ".join(clauses)

        query += " ORDER BY created_at DESC, rowid DESC"

        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
            if offset is not None:
                query += " OFFSET ?"
                params.append(offset)

        with self._db.reading() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row(row, self._TASK_COLUMNS) for row in rows]

    def count_tasks_by_status(self) -> dict[str, int]:
        """Count tasks grouped by status."""
        with self._db.reading() as conn:
            rows = conn.execute("SELECT status, COUNT(*) FROM tasks GROUP BY status").fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    # ------------------------------------------------------------------
    # Evaluations
    # ------------------------------------------------------------------

    def insert_evaluation(self, evaluation_data: dict[str, Any]) -> None:
        """Insert an evaluation row."""
        values = tuple(evaluation_data[column] for column in self._EVALUATION_COLUMNS)
        with self._db.transaction() as conn:
            conn.execute(
                "INSERT INTO evaluations (" + ", ".join(self._EVALUATION_COLUMNS) + ") "  # nosec B608
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                values,
            )

    def get_evaluation(self, evaluation_id: str) -> dict[str, Any] | None:
        """Fetch an evaluation by ID."""
        with self._db.reading() as conn:
            row = conn.execute(
                self._EVALUATION_SELECT_SQL + " WHERE evaluation_id = ?", (evaluation_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row(row, self._EVALUATION_COLUMNS)

    def list_evaluations(self, task_id: str) -> list[dict[str, Any]]:
        """Fetch all evaluations of a task, newest first."""
        with self._db.reading() as conn:
            rows = conn.execute(
                self._EVALUATION_SELECT_SQL
                + " WHERE task_id = ? ORDER BY created_at DESC, rowid DESC",
                (task_id,),
            ).fetchall()
        return [self._row(row, self._EVALUATION_COLUMNS) for row in rows]

    def get_accepted_evaluation(self, task_id: str) -> dict[str, Any] | None:
        """Fetch the accepted evaluation of a task, if any."""
        with self._db.reading() as conn:
            row = conn.execute(
                self._EVALUATION_SELECT_SQL + " WHERE task_id = ? AND status = 'accepted'",
                (task_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row(row, self._EVALUATION_COLUMNS)

    def accept_evaluation(self, task_id: str, evaluation_id: str) -> int:
        """
        Mark one pending evaluation accepted and reject its pending siblings.

        Returns the number of siblings rejected.

        Raises:
            EvaluationAlreadyAcceptedError: another evaluation of the task is
                already accepted, or this one is no longer pending.
        """
        with self._db.transaction() as conn:
            try:
                cursor = conn.execute(
                    "UPDATE evaluations SET status = 'accepted' "
                    "WHERE evaluation_id = ? AND task_id = ? AND status = 'pending'",
                    (evaluation_id, task_id),
                )
            except sqlite3.IntegrityError as exc:
                raise EvaluationAlreadyAcceptedError(task_id) from exc
            if cursor.rowcount != 1:
                raise EvaluationAlreadyAcceptedError(task_id)
            rejected = conn.execute(
                "UPDATE evaluations SET status = 'rejected' "
                "WHERE task_id = ? AND evaluation_id <> ? AND status = 'pending'",
                (task_id, evaluation_id),
            )
        return int(rejected.rowcount)

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def replace_active_assignment(self, assignment_data: dict[str, Any]) -> int:
        """
        Mark the task's active assignment reassigned and insert a new active one.

        Returns the number of assignments that were superseded.
        """
        values = tuple(assignment_data[column] for column in self._ASSIGNMENT_COLUMNS)
        with self._db.transaction() as conn:
            superseded = conn.execute(
                "UPDATE task_assignments SET status = 'reassigned' "
                "WHERE task_id = ? AND status = 'active'",
                (assignment_data["task_id"],),
            )
            conn.execute(
                "INSERT INTO task_assignments (" + ", ".join(self._ASSIGNMENT_COLUMNS) + ") "  # nosec B608
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                values,
            )
        return int(superseded.rowcount)

    def get_active_assignment(self, task_id: str) -> dict[str, Any] | None:
        """The task's active assignment, if any (at most one exists)."""
        with self._db.reading() as conn:
            row = conn.execute(
                "SELECT " + ", ".join(self._ASSIGNMENT_COLUMNS) + " FROM task_assignments "  # nosec B608
                "WHERE task_id = ? AND status = 'active'",
                (task_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row(row, self._ASSIGNMENT_COLUMNS)

    def complete_active_assignment(self, task_id: str) -> int:
        """Close the task's active assignment once work is completed."""
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE task_assignments SET status = 'completed' "
                "WHERE task_id = ? AND status = 'active'",
                (task_id,),
            )
        return int(cursor.rowcount)

    def list_assignments(self, task_id: str) -> list[dict[str, Any]]:
        """Assignment history of a task in chronological order."""
        with self._db.reading() as conn:
            rows = conn.execute(
                "SELECT " + ", ".join(self._ASSIGNMENT_COLUMNS) + " FROM task_assignments "  # nosec B608
                "WHERE task_id = ? ORDER BY assigned_at, rowid",
                (task_id,),
            ).fetchall()
        return [self._row(row, self._ASSIGNMENT_COLUMNS) for row in rows]

    # ------------------------------------------------------------------
    # Task updates
    # ------------------------------------------------------------------

    def insert_update(self, update_data: dict[str, Any]) -> None:
        """Append a task update (comment, progress note, or status change)."""
        values = tuple(update_data[column] for column in self._UPDATE_COLUMNS)
        with self._db.transaction() as conn:
            conn.execute(
                "INSERT INTO task_updates (" + ", ".join(self._UPDATE_COLUMNS) + ") "  # nosec B608
                "VALUES (?, ?, ?, ?, ?, ?)",
                values,
            )

    def list_updates(self, task_id: str) -> list[dict[str, Any]]:
        """Fetch the updates of a task, newest first."""
        with self._db.reading() as conn:
            rows = conn.execute(
                "SELECT " + ", ".join(self._UPDATE_COLUMNS) + " FROM task_updates "  # nosec B608
                "WHERE task_id = ? ORDER BY created_at DESC, rowid DESC",
                (task_id,),
            ).fetchall()
        return [self._row(row, self._UPDATE_COLUMNS) for row in rows]
