from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from .models import AuditEvent, ResponseFilter, UserRecord, WeeklyResponse

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RepositoryError(RuntimeError):
    pass


class Database:
    def __init__(self, db_path: Path | str) -> None:
        self.db_path = db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as exc:
            raise RepositoryError(f"Cannot open database {self.db_path}: {exc}") from exc

        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise RepositoryError(str(exc)) from exc
        finally:
            conn.close()

    def init(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    user_id INTEGER PRIMARY KEY,
                    display_name TEXT,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    opt_out INTEGER NOT NULL DEFAULT 0,
                    preferences TEXT NOT NULL DEFAULT '{}',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_users_active
                    ON users (is_active, opt_out);

                CREATE TABLE IF NOT EXISTS weekly_responses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    week_start_date TEXT NOT NULL,
                    participated INTEGER NOT NULL,
                    categories TEXT NOT NULL DEFAULT '[]',
                    tools TEXT NOT NULL DEFAULT '[]',
                    custom_tools TEXT NOT NULL DEFAULT '[]',
                    custom_details TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (user_id, week_start_date),
                    FOREIGN KEY(user_id) REFERENCES users(user_id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_weekly_responses_week
                    ON weekly_responses (week_start_date, participated);

                CREATE TABLE IF NOT EXISTS audit_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    action TEXT NOT NULL,
                    user_id INTEGER,
                    details TEXT NOT NULL DEFAULT '{}',
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_audit_logs_action
                    ON audit_logs (action, created_at);

                CREATE TABLE IF NOT EXISTS admin_users (
                    user_id INTEGER PRIMARY KEY,
                    display_name TEXT,
                    permissions TEXT NOT NULL DEFAULT '["read", "export"]',
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS weekly_schedules (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    day_of_week INTEGER CHECK (day_of_week >= 0 AND day_of_week <= 6),
                    time_of_day TEXT,
                    timezone TEXT NOT NULL DEFAULT 'UTC',
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(user_id) REFERENCES users(user_id) ON DELETE CASCADE
                );
                """
            )

    def _row_to_user(self, row: sqlite3.Row) -> UserRecord:
        return UserRecord(
            user_id=row["user_id"],
            display_name=row["display_name"],
            is_active=bool(row["is_active"]),
            opt_out=bool(row["opt_out"]),
            created_at=row["created_at"],
        )

    def _row_to_response(self, row: sqlite3.Row) -> WeeklyResponse:
        return WeeklyResponse(
            id=row["id"],
            user_id=row["user_id"],
            week_start_date=date.fromisoformat(row["week_start_date"]),
            participated=bool(row["participated"]),
            categories=json.loads(row["categories"] or "[]"),
            tools=json.loads(row["tools"] or "[]"),
            custom_tools=json.loads(row["custom_tools"] or "[]"),
            custom_details=row["custom_details"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_audit(self, row: sqlite3.Row) -> AuditEvent:
        return AuditEvent(
            action=row["action"],
            user_id=row["user_id"],
            details=json.loads(row["details"] or "{}"),
            created_at=row["created_at"],
        )

    # Users directory

    def get_user(self, user_id: int) -> UserRecord | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE user_id = ?", (user_id,)).fetchone()
            return self._row_to_user(row) if row else None

    def ensure_user(self, user_id: int, display_name: str | None = None) -> UserRecord:
        now = utc_now_iso()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO users (user_id, display_name, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    display_name = COALESCE(excluded.display_name, users.display_name),
                    updated_at = excluded.updated_at
                """,
                (user_id, display_name, now, now),
            )
            row = conn.execute("SELECT * FROM users WHERE user_id = ?", (user_id,)).fetchone()
            if row is None:
                raise RepositoryError("Failed to create user")
            return self._row_to_user(row)

    def set_opt_out(self, user_id: int, opt_out: bool) -> None:
        now = utc_now_iso()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO users (user_id, opt_out, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    opt_out = excluded.opt_out,
                    updated_at = excluded.updated_at
                """,
                (user_id, int(opt_out), now, now),
            )

    def set_active(self, user_id: int, is_active: bool) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE users SET is_active = ?, updated_at = ? WHERE user_id = ?",
                (int(is_active), utc_now_iso(), user_id),
            )

    def list_users(self) -> list[UserRecord]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY user_id ASC").fetchall()
            return [self._row_to_user(r) for r in rows]

    def list_active_user_ids(self) -> list[int]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT user_id FROM users WHERE is_active = 1 ORDER BY user_id ASC"
            ).fetchall()
            return [int(r["user_id"]) for r in rows]

    # Weekly responses

    def upsert_weekly_response(self, response: WeeklyResponse) -> WeeklyResponse:
        now = utc_now_iso()
        week = response.week_start_date.isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO users (user_id, created_at, updated_at)
                VALUES (?, ?, ?)
                """,
                (response.user_id, now, now),
            )
            conn.execute(
                """
                INSERT INTO weekly_responses (
                    user_id, week_start_date, participated, categories, tools,
                    custom_tools, custom_details, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, week_start_date) DO UPDATE SET
                    participated = excluded.participated,
                    categories = excluded.categories,
                    tools = excluded.tools,
                    custom_tools = excluded.custom_tools,
                    custom_details = excluded.custom_details,
                    updated_at = excluded.updated_at
                """,
                (
                    response.user_id,
                    week,
                    int(response.participated),
                    json.dumps(response.categories, ensure_ascii=True),
                    json.dumps(response.tools, ensure_ascii=True),
                    json.dumps(response.custom_tools, ensure_ascii=True),
                    response.custom_details,
                    now,
                    now,
                ),
            )
            row = conn.execute(
                "SELECT * FROM weekly_responses WHERE user_id = ? AND week_start_date = ?",
                (response.user_id, week),
            ).fetchone()
            if row is None:
                raise RepositoryError("Failed to store weekly response")
            return self._row_to_response(row)

    def find_responses(self, filters: ResponseFilter | None = None) -> list[WeeklyResponse]:
        filters = filters or ResponseFilter()
        clauses: list[str] = []
        params: list[Any] = []

        if filters.week_start_date is not None:
            clauses.append("week_start_date = ?")
            params.append(filters.week_start_date.isoformat())
        if filters.participated is not None:
            clauses.append("participated = ?")
            params.append(int(filters.participated))
        if filters.category:
            clauses.append("EXISTS (SELECT 1 FROM json_each(weekly_responses.categories) WHERE value = ?)")
            params.append(filters.category)
        if filters.tool:
            clauses.append("EXISTS (SELECT 1 FROM json_each(weekly_responses.tools) WHERE value = ?)")
            params.append(filters.tool)
        if filters.user_id is not None:
            clauses.append("user_id = ?")
            params.append(filters.user_id)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM weekly_responses {where} ORDER BY updated_at DESC, id DESC",
                params,
            ).fetchall()
            return [self._row_to_response(r) for r in rows]

    def responded_user_ids(self, week_start: date) -> set[int]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT user_id FROM weekly_responses WHERE week_start_date = ?",
                (week_start.isoformat(),),
            ).fetchall()
            return {int(r["user_id"]) for r in rows}

    # Audit log

    def append_audit_event(self, event: AuditEvent) -> None:
        """Best-effort insert; failures are logged and never raised."""
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO audit_logs (action, user_id, details, created_at) VALUES (?, ?, ?, ?)",
                    (
                        event.action,
                        event.user_id,
                        json.dumps(event.details, ensure_ascii=True, default=str),
                        event.created_at or utc_now_iso(),
                    ),
                )
        except RepositoryError as exc:
            logger.error("Failed to log audit event %s: %s", event.action, exc)

    def list_audit_events(self, action: str | None = None, limit: int = 100) -> list[AuditEvent]:
        with self._connect() as conn:
            if action:
                rows = conn.execute(
                    "SELECT * FROM audit_logs WHERE action = ? ORDER BY id DESC LIMIT ?",
                    (action, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM audit_logs ORDER BY id DESC LIMIT ?",
                    (limit,),
                ).fetchall()
            return [self._row_to_audit(r) for r in rows]

    # Admins

    def add_admin(self, user_id: int, display_name: str | None = None) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO admin_users (user_id, display_name, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO NOTHING
                """,
                (user_id, display_name, utc_now_iso()),
            )

    def is_admin(self, user_id: int) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM admin_users WHERE user_id = ?", (user_id,)).fetchone()
            return row is not None
