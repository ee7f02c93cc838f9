from __future__ import annotations

import json
import sqlite3
from dataclasses import replace
from typing import Any, Callable, Optional, TypeVar

from flask import Flask, current_app, g

from models import AuthUser, CheckedOut, KioskSettings, MovementLog, Resident, Role, Status, make_id
from occupancy import utcnow_iso

KEYS = {
    "residents": "sheltersync_residents",
    "logs": "sheltersync_logs",
    "staff": "sheltersync_staff",
    "kiosk_settings": "sheltersync_kiosk_settings",
}

MAX_LOGS = 1000

T = TypeVar("T")


def default_residents() -> list[Resident]:
    now = utcnow_iso()
    return [
        Resident(
            id="1",
            name="John Doe",
            last_action_at=now,
            photo_url="https://picsum.photos/seed/john/200",
            status=Status(text="Active", color="green"),
            bio="Long-term resident focusing on job placement.",
            gender="Male",
            custom_field_label="Case Manager",
            custom_field_value="Sarah Williams",
            notes="Needs morning meds reminder.",
        ),
        Resident(
            id="2",
            name="Jane Smith",
            last_action_at=now,
            photo_url="https://picsum.photos/seed/jane/200",
            status=Status(text="Restricted", color="red"),
            bio="New arrival, exploring local services.",
            gender="Female",
            custom_field_label="Dietary Needs",
            custom_field_value="Gluten Free",
            notes="Allergic to peanuts.",
            occupancy=CheckedOut(destination="Grocery Store", expected_return_time="18:00"),
        ),
    ]


def default_staff() -> list[AuthUser]:
    return [
        AuthUser(
            id="admin1",
            username="admin",
            pin="1234",
            role=Role.ADMIN,
            name="System Admin",
            photo_url="https://api.dicebear.com/7.x/avataaars/svg?seed=admin",
            email="admin@sheltersync.com",
            notes="Primary system administrator.",
        )
    ]


def get_db() -> Any:
    if "db" in g:
        return g.db

    database_url = current_app.config.get("DATABASE_URL")
    if database_url:
        import psycopg2

        conn = psycopg2.connect(database_url)
        conn.autocommit = True
        g.db = conn
        g.db_kind = "pg"
        return conn

    conn = sqlite3.connect(current_app.config["SQLITE_PATH"])
    conn.row_factory = sqlite3.Row
    g.db = conn
    g.db_kind = "sqlite"
    return conn


def close_db(_exc=None) -> None:
    conn = g.pop("db", None)
    g.pop("db_kind", None)
    if conn is not None:
        try:
            conn.close()
        except Exception:
            pass


def init_app(app: Flask) -> None:
    app.teardown_appcontext(close_db)


def _sql(sql: str) -> str:
    if g.get("db_kind") == "pg":
        return sql.replace("?", "%s")
    return sql


def db_execute(sql: str, params: tuple = ()) -> None:
    conn = get_db()
    cur = conn.cursor()
    cur.execute(_sql(sql), params)
    cur.close()
    if g.get("db_kind") != "pg":
        conn.commit()


def db_fetchone(sql: str, params: tuple = ()) -> Optional[Any]:
    conn = get_db()
    cur = conn.cursor()
    cur.execute(_sql(sql), params)
    row = cur.fetchone()
    cur.close()
    return row


def init_db() -> None:
    get_db()
    db_execute(
        """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )


def _read(key: str) -> Optional[Any]:
    row = db_fetchone("SELECT value FROM kv_store WHERE key = ?", (key,))
    if not row:
        return None

    raw = row[0]
    try:
        return json.loads(raw)
    except ValueError:
        current_app.logger.warning("Ignoring unreadable record %s", key)
        return None


def _write(key: str, value: Any) -> None:
    db_execute(
        """
        INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
        ON CONFLICT (key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
        """,
        (key, json.dumps(value), utcnow_iso()),
    )


def _read_list(key: str, parse: Callable[[dict[str, Any]], T], default: Callable[[], list[T]]) -> list[T]:
    data = _read(key)
    if not isinstance(data, list):
        return default()
    return [parse(item) for item in data if isinstance(item, dict)]


def get_residents() -> list[Resident]:
    return _read_list(KEYS["residents"], Resident.from_dict, default_residents)


def save_residents(residents: list[Resident]) -> None:
    _write(KEYS["residents"], [r.to_dict() for r in residents])


def find_resident(resident_id: str) -> Optional[Resident]:
    for r in get_residents():
        if r.id == resident_id:
            return r
    return None


def get_logs() -> list[MovementLog]:
    return _read_list(KEYS["logs"], MovementLog.from_dict, list)


def add_log(log: MovementLog) -> MovementLog:
    if not log.id:
        log = replace(log, id=make_id())
    logs = [log] + get_logs()
    _write(KEYS["logs"], [entry.to_dict() for entry in logs[:MAX_LOGS]])
    return log


def get_staff() -> list[AuthUser]:
    return _read_list(KEYS["staff"], AuthUser.from_dict, default_staff)


def save_staff(staff: list[AuthUser]) -> None:
    _write(KEYS["staff"], [s.to_dict() for s in staff])


def find_staff(user_id: str) -> Optional[AuthUser]:
    for s in get_staff():
        if s.id == user_id:
            return s
    return None


def get_kiosk_settings() -> KioskSettings:
    data = _read(KEYS["kiosk_settings"])
    if not isinstance(data, dict):
        return KioskSettings()
    return KioskSettings.from_dict(data)


def save_kiosk_settings(settings: KioskSettings) -> None:
    _write(KEYS["kiosk_settings"], settings.to_dict())
