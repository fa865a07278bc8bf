from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Database:
    conn: sqlite3.Connection
    lock: threading.Lock


_MIGRATIONS: list[tuple[int, str]] = [
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
          version INTEGER NOT NULL PRIMARY KEY
        );

        CREATE TABLE IF NOT EXISTS alerts (
          event_id TEXT NOT NULL PRIMARY KEY,
          episode_id TEXT NULL,
          event_type TEXT NOT NULL,
          alert_level TEXT NOT NULL,
          alert_score REAL NULL,
          title TEXT NOT NULL,
          description TEXT NOT NULL DEFAULT '',

          country TEXT NULL,
          iso3 TEXT NULL,
          latitude TEXT NULL,
          longitude TEXT NULL,
          min_latitude TEXT NULL,
          max_latitude TEXT NULL,
          min_longitude TEXT NULL,
          max_longitude TEXT NULL,

          severity_value REAL NULL,
          severity_unit TEXT NULL,
          severity_text TEXT NULL,
          depth_km REAL NULL,
          affected_population INTEGER NULL,
          deaths INTEGER NULL,
          displaced INTEGER NULL,
          vulnerability REAL NULL,
          glide TEXT NULL,

          event_time TEXT NULL,
          window_start TEXT NULL,
          window_end TEXT NULL,
          published_at TEXT NOT NULL,
          last_updated TEXT NULL,

          report_url TEXT NULL,
          cap_url TEXT NULL,
          icon_url TEXT NULL,
          resource_links TEXT NOT NULL DEFAULT '[]',

          is_active INTEGER NOT NULL DEFAULT 1,
          version INTEGER NULL,
          raw TEXT NOT NULL,

          created_at TEXT NOT NULL,
          updated_at TEXT NOT NULL,
          last_seen_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS alerts_published_at_idx ON alerts(published_at);
        CREATE INDEX IF NOT EXISTS alerts_event_type_idx ON alerts(event_type);
        CREATE INDEX IF NOT EXISTS alerts_alert_level_idx ON alerts(alert_level);
        CREATE INDEX IF NOT EXISTS alerts_country_idx ON alerts(country);
        """,
    ),
    (
        2,
        """
        CREATE TABLE IF NOT EXISTS feed_health (
          feed_url TEXT NOT NULL PRIMARY KEY,
          last_attempt_at TEXT NULL,
          last_success_at TEXT NULL,
          last_error_at TEXT NULL,
          last_error TEXT NULL,
          consecutive_failures INTEGER NOT NULL DEFAULT 0,
          success_count INTEGER NOT NULL DEFAULT 0,
          error_count INTEGER NOT NULL DEFAULT 0,
          last_total INTEGER NULL,
          last_inserted INTEGER NULL,
          last_updated INTEGER NULL,
          last_errors INTEGER NULL,
          last_duration_ms INTEGER NULL
        );
        """,
    ),
]


def open_database(path: Path) -> Database:
    if str(path) != ":memory:":
        path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    conn.execute("PRAGMA busy_timeout=5000;")
    _apply_migrations(conn)
    return Database(conn=conn, lock=threading.Lock())


def close_database(db: Database) -> None:
    with db.lock:
        db.conn.close()


def _apply_migrations(conn: sqlite3.Connection) -> None:
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER NOT NULL PRIMARY KEY);"
    )
    row = conn.execute(
        "SELECT COALESCE(MAX(version), 0) AS v FROM schema_migrations;"
    ).fetchone()
    current_version = int(row["v"])

    for version, sql in _MIGRATIONS:
        if version <= current_version:
            continue
        conn.executescript(sql)
        conn.execute("INSERT INTO schema_migrations(version) VALUES (?);", (version,))
        conn.commit()
