from __future__ import annotations

from datetime import UTC, datetime

from store.db import Database


MAX_BACKOFF_SECONDS = 60 * 60


def _utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


def compute_backoff_seconds(
    poll_interval_seconds: int, consecutive_failures: int
) -> int:
    if consecutive_failures <= 0:
        return poll_interval_seconds
    return min(MAX_BACKOFF_SECONDS, poll_interval_seconds * (2**consecutive_failures))


def _ensure_row(db: Database, feed_url: str) -> None:
    db.conn.execute(
        "INSERT INTO feed_health(feed_url) VALUES (?) ON CONFLICT(feed_url) DO NOTHING;",
        (feed_url,),
    )


def record_sync_success(
    db: Database,
    *,
    feed_url: str,
    total: int,
    inserted: int,
    updated: int,
    errors: int,
    duration_ms: int,
) -> None:
    now_iso = _utc_now_iso()
    with db.lock:
        _ensure_row(db, feed_url)
        db.conn.execute(
            """
            UPDATE feed_health
            SET last_attempt_at = ?,
                last_success_at = ?,
                consecutive_failures = 0,
                last_error = NULL,
                last_error_at = NULL,
                success_count = success_count + 1,
                last_total = ?,
                last_inserted = ?,
                last_updated = ?,
                last_errors = ?,
                last_duration_ms = ?
            WHERE feed_url = ?;
            """,
            (
                now_iso,
                now_iso,
                total,
                inserted,
                updated,
                errors,
                duration_ms,
                feed_url,
            ),
        )
        db.conn.commit()


def record_sync_error(
    db: Database,
    *,
    feed_url: str,
    error: str,
    poll_interval_seconds: int = 300,
) -> int:
    now_iso = _utc_now_iso()
    with db.lock:
        _ensure_row(db, feed_url)
        row = db.conn.execute(
            "SELECT consecutive_failures FROM feed_health WHERE feed_url = ?;",
            (feed_url,),
        ).fetchone()
        failures = int(row["consecutive_failures"]) + 1
        db.conn.execute(
            """
            UPDATE feed_health
            SET last_attempt_at = ?,
                last_error_at = ?,
                last_error = ?,
                consecutive_failures = ?,
                error_count = error_count + 1
            WHERE feed_url = ?;
            """,
            (now_iso, now_iso, error, failures, feed_url),
        )
        db.conn.commit()
    return compute_backoff_seconds(poll_interval_seconds, failures)


def get_feed_health(db: Database, feed_url: str) -> dict | None:
    with db.lock:
        row = db.conn.execute(
            "SELECT * FROM feed_health WHERE feed_url = ?;", (feed_url,)
        ).fetchone()
    return dict(row) if row is not None else None
