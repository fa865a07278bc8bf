from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

from normalize.models import NormalizedAlert
from normalize.timestamps import to_iso
from store.db import Database


_COLUMNS: tuple[str, ...] = (
    "event_id",
    "episode_id",
    "event_type",
    "alert_level",
    "alert_score",
    "title",
    "description",
    "country",
    "iso3",
    "latitude",
    "longitude",
    "min_latitude",
    "max_latitude",
    "min_longitude",
    "max_longitude",
    "severity_value",
    "severity_unit",
    "severity_text",
    "depth_km",
    "affected_population",
    "deaths",
    "displaced",
    "vulnerability",
    "glide",
    "event_time",
    "window_start",
    "window_end",
    "published_at",
    "last_updated",
    "report_url",
    "cap_url",
    "icon_url",
    "resource_links",
    "is_active",
    "version",
    "raw",
    "updated_at",
    "last_seen_at",
)

_JSON_COLUMNS = ("resource_links", "raw")


def _utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


def alert_to_row(alert: NormalizedAlert, *, seen_at: str) -> dict:
    coords = alert.coordinates
    bbox = alert.bounding_box
    severity = alert.severity
    return {
        "event_id": alert.event_id,
        "episode_id": alert.episode_id,
        "event_type": alert.event_type.value,
        "alert_level": alert.alert_level.value,
        "alert_score": alert.alert_score,
        "title": alert.title,
        "description": alert.description,
        "country": alert.country,
        "iso3": alert.iso3,
        "latitude": str(coords.lat) if coords else None,
        "longitude": str(coords.lon) if coords else None,
        "min_latitude": str(bbox.min_lat) if bbox else None,
        "max_latitude": str(bbox.max_lat) if bbox else None,
        "min_longitude": str(bbox.min_lon) if bbox else None,
        "max_longitude": str(bbox.max_lon) if bbox else None,
        "severity_value": severity.value if severity else None,
        "severity_unit": severity.unit if severity else None,
        "severity_text": severity.description if severity else None,
        "depth_km": alert.depth_km,
        "affected_population": alert.affected_population,
        "deaths": alert.deaths,
        "displaced": alert.displaced,
        "vulnerability": alert.vulnerability,
        "glide": alert.glide,
        "event_time": to_iso(alert.event_time),
        "window_start": to_iso(alert.window_start),
        "window_end": to_iso(alert.window_end),
        "published_at": to_iso(alert.published_at),
        "last_updated": to_iso(alert.last_updated),
        "report_url": alert.report_url,
        "cap_url": alert.cap_url,
        "icon_url": alert.icon_url,
        "resource_links": json.dumps(
            [{"uri": link.uri, "title": link.title} for link in alert.resource_links],
            ensure_ascii=False,
        ),
        "is_active": 1 if alert.is_active else 0,
        "version": alert.version,
        "raw": json.dumps(alert.raw, ensure_ascii=False),
        "updated_at": seen_at,
        "last_seen_at": seen_at,
    }


def _row_to_dict(row) -> dict:
    record = dict(row)
    for column in _JSON_COLUMNS:
        if record.get(column) is not None:
            record[column] = json.loads(record[column])
    record["is_active"] = bool(record["is_active"])
    return record


class SqliteAlertStore:
    def __init__(self, db: Database) -> None:
        self.db = db

    def find_by_event_id(self, event_id: str) -> dict | None:
        with self.db.lock:
            row = self.db.conn.execute(
                "SELECT * FROM alerts WHERE event_id = ? LIMIT 1;", (event_id,)
            ).fetchone()
        return _row_to_dict(row) if row is not None else None

    def insert(self, alert: NormalizedAlert) -> dict:
        now_iso = _utc_now_iso()
        row = alert_to_row(alert, seen_at=now_iso)
        row["created_at"] = now_iso
        columns = (*_COLUMNS, "created_at")
        assignments = ", ".join(
            f"{c} = excluded.{c}" for c in _COLUMNS if c != "event_id"
        )
        # A concurrent cycle may have inserted the same event first; converge on this write.
        sql = f"""
            INSERT INTO alerts({", ".join(columns)})
            VALUES({", ".join(f":{c}" for c in columns)})
            ON CONFLICT(event_id) DO UPDATE SET {assignments};
        """
        with self.db.lock:
            self.db.conn.execute(sql, row)
            self.db.conn.commit()
            stored = self.db.conn.execute(
                "SELECT * FROM alerts WHERE event_id = ?;", (alert.event_id,)
            ).fetchone()
        return _row_to_dict(stored)

    def update(self, event_id: str, alert: NormalizedAlert) -> dict:
        row = alert_to_row(alert, seen_at=_utc_now_iso())
        row["event_id"] = event_id
        assignments = ", ".join(f"{c} = :{c}" for c in _COLUMNS if c != "event_id")
        with self.db.lock:
            cursor = self.db.conn.execute(
                f"UPDATE alerts SET {assignments} WHERE event_id = :event_id;", row
            )
            if cursor.rowcount == 0:
                self.db.conn.rollback()
                raise LookupError(f"no stored alert with event id {event_id}")
            self.db.conn.commit()
            stored = self.db.conn.execute(
                "SELECT * FROM alerts WHERE event_id = ?;", (event_id,)
            ).fetchone()
        return _row_to_dict(stored)

    def list_alerts(
        self,
        *,
        event_type: str | None = None,
        alert_level: str | None = None,
        country: str | None = None,
        is_active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict]:
        where: list[str] = []
        params: list[object] = []
        if event_type:
            where.append("event_type = ?")
            params.append(event_type)
        if alert_level:
            where.append("alert_level = ?")
            params.append(alert_level)
        if country:
            where.append("country = ?")
            params.append(country)
        if is_active is not None:
            where.append("is_active = ?")
            params.append(1 if is_active else 0)

        sql = "SELECT * FROM alerts"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY published_at DESC LIMIT ? OFFSET ?;"
        params.extend([limit, offset])

        with self.db.lock:
            rows = self.db.conn.execute(sql, params).fetchall()
        return [_row_to_dict(r) for r in rows]

    def count_alerts(self) -> int:
        with self.db.lock:
            row = self.db.conn.execute("SELECT COUNT(*) AS n FROM alerts;").fetchone()
        return int(row["n"])

    def recent_alerts(self, hours: int = 24) -> list[dict]:
        cutoff = (
            (datetime.now(tz=UTC) - timedelta(hours=hours))
            .isoformat(timespec="seconds")
            .replace("+00:00", "Z")
        )
        with self.db.lock:
            rows = self.db.conn.execute(
                "SELECT * FROM alerts WHERE published_at >= ? ORDER BY published_at DESC;",
                (cutoff,),
            ).fetchall()
        return [_row_to_dict(r) for r in rows]

    def alerts_by_min_score(self, min_score: float) -> list[dict]:
        with self.db.lock:
            rows = self.db.conn.execute(
                """
                SELECT *
                FROM alerts
                WHERE alert_score >= ?
                ORDER BY published_at DESC;
                """,
                (min_score,),
            ).fetchall()
        return [_row_to_dict(r) for r in rows]

    def alerts_in_bbox(
        self, *, min_lat: float, max_lat: float, min_lon: float, max_lon: float
    ) -> list[dict]:
        with self.db.lock:
            rows = self.db.conn.execute(
                """
                SELECT *
                FROM alerts
                WHERE latitude IS NOT NULL
                  AND longitude IS NOT NULL
                  AND CAST(latitude AS REAL) BETWEEN ? AND ?
                  AND CAST(longitude AS REAL) BETWEEN ? AND ?
                ORDER BY published_at DESC;
                """,
                (min_lat, max_lat, min_lon, max_lon),
            ).fetchall()
        return [_row_to_dict(r) for r in rows]

    def delete_alerts_older_than(self, days: int) -> int:
        cutoff = (
            (datetime.now(tz=UTC) - timedelta(days=days))
            .isoformat(timespec="seconds")
            .replace("+00:00", "Z")
        )
        with self.db.lock:
            cursor = self.db.conn.execute(
                "DELETE FROM alerts WHERE published_at < ?;", (cutoff,)
            )
            self.db.conn.commit()
        return cursor.rowcount

    def deactivate_stale_alerts(self, hours: int) -> int:
        cutoff = (
            (datetime.now(tz=UTC) - timedelta(hours=hours))
            .isoformat(timespec="seconds")
            .replace("+00:00", "Z")
        )
        with self.db.lock:
            cursor = self.db.conn.execute(
                "UPDATE alerts SET is_active = 0 WHERE is_active = 1 AND last_seen_at < ?;",
                (cutoff,),
            )
            self.db.conn.commit()
        return cursor.rowcount
