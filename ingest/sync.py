from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime

import httpx

from app.settings import Settings
from health.health import record_sync_error, record_sync_success
from ingest.extract import extract_items
from ingest.fetch import FeedFetchError, fetch_feed
from normalize.codes import NormalizerTables
from normalize.models import ItemFailure, NormalizedAlert
from normalize.normalize import dedupe_alerts, normalize_items
from normalize.timestamps import to_iso
from reconcile.reconciler import AlertStore, SyncAction, SyncOutcome, reconcile
from store.alerts import SqliteAlertStore
from store.db import Database


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncReport:
    fetched_at: datetime
    duration_ms: int
    outcomes: list[SyncOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def inserted(self) -> int:
        return sum(1 for o in self.outcomes if o.action is SyncAction.INSERTED)

    @property
    def updated(self) -> int:
        return sum(1 for o in self.outcomes if o.action is SyncAction.UPDATED)

    @property
    def errors(self) -> int:
        return sum(1 for o in self.outcomes if o.action is SyncAction.ERROR)

    @property
    def success_rate(self) -> str:
        if self.total == 0:
            return "0%"
        return f"{(self.total - self.errors) / self.total * 100:.2f}%"

    def to_dict(self) -> dict:
        return {
            "metadata": {
                "duration": f"{self.duration_ms}ms",
                "timestamp": to_iso(self.fetched_at),
            },
            "results": {
                "total": self.total,
                "inserted": self.inserted,
                "updated": self.updated,
                "errors": self.errors,
                "successRate": self.success_rate,
            },
            "details": [o.to_dict() for o in self.outcomes],
        }


def _ordered_outcomes(
    entries: list[NormalizedAlert | ItemFailure], reconciled: list[SyncOutcome]
) -> list[SyncOutcome]:
    by_event_id = {o.event_id: o for o in reconciled}
    outcomes: list[SyncOutcome] = []
    emitted: set[str] = set()
    for entry in entries:
        if isinstance(entry, ItemFailure):
            outcomes.append(
                SyncOutcome(
                    event_id=entry.event_id, action=SyncAction.ERROR, error=entry.error
                )
            )
            continue
        if entry.event_id in emitted:
            continue
        emitted.add(entry.event_id)
        outcomes.append(by_event_id[entry.event_id])
    return outcomes


def sweep_retention(store: SqliteAlertStore, *, settings: Settings) -> dict[str, int]:
    deleted = store.delete_alerts_older_than(settings.alerts_retention_days)
    deactivated = store.deactivate_stale_alerts(settings.stale_alert_hours)
    if deleted or deactivated:
        logger.info(
            "retention sweep: %d alerts deleted, %d deactivated", deleted, deactivated
        )
    return {"deleted": deleted, "deactivated": deactivated}


async def run_sync_cycle(
    client: httpx.AsyncClient,
    *,
    settings: Settings,
    store: AlertStore,
    db: Database | None = None,
    tables: NormalizerTables | None = None,
) -> SyncReport:
    if tables is None:
        tables = NormalizerTables.with_population_multipliers(
            settings.population_multipliers
        )
    started = time.monotonic()
    fetched_at = datetime.now(tz=UTC)
    logger.info("starting sync of %s", settings.feed_url)

    try:
        document = await fetch_feed(
            client,
            url=settings.feed_url,
            user_agent=settings.user_agent,
            timeout_seconds=settings.fetch_timeout_seconds,
        )
    except FeedFetchError as e:
        logger.error("sync of %s aborted: %s", settings.feed_url, e)
        if db is not None:
            e.retry_after_seconds = record_sync_error(
                db,
                feed_url=settings.feed_url,
                error=f"{e.__class__.__name__}: {e}",
                poll_interval_seconds=settings.poll_interval_seconds,
            )
        raise

    items = extract_items(document)
    entries = normalize_items(items, fetched_at=fetched_at, tables=tables)
    alerts = dedupe_alerts(
        entry for entry in entries if isinstance(entry, NormalizedAlert)
    )
    reconciled = reconcile(alerts, store)

    report = SyncReport(
        fetched_at=fetched_at,
        duration_ms=int((time.monotonic() - started) * 1000),
        outcomes=_ordered_outcomes(entries, reconciled),
    )
    logger.info(
        "sync of %s finished in %dms: %d total, %d inserted, %d updated, %d errors",
        settings.feed_url,
        report.duration_ms,
        report.total,
        report.inserted,
        report.updated,
        report.errors,
    )
    if db is not None:
        record_sync_success(
            db,
            feed_url=settings.feed_url,
            total=report.total,
            inserted=report.inserted,
            updated=report.updated,
            errors=report.errors,
            duration_ms=report.duration_ms,
        )
    return report
