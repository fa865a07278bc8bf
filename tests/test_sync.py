from pathlib import Path

import httpx
import pytest

from app.settings import Settings
from health.health import get_feed_health
from ingest.fetch import FeedProtocolError
from ingest.sync import run_sync_cycle, sweep_retention
from normalize.codes import NormalizerTables
from normalize.models import EventType
from reconcile.reconciler import SyncAction
from store.alerts import SqliteAlertStore
from store.db import close_database, open_database


FIXTURES = Path(__file__).resolve().parent / "fixtures"
FEED_URL = "https://feeds.example.org/xml/rss.xml"


def _settings(tmp_path) -> Settings:
    return Settings(FEED_URL=FEED_URL, DB_PATH=tmp_path / "test.db")


def _serving(document: str) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=document)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _item(event_id: str, title: str, level: str = "Green") -> str:
    return (
        f"<item><title>{title}</title>"
        f"<gdacs:eventid>{event_id}</gdacs:eventid>"
        f"<gdacs:alertlevel>{level}</gdacs:alertlevel>"
        "<pubDate>Fri, 15 Aug 2025 10:00:00 GMT</pubDate></item>"
    )


@pytest.fixture
def db(tmp_path):
    database = open_database(tmp_path / "test.db")
    try:
        yield database
    finally:
        close_database(database)


@pytest.mark.asyncio
async def test_sync_fixture_inserts_then_updates(tmp_path, db) -> None:
    document = (FIXTURES / "gdacs_rss.xml").read_text(encoding="utf-8")
    store = SqliteAlertStore(db)
    settings = _settings(tmp_path)

    async with _serving(document) as client:
        first = await run_sync_cycle(client, settings=settings, store=store, db=db)
        second = await run_sync_cycle(client, settings=settings, store=store, db=db)

    assert (first.total, first.inserted, first.updated, first.errors) == (3, 3, 0, 0)
    assert (second.total, second.inserted, second.updated, second.errors) == (3, 0, 3, 0)
    assert [o.event_id for o in second.outcomes] == ["1486908", "1102931", "1017654"]
    assert store.count_alerts() == 3
    assert store.find_by_event_id("999") is None

    health = get_feed_health(db, FEED_URL)
    assert health is not None
    assert health["success_count"] == 2
    assert health["last_updated"] == 3


@pytest.mark.asyncio
async def test_malformed_item_yields_single_error_outcome(tmp_path, db) -> None:
    document = "<rss><channel>{}</channel></rss>".format(
        _item("1", "Green flood alert in Chad")
        + _item("2", "")
        + _item("3", "Orange earthquake alert in Peru")
    )
    store = SqliteAlertStore(db)

    async with _serving(document) as client:
        report = await run_sync_cycle(client, settings=_settings(tmp_path), store=store)

    assert report.total == 3
    assert [o.action for o in report.outcomes] == [
        SyncAction.INSERTED,
        SyncAction.ERROR,
        SyncAction.INSERTED,
    ]
    assert report.outcomes[1].event_id == "2"
    assert "no title" in report.outcomes[1].error
    assert report.success_rate == "66.67%"


@pytest.mark.asyncio
async def test_latest_alert_level_wins_across_cycles(tmp_path, db) -> None:
    store = SqliteAlertStore(db)
    settings = _settings(tmp_path)
    before = "<rss>{}</rss>".format(_item("55", "Earthquake in Japan", "Green"))
    after = "<rss>{}</rss>".format(_item("55", "Earthquake in Japan", "Red"))

    async with _serving(before) as client:
        await run_sync_cycle(client, settings=settings, store=store)
    async with _serving(after) as client:
        report = await run_sync_cycle(client, settings=settings, store=store)

    assert report.outcomes[0].action is SyncAction.UPDATED
    assert store.find_by_event_id("55")["alert_level"] == "red"
    assert store.count_alerts() == 1


@pytest.mark.asyncio
async def test_duplicate_event_in_one_fetch_reconciled_once(tmp_path, db) -> None:
    document = "<rss>{}</rss>".format(
        _item("9", "Green flood alert in Chad")
        + _item("9", "Orange flood alert in Chad", "Orange")
    )
    store = SqliteAlertStore(db)

    async with _serving(document) as client:
        report = await run_sync_cycle(client, settings=_settings(tmp_path), store=store)

    assert [(o.event_id, o.action) for o in report.outcomes] == [
        ("9", SyncAction.INSERTED)
    ]
    assert store.find_by_event_id("9")["alert_level"] == "orange"


@pytest.mark.asyncio
async def test_non_xml_body_syncs_nothing(tmp_path, db) -> None:
    store = SqliteAlertStore(db)
    async with _serving("<html>maintenance</html>") as client:
        report = await run_sync_cycle(client, settings=_settings(tmp_path), store=store)

    assert report.total == 0
    assert report.to_dict()["results"]["successRate"] == "0%"


@pytest.mark.asyncio
async def test_fetch_failure_aborts_cycle_and_records_health(tmp_path, db) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    store = SqliteAlertStore(db)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(FeedProtocolError) as info:
            await run_sync_cycle(
                client, settings=_settings(tmp_path), store=store, db=db
            )

    assert info.value.retry_after_seconds == 600
    assert store.count_alerts() == 0
    health = get_feed_health(db, FEED_URL)
    assert health["consecutive_failures"] == 1
    assert "FeedProtocolError" in health["last_error"]


@pytest.mark.asyncio
async def test_report_payload_shape(tmp_path, db) -> None:
    document = "<rss>{}</rss>".format(_item("1", "Green flood alert in Chad"))
    store = SqliteAlertStore(db)

    async with _serving(document) as client:
        report = await run_sync_cycle(client, settings=_settings(tmp_path), store=store)

    payload = report.to_dict()
    assert payload["results"] == {
        "total": 1,
        "inserted": 1,
        "updated": 0,
        "errors": 0,
        "successRate": "100.00%",
    }
    assert payload["details"] == [{"eventId": "1", "action": "inserted", "error": None}]
    assert payload["metadata"]["duration"].endswith("ms")


@pytest.mark.asyncio
async def test_sweep_retention_uses_configured_windows(tmp_path, db) -> None:
    document = "<rss>{}</rss>".format(
        _item("old", "Green flood alert in Chad").replace(
            "Fri, 15 Aug 2025 10:00:00 GMT", "Mon, 01 Jan 2001 00:00:00 GMT"
        )
    )
    store = SqliteAlertStore(db)
    settings = Settings(ALERTS_RETENTION_DAYS=30, STALE_ALERT_HOURS=72)

    async with _serving(document) as client:
        await run_sync_cycle(client, settings=settings, store=store)

    assert sweep_retention(store, settings=settings) == {"deleted": 1, "deactivated": 0}
    assert store.count_alerts() == 0


@pytest.mark.asyncio
async def test_fetch_failure_without_database_has_no_backoff(tmp_path, db) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502)

    store = SqliteAlertStore(db)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(FeedProtocolError) as info:
            await run_sync_cycle(client, settings=_settings(tmp_path), store=store)

    assert info.value.retry_after_seconds is None


@pytest.mark.asyncio
async def test_out_of_range_numbers_do_not_abort_cycle(tmp_path, db) -> None:
    hostile = _item("66", "Green earthquake alert in Fiji").replace(
        "</item>",
        "<georss:point>1e30 5</georss:point>"
        f"<gdacs:population>{'9' * 308} thousand</gdacs:population></item>",
    )
    document = "<rss>{}</rss>".format(hostile + _item("67", "Green flood alert in Chad"))
    store = SqliteAlertStore(db)

    async with _serving(document) as client:
        report = await run_sync_cycle(client, settings=_settings(tmp_path), store=store)

    assert [(o.event_id, o.action) for o in report.outcomes] == [
        ("66", SyncAction.INSERTED),
        ("67", SyncAction.INSERTED),
    ]
    stored = store.find_by_event_id("66")
    assert stored["latitude"] is None
    assert stored["affected_population"] is None


@pytest.mark.asyncio
async def test_unexpected_normalize_error_is_one_outcome(tmp_path, db) -> None:
    tables = NormalizerTables(event_type_keywords=((None, EventType.FLOOD),))
    document = "<rss>{}</rss>".format(
        _item("70", "Green alert in Fiji")
        + _item("71", "Green alert in Chad").replace(
            "</item>", "<gdacs:eventtype>FL</gdacs:eventtype></item>"
        )
    )
    store = SqliteAlertStore(db)

    async with _serving(document) as client:
        report = await run_sync_cycle(
            client, settings=_settings(tmp_path), store=store, tables=tables
        )

    assert [(o.event_id, o.action) for o in report.outcomes] == [
        ("70", SyncAction.ERROR),
        ("71", SyncAction.INSERTED),
    ]
    assert report.outcomes[0].error
    assert store.count_alerts() == 1
