from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import TypeVar
from urllib.parse import parse_qsl, urlsplit

from ingest.extract import RawItem
from normalize.codes import DEFAULT_TABLES, NormalizerTables
from normalize.models import (
    AlertLevel,
    BoundingBox,
    Coordinates,
    EventType,
    ItemFailure,
    NormalizedAlert,
    ResourceLink,
    Severity,
)
from normalize.quantities import (
    parse_non_negative_int,
    parse_number,
    parse_population,
)
from normalize.timestamps import parse_timestamp, parse_title_timestamp, to_utc


logger = logging.getLogger(__name__)

T = TypeVar("T")
Strategy = Callable[[RawItem, NormalizerTables], "T | None"]

UNKNOWN_COUNTRY = "unknown"

_COORD_QUANTUM = Decimal("0.000001")
_CODE_RE = re.compile(r"^([A-Za-z]{2})\d*$")
_TITLE_CODE_RE = re.compile(r"\b(EQ|FL|WF|DR|TC|VO)\b")
_COUNTRY_IN_TITLE_RE = re.compile(
    r"\bin\s+([A-Za-zÀ-ɏ][A-Za-zÀ-ɏ\s,'-]*?)\s*(?=\d|[.;()]|$)"
)
_MAGNITUDE_RE = re.compile(r"Magnitude\s+(\d+(?:\.\d+)?)", flags=re.IGNORECASE)
_TITLE_MAGNITUDE_RE = re.compile(r"Magnitude\s+(\d+(?:\.\d+)?)\s*M\b")
_DEPTH_RE = re.compile(r"Depth:\s*(\d+(?:\.\d+)?)\s*km", flags=re.IGNORECASE)
_DEATHS_RE = re.compile(r"(\d[\d,]*)\s+deaths?\b", flags=re.IGNORECASE)
_DISPLACED_RE = re.compile(
    r"(\d[\d,]*)\s+(?:people\s+)?displaced\b", flags=re.IGNORECASE
)


class MalformedItemError(ValueError):
    def __init__(self, message: str, *, position: int, event_id: str = "") -> None:
        super().__init__(message)
        self.position = position
        self.event_id = event_id


def first_of(
    item: RawItem, tables: NormalizerTables, strategies: Sequence[Strategy]
) -> T | None:
    for strategy in strategies:
        value = strategy(item, tables)
        if value is not None:
            return value
    return None


def _text_or_none(value: str) -> str | None:
    value = value.strip()
    return value or None


# event id


def _event_id_from_tag(item: RawItem, tables: NormalizerTables) -> str | None:
    return _text_or_none(item.get("gdacs:eventid"))


def _event_id_from_guid(item: RawItem, tables: NormalizerTables) -> str | None:
    return _text_or_none(item.get("guid"))


def _event_id_from_link(item: RawItem, tables: NormalizerTables) -> str | None:
    link = item.get("link")
    if not link:
        return None
    for key, value in parse_qsl(urlsplit(link).query):
        if key.casefold() == "eventid" and value.strip():
            return value.strip()
    return None


EVENT_ID_STRATEGIES: tuple[Strategy, ...] = (
    _event_id_from_tag,
    _event_id_from_guid,
    _event_id_from_link,
)


# event type


def _lookup_event_type(value: str, tables: NormalizerTables) -> EventType | None:
    value = value.strip()
    if not value:
        return None
    match = _CODE_RE.match(value)
    if match is not None:
        code = tables.event_type_codes.get(match.group(1).upper())
        if code is not None:
            return code
    try:
        event_type = EventType(value.casefold().replace("_", "-").replace(" ", "-"))
    except ValueError:
        return None
    return None if event_type is EventType.UNKNOWN else event_type


def _event_type_from_tag(item: RawItem, tables: NormalizerTables) -> EventType | None:
    return _lookup_event_type(item.get("gdacs:eventtype"), tables)


def _event_type_from_category(
    item: RawItem, tables: NormalizerTables
) -> EventType | None:
    return _lookup_event_type(item.get("category"), tables)


def _event_type_from_title(
    item: RawItem, tables: NormalizerTables
) -> EventType | None:
    title = item.get("title")
    lowered = title.casefold()
    for keyword, event_type in tables.event_type_keywords:
        if keyword in lowered:
            return event_type
    match = _TITLE_CODE_RE.search(title)
    if match is not None:
        return tables.event_type_codes.get(match.group(1))
    return None


EVENT_TYPE_STRATEGIES: tuple[Strategy, ...] = (
    _event_type_from_tag,
    _event_type_from_category,
    _event_type_from_title,
)


# alert level


def _alert_level_from_tag(
    item: RawItem, tables: NormalizerTables
) -> AlertLevel | None:
    return tables.alert_level_names.get(item.get("gdacs:alertlevel").casefold())


def _alert_level_from_title(
    item: RawItem, tables: NormalizerTables
) -> AlertLevel | None:
    title = item.get("title")
    for level in tables.alert_level_priority:
        if re.search(rf"\b{level.value}\b", title, flags=re.IGNORECASE):
            return level
    return None


ALERT_LEVEL_STRATEGIES: tuple[Strategy, ...] = (
    _alert_level_from_tag,
    _alert_level_from_title,
)


# country


def _country_from_tag(item: RawItem, tables: NormalizerTables) -> str | None:
    return _text_or_none(item.get("gdacs:country"))


def _country_from_title(item: RawItem, tables: NormalizerTables) -> str | None:
    match = _COUNTRY_IN_TITLE_RE.search(item.get("title"))
    if match is None:
        return None
    return _text_or_none(match.group(1).strip(" ,'-"))


COUNTRY_STRATEGIES: tuple[Strategy, ...] = (_country_from_tag, _country_from_title)


# geography


def _decimal(text: str, limit: int) -> Decimal | None:
    try:
        value = Decimal(text.strip())
        if not value.is_finite() or abs(value) > limit:
            return None
        return value.quantize(_COORD_QUANTUM)
    except (InvalidOperation, AttributeError):
        return None


def _coordinates(lat_text: str, lon_text: str) -> Coordinates | None:
    lat = _decimal(lat_text, 90)
    lon = _decimal(lon_text, 180)
    if lat is None or lon is None:
        return None
    return Coordinates(lat=lat, lon=lon)


def _coordinates_from_georss(
    item: RawItem, tables: NormalizerTables
) -> Coordinates | None:
    parts = item.get("georss:point").split()
    if len(parts) != 2:
        return None
    return _coordinates(parts[0], parts[1])


def _coordinates_from_geo_point(
    item: RawItem, tables: NormalizerTables
) -> Coordinates | None:
    lat = item.get("geo:lat")
    lon = item.get("geo:long")
    if not lat or not lon:
        return None
    return _coordinates(lat, lon)


COORDINATE_STRATEGIES: tuple[Strategy, ...] = (
    _coordinates_from_georss,
    _coordinates_from_geo_point,
)


def _bounding_box(item: RawItem) -> BoundingBox | None:
    parts = item.get("gdacs:bbox").split()
    if len(parts) != 4:
        return None
    min_lon, max_lon = _decimal(parts[0], 180), _decimal(parts[1], 180)
    min_lat, max_lat = _decimal(parts[2], 90), _decimal(parts[3], 90)
    if None in (min_lon, max_lon, min_lat, max_lat):
        return None
    return BoundingBox(
        min_lat=min(min_lat, max_lat),
        max_lat=max(min_lat, max_lat),
        min_lon=min(min_lon, max_lon),
        max_lon=max(min_lon, max_lon),
    )


# severity


def _non_negative(value: float | None) -> float | None:
    if value is None or value < 0:
        return None
    return value


def _severity_from_element(
    item: RawItem, tables: NormalizerTables
) -> Severity | None:
    if "gdacs:severity" not in item.attributed:
        return None
    description = item.get("gdacs:severity")
    value = parse_number(item.attr("gdacs:severity", "value"))
    if value is None:
        match = _MAGNITUDE_RE.search(description)
        value = parse_number(match.group(1)) if match else None
    unit = item.attr("gdacs:severity", "unit") or None
    value = _non_negative(value)
    if not description and value is None and unit is None:
        return None
    return Severity(description=description, value=value, unit=unit)


def _severity_from_title(item: RawItem, tables: NormalizerTables) -> Severity | None:
    match = _TITLE_MAGNITUDE_RE.search(item.get("title"))
    if match is None:
        return None
    return Severity(
        description=match.group(0), value=parse_number(match.group(1)), unit="M"
    )


SEVERITY_STRATEGIES: tuple[Strategy, ...] = (
    _severity_from_element,
    _severity_from_title,
)


def _depth_km(item: RawItem, severity: Severity | None) -> float | None:
    for text in ((severity.description if severity else ""), item.get("title")):
        match = _DEPTH_RE.search(text)
        if match is not None:
            return parse_number(match.group(1))
    return None


# population and casualties


def _population_from_value(item: RawItem, tables: NormalizerTables) -> int | None:
    return parse_non_negative_int(item.attr("gdacs:population", "value"))


def _population_from_text(item: RawItem, tables: NormalizerTables) -> int | None:
    return parse_population(item.get("gdacs:population"), tables.population_multipliers)


def _population_from_title(item: RawItem, tables: NormalizerTables) -> int | None:
    words = sorted(
        (w for w in tables.population_multipliers if len(w) > 1), key=len, reverse=True
    )
    if not words:
        return None
    pattern = rf"(\d+(?:[.,]\d+)?\s+(?:{'|'.join(map(re.escape, words))}))\s+in\b"
    match = re.search(pattern, item.get("title"), flags=re.IGNORECASE)
    if match is None:
        return None
    return parse_population(match.group(1), tables.population_multipliers)


POPULATION_STRATEGIES: tuple[Strategy, ...] = (
    _population_from_value,
    _population_from_text,
    _population_from_title,
)


def _count_in(pattern: re.Pattern[str], text: str) -> int | None:
    match = pattern.search(text)
    if match is None:
        return None
    return parse_non_negative_int(match.group(1))


# timestamps


def _event_time_from_tag(item: RawItem, tables: NormalizerTables) -> datetime | None:
    return parse_timestamp(item.get("gdacs:dateadded"))


def _event_time_from_title(
    item: RawItem, tables: NormalizerTables
) -> datetime | None:
    return parse_title_timestamp(item.get("title"))


EVENT_TIME_STRATEGIES: tuple[Strategy, ...] = (
    _event_time_from_tag,
    _event_time_from_title,
)


def _resource_links(item: RawItem) -> tuple[ResourceLink, ...]:
    candidates = [
        (item.get("link"), "report"),
        (item.get("gdacs:cap"), "cap"),
    ]
    candidates.extend((r.get("uri", ""), r.get("title", "")) for r in item.resources)
    seen: set[str] = set()
    links: list[ResourceLink] = []
    for uri, title in candidates:
        uri = uri.strip()
        if not uri or uri in seen:
            continue
        seen.add(uri)
        links.append(ResourceLink(uri=uri, title=title))
    return tuple(links)


def _fallback_event_id(item: RawItem) -> str:
    return first_of(item, DEFAULT_TABLES, EVENT_ID_STRATEGIES) or f"item-{item.position}"


def normalize_item(
    item: RawItem,
    *,
    fetched_at: datetime,
    tables: NormalizerTables = DEFAULT_TABLES,
) -> NormalizedAlert:
    title = item.get("title")
    if not title:
        raise MalformedItemError(
            f"item {item.position} has no title",
            position=item.position,
            event_id=_fallback_event_id(item),
        )

    event_id = first_of(item, tables, EVENT_ID_STRATEGIES)
    if event_id is None:
        raise MalformedItemError(
            f"item {item.position} ({title!r}) has no event id",
            position=item.position,
            event_id=f"item-{item.position}",
        )

    event_type = first_of(item, tables, EVENT_TYPE_STRATEGIES) or EventType.UNKNOWN
    alert_level = first_of(item, tables, ALERT_LEVEL_STRATEGIES) or AlertLevel.GREEN
    severity = first_of(item, tables, SEVERITY_STRATEGIES)
    description = item.get("description")

    alert_score = _non_negative(parse_number(item.get("gdacs:alertscore")))
    if alert_score is None:
        alert_score = float(
            min(3, max(1, tables.alert_score_by_level.get(alert_level, 1)))
        )

    published_at = parse_timestamp(item.get("pubDate")) or to_utc(fetched_at)

    vulnerability = parse_number(item.get("gdacs:vulnerability"))
    if vulnerability is None:
        vulnerability = parse_number(item.attr("gdacs:vulnerability", "value"))

    return NormalizedAlert(
        event_id=event_id,
        event_type=event_type,
        alert_level=alert_level,
        title=title,
        description=description,
        published_at=published_at,
        country=first_of(item, tables, COUNTRY_STRATEGIES) or UNKNOWN_COUNTRY,
        coordinates=first_of(item, tables, COORDINATE_STRATEGIES),
        bounding_box=_bounding_box(item),
        severity=severity,
        depth_km=_depth_km(item, severity),
        affected_population=first_of(item, tables, POPULATION_STRATEGIES),
        deaths=_count_in(_DEATHS_RE, description),
        displaced=_count_in(_DISPLACED_RE, description),
        alert_score=alert_score,
        event_time=first_of(item, tables, EVENT_TIME_STRATEGIES),
        window_start=parse_timestamp(item.get("gdacs:fromdate")),
        window_end=parse_timestamp(item.get("gdacs:todate")),
        last_updated=parse_timestamp(item.get("gdacs:datemodified")),
        resource_links=_resource_links(item),
        is_active=item.get("gdacs:iscurrent").casefold() != "false",
        version=parse_non_negative_int(item.get("gdacs:version")),
        episode_id=_text_or_none(item.get("gdacs:episodeid")),
        iso3=_text_or_none(item.get("gdacs:iso3")),
        glide=_text_or_none(item.get("gdacs:glide")),
        vulnerability=_non_negative(vulnerability),
        report_url=_text_or_none(item.get("link")),
        cap_url=_text_or_none(item.get("gdacs:cap")),
        icon_url=_text_or_none(item.get("gdacs:icon")),
        raw=item.to_dict(),
    )


def normalize_items(
    items: Iterable[RawItem],
    *,
    fetched_at: datetime,
    tables: NormalizerTables = DEFAULT_TABLES,
) -> list[NormalizedAlert | ItemFailure]:
    results: list[NormalizedAlert | ItemFailure] = []
    for item in items:
        try:
            results.append(normalize_item(item, fetched_at=fetched_at, tables=tables))
        except MalformedItemError as e:
            logger.warning("skipping malformed item %d: %s", e.position, e)
            results.append(
                ItemFailure(position=e.position, event_id=e.event_id, error=str(e))
            )
        except Exception as e:  # any other failure stays local to this item
            logger.warning("failed to normalize item %d: %r", item.position, e)
            results.append(
                ItemFailure(
                    position=item.position,
                    event_id=_fallback_event_id(item),
                    error=str(e) or e.__class__.__name__,
                )
            )
    return results


def dedupe_alerts(alerts: Iterable[NormalizedAlert]) -> list[NormalizedAlert]:
    by_event_id: dict[str, NormalizedAlert] = {}
    for alert in alerts:
        if alert.event_id in by_event_id:
            logger.info("event %s repeated in feed, keeping later copy", alert.event_id)
        by_event_id[alert.event_id] = alert
    return list(by_event_id.values())
