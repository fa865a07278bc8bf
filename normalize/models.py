from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal


class EventType(str, enum.Enum):
    EARTHQUAKE = "earthquake"
    FLOOD = "flood"
    WILDFIRE = "wildfire"
    DROUGHT = "drought"
    TROPICAL_CYCLONE = "tropical-cyclone"
    VOLCANO = "volcano"
    UNKNOWN = "unknown"


class AlertLevel(str, enum.Enum):
    GREEN = "green"
    ORANGE = "orange"
    RED = "red"

    @property
    def rank(self) -> int:
        return _ALERT_RANKS[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, AlertLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, AlertLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, AlertLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, AlertLevel):
            return NotImplemented
        return self.rank >= other.rank


_ALERT_RANKS = {AlertLevel.GREEN: 1, AlertLevel.ORANGE: 2, AlertLevel.RED: 3}


@dataclass(frozen=True)
class Coordinates:
    lat: Decimal
    lon: Decimal


@dataclass(frozen=True)
class BoundingBox:
    min_lat: Decimal
    max_lat: Decimal
    min_lon: Decimal
    max_lon: Decimal


@dataclass(frozen=True)
class Severity:
    description: str
    value: float | None = None
    unit: str | None = None


@dataclass(frozen=True)
class ResourceLink:
    uri: str
    title: str = ""


@dataclass(frozen=True)
class NormalizedAlert:
    event_id: str
    event_type: EventType
    alert_level: AlertLevel
    title: str
    description: str
    published_at: datetime
    country: str | None = None
    coordinates: Coordinates | None = None
    bounding_box: BoundingBox | None = None
    severity: Severity | None = None
    depth_km: float | None = None
    affected_population: int | None = None
    deaths: int | None = None
    displaced: int | None = None
    alert_score: float | None = None
    event_time: datetime | None = None
    window_start: datetime | None = None
    window_end: datetime | None = None
    last_updated: datetime | None = None
    resource_links: tuple[ResourceLink, ...] = ()
    is_active: bool = True
    version: int | None = None
    episode_id: str | None = None
    iso3: str | None = None
    glide: str | None = None
    vulnerability: float | None = None
    report_url: str | None = None
    cap_url: str | None = None
    icon_url: str | None = None
    raw: dict = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class ItemFailure:
    position: int
    event_id: str
    error: str
