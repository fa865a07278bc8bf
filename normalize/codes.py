from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from normalize.models import AlertLevel, EventType


EVENT_TYPE_CODES: Mapping[str, EventType] = MappingProxyType(
    {
        "EQ": EventType.EARTHQUAKE,
        "FL": EventType.FLOOD,
        "WF": EventType.WILDFIRE,
        "DR": EventType.DROUGHT,
        "TC": EventType.TROPICAL_CYCLONE,
        "VO": EventType.VOLCANO,
    }
)

# Checked in order; first keyword found in the lowercased title wins.
EVENT_TYPE_KEYWORDS: tuple[tuple[str, EventType], ...] = (
    ("earthquake", EventType.EARTHQUAKE),
    ("tropical cyclone", EventType.TROPICAL_CYCLONE),
    ("tropical storm", EventType.TROPICAL_CYCLONE),
    ("hurricane", EventType.TROPICAL_CYCLONE),
    ("typhoon", EventType.TROPICAL_CYCLONE),
    ("cyclone", EventType.TROPICAL_CYCLONE),
    ("volcan", EventType.VOLCANO),
    ("eruption", EventType.VOLCANO),
    ("forest fire", EventType.WILDFIRE),
    ("wildfire", EventType.WILDFIRE),
    ("flood", EventType.FLOOD),
    ("drought", EventType.DROUGHT),
)

ALERT_LEVEL_NAMES: Mapping[str, AlertLevel] = MappingProxyType(
    {level.value: level for level in AlertLevel}
)

# Highest level first: a title naming several levels resolves to the worst.
ALERT_LEVEL_PRIORITY: tuple[AlertLevel, ...] = (
    AlertLevel.RED,
    AlertLevel.ORANGE,
    AlertLevel.GREEN,
)

ALERT_SCORE_BY_LEVEL: Mapping[AlertLevel, int] = MappingProxyType(
    {AlertLevel.GREEN: 1, AlertLevel.ORANGE: 2, AlertLevel.RED: 3}
)

DEFAULT_POPULATION_MULTIPLIERS: Mapping[str, int] = MappingProxyType(
    {"thousand": 1_000, "million": 1_000_000, "k": 1_000, "m": 1_000_000}
)


@dataclass(frozen=True)
class NormalizerTables:
    event_type_codes: Mapping[str, EventType] = field(
        default_factory=lambda: EVENT_TYPE_CODES
    )
    event_type_keywords: tuple[tuple[str, EventType], ...] = EVENT_TYPE_KEYWORDS
    alert_level_names: Mapping[str, AlertLevel] = field(
        default_factory=lambda: ALERT_LEVEL_NAMES
    )
    alert_level_priority: tuple[AlertLevel, ...] = ALERT_LEVEL_PRIORITY
    alert_score_by_level: Mapping[AlertLevel, int] = field(
        default_factory=lambda: ALERT_SCORE_BY_LEVEL
    )
    population_multipliers: Mapping[str, int] = field(
        default_factory=lambda: DEFAULT_POPULATION_MULTIPLIERS
    )

    @classmethod
    def with_population_multipliers(
        cls, multipliers: Mapping[str, int]
    ) -> NormalizerTables:
        return cls(
            population_multipliers=MappingProxyType(
                {k.casefold(): int(v) for k, v in multipliers.items()}
            )
        )


DEFAULT_TABLES = NormalizerTables()
