from __future__ import annotations

import math
import re
from collections.abc import Mapping

from normalize.codes import DEFAULT_POPULATION_MULTIPLIERS


_NUMBER_WITH_WORD_RE = re.compile(
    r"(?P<num>\d+(?:[.,]\d+)*)\s*(?P<word>[A-Za-z]+)?", flags=re.UNICODE
)
_HEADCOUNT_WORDS = frozenset({"", "people", "persons", "inhabitants"})


def parse_number(text: str | None) -> float | None:
    if text is None:
        return None
    cleaned = text.strip().replace(",", "")
    if not cleaned:
        return None
    try:
        value = float(cleaned)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def parse_non_negative_int(text: str | None) -> int | None:
    value = parse_number(text)
    if value is None or value < 0:
        return None
    return int(value)


def _digits_to_number(raw: str) -> float | None:
    if "," in raw and "." not in raw:
        groups = raw.split(",")
        if not all(len(g) == 3 for g in groups[1:]):
            # decimal comma: "1,5 million"
            raw = raw.replace(",", ".", 1) if len(groups) == 2 else groups[0]
    return parse_number(raw)


def parse_population(
    text: str | None,
    multipliers: Mapping[str, int] = DEFAULT_POPULATION_MULTIPLIERS,
) -> int | None:
    """Parse the first headcount in *text*.

    Accepts bare numbers ("3400", "3,400 people"), the magnitude words in
    *multipliers* ("16 thousand", "1.2 million") and the "K"/"M" suffixes
    produced by :func:`format_population`. Numbers followed by any other
    unit ("100km") are skipped.
    """
    if not text:
        return None
    for match in _NUMBER_WITH_WORD_RE.finditer(text):
        word = (match.group("word") or "").casefold()
        if word in multipliers:
            multiplier = multipliers[word]
        elif word in _HEADCOUNT_WORDS:
            multiplier = 1
        else:
            continue
        value = _digits_to_number(match.group("num"))
        if value is None or not math.isfinite(value * multiplier):
            continue
        return int(round(value * multiplier))
    return None


def format_population(population: int | None) -> str:
    if population is None:
        return ""
    if population >= 1_000_000:
        return f"{population / 1_000_000:.1f}M"
    if population >= 1_000:
        return f"{population // 1_000}K"
    return str(population)
