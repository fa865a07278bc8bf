from datetime import UTC, datetime

from normalize.quantities import format_population, parse_number, parse_population
from normalize.timestamps import parse_timestamp, parse_title_timestamp, to_iso


def test_parse_population_phrases() -> None:
    assert parse_population("16 thousand (in MMI>=VII)") == 16_000
    assert parse_population("1.2 million people") == 1_200_000
    assert parse_population("3,400 people affected") == 3_400
    assert parse_population("3400") == 3_400
    assert parse_population("No people within 100km") is None
    assert parse_population("") is None
    assert parse_population(None) is None


def test_parse_population_skips_other_units() -> None:
    assert parse_population("within 100km, 2 thousand exposed") == 2_000


def test_format_population_suffixes() -> None:
    assert format_population(1_234_567) == "1.2M"
    assert format_population(16_500) == "16K"
    assert format_population(950) == "950"
    assert format_population(None) == ""


def test_formatted_population_keeps_order_of_magnitude() -> None:
    for value in (950, 16_500, 250_000, 1_234_567, 48_000_000):
        parsed = parse_population(format_population(value))
        assert parsed is not None
        assert len(str(parsed)) == len(str(value))


def test_parse_number() -> None:
    assert parse_number(" 6.1 ") == 6.1
    assert parse_number("1,200") == 1200.0
    assert parse_number("nan") is None
    assert parse_number("six") is None


def test_parse_timestamp_formats() -> None:
    expected = datetime(2025, 8, 15, 10, 0, tzinfo=UTC)
    assert parse_timestamp("Fri, 15 Aug 2025 10:00:00 GMT") == expected
    assert parse_timestamp("2025-08-15T10:00:00Z") == expected
    assert parse_timestamp("2025-08-15 12:00:00+02:00") == expected
    assert parse_timestamp("2025-08-15T10:00:00") == expected
    assert parse_timestamp("garbage") is None
    assert parse_timestamp("") is None


def test_parse_title_timestamp() -> None:
    assert parse_title_timestamp("alert in Peru 15/08/2025 10:00 UTC") == datetime(
        2025, 8, 15, 10, 0, tzinfo=UTC
    )
    assert parse_title_timestamp("On 8/15/2025 10:00:00 AM, a quake") == datetime(
        2025, 8, 15, 10, 0, tzinfo=UTC
    )
    assert parse_title_timestamp("no date here") is None


def test_to_iso_uses_z_suffix() -> None:
    assert to_iso(datetime(2025, 8, 15, 10, 0, tzinfo=UTC)) == "2025-08-15T10:00:00Z"
    assert to_iso(None) is None


def test_parse_population_skips_overflowing_values() -> None:
    assert parse_population("9" * 308 + " thousand") is None
    assert parse_population("9" * 308 + " thousand, 5 people") == 5


def test_to_iso_drops_sub_second_precision() -> None:
    stamp = datetime(2025, 8, 15, 10, 0, 0, 123456, tzinfo=UTC)
    assert to_iso(stamp) == "2025-08-15T10:00:00Z"
