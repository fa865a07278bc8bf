from pathlib import Path

from ingest.extract import extract_items, extract_tag_content, parse_item_block


FIXTURES = Path(__file__).resolve().parent / "fixtures"


def test_extract_gdacs_fixture_skips_sentinels() -> None:
    document = (FIXTURES / "gdacs_rss.xml").read_text(encoding="utf-8")
    items = extract_items(document)
    assert [item.get("gdacs:eventid") for item in items] == [
        "1486908",
        "1102931",
        "1017654",
    ]
    assert [item.position for item in items] == [0, 1, 3]


def test_sentinel_title_filtered_regardless_of_other_fields() -> None:
    document = """
    <rss><channel>
      <item>
        <title>Joint Research Center of the European Commission</title>
        <gdacs:eventid>42</gdacs:eventid>
        <gdacs:alertlevel>Red</gdacs:alertlevel>
      </item>
      <item><title>Event in rss format</title><gdacs:eventid>43</gdacs:eventid></item>
    </channel></rss>
    """
    assert extract_items(document) == []


def test_sentinel_match_is_exact() -> None:
    document = "<item><title>Flood event in rss format test</title></item>"
    items = extract_items(document)
    assert len(items) == 1
    assert items[0].get("title") == "Flood event in rss format test"


def test_simple_and_attributed_tags() -> None:
    item = parse_item_block(
        """
        <title>Green earthquake alert</title>
        <gdacs:severity unit="M" value="6.1">Magnitude 6.1M, Depth:10km</gdacs:severity>
        <gdacs:vulnerability value="0.65"/>
        <guid isPermaLink="false">EQ1486908</guid>
        """,
        position=5,
    )
    assert item.position == 5
    assert item.get("title") == "Green earthquake alert"
    assert "gdacs:severity" not in item.fields
    assert item.get("gdacs:severity") == "Magnitude 6.1M, Depth:10km"
    assert item.attr("gdacs:severity", "value") == "6.1"
    assert item.attr("gdacs:vulnerability", "value") == "0.65"
    assert item.get("guid") == "EQ1486908"
    assert item.get("missing") == ""


def test_first_match_wins() -> None:
    item = parse_item_block(
        "<title>First</title><title>Second</title>", position=0
    )
    assert item.get("title") == "First"


def test_nested_point_children_and_cdata() -> None:
    item = parse_item_block(
        """
        <description><![CDATA[12 deaths & counting]]></description>
        <geo:Point><geo:lat>52.5</geo:lat><geo:long>160.1</geo:long></geo:Point>
        <title>Floods &amp; landslides</title>
        """,
        position=0,
    )
    assert item.get("description") == "12 deaths & counting"
    assert item.get("geo:lat") == "52.5"
    assert item.get("geo:long") == "160.1"
    assert item.get("title") == "Floods & landslides"


def test_resources_and_enclosures_keep_order() -> None:
    item = parse_item_block(
        """
        <enclosure type="image/png" url="https://example.org/map.png"/>
        <gdacs:resources>
          <gdacs:resource id="a" url="https://example.org/a.xml" type="xml">
            <gdacs:title>Report A</gdacs:title>
          </gdacs:resource>
          <gdacs:resource id="b" url="https://example.org/b.pdf" type="pdf"/>
        </gdacs:resources>
        """,
        position=0,
    )
    assert item.resources == [
        {"uri": "https://example.org/a.xml", "title": "Report A"},
        {"uri": "https://example.org/b.pdf", "title": "pdf"},
        {"uri": "https://example.org/map.png", "title": "image/png"},
    ]


def test_malformed_documents_yield_no_items() -> None:
    assert extract_items("") == []
    assert extract_items("<html><body>Service Unavailable</body></html>") == []
    assert extract_items('{"error": "not xml"}') == []
    # unterminated item cannot be bounded
    assert extract_items("<rss><item><title>Cut off") == []


def test_extract_tag_content_prefers_simple_form() -> None:
    block = '<link rel="alt">https://b</link><link>https://a</link>'
    assert extract_tag_content(block, "link") == "https://a"
    assert extract_tag_content('<link rel="alt">https://b</link>', "link") == "https://b"
    assert extract_tag_content(block, "gdacs:cap") == ""
