from __future__ import annotations

import html
import re
from dataclasses import dataclass, field


SENTINEL_TITLES = frozenset(
    {
        "Event in rss format",
        "Joint Research Center of the European Commission",
    }
)

_ITEM_RE = re.compile(r"<item\b[^>]*>(.*?)</item\s*>", flags=re.DOTALL)

# Leaf elements only: the body may hold text or CDATA but no nested tags.
_LEAF_RE = re.compile(
    r"<(?P<tag>[A-Za-z_][\w:.-]*)(?P<attrs>\s[^>]*?)?>"
    r"(?P<body>(?:<!\[CDATA\[.*?\]\]>|[^<])*)"
    r"</(?P=tag)\s*>",
    flags=re.DOTALL,
)
_SELF_CLOSING_RE = re.compile(
    r"<(?P<tag>[A-Za-z_][\w:.-]*)(?P<attrs>\s[^>]*?)?\s*/>", flags=re.DOTALL
)
_ATTR_RE = re.compile(r"""([\w:.-]+)\s*=\s*(?:"([^"]*)"|'([^']*)')""")
_CDATA_RE = re.compile(r"<!\[CDATA\[(.*?)\]\]>", flags=re.DOTALL)

_RESOURCE_RE = re.compile(
    r"<gdacs:resource\b(?P<attrs>[^>]*?)(?:/>|>(?P<body>.*?)</gdacs:resource\s*>)",
    flags=re.DOTALL,
)
_ENCLOSURE_RE = re.compile(r"<enclosure\b(?P<attrs>[^>]*?)/?>", flags=re.DOTALL)


@dataclass(frozen=True)
class RawItem:
    position: int
    fields: dict[str, str] = field(default_factory=dict)
    attributed: dict[str, str] = field(default_factory=dict)
    attributes: dict[str, dict[str, str]] = field(default_factory=dict)
    resources: list[dict[str, str]] = field(default_factory=list)

    def get(self, tag: str) -> str:
        value = self.fields.get(tag)
        if value:
            return value
        return self.attributed.get(tag, "")

    def attr(self, tag: str, name: str) -> str:
        return self.attributes.get(tag, {}).get(name, "").strip()

    def to_dict(self) -> dict:
        return {
            "position": self.position,
            "fields": dict(self.fields),
            "attributes": {k: dict(v) for k, v in self.attributes.items() if v},
            "resources": [dict(r) for r in self.resources],
        }


def _clean_text(body: str) -> str:
    text = _CDATA_RE.sub(lambda m: m.group(1), body)
    return html.unescape(text).strip()


def _parse_attrs(attrs: str | None) -> dict[str, str]:
    if not attrs:
        return {}
    return {
        m.group(1): html.unescape(m.group(2) if m.group(2) is not None else m.group(3))
        for m in _ATTR_RE.finditer(attrs)
    }


def extract_tag_content(block: str, tag: str) -> str:
    escaped = re.escape(tag)
    simple = re.search(rf"<{escaped}>([^<]*)</{escaped}\s*>", block)
    if simple is None:
        simple = re.search(rf"<{escaped}\s[^>]*>([^<]*)</{escaped}\s*>", block)
    return html.unescape(simple.group(1)).strip() if simple else ""


def _resources(block: str) -> list[dict[str, str]]:
    resources: list[dict[str, str]] = []
    for match in _RESOURCE_RE.finditer(block):
        attrs = _parse_attrs(match.group("attrs"))
        uri = attrs.get("url", "").strip()
        if not uri:
            continue
        title = extract_tag_content(match.group("body") or "", "gdacs:title")
        resources.append({"uri": uri, "title": title or attrs.get("type", "")})
    for match in _ENCLOSURE_RE.finditer(block):
        attrs = _parse_attrs(match.group("attrs"))
        uri = attrs.get("url", "").strip()
        if uri:
            resources.append({"uri": uri, "title": attrs.get("type", "enclosure")})
    return resources


def parse_item_block(block: str, position: int) -> RawItem:
    fields: dict[str, str] = {}
    attributed: dict[str, str] = {}
    attributes: dict[str, dict[str, str]] = {}

    for match in _LEAF_RE.finditer(block):
        tag = match.group("tag")
        raw_attrs = match.group("attrs")
        text = _clean_text(match.group("body"))
        if not (raw_attrs and raw_attrs.strip()):
            fields.setdefault(tag, text)
        attributed.setdefault(tag, text)
        attributes.setdefault(tag, _parse_attrs(raw_attrs))

    for match in _SELF_CLOSING_RE.finditer(block):
        tag = match.group("tag")
        attributed.setdefault(tag, "")
        attributes.setdefault(tag, _parse_attrs(match.group("attrs")))

    return RawItem(
        position=position,
        fields=fields,
        attributed=attributed,
        attributes=attributes,
        resources=_resources(block),
    )


def extract_items(document: str) -> list[RawItem]:
    items: list[RawItem] = []
    for position, match in enumerate(_ITEM_RE.finditer(document or "")):
        item = parse_item_block(match.group(1), position)
        if item.get("title") in SENTINEL_TITLES:
            continue
        items.append(item)
    return items
