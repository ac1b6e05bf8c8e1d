"""Best-effort parsing of loot messages posted by third-party bots.

Two shapes are understood:

* one-line broadcasts, as relayed from in-game clan chat::

      Alice received a drop: Abyssal whip (2,530,000 coins).
      Alice received special loot from a raid: Twisted bow.
      Alice received a new collection log item: Tanzanite fang (120/1477)

* loot notifier embeds (or plain text in the same layout)::

      **Alice** has looted:

      1 x [Abyssal whip](https://...) (2.53M)
      From: [Abyssal demon](https://...)

Anything else parses to an empty list. Failing to parse is expected, not an
error; callers just log and move on.
"""

import logging
import re
from dataclasses import dataclass

log = logging.getLogger("bingo.feed")

_LINK = re.compile(r"\[([^\]]+)\]\((?:[^)]*)\)")
_BOLD = re.compile(r"\*\*|__")
_TRAILING_PAREN = re.compile(r"\s*\([^()]*\)\s*$")

BROADCASTS = [
    re.compile(r"^(?P<rsn>[\w \-]{1,12}?) received a drop: (?:(?P<qty>[\d,]+) x )?(?P<item>.+)$", re.IGNORECASE),
    re.compile(r"^(?P<rsn>[\w \-]{1,12}?) received special loot from a raid: (?P<item>.+)$", re.IGNORECASE),
    re.compile(r"^(?P<rsn>[\w \-]{1,12}?) received a new collection log item: (?P<item>.+)$", re.IGNORECASE),
    re.compile(r"^(?P<rsn>[\w \-]{1,12}?) has received (?:(?P<qty>[\d,]+) x )?(?P<item>.+?) from .+$", re.IGNORECASE),
]

LOOTED_HEADER = re.compile(r"^(?P<rsn>[\w \-]{1,12}?) has looted:?\s*$", re.IGNORECASE)
LOOT_LINE = re.compile(r"^(?P<qty>[\d,]+)\s*x\s+(?P<item>.+)$", re.IGNORECASE)


@dataclass
class ParsedDrop:
    reporter: str
    item_name: str
    quantity: int = 1


def clean_text(text: str) -> str:
    """Strip markdown links/bold so patterns see what a player would read."""
    text = _LINK.sub(r"\1", text or "")
    return _BOLD.sub("", text).strip()


def clean_item(item: str) -> str:
    item = item.strip().rstrip(".!")
    # price or kill-count suffixes: "(2.53M)", "(120/1477)"
    while _TRAILING_PAREN.search(item):
        item = _TRAILING_PAREN.sub("", item).rstrip(".!")
    return item.strip()


def _quantity(raw) -> int:
    try:
        return int(str(raw).replace(",", "")) if raw else 1
    except ValueError:
        return 1


def parse_broadcast(line: str) -> ParsedDrop | None:
    line = clean_text(line)
    for pattern in BROADCASTS:
        m = pattern.match(line)
        if m:
            item = clean_item(m.group("item"))
            if item:
                return ParsedDrop(m.group("rsn").strip(), item, _quantity(m.groupdict().get("qty")))
    return None


def parse_loot_block(text: str, reporter: str = None) -> list[ParsedDrop]:
    """'<name> has looted:' followed by 'N x Item' lines."""
    drops = []
    for raw_line in clean_text(text).splitlines():
        line = raw_line.strip()
        if not line:
            continue
        header = LOOTED_HEADER.match(line)
        if header:
            reporter = header.group("rsn").strip()
            continue
        m = LOOT_LINE.match(line)
        if m and reporter:
            item = clean_item(m.group("item"))
            if item:
                drops.append(ParsedDrop(reporter, item, _quantity(m.group("qty"))))
    return drops


def _embed_texts(embed: dict):
    for key in ("title", "description"):
        if embed.get(key):
            yield embed[key]
    for f in embed.get("fields") or []:
        if f.get("value"):
            yield f"{f.get('name', '')}\n{f['value']}"


def parse_drop_message(content: str, embeds: list[dict] = ()) -> list[ParsedDrop]:
    """Every drop found in one chat message (content plus embeds, as dicts)."""
    drops = []

    for line in (content or "").splitlines():
        parsed = parse_broadcast(line)
        if parsed:
            drops.append(parsed)
    if not drops and content:
        drops.extend(parse_loot_block(content))

    for embed in embeds or ():
        author = ((embed.get("author") or {}).get("name") or "").strip() or None
        found = []
        for text in _embed_texts(embed):
            for line in text.splitlines():
                parsed = parse_broadcast(line)
                if parsed:
                    found.append(parsed)
            if not found:
                found.extend(parse_loot_block(text, reporter=author))
        drops.extend(found)

    if not drops:
        log.debug("[feed] No drop recognised in message: %r", (content or "")[:120])
    return drops
