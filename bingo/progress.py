"""Per-team, per-tile progress.

Each (team, tile) pair owns one ``ProgressEntry``. It starts out blank
(NOT_STARTED), picks up partial progress (IN_PROGRESS) and finally flips to
``done`` (DONE). Nothing here ever flips it back; the only way out of DONE is
an admin dropping the entry altogether.

``advance`` is the transition function. It returns True only on the call that
completes the tile, so callers can announce each completion exactly once.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .matcher import first_match
from .tiles import AnyCountTile, OrCountTile, OrSetAllTile, PetTile, SetAllTile, SingleTile, Tile

NOT_STARTED = "not_started"
IN_PROGRESS = "in_progress"
DONE = "done"


@dataclass
class Drop:
    team: str
    reporter: str
    item_name: str
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class ProgressEntry:
    done: bool = False
    by: dict | None = None
    total: int = 0
    # setAll: {pattern: True}; orSetAll: {"<group index>": {pattern: True}}
    sets: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        out = {"done": self.done}
        if self.by is not None:
            out["by"] = dict(self.by)
        if self.total:
            out["progress"] = {"total": self.total}
        if self.sets:
            out["sets"] = copy.deepcopy(self.sets)
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "ProgressEntry":
        data = data or {}
        progress = data.get("progress") or {}
        return cls(
            done=bool(data.get("done", False)),
            by=dict(data["by"]) if data.get("by") else None,
            total=int(progress.get("total", 0) or 0),
            sets=copy.deepcopy(data.get("sets") or {}),
        )


def entry_state(entry: ProgressEntry | None) -> str:
    if entry is None:
        return NOT_STARTED
    if entry.done:
        return DONE
    if entry.total or any(entry.sets.values()):
        return IN_PROGRESS
    return NOT_STARTED


def _complete(entry: ProgressEntry, drop: Drop, **tags) -> bool:
    entry.done = True
    entry.by = {
        "team": drop.team,
        "reporter": drop.reporter,
        "itemName": drop.item_name,
        "timestamp": drop.timestamp,
        **tags,
    }
    return True


def _record_member(recorded: dict, members, item_name: str) -> bool:
    """Tick off the first matching member that isn't ticked yet."""
    for pattern in members:
        if pattern in recorded:
            continue
        if first_match((pattern,), item_name):
            recorded[pattern] = True
            return True
    return False


def _covered(recorded: dict, members) -> int:
    return sum(1 for pattern in members if recorded.get(pattern))


def advance(tile: Tile, entry: ProgressEntry, drop: Drop) -> bool:
    """Apply one drop to one tile. Returns True only when this call completes it."""
    if entry.done:
        return False

    item = drop.item_name

    if isinstance(tile, SingleTile):
        if first_match(tile.matches, item):
            return _complete(entry, drop)
        return False

    if isinstance(tile, AnyCountTile):
        if not first_match(tile.sources, item):
            return False
        entry.total += 1
        if entry.total >= tile.count:
            return _complete(entry, drop)
        return False

    if isinstance(tile, SetAllTile):
        if not _record_member(entry.sets, tile.set, item):
            return False
        if _covered(entry.sets, tile.set) == len(tile.set):
            return _complete(entry, drop)
        return False

    if isinstance(tile, OrSetAllTile):
        for index, group in enumerate(tile.sets):
            recorded = entry.sets.setdefault(str(index), {})
            _record_member(recorded, group, item)
        # drop groups this item never touched so the stored shape stays small
        entry.sets = {k: v for k, v in entry.sets.items() if v}
        for index, group in enumerate(tile.sets):
            if _covered(entry.sets.get(str(index), {}), group) == len(group):
                return _complete(entry, drop, setIndex=index)
        return False

    if isinstance(tile, OrCountTile):
        if first_match(tile.alternative_matches, item):
            return _complete(entry, drop, alt=True)
        if not first_match(tile.sources, item):
            return False
        entry.total += 1
        if entry.total >= tile.count:
            return _complete(entry, drop)
        return False

    if isinstance(tile, PetTile):
        return False

    raise TypeError(f"unhandled tile type: {type(tile).__name__}")


def mark_done(entry: ProgressEntry, team: str, marked_by: str, timestamp: str = "") -> bool:
    """Manual completion, bypassing the matcher. Works for every tile type."""
    if entry.done:
        return False
    drop = Drop(team=team, reporter=marked_by, item_name="", timestamp=timestamp)
    return _complete(entry, drop, manual=True)


def best_group(tile: OrSetAllTile, entry: ProgressEntry) -> tuple[int, int, int]:
    """(index, got, size) of the group with the most coverage; ties go to the earlier group."""
    best = (0, 0, len(tile.sets[0]))
    for index, group in enumerate(tile.sets):
        got = _covered(entry.sets.get(str(index), {}), group)
        if got > best[1]:
            best = (index, got, len(group))
    return best


def progress_badge(tile: Tile, entry: ProgressEntry | None) -> str | None:
    """Short partial-progress label for a cell, or None when nothing to show."""
    if tile.inactive:
        return None
    entry = entry or ProgressEntry()
    if entry.done or (entry.by or {}).get("alt"):
        return None
    if isinstance(tile, (AnyCountTile, OrCountTile)):
        return f"{entry.total}/{tile.count}"
    if isinstance(tile, SetAllTile):
        return f"{_covered(entry.sets, tile.set)}/{len(tile.set)}"
    if isinstance(tile, OrSetAllTile):
        _, got, size = best_group(tile, entry)
        return f"{got}/{size}"
    return None
