"""Tile definitions.

A board is an ordered list of tiles. Each tile has one completion rule
(its *type*) and carries only the pattern fields that rule needs:

    single      matches                      any match completes
    anyCount    sources, count               N matching drops complete
    setAll      set                          every member pattern once
    orSetAll    sets                         every member of any one group
    orCount     sources, count,              N matching drops, or one
                alternativeMatches           alternative drop
    pet         (none)                       manual completion only

Patterns are case-insensitive regular expressions searched inside the
reported item name. Everything is validated up front by ``tile_from_dict``
so a half-broken board never goes live.
"""

import re
from dataclasses import dataclass
from functools import lru_cache

from .errors import TileConfigError

TILE_TYPES = ("single", "anyCount", "setAll", "orSetAll", "orCount", "pet")


@lru_cache(maxsize=None)
def compile_pattern(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


@dataclass(frozen=True)
class Tile:
    key: str
    name: str
    inactive: bool = False
    description: str = ""

    type = ""


@dataclass(frozen=True)
class SingleTile(Tile):
    matches: tuple[str, ...] = ()

    type = "single"


@dataclass(frozen=True)
class AnyCountTile(Tile):
    sources: tuple[str, ...] = ()
    count: int = 1

    type = "anyCount"


@dataclass(frozen=True)
class SetAllTile(Tile):
    set: tuple[str, ...] = ()

    type = "setAll"


@dataclass(frozen=True)
class OrSetAllTile(Tile):
    sets: tuple[tuple[str, ...], ...] = ()

    type = "orSetAll"


@dataclass(frozen=True)
class OrCountTile(Tile):
    sources: tuple[str, ...] = ()
    count: int = 1
    alternative_matches: tuple[str, ...] = ()

    type = "orCount"


@dataclass(frozen=True)
class PetTile(Tile):
    type = "pet"


# ---- Validation helpers ----
def _patterns(raw: dict, field_name: str, key: str) -> tuple[str, ...]:
    if field_name not in raw:
        raise TileConfigError(f"missing required field {field_name!r}", key)
    value = raw[field_name]
    if not isinstance(value, list) or not all(isinstance(p, str) for p in value):
        raise TileConfigError(f"{field_name!r} must be a list of pattern strings", key)
    if not value:
        raise TileConfigError(f"{field_name!r} must not be empty", key)
    if len(set(value)) != len(value):
        raise TileConfigError(f"duplicate pattern in {field_name!r}", key)
    for pattern in value:
        if not pattern.strip():
            raise TileConfigError(f"blank pattern in {field_name!r}", key)
        try:
            compile_pattern(pattern)
        except re.error as e:
            raise TileConfigError(f"invalid pattern {pattern!r} in {field_name!r}: {e}", key) from e
    return tuple(value)


def _count(raw: dict, key: str) -> int:
    value = raw.get("count")
    # bool is an int subclass; reject it explicitly
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise TileConfigError("'count' must be a positive integer", key)
    return value


def tile_from_dict(raw: dict) -> Tile:
    """Build a validated tile from its JSON definition."""
    if not isinstance(raw, dict):
        raise TileConfigError(f"tile definition must be an object, got {type(raw).__name__}")

    key = raw.get("key")
    if not isinstance(key, str) or not key.strip():
        raise TileConfigError("missing required field 'key'")
    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        raise TileConfigError("missing required field 'name'", key)

    common = {
        "key": key,
        "name": name,
        "inactive": bool(raw.get("inactive", False)),
        "description": str(raw.get("description", "") or ""),
    }

    tile_type = raw.get("type")
    if tile_type == "single":
        return SingleTile(matches=_patterns(raw, "matches", key), **common)
    if tile_type == "anyCount":
        return AnyCountTile(sources=_patterns(raw, "sources", key), count=_count(raw, key), **common)
    if tile_type == "setAll":
        return SetAllTile(set=_patterns(raw, "set", key), **common)
    if tile_type == "orSetAll":
        groups = raw.get("sets")
        if not isinstance(groups, list) or not groups:
            raise TileConfigError("'sets' must be a non-empty list of pattern groups", key)
        sets = []
        for i, group in enumerate(groups):
            sets.append(_patterns({f"sets[{i}]": group}, f"sets[{i}]", key))
        return OrSetAllTile(sets=tuple(sets), **common)
    if tile_type == "orCount":
        return OrCountTile(
            sources=_patterns(raw, "sources", key),
            count=_count(raw, key),
            alternative_matches=_patterns(raw, "alternativeMatches", key),
            **common,
        )
    if tile_type == "pet":
        return PetTile(**common)
    raise TileConfigError(f"unknown tile type {tile_type!r} (expected one of {', '.join(TILE_TYPES)})", key)


def tile_to_dict(tile: Tile) -> dict:
    out = {"key": tile.key, "name": tile.name, "type": tile.type}
    if isinstance(tile, SingleTile):
        out["matches"] = list(tile.matches)
    elif isinstance(tile, AnyCountTile):
        out["sources"] = list(tile.sources)
        out["count"] = tile.count
    elif isinstance(tile, SetAllTile):
        out["set"] = list(tile.set)
    elif isinstance(tile, OrSetAllTile):
        out["sets"] = [list(group) for group in tile.sets]
    elif isinstance(tile, OrCountTile):
        out["sources"] = list(tile.sources)
        out["count"] = tile.count
        out["alternativeMatches"] = list(tile.alternative_matches)
    if tile.inactive:
        out["inactive"] = True
    if tile.description:
        out["description"] = tile.description
    return out


def load_tiles(raw_tiles) -> list[Tile]:
    """Validate a whole board. Any bad tile rejects the entire list."""
    if not isinstance(raw_tiles, list):
        raise TileConfigError("'tiles' must be a list")
    tiles = [tile_from_dict(raw) for raw in raw_tiles]
    seen = set()
    for tile in tiles:
        if tile.key in seen:
            raise TileConfigError("duplicate key", tile.key)
        seen.add(tile.key)
    return tiles
