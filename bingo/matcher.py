from .tiles import (
    AnyCountTile,
    OrCountTile,
    OrSetAllTile,
    PetTile,
    SetAllTile,
    SingleTile,
    Tile,
    compile_pattern,
)


def first_match(patterns, item_name: str) -> str | None:
    """Return the first pattern that matches ``item_name``, or None."""
    for pattern in patterns:
        if compile_pattern(pattern).search(item_name):
            return pattern
    return None


def matches(tile: Tile, item_name: str) -> bool:
    """Does this item count towards ``tile`` at all? Pure, no side effects."""
    if isinstance(tile, SingleTile):
        return first_match(tile.matches, item_name) is not None
    if isinstance(tile, AnyCountTile):
        return first_match(tile.sources, item_name) is not None
    if isinstance(tile, SetAllTile):
        return first_match(tile.set, item_name) is not None
    if isinstance(tile, OrSetAllTile):
        return any(first_match(group, item_name) is not None for group in tile.sets)
    if isinstance(tile, OrCountTile):
        return (
            first_match(tile.sources, item_name) is not None
            or first_match(tile.alternative_matches, item_name) is not None
        )
    if isinstance(tile, PetTile):
        # Pets are marked by hand
        return False
    raise TypeError(f"unhandled tile type: {type(tile).__name__}")


def matching_tiles(tiles, item_name: str) -> list[Tile]:
    """Every active tile the item counts towards. One drop can hit several tiles."""
    return [t for t in tiles if not t.inactive and matches(t, item_name)]
