"""Shared fixtures: a small board covering every tile type, and a service
that persists into a temp directory."""

import functools
import os
import sys

import pytest

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from bingo.service import BingoService
from bingo.state import BoardState
from bingo.storage import save_state
from bingo.tiles import load_tiles

TILE_DEFS = [
    {"key": "T1", "name": "Abyssal Whip", "type": "single", "matches": ["Whip"]},
    {"key": "zul", "name": "Three Zulrah Uniques", "type": "anyCount", "count": 3,
     "sources": ["tanzanite fang", "magic fang", "serpentine visage"]},
    {"key": "abc", "name": "Set of Three", "type": "setAll", "set": ["alpha", "bravo", "charlie"]},
    {"key": "gwd", "name": "Bandos or Armadyl", "type": "orSetAll",
     "sets": [["bandos chestplate", "bandos tassets"], ["armadyl chestplate", "armadyl chainskirt"]]},
    {"key": "wild", "name": "Ring or Two Weapons", "type": "orCount", "count": 2,
     "sources": ["craw's bow", "viggora's chainmace"], "alternativeMatches": ["ring of the gods"]},
    {"key": "pet", "name": "Any Pet", "type": "pet"},
    {"key": "off", "name": "Blocked Whip", "type": "single", "matches": ["whip"], "inactive": True},
]


@pytest.fixture
def tiles():
    return load_tiles(TILE_DEFS)


@pytest.fixture
def tile(tiles):
    by_key = {t.key: t for t in tiles}
    return by_key.__getitem__


@pytest.fixture
def board(tiles):
    return BoardState(tiles=tiles, rsn_to_team={"alice": "Red", "carol": "Blue"}, channel_id=1234)


@pytest.fixture
def state_paths(tmp_path):
    return str(tmp_path / "bingo_state.json"), str(tmp_path / "bingo_state.bak.json")


@pytest.fixture
def service(board, state_paths):
    path, backup = state_paths
    return BingoService(board, save=functools.partial(save_state, path=path, backup=backup))
