"""Persistence: round-trips, backup fallback, legacy migration, bundled default."""

import asyncio
import json
import os

import pytest

from bingo import settings
from bingo.errors import PersistenceError, TileConfigError
from bingo.state import LEGACY_TEAM, BoardState
from bingo.storage import load_default_state, load_state, save_state

from conftest import TILE_DEFS


def write_json(path, data):
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f)


class TestRoundTrip:
    def test_state_survives_save_and_load(self, service, state_paths):
        async def play():
            await service.handle_drop("Alice", "Abyssal whip")
            await service.handle_drop("Alice", "Magic fang")
            await service.handle_drop("Carol", "Bandos chestplate")
            await service.handle_drop("Carol", "Ring of the gods")
            await service.handle_drop("Carol", "alpha")
            await service.mark("Blue", "pet", marked_by="admin")

        asyncio.run(play())
        path, backup = state_paths
        reloaded = load_state(path, backup)
        assert reloaded == service.state
        assert reloaded.to_dict() == service.state.to_dict()

    def test_document_has_four_top_level_fields(self, board, state_paths):
        path, backup = state_paths
        save_state(board, path, backup)
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        assert set(data) == {"rsnToTeam", "tiles", "completedByTeam", "channelId"}
        assert data["tiles"] == TILE_DEFS

    def test_second_save_keeps_a_backup(self, board, state_paths):
        path, backup = state_paths
        save_state(board, path, backup)
        board.channel_id = 42
        save_state(board, path, backup)
        with open(backup, encoding="utf-8") as f:
            assert json.load(f)["channelId"] == "1234"
        assert load_state(path, backup).channel_id == 42

    def test_no_temp_files_left(self, board, state_paths, tmp_path):
        save_state(board, *state_paths)
        assert sorted(os.listdir(tmp_path)) == ["bingo_state.json"]


class TestFailures:
    def test_unwritable_directory_raises(self, board, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        with pytest.raises(PersistenceError):
            save_state(board, str(blocker / "state.json"), str(blocker / "state.bak.json"))

    def test_corrupt_main_falls_back_to_backup(self, board, state_paths):
        path, backup = state_paths
        save_state(board, path, backup)
        save_state(board, path, backup)
        with open(path, "w", encoding="utf-8") as f:
            f.write("{not json")
        assert load_state(path, backup).rsn_to_team == board.rsn_to_team

    def test_bad_tiles_are_fatal(self, state_paths):
        path, backup = state_paths
        write_json(path, {"tiles": [{"key": "x", "name": "X", "type": "single", "matches": ["("]}]})
        with pytest.raises(TileConfigError):
            load_state(path, backup)


class TestMigration:
    def test_legacy_bucket_moves_under_sentinel_team(self, state_paths):
        path, backup = state_paths
        write_json(path, {
            "rsnToTeam": {"Alice": "Red"},
            "tiles": TILE_DEFS,
            "completed": {"T1": {"done": True, "by": {"reporter": "Alice", "itemName": "Abyssal whip"}}},
            "channelId": "555",
        })
        state = load_state(path, backup)
        assert state.entry(LEGACY_TEAM, "T1").done
        assert state.channel_id == 555
        assert "completed" not in state.to_dict()

    def test_team_names_normalized_on_load(self):
        state = BoardState.from_dict({
            "rsnToTeam": {"Iron_Alice": " Mom‘s Team "},
            "tiles": [],
            "completedByTeam": {"Mom’s  Team": {"x": {"done": True}}},
        })
        assert state.rsn_to_team == {"iron alice": "Mom's Team"}
        assert list(state.completed_by_team) == ["Mom's Team"]


class TestDefaults:
    def test_missing_files_load_bundled_default(self, state_paths):
        state = load_state(*state_paths)
        assert len(state.tiles) == 25
        assert state.completed_by_team == {}

    def test_bundled_default_covers_every_tile_type(self):
        state = load_default_state(settings.DEFAULT_STATE_PATH)
        assert {t.type for t in state.tiles} == {"single", "anyCount", "setAll", "orSetAll", "orCount", "pet"}
        assert any(t.inactive for t in state.tiles)
