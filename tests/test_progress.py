"""The per-tile transition function and progress badges."""

import pytest

from bingo.progress import (
    DONE,
    IN_PROGRESS,
    NOT_STARTED,
    Drop,
    ProgressEntry,
    advance,
    entry_state,
    mark_done,
    progress_badge,
)


def drop(item, reporter="Alice", team="Red"):
    return Drop(team=team, reporter=reporter, item_name=item, timestamp="2025-09-06T12:00:00+00:00")


# ─── Idempotence ────────────────────────────────────────────────────

@pytest.mark.parametrize("key, item", [
    ("T1", "Abyssal whip"),
    ("zul", "Magic fang"),
    ("abc", "alpha"),
    ("gwd", "bandos tassets"),
    ("wild", "ring of the gods"),
    ("pet", "pet snakeling"),
])
def test_done_entry_is_never_touched(tile, key, item):
    entry = ProgressEntry(done=True, by={"reporter": "Zed"}, total=1, sets={"alpha": True})
    before = entry.to_dict()
    assert advance(tile(key), entry, drop(item)) is False
    assert entry.to_dict() == before


# ─── single ─────────────────────────────────────────────────────────

class TestSingle:
    def test_match_completes_immediately(self, tile):
        entry = ProgressEntry()
        assert advance(tile("T1"), entry, drop("Abyssal whip")) is True
        assert entry.done
        assert entry.by["reporter"] == "Alice"
        assert entry.by["team"] == "Red"
        assert entry.by["itemName"] == "Abyssal whip"
        assert entry.by["timestamp"] == "2025-09-06T12:00:00+00:00"

    def test_non_match_leaves_entry_blank(self, tile):
        entry = ProgressEntry()
        assert advance(tile("T1"), entry, drop("Abyssal dagger")) is False
        assert entry == ProgressEntry()


# ─── anyCount ───────────────────────────────────────────────────────

class TestAnyCount:
    def test_completes_exactly_on_third(self, tile):
        entry = ProgressEntry()
        results = [advance(tile("zul"), entry, drop(i)) for i in ("Magic fang", "Tanzanite fang", "Magic fang")]
        assert results == [False, False, True]
        assert entry.total == 3
        assert entry.by["itemName"] == "Magic fang"

    def test_total_increases_one_per_qualifying_drop(self, tile):
        entry = ProgressEntry()
        advance(tile("zul"), entry, drop("Serpentine visage"))
        assert entry.total == 1
        advance(tile("zul"), entry, drop("Zulrah's scales"))
        assert entry.total == 1
        advance(tile("zul"), entry, drop("Tanzanite fang", reporter="Dave"))
        assert entry.total == 2
        assert not entry.done

    def test_fourth_drop_after_completion_is_ignored(self, tile):
        entry = ProgressEntry()
        for _ in range(3):
            advance(tile("zul"), entry, drop("Magic fang"))
        assert advance(tile("zul"), entry, drop("Magic fang")) is False
        assert entry.total == 3


# ─── setAll ─────────────────────────────────────────────────────────

class TestSetAll:
    def test_needs_every_member_in_any_order(self, tile):
        entry = ProgressEntry()
        assert advance(tile("abc"), entry, drop("Charlie")) is False
        assert advance(tile("abc"), entry, drop("Alpha")) is False
        assert advance(tile("abc"), entry, drop("Bravo")) is True
        assert entry.sets == {"charlie": True, "alpha": True, "bravo": True}

    def test_duplicate_member_does_not_count(self, tile):
        entry = ProgressEntry()
        advance(tile("abc"), entry, drop("alpha"))
        before = entry.to_dict()
        assert advance(tile("abc"), entry, drop("ALPHA")) is False
        assert entry.to_dict() == before
        assert advance(tile("abc"), entry, drop("bravo")) is False
        assert advance(tile("abc"), entry, drop("bravo")) is False
        assert not entry.done
        assert advance(tile("abc"), entry, drop("charlie")) is True


# ─── orSetAll ───────────────────────────────────────────────────────

class TestOrSetAll:
    def test_first_group_completion_records_index_zero(self, tile):
        entry = ProgressEntry()
        assert advance(tile("gwd"), entry, drop("Bandos chestplate")) is False
        assert advance(tile("gwd"), entry, drop("Bandos tassets")) is True
        assert entry.by["setIndex"] == 0

    def test_partial_group_does_not_block_the_other(self, tile):
        entry = ProgressEntry()
        advance(tile("gwd"), entry, drop("Bandos chestplate"))
        advance(tile("gwd"), entry, drop("Armadyl chestplate"))
        assert advance(tile("gwd"), entry, drop("Armadyl chainskirt")) is True
        assert entry.by["setIndex"] == 1
        assert entry.sets["0"] == {"bandos chestplate": True}

    def test_progress_is_tracked_per_group(self, tile):
        entry = ProgressEntry()
        advance(tile("gwd"), entry, drop("Armadyl chestplate"))
        assert entry.sets == {"1": {"armadyl chestplate": True}}


# ─── orCount ────────────────────────────────────────────────────────

class TestOrCount:
    def test_alternative_completes_immediately(self, tile):
        entry = ProgressEntry()
        assert advance(tile("wild"), entry, drop("Ring of the gods")) is True
        assert entry.by["alt"] is True
        assert entry.total == 0

    def test_two_sources_complete_without_alt(self, tile):
        entry = ProgressEntry()
        assert advance(tile("wild"), entry, drop("Craw's bow")) is False
        assert advance(tile("wild"), entry, drop("Viggora's chainmace")) is True
        assert "alt" not in entry.by

    def test_one_source_is_not_enough(self, tile):
        entry = ProgressEntry()
        advance(tile("wild"), entry, drop("Craw's bow"))
        assert not entry.done
        assert entry.total == 1

    def test_alternative_short_circuits_partial_counter(self, tile):
        entry = ProgressEntry()
        advance(tile("wild"), entry, drop("Craw's bow"))
        assert advance(tile("wild"), entry, drop("Ring of the gods")) is True
        assert entry.by["alt"] is True


# ─── pet / manual ───────────────────────────────────────────────────

class TestManual:
    def test_pet_never_advances(self, tile):
        entry = ProgressEntry()
        assert advance(tile("pet"), entry, drop("Pet snakeling")) is False
        assert entry_state(entry) == NOT_STARTED

    def test_mark_done(self):
        entry = ProgressEntry()
        assert mark_done(entry, "Red", "admin#0001", timestamp="2025-09-06T00:00:00+00:00") is True
        assert entry.done
        assert entry.by["manual"] is True
        assert entry.by["reporter"] == "admin#0001"
        assert mark_done(entry, "Red", "someone-else") is False
        assert entry.by["reporter"] == "admin#0001"


# ─── State + badges ─────────────────────────────────────────────────

class TestBadges:
    def test_entry_states(self):
        assert entry_state(None) == NOT_STARTED
        assert entry_state(ProgressEntry()) == NOT_STARTED
        assert entry_state(ProgressEntry(total=1)) == IN_PROGRESS
        assert entry_state(ProgressEntry(sets={"0": {"a": True}})) == IN_PROGRESS
        assert entry_state(ProgressEntry(done=True)) == DONE

    def test_count_badge(self, tile):
        assert progress_badge(tile("zul"), None) == "0/3"
        assert progress_badge(tile("zul"), ProgressEntry(total=2)) == "2/3"
        assert progress_badge(tile("wild"), ProgressEntry(total=1)) == "1/2"

    def test_alt_counts_as_done(self, tile):
        entry = ProgressEntry(by={"alt": True})
        assert progress_badge(tile("wild"), entry) is None

    def test_set_all_badge(self, tile):
        assert progress_badge(tile("abc"), ProgressEntry(sets={"alpha": True, "bravo": True})) == "2/3"

    def test_or_set_all_badge_shows_best_group(self, tile):
        entry = ProgressEntry(sets={"0": {"bandos chestplate": True}})
        assert progress_badge(tile("gwd"), entry) == "1/2"
        assert progress_badge(tile("gwd"), ProgressEntry()) == "0/2"

    def test_no_badge_when_done_single_or_inactive(self, tile):
        assert progress_badge(tile("zul"), ProgressEntry(done=True, total=3)) is None
        assert progress_badge(tile("T1"), None) is None
        assert progress_badge(tile("off"), None) is None

    def test_entry_round_trip(self):
        entry = ProgressEntry(done=True, by={"reporter": "A", "setIndex": 1}, total=2, sets={"1": {"x": True}})
        assert ProgressEntry.from_dict(entry.to_dict()) == entry
