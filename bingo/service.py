"""Single owner of the board state.

Every mutation goes through ``BingoService``: it takes the lock, applies the
change, writes the whole state to disk, announces a drop if asked to, and
only then lets the next caller in. The chat feed and the HTTP callback share
one event loop, so the lock is what keeps their drops and announcements from
interleaving. If the write fails the in-memory state is rolled back to what
it was before the change and the error is raised to the caller.
"""

import asyncio
import copy
import logging
from dataclasses import dataclass, field

from . import storage
from .errors import BingoError
from .matcher import matching_tiles
from .progress import Drop, ProgressEntry, advance, mark_done, progress_badge
from .state import UNASSIGNED_TEAM, BoardState, normalize_rsn, normalize_team_name
from .tiles import Tile

log = logging.getLogger("bingo.service")


@dataclass
class DropOutcome:
    reporter: str
    item_name: str
    team: str | None = None
    completed: list[Tile] = field(default_factory=list)
    # (tile, badge) for tiles that moved but didn't finish
    progressed: list[tuple[Tile, str | None]] = field(default_factory=list)
    already_done: list[Tile] = field(default_factory=list)

    @property
    def unassigned(self) -> bool:
        return self.team is None

    @property
    def matched(self) -> bool:
        return bool(self.completed or self.progressed or self.already_done)

    @property
    def changed(self) -> bool:
        return bool(self.completed or self.progressed)

    def to_dict(self) -> dict:
        return {
            "team": self.team,
            "completed": [t.key for t in self.completed],
            "progressed": [{"key": t.key, "progress": badge} for t, badge in self.progressed],
        }


def _is_sentinel(team: str) -> bool:
    return team.lower() == UNASSIGNED_TEAM.lower()


class BingoService:
    def __init__(self, state: BoardState, save=None, load_default=None):
        self.state = state
        self._save = save or storage.save_state
        self._load_default = load_default or storage.load_default_state
        self._lock = asyncio.Lock()

    # ---- Transaction plumbing ----
    def _restore(self, snapshot: BoardState):
        self.state.tiles = snapshot.tiles
        self.state.rsn_to_team = snapshot.rsn_to_team
        self.state.completed_by_team = snapshot.completed_by_team
        self.state.channel_id = snapshot.channel_id

    async def _mutate(self, apply, notify=None):
        """Run ``apply()`` and persist, as one unit. ``apply`` returns (result, changed).

        ``notify(result)`` is awaited while the lock is still held, so the
        next mutation only starts once the previous one has been announced.
        """
        async with self._lock:
            snapshot = copy.deepcopy(self.state)
            try:
                result, changed = apply()
                if changed:
                    self._save(self.state)
            except Exception:
                self._restore(snapshot)
                raise
            if notify is not None:
                try:
                    await notify(result)
                except Exception:
                    # already saved; a failed announcement must not undo it
                    log.exception("[notify] Notification failed")
            return result

    # ---- Drops ----
    async def handle_drop(self, reporter: str, item_name: str, team: str = None, timestamp: str = "",
                          notify=None) -> DropOutcome:
        """Match one reported item against every active tile and advance them.

        ``notify``, if given, is awaited with the outcome before the next drop
        is let in.
        """
        reporter = (reporter or "").strip()
        item_name = (item_name or "").strip()

        def apply():
            if team and team.strip():
                resolved = self.state.canonical_team(team)
            else:
                resolved = self.state.team_for(reporter)
            if not resolved or _is_sentinel(resolved):
                log.info("[drop] %s is not on a team; ignoring %r", reporter, item_name)
                return DropOutcome(reporter, item_name), False

            outcome = DropOutcome(reporter, item_name, team=resolved)
            hits = matching_tiles(self.state.tiles, item_name)
            if not hits:
                log.info("[drop] %s (%s): %r matched no tiles", reporter, resolved, item_name)
                return outcome, False

            drop = Drop(team=resolved, reporter=reporter, item_name=item_name, timestamp=timestamp)
            bucket = self.state.completed_by_team.get(resolved, {})
            for tile in hits:
                entry = bucket.get(tile.key) or ProgressEntry()
                if entry.done:
                    outcome.already_done.append(tile)
                    continue
                before = entry.to_dict()
                if advance(tile, entry, drop):
                    outcome.completed.append(tile)
                elif entry.to_dict() != before:
                    outcome.progressed.append((tile, progress_badge(tile, entry)))
                else:
                    continue
                self.state.bucket(resolved)[tile.key] = entry

            log.info(
                "[drop] %s (%s): %r -> completed=%s progressed=%s already=%s",
                reporter, resolved, item_name,
                [t.key for t in outcome.completed],
                [t.key for t, _ in outcome.progressed],
                [t.key for t in outcome.already_done],
            )
            return outcome, outcome.changed

        return await self._mutate(apply, notify)

    # ---- Admin ----
    async def assign(self, rsn: str, team: str) -> tuple[str, str | None]:
        """Put ``rsn`` on ``team`` (created if new). Returns (team, previous team)."""
        key = normalize_rsn(rsn)
        if not key:
            raise BingoError("Player name cannot be empty.")
        if not normalize_team_name(team):
            raise BingoError("Team name cannot be empty.")

        def apply():
            resolved = self.state.canonical_team(team)
            if _is_sentinel(resolved):
                raise BingoError(f"{UNASSIGNED_TEAM!r} is reserved; use unassign instead.")
            previous = self.state.rsn_to_team.get(key)
            self.state.rsn_to_team[key] = resolved
            self.state.bucket(resolved)
            return (resolved, previous), True

        return await self._mutate(apply)

    async def unassign(self, rsn: str) -> str:
        key = normalize_rsn(rsn)

        def apply():
            if key not in self.state.rsn_to_team:
                raise BingoError(f"{rsn} is not on any team.")
            return self.state.rsn_to_team.pop(key), True

        return await self._mutate(apply)

    async def mark(self, team: str, tile_key: str, marked_by: str) -> tuple[str, Tile, bool]:
        """Complete a tile by hand for an existing team. Returns (team, tile, completed_now)."""
        if not normalize_team_name(team):
            raise BingoError("Team name cannot be empty.")
        if _is_sentinel(normalize_team_name(team)):
            raise BingoError(f"{UNASSIGNED_TEAM!r} cannot hold progress.")

        def apply():
            resolved = self.state.require_team(team)
            tile = self.state.tile(tile_key)
            entry = self.state.entry(resolved, tile.key) or ProgressEntry()
            completed = mark_done(entry, resolved, marked_by)
            if completed:
                self.state.bucket(resolved)[tile.key] = entry
                log.info("[mark] %s marked %s done for %s", marked_by, tile.key, resolved)
            return (resolved, tile, completed), completed

        return await self._mutate(apply)

    async def unmark(self, team: str, tile_key: str) -> tuple[str, Tile, bool]:
        """Drop a team's entry for a tile entirely (back to not started)."""

        def apply():
            resolved = self.state.require_team(team)
            tile = self.state.tile(tile_key)
            removed = self.state.completed_by_team.get(resolved, {}).pop(tile.key, None)
            if removed is not None:
                log.info("[unmark] %s reset for %s", tile.key, resolved)
            return (resolved, tile, removed is not None), removed is not None

        return await self._mutate(apply)

    async def delete_team(self, team: str) -> tuple[str, list[str]]:
        """Remove a team's bucket and roster. Returns (team, removed players)."""

        def apply():
            resolved = self.state.require_team(team)
            self.state.completed_by_team.pop(resolved, None)
            removed = self.state.roster(resolved)
            for rsn in removed:
                del self.state.rsn_to_team[rsn]
            log.info("[team] Deleted %s (%d players)", resolved, len(removed))
            return (resolved, removed), True

        return await self._mutate(apply)

    async def rename_team(self, old: str, new: str) -> tuple[str, str]:
        new_name = normalize_team_name(new)
        if not new_name:
            raise BingoError("Team name cannot be empty.")
        if _is_sentinel(new_name):
            raise BingoError(f"{UNASSIGNED_TEAM!r} is reserved.")

        def apply():
            resolved = self.state.require_team(old)
            clash = self.state.find_team(new_name)
            if clash is not None and clash != resolved:
                raise BingoError(f"A team named {clash!r} already exists.")
            bucket = self.state.completed_by_team.pop(resolved, {})
            self.state.completed_by_team[new_name] = bucket
            for rsn, t in self.state.rsn_to_team.items():
                if t == resolved:
                    self.state.rsn_to_team[rsn] = new_name
            log.info("[team] Renamed %s -> %s", resolved, new_name)
            return (resolved, new_name), resolved != new_name

        return await self._mutate(apply)

    async def set_channel(self, channel_id: int) -> None:
        def apply():
            self.state.channel_id = channel_id
            return None, True

        await self._mutate(apply)

    async def reseed(self) -> BoardState:
        """Replace everything with the bundled default board."""

        def apply():
            fresh = self._load_default()
            self._restore(fresh)
            log.info("[reseed] State replaced with bundled default (%d tiles)", len(fresh.tiles))
            return self.state, True

        return await self._mutate(apply)

    # ---- Reads ----
    def teams(self) -> list[tuple[str, list[str], int]]:
        """(team, roster, tiles done) for every known team."""
        rows = []
        for team in self.state.team_names():
            bucket = self.state.completed_by_team.get(team, {})
            done = sum(1 for e in bucket.values() if e.done)
            rows.append((team, self.state.roster(team), done))
        return rows

    def team_entries(self, team: str) -> dict[str, ProgressEntry]:
        """A copy of one team's progress bucket, keyed by tile key."""
        resolved = self.state.require_team(team)
        return copy.deepcopy(self.state.completed_by_team.get(resolved, {}))

    def tile_keys(self) -> list[tuple[str, str, str, bool]]:
        return [(t.key, t.name, t.type, t.inactive) for t in self.state.tiles]
