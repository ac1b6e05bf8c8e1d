"""The board state aggregate: rosters, tiles, per-team progress, notify target."""

import logging
import re
from dataclasses import dataclass, field

from .errors import TileConfigError, UnknownTeamError, UnknownTileError
from .progress import ProgressEntry
from .tiles import Tile, load_tiles, tile_to_dict

log = logging.getLogger("bingo.state")

# Reporters with no roster entry land here; it never accumulates progress
UNASSIGNED_TEAM = "Unassigned"
# Old single-bucket saves are moved under this team on load
LEGACY_TEAM = "Legacy"

_APOSTROPHES = re.compile(r"[‘’‛ʼ´`]")
_WHITESPACE = re.compile(r"\s+")
_RSN_SEPARATORS = re.compile(r"[\s_\-]+")


def normalize_team_name(name: str) -> str:
    """Trim, collapse whitespace and fold curly/backtick apostrophes to '."""
    name = _APOSTROPHES.sub("'", name or "")
    return _WHITESPACE.sub(" ", name).strip()


def normalize_rsn(rsn: str) -> str:
    """Game names treat space, underscore and hyphen alike and ignore case."""
    return _RSN_SEPARATORS.sub(" ", rsn or "").strip().lower()


@dataclass
class BoardState:
    tiles: list[Tile] = field(default_factory=list)
    rsn_to_team: dict[str, str] = field(default_factory=dict)
    completed_by_team: dict[str, dict[str, ProgressEntry]] = field(default_factory=dict)
    channel_id: int | None = None

    # ---- Lookups ----
    def tile(self, key: str) -> Tile:
        for tile in self.tiles:
            if tile.key == key:
                return tile
        # allow case-insensitive keys from chat commands
        for tile in self.tiles:
            if tile.key.lower() == key.lower():
                return tile
        raise UnknownTileError(key)

    def team_names(self) -> list[str]:
        names = set(self.completed_by_team) | set(self.rsn_to_team.values())
        return sorted(names, key=str.lower)

    def find_team(self, name: str) -> str | None:
        """Existing team matching ``name`` after normalization, case-insensitive."""
        wanted = normalize_team_name(name)
        for team in self.team_names():
            if team == wanted:
                return team
        for team in self.team_names():
            if team.lower() == wanted.lower():
                return team
        return None

    def require_team(self, name: str) -> str:
        team = self.find_team(name)
        if team is None:
            raise UnknownTeamError(normalize_team_name(name))
        return team

    def canonical_team(self, name: str) -> str:
        """Existing spelling if the team is known, otherwise the normalized name."""
        return self.find_team(name) or normalize_team_name(name)

    def team_for(self, rsn: str) -> str | None:
        return self.rsn_to_team.get(normalize_rsn(rsn))

    def roster(self, team: str) -> list[str]:
        return sorted(rsn for rsn, t in self.rsn_to_team.items() if t == team)

    def bucket(self, team: str) -> dict[str, ProgressEntry]:
        """Progress bucket for ``team``, created on first reference."""
        return self.completed_by_team.setdefault(team, {})

    def entry(self, team: str, key: str) -> ProgressEntry | None:
        return self.completed_by_team.get(team, {}).get(key)

    # ---- Serialization ----
    def to_dict(self) -> dict:
        return {
            "rsnToTeam": dict(sorted(self.rsn_to_team.items())),
            "tiles": [tile_to_dict(t) for t in self.tiles],
            "completedByTeam": {
                team: {key: entry.to_dict() for key, entry in bucket.items()}
                for team, bucket in self.completed_by_team.items()
            },
            "channelId": str(self.channel_id) if self.channel_id is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BoardState":
        if not isinstance(data, dict):
            raise TileConfigError("state document must be a JSON object")
        data = migrate_legacy(data)

        tiles = load_tiles(data.get("tiles", []))

        rsn_to_team = {}
        for rsn, team in (data.get("rsnToTeam") or {}).items():
            rsn_to_team[normalize_rsn(rsn)] = normalize_team_name(team)

        completed = {}
        for team, bucket in (data.get("completedByTeam") or {}).items():
            team = normalize_team_name(team)
            merged = completed.setdefault(team, {})
            for key, raw_entry in (bucket or {}).items():
                merged[key] = ProgressEntry.from_dict(raw_entry)

        channel_id = data.get("channelId")
        try:
            channel_id = int(channel_id) if channel_id not in (None, "") else None
        except (TypeError, ValueError):
            log.warning("[LOAD] Ignoring unreadable channelId %r", channel_id)
            channel_id = None

        return cls(tiles=tiles, rsn_to_team=rsn_to_team, completed_by_team=completed, channel_id=channel_id)


def migrate_legacy(data: dict) -> dict:
    """Move a pre-teams ``completed`` bucket under the legacy team."""
    if "completedByTeam" in data or "completed" not in data:
        return data
    migrated = {k: v for k, v in data.items() if k != "completed"}
    migrated["completedByTeam"] = {LEGACY_TEAM: data.get("completed") or {}}
    log.info("[LOAD] Migrated legacy single-bucket state under team %r", LEGACY_TEAM)
    return migrated
