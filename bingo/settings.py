import os
from datetime import datetime, timezone
from pathlib import Path


def _parse_env_list(var_name: str, default_csv: str) -> set[str]:
    raw = os.environ.get(var_name, default_csv)
    return {part.strip().lower() for part in raw.split(",") if part.strip()}


def _parse_env_ids(var_name: str) -> set[int]:
    ids = set()
    for part in _parse_env_list(var_name, ""):
        try:
            ids.add(int(part))
        except ValueError:
            continue
    return ids


def parse_start_time(raw: str) -> datetime:
    """Parse an ISO-8601 timestamp; a trailing ``Z`` and naive values mean UTC."""
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")

# Always write to the mounted volume
DATA_DIR = os.environ.get("DATA_DIR", "/data")
STATE_PATH = os.path.join(DATA_DIR, "bingo_state.json")
STATE_BAK = os.path.join(DATA_DIR, "bingo_state.bak.json")

# Bundled default board, used on first boot and by !reseed
DEFAULT_STATE_PATH = Path(__file__).resolve().parent / "data" / "default_state.json"

PASSWORD = os.environ.get("PASSWORD", "Fall Cookout 25")
START_TIME = parse_start_time(os.environ.get("START_TIME", "2025-09-05T07:00:00Z"))
BINGO_WEBHOOK_SECRET = os.environ.get("BINGO_WEBHOOK_SECRET", "")
PORT = int(os.environ.get("PORT", "3000"))

BOARD_TITLE = os.environ.get("BOARD_TITLE", "Fall Cookout Bingo")
BOARD_SIZE = int(os.environ.get("BOARD_SIZE", "5"))
FONT_PATH = os.environ.get("FONT_PATH", "")

# Discord user IDs allowed to run manage commands (in addition to Manage Server)
ALLOWED_ADMINS = _parse_env_ids("ALLOWED_ADMINS")

# Channels whose loot-bot messages count as drops
FEED_CHANNEL_IDS = _parse_env_ids("FEED_CHANNEL_IDS")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
