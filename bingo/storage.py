"""Whole-document JSON persistence with an atomic replace and one backup copy."""

import json
import logging
import os
import shutil
import tempfile

from . import settings
from .errors import PersistenceError
from .state import BoardState

log = logging.getLogger("bingo.storage")


def save_state(state: BoardState, path: str = None, backup: str = None) -> None:
    """Write the state to disk. Raises PersistenceError if it didn't make it."""
    path = path or settings.STATE_PATH
    backup = backup or settings.STATE_BAK
    data = state.to_dict()
    directory = os.path.dirname(os.path.abspath(path))

    try:
        os.makedirs(directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=directory, prefix=".tmp_state_", text=True)
    except OSError as e:
        raise PersistenceError(f"cannot write to {directory}: {e}") from e

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())

        if os.path.exists(path):
            try:
                shutil.copyfile(path, backup)
            except OSError as e:
                # the new state still lands; only the safety copy is stale
                log.warning("[SAVE] Could not refresh backup %s: %r", backup, e)
        os.replace(tmp, path)
        log.info("[SAVE] State written to %s (%d tiles, %d teams)", path, len(state.tiles), len(state.completed_by_team))
    except OSError as e:
        raise PersistenceError(f"failed to save state to {path}: {e}") from e
    finally:
        if os.path.exists(tmp):
            try:
                os.remove(tmp)
            except OSError:
                log.warning("[SAVE] Left temp file behind: %s", tmp)


def _read(path):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_default_state(default_path=None) -> BoardState:
    default_path = default_path or settings.DEFAULT_STATE_PATH
    return BoardState.from_dict(_read(default_path))


def load_state(path: str = None, backup: str = None, default_path=None) -> BoardState:
    """Load the saved state, falling back to the backup, then to the bundled default.

    Tile definitions are validated on every load; a bad board raises
    TileConfigError rather than going live half-configured.
    """
    path = path or settings.STATE_PATH
    backup = backup or settings.STATE_BAK

    for candidate in (path, backup):
        if not os.path.exists(candidate):
            continue
        try:
            data = _read(candidate)
        except (OSError, ValueError) as e:
            log.warning("[LOAD] Could not read %s: %r", candidate, e)
            continue
        state = BoardState.from_dict(data)
        done = sum(1 for bucket in state.completed_by_team.values() for e in bucket.values() if e.done)
        log.info(
            "[LOAD] State loaded from %s: %d tiles, %d teams, %d tiles marked complete",
            candidate, len(state.tiles), len(state.completed_by_team), done,
        )
        return state

    log.info("[LOAD] No prior state file; starting from bundled default.")
    return load_default_state(default_path)
