class BingoError(Exception):
    """Base class for everything the bingo core raises on purpose."""


class TileConfigError(BingoError):
    """A tile definition is malformed. Fatal at load time."""

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        if key:
            message = f"tile {key!r}: {message}"
        super().__init__(message)


class PersistenceError(BingoError):
    """Saving the board state failed; in-memory changes were rolled back."""


class UnknownTeamError(BingoError):
    def __init__(self, team: str):
        self.team = team
        super().__init__(f"No team named {team!r}.")


class UnknownTileError(BingoError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"No tile with key {key!r}.")
