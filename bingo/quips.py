"""Bingo Betty quip system.

Quips are drawn without repeats per (team, category) until a pool runs dry,
then the pool resets. The memory is in-process only; a restart just means
Betty repeats herself a bit sooner.
"""

import random


class QuipBook:
    def __init__(self, rng: random.Random = None):
        self._rng = rng or random.Random()
        self._used: dict[tuple[str, str], set[str]] = {}

    def pick(self, team: str, category: str, pool: list[str]) -> str:
        used = self._used.setdefault((team or "global", category), set())
        available = [q for q in pool if q not in used]
        if not available:
            used.clear()
            available = pool[:]
        choice = self._rng.choice(available)
        used.add(choice)
        return choice

    def say(self, team: str, category: str, pool: list[str]) -> str:
        return f'🗣️ Bingo Betty says: *"{self.pick(team, category, pool)}"*'


# -------------------------
# Quip Pools
# -------------------------

QUIPS_TILE_COMPLETE = [
    "A tile? Finished? By you? I need to sit down.",
    "I had a whole roast ready and you went and earned it. Rude.",
    "Tile complete. The RNG gods have been bribed and I want names.",
    "Fine. FINE. Mark it. I'll pretend I saw that coming.",
    "Somebody check the logs, I refuse to believe this without a screenshot.",
    "You dragged that tile over the line like it owed you gold. Respect.",
    "Congratulations on weaponizing luck. Don't get used to it.",
    "Checkmark deployed. My disappointment has been rescheduled.",
    "That drop rate said no. You said yes. Chaos wins again.",
    "Historians will ask 'them? really?' and I will say 'unfortunately, yes.'",
]

QUIPS_PROGRESS = [
    "Progress! Slow, grindy, deeply unglamorous progress.",
    "One step closer. Keep clicking, little goblins.",
    "The counter moves. My eyebrows do not.",
    "Partial credit. Like a participation trophy, but heavier.",
    "That's going on the fridge. Next to the other half-finished things.",
    "Noted. Logged. Mildly impressed. Mostly not.",
]

QUIPS_UNASSIGNED = [
    "Cute drop. Who are you, though? Get an admin to put you on a team.",
    "I don't know you. Betty doesn't count drops from strangers.",
    "No team, no tile. Them's the rules, sweetie.",
]

QUIPS_NO_MATCH = [
    "That's lovely, but it's not on the board.",
    "Nice loot. Completely useless to your team, but nice.",
    "Betty checked every tile. Nothing. Nada. Try again.",
]
