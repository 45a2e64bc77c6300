"""
coinhaven.engine.fishing — Fishing Odds & Reward Generation
============================================================

Pure calculation: weighted scenario selection, per-scenario rewards and
the clan bonus.  The random source is passed in so tests can seed it.

Pipeline::

    pick_scenario(STACKED_ODDS, rng) → CATCHES[scenario].reward(rng)
        → clan_bonus_multiplier(reward, clan_level) → FishResult
"""

from __future__ import annotations

import enum
import random
from collections.abc import Callable
from dataclasses import dataclass

from coinhaven.constants import js_round


class Scenario(enum.StrEnum):
    JORMUNGANDR = "JORMUNGANDR"
    KRAKEN = "KRAKEN"
    WHALE = "WHALE"
    SHARK = "SHARK"
    BIG_FISH = "BIG_FISH"
    LOCH_NESS_MONSTER = "LOCH_NESS_MONSTER"
    SMALL_FISH = "SMALL_FISH"
    SHOE = "SHOE"
    OCTOPUS = "OCTOPUS"
    TURTLE = "TURTLE"
    SEAWEED = "SEAWEED"
    STARFISH = "STARFISH"
    HIDDEN_TREASURE = "HIDDEN_TREASURE"
    JELLYFISH = "JELLYFISH"
    NOTHING = "NOTHING"
    PIRATE_ATTACK = "PIRATE_ATTACK"


# Relative weights.  Total is 1610.
ODDS: dict[Scenario, int] = {
    Scenario.JORMUNGANDR: 1,
    Scenario.KRAKEN: 3,
    Scenario.WHALE: 50,
    Scenario.LOCH_NESS_MONSTER: 6,
    Scenario.SHARK: 170,
    Scenario.BIG_FISH: 370,
    Scenario.SMALL_FISH: 400,
    Scenario.SHOE: 100,
    Scenario.OCTOPUS: 50,
    Scenario.TURTLE: 50,
    Scenario.SEAWEED: 50,
    Scenario.HIDDEN_TREASURE: 100,
    Scenario.JELLYFISH: 100,
    Scenario.STARFISH: 100,
    Scenario.NOTHING: 30,
    Scenario.PIRATE_ATTACK: 30,
}


def _fixed(amount: int) -> Callable[[random.Random], int]:
    return lambda rng: amount


def _between(low: int, high: int) -> Callable[[random.Random], int]:
    return lambda rng: rng.randint(low, high)


@dataclass(frozen=True, slots=True)
class Catch:
    message: str
    reward: Callable[[random.Random], int]


CATCHES: dict[Scenario, Catch] = {
    Scenario.WHALE: Catch("You caught a whale! \U0001f40b", _fixed(50_000)),
    Scenario.JORMUNGANDR: Catch(
        "The seas roared; the Kraken trembled. The World Serpent "
        "**Jörmungandr** graced you with His presence. :snake:",
        _fixed(2_000_000),
    ),
    Scenario.LOCH_NESS_MONSTER: Catch(
        "You caught the Loch Ness Monster! \U0001f409", _fixed(300_000)
    ),
    Scenario.SHARK: Catch("You caught a shark! \U0001f988", _fixed(15_000)),
    Scenario.BIG_FISH: Catch("You caught a big fish! \U0001f41f", _between(3_000, 4_000)),
    Scenario.SMALL_FISH: Catch("You caught a small fish! \U0001f420", _between(800, 1_000)),
    Scenario.SHOE: Catch("You caught a shoe! \U0001f45e", _between(0, 500)),
    Scenario.NOTHING: Catch("You caught nothing... \U0001f3a3", _fixed(0)),
    Scenario.OCTOPUS: Catch("You caught an octopus! \U0001f419", _between(800, 1_000)),
    Scenario.TURTLE: Catch("You caught a turtle! \U0001f422", _between(800, 1_000)),
    Scenario.SEAWEED: Catch("You caught seaweed! \U0001f33f", _between(0, 30)),
    Scenario.HIDDEN_TREASURE: Catch(
        "You found a hidden treasure! \U0001f4b0", _between(10_000, 15_000)
    ),
    Scenario.JELLYFISH: Catch("You caught a jellyfish! \U0001fabc", _between(500, 1_000)),
    Scenario.STARFISH: Catch("You caught a starfish! ⭐", _between(200, 600)),
    Scenario.PIRATE_ATTACK: Catch(
        "You were attacked by pirates! \U0001f4a3",
        lambda rng: -rng.randint(5_000, 10_000),
    ),
    Scenario.KRAKEN: Catch(
        "The Call of Cthulhu! You caught a kraken monster. \U0001f991",
        _fixed(1_200_000),
    ),
}


# ---------------------------------------------------------------------------
# Weighted selection
# ---------------------------------------------------------------------------
def stack_odds(odds: dict[Scenario, int]) -> list[tuple[Scenario, int]]:
    """Convert weights into cumulative upper bounds, in insertion order."""
    stacked: list[tuple[Scenario, int]] = []
    total = 0
    for scenario, weight in odds.items():
        if weight <= 0:
            continue
        total += weight
        stacked.append((scenario, total))
    return stacked


STACKED_ODDS = stack_odds(ODDS)


def pick_scenario(stacked: list[tuple[Scenario, int]], rng: random.Random) -> Scenario:
    roll = rng.randrange(stacked[-1][1])
    for scenario, upper in stacked:
        if roll < upper:
            return scenario
    return stacked[-1][0]


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------
def clan_bonus_multiplier(reward: int, clan_level: int | None) -> float:
    """5% per clan level; losses are never amplified."""
    if reward < 0 or not clan_level:
        return 0.0
    return clan_level / 20


@dataclass(frozen=True, slots=True)
class FishResult:
    scenario: Scenario
    message: str
    reward: int
    clan_bonus: int
    multiplier: float

    @property
    def total(self) -> int:
        return self.reward + self.clan_bonus


def go_fishing(rng: random.Random, clan_level: int | None = None) -> FishResult:
    scenario = pick_scenario(STACKED_ODDS, rng)
    catch = CATCHES[scenario]
    reward = catch.reward(rng)
    multiplier = clan_bonus_multiplier(reward, clan_level)
    return FishResult(
        scenario=scenario,
        message=catch.message,
        reward=reward,
        clan_bonus=js_round(reward * multiplier),
        multiplier=multiplier,
    )


def work_title(total: int) -> str:
    if total > 0:
        return "\U0001f4b8 Payday!"
    if total < 0:
        return "\U0001f4c9 Ouch!"
    return "\U0001f937 Better luck next time"
