"""Round construction for two-court round-robin play."""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Callable, Dict, Iterable, List, Sequence, Tuple

COURTS = 2
MIN_TEAMS = 4
MAX_TEAMS = 15
FIXED_OPENING_ROUND = ((1, 2), (3, 4))

_UINT32_MASK = 0xFFFFFFFF
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")

Pair = Tuple[int, int]
Round = Tuple[Pair, ...]
Schedule = Tuple[Round, ...]

logger = logging.getLogger(__name__)


class InvalidArgument(ValueError):
    """Raised when a team count or match address is outside the supported domain."""


class ScheduleExhausted(Exception):
    """Signals that the remaining pairs cannot fill another round."""


class ScheduleVariant(str, Enum):
    FIXED_OPENING = "fixed-opening"
    LOAD_BALANCED = "load-balanced"
    SEEDED = "seeded"


def canonical_pair(team1: int, team2: int) -> Pair:
    """Return the pair with the smaller team id first."""
    if team1 == team2:
        raise InvalidArgument(f"A team cannot play itself (team {team1}).")
    return (team1, team2) if team1 < team2 else (team2, team1)


def generate_pairs(team_count: int) -> List[Pair]:
    """Return every pairing of teams 1..team_count in lexicographic order."""
    if team_count < 2:
        raise InvalidArgument(f"At least two teams are required, got {team_count}.")
    return [(i, j) for i in range(1, team_count + 1) for j in range(i + 1, team_count + 1)]


def validate_team_count(team_count: int) -> int:
    if not MIN_TEAMS <= team_count <= MAX_TEAMS:
        raise InvalidArgument(
            f"Team count must be between {MIN_TEAMS} and {MAX_TEAMS}, got {team_count}."
        )
    return team_count


def clamp_team_count(raw: str | int | None) -> int:
    """Parse a submitted team count, falling back to the minimum, and clamp it."""
    match = _LEADING_INT.match(str(raw)) if raw is not None else None
    value = int(match.group(1)) if match else 0
    if not value:
        value = MIN_TEAMS
    return min(MAX_TEAMS, max(MIN_TEAMS, value))


def _imul(left: int, right: int) -> int:
    return (left * right) & _UINT32_MASK


def mulberry32(seed: int) -> Callable[[], float]:
    """Return a Mulberry32 generator yielding floats in [0, 1)."""
    state = seed & _UINT32_MASK

    def _next() -> float:
        nonlocal state
        state = (state + 0x6D2B79F5) & _UINT32_MASK
        value = _imul(state ^ (state >> 15), state | 1)
        value ^= (value + _imul(value ^ (value >> 7), value | 61)) & _UINT32_MASK
        return ((value ^ (value >> 14)) & _UINT32_MASK) / 4294967296

    return _next


def seeded_shuffle(items: Sequence[Pair], seed: int) -> List[Pair]:
    """Fisher-Yates shuffle driven by Mulberry32, identical for identical seeds."""
    shuffled = list(items)
    random = mulberry32(seed)
    remaining = len(shuffled)
    while remaining:
        index = int(random() * remaining)
        remaining -= 1
        shuffled[remaining], shuffled[index] = shuffled[index], shuffled[remaining]
    return shuffled


class RoundBuilder:
    """Greedily pack pairs into rounds of ``courts`` disjoint matches.

    Pairs are scanned in their current order and accepted while neither team
    already plays in the round. When ``rebalance`` is set the remaining pairs
    are stably re-sorted before every round by the combined number of matches
    their teams have played. The first round that cannot be filled ends the
    build; its pairs and any others left over stay unscheduled.
    """

    def __init__(
        self,
        pairs: Iterable[Pair],
        *,
        opening: Sequence[Pair] = (),
        rebalance: bool = False,
        courts: int = COURTS,
    ) -> None:
        self.courts = courts
        self.rebalance = rebalance
        self.opening: Round = tuple(canonical_pair(*pair) for pair in opening)
        reserved = set(self.opening)
        self.remaining: List[Pair] = [
            pair for pair in pairs if canonical_pair(*pair) not in reserved
        ]
        self.played: Dict[int, int] = {}
        for team1, team2 in self.opening:
            self._record(team1, team2)

    def _record(self, team1: int, team2: int) -> None:
        self.played[team1] = self.played.get(team1, 0) + 1
        self.played[team2] = self.played.get(team2, 0) + 1

    def _load(self, pair: Pair) -> int:
        return self.played.get(pair[0], 0) + self.played.get(pair[1], 0)

    def _fill_round(self) -> Round:
        if self.rebalance:
            # sorted() is stable, so ties keep their previous relative order.
            self.remaining = sorted(self.remaining, key=self._load)

        accepted: List[Pair] = []
        busy: set[int] = set()
        for team1, team2 in self.remaining:
            if team1 in busy or team2 in busy:
                continue
            accepted.append((team1, team2))
            busy.update((team1, team2))
            if len(accepted) == self.courts:
                break

        if len(accepted) < self.courts:
            raise ScheduleExhausted(
                f"{len(self.remaining)} pairs left but no {self.courts} disjoint matches"
            )
        return tuple(canonical_pair(*pair) for pair in accepted)

    def build(self) -> Schedule:
        rounds: List[Round] = [self.opening] if self.opening else []
        while True:
            try:
                round_ = self._fill_round()
            except ScheduleExhausted as exc:
                logger.debug("Stopping after %d rounds: %s", len(rounds), exc)
                break
            accepted = set(round_)
            self.remaining = [
                pair for pair in self.remaining if canonical_pair(*pair) not in accepted
            ]
            for team1, team2 in round_:
                self._record(team1, team2)
            rounds.append(round_)
        return tuple(rounds)


def generate_schedule(
    team_count: int, variant: ScheduleVariant | str = ScheduleVariant.FIXED_OPENING
) -> Schedule:
    """Build the ordered rounds for ``team_count`` teams using ``variant``."""
    validate_team_count(team_count)
    variant = ScheduleVariant(variant)
    pairs = generate_pairs(team_count)

    if variant is ScheduleVariant.FIXED_OPENING:
        reserved = set(FIXED_OPENING_ROUND)
        pool = [pair for pair in pairs if pair not in reserved]
        builder = RoundBuilder(seeded_shuffle(pool, team_count), opening=FIXED_OPENING_ROUND)
    elif variant is ScheduleVariant.LOAD_BALANCED:
        builder = RoundBuilder(pairs, rebalance=True)
    else:
        builder = RoundBuilder(seeded_shuffle(pairs, team_count))

    schedule = builder.build()
    logger.info(
        "Built %s schedule for %d teams: %d rounds, %d of %d pairs unscheduled",
        variant.value,
        team_count,
        len(schedule),
        len(builder.remaining),
        len(pairs),
    )
    return schedule


class ScheduleCache:
    """Memoised schedules keyed by team count and variant."""

    def __init__(self) -> None:
        self._entries: Dict[Tuple[int, ScheduleVariant], Schedule] = {}

    def get(self, team_count: int, variant: ScheduleVariant | str = ScheduleVariant.FIXED_OPENING) -> Schedule:
        key = (team_count, ScheduleVariant(variant))
        cached = self._entries.get(key)
        if cached is not None:
            logger.debug("Schedule cache hit for %d teams (%s)", *key)
            return cached
        schedule = generate_schedule(*key)
        self._entries[key] = schedule
        return schedule

    def warm(self, variant: ScheduleVariant | str = ScheduleVariant.FIXED_OPENING) -> None:
        for team_count in range(MIN_TEAMS, MAX_TEAMS + 1):
            self.get(team_count, variant)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def team_ids(team_count: int) -> List[int]:
    return list(range(1, team_count + 1))
