"""Completion flags and per-team progress derived from a schedule."""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, TypedDict

from .bracket import InvalidArgument, Schedule, team_ids

CompletionGrid = List[List[bool]]
CompletionMapping = Dict[int, List[int]]


class Match(TypedDict):
    team1: int
    team2: int
    complete: bool


def empty_completion(schedule: Schedule) -> CompletionGrid:
    """Return a grid of ``False`` flags shaped like ``schedule``."""
    return [[False] * len(round_) for round_ in schedule]


def toggle_match(
    schedule: Schedule, completion: CompletionGrid, round_index: int, court_index: int
) -> CompletionGrid:
    """Return a copy of ``completion`` with one match flipped."""
    if not 0 <= round_index < len(schedule) or not 0 <= court_index < len(schedule[round_index]):
        raise InvalidArgument(f"No match at round {round_index}, court {court_index}.")
    grid = conform_completion(schedule, completion)
    grid[round_index][court_index] = not grid[round_index][court_index]
    return grid


def reset_progress(completion: CompletionGrid) -> CompletionGrid:
    return [[False] * len(row) for row in completion]


def conform_completion(schedule: Schedule, completion: Iterable[Iterable[bool]]) -> CompletionGrid:
    """Copy ``completion`` onto the schedule's shape, padding missing flags with ``False``."""
    rows = [list(row) for row in completion]
    grid = empty_completion(schedule)
    for round_index, row in enumerate(rows[: len(grid)]):
        for court_index, flag in enumerate(row[: len(grid[round_index])]):
            grid[round_index][court_index] = bool(flag)
    return grid


def compute_progress(schedule: Schedule, completion: CompletionGrid, team_count: int) -> Dict[int, int]:
    """Count completed matches for every team in ``1..team_count``."""
    counts = {team: 0 for team in team_ids(team_count)}
    grid = conform_completion(schedule, completion)
    for round_, flags in zip(schedule, grid):
        for (team1, team2), complete in zip(round_, flags):
            if complete:
                counts[team1] = counts.get(team1, 0) + 1
                counts[team2] = counts.get(team2, 0) + 1
    return counts


def scheduled_counts(schedule: Schedule, team_count: int) -> Dict[int, int]:
    """Count scheduled matches per team, finished or not."""
    counts = {team: 0 for team in team_ids(team_count)}
    for round_ in schedule:
        for team1, team2 in round_:
            counts[team1] = counts.get(team1, 0) + 1
            counts[team2] = counts.get(team2, 0) + 1
    return counts


def completed_matches(completion: CompletionGrid) -> int:
    return sum(flag for row in completion for flag in row)


def outstanding_matches(schedule: Schedule, completion: CompletionGrid) -> int:
    total = sum(len(round_) for round_ in schedule)
    return total - completed_matches(conform_completion(schedule, completion))


def is_finished(schedule: Schedule, completion: CompletionGrid) -> bool:
    return outstanding_matches(schedule, completion) == 0


def to_mapping(completion: CompletionGrid) -> CompletionMapping:
    """Express the grid as ``{round_index: [court_index, ...]}`` for completed matches."""
    mapping: CompletionMapping = {}
    for round_index, row in enumerate(completion):
        courts = [court_index for court_index, flag in enumerate(row) if flag]
        if courts:
            mapping[round_index] = courts
    return mapping


def from_mapping(schedule: Schedule, mapping: Mapping[int, Iterable[int]]) -> CompletionGrid:
    """Build a grid from a stored mapping, ignoring addresses outside ``schedule``."""
    grid = empty_completion(schedule)
    for round_index, courts in mapping.items():
        if not 0 <= round_index < len(grid):
            continue
        for court_index in courts:
            if 0 <= court_index < len(grid[round_index]):
                grid[round_index][court_index] = True
    return grid


def match_rows(schedule: Schedule, completion: CompletionGrid) -> List[List[Match]]:
    grid = conform_completion(schedule, completion)
    return [
        [Match(team1=team1, team2=team2, complete=flag) for (team1, team2), flag in zip(round_, flags)]
        for round_, flags in zip(schedule, grid)
    ]
