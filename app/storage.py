from __future__ import annotations

import json
from typing import List, Tuple

from .bracket import COURTS, InvalidArgument, Pair, Round, Schedule, canonical_pair
from .progress import CompletionGrid, CompletionMapping, conform_completion, match_rows


class SnapshotError(ValueError):
    """Raised when a stored snapshot cannot be decoded into a valid schedule."""


def encode_schedule(schedule: Schedule, completion: CompletionGrid | None = None) -> str:
    """Serialize rounds of matches, each with its teams and completion flag."""
    grid = conform_completion(schedule, completion or [])
    return json.dumps(match_rows(schedule, grid), separators=(",", ":"))


def decode_schedule(raw: str) -> Tuple[Schedule, CompletionGrid]:
    """Parse a schedule snapshot, checking round shape, disjointness and repeats."""
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise SnapshotError(f"Schedule snapshot is not valid JSON: {exc}") from exc
    if not isinstance(payload, list):
        raise SnapshotError("Schedule snapshot must be a list of rounds.")

    rounds: List[Round] = []
    grid: CompletionGrid = []
    seen: set[Pair] = set()
    for round_index, entries in enumerate(payload):
        if not isinstance(entries, list) or len(entries) != COURTS:
            raise SnapshotError(f"Round {round_index} must hold exactly {COURTS} matches.")
        pairs: List[Pair] = []
        flags: List[bool] = []
        busy: set[int] = set()
        for entry in entries:
            pair = _decode_pair(entry, round_index)
            if busy.intersection(pair):
                raise SnapshotError(f"Round {round_index} schedules a team twice.")
            if pair in seen:
                raise SnapshotError(f"Pair {pair} appears more than once.")
            busy.update(pair)
            seen.add(pair)
            pairs.append(pair)
            flags.append(bool(entry.get("complete", False)))
        rounds.append(tuple(pairs))
        grid.append(flags)
    return tuple(rounds), grid


def _decode_pair(entry: object, round_index: int) -> Pair:
    if not isinstance(entry, dict):
        raise SnapshotError(f"Round {round_index} contains a malformed match.")
    team1, team2 = entry.get("team1"), entry.get("team2")
    if not isinstance(team1, int) or not isinstance(team2, int) or min(team1, team2) < 1:
        raise SnapshotError(f"Round {round_index} contains an invalid team id.")
    try:
        return canonical_pair(team1, team2)
    except InvalidArgument as exc:
        raise SnapshotError(str(exc)) from exc


def encode_completion(mapping: CompletionMapping) -> str:
    return json.dumps({str(index): sorted(courts) for index, courts in mapping.items()})


def decode_completion(raw: str) -> CompletionMapping:
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise SnapshotError(f"Completion snapshot is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise SnapshotError("Completion snapshot must map round indexes to courts.")

    mapping: CompletionMapping = {}
    for key, courts in payload.items():
        try:
            round_index = int(key)
        except ValueError as exc:
            raise SnapshotError(f"Invalid round index {key!r}.") from exc
        if not isinstance(courts, list) or not all(isinstance(court, int) for court in courts):
            raise SnapshotError(f"Courts for round {round_index} must be integers.")
        mapping[round_index] = sorted(set(courts))
    return mapping
