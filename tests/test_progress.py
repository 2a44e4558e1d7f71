from __future__ import annotations

import pytest

from app.bracket import InvalidArgument, generate_schedule
from app.progress import (
    compute_progress,
    conform_completion,
    empty_completion,
    from_mapping,
    is_finished,
    match_rows,
    outstanding_matches,
    reset_progress,
    scheduled_counts,
    to_mapping,
    toggle_match,
)

SCHEDULE = generate_schedule(4)


def test_empty_completion_mirrors_schedule_shape():
    assert empty_completion(SCHEDULE) == [[False, False], [False, False], [False, False]]


def test_toggle_flips_one_match_without_mutating_input():
    completion = empty_completion(SCHEDULE)
    toggled = toggle_match(SCHEDULE, completion, 1, 0)
    assert toggled[1] == [True, False]
    assert completion[1] == [False, False]


def test_toggle_twice_restores_original_value():
    completion = toggle_match(SCHEDULE, empty_completion(SCHEDULE), 2, 1)
    assert toggle_match(SCHEDULE, toggle_match(SCHEDULE, completion, 0, 1), 0, 1) == completion


@pytest.mark.parametrize("address", [(3, 0), (0, 2), (-1, 0), (0, -1)])
def test_toggle_rejects_unknown_address(address):
    with pytest.raises(InvalidArgument):
        toggle_match(SCHEDULE, empty_completion(SCHEDULE), *address)


def test_progress_counts_completed_matches_per_team():
    completion = toggle_match(SCHEDULE, empty_completion(SCHEDULE), 0, 0)
    completion = toggle_match(SCHEDULE, completion, 1, 1)
    # Round 1 court 1 is (1, 2); round 2 court 2 is (2, 3).
    assert compute_progress(SCHEDULE, completion, 4) == {1: 1, 2: 2, 3: 1, 4: 0}


def test_progress_sum_is_twice_completed_matches():
    schedule = generate_schedule(9)
    completion = empty_completion(schedule)
    for round_index in range(0, len(schedule), 2):
        completion = toggle_match(schedule, completion, round_index, round_index % 2)
    completed = sum(flag for row in completion for flag in row)
    assert completed > 0
    assert sum(compute_progress(schedule, completion, 9).values()) == 2 * completed


def test_reset_progress_clears_flags_and_keeps_shape():
    completion = toggle_match(SCHEDULE, empty_completion(SCHEDULE), 0, 0)
    assert reset_progress(completion) == empty_completion(SCHEDULE)
    assert completion[0][0] is True


def test_scheduled_counts_ignore_completion():
    assert scheduled_counts(SCHEDULE, 4) == {1: 3, 2: 3, 3: 3, 4: 3}
    schedule = generate_schedule(5)
    assert scheduled_counts(schedule, 5) == {1: 4, 2: 2, 3: 3, 4: 4, 5: 3}


def test_outstanding_and_finished():
    completion = empty_completion(SCHEDULE)
    assert outstanding_matches(SCHEDULE, completion) == 6
    assert not is_finished(SCHEDULE, completion)
    for round_index in range(3):
        for court_index in range(2):
            completion = toggle_match(SCHEDULE, completion, round_index, court_index)
    assert outstanding_matches(SCHEDULE, completion) == 0
    assert is_finished(SCHEDULE, completion)


def test_mapping_conversion():
    completion = toggle_match(SCHEDULE, empty_completion(SCHEDULE), 2, 1)
    mapping = to_mapping(completion)
    assert mapping == {2: [1]}
    assert from_mapping(SCHEDULE, mapping) == completion


def test_from_mapping_ignores_addresses_outside_schedule():
    assert from_mapping(SCHEDULE, {0: [0, 5], 7: [1]}) == [[True, False], [False, False], [False, False]]


def test_conform_completion_pads_and_truncates():
    assert conform_completion(SCHEDULE, [[True], [False, True, True], [], [True]]) == [
        [True, False],
        [False, True],
        [False, False],
    ]


def test_match_rows_combine_pairs_and_flags():
    completion = toggle_match(SCHEDULE, empty_completion(SCHEDULE), 0, 1)
    assert match_rows(SCHEDULE, completion)[0] == [
        {"team1": 1, "team2": 2, "complete": False},
        {"team1": 3, "team2": 4, "complete": True},
    ]
