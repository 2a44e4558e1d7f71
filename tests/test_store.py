from __future__ import annotations

import json
import logging

import pytest
from sqlmodel import SQLModel, Session, create_engine

from app.bracket import ScheduleVariant, generate_schedule
from app.database import Preference, ScheduleStore, StoredCompletion, StoredSchedule
from app.progress import empty_completion, toggle_match
from app.storage import SnapshotError, decode_completion, decode_schedule, encode_completion, encode_schedule


def _build_test_engine():
    engine = create_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture
def session():
    engine = _build_test_engine()
    with Session(engine) as session:
        yield session
    engine.dispose()


def test_schedule_snapshot_keeps_order_and_flags():
    schedule = generate_schedule(6)
    completion = toggle_match(schedule, empty_completion(schedule), 1, 1)
    decoded, flags = decode_schedule(encode_schedule(schedule, completion))
    assert decoded == schedule
    assert flags == completion
    assert json.loads(encode_schedule(schedule))[0] == [
        {"team1": 1, "team2": 2, "complete": False},
        {"team1": 3, "team2": 4, "complete": False},
    ]


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "{}",
        '[[{"team1": 1, "team2": 2, "complete": false}]]',
        '[[{"team1": 1, "team2": 2}, {"team1": 2, "team2": 3}]]',
        '[[{"team1": 1, "team2": 2}, {"team1": 3, "team2": 4}], [{"team1": 2, "team2": 1}, {"team1": 3, "team2": 5}]]',
        '[[{"team1": 1, "team2": 1}, {"team1": 3, "team2": 4}]]',
        '[[{"team1": "1", "team2": 2}, {"team1": 3, "team2": 4}]]',
        '[[[1, 2], [3, 4]]]',
    ],
)
def test_decode_schedule_rejects_malformed_snapshots(raw):
    with pytest.raises(SnapshotError):
        decode_schedule(raw)


def test_completion_snapshot():
    assert decode_completion(encode_completion({0: [1, 0], 3: [1]})) == {0: [0, 1], 3: [1]}
    for raw in ("nope", "[]", '{"x": [1]}', '{"0": "1"}'):
        with pytest.raises(SnapshotError):
            decode_completion(raw)


def test_store_round_trips_schedule_and_completion(session):
    store = ScheduleStore(session)
    schedule = generate_schedule(8, ScheduleVariant.SEEDED)

    assert store.load(8) is None
    assert store.load_completion(8) == {}

    store.save(8, schedule, ScheduleVariant.SEEDED)
    store.save_completion(8, {2: [0]})

    assert store.load(8) == (schedule, "seeded")
    assert store.load_completion(8) == {2: [0]}
    assert store.load(9) is None


def test_store_overwrites_existing_entry(session):
    store = ScheduleStore(session)
    store.save(6, generate_schedule(6), ScheduleVariant.FIXED_OPENING)
    replacement = generate_schedule(6, ScheduleVariant.LOAD_BALANCED)
    store.save(6, replacement, ScheduleVariant.LOAD_BALANCED)
    store.save_completion(6, {0: [0]})
    store.save_completion(6, {})

    assert store.load(6) == (replacement, "load-balanced")
    assert store.load_completion(6) == {}


def test_store_discards_malformed_snapshots(session, caplog):
    session.add(StoredSchedule(team_count=5, rounds="[[garbage"))
    session.add(StoredCompletion(team_count=5, completed="[1, 2]"))
    session.commit()

    store = ScheduleStore(session)
    with caplog.at_level(logging.WARNING, logger="app.database"):
        assert store.load(5) is None
        assert store.load_completion(5) == {}
    assert "Discarding stored schedule" in caplog.text
    assert "Discarding stored completion" in caplog.text


def test_store_team_count_preference(session):
    store = ScheduleStore(session)
    assert store.load_team_count() is None
    store.save_team_count(11)
    assert store.load_team_count() == 11
    store.save_team_count(4)
    assert store.load_team_count() == 4

    session.merge(Preference(key="team_count", value="eleven"))
    session.commit()
    assert store.load_team_count() is None


def test_timestamps_are_timezone_aware(session):
    assert StoredSchedule(team_count=4, rounds="[]").updated_at.tzinfo is not None
    assert StoredCompletion(team_count=4).updated_at.tzinfo is not None

    store = ScheduleStore(session)
    schedule = generate_schedule(4)
    store.save(4, schedule, ScheduleVariant.FIXED_OPENING)
    store.save_completion(4, {0: [1]})
    assert store.load(4) == (schedule, "fixed-opening")
    assert store.load_completion(4) == {0: [1]}


def test_completion_falls_back_to_schedule_snapshot(session):
    store = ScheduleStore(session)
    schedule = generate_schedule(6)
    completion = toggle_match(schedule, empty_completion(schedule), 2, 0)
    store.save(6, schedule, ScheduleVariant.FIXED_OPENING, completion)

    assert store.load_completion(6) == {2: [0]}

    store.save_completion(6, {})
    assert store.load_completion(6) == {}
