"""Database models and the schedule store keyed by team count."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Iterator, Tuple

from sqlmodel import Field, Session, SQLModel, create_engine

from .bracket import Schedule, ScheduleVariant
from .progress import CompletionGrid, CompletionMapping, to_mapping
from .storage import SnapshotError, decode_completion, decode_schedule, encode_completion, encode_schedule

DEFAULT_SQLITE_PATH = "sqlite:///./court_rotation.db"
TEAM_COUNT_KEY = "team_count"

logger = logging.getLogger(__name__)


def _build_engine_url() -> str:
    """Return the configured database URL or fall back to SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_SQLITE_PATH)


def _build_engine() -> "Engine":
    url = _build_engine_url()
    engine_kwargs = {}
    if url.startswith("sqlite"):
        # SQLite needs check_same_thread disabled for FastAPI concurrency,
        # but passing this flag to other drivers (e.g., psycopg2) raises errors.
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(url, **engine_kwargs)


engine = _build_engine()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredSchedule(SQLModel, table=True):
    team_count: int = Field(primary_key=True)
    variant: str = Field(default=ScheduleVariant.FIXED_OPENING.value, nullable=False)
    rounds: str = Field(nullable=False)
    updated_at: datetime = Field(default_factory=_utcnow, nullable=False)


class StoredCompletion(SQLModel, table=True):
    team_count: int = Field(primary_key=True)
    completed: str = Field(default="{}", nullable=False)
    updated_at: datetime = Field(default_factory=_utcnow, nullable=False)


class Preference(SQLModel, table=True):
    key: str = Field(primary_key=True, max_length=64)
    value: str = Field(nullable=False)


def init_db() -> None:
    """Create tables if they don't already exist."""
    SQLModel.metadata.create_all(engine)


def get_session() -> Iterator[Session]:
    """Yield a SQLModel session for dependency injection."""
    with Session(engine) as session:
        yield session


class ScheduleStore:
    """Persist schedules and completion flags, one entry per team count.

    Snapshots that fail to decode are logged and treated as absent so the
    caller regenerates instead of failing.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def load(self, team_count: int) -> Tuple[Schedule, str] | None:
        record = self.session.get(StoredSchedule, team_count)
        if record is None:
            return None
        try:
            schedule, _ = decode_schedule(record.rounds)
        except SnapshotError as exc:
            logger.warning("Discarding stored schedule for %d teams: %s", team_count, exc)
            return None
        return schedule, record.variant

    def save(
        self,
        team_count: int,
        schedule: Schedule,
        variant: ScheduleVariant | str,
        completion: CompletionGrid | None = None,
    ) -> None:
        record = self.session.get(StoredSchedule, team_count) or StoredSchedule(team_count=team_count, rounds="[]")
        record.variant = ScheduleVariant(variant).value
        record.rounds = encode_schedule(schedule, completion)
        record.updated_at = _utcnow()
        self.session.add(record)
        self.session.commit()

    def load_completion(self, team_count: int) -> CompletionMapping:
        record = self.session.get(StoredCompletion, team_count)
        if record is None:
            return self._snapshot_completion(team_count)
        try:
            return decode_completion(record.completed)
        except SnapshotError as exc:
            logger.warning("Discarding stored completion flags for %d teams: %s", team_count, exc)
            return {}

    def _snapshot_completion(self, team_count: int) -> CompletionMapping:
        """Fall back to the flags embedded in the schedule snapshot."""
        record = self.session.get(StoredSchedule, team_count)
        if record is None:
            return {}
        try:
            _, completion = decode_schedule(record.rounds)
        except SnapshotError:
            return {}
        return to_mapping(completion)

    def save_completion(self, team_count: int, mapping: CompletionMapping) -> None:
        record = self.session.get(StoredCompletion, team_count) or StoredCompletion(team_count=team_count)
        record.completed = encode_completion(mapping)
        record.updated_at = _utcnow()
        self.session.add(record)
        self.session.commit()

    def load_team_count(self) -> int | None:
        record = self.session.get(Preference, TEAM_COUNT_KEY)
        if record is None:
            return None
        try:
            return int(record.value)
        except ValueError:
            logger.warning("Ignoring stored team count %r", record.value)
            return None

    def save_team_count(self, team_count: int) -> None:
        record = self.session.get(Preference, TEAM_COUNT_KEY) or Preference(key=TEAM_COUNT_KEY, value="")
        record.value = str(team_count)
        self.session.add(record)
        self.session.commit()
