from __future__ import annotations

import asyncio
import datetime
import logging
import uuid as uuidlib
from typing import TYPE_CHECKING

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    create_engine,
    event,
    exc,
    func,
    select,
    text,
)
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from workout_core.models import UTC, WorkoutRecord, ensure_aware
from workout_core.store import QueryPage, StoreQueryFailed

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

Base = declarative_base()


class Workout(Base):
    __tablename__ = "workouts"
    id = Column(Integer, primary_key=True)
    # identity shared with the device / service the workout came from
    uuid = Column(String(64), nullable=False, unique=True)
    # timezone-aware UTC
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    activity_type = Column(String(64), nullable=False)

    duration_s = Column(Float)  # optional
    distance_m = Column(Float)  # optional
    energy_kj = Column(Float)  # optional
    source = Column(String(128))  # optional

    # newest-first paging walks this index
    __table_args__ = (Index("ix_workouts_start_id", "start_time", "id"),)

    def to_record(self) -> WorkoutRecord:
        return WorkoutRecord(
            uuid=self.uuid,
            start_time=ensure_aware(self.start_time),
            end_time=ensure_aware(self.end_time),
            activity_type=self.activity_type,
            duration_s=self.duration_s,
            distance_m=self.distance_m,
            energy_kj=self.energy_kj,
            source=self.source,
        )


def _to_utc(dt: datetime.datetime) -> datetime.datetime:
    # SQLite keeps the wall time only, so everything is stored as UTC
    return ensure_aware(dt).astimezone(UTC)


def _sqlite_pragmas(dbapi_con, _con_record):
    cur = dbapi_con.cursor()
    cur.execute("PRAGMA journal_mode=WAL;")
    cur.execute("PRAGMA synchronous=NORMAL;")
    cur.execute("PRAGMA foreign_keys=ON;")
    cur.close()


class DatabaseManager:
    BATCH_SIZE = 25

    def __init__(self, database_url: str):
        connect_args = {}
        engine_args = {}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                # one shared connection, otherwise every thread sees an empty db
                engine_args["poolclass"] = StaticPool

        self.engine = create_engine(
            database_url,
            echo=False,
            future=True,
            connect_args=connect_args,
            pool_pre_ping=True,
            **engine_args,
        )
        if database_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _sqlite_pragmas)

        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, future=True, expire_on_commit=False)

        # staging area for batching
        self._pending: list[Workout] = []

    def is_available(self) -> bool:
        try:
            with self.engine.connect() as con:
                con.execute(text("SELECT 1"))
        except exc.SQLAlchemyError as e:
            logger.warning("Database not reachable: %s", e)
            return False
        return True

    def add_workout(
        self,
        start_time: datetime.datetime,
        end_time: datetime.datetime,
        activity_type: str,
        *,
        uuid: str | None = None,
        duration_s: float | None = None,
        distance_m: float | None = None,
        energy_kj: float | None = None,
        source: str | None = None,
    ) -> WorkoutRecord:
        if duration_s is None:
            duration_s = (end_time - start_time).total_seconds()

        with self.Session() as session:
            w = Workout(
                uuid=uuid or uuidlib.uuid4().hex,
                start_time=_to_utc(start_time),
                end_time=_to_utc(end_time),
                activity_type=activity_type,
                duration_s=duration_s,
                distance_m=distance_m,
                energy_kj=energy_kj,
                source=source,
            )
            session.add(w)
            session.commit()
            return w.to_record()

    def add_workouts(self, records: Iterable[WorkoutRecord]) -> int:
        """Insert ``records`` whose uuid isn't stored yet; returns how many were added."""
        with self.Session() as session:
            known = set(session.scalars(select(Workout.uuid)))

        added = 0
        for r in records:
            if r.uuid in known:
                continue
            known.add(r.uuid)
            self._pending.append(
                Workout(
                    uuid=r.uuid,
                    start_time=_to_utc(r.start_time),
                    end_time=_to_utc(r.end_time),
                    activity_type=r.activity_type,
                    duration_s=r.duration_s,
                    distance_m=r.distance_m,
                    energy_kj=r.energy_kj,
                    source=r.source,
                )
            )
            added += 1

            # flush in batches
            if len(self._pending) >= self.BATCH_SIZE:
                self._flush_pending()

        self._flush_pending()
        return added

    def _flush_pending(self):
        if not self._pending:
            return
        try:
            with self.Session() as session:
                session.add_all(self._pending)
                session.commit()
        finally:
            # a failed batch is rolled back, don't retry it with the next one
            self._pending.clear()

    def count_workouts(self) -> int:
        with self.Session() as session:
            return int(session.scalar(select(func.count(Workout.id))))

    def query_workouts(
        self, before: datetime.datetime | None, limit: int
    ) -> tuple[list[WorkoutRecord], bool]:
        """
        Newest-first page of at most ``limit`` workouts starting at or before
        ``before``, plus whether more rows were left out by the limit.
        """
        stmt = select(Workout)
        if before is not None:
            stmt = stmt.where(Workout.start_time <= _to_utc(before))
        # id breaks start time ties so pages always agree on their order
        stmt = stmt.order_by(Workout.start_time.desc(), Workout.id.desc()).limit(limit + 1)

        try:
            with self.Session() as session:
                rows = list(session.scalars(stmt))
        except exc.SQLAlchemyError as e:
            raise StoreQueryFailed(f"Workout query failed: {e}") from e

        return [w.to_record() for w in rows[:limit]], len(rows) > limit


class SQLWorkoutStore:
    """Workout store over a ``DatabaseManager``; queries run in a worker thread."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def is_available(self) -> bool:
        return self.db.is_available()

    async def query_workouts(
        self, before: datetime.datetime | None, limit: int
    ) -> QueryPage:
        workouts, has_more = await asyncio.to_thread(self.db.query_workouts, before, limit)
        return QueryPage(tuple(workouts), has_more)
