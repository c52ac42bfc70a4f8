"""
Generic record store used by the assistant.

Records are plain dicts keyed by ``id``; child records reference their trip
through the ``trip`` field. Two backends are provided: an in-memory store for
development and tests, and a SQLAlchemy store for anything that should survive
a restart.
"""

import copy
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, String, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

Record = Dict[str, Any]

TRIPS = "trips"
ACTIVITIES = "activities"
LODGINGS = "lodgings"
TRANSPORTATIONS = "transportations"


class StoreError(Exception):
    """The backing store could not complete an operation."""


class RecordNotFound(StoreError):
    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(f"{collection} record {record_id!r} not found")
        self.collection = collection
        self.record_id = record_id


def new_record_id() -> str:
    return uuid.uuid4().hex[:15]


class RecordStore(ABC):
    @abstractmethod
    def get(self, collection: str, record_id: str) -> Record:
        ...

    @abstractmethod
    def find(self, collection: str, **filters: Any) -> List[Record]:
        ...

    @abstractmethod
    def save(self, collection: str, record: Record) -> Record:
        ...

    @abstractmethod
    def delete(self, collection: str, record_id: str) -> None:
        ...


class MemoryRecordStore(RecordStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._collections: Dict[str, Dict[str, Record]] = {}

    def get(self, collection: str, record_id: str) -> Record:
        with self._lock:
            record = self._collections.get(collection, {}).get(record_id)
            if record is None:
                raise RecordNotFound(collection, record_id)
            return copy.deepcopy(record)

    def find(self, collection: str, **filters: Any) -> List[Record]:
        with self._lock:
            records = list(self._collections.get(collection, {}).values())
            return [
                copy.deepcopy(r)
                for r in records
                if all(r.get(k) == v for k, v in filters.items())
            ]

    def save(self, collection: str, record: Record) -> Record:
        stored = copy.deepcopy(record)
        stored.setdefault("id", new_record_id())
        with self._lock:
            self._collections.setdefault(collection, {})[stored["id"]] = stored
        return copy.deepcopy(stored)

    def delete(self, collection: str, record_id: str) -> None:
        with self._lock:
            items = self._collections.get(collection, {})
            if record_id not in items:
                raise RecordNotFound(collection, record_id)
            del items[record_id]


class Base(DeclarativeBase):
    pass


class StoredRecord(Base):
    __tablename__ = "records"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    collection: Mapped[str] = mapped_column(String(64), index=True)
    trip: Mapped[Optional[str]] = mapped_column(String(64), index=True, nullable=True)
    data: Mapped[dict] = mapped_column(JSON, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )


class SqlRecordStore(RecordStore):
    def __init__(self, database_url: str) -> None:
        kwargs: Dict[str, Any] = {"pool_pre_ping": True}
        if database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
                kwargs["poolclass"] = StaticPool
        self.engine = create_engine(database_url, **kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, autocommit=False)
        Base.metadata.create_all(self.engine)

    @staticmethod
    def _to_record(row: StoredRecord) -> Record:
        record = dict(row.data or {})
        record["id"] = row.id
        if row.trip is not None:
            record["trip"] = row.trip
        return record

    def get(self, collection: str, record_id: str) -> Record:
        try:
            with self.SessionLocal() as db:
                row = db.get(StoredRecord, record_id)
                if row is None or row.collection != collection:
                    raise RecordNotFound(collection, record_id)
                return self._to_record(row)
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    def find(self, collection: str, **filters: Any) -> List[Record]:
        trip = filters.pop("trip", None)
        stmt = select(StoredRecord).where(StoredRecord.collection == collection)
        if trip is not None:
            stmt = stmt.where(StoredRecord.trip == trip)
        try:
            with self.SessionLocal() as db:
                rows = db.scalars(stmt).all()
                records = [self._to_record(row) for row in rows]
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
        return [r for r in records if all(r.get(k) == v for k, v in filters.items())]

    def save(self, collection: str, record: Record) -> Record:
        data = copy.deepcopy(record)
        record_id = data.pop("id", None) or new_record_id()
        trip = data.pop("trip", None)
        try:
            with self.SessionLocal() as db:
                row = db.get(StoredRecord, record_id)
                if row is None:
                    row = StoredRecord(id=record_id, collection=collection)
                    db.add(row)
                row.trip = trip
                row.data = data
                row.updated_at = datetime.now(timezone.utc)
                db.commit()
                db.refresh(row)
                return self._to_record(row)
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    def delete(self, collection: str, record_id: str) -> None:
        try:
            with self.SessionLocal() as db:
                row = db.get(StoredRecord, record_id)
                if row is None or row.collection != collection:
                    raise RecordNotFound(collection, record_id)
                db.delete(row)
                db.commit()
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e


def create_record_store(database_url: Optional[str]) -> RecordStore:
    if database_url:
        return SqlRecordStore(database_url)
    return MemoryRecordStore()
