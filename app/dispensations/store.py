"""
Storage adapters for dispensation records and the teacher directory.

Two variants share one record shape:
- JsonFileStore: a single JSON document {"teachers": [...], "dispensations": [...]}.
- DatabaseStore: SQLAlchemy async tables (see app.core.models).

The backend is chosen once by build_store() and injected; callers never branch on it.
"""

import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from app.core.config import Settings
from app.core.enums import DispensationStatus, StorageBackend
from app.core.exceptions import InvalidTransition, NotFound, StorageError
from app.core.models import Dispensation, Teacher
from app.db.session import build_engine, build_sessionmaker, create_tables

from .records import DispensationRecord, TeacherRecord

logger = logging.getLogger(__name__)


def _newest_first(records: List[DispensationRecord]) -> List[DispensationRecord]:
    return sorted(records, key=lambda r: r.created_at, reverse=True)


class DispensationStore(ABC):
    async def init(self) -> None:
        """Prepare the backing storage (create file/tables)."""

    async def close(self) -> None:
        """Release connections."""

    @abstractmethod
    async def create(self, record: DispensationRecord) -> DispensationRecord: ...

    @abstractmethod
    async def get_by_id(self, dispensation_id: int) -> Optional[DispensationRecord]: ...

    async def get_by_tracking_code(self, code: str) -> Optional[DispensationRecord]:
        # List and filter; record volumes are small
        for record in await self.list():
            if record.tracking_code == code:
                return record
        return None

    @abstractmethod
    async def list(self) -> List[DispensationRecord]:
        """All records, most recently created first."""

    @abstractmethod
    async def update(
        self,
        dispensation_id: int,
        fields: Dict[str, Any],
        expect_status: Optional[DispensationStatus] = None,
    ) -> DispensationRecord:
        """
        Merge fields (snake_case) into the stored record and return it.

        Raises NotFound for an unknown id. When expect_status is given and the stored
        status differs, raises InvalidTransition without writing.
        """

    @abstractmethod
    async def list_teachers(self) -> List[TeacherRecord]: ...

    @abstractmethod
    async def add_teacher(self, teacher: TeacherRecord) -> TeacherRecord: ...


def _parse(model, docs: List[Dict[str, Any]]) -> list:
    try:
        return [model.from_document(d) for d in docs]
    except PydanticValidationError as e:
        logger.exception("Malformed %s document in storage", model.__name__)
        raise StorageError() from e


class JsonFileStore(DispensationStore):
    """
    Flat JSON file backend.

    Every write reads the whole file, mutates it and writes it back. Writes made
    through one store instance are serialised by an asyncio lock; separate
    processes sharing the file are not coordinated.
    """

    def __init__(self, path) -> None:
        self.path = Path(path)
        self._write_lock: Optional[asyncio.Lock] = None

    def _lock(self) -> asyncio.Lock:
        # Created on first use so it binds to the running loop
        if self._write_lock is None:
            self._write_lock = asyncio.Lock()
        return self._write_lock

    # ----- sync file helpers (run in a worker thread) -----
    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {"teachers": [], "dispensations": []}
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            logger.exception("Failed to read %s", self.path)
            raise StorageError() from e
        if not isinstance(data, dict):
            logger.error("%s does not hold a JSON object", self.path)
            raise StorageError()
        data.setdefault("teachers", [])
        data.setdefault("dispensations", [])
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".db-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError as e:
            logger.exception("Failed to write %s", self.path)
            raise StorageError() from e

    def _init_sync(self) -> None:
        if not self.path.exists():
            self._write({"teachers": [], "dispensations": []})

    def _create_sync(self, record: DispensationRecord) -> None:
        data = self._read()
        data["dispensations"].append(record.to_document())
        self._write(data)

    def _update_sync(
        self,
        dispensation_id: int,
        fields: Dict[str, Any],
        expect_status: Optional[DispensationStatus],
    ) -> DispensationRecord:
        data = self._read()
        for idx, doc in enumerate(data["dispensations"]):
            if doc.get("id") != dispensation_id:
                continue
            current = _parse(DispensationRecord, [doc])[0]
            if expect_status is not None and current.status != expect_status:
                target = fields.get("status", expect_status)
                raise InvalidTransition(current.status.value, DispensationStatus(target).value)
            updated = current.merged(fields)
            data["dispensations"][idx] = updated.to_document()
            self._write(data)
            return updated
        raise NotFound(f"Dispensation {dispensation_id} not found")

    def _add_teacher_sync(self, teacher: TeacherRecord) -> None:
        data = self._read()
        data["teachers"].append(teacher.to_document())
        self._write(data)

    # ----- async interface -----
    async def init(self) -> None:
        await asyncio.to_thread(self._init_sync)

    async def create(self, record: DispensationRecord) -> DispensationRecord:
        async with self._lock():
            await asyncio.to_thread(self._create_sync, record)
        return record

    async def get_by_id(self, dispensation_id: int) -> Optional[DispensationRecord]:
        data = await asyncio.to_thread(self._read)
        for doc in data["dispensations"]:
            if doc.get("id") == dispensation_id:
                return _parse(DispensationRecord, [doc])[0]
        return None

    async def list(self) -> List[DispensationRecord]:
        data = await asyncio.to_thread(self._read)
        return _newest_first(_parse(DispensationRecord, data["dispensations"]))

    async def update(
        self,
        dispensation_id: int,
        fields: Dict[str, Any],
        expect_status: Optional[DispensationStatus] = None,
    ) -> DispensationRecord:
        async with self._lock():
            return await asyncio.to_thread(self._update_sync, dispensation_id, fields, expect_status)

    async def list_teachers(self) -> List[TeacherRecord]:
        data = await asyncio.to_thread(self._read)
        return _parse(TeacherRecord, data["teachers"])

    async def add_teacher(self, teacher: TeacherRecord) -> TeacherRecord:
        async with self._lock():
            await asyncio.to_thread(self._add_teacher_sync, teacher)
        return teacher


def _column_values(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in fields.items()}


class DatabaseStore(DispensationStore):
    """SQLAlchemy async backend. update() is a single conditional UPDATE statement."""

    def __init__(self, sessionmaker: async_sessionmaker, engine: Optional[AsyncEngine] = None) -> None:
        self.sessionmaker = sessionmaker
        self.engine = engine

    async def init(self) -> None:
        if self.engine is None:
            return
        try:
            await create_tables(self.engine)
        except SQLAlchemyError as e:
            logger.exception("Failed to create tables")
            raise StorageError() from e

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()

    async def create(self, record: DispensationRecord) -> DispensationRecord:
        row = Dispensation(**_column_values(record.model_dump()))
        try:
            async with self.sessionmaker() as db:
                db.add(row)
                await db.commit()
        except SQLAlchemyError as e:
            logger.exception("Failed to create dispensation %s", record.id)
            raise StorageError() from e
        return record

    async def get_by_id(self, dispensation_id: int) -> Optional[DispensationRecord]:
        try:
            async with self.sessionmaker() as db:
                row = await db.get(Dispensation, dispensation_id)
                return DispensationRecord.model_validate(row) if row else None
        except SQLAlchemyError as e:
            logger.exception("Failed to fetch dispensation %s", dispensation_id)
            raise StorageError() from e

    async def get_by_tracking_code(self, code: str) -> Optional[DispensationRecord]:
        try:
            async with self.sessionmaker() as db:
                result = await db.execute(
                    select(Dispensation)
                    .where(Dispensation.tracking_code == code)
                    .order_by(Dispensation.created_at.desc())
                    .limit(1)
                )
                row = result.scalar_one_or_none()
                return DispensationRecord.model_validate(row) if row else None
        except SQLAlchemyError as e:
            logger.exception("Failed to look up tracking code %s", code)
            raise StorageError() from e

    async def list(self) -> List[DispensationRecord]:
        try:
            async with self.sessionmaker() as db:
                result = await db.execute(select(Dispensation).order_by(Dispensation.created_at.desc()))
                return [DispensationRecord.model_validate(r) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.exception("Failed to list dispensations")
            raise StorageError() from e

    async def update(
        self,
        dispensation_id: int,
        fields: Dict[str, Any],
        expect_status: Optional[DispensationStatus] = None,
    ) -> DispensationRecord:
        stmt = update(Dispensation).where(Dispensation.id == dispensation_id)
        if expect_status is not None:
            stmt = stmt.where(Dispensation.status == expect_status.value)
        stmt = stmt.values(**_column_values(fields))
        try:
            async with self.sessionmaker() as db:
                result = await db.execute(stmt)
                await db.commit()
                if result.rowcount == 0:
                    row = await db.get(Dispensation, dispensation_id)
                    if row is None:
                        raise NotFound(f"Dispensation {dispensation_id} not found")
                    target = fields.get("status", expect_status)
                    raise InvalidTransition(row.status, DispensationStatus(target).value)
                row = await db.get(Dispensation, dispensation_id, populate_existing=True)
                return DispensationRecord.model_validate(row)
        except SQLAlchemyError as e:
            logger.exception("Failed to update dispensation %s", dispensation_id)
            raise StorageError() from e

    async def list_teachers(self) -> List[TeacherRecord]:
        try:
            async with self.sessionmaker() as db:
                result = await db.execute(select(Teacher).order_by(Teacher.id))
                return [TeacherRecord.model_validate(r) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.exception("Failed to list teachers")
            raise StorageError() from e

    async def add_teacher(self, teacher: TeacherRecord) -> TeacherRecord:
        try:
            async with self.sessionmaker() as db:
                db.add(Teacher(**teacher.model_dump()))
                await db.commit()
        except SQLAlchemyError as e:
            logger.exception("Failed to add teacher %s", teacher.username)
            raise StorageError() from e
        return teacher


def build_store(settings: Settings) -> DispensationStore:
    """Pick the storage backend from settings."""
    backend = StorageBackend(settings.storage_backend.lower())
    if backend is StorageBackend.DATABASE:
        if not settings.database_url:
            raise StorageError("DATABASE_URL is required for the database backend")
        engine = build_engine(settings.database_url)
        logger.info("Storage backend: database")
        return DatabaseStore(build_sessionmaker(engine), engine=engine)
    logger.info("Storage backend: file (%s)", settings.db_json_path)
    return JsonFileStore(settings.db_json_path)
