"""
Record store: keyed persistence of whole JSON records.

get(kind, id) -> record | None, put replaces the record, delete, list_ids.
No transactions and no locking: concurrent writers to one id are
last-write-wins, callers re-read before conditional writes.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import Index
from sqlalchemy.engine import Engine
from sqlmodel import Field, Session, SQLModel, select
from starlette.concurrency import run_in_threadpool

from hearth.core.config import get_record_store_kind
from hearth.core.ids import is_valid_record_id, now_iso

_log = logging.getLogger(__name__)

KIND_CHAT = "chat"
KIND_CHARACTER = "character"
KIND_NOTE = "note"
KIND_CONNECTION_CONFIG = "connection_config"
KIND_GENERATION_CONFIG = "generation_config"
KIND_SETTINGS = "settings"

RECORD_KINDS = (
    KIND_CHAT,
    KIND_CHARACTER,
    KIND_NOTE,
    KIND_CONNECTION_CONFIG,
    KIND_GENERATION_CONFIG,
    KIND_SETTINGS,
)


class RecordStore(Protocol):
    async def get(self, kind: str, record_id: str) -> Optional[Dict[str, Any]]:
        ...

    async def put(self, kind: str, record_id: str, record: Dict[str, Any]) -> None:
        ...

    async def delete(self, kind: str, record_id: str) -> bool:
        ...

    async def list_ids(self, kind: str) -> List[str]:
        ...


def _check_kind(kind: str) -> None:
    if kind not in RECORD_KINDS:
        raise ValueError(f"unknown record kind: {kind!r}")


def _check_id_for_write(record_id: str) -> None:
    if not is_valid_record_id(record_id):
        raise ValueError(f"invalid record id: {record_id!r}")


# -------------------------
# fs
# -------------------------
class FileRecordStore:
    """One JSON file per record: <root>/<kind>s/<id>.json."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _dir(self, kind: str) -> Path:
        return self.root / f"{kind}s"

    def _path(self, kind: str, record_id: str) -> Path:
        return self._dir(kind) / f"{record_id}.json"

    def _read(self, kind: str, record_id: str) -> Optional[Dict[str, Any]]:
        p = self._path(kind, record_id)
        try:
            raw = p.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            _log.error("unreadable record %s/%s at %s", kind, record_id, p)
            return None
        if not isinstance(data, dict):
            return None
        data["id"] = record_id
        return data

    def _write(self, kind: str, record_id: str, record: Dict[str, Any]) -> None:
        d = self._dir(kind)
        d.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(record, ensure_ascii=False, indent=2)
        fd, tmp = tempfile.mkstemp(prefix=f".{record_id}.", suffix=".tmp", dir=str(d))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp, self._path(kind, record_id))
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise

    def _delete(self, kind: str, record_id: str) -> bool:
        try:
            self._path(kind, record_id).unlink()
            return True
        except FileNotFoundError:
            return False

    def _list(self, kind: str) -> List[str]:
        d = self._dir(kind)
        if not d.exists():
            return []
        return sorted(p.stem for p in d.glob("*.json") if not p.name.startswith("."))

    async def get(self, kind: str, record_id: str) -> Optional[Dict[str, Any]]:
        _check_kind(kind)
        if not is_valid_record_id(record_id):
            return None
        return await run_in_threadpool(self._read, kind, record_id)

    async def put(self, kind: str, record_id: str, record: Dict[str, Any]) -> None:
        _check_kind(kind)
        _check_id_for_write(record_id)
        await run_in_threadpool(self._write, kind, record_id, record)

    async def delete(self, kind: str, record_id: str) -> bool:
        _check_kind(kind)
        if not is_valid_record_id(record_id):
            return False
        return await run_in_threadpool(self._delete, kind, record_id)

    async def list_ids(self, kind: str) -> List[str]:
        _check_kind(kind)
        return await run_in_threadpool(self._list, kind)


# -------------------------
# sql
# -------------------------
class RecordRow(SQLModel, table=True):
    __tablename__ = "records"
    __table_args__ = (Index("ix_records_updated_at", "kind", "updated_at"),)

    kind: str = Field(primary_key=True)
    id: str = Field(primary_key=True)
    payload_json: str
    updated_at: str


class SqlRecordStore:
    """Records as JSON payload rows in the `records` table."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def _read(self, kind: str, record_id: str) -> Optional[Dict[str, Any]]:
        with Session(self.engine) as session:
            row = session.get(RecordRow, (kind, record_id))
            if row is None:
                return None
            try:
                data = json.loads(row.payload_json)
            except json.JSONDecodeError:
                _log.error("unreadable record %s/%s in records table", kind, record_id)
                return None
        if not isinstance(data, dict):
            return None
        data["id"] = record_id
        return data

    def _write(self, kind: str, record_id: str, record: Dict[str, Any]) -> None:
        payload = json.dumps(record, ensure_ascii=False)
        with Session(self.engine) as session:
            row = session.get(RecordRow, (kind, record_id))
            if row is None:
                row = RecordRow(kind=kind, id=record_id, payload_json=payload, updated_at=now_iso())
            else:
                row.payload_json = payload
                row.updated_at = now_iso()
            session.add(row)
            session.commit()

    def _delete(self, kind: str, record_id: str) -> bool:
        with Session(self.engine) as session:
            row = session.get(RecordRow, (kind, record_id))
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

    def _list(self, kind: str) -> List[str]:
        with Session(self.engine) as session:
            rows = session.exec(select(RecordRow.id).where(RecordRow.kind == kind).order_by(RecordRow.id)).all()
            return [str(r) for r in rows]

    async def get(self, kind: str, record_id: str) -> Optional[Dict[str, Any]]:
        _check_kind(kind)
        if not is_valid_record_id(record_id):
            return None
        return await run_in_threadpool(self._read, kind, record_id)

    async def put(self, kind: str, record_id: str, record: Dict[str, Any]) -> None:
        _check_kind(kind)
        _check_id_for_write(record_id)
        await run_in_threadpool(self._write, kind, record_id, record)

    async def delete(self, kind: str, record_id: str) -> bool:
        _check_kind(kind)
        if not is_valid_record_id(record_id):
            return False
        return await run_in_threadpool(self._delete, kind, record_id)

    async def list_ids(self, kind: str) -> List[str]:
        _check_kind(kind)
        return await run_in_threadpool(self._list, kind)


async def load_all(store: RecordStore, kind: str) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for rid in await store.list_ids(kind):
        rec = await store.get(kind, rid)
        if rec is not None:
            out.append(rec)
    return out


@lru_cache(maxsize=1)
def get_record_store() -> RecordStore:
    if get_record_store_kind() == "sql":
        from hearth.core.db import get_engine, init_db

        engine = get_engine()
        init_db(engine)
        return SqlRecordStore(engine)

    from hearth.core.storage import ensure_storage_root

    return FileRecordStore(ensure_storage_root())
