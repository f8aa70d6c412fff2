"""
SQLAlchemy-backed document store

Each write batch runs in one database transaction, so it is atomic on its
own; nothing spans batches. Rows carry a version number, and a batch that
finds one of its documents changed underneath it is re-read and re-applied.
"""
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

from sqlalchemy import false, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from hr_access.models.document import DocumentRecord
from hr_access.store.base import (
    ChangeEvent,
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    WriteConflict,
    WriteOp,
    compute_write,
    utcnow_iso,
)

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 5


def _json_value(field_name: str, sample: Any):
    parts = field_name.split(".")
    element = DocumentRecord.data[tuple(parts) if len(parts) > 1 else field_name]
    if isinstance(sample, bool):
        return element.as_boolean()
    if isinstance(sample, int):
        return element.as_integer()
    if isinstance(sample, float):
        return element.as_float()
    if sample is None or isinstance(sample, str):
        return element.as_string()
    raise ValueError(f"Unsupported filter value for '{field_name}': {sample!r}")


def _filter_clause(f: FieldFilter):
    if f.op == "in":
        values = list(f.value)
        if not values:
            return false()
        return _json_value(f.field, values[0]).in_(values)
    column = _json_value(f.field, f.value)
    if f.value is None:
        return column.is_(None)
    return column == f.value


class SqlDocumentStore(DocumentStore):
    def __init__(self, session_factory: sessionmaker, dispatcher=None):
        super().__init__(dispatcher)
        self._session_factory = session_factory

    def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        with self._session_factory() as session:
            record = session.get(DocumentRecord, (collection, doc_id))
            if record is None:
                return None
            return DocumentSnapshot(collection, doc_id, dict(record.data or {}))

    def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> List[DocumentSnapshot]:
        stmt = select(DocumentRecord).where(DocumentRecord.collection == collection)
        for f in filters:
            stmt = stmt.where(_filter_clause(f))
        if start_after is not None:
            stmt = stmt.where(DocumentRecord.doc_id > start_after)
        stmt = stmt.order_by(DocumentRecord.doc_id)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._session_factory() as session:
            return [
                DocumentSnapshot(collection, record.doc_id, dict(record.data or {}))
                for record in session.scalars(stmt)
            ]

    def _apply(self, ops: Sequence[WriteOp]) -> List[ChangeEvent]:
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            try:
                return self._apply_once(ops)
            except (StaleDataError, IntegrityError) as e:
                # Another writer committed one of these documents after we read it
                logger.info(
                    "Write conflict on batch of %d writes (attempt %d/%d): %s",
                    len(ops), attempt, MAX_WRITE_ATTEMPTS, e,
                )
        raise WriteConflict(f"Batch of {len(ops)} writes lost {MAX_WRITE_ATTEMPTS} times to concurrent writers")

    def _apply_once(self, ops: Sequence[WriteOp]) -> List[ChangeEvent]:
        now = utcnow_iso()
        stamp = datetime.now(timezone.utc)
        events: List[ChangeEvent] = []
        session: Session = self._session_factory()
        try:
            for op in ops:
                record = session.get(DocumentRecord, (op.collection, op.doc_id), with_for_update=True)
                current = dict(record.data) if record is not None else None
                before, after = compute_write(op, current, now)
                if after is None:
                    if record is not None:
                        session.delete(record)
                elif record is None:
                    session.add(DocumentRecord(
                        collection=op.collection,
                        doc_id=op.doc_id,
                        data=after,
                        created_at=stamp,
                        updated_at=stamp,
                    ))
                else:
                    # Reassign so the JSON column is marked dirty
                    record.data = after
                    record.updated_at = stamp
                session.flush()
                events.append(ChangeEvent(op.collection, op.doc_id, before, after))
            session.commit()
        except Exception:
            session.rollback()
            logger.warning("Batch of %d writes rolled back", len(ops))
            raise
        finally:
            session.close()
        return events
