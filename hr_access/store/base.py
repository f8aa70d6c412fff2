"""
Document store contract

A collection/document store with point lookups, equality and membership
queries, bounded atomic write batches, and create/update/delete change events
carrying before/after snapshots. There are no cross-batch transactions.
"""
import copy
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

# Hard cap on writes per batch
MAX_BATCH_SIZE = 500


class _Sentinel:
    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return self.name


# Replaced with the commit time when the batch is applied
SERVER_TIMESTAMP = _Sentinel("SERVER_TIMESTAMP")
# Removes the field when used as a value in update()
DELETE_FIELD = _Sentinel("DELETE_FIELD")


class DocumentNotFound(Exception):
    """Raised when update() targets a document that does not exist"""

    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"No document to update: {collection}/{doc_id}")
        self.collection = collection
        self.doc_id = doc_id


class WriteConflict(Exception):
    """Raised when a batch keeps losing to concurrent writers of the same documents"""


@dataclass
class DocumentSnapshot:
    collection: str
    id: str
    data: Dict[str, Any]

    def get(self, key: str, default: Any = None) -> Any:
        return get_field(self.data, key, default)


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in ("==", "in"):
            raise ValueError(f"Unsupported filter operator: {self.op}")


def where(field_name: str, op: str, value: Any) -> FieldFilter:
    return FieldFilter(field_name, op, value)


@dataclass
class ChangeEvent:
    """A committed write, as seen by triggers"""

    collection: str
    doc_id: str
    before: Optional[Dict[str, Any]]
    after: Optional[Dict[str, Any]]

    @property
    def kind(self) -> str:
        if self.before is None:
            return "create"
        if self.after is None:
            return "delete"
        return "update"


@dataclass
class WriteOp:
    kind: str  # "set", "update" or "delete"
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    merge: bool = False


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_field(data: Optional[Dict[str, Any]], path: str, default: Any = None) -> Any:
    """Read a possibly dotted field path"""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def resolve_sentinels(value: Any, now: str) -> Any:
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, dict):
        return {k: resolve_sentinels(v, now) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_sentinels(v, now) for v in value]
    return value


def apply_update(data: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of ``data`` with ``updates`` applied

    Keys may be dotted paths into nested maps; DELETE_FIELD removes the key.
    """
    result = copy.deepcopy(data)
    for path, value in updates.items():
        parts = path.split(".")
        target = result
        for part in parts[:-1]:
            child = target.get(part)
            if not isinstance(child, dict):
                if value is DELETE_FIELD:
                    target = None
                    break
                child = {}
                target[part] = child
            target = child
        if target is None:
            continue
        if value is DELETE_FIELD:
            target.pop(parts[-1], None)
        else:
            target[parts[-1]] = copy.deepcopy(value)
    return result


def matches(data: Dict[str, Any], filters: Sequence[FieldFilter]) -> bool:
    for f in filters:
        value = get_field(data, f.field)
        if f.op == "==" and value != f.value:
            return False
        if f.op == "in" and value not in f.value:
            return False
    return True


class WriteBatch:
    """
    Up to MAX_BATCH_SIZE writes committed atomically

    Batches are independent of each other: a failure in one batch leaves
    previously committed batches in place.
    """

    def __init__(self, store: "DocumentStore", max_size: int = MAX_BATCH_SIZE):
        self._store = store
        self._max_size = min(max_size, MAX_BATCH_SIZE)
        self._ops: List[WriteOp] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._ops)

    def _add(self, op: WriteOp) -> "WriteBatch":
        if self._committed:
            raise RuntimeError("Batch already committed")
        if len(self._ops) >= self._max_size:
            raise ValueError(f"A batch cannot contain more than {self._max_size} writes")
        self._ops.append(op)
        return self

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> "WriteBatch":
        return self._add(WriteOp("set", collection, doc_id, dict(data), merge))

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        return self._add(WriteOp("update", collection, doc_id, dict(data)))

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        return self._add(WriteOp("delete", collection, doc_id))

    def commit(self) -> List[ChangeEvent]:
        """Apply all writes atomically, then hand the change events to the dispatcher"""
        if self._committed:
            raise RuntimeError("Batch already committed")
        self._committed = True
        if not self._ops:
            return []
        events = self._store._apply(self._ops)
        self._store._emit(events)
        return events


class DocumentStore(ABC):
    """Abstract document store; see SqlDocumentStore and InMemoryDocumentStore"""

    def __init__(self, dispatcher=None):
        self.dispatcher = dispatcher

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        """Point lookup by id"""

    @abstractmethod
    def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> List[DocumentSnapshot]:
        """Documents matching every filter, ordered by id"""

    @abstractmethod
    def _apply(self, ops: Sequence[WriteOp]) -> List[ChangeEvent]:
        """Apply ops atomically and return one change event per op"""

    def _emit(self, events: List[ChangeEvent]) -> None:
        if self.dispatcher is not None and events:
            self.dispatcher.dispatch(self, events)

    def batch(self, max_size: int = MAX_BATCH_SIZE) -> WriteBatch:
        return WriteBatch(self, max_size=max_size)

    def new_id(self) -> str:
        return uuid.uuid4().hex[:20]

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        self.batch().set(collection, doc_id, data, merge=merge).commit()

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = self.new_id()
        self.batch().set(collection, doc_id, {"id": doc_id, **data}).commit()
        return doc_id

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self.batch().update(collection, doc_id, data).commit()

    def delete(self, collection: str, doc_id: str) -> None:
        self.batch().delete(collection, doc_id).commit()

    def first(self, collection: str, filters: Sequence[FieldFilter] = ()) -> Optional[DocumentSnapshot]:
        docs = self.query(collection, filters, limit=1)
        return docs[0] if docs else None

    def iter_query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        page_size: int = MAX_BATCH_SIZE,
    ) -> Iterator[DocumentSnapshot]:
        """Yield every match, fetching ``page_size`` documents per round trip"""
        cursor: Optional[str] = None
        while True:
            page = self.query(collection, filters, limit=page_size, start_after=cursor)
            yield from page
            if len(page) < page_size:
                return
            cursor = page[-1].id


def compute_write(
    op: WriteOp,
    before: Optional[Dict[str, Any]],
    now: str,
) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """
    Shared write semantics for store implementations

    Returns (before, after); after is None for deletes.
    """
    if op.kind == "delete":
        return before, None
    data = resolve_sentinels(op.data, now)
    if op.kind == "update":
        if before is None:
            raise DocumentNotFound(op.collection, op.doc_id)
        return before, apply_update(before, data)
    if op.merge and before is not None:
        return before, apply_update(before, data)
    cleaned = {k: v for k, v in data.items() if v is not DELETE_FIELD}
    return before, copy.deepcopy(cleaned)
