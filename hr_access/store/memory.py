"""
In-memory document store
"""
import copy
import threading
from typing import Any, Dict, List, Optional, Sequence

from hr_access.store.base import (
    ChangeEvent,
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    WriteOp,
    compute_write,
    matches,
    utcnow_iso,
)


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed store; batches are atomic under a single lock"""

    def __init__(self, dispatcher=None):
        super().__init__(dispatcher)
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        with self._lock:
            data = self._collections.get(collection, {}).get(doc_id)
            if data is None:
                return None
            return DocumentSnapshot(collection, doc_id, copy.deepcopy(data))

    def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> List[DocumentSnapshot]:
        with self._lock:
            docs = self._collections.get(collection, {})
            result = []
            for doc_id in sorted(docs):
                if start_after is not None and doc_id <= start_after:
                    continue
                if not matches(docs[doc_id], filters):
                    continue
                result.append(DocumentSnapshot(collection, doc_id, copy.deepcopy(docs[doc_id])))
                if limit is not None and len(result) >= limit:
                    break
            return result

    def _apply(self, ops: Sequence[WriteOp]) -> List[ChangeEvent]:
        now = utcnow_iso()
        with self._lock:
            # Stage on copies so a failing op leaves the store untouched
            staged = {name: dict(docs) for name, docs in self._collections.items()}
            events = []
            for op in ops:
                docs = staged.setdefault(op.collection, {})
                before, after = compute_write(op, docs.get(op.doc_id), now)
                if after is None:
                    docs.pop(op.doc_id, None)
                else:
                    docs[op.doc_id] = after
                events.append(ChangeEvent(
                    op.collection,
                    op.doc_id,
                    copy.deepcopy(before),
                    copy.deepcopy(after),
                ))
            self._collections = staged
            return events
