"""
Document store
"""
from hr_access.store.base import (
    DELETE_FIELD,
    MAX_BATCH_SIZE,
    SERVER_TIMESTAMP,
    ChangeEvent,
    DocumentNotFound,
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    WriteBatch,
    WriteConflict,
    where,
)
from hr_access.store.dispatcher import TriggerDispatcher
from hr_access.store.memory import InMemoryDocumentStore
from hr_access.store.sql import SqlDocumentStore

__all__ = [
    "DELETE_FIELD",
    "MAX_BATCH_SIZE",
    "SERVER_TIMESTAMP",
    "ChangeEvent",
    "DocumentNotFound",
    "DocumentSnapshot",
    "DocumentStore",
    "FieldFilter",
    "WriteBatch",
    "WriteConflict",
    "where",
    "TriggerDispatcher",
    "InMemoryDocumentStore",
    "SqlDocumentStore",
]
