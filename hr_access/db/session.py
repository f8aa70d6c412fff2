"""
Database session management
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from hr_access.core.config import settings
from hr_access.db.base import Base
from hr_access.models import DocumentRecord  # noqa: F401
from hr_access.store import SqlDocumentStore, TriggerDispatcher
from hr_access.triggers import register_triggers

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    echo=False
)

# Create all tables automatically on startup for SQLite
if "sqlite" in settings.DATABASE_URL:
    Base.metadata.create_all(bind=engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def build_store(session_factory: sessionmaker = SessionLocal, mode: str = None) -> SqlDocumentStore:
    """Document store over ``session_factory`` with all triggers registered"""
    dispatcher = TriggerDispatcher(mode or settings.TRIGGER_MODE, settings.TRIGGER_WORKERS)
    return SqlDocumentStore(session_factory, register_triggers(dispatcher))
