"""
Document model

Every collection of the document store lives in this one table; a document
is addressed by (collection, doc_id) and its fields are kept as JSON.
"""
from sqlalchemy import Column, String, DateTime, Integer, JSON, Index

from hr_access.db.base import Base


class DocumentRecord(Base):
    __tablename__ = "documents"

    collection = Column(String(100), primary_key=True)
    doc_id = Column(String(128), primary_key=True)
    data = Column(JSON, nullable=False, default=dict)
    # Set explicitly on write; server defaults differ between SQLite and PostgreSQL
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    # Bumped on every UPDATE/DELETE; a stale version fails the statement
    version = Column(Integer, nullable=False)

    __table_args__ = (
        Index("ix_documents_collection", "collection"),
    )

    __mapper_args__ = {"version_id_col": version}
