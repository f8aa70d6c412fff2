"""
Database models
"""
from hr_access.models.document import DocumentRecord

__all__ = [
    "DocumentRecord",
]
