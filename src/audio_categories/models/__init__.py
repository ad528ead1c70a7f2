"""
Database models package.

This package contains the SQLAlchemy ORM models for the category subsystem.
"""

from .base import Base, BaseModel
from .category import Category
from .audio import Audio
from .enums import (
    BatchOperation,
    CategoryLevel,
    ErrorCode,
    QueryType,
    RepairAction,
    Severity,
    SyncAction,
)

__all__ = [
    "Base",
    "BaseModel",
    "Category",
    "Audio",
    "BatchOperation",
    "CategoryLevel",
    "ErrorCode",
    "QueryType",
    "RepairAction",
    "Severity",
    "SyncAction",
]
