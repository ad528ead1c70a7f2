"""
Base model class for the category subsystem tables.

Every table gets an integer primary key, a stable UUID and created/updated
timestamps. Rows leave the store as immutable snapshots built by each
model's own to_record() / to_association(), never as live ORM objects.
"""

import uuid as uuid_lib

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import declarative_base

from audio_categories.utils.datetime_utils import utc_now

Base = declarative_base()


class BaseModel(Base):
    """
    Abstract base model with the columns shared by every table.

    - id: Primary key
    - uuid: UUID identifier, stable across exports
    - created_at: Timestamp when record was created
    - updated_at: Timestamp when record was last modified
    """

    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Stored as string for SQLite compatibility
    uuid = Column(
        String(36), unique=True, nullable=False, default=lambda: str(uuid_lib.uuid4()), index=True
    )

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)
