"""
Category model for the two-level audio classification tree.

A category is either level 1 (no parent) or level 2 (child of a level-1
category). ``parent_id`` deliberately has no database foreign key: a forced
delete may leave a dangling reference that the diagnostic engine reports.
"""

from sqlalchemy import Boolean, Column, Index, Integer, String, Text

from .base import BaseModel
from audio_categories.utils.constants import DEFAULT_CATEGORY_COLOR, MAX_NAME_LENGTH


class Category(BaseModel):
    """
    Category model representing one node of the classification tree.

    Attributes:
        name: Display name, unique (case-insensitive) among siblings
        description: Optional description text
        parent_id: ID of the parent category, None for level 1
        level: 1 or 2, must equal 1 iff parent_id is None
        sort_order: Sibling ordering, ties broken by name
        is_active: Inactive categories are hidden from default listings and
            accept no new audio associations
        color: Presentation colour
        icon: Presentation icon name
    """

    __tablename__ = "categories"

    name = Column(String(MAX_NAME_LENGTH), nullable=False)
    description = Column(Text, nullable=True)

    parent_id = Column(Integer, nullable=True)
    level = Column(Integer, nullable=False, default=1)
    sort_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    color = Column(String(20), nullable=True, default=DEFAULT_CATEGORY_COLOR)
    icon = Column(String(50), nullable=True)

    __table_args__ = (
        Index("idx_categories_parent", "parent_id"),
        Index("idx_categories_level", "level"),
        Index("idx_categories_active", "is_active"),
        Index("idx_categories_hierarchy", "level", "parent_id", "sort_order"),
    )

    def __repr__(self) -> str:
        return f"Category(id={self.id}, name='{self.name}', level={self.level})"

    def to_record(self):
        """
        Build an immutable CategoryRecord snapshot of this row.

        Returns:
            CategoryRecord with the current column values
        """
        from audio_categories.services.dto import CategoryRecord

        return CategoryRecord(
            id=self.id,
            name=self.name,
            parent_id=self.parent_id,
            level=self.level,
            sort_order=self.sort_order or 0,
            is_active=bool(self.is_active),
            description=self.description,
            color=self.color,
            icon=self.icon,
        )
