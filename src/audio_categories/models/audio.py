"""
Audio model, reduced to the classification fields this subsystem touches.

The audio library owns the full record; here it carries the legacy free-text
``subject`` plus the normalized ``category_id`` / ``subcategory_id`` pair.
Both reference columns are plain integers so that force-deleted categories
leave detectable dangling references.
"""

from sqlalchemy import Column, Index, Integer, String

from .base import BaseModel


class Audio(BaseModel):
    """
    Audio record as seen by the category subsystem.

    Attributes:
        title: Audio title (for reports)
        subject: Legacy free-text category label
        category_id: Level-1 category reference
        subcategory_id: Level-2 category reference, child of category_id
    """

    __tablename__ = "audios"

    title = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=True)

    category_id = Column(Integer, nullable=True)
    subcategory_id = Column(Integer, nullable=True)

    __table_args__ = (
        Index("idx_audios_category", "category_id"),
        Index("idx_audios_subcategory", "subcategory_id"),
        Index("idx_audios_categories", "category_id", "subcategory_id"),
    )

    def __repr__(self) -> str:
        return f"Audio(id={self.id}, title='{self.title}')"

    def to_association(self):
        """
        Build an immutable AudioAssociation snapshot of this row.

        Returns:
            AudioAssociation with the classification fields
        """
        from audio_categories.services.dto import AudioAssociation

        return AudioAssociation(
            audio_id=self.id,
            title=self.title,
            subject=self.subject,
            category_id=self.category_id,
            subcategory_id=self.subcategory_id,
        )
