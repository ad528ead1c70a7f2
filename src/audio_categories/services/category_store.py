"""
Category store adapter: row-level reads and snapshot scans.

Thin layer over the ORM so the engines work on immutable records
(CategoryRecord, AudioAssociation) instead of live rows. Every function
takes an open session; transaction boundaries belong to the caller.
"""

from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from audio_categories.models.audio import Audio
from audio_categories.models.category import Category
from audio_categories.services.category_tree import CategoryTree
from audio_categories.services.dto import AudioAssociation, CategoryRecord
from audio_categories.services.exceptions import NotFoundError


def load_category_records(session: Session) -> List[CategoryRecord]:
    """Every category row as a CategoryRecord, in id order."""
    return [c.to_record() for c in session.query(Category).order_by(Category.id).all()]


def load_associations(session: Session, audio_ids: Optional[Iterable[int]] = None):
    """
    Audio classification fields, in id order.

    Args:
        session: Open session
        audio_ids: Restrict to these audio ids (None for all)

    Returns:
        List of AudioAssociation
    """
    query = session.query(Audio)
    if audio_ids is not None:
        query = query.filter(Audio.id.in_(list(audio_ids)))
    return [a.to_association() for a in query.order_by(Audio.id).all()]


def load_tree(session: Session, include_audio: bool = True) -> CategoryTree:
    """
    Read a point-in-time snapshot of the hierarchy.

    Args:
        session: Open session
        include_audio: Also load audio associations (needed for counts)

    Returns:
        CategoryTree over the snapshot
    """
    records = load_category_records(session)
    associations = load_associations(session) if include_audio else ()
    return CategoryTree(records, associations)


def get_category_row(session: Session, category_id: int) -> Category:
    """
    Fetch a category row or raise.

    Raises:
        NotFoundError: If no category has this id
    """
    category = session.get(Category, category_id)
    if category is None:
        raise NotFoundError(category_id)
    return category


def get_audio_row(session: Session, audio_id: int) -> Audio:
    """
    Fetch an audio row or raise.

    Raises:
        NotFoundError: If no audio record has this id
    """
    audio = session.get(Audio, audio_id)
    if audio is None:
        raise NotFoundError(audio_id, entity="Audio")
    return audio
