"""
Audio association service.

Minimal audio-record repository for the category subsystem: create and
read records, and change an audio record's category/sub-category through
a guarded write that keeps the legacy subject in step.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from audio_categories.models.audio import Audio
from audio_categories.models.enums import ErrorCode
from audio_categories.services.category_compat_service import expected_subject
from audio_categories.services.category_store import get_audio_row, load_associations, load_tree
from audio_categories.services.category_validation import validate_association
from audio_categories.services.database import session_scope
from audio_categories.services.dto import AudioAssociation
from audio_categories.services.exceptions import DatabaseError, ValidationError
from audio_categories.services.logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def create_audio(
    title: str,
    subject: Optional[str] = None,
    category_id: Optional[int] = None,
    subcategory_id: Optional[int] = None,
    session=None,
) -> AudioAssociation:
    """
    Insert an audio record as-is.

    No category checks are applied: this mirrors records arriving from the
    audio library (including legacy-only ones). Use assign_audio_category
    for guarded changes.

    Returns:
        AudioAssociation of the new record
    """

    def _impl(session):
        audio = Audio(
            title=title,
            subject=subject,
            category_id=category_id,
            subcategory_id=subcategory_id,
        )
        session.add(audio)
        session.flush()
        return audio.to_association()

    try:
        if session is not None:
            return _impl(session)
        with session_scope() as session:
            return _impl(session)
    except SQLAlchemyError as e:
        logger.error(f"Database error creating audio: {e}")
        raise DatabaseError(f"Failed to create audio: {e}", original_error=e)


def get_audio(audio_id: int, session=None) -> AudioAssociation:
    """
    Fetch one audio record's classification fields.

    Raises:
        NotFoundError: If audio record doesn't exist
    """

    def _impl(session):
        return get_audio_row(session, audio_id).to_association()

    if session is not None:
        return _impl(session)
    with session_scope() as session:
        return _impl(session)


def list_associations(session=None) -> List[AudioAssociation]:
    """Every audio record's classification fields, in id order."""

    def _impl(session):
        return load_associations(session)

    if session is not None:
        return _impl(session)
    with session_scope() as session:
        return _impl(session)


def assign_audio_category(
    audio_id: int,
    category_id: Optional[int],
    subcategory_id: Optional[int] = None,
    session=None,
    cache=None,
) -> AudioAssociation:
    """
    Change an audio record's category pair and sync its subject.

    The pair must be a level-1 category and (optionally) one of its level-2
    children. Inactive categories accept no new associations; re-saving a
    reference the record already holds is allowed.

    Args:
        audio_id: Audio record to change
        category_id: Level-1 category, or None to clear
        subcategory_id: Level-2 child of category_id, or None
        session: Optional SQLAlchemy session
        cache: CategoryQueryCache whose counts become stale, if any

    Returns:
        Updated AudioAssociation

    Raises:
        NotFoundError: If audio record doesn't exist
        ValidationError: If the pair is invalid or references an inactive category
    """

    def _impl(session):
        audio = get_audio_row(session, audio_id)
        tree = load_tree(session, include_audio=False)

        result = validate_association(tree, category_id, subcategory_id, require_active=False)
        for new_id, old_id in (
            (category_id, audio.category_id),
            (subcategory_id, audio.subcategory_id),
        ):
            record = tree.get(new_id)
            if record is not None and new_id != old_id and not record.is_active:
                result.add(
                    ErrorCode.INACTIVE_CATEGORY,
                    new_id,
                    f"Category '{record.name}' is inactive and accepts no new audio",
                )

        if not result.is_valid:
            log_operation(
                logger,
                operation="assign_audio_category",
                outcome="validation_failed",
                level=logging.WARNING,
                audio_id=audio_id,
                codes=[c.value for c in result.codes],
            )
            raise ValidationError(result.violations)

        audio.category_id = category_id
        audio.subcategory_id = subcategory_id
        association = audio.to_association()
        audio.subject = expected_subject(tree, association)
        session.flush()

        log_operation(
            logger,
            operation="assign_audio_category",
            outcome="success",
            audio_id=audio_id,
            category_id=category_id,
            subcategory_id=subcategory_id,
        )
        return audio.to_association()

    try:
        if session is not None:
            association = _impl(session)
        else:
            with session_scope() as session:
                association = _impl(session)
    except SQLAlchemyError as e:
        logger.error(f"Database error assigning category to audio {audio_id}: {e}")
        raise DatabaseError(f"Failed to assign audio category: {e}", original_error=e)

    if cache is not None:
        cache.invalidate()
    return association
