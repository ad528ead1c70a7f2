"""
Compatibility sync between the legacy ``subject`` field and the
normalized ``category_id`` / ``subcategory_id`` references.

Audio records carry both classifications during the migration and both
stay externally visible, so this module is a permanent component:

- sync_audio / batch_sync: normalized -> legacy (subject follows the ids)
- detect_drift: report disagreements, never write
- cleanup_orphaned_references: clear ids left dangling by force deletes
- backfill_from_subject: legacy -> normalized for legacy-only records

Results are SyncResult objects with a per-record action log.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from audio_categories.models.audio import Audio
from audio_categories.models.enums import CategoryLevel, SyncAction
from audio_categories.services.category_store import load_tree
from audio_categories.services.category_tree import CategoryTree
from audio_categories.services.database import session_scope
from audio_categories.services.dto import (
    AudioAssociation,
    CategoryRecord,
    DriftWarning,
    SyncResult,
)
from audio_categories.services.exceptions import DatabaseError
from audio_categories.services.logging_utils import get_service_logger, log_operation
from audio_categories.utils.config import get_config

logger = get_service_logger(__name__)


# ============================================================================
# Pure mapping rules
# ============================================================================


def resolve_subject(
    tree: CategoryTree, category_id: Optional[int], subcategory_id: Optional[int]
) -> Optional[str]:
    """
    Name the legacy subject should carry for a normalized pair.

    The sub-category's name wins when it resolves, otherwise the
    category's name.

    Returns:
        The name, or None if neither id resolves
    """
    subcategory = tree.get(subcategory_id)
    if subcategory is not None:
        return subcategory.name
    category = tree.get(category_id)
    if category is not None:
        return category.name
    return None


def expected_subject(
    tree: CategoryTree,
    association: AudioAssociation,
    uncategorized_label: Optional[str] = None,
) -> str:
    """Legacy subject for an association, falling back to the uncategorized label."""
    name = resolve_subject(tree, association.category_id, association.subcategory_id)
    if name is not None:
        return name
    return uncategorized_label or get_config().uncategorized_label


def _selection(match: CategoryRecord) -> Tuple[Optional[int], Optional[int]]:
    if match.level == CategoryLevel.SECONDARY.value:
        return match.parent_id, match.id
    return match.id, None


def infer_selection_from_subject(
    tree: CategoryTree, subject: Optional[str]
) -> Tuple[Optional[int], Optional[int]]:
    """
    Infer (category_id, subcategory_id) from a legacy subject.

    Exact case-insensitive name match first, then containment in either
    direction. Only active categories whose hierarchy is intact are
    eligible; level-1 matches win over level-2 matches of the same kind.

    Returns:
        (category_id, subcategory_id); (None, None) when nothing matches
    """
    text = (subject or "").strip().lower()
    if not text:
        return None, None

    candidates = []
    for record in tree.records:
        if not record.is_active:
            continue
        if record.level == CategoryLevel.SECONDARY.value:
            parent = tree.get(record.parent_id)
            if parent is None or not parent.is_active:
                continue
        elif record.parent_id is not None:
            continue
        candidates.append(record)
    candidates.sort(key=lambda r: (r.level, r.sort_order, r.name.lower(), r.id))

    for record in candidates:
        if record.name.strip().lower() == text:
            return _selection(record)

    for record in candidates:
        name = record.name.strip().lower()
        if name and (name in text or text in name):
            return _selection(record)

    return None, None


def detect_drift(tree: CategoryTree) -> List[DriftWarning]:
    """
    Every audio record whose subject disagrees with its normalized reference.

    Records whose ids do not resolve are left to the orphan checks, and
    records without normalized ids have nothing to drift from. Nothing is
    written.

    Args:
        tree: Snapshot including audio associations

    Returns:
        List of DriftWarning, in audio id order
    """
    warnings = []
    for assoc in tree.associations:
        if not assoc.has_normalized:
            continue
        name = resolve_subject(tree, assoc.category_id, assoc.subcategory_id)
        if name is None:
            continue
        if (assoc.subject or "") != name:
            warnings.append(
                DriftWarning(
                    audio_id=assoc.audio_id,
                    title=assoc.title,
                    subject=assoc.subject,
                    expected_subject=name,
                )
            )
    return warnings


# ============================================================================
# Store-backed operations
# ============================================================================


def _sync_row(tree: CategoryTree, audio: Audio, result: SyncResult) -> None:
    if audio.category_id is None and audio.subcategory_id is None:
        result.record(audio.id, SyncAction.SKIPPED, "no normalized category")
        return

    name = resolve_subject(tree, audio.category_id, audio.subcategory_id)
    if name is None:
        result.record(
            audio.id,
            SyncAction.ERROR,
            f"category {audio.category_id} / sub-category {audio.subcategory_id} "
            f"does not resolve",
        )
        return

    if audio.subject == name:
        result.record(audio.id, SyncAction.SKIPPED, "subject already in sync")
        return

    previous = audio.subject
    audio.subject = name
    result.record(audio.id, SyncAction.UPDATED, f"subject {previous!r} -> {name!r}")


def sync_audio(audio_id: int, session=None) -> SyncResult:
    """
    Copy the resolved category name into one audio record's subject.

    A missing audio record or an unresolvable reference is an error entry
    in the result, not an exception.

    Args:
        audio_id: Audio record to sync
        session: Optional SQLAlchemy session

    Returns:
        SyncResult with one log entry
    """

    def _impl(session):
        result = SyncResult()
        audio = session.get(Audio, audio_id)
        if audio is None:
            result.record(audio_id, SyncAction.ERROR, f"Audio with ID {audio_id} not found")
            return result
        tree = load_tree(session, include_audio=False)
        _sync_row(tree, audio, result)
        session.flush()
        return result

    result = _run("sync_audio", _impl, session)
    log_operation(
        logger,
        operation="sync_audio",
        outcome="success" if result.success else "error",
        level=logging.INFO if result.success else logging.WARNING,
        audio_id=audio_id,
        updated=result.updated,
    )
    return result


def batch_sync(
    audio_ids: Optional[Iterable[int]] = None,
    batch_size: Optional[int] = None,
    session=None,
) -> SyncResult:
    """
    Sync many audio records, batch_size rows at a time.

    Args:
        audio_ids: Records to sync (None for every record with normalized ids)
        batch_size: Rows per flush (defaults to config.sync_batch_size)
        session: Optional SQLAlchemy session

    Returns:
        Aggregated SyncResult
    """
    batch_size = batch_size or get_config().sync_batch_size

    def _impl(session):
        result = SyncResult()
        tree = load_tree(session, include_audio=False)

        if audio_ids is None:
            query = session.query(Audio.id).filter(
                (Audio.category_id.isnot(None)) | (Audio.subcategory_id.isnot(None))
            )
            ids = [row[0] for row in query.order_by(Audio.id).all()]
        else:
            ids = list(dict.fromkeys(audio_ids))

        for start in range(0, len(ids), batch_size):
            chunk = ids[start : start + batch_size]
            rows = {a.id: a for a in session.query(Audio).filter(Audio.id.in_(chunk)).all()}
            for audio_id in chunk:
                audio = rows.get(audio_id)
                if audio is None:
                    result.record(audio_id, SyncAction.ERROR, f"Audio with ID {audio_id} not found")
                    continue
                _sync_row(tree, audio, result)
            session.flush()
        return result

    result = _run("batch_sync", _impl, session)
    log_operation(
        logger,
        operation="batch_sync",
        outcome="success",
        processed=result.processed,
        updated=result.updated,
        errors=result.errors,
    )
    return result


def find_drift(session=None) -> List[DriftWarning]:
    """detect_drift over a fresh snapshot read from the store."""

    def _impl(session):
        return detect_drift(load_tree(session))

    if session is not None:
        return _impl(session)
    with session_scope() as session:
        return _impl(session)


def cleanup_orphaned_references(session=None, cache=None) -> SyncResult:
    """
    Clear category references that no longer resolve.

    A dangling category_id also drops its sub-category (a sub-category
    cannot stand without its category); the legacy subject is kept so
    the record falls back to its free-text classification.

    Args:
        session: Optional SQLAlchemy session
        cache: CategoryQueryCache whose counts become stale, if any

    Returns:
        SyncResult; updated is the number of records touched
    """

    def _impl(session):
        result = SyncResult()
        tree = load_tree(session, include_audio=False)
        query = session.query(Audio).filter(
            (Audio.category_id.isnot(None)) | (Audio.subcategory_id.isnot(None))
        )
        for audio in query.order_by(Audio.id).all():
            cleared = []
            if audio.category_id is not None and audio.category_id not in tree:
                cleared.append(f"category_id={audio.category_id}")
                audio.category_id = None
                if audio.subcategory_id is not None:
                    cleared.append(f"subcategory_id={audio.subcategory_id}")
                    audio.subcategory_id = None
            if audio.subcategory_id is not None and audio.subcategory_id not in tree:
                cleared.append(f"subcategory_id={audio.subcategory_id}")
                audio.subcategory_id = None

            if cleared:
                result.record(audio.id, SyncAction.UPDATED, "cleared " + ", ".join(cleared))
            else:
                result.record(audio.id, SyncAction.SKIPPED, "references resolve")
        session.flush()
        return result

    result = _run("cleanup_orphaned_references", _impl, session)
    if cache is not None and result.updated:
        cache.invalidate()
    log_operation(
        logger,
        operation="cleanup_orphaned_references",
        outcome="success",
        processed=result.processed,
        updated=result.updated,
    )
    return result


def backfill_from_subject(session=None, cache=None) -> SyncResult:
    """
    Infer normalized ids for legacy-only audio records from their subject.

    Args:
        session: Optional SQLAlchemy session
        cache: CategoryQueryCache whose counts become stale, if any

    Returns:
        SyncResult; records with no match are logged as skipped
    """

    def _impl(session):
        result = SyncResult()
        tree = load_tree(session, include_audio=False)
        query = session.query(Audio).filter(
            Audio.category_id.is_(None),
            Audio.subcategory_id.is_(None),
            Audio.subject.isnot(None),
        )
        for audio in query.order_by(Audio.id).all():
            category_id, subcategory_id = infer_selection_from_subject(tree, audio.subject)
            if category_id is None:
                result.record(audio.id, SyncAction.SKIPPED, f"no match for {audio.subject!r}")
                continue
            audio.category_id = category_id
            audio.subcategory_id = subcategory_id
            result.record(
                audio.id,
                SyncAction.UPDATED,
                f"{audio.subject!r} -> category {category_id}, sub-category {subcategory_id}",
            )
        session.flush()
        return result

    result = _run("backfill_from_subject", _impl, session)
    if cache is not None and result.updated:
        cache.invalidate()
    log_operation(
        logger,
        operation="backfill_from_subject",
        outcome="success",
        processed=result.processed,
        updated=result.updated,
    )
    return result


def _run(operation: str, impl, session=None) -> SyncResult:
    try:
        if session is not None:
            return impl(session)
        with session_scope() as session:
            return impl(session)
    except SQLAlchemyError as e:
        logger.error(f"Database error during {operation}: {e}")
        raise DatabaseError(f"Failed to {operation.replace('_', ' ')}: {e}", original_error=e)
