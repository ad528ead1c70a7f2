"""
Category service: cached reads and validated mutations.

This is the only writer of category rows. Every mutation:
- runs under a process-wide write lock,
- re-validates the resulting state against a fresh snapshot,
- commits in a single transaction,
- invalidates the query cache after the commit and before returning.

Reads go through the service's CategoryQueryCache and fall back to a
snapshot projection on a miss.
"""

import dataclasses
import logging
import threading
from types import MappingProxyType
from typing import Any, Iterable, List, Optional, Sequence, Set

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError

from audio_categories.models.category import Category
from audio_categories.models.enums import BatchOperation, ErrorCode, QueryType
from audio_categories.services.category_cache import CategoryQueryCache
from audio_categories.services.category_store import get_category_row, load_tree
from audio_categories.services.category_tree import CategoryTree
from audio_categories.services.category_validation import (
    expected_level,
    trim_name,
    validate_category,
)
from audio_categories.services.database import session_scope
from audio_categories.services.dto import (
    BatchFailure,
    BatchResult,
    BenchmarkResult,
    CacheStats,
    CategoryQuery,
    CategoryRecord,
    CreateCategoryRequest,
    QuerySpec,
    UpdateCategoryRequest,
    ValidationResult,
    WarmupResult,
)
from audio_categories.services.exceptions import (
    BatchRejectedError,
    ConflictError,
    CycleError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from audio_categories.services.logging_utils import get_service_logger, log_operation
from audio_categories.utils.config import Config, get_config
from audio_categories.utils.constants import DEFAULT_CATEGORY_COLOR

logger = get_service_logger(__name__)

# Category write volume is low; one lock for every mutation keeps
# concurrent deletes on the same parent from racing.
_write_lock = threading.RLock()


def project_query(tree: CategoryTree, spec: QuerySpec) -> Any:
    """
    Evaluate a read query against a snapshot.

    Returns immutable values only (tuples of frozen records, or a
    read-only mapping for counts) so they are safe to share from cache.
    """
    if spec.query_type == QueryType.TREE:
        return tree.to_tree(spec.include_inactive, spec.include_count)
    if spec.query_type == QueryType.FLAT:
        return tree.to_flat(
            include_inactive=spec.include_inactive,
            include_count=spec.include_count,
            level=spec.level,
            parent_id=spec.parent_id,
        )
    if spec.query_type == QueryType.BY_PARENT:
        return tree.by_parent(spec.parent_id, spec.include_inactive, spec.include_count)
    if spec.query_type == QueryType.WITH_COUNTS:
        return MappingProxyType(
            {
                r.id: tree.audio_count(r.id)
                for r in tree.records
                if spec.include_inactive or r.is_active
            }
        )
    raise ValueError(f"Unsupported query type: {spec.query_type}")


def load_query(spec: QuerySpec, session=None) -> Any:
    """
    Compute a query from a fresh snapshot, bypassing any cache.

    Args:
        spec: Query to evaluate
        session: Optional SQLAlchemy session

    Returns:
        Query result (see project_query)
    """

    def _impl(session):
        needs_audio = spec.include_count or spec.query_type == QueryType.WITH_COUNTS
        return project_query(load_tree(session, include_audio=needs_audio), spec)

    try:
        if session is not None:
            return _impl(session)
        with session_scope() as session:
            return _impl(session)
    except SQLAlchemyError as e:
        logger.error(f"Database error loading {spec.cache_key()}: {e}")
        raise DatabaseError(f"Failed to load categories: {e}", original_error=e)


def raise_for_violations(result: ValidationResult, candidate: CategoryRecord) -> None:
    """
    Convert a failed ValidationResult into the matching exception.

    Raises:
        CycleError: A circular reference was detected
        NotFoundError: The parent does not exist
        ValidationError: Any other violated invariant
    """
    if result.is_valid:
        return
    if result.has(ErrorCode.CIRCULAR_REFERENCE):
        raise CycleError(candidate.id, candidate.parent_id)
    if result.has(ErrorCode.PARENT_NOT_FOUND):
        raise NotFoundError(
            candidate.parent_id, entity="Parent category", code=ErrorCode.PARENT_NOT_FOUND
        )
    raise ValidationError(result.violations, category_id=candidate.id)


class CategoryService:
    """
    Service for category reads and mutations.

    Args:
        cache: Query cache to read through and invalidate. A new one is
            built from config when omitted.
        config: Configuration (defaults to get_config())
    """

    def __init__(
        self, cache: Optional[CategoryQueryCache] = None, config: Optional[Config] = None
    ):
        self.config = config or get_config()
        self.cache = cache if cache is not None else CategoryQueryCache.from_config(self.config)

    # ============================================================================
    # Reads
    # ============================================================================

    def query(self, spec: QuerySpec) -> Any:
        """Serve a read query through the cache."""
        return self.cache.get_or_compute(spec, lambda: load_query(spec))

    def list_categories(
        self,
        format: str = "tree",
        include_inactive: bool = False,
        include_count: bool = False,
        parent_id: Optional[int] = None,
        level: Optional[int] = None,
    ):
        """
        List categories as a tree or a flat list.

        Args:
            format: "tree" for nested level-1 nodes, "flat" for a list
            include_inactive: Include inactive categories
            include_count: Populate audio counts
            parent_id: Flat only: restrict to children of this parent
            level: Flat only: restrict to one level

        Returns:
            Tuple of CategoryTreeNode (tree) or CategoryRecord (flat)
        """
        query = CategoryQuery(format, include_inactive, include_count, parent_id, level)
        if query.format == "tree":
            return self.query(QuerySpec.tree(query.include_inactive, query.include_count))
        if query.parent_id is not None:
            rows = self.query(
                QuerySpec.by_parent(query.parent_id, query.include_inactive, query.include_count)
            )
            if query.level is not None:
                rows = tuple(r for r in rows if r.level == query.level)
            return rows
        return self.query(
            QuerySpec.flat(query.include_inactive, query.include_count, level=query.level)
        )

    def audio_counts(self, include_inactive: bool = True):
        """Read-only mapping of category id to audio count."""
        return self.query(QuerySpec.with_counts(include_inactive))

    def get_category(self, category_id: int, session=None) -> CategoryRecord:
        """
        Fetch one category directly from the store.

        Raises:
            NotFoundError: If category doesn't exist
        """

        def _impl(session):
            return get_category_row(session, category_id).to_record()

        if session is not None:
            return _impl(session)
        with session_scope() as session:
            return _impl(session)

    # ============================================================================
    # Write plumbing
    # ============================================================================

    def _execute_write(self, operation: str, work, session=None):
        """
        Run work(session) -> (result, affected_parent_ids) as one transaction.

        With a caller-owned session the cache is invalidated when that
        session commits.
        """
        with _write_lock:
            try:
                if session is not None:
                    result, affected = work(session)
                    self._invalidate_on_commit(session, affected)
                    return result
                with session_scope() as session:
                    result, affected = work(session)
            except SQLAlchemyError as e:
                logger.error(f"Database error during {operation}: {e}")
                raise DatabaseError(
                    f"Failed to {operation.replace('_', ' ')}: {e}", original_error=e
                )

            self.cache.invalidate(affected)
            return result

    def _invalidate_on_commit(self, session, affected: Set[Optional[int]]) -> None:
        def _after_commit(_session):
            self.cache.invalidate(affected)

        event.listen(session, "after_commit", _after_commit, once=True)

    def _reject(self, operation: str, candidate: CategoryRecord, result: ValidationResult):
        if result.is_valid:
            return
        log_operation(
            logger,
            operation=operation,
            outcome="validation_failed",
            level=logging.WARNING,
            category_id=candidate.id,
            codes=[c.value for c in result.codes],
        )
        raise_for_violations(result, candidate)

    # ============================================================================
    # Create / update
    # ============================================================================

    def create(self, request: CreateCategoryRequest, session=None) -> CategoryRecord:
        """
        Create a category. The level is derived from parent_id.

        Args:
            request: Fields of the new category
            session: Optional SQLAlchemy session

        Returns:
            The created CategoryRecord

        Raises:
            ValidationError: Empty or duplicate name, or depth violation
            NotFoundError: If parent_id doesn't exist
        """

        def work(session):
            tree = load_tree(session, include_audio=False)
            candidate = CategoryRecord(
                id=None,
                name=trim_name(request.name),
                parent_id=request.parent_id,
                level=expected_level(request.parent_id),
                sort_order=request.sort_order or 0,
                is_active=request.is_active,
                description=request.description,
                color=request.color or DEFAULT_CATEGORY_COLOR,
                icon=request.icon,
            )
            self._reject("create_category", candidate, validate_category(candidate, tree))

            category = Category(
                name=candidate.name,
                parent_id=candidate.parent_id,
                level=candidate.level,
                sort_order=candidate.sort_order,
                is_active=candidate.is_active,
                description=candidate.description,
                color=candidate.color,
                icon=candidate.icon,
            )
            session.add(category)
            session.flush()
            record = category.to_record()

            log_operation(
                logger,
                operation="create_category",
                outcome="success",
                category_id=record.id,
                parent_id=record.parent_id,
                category_level=record.level,
            )
            return record, {record.parent_id, record.id}

        return self._execute_write("create_category", work, session)

    def update(
        self, category_id: int, patch: UpdateCategoryRequest, session=None
    ) -> CategoryRecord:
        """
        Apply a patch and re-validate the resulting record.

        Setting parent_id (to an id or to None) re-derives the level.

        Raises:
            NotFoundError: Category or new parent doesn't exist
            CycleError: New parent is the category itself or a descendant
            ValidationError: Any other violated invariant
        """

        def work(session):
            category = get_category_row(session, category_id)
            tree = load_tree(session, include_audio=False)
            current = category.to_record()

            changes = patch.provided()
            if "name" in changes:
                changes["name"] = trim_name(changes["name"])
            if "sort_order" in changes and changes["sort_order"] is None:
                changes["sort_order"] = 0
            if "is_active" in changes:
                changes["is_active"] = bool(changes["is_active"])
            if "parent_id" in changes:
                changes["level"] = expected_level(changes["parent_id"])

            candidate = dataclasses.replace(current, **changes)
            self._reject("update_category", candidate, validate_category(candidate, tree))

            for key, value in changes.items():
                setattr(category, key, value)
            session.flush()
            record = category.to_record()

            log_operation(
                logger,
                operation="update_category",
                outcome="success",
                category_id=category_id,
                fields=sorted(changes),
            )
            return record, {current.parent_id, record.parent_id, category_id}

        return self._execute_write("update_category", work, session)

    def set_active(self, category_id: int, is_active: bool, session=None) -> CategoryRecord:
        return self.update(category_id, UpdateCategoryRequest(is_active=is_active), session)

    def reorder(self, category_id: int, sort_order: int, session=None) -> CategoryRecord:
        return self.update(category_id, UpdateCategoryRequest(sort_order=sort_order), session)

    # ============================================================================
    # Delete / batch
    # ============================================================================

    @staticmethod
    def plan_delete(
        tree: CategoryTree,
        category_id: int,
        force: bool = False,
        cascade: bool = False,
        batch_ids: Iterable[int] = (),
    ) -> List[int]:
        """
        Work out which rows a delete removes, deepest first.

        Default mode refuses when an active child (not itself part of the
        same batch) or any associated audio would be left behind; inactive
        children without audio go together with the parent. cascade lifts
        the child restriction, force lifts both and leaves children in
        place unless cascade is also set.

        Raises:
            ConflictError: If the delete is blocked
        """
        batch_ids = set(batch_ids)
        descendants = [d.id for d in reversed(tree.descendants_of(category_id))]

        if force:
            return (descendants if cascade else []) + [category_id]

        blocking_children = [
            c for c in tree.children(category_id) if c.is_active and c.id not in batch_ids
        ]
        audio_count = tree.audio_count(category_id)
        if (blocking_children and not cascade) or audio_count:
            raise ConflictError(
                category_id,
                active_children=0 if cascade else len(blocking_children),
                audio_count=audio_count,
            )
        return descendants + [category_id]

    @staticmethod
    def _delete_rows(session, ids: Sequence[int]) -> Set[Optional[int]]:
        affected: Set[Optional[int]] = set()
        for cid in ids:
            row = session.get(Category, cid)
            if row is None:
                continue
            affected.add(row.parent_id)
            affected.add(cid)
            session.delete(row)
        session.flush()
        return affected

    def delete(
        self, category_id: int, force: bool = False, cascade: bool = False, session=None
    ) -> List[int]:
        """
        Delete a category.

        Args:
            category_id: Category to delete
            force: Delete regardless of children and audio, orphaning them
            cascade: Delete level-2 children first, in the same transaction
            session: Optional SQLAlchemy session

        Returns:
            IDs of every deleted category, children first

        Raises:
            NotFoundError: If category doesn't exist
            ConflictError: Blocked by active children or associated audio
        """

        def work(session):
            get_category_row(session, category_id)
            tree = load_tree(session)
            try:
                doomed = self.plan_delete(tree, category_id, force=force, cascade=cascade)
            except ConflictError as e:
                log_operation(
                    logger,
                    operation="delete_category",
                    outcome="conflict",
                    level=logging.WARNING,
                    category_id=category_id,
                    active_children=e.active_children,
                    audio_count=e.audio_count,
                )
                raise

            affected = self._delete_rows(session, doomed)
            log_operation(
                logger,
                operation="delete_category",
                outcome="success",
                category_id=category_id,
                deleted=doomed,
                force=force,
                cascade=cascade,
            )
            return doomed, affected

        return self._execute_write("delete_category", work, session)

    def batch(
        self,
        operation,
        ids: Sequence[int],
        force: bool = False,
        cascade: bool = False,
        session=None,
    ) -> BatchResult:
        """
        Apply activate/deactivate/delete to many categories atomically.

        Every id is checked first. Without force, any failing id rejects
        the whole batch and nothing is written. With force, the valid ids
        are applied and the failures are reported in the result.

        Args:
            operation: BatchOperation or its string value
            ids: Category ids
            force: Apply valid ids despite failures (and force deletes)
            cascade: Cascade semantics for delete
            session: Optional SQLAlchemy session

        Returns:
            BatchResult

        Raises:
            BatchRejectedError: If any id failed and force is not set
        """
        operation = BatchOperation(operation)
        ids = list(dict.fromkeys(ids))

        def work(session):
            tree = load_tree(session, include_audio=operation == BatchOperation.DELETE)
            result = BatchResult(operation=operation, requested=list(ids))
            planned = []

            for cid in ids:
                record = tree.get(cid)
                if record is None:
                    result.failed.append(
                        BatchFailure(cid, ErrorCode.NOT_FOUND, f"Category {cid} not found")
                    )
                    continue
                if operation == BatchOperation.DELETE:
                    try:
                        doomed = self.plan_delete(tree, cid, force, cascade, batch_ids=ids)
                    except ConflictError as e:
                        result.failed.append(BatchFailure(cid, e.code, e.reason))
                        continue
                    planned.append((cid, doomed))
                else:
                    planned.append((cid, None))

            if result.failed and not force:
                log_operation(
                    logger,
                    operation="batch_categories",
                    outcome="rejected",
                    level=logging.WARNING,
                    batch_operation=operation.value,
                    failed=[f.category_id for f in result.failed],
                )
                raise BatchRejectedError(operation.value, result.failed)

            affected: Set[Optional[int]] = set()
            if operation == BatchOperation.DELETE:
                doomed_all: List[int] = []
                for _, doomed in planned:
                    for cid in doomed:
                        if cid not in doomed_all:
                            doomed_all.append(cid)
                # Children before parents
                doomed_all.sort(key=lambda cid: -tree.get(cid).level)
                affected = self._delete_rows(session, doomed_all)
            else:
                is_active = operation == BatchOperation.ACTIVATE
                for cid, _ in planned:
                    row = get_category_row(session, cid)
                    row.is_active = is_active
                    affected.update({row.parent_id, cid})
                session.flush()

            result.succeeded = [cid for cid, _ in planned]
            log_operation(
                logger,
                operation="batch_categories",
                outcome="success",
                batch_operation=operation.value,
                succeeded=len(result.succeeded),
                failed=len(result.failed),
            )
            return result, affected

        return self._execute_write("batch_categories", work, session)

    # ============================================================================
    # Cache maintenance
    # ============================================================================

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def warm_cache(self, specs: Optional[Sequence[QuerySpec]] = None) -> WarmupResult:
        """Pre-populate the cache (default: the common listing queries)."""
        return self.cache.warm(load_query, specs)

    def benchmark_cache(self, specs: Optional[Sequence[QuerySpec]] = None) -> BenchmarkResult:
        """Measure cold vs warm latency of each query."""
        return self.cache.benchmark(load_query, specs)

    def clear_cache(self) -> None:
        self.cache.clear()

    def purge_expired(self) -> int:
        return self.cache.purge_expired()
