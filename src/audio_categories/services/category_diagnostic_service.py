"""
Consistency diagnostics and operator repairs for the category tree.

run_diagnostic() reads a fresh snapshot (never the query cache) and
returns a ConsistencyReport: counts, orphans, level mismatches, invariant
violations, audio association problems, a 0-100 health score and ordered
recommendations. It never writes.

run_repair() is a separate, explicit step. Each repair re-expresses the
fix as CategoryService mutations or compatibility sync calls, so every
change is re-validated against the state current at repair time.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from audio_categories.models.enums import (
    CategoryLevel,
    ErrorCode,
    RepairAction,
    Severity,
    SyncAction,
)
from audio_categories.services import category_compat_service
from audio_categories.services.category_service import CategoryService
from audio_categories.services.category_store import load_tree
from audio_categories.services.category_tree import CategoryTree
from audio_categories.services.category_validation import validate_snapshot
from audio_categories.services.database import session_scope
from audio_categories.services.dto import (
    AudioIssue,
    CategoryStats,
    ConsistencyReport,
    Recommendation,
    RepairResult,
    UpdateCategoryRequest,
)
from audio_categories.services.exceptions import CategoryError, DatabaseError
from audio_categories.services.logging_utils import get_service_logger, log_operation
from audio_categories.utils.config import get_config
from audio_categories.utils.constants import DEFAULT_HEALTH_PENALTIES, HEALTH_SCORE_MAX

logger = get_service_logger(__name__)

PRIMARY = CategoryLevel.PRIMARY.value
SECONDARY = CategoryLevel.SECONDARY.value


# ============================================================================
# Snapshot analysis (pure)
# ============================================================================


def category_stats(tree: CategoryTree) -> CategoryStats:
    """Counts by level, state and audio usage."""
    records = tree.records
    with_audio = sum(1 for r in records if tree.audio_count(r.id) > 0)
    return CategoryStats(
        total_categories=len(records),
        level1_count=sum(1 for r in records if r.level == PRIMARY),
        level2_count=sum(1 for r in records if r.level == SECONDARY),
        active_count=sum(1 for r in records if r.is_active),
        inactive_count=sum(1 for r in records if not r.is_active),
        categories_with_audio=with_audio,
        empty_categories_count=len(records) - with_audio,
    )


def find_inconsistent_levels(tree: CategoryTree) -> List[int]:
    """Rows whose level disagrees with the presence of a parent."""
    return [
        r.id
        for r in tree.records
        if (r.level == PRIMARY and r.parent_id is not None)
        or (r.level == SECONDARY and r.parent_id is None)
        or r.level not in (PRIMARY, SECONDARY)
    ]


def find_audio_issues(tree: CategoryTree) -> List[AudioIssue]:
    """
    Structural problems of every audio association.

    Drift between subject and category is reported separately by
    category_compat_service.detect_drift().
    """
    issues = []
    for assoc in tree.associations:
        found = []

        if assoc.subcategory_id is not None and assoc.category_id is None:
            found.append(
                (
                    "subcategory_without_category",
                    f"Sub-category {assoc.subcategory_id} is set without a category",
                    "Assign the parent category or clear the sub-category",
                )
            )

        category = tree.get(assoc.category_id)
        if assoc.category_id is not None:
            if category is None:
                found.append(
                    (
                        "orphaned_category_reference",
                        f"Category {assoc.category_id} does not exist",
                        "Run cleanup-orphans to clear the dangling reference",
                    )
                )
            elif category.level != PRIMARY:
                found.append(
                    (
                        "category_not_level_one",
                        f"Category {assoc.category_id} is not a level-1 category",
                        "Point category_id at a level-1 category",
                    )
                )

        subcategory = tree.get(assoc.subcategory_id)
        if assoc.subcategory_id is not None:
            if subcategory is None:
                found.append(
                    (
                        "orphaned_subcategory_reference",
                        f"Sub-category {assoc.subcategory_id} does not exist",
                        "Run cleanup-orphans to clear the dangling reference",
                    )
                )
            elif subcategory.level != SECONDARY:
                found.append(
                    (
                        "subcategory_not_level_two",
                        f"Sub-category {assoc.subcategory_id} is not a level-2 category",
                        "Point subcategory_id at a level-2 category",
                    )
                )
            elif assoc.category_id is not None and subcategory.parent_id != assoc.category_id:
                found.append(
                    (
                        "subcategory_parent_mismatch",
                        f"Sub-category {assoc.subcategory_id} belongs to "
                        f"{subcategory.parent_id}, not {assoc.category_id}",
                        "Make the sub-category belong to the assigned category",
                    )
                )

        issues.extend(AudioIssue(assoc.audio_id, assoc.title, *f) for f in found)
    return issues


def compute_health_score(
    orphan_count: int,
    inconsistent_count: int,
    level1_count: int,
    level2_count: int,
    penalties: Optional[Dict[str, int]] = None,
) -> int:
    """
    Health score from 100 down, floored at 0.

    Deducts per orphan, per inconsistent level, and a flat amount when
    level-1 categories exist but no level-2 category does.
    """
    penalties = penalties or DEFAULT_HEALTH_PENALTIES
    score = HEALTH_SCORE_MAX
    score -= orphan_count * penalties["orphan"]
    score -= inconsistent_count * penalties["inconsistent_level"]
    if level2_count == 0 and level1_count > 0:
        score -= penalties["missing_level_two"]
    return max(0, score)


def health_label(score: int) -> str:
    if score >= 90:
        return "excellent"
    if score >= 70:
        return "good"
    if score >= 50:
        return "fair"
    return "needs attention"


def build_recommendations(report: ConsistencyReport) -> List[Recommendation]:
    """Recommendations for every non-zero finding, most severe first."""
    recs = []
    stats = report.stats

    if report.orphan_count:
        recs.append(
            Recommendation(
                Severity.ERROR,
                f"{report.orphan_count} categories reference a parent that no longer "
                f"exists; run fix-structure to promote them to level 1",
                RepairAction.FIX_STRUCTURE,
            )
        )
    if report.inconsistent_level_count:
        recs.append(
            Recommendation(
                Severity.WARNING,
                f"{report.inconsistent_level_count} categories have a level that does not "
                f"match their parent; run fix-structure",
                RepairAction.FIX_STRUCTURE,
            )
        )
    if stats.level2_count == 0 and stats.level1_count > 0:
        recs.append(
            Recommendation(
                Severity.WARNING,
                "No level-2 categories exist; create sub-categories under the "
                "level-1 categories",
            )
        )

    duplicates = {v.category_id for v in report.violations if v.code == ErrorCode.DUPLICATE_NAME}
    if duplicates:
        recs.append(
            Recommendation(
                Severity.WARNING,
                f"{len(duplicates)} categories share a name with a sibling; rename them",
            )
        )
    depth = {v.category_id for v in report.violations if v.code == ErrorCode.MAX_DEPTH_EXCEEDED}
    if depth:
        recs.append(
            Recommendation(
                Severity.ERROR,
                f"{len(depth)} categories exceed the two-level depth limit; move them "
                f"under a level-1 category",
            )
        )

    if report.orphaned_audio_references:
        recs.append(
            Recommendation(
                Severity.WARNING,
                f"{report.orphaned_audio_references} audio records reference deleted "
                f"categories; run cleanup-orphans",
                RepairAction.CLEANUP_ORPHANS,
            )
        )
    pairing = {
        i.audio_id
        for i in report.audio_issues
        if i.kind not in ("orphaned_category_reference", "orphaned_subcategory_reference")
    }
    if pairing:
        recs.append(
            Recommendation(
                Severity.WARNING,
                f"{len(pairing)} audio records have an invalid category/sub-category "
                f"pairing; reassign them",
            )
        )
    if report.drift:
        recs.append(
            Recommendation(
                Severity.INFO,
                f"{len(report.drift)} audio subjects differ from their category; run fix-data",
                RepairAction.FIX_DATA,
            )
        )
    if report.legacy_only_audios:
        recs.append(
            Recommendation(
                Severity.INFO,
                f"{report.legacy_only_audios} audio records only carry a legacy subject; "
                f"run backfill to assign categories",
            )
        )

    if not recs:
        recs.append(Recommendation(Severity.INFO, "Category structure is complete"))

    return sorted(recs, key=lambda r: r.severity.rank)


def build_report(
    tree: CategoryTree, penalties: Optional[Dict[str, int]] = None
) -> ConsistencyReport:
    """
    Analyse a snapshot. Pure: the same snapshot always yields an equal report.

    Args:
        tree: Snapshot including audio associations
        penalties: Health-score penalties (defaults to the built-in weights)

    Returns:
        ConsistencyReport
    """
    stats = category_stats(tree)
    audio_issues = find_audio_issues(tree)
    drift = category_compat_service.detect_drift(tree)

    orphaned_audio = {
        i.audio_id
        for i in audio_issues
        if i.kind in ("orphaned_category_reference", "orphaned_subcategory_reference")
    }
    problem_audio = {i.audio_id for i in audio_issues} | {d.audio_id for d in drift}
    normalized = [a for a in tree.associations if a.has_normalized]

    report = ConsistencyReport(
        stats=stats,
        orphaned_categories=[r.id for r in tree.orphans()],
        inconsistent_levels=find_inconsistent_levels(tree),
        violations=list(validate_snapshot(tree).violations),
        total_audios=len(tree.associations),
        audios_with_normalized=len(normalized),
        legacy_only_audios=sum(
            1 for a in tree.associations if not a.has_normalized and (a.subject or "").strip()
        ),
        consistent_audios=sum(1 for a in normalized if a.audio_id not in problem_audio),
        inconsistent_audios=len(problem_audio),
        orphaned_audio_references=len(orphaned_audio),
        audio_issues=audio_issues,
        drift=drift,
    )
    report.health_score = compute_health_score(
        report.orphan_count,
        report.inconsistent_level_count,
        stats.level1_count,
        stats.level2_count,
        penalties,
    )
    report.recommendations = build_recommendations(report)
    return report


# ============================================================================
# Store-backed entry points
# ============================================================================


def run_diagnostic(session=None, config=None) -> ConsistencyReport:
    """
    Build a ConsistencyReport from a fresh snapshot of the store.

    Args:
        session: Optional SQLAlchemy session
        config: Configuration supplying the health penalties

    Returns:
        ConsistencyReport
    """
    config = config or get_config()

    def _impl(session):
        return build_report(load_tree(session), config.health_penalties)

    try:
        if session is not None:
            report = _impl(session)
        else:
            with session_scope() as session:
                report = _impl(session)
    except SQLAlchemyError as e:
        logger.error(f"Database error running diagnostic: {e}")
        raise DatabaseError(f"Failed to run diagnostic: {e}", original_error=e)

    log_operation(
        logger,
        operation="run_diagnostic",
        outcome="success",
        level=logging.INFO if report.health_score == HEALTH_SCORE_MAX else logging.WARNING,
        health_score=report.health_score,
        orphans=report.orphan_count,
        inconsistent_levels=report.inconsistent_level_count,
        audio_issues=len(report.audio_issues),
    )
    return report


def _fix_structure(service: CategoryService, session=None) -> RepairResult:
    result = RepairResult(action=RepairAction.FIX_STRUCTURE)

    def _targets(session):
        tree = load_tree(session, include_audio=False)
        ids = [r.id for r in tree.orphans()] + find_inconsistent_levels(tree)
        return [tree.get(cid) for cid in dict.fromkeys(ids)]

    if session is not None:
        targets = _targets(session)
    else:
        with session_scope() as read_session:
            targets = _targets(read_session)

    for record in targets:
        try:
            service.update(record.id, UpdateCategoryRequest(parent_id=None), session=session)
        except CategoryError as e:
            result.record(record.id, SyncAction.ERROR, e.reason)
            continue
        result.record(
            record.id,
            SyncAction.UPDATED,
            f"'{record.name}' promoted to level 1 (was parent {record.parent_id}, "
            f"level {record.level})",
        )
    return result


def run_repair(action, service: Optional[CategoryService] = None, session=None) -> RepairResult:
    """
    Apply one repair action.

    Args:
        action: RepairAction or its string value
            ("fix-structure", "fix-data", "cleanup-orphans")
        service: CategoryService used for mutations (and whose cache is
            invalidated); a new one is built when omitted
        session: Optional SQLAlchemy session

    Returns:
        RepairResult with the per-record action log

    Raises:
        ValueError: If action is not a known repair action
    """
    action = RepairAction(action)
    service = service or CategoryService()

    if action == RepairAction.FIX_STRUCTURE:
        result = _fix_structure(service, session)
    else:
        result = RepairResult(action=action)
        if action == RepairAction.FIX_DATA:
            result.merge(category_compat_service.batch_sync(session=session))
        else:
            result.merge(
                category_compat_service.cleanup_orphaned_references(
                    session=session, cache=service.cache
                )
            )

    log_operation(
        logger,
        operation="run_repair",
        outcome="success" if result.success else "partial",
        level=logging.INFO if result.success else logging.WARNING,
        action=action.value,
        processed=result.processed,
        updated=result.updated,
        errors=result.errors,
    )
    return result


def format_report(report: ConsistencyReport) -> str:
    """Render a ConsistencyReport as a plain-text operator report."""
    stats = report.stats
    lines = [
        "Category Consistency Report",
        "=" * 60,
        f"Generated: {report.generated_at.isoformat()}",
        f"Health score: {report.health_score}/100 ({health_label(report.health_score)})",
        "",
        "Categories",
        f"  Total: {stats.total_categories} "
        f"(level 1: {stats.level1_count}, level 2: {stats.level2_count})",
        f"  Active: {stats.active_count}, inactive: {stats.inactive_count}",
        f"  With audio: {stats.categories_with_audio}, empty: {stats.empty_categories_count}",
        f"  Orphaned: {report.orphan_count}, inconsistent levels: "
        f"{report.inconsistent_level_count}",
        "",
        "Audio",
        f"  Total: {report.total_audios}, with categories: {report.audios_with_normalized}, "
        f"legacy only: {report.legacy_only_audios}",
        f"  Consistent: {report.consistent_audios}, inconsistent: {report.inconsistent_audios}",
        f"  Orphaned references: {report.orphaned_audio_references}, "
        f"subject drift: {len(report.drift)}",
    ]

    if report.violations:
        lines += ["", "Violations"]
        lines += [
            f"  [{v.code.value}] category {v.category_id}: {v.message}" for v in report.violations
        ]

    if report.audio_issues:
        lines += ["", "Audio issues"]
        lines += [
            f"  audio {i.audio_id} ({i.title}): {i.message} -> {i.suggestion}"
            for i in report.audio_issues
        ]

    lines += ["", "Recommendations"]
    for rec in report.recommendations:
        suffix = f" [{rec.action.value}]" if rec.action else ""
        lines.append(f"  {rec.severity.value.upper():<8}{rec.message}{suffix}")

    return "\n".join(lines)
