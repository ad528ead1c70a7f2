"""Data Transfer Objects for the category service layer.

Records handed out by the read path (CategoryRecord, CategoryTreeNode,
AudioAssociation) are frozen so that cached values cannot be mutated by
callers. Request and result objects are plain dataclasses.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from audio_categories.models.enums import (
    BatchOperation,
    ErrorCode,
    QueryType,
    RepairAction,
    Severity,
    SyncAction,
)
from audio_categories.utils.datetime_utils import utc_now


class _Unset:
    """Sentinel type for 'field not present in patch'."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


# ============================================================================
# Snapshot records
# ============================================================================


@dataclass(frozen=True)
class CategoryRecord:
    """Immutable snapshot of one category row.

    ``id`` is None only for a not-yet-persisted candidate being validated.
    ``audio_count`` is derived and only populated when counts were requested.
    """

    id: Optional[int]
    name: str
    parent_id: Optional[int] = None
    level: int = 1
    sort_order: int = 0
    is_active: bool = True
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    audio_count: Optional[int] = None

    def with_count(self, audio_count: int) -> "CategoryRecord":
        return replace(self, audio_count=audio_count)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class CategoryTreeNode:
    """Immutable node of the tree projection."""

    id: int
    name: str
    level: int
    parent_id: Optional[int]
    sort_order: int
    is_active: bool
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    audio_count: Optional[int] = None
    children: Tuple["CategoryTreeNode", ...] = ()

    @classmethod
    def from_record(
        cls,
        record: CategoryRecord,
        children: Tuple["CategoryTreeNode", ...] = (),
        audio_count: Optional[int] = None,
    ) -> "CategoryTreeNode":
        return cls(
            id=record.id,
            name=record.name,
            level=record.level,
            parent_id=record.parent_id,
            sort_order=record.sort_order,
            is_active=record.is_active,
            description=record.description,
            color=record.color,
            icon=record.icon,
            audio_count=audio_count,
            children=children,
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "children"}
        result["children"] = [child.to_dict() for child in self.children]
        return result


@dataclass(frozen=True)
class AudioAssociation:
    """Classification fields of one audio record."""

    audio_id: int
    title: str = ""
    subject: Optional[str] = None
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None

    @property
    def has_normalized(self) -> bool:
        return self.category_id is not None or self.subcategory_id is not None


# ============================================================================
# Requests
# ============================================================================


@dataclass
class CreateCategoryRequest:
    """Fields accepted when creating a category.

    ``level`` is never supplied by callers: it is derived from ``parent_id``.
    """

    name: str
    parent_id: Optional[int] = None
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    sort_order: int = 0
    is_active: bool = True


@dataclass
class UpdateCategoryRequest:
    """Patch for an existing category.

    A field left as UNSET is unchanged; any other value (None included)
    replaces the stored value. ``parent_id=None`` therefore promotes the
    category to level 1.

    Example:
        >>> UpdateCategoryRequest(name="Cardiology").provided()
        {'name': 'Cardiology'}
    """

    name: Any = UNSET
    parent_id: Any = UNSET
    description: Any = UNSET
    color: Any = UNSET
    icon: Any = UNSET
    sort_order: Any = UNSET
    is_active: Any = UNSET

    def provided(self) -> Dict[str, Any]:
        """Fields present in the patch."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }


@dataclass
class CategoryQuery:
    """Caller-facing listing query (the listCategories surface)."""

    format: str = "tree"
    include_inactive: bool = False
    include_count: bool = False
    parent_id: Optional[int] = None
    level: Optional[int] = None

    def __post_init__(self) -> None:
        if self.format not in ("tree", "flat"):
            raise ValueError("format must be 'tree' or 'flat'")
        if self.level is not None and self.level not in (1, 2):
            raise ValueError("level must be 1 or 2")


@dataclass(frozen=True)
class QuerySpec:
    """Cacheable read query: type plus parameters.

    Example:
        >>> QuerySpec.tree(include_count=True).cache_key()
        'tree|includeCount=true|includeInactive=false'
    """

    query_type: QueryType
    include_inactive: bool = False
    include_count: bool = False
    parent_id: Optional[int] = None
    level: Optional[int] = None

    def cache_key(self) -> str:
        params = {
            "includeCount": self.include_count,
            "includeInactive": self.include_inactive,
        }
        if self.query_type == QueryType.BY_PARENT:
            params["parentId"] = "root" if self.parent_id is None else self.parent_id
        elif self.parent_id is not None:
            params["parentId"] = self.parent_id
        if self.level is not None:
            params["level"] = self.level
        if self.query_type == QueryType.WITH_COUNTS:
            params.pop("includeCount")

        rendered = []
        for key in sorted(params):
            value = params[key]
            if isinstance(value, bool):
                value = "true" if value else "false"
            rendered.append(f"{key}={value}")
        return "|".join([self.query_type.value] + rendered)

    @classmethod
    def tree(cls, include_inactive: bool = False, include_count: bool = False) -> "QuerySpec":
        return cls(QueryType.TREE, include_inactive=include_inactive, include_count=include_count)

    @classmethod
    def flat(
        cls,
        include_inactive: bool = False,
        include_count: bool = False,
        level: Optional[int] = None,
    ) -> "QuerySpec":
        return cls(
            QueryType.FLAT,
            include_inactive=include_inactive,
            include_count=include_count,
            level=level,
        )

    @classmethod
    def by_parent(
        cls,
        parent_id: Optional[int],
        include_inactive: bool = False,
        include_count: bool = False,
    ) -> "QuerySpec":
        return cls(
            QueryType.BY_PARENT,
            include_inactive=include_inactive,
            include_count=include_count,
            parent_id=parent_id,
        )

    @classmethod
    def with_counts(cls, include_inactive: bool = True) -> "QuerySpec":
        return cls(QueryType.WITH_COUNTS, include_inactive=include_inactive)


DEFAULT_WARMUP_QUERIES: Tuple[QuerySpec, ...] = (
    QuerySpec.tree(include_count=True),
    QuerySpec.tree(include_count=False),
    QuerySpec.flat(include_count=True),
    QuerySpec.flat(level=1),
    QuerySpec.flat(level=2),
    QuerySpec.with_counts(),
)


# ============================================================================
# Validation and mutation results
# ============================================================================


@dataclass(frozen=True)
class Violation:
    """One violated structural rule."""

    code: ErrorCode
    category_id: Optional[int]
    message: str


@dataclass
class ValidationResult:
    """Outcome of validating a candidate or a snapshot."""

    violations: List[Violation] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.violations

    @property
    def codes(self) -> List[ErrorCode]:
        return [v.code for v in self.violations]

    def add(self, code: ErrorCode, category_id: Optional[int], message: str) -> None:
        self.violations.append(Violation(code, category_id, message))

    def has(self, code: ErrorCode) -> bool:
        return any(v.code == code for v in self.violations)


@dataclass(frozen=True)
class BatchFailure:
    """Per-id failure inside a batch operation."""

    category_id: Any
    code: ErrorCode
    reason: str


@dataclass
class BatchResult:
    """Outcome of CategoryService.batch()."""

    operation: BatchOperation
    requested: List[int] = field(default_factory=list)
    succeeded: List[int] = field(default_factory=list)
    failed: List[BatchFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed


# ============================================================================
# Diagnostics
# ============================================================================


@dataclass(frozen=True)
class CategoryStats:
    """Counts over a category snapshot."""

    total_categories: int = 0
    level1_count: int = 0
    level2_count: int = 0
    active_count: int = 0
    inactive_count: int = 0
    categories_with_audio: int = 0
    empty_categories_count: int = 0


@dataclass(frozen=True)
class AudioIssue:
    """One problem with an audio record's classification."""

    audio_id: int
    title: str
    kind: str
    message: str
    suggestion: str


@dataclass(frozen=True)
class DriftWarning:
    """Legacy subject disagrees with the normalized reference. Non-fatal."""

    audio_id: int
    title: str
    subject: Optional[str]
    expected_subject: str


@dataclass(frozen=True)
class Recommendation:
    """Operator recommendation derived from a non-zero finding."""

    severity: Severity
    message: str
    action: Optional[RepairAction] = None


@dataclass
class ConsistencyReport:
    """Structured diagnostic output.

    ``generated_at`` is excluded from equality so two runs over the same
    snapshot compare equal.
    """

    stats: CategoryStats = field(default_factory=CategoryStats)
    orphaned_categories: List[int] = field(default_factory=list)
    inconsistent_levels: List[int] = field(default_factory=list)
    violations: List[Violation] = field(default_factory=list)

    total_audios: int = 0
    audios_with_normalized: int = 0
    legacy_only_audios: int = 0
    consistent_audios: int = 0
    inconsistent_audios: int = 0
    orphaned_audio_references: int = 0
    audio_issues: List[AudioIssue] = field(default_factory=list)
    drift: List[DriftWarning] = field(default_factory=list)

    health_score: int = 100
    recommendations: List[Recommendation] = field(default_factory=list)
    generated_at: datetime = field(default_factory=utc_now, compare=False)

    @property
    def orphan_count(self) -> int:
        return len(self.orphaned_categories)

    @property
    def inconsistent_level_count(self) -> int:
        return len(self.inconsistent_levels)

    @property
    def is_healthy(self) -> bool:
        return self.health_score == 100 and not self.audio_issues and not self.violations


# ============================================================================
# Sync and repair
# ============================================================================


@dataclass(frozen=True)
class ActionRecord:
    """One entry of an auditable per-record action log."""

    target_id: Any
    action: SyncAction
    message: str = ""


@dataclass
class ActionLog:
    """Counts plus per-record log shared by sync and repair results."""

    processed: int = 0
    updated: int = 0
    errors: int = 0
    details: List[ActionRecord] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.errors == 0

    def record(self, target_id: Any, action: SyncAction, message: str = "") -> None:
        self.processed += 1
        if action == SyncAction.UPDATED:
            self.updated += 1
        elif action == SyncAction.ERROR:
            self.errors += 1
        self.details.append(ActionRecord(target_id, action, message))

    def merge(self, other: "ActionLog") -> None:
        self.processed += other.processed
        self.updated += other.updated
        self.errors += other.errors
        self.details.extend(other.details)


@dataclass
class SyncResult(ActionLog):
    """Outcome of a compatibility sync / cleanup / backfill."""


@dataclass
class RepairResult(ActionLog):
    """Outcome of an operator repair action."""

    action: Optional[RepairAction] = None


# ============================================================================
# Query cache
# ============================================================================


@dataclass(frozen=True)
class QueryExecution:
    """One entry of the cache's rolling execution log."""

    key: str
    query_type: QueryType
    elapsed_ms: float
    cache_hit: bool
    result_count: int
    timestamp: datetime
    slow: bool = False


@dataclass
class CacheStats:
    """Snapshot of cache instrumentation."""

    hits: int
    misses: int
    size: int
    evictions: int
    hit_rate: float
    average_latency_ms: float
    slow_queries: List[QueryExecution] = field(default_factory=list)
    recent_queries: List[QueryExecution] = field(default_factory=list)


@dataclass(frozen=True)
class WarmupEntry:
    key: str
    elapsed_ms: float
    result_count: int


@dataclass
class WarmupResult:
    """Per-query timings of a warm-up pass."""

    entries: List[WarmupEntry] = field(default_factory=list)

    @property
    def total_ms(self) -> float:
        return sum(e.elapsed_ms for e in self.entries)


@dataclass(frozen=True)
class BenchmarkEntry:
    key: str
    cold_ms: float
    warm_ms: float


@dataclass
class BenchmarkResult:
    """Cold/warm latency pairs plus aggregate cache efficiency."""

    entries: List[BenchmarkEntry] = field(default_factory=list)

    @property
    def cold_total_ms(self) -> float:
        return sum(e.cold_ms for e in self.entries)

    @property
    def warm_total_ms(self) -> float:
        return sum(e.warm_ms for e in self.entries)

    @property
    def cache_efficiency(self) -> float:
        """1 - warm/cold over all queries; 0.0 when nothing was measured."""
        cold = self.cold_total_ms
        if cold <= 0:
            return 0.0
        return 1.0 - (self.warm_total_ms / cold)
