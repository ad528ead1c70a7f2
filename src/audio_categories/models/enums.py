"""
Enumerations for the category subsystem.

This module contains enums shared by models, services and reports:
- CategoryLevel: Position of a category in the two-level tree
- ErrorCode: Closed set of structural error codes
- Severity: Recommendation / issue severity buckets
- BatchOperation: Operations accepted by batch mutation
- RepairAction: Operator-triggered repair actions
- SyncAction: Per-record outcome of a compatibility sync
- QueryType: Cached read queries
"""

from enum import Enum


class CategoryLevel(int, Enum):
    """
    Level of a category in the tree.

    Values:
        PRIMARY: Root category, no parent
        SECONDARY: Child of a PRIMARY category
    """

    PRIMARY = 1
    SECONDARY = 2


class ErrorCode(str, Enum):
    """
    Structural error codes.

    Each invariant violation and each mutation failure is tagged with exactly
    one of these codes so callers can match on them.
    """

    INVALID_HIERARCHY = "INVALID_HIERARCHY"
    CIRCULAR_REFERENCE = "CIRCULAR_REFERENCE"
    DUPLICATE_NAME = "DUPLICATE_NAME"
    DELETE_RESTRICTED = "DELETE_RESTRICTED"
    DATA_INCONSISTENCY = "DATA_INCONSISTENCY"
    PARENT_NOT_FOUND = "PARENT_NOT_FOUND"
    MAX_DEPTH_EXCEEDED = "MAX_DEPTH_EXCEEDED"
    INVALID_LEVEL = "INVALID_LEVEL"
    EMPTY_NAME = "EMPTY_NAME"
    INACTIVE_CATEGORY = "INACTIVE_CATEGORY"
    NOT_FOUND = "NOT_FOUND"


class Severity(str, Enum):
    """Severity bucket for recommendations and issues."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        """Sort rank, most severe first."""
        return {"error": 0, "warning": 1, "info": 2}[self.value]


class BatchOperation(str, Enum):
    """Operations accepted by CategoryService.batch()."""

    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    DELETE = "delete"


class RepairAction(str, Enum):
    """
    Repair actions that act on diagnostic findings.

    Values:
        FIX_STRUCTURE: Re-express orphaned/inconsistent categories as valid level-1 rows
        FIX_DATA: Sync legacy subject fields from normalized references
        CLEANUP_ORPHANS: Clear dangling audio category references
    """

    FIX_STRUCTURE = "fix-structure"
    FIX_DATA = "fix-data"
    CLEANUP_ORPHANS = "cleanup-orphans"


class SyncAction(str, Enum):
    """Per-record outcome recorded in a sync action log."""

    UPDATED = "updated"
    SKIPPED = "skipped"
    ERROR = "error"


class QueryType(str, Enum):
    """
    Read queries served through the query cache.

    Values:
        TREE: Nested level-1 nodes with their children
        FLAT: Flat list, optionally filtered by level/parent
        BY_PARENT: Direct children of one parent (None = roots)
        WITH_COUNTS: Mapping of category id to audio count
    """

    TREE = "tree"
    FLAT = "flat"
    BY_PARENT = "byParent"
    WITH_COUNTS = "withCounts"
