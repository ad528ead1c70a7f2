"""Services package - category subsystem business logic.

Architecture:
- Reads: CategoryService.list_categories() through a CategoryQueryCache
- Writes: CategoryService create/update/delete/batch (the only writer)
- Transactions: Managed via session_scope() context manager
- Exceptions: Structured errors via the ServiceError hierarchy
- Validation: Pure invariant checks before any write

Service Modules:
- category_tree: In-memory tree built from a snapshot
- category_validation: Structural invariant checks
- category_service: Mutations and cached reads
- category_cache: Read-through query cache with warm-up and benchmark
- category_diagnostic_service: Consistency report and repairs
- category_compat_service: Legacy subject <-> normalized id reconciliation
- audio_service: Audio records and guarded category assignment

Infrastructure:
- database: Session management and database utilities
- category_store: Snapshot and row reads
- exceptions: Service layer exception classes
- logging_utils: Structured operation logging
"""

from .category_cache import CategoryQueryCache
from .category_compat_service import (
    backfill_from_subject,
    batch_sync,
    cleanup_orphaned_references,
    detect_drift,
    sync_audio,
)
from .category_diagnostic_service import format_report, run_diagnostic, run_repair
from .category_service import CategoryService
from .category_tree import CategoryTree
from .exceptions import (
    BatchRejectedError,
    CategoryError,
    ConflictError,
    CycleError,
    DatabaseError,
    NotFoundError,
    ServiceError,
    ValidationError,
)

__all__ = [
    "CategoryQueryCache",
    "CategoryService",
    "CategoryTree",
    "backfill_from_subject",
    "batch_sync",
    "cleanup_orphaned_references",
    "detect_drift",
    "sync_audio",
    "format_report",
    "run_diagnostic",
    "run_repair",
    "BatchRejectedError",
    "CategoryError",
    "ConflictError",
    "CycleError",
    "DatabaseError",
    "NotFoundError",
    "ServiceError",
    "ValidationError",
]
