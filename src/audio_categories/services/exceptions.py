"""Service layer exception classes for the category subsystem.

This module defines the closed set of errors raised by category mutations,
each carrying structured fields (code, offending id, human-readable reason)
so callers can act on them without parsing messages.

Exception Hierarchy:
    ServiceError (base)
    ├── CategoryError
    │   ├── ValidationError
    │   ├── NotFoundError
    │   ├── CycleError
    │   └── ConflictError
    │       └── BatchRejectedError
    └── DatabaseError

Diagnostic and sync findings are data (see dto.DriftWarning), never raised.
"""

from typing import List, Optional, Sequence

from audio_categories.models.enums import ErrorCode


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions should inherit from this class.
    """

    pass


class CategoryError(ServiceError):
    """Base for structural category errors.

    Args:
        code: ErrorCode identifying the failed rule
        reason: Human-readable explanation
        category_id: Offending category id, if any
    """

    def __init__(self, code: ErrorCode, reason: str, category_id: Optional[int] = None):
        self.code = code
        self.reason = reason
        self.category_id = category_id
        super().__init__(reason)

    def to_dict(self) -> dict:
        """Structured form for API/CLI surfaces."""
        return {
            "type": type(self).__name__,
            "code": self.code.value,
            "category_id": self.category_id,
            "message": self.reason,
        }


class ValidationError(CategoryError):
    """Raised when a proposed category state violates one or more invariants.

    Args:
        violations: Every Violation found, one per failed rule

    Example:
        >>> raise ValidationError([Violation(ErrorCode.DUPLICATE_NAME, None, "...")])
        ValidationError: Validation failed: ...
    """

    def __init__(self, violations: Sequence, category_id: Optional[int] = None):
        self.violations = list(violations)
        first = self.violations[0] if self.violations else None
        code = first.code if first is not None else ErrorCode.DATA_INCONSISTENCY
        if category_id is None and first is not None:
            category_id = first.category_id
        messages = "; ".join(v.message for v in self.violations) or "invalid category"
        super().__init__(code, f"Validation failed: {messages}", category_id)

    @property
    def codes(self) -> List[ErrorCode]:
        """Codes of every violated rule, in detection order."""
        return [v.code for v in self.violations]


class NotFoundError(CategoryError):
    """Raised when a referenced category (or parent, or audio) does not exist.

    Example:
        >>> raise NotFoundError(42)
        NotFoundError: Category with ID 42 not found
    """

    def __init__(
        self,
        category_id,
        entity: str = "Category",
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        self.entity = entity
        super().__init__(code, f"{entity} with ID {category_id} not found", category_id)


class CycleError(CategoryError):
    """Raised when a parent change would make a category its own ancestor."""

    def __init__(self, category_id: int, proposed_parent_id: int):
        self.proposed_parent_id = proposed_parent_id
        super().__init__(
            ErrorCode.CIRCULAR_REFERENCE,
            f"Cannot set parent of category {category_id} to {proposed_parent_id}: "
            f"category {proposed_parent_id} is {category_id} itself or one of its descendants",
            category_id,
        )


class ConflictError(CategoryError):
    """Raised when deletion is blocked by children or audio associations.

    Args:
        category_id: Category that could not be deleted
        active_children: Number of active child categories in the way
        audio_count: Number of audio records still associated

    Example:
        >>> raise ConflictError(7, active_children=3)
        ConflictError: Cannot delete category 7: 3 active sub-categories; use cascade=true
    """

    def __init__(
        self,
        category_id: Optional[int],
        active_children: int = 0,
        audio_count: int = 0,
        reason: Optional[str] = None,
    ):
        self.active_children = active_children
        self.audio_count = audio_count

        if reason is None:
            parts = []
            if active_children > 0:
                parts.append(f"{active_children} active sub-categories; use cascade=true")
            if audio_count > 0:
                parts.append(f"{audio_count} associated audio record(s); use force=true")
            details = ", ".join(parts) if parts else "category is in use"
            reason = f"Cannot delete category {category_id}: {details}"

        super().__init__(ErrorCode.DELETE_RESTRICTED, reason, category_id)


class BatchRejectedError(ConflictError):
    """Raised when an all-or-nothing batch is refused because some ids failed.

    Args:
        operation: Batch operation name
        failures: List of BatchFailure records, one per failing id
    """

    def __init__(self, operation: str, failures: Sequence):
        self.operation = operation
        self.failures = list(failures)
        ids = ", ".join(str(f.category_id) for f in self.failures)
        reason = (
            f"Batch {operation} rejected: {len(self.failures)} id(s) failed ({ids}); "
            f"no changes were applied"
        )
        super().__init__(None, reason=reason)


class DatabaseError(ServiceError):
    """Raised when a database operation fails."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
