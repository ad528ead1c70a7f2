"""
Structural validation for category mutations and snapshots.

Pure functions with no I/O: every check takes a CategoryTree snapshot and
returns a deterministic answer. validate_category() is used by the mutation
service before any write; validate_snapshot() batch-checks a whole snapshot
for the diagnostic service.
"""

from typing import Any, List, Optional

from audio_categories.models.enums import CategoryLevel, ErrorCode
from audio_categories.services.category_tree import CategoryTree
from audio_categories.services.dto import CategoryRecord, ValidationResult


def validate_unique_sibling_name(
    siblings: List[Any], new_name: str, exclude_id: Optional[int] = None
) -> bool:
    """
    Check if name is unique among siblings.

    Comparison is case-insensitive and ignores surrounding whitespace.

    Args:
        siblings: Sibling records with 'id' and 'name' attributes
        new_name: Proposed new name
        exclude_id: ID to exclude from check (for rename operations)

    Returns:
        True if name is unique, False if duplicate exists
    """
    new_name_lower = (new_name or "").strip().lower()

    for sibling in siblings:
        if exclude_id is not None and sibling.id == exclude_id:
            continue
        if (sibling.name or "").strip().lower() == new_name_lower:
            return False

    return True


def validate_no_cycle(tree: CategoryTree, category_id: Optional[int], proposed_parent_id) -> bool:
    """
    Ensure reparenting won't make a category its own ancestor.

    Args:
        tree: Current snapshot
        category_id: Category being moved (None for a new category)
        proposed_parent_id: Proposed new parent

    Returns:
        True if safe (no cycle), False if cycle would be created
    """
    if proposed_parent_id is None or category_id is None:
        return True
    if proposed_parent_id == category_id:
        return False
    return not tree.is_descendant(proposed_parent_id, category_id)


def validate_name_not_empty(name: str) -> bool:
    """Validate that name is not empty or whitespace-only."""
    return bool(name and name.strip())


def trim_name(name: str) -> str:
    """Trim leading/trailing whitespace from name."""
    return name.strip() if name else ""


def expected_level(parent_id: Optional[int]) -> int:
    """Level implied by the presence of a parent."""
    return CategoryLevel.PRIMARY.value if parent_id is None else CategoryLevel.SECONDARY.value


def validate_category(candidate: CategoryRecord, tree: CategoryTree) -> ValidationResult:
    """
    Validate a proposed category state against the current snapshot.

    The candidate is the full resulting record (after applying a patch),
    not the patch itself. Every violated rule is reported, not just the
    first. If the candidate's id is already in the snapshot, the stored
    row is treated as replaced by the candidate.

    Args:
        candidate: Proposed record (id None for a create)
        tree: Snapshot to validate against

    Returns:
        ValidationResult listing each violation
    """
    result = ValidationResult()
    cid = candidate.id
    parent_id = candidate.parent_id

    if not validate_name_not_empty(candidate.name):
        result.add(ErrorCode.EMPTY_NAME, cid, "Category name cannot be empty")

    if candidate.level not in (CategoryLevel.PRIMARY.value, CategoryLevel.SECONDARY.value):
        result.add(
            ErrorCode.INVALID_LEVEL,
            cid,
            f"Category level must be 1 or 2, got {candidate.level}",
        )
    elif candidate.level != expected_level(parent_id):
        if parent_id is None:
            message = "Level-2 category must have a parent"
        else:
            message = "Level-1 category cannot have a parent"
        result.add(ErrorCode.INVALID_LEVEL, cid, message)

    if parent_id is not None:
        if not validate_no_cycle(tree, cid, parent_id):
            result.add(
                ErrorCode.CIRCULAR_REFERENCE,
                cid,
                f"Category {cid} cannot be moved under {parent_id}: "
                f"it would become its own ancestor",
            )
        else:
            parent = tree.get(parent_id)
            if parent is None:
                result.add(
                    ErrorCode.PARENT_NOT_FOUND,
                    cid,
                    f"Parent category {parent_id} not found",
                )
            elif parent.level != CategoryLevel.PRIMARY.value or parent.parent_id is not None:
                result.add(
                    ErrorCode.MAX_DEPTH_EXCEEDED,
                    cid,
                    f"Parent category '{parent.name}' is not level 1; "
                    f"hierarchy depth is limited to 2",
                )

        if cid is not None and any(child.id != cid for child in tree.children(cid)):
            result.add(
                ErrorCode.MAX_DEPTH_EXCEEDED,
                cid,
                "Category with sub-categories cannot become a sub-category",
            )

    if validate_name_not_empty(candidate.name):
        siblings = tree.children(parent_id)
        if not validate_unique_sibling_name(siblings, candidate.name, exclude_id=cid):
            scope = "at root level" if parent_id is None else f"under parent {parent_id}"
            result.add(
                ErrorCode.DUPLICATE_NAME,
                cid,
                f"A category named '{trim_name(candidate.name)}' already exists {scope}",
            )

    return result


def validate_snapshot(tree: CategoryTree) -> ValidationResult:
    """
    Validate every category in a snapshot.

    Returns:
        ValidationResult with the violations of every row, in row order
    """
    result = ValidationResult()
    for record in tree.records:
        result.violations.extend(validate_category(record, tree).violations)
    return result


def validate_association(
    tree: CategoryTree,
    category_id: Optional[int],
    subcategory_id: Optional[int],
    require_active: bool = True,
) -> ValidationResult:
    """
    Validate a proposed audio category/subcategory pair.

    Args:
        tree: Current snapshot
        category_id: Proposed level-1 reference
        subcategory_id: Proposed level-2 reference
        require_active: Reject inactive categories (new associations only)

    Returns:
        ValidationResult listing each violation
    """
    result = ValidationResult()

    if subcategory_id is not None and category_id is None:
        result.add(
            ErrorCode.INVALID_HIERARCHY,
            subcategory_id,
            "A sub-category cannot be assigned without its category",
        )

    category = tree.get(category_id)
    if category_id is not None:
        if category is None:
            result.add(ErrorCode.NOT_FOUND, category_id, f"Category {category_id} not found")
        elif category.level != CategoryLevel.PRIMARY.value:
            result.add(
                ErrorCode.INVALID_LEVEL,
                category_id,
                f"Category '{category.name}' is not a level-1 category",
            )
        elif require_active and not category.is_active:
            result.add(
                ErrorCode.INACTIVE_CATEGORY,
                category_id,
                f"Category '{category.name}' is inactive and accepts no new audio",
            )

    subcategory = tree.get(subcategory_id)
    if subcategory_id is not None:
        if subcategory is None:
            result.add(
                ErrorCode.NOT_FOUND, subcategory_id, f"Sub-category {subcategory_id} not found"
            )
        elif subcategory.level != CategoryLevel.SECONDARY.value:
            result.add(
                ErrorCode.INVALID_LEVEL,
                subcategory_id,
                f"Category '{subcategory.name}' is not a level-2 category",
            )
        else:
            if category_id is not None and subcategory.parent_id != category_id:
                result.add(
                    ErrorCode.INVALID_HIERARCHY,
                    subcategory_id,
                    f"Sub-category '{subcategory.name}' does not belong to category {category_id}",
                )
            if require_active and not subcategory.is_active:
                result.add(
                    ErrorCode.INACTIVE_CATEGORY,
                    subcategory_id,
                    f"Sub-category '{subcategory.name}' is inactive and accepts no new audio",
                )

    return result
