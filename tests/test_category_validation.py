"""
Tests for category structural validation.

Tests cover:
- validate_unique_sibling_name() / validate_no_cycle() / trim_name()
- validate_category(): every violated rule is reported
- validate_snapshot(): whole-snapshot checks
- validate_association(): audio pairing and inactive categories
"""

from dataclasses import dataclass
from typing import Optional

import pytest

from audio_categories.models.enums import ErrorCode
from audio_categories.services import category_validation
from audio_categories.services.category_tree import CategoryTree
from audio_categories.services.category_validation import (
    validate_association,
    validate_category,
    validate_snapshot,
)


@dataclass
class MockEntity:
    """Mock sibling for name validation."""

    id: int
    name: Optional[str] = None


@pytest.fixture
def tree(make_record):
    return CategoryTree(
        [
            make_record(1, "Cardiology"),
            make_record(2, "Arrhythmia", parent_id=1),
            make_record(3, "Surgery"),
            make_record(4, "Archived", is_active=False),
            make_record(5, "Old Topic", parent_id=3, is_active=False),
        ]
    )


class TestHelpers:
    """Tests for the small validation helpers."""

    def test_unique_name(self):
        siblings = [MockEntity(1, "Apple"), MockEntity(2, "Banana")]
        assert category_validation.validate_unique_sibling_name(siblings, "Cherry") is True

    def test_duplicate_name_case_insensitive(self):
        siblings = [MockEntity(1, "Apple")]
        assert category_validation.validate_unique_sibling_name(siblings, " APPLE ") is False

    def test_excludes_self_on_rename(self):
        siblings = [MockEntity(1, "Apple")]
        assert (
            category_validation.validate_unique_sibling_name(siblings, "apple", exclude_id=1)
            is True
        )

    def test_no_cycle_for_new_category(self, tree):
        assert category_validation.validate_no_cycle(tree, None, 1) is True

    def test_self_parent_is_cycle(self, tree):
        assert category_validation.validate_no_cycle(tree, 1, 1) is False

    def test_descendant_parent_is_cycle(self, tree):
        assert category_validation.validate_no_cycle(tree, 1, 2) is False

    def test_name_not_empty(self):
        assert category_validation.validate_name_not_empty("  ") is False
        assert category_validation.validate_name_not_empty("x") is True

    def test_trim_name(self):
        assert category_validation.trim_name("  Cardiology ") == "Cardiology"
        assert category_validation.trim_name(None) == ""

    def test_expected_level(self):
        assert category_validation.expected_level(None) == 1
        assert category_validation.expected_level(7) == 2


class TestValidateCategory:
    """Tests for validate_category()."""

    def test_valid_root(self, tree, make_record):
        result = validate_category(make_record(None, "Neurology"), tree)
        assert result.is_valid
        assert result.violations == []

    def test_valid_child(self, tree, make_record):
        result = validate_category(make_record(None, "Valves", parent_id=1), tree)
        assert result.is_valid

    def test_duplicate_root_name(self, tree, make_record):
        result = validate_category(make_record(None, "surgery"), tree)
        assert result.codes == [ErrorCode.DUPLICATE_NAME]

    def test_same_name_under_different_parent_is_allowed(self, tree, make_record):
        result = validate_category(make_record(None, "Arrhythmia", parent_id=3), tree)
        assert result.is_valid

    def test_inactive_sibling_still_blocks_name(self, tree, make_record):
        result = validate_category(make_record(None, "Archived"), tree)
        assert result.has(ErrorCode.DUPLICATE_NAME)

    def test_rename_to_own_name_is_allowed(self, tree, make_record):
        result = validate_category(make_record(1, "CARDIOLOGY"), tree)
        assert result.is_valid

    def test_empty_name(self, tree, make_record):
        result = validate_category(make_record(None, "   "), tree)
        assert result.codes == [ErrorCode.EMPTY_NAME]

    def test_missing_parent(self, tree, make_record):
        result = validate_category(make_record(None, "Ghost", parent_id=42), tree)
        assert result.codes == [ErrorCode.PARENT_NOT_FOUND]

    def test_parent_must_be_level_one(self, tree, make_record):
        """Test that a level-2 parent is rejected (depth is capped at 2)."""
        result = validate_category(make_record(None, "Too Deep", parent_id=2), tree)
        assert result.codes == [ErrorCode.MAX_DEPTH_EXCEEDED]

    def test_level_must_match_parent(self, tree, make_record):
        result = validate_category(make_record(None, "Odd", parent_id=1, level=1), tree)
        assert ErrorCode.INVALID_LEVEL in result.codes

    def test_level_two_without_parent(self, tree, make_record):
        result = validate_category(make_record(None, "Odd", level=2), tree)
        assert result.codes == [ErrorCode.INVALID_LEVEL]

    def test_level_out_of_range(self, tree, make_record):
        result = validate_category(make_record(None, "Odd", level=3), tree)
        assert result.codes == [ErrorCode.INVALID_LEVEL]

    def test_cycle_when_parent_is_own_child(self, tree, make_record):
        """Test that moving a category under its own child is a circular reference."""
        result = validate_category(make_record(1, "Cardiology", parent_id=2), tree)
        assert ErrorCode.CIRCULAR_REFERENCE in result.codes

    def test_category_with_children_cannot_move_under_parent(self, tree, make_record):
        result = validate_category(make_record(1, "Cardiology", parent_id=3), tree)
        assert result.codes == [ErrorCode.MAX_DEPTH_EXCEEDED]

    def test_reports_every_violation(self, tree, make_record):
        """Test that several broken rules are all reported, not just the first."""
        result = validate_category(make_record(None, "Arrhythmia", parent_id=1, level=1), tree)
        assert set(result.codes) == {ErrorCode.INVALID_LEVEL, ErrorCode.DUPLICATE_NAME}

    def test_deterministic(self, tree, make_record):
        candidate = make_record(None, "surgery", level=2)
        assert validate_category(candidate, tree) == validate_category(candidate, tree)


class TestValidateSnapshot:
    """Tests for validate_snapshot()."""

    def test_clean_snapshot(self, tree):
        assert validate_snapshot(tree).is_valid

    def test_reports_orphan_and_level_problems(self, make_record):
        tree = CategoryTree(
            [
                make_record(1, "Root"),
                make_record(2, "Orphan", parent_id=99),
                make_record(3, "Misplaced", level=2),
            ]
        )
        result = validate_snapshot(tree)
        assert (ErrorCode.PARENT_NOT_FOUND, 2) in [(v.code, v.category_id) for v in result.violations]
        assert (ErrorCode.INVALID_LEVEL, 3) in [(v.code, v.category_id) for v in result.violations]

    def test_reports_duplicate_siblings(self, make_record):
        tree = CategoryTree([make_record(1, "Same"), make_record(2, "same")])
        result = validate_snapshot(tree)
        assert {v.category_id for v in result.violations} == {1, 2}
        assert set(result.codes) == {ErrorCode.DUPLICATE_NAME}


class TestValidateAssociation:
    """Tests for validate_association()."""

    def test_valid_pair(self, tree):
        assert validate_association(tree, 1, 2).is_valid

    def test_category_only(self, tree):
        assert validate_association(tree, 1, None).is_valid

    def test_clearing_is_valid(self, tree):
        assert validate_association(tree, None, None).is_valid

    def test_subcategory_without_category(self, tree):
        result = validate_association(tree, None, 2)
        assert ErrorCode.INVALID_HIERARCHY in result.codes

    def test_subcategory_of_other_parent(self, tree):
        result = validate_association(tree, 3, 2)
        assert result.codes == [ErrorCode.INVALID_HIERARCHY]

    def test_category_must_be_level_one(self, tree):
        result = validate_association(tree, 2, None)
        assert result.codes == [ErrorCode.INVALID_LEVEL]

    def test_missing_category(self, tree):
        result = validate_association(tree, 42, None)
        assert result.codes == [ErrorCode.NOT_FOUND]

    def test_inactive_category_rejected(self, tree):
        result = validate_association(tree, 4, None)
        assert result.codes == [ErrorCode.INACTIVE_CATEGORY]

    def test_inactive_subcategory_rejected(self, tree):
        result = validate_association(tree, 3, 5)
        assert result.codes == [ErrorCode.INACTIVE_CATEGORY]

    def test_inactive_allowed_when_not_required(self, tree):
        assert validate_association(tree, 3, 5, require_active=False).is_valid
