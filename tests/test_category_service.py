"""
Tests for CategoryService mutations and reads.

Tests cover:
- create(): level derivation, duplicate names, missing/deep parents
- update(): patch semantics, re-parenting, cycle rejection
- delete(): default / cascade / force modes
- batch(): all-or-nothing activate/deactivate/delete
- list_categories(): tree and flat listings, cache invalidation on write
- create() logging and audio counts after a sub-category moves
"""

import logging

import pytest

from audio_categories.models.enums import BatchOperation, ErrorCode
from audio_categories.services import audio_service
from audio_categories.services.category_diagnostic_service import run_diagnostic
from audio_categories.services.category_service import load_query
from audio_categories.services.dto import CreateCategoryRequest, QuerySpec, UpdateCategoryRequest
from audio_categories.services.exceptions import (
    BatchRejectedError,
    ConflictError,
    CycleError,
    NotFoundError,
    ValidationError,
)


def _create(service, name, parent_id=None, **kwargs):
    return service.create(CreateCategoryRequest(name=name, parent_id=parent_id, **kwargs))


@pytest.fixture
def cardiology(service):
    """Cardiology with one active child, Arrhythmia."""
    parent = _create(service, "Cardiology")
    child = _create(service, "Arrhythmia", parent_id=parent.id)
    return parent, child


class TestCreate:
    """Tests for create()."""

    def test_root_and_child_levels(self, service):
        """Test that level is derived from the presence of a parent."""
        parent = _create(service, "Cardiology")
        child = _create(service, "Arrhythmia", parent_id=parent.id)

        assert parent.level == 1
        assert parent.parent_id is None
        assert child.level == 2
        assert child.parent_id == parent.id

    def test_tree_listing_after_create(self, service, cardiology):
        """Test that the tree has one root with one child."""
        parent, child = cardiology
        nodes = service.list_categories(format="tree")

        assert len(nodes) == 1
        assert nodes[0].id == parent.id
        assert [c.id for c in nodes[0].children] == [child.id]

    def test_duplicate_root_name_rejected(self, service):
        """Test that a second root named Surgery fails validation."""
        _create(service, "Surgery")
        with pytest.raises(ValidationError) as exc_info:
            _create(service, "Surgery")

        assert exc_info.value.code == ErrorCode.DUPLICATE_NAME
        assert exc_info.value.codes == [ErrorCode.DUPLICATE_NAME]
        assert len(service.list_categories(format="flat")) == 1

    def test_duplicate_name_is_case_insensitive(self, service):
        _create(service, "Surgery")
        with pytest.raises(ValidationError):
            _create(service, "  SURGERY ")

    def test_same_name_under_different_parents(self, service):
        a = _create(service, "A")
        b = _create(service, "B")
        _create(service, "General", parent_id=a.id)
        record = _create(service, "General", parent_id=b.id)
        assert record.level == 2

    def test_missing_parent(self, service):
        with pytest.raises(NotFoundError) as exc_info:
            _create(service, "Ghost", parent_id=999)
        assert exc_info.value.code == ErrorCode.PARENT_NOT_FOUND

    def test_level_two_parent_rejected(self, service, cardiology):
        _, child = cardiology
        with pytest.raises(ValidationError) as exc_info:
            _create(service, "Too Deep", parent_id=child.id)
        assert exc_info.value.code == ErrorCode.MAX_DEPTH_EXCEEDED

    def test_empty_name_rejected(self, service):
        with pytest.raises(ValidationError) as exc_info:
            _create(service, "   ")
        assert exc_info.value.code == ErrorCode.EMPTY_NAME

    def test_name_is_trimmed_and_defaults_applied(self, service):
        record = _create(service, "  Neurology  ")
        assert record.name == "Neurology"
        assert record.color == "#6b7280"
        assert record.is_active is True

    def test_create_is_logged_at_info(self, service, caplog):
        caplog.set_level(logging.INFO, logger="audio_categories.services")
        record = _create(service, "Cardiology")

        messages = [r.getMessage() for r in caplog.records if r.levelno == logging.INFO]
        assert any(m.startswith("create_category: success") for m in messages)
        assert any(f"category_level={record.level}" in m for m in messages)

    def test_error_is_structured(self, service):
        _create(service, "Surgery")
        with pytest.raises(ValidationError) as exc_info:
            _create(service, "Surgery")
        data = exc_info.value.to_dict()
        assert data["code"] == "DUPLICATE_NAME"
        assert "Surgery" in data["message"]


class TestUpdate:
    """Tests for update()."""

    def test_absent_fields_unchanged(self, service):
        record = _create(service, "Cardiology", description="Heart", sort_order=3)
        updated = service.update(record.id, UpdateCategoryRequest(name="Cardio"))

        assert updated.name == "Cardio"
        assert updated.description == "Heart"
        assert updated.sort_order == 3

    def test_explicit_none_clears_field(self, service):
        record = _create(service, "Cardiology", description="Heart")
        updated = service.update(record.id, UpdateCategoryRequest(description=None))
        assert updated.description is None

    def test_removing_parent_promotes_to_level_one(self, service, cardiology):
        _, child = cardiology
        updated = service.update(child.id, UpdateCategoryRequest(parent_id=None))
        assert updated.level == 1
        assert updated.parent_id is None

    def test_adding_parent_demotes_to_level_two(self, service):
        a = _create(service, "A")
        b = _create(service, "B")
        updated = service.update(b.id, UpdateCategoryRequest(parent_id=a.id))
        assert updated.level == 2
        assert updated.parent_id == a.id

    def test_cycle_rejected(self, service, cardiology):
        """Test that moving a category under its own child raises CycleError."""
        parent, child = cardiology
        with pytest.raises(CycleError) as exc_info:
            service.update(parent.id, UpdateCategoryRequest(parent_id=child.id))

        assert exc_info.value.code == ErrorCode.CIRCULAR_REFERENCE
        assert service.get_category(parent.id).parent_id is None

    def test_self_parent_rejected(self, service):
        record = _create(service, "A")
        with pytest.raises(CycleError):
            service.update(record.id, UpdateCategoryRequest(parent_id=record.id))

    def test_parent_with_children_cannot_be_nested(self, service, cardiology):
        parent, _ = cardiology
        other = _create(service, "Surgery")
        with pytest.raises(ValidationError) as exc_info:
            service.update(parent.id, UpdateCategoryRequest(parent_id=other.id))
        assert exc_info.value.code == ErrorCode.MAX_DEPTH_EXCEEDED

    def test_rename_to_sibling_name_rejected(self, service):
        _create(service, "A")
        b = _create(service, "B")
        with pytest.raises(ValidationError):
            service.update(b.id, UpdateCategoryRequest(name="a"))

    def test_not_found(self, service):
        with pytest.raises(NotFoundError) as exc_info:
            service.update(404, UpdateCategoryRequest(name="x"))
        assert exc_info.value.category_id == 404

    def test_reorder_and_set_active(self, service):
        record = _create(service, "A")
        assert service.reorder(record.id, 9).sort_order == 9
        assert service.set_active(record.id, False).is_active is False


class TestDelete:
    """Tests for delete() modes."""

    def test_default_rejects_active_child(self, service, cardiology):
        parent, child = cardiology
        with pytest.raises(ConflictError) as exc_info:
            service.delete(parent.id)

        err = exc_info.value
        assert err.code == ErrorCode.DELETE_RESTRICTED
        assert err.active_children == 1
        assert err.category_id == parent.id
        assert "use cascade=true" in str(err)
        assert service.get_category(child.id).parent_id == parent.id

    def test_cascade_removes_child_and_parent(self, service, cardiology):
        parent, child = cardiology
        deleted = service.delete(parent.id, cascade=True)

        assert deleted == [child.id, parent.id]
        for cid in (parent.id, child.id):
            with pytest.raises(NotFoundError):
                service.get_category(cid)

    def test_force_leaves_orphan(self, service, cardiology):
        """Test that force deletes the parent only and diagnostics find the orphan."""
        parent, child = cardiology
        deleted = service.delete(parent.id, force=True)

        assert deleted == [parent.id]
        assert service.get_category(child.id).parent_id == parent.id
        report = run_diagnostic()
        assert report.orphaned_categories == [child.id]

    def test_audio_blocks_default_and_cascade(self, service, cardiology):
        parent, child = cardiology
        audio_service.create_audio("Beat", category_id=parent.id, subcategory_id=child.id)

        with pytest.raises(ConflictError) as exc_info:
            service.delete(parent.id, cascade=True)
        assert exc_info.value.audio_count == 1
        assert "use force=true" in str(exc_info.value)

        with pytest.raises(ConflictError):
            service.delete(child.id)

    def test_force_with_audio_keeps_audio_row(self, service, cardiology):
        parent, _ = cardiology
        audio = audio_service.create_audio("Beat", category_id=parent.id)

        service.delete(parent.id, force=True, cascade=True)
        assert audio_service.get_audio(audio.audio_id).category_id == parent.id

    def test_inactive_child_without_audio_goes_with_parent(self, service):
        parent = _create(service, "Old")
        child = _create(service, "Older", parent_id=parent.id, is_active=False)

        deleted = service.delete(parent.id)
        assert deleted == [child.id, parent.id]

    def test_leaf_delete(self, service, cardiology):
        _, child = cardiology
        assert service.delete(child.id) == [child.id]

    def test_not_found(self, service):
        with pytest.raises(NotFoundError):
            service.delete(12345)


class TestBatch:
    """Tests for batch()."""

    def test_deactivate_all(self, service):
        a = _create(service, "A")
        b = _create(service, "B")
        result = service.batch("deactivate", [a.id, b.id])

        assert result.operation == BatchOperation.DEACTIVATE
        assert result.succeeded == [a.id, b.id]
        assert result.success
        assert service.list_categories(format="flat") == ()

    def test_one_bad_id_rejects_whole_batch(self, service):
        """Test that nothing is applied when any id fails without force."""
        a = _create(service, "A")
        with pytest.raises(BatchRejectedError) as exc_info:
            service.batch(BatchOperation.DEACTIVATE, [a.id, 999])

        assert [f.category_id for f in exc_info.value.failures] == [999]
        assert service.get_category(a.id).is_active is True

    def test_force_applies_valid_ids(self, service):
        a = _create(service, "A")
        result = service.batch(BatchOperation.DEACTIVATE, [a.id, 999], force=True)

        assert result.succeeded == [a.id]
        assert [f.code for f in result.failed] == [ErrorCode.NOT_FOUND]
        assert service.get_category(a.id).is_active is False

    def test_activate(self, service):
        a = _create(service, "A", is_active=False)
        service.batch(BatchOperation.ACTIVATE, [a.id])
        assert service.get_category(a.id).is_active is True

    def test_delete_rejected_when_any_conflicts(self, service, cardiology):
        parent, _ = cardiology
        lone = _create(service, "Lone")

        with pytest.raises(BatchRejectedError):
            service.batch(BatchOperation.DELETE, [lone.id, parent.id])
        assert service.get_category(lone.id).name == "Lone"

    def test_delete_parent_and_child_together(self, service, cardiology):
        """Test that a child listed in the same batch does not block its parent."""
        parent, child = cardiology
        result = service.batch(BatchOperation.DELETE, [parent.id, child.id])

        assert result.succeeded == [parent.id, child.id]
        assert service.list_categories(format="flat", include_inactive=True) == ()

    def test_delete_with_cascade(self, service, cardiology):
        parent, child = cardiology
        service.batch(BatchOperation.DELETE, [parent.id], cascade=True)
        with pytest.raises(NotFoundError):
            service.get_category(child.id)

    def test_unknown_operation(self, service):
        with pytest.raises(ValueError):
            service.batch("explode", [1])


class TestReads:
    """Tests for list_categories() and cache coherence."""

    def test_flat_by_parent(self, service, cardiology):
        parent, child = cardiology
        rows = service.list_categories(format="flat", parent_id=parent.id)
        assert [r.id for r in rows] == [child.id]

    def test_flat_level_filter(self, service, cardiology):
        parent, _ = cardiology
        rows = service.list_categories(format="flat", level=1)
        assert [r.id for r in rows] == [parent.id]

    def test_counts(self, service, cardiology):
        parent, child = cardiology
        audio_service.create_audio("Beat", category_id=parent.id, subcategory_id=child.id)
        nodes = service.list_categories(format="tree", include_count=True)
        assert nodes[0].audio_count == 1
        assert service.audio_counts()[child.id] == 1

    def test_invalid_format(self, service):
        with pytest.raises(ValueError):
            service.list_categories(format="graph")

    def test_write_invalidates_cached_listing(self, service, cardiology):
        """Test that a read after a successful write never sees the old value."""
        parent, _ = cardiology
        before = service.list_categories(format="tree")
        assert len(before[0].children) == 1

        _create(service, "Valves", parent_id=parent.id)
        after = service.list_categories(format="tree")
        assert len(after[0].children) == 2

    def test_repeated_read_is_cache_hit(self, service, cardiology):
        service.list_categories(format="flat")
        hits = service.cache_stats().hits
        service.list_categories(format="flat")
        assert service.cache_stats().hits == hits + 1

    def test_warm_cache_serves_listing(self, service, cardiology):
        service.warm_cache()
        hits = service.cache_stats().hits
        service.list_categories(format="tree", include_count=True)
        assert service.cache_stats().hits == hits + 1

    def test_benchmark_against_store(self, service, cardiology):
        """Test that warm reads beat cold reads for every default query."""
        result = service.benchmark_cache()

        assert len(result.entries) == 6
        assert all(e.cold_ms > e.warm_ms for e in result.entries)
        assert 0 < result.cache_efficiency < 1

    def test_rejected_write_keeps_cache(self, service, cardiology):
        """Test that a failed mutation does not invalidate anything."""
        service.list_categories(format="flat")
        size = service.cache_stats().size
        with pytest.raises(ValidationError):
            _create(service, "Cardiology")
        assert service.cache_stats().size == size

    def _root_counts(self, service):
        spec = QuerySpec.by_parent(None, include_count=True)
        cached = {r.id: r.audio_count for r in service.query(spec)}
        fresh = {r.id: r.audio_count for r in load_query(spec)}
        assert cached == fresh
        return cached

    def test_moving_child_refreshes_root_counts(self, service, cardiology):
        """Test that root counts follow a sub-category moved to another root."""
        parent, child = cardiology
        surgery = _create(service, "Surgery")
        audio_service.create_audio("Beat", subcategory_id=child.id)
        service.cache.invalidate()

        assert self._root_counts(service) == {parent.id: 1, surgery.id: 0}

        service.update(child.id, UpdateCategoryRequest(parent_id=surgery.id))

        assert self._root_counts(service) == {parent.id: 0, surgery.id: 1}

    def test_deleting_child_refreshes_root_counts(self, service, cardiology):
        parent, child = cardiology
        audio_service.create_audio("Beat", subcategory_id=child.id)
        service.cache.invalidate()

        assert self._root_counts(service) == {parent.id: 1}

        service.delete(child.id, force=True)

        assert self._root_counts(service) == {parent.id: 0}
