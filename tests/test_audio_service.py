"""
Tests for audio category assignment.

Tests cover:
- assign_audio_category(): valid pairs sync the subject
- invalid pairings and inactive categories are rejected
- re-saving a reference to an already inactive category is allowed
- clearing the pair falls back to the uncategorized label
"""

import pytest

from audio_categories.models.enums import ErrorCode
from audio_categories.services import audio_service
from audio_categories.services.dto import CreateCategoryRequest, QuerySpec
from audio_categories.services.exceptions import NotFoundError, ValidationError


@pytest.fixture
def categories(service):
    cardiology = service.create(CreateCategoryRequest(name="Cardiology"))
    arrhythmia = service.create(CreateCategoryRequest(name="Arrhythmia", parent_id=cardiology.id))
    surgery = service.create(CreateCategoryRequest(name="Surgery"))
    return cardiology, arrhythmia, surgery


@pytest.fixture
def audio(test_db):
    return audio_service.create_audio("Heart sounds", subject="heart")


class TestAssignAudioCategory:
    """Tests for assign_audio_category()."""

    def test_assign_pair_syncs_subject(self, categories, audio):
        cardiology, arrhythmia, _ = categories
        updated = audio_service.assign_audio_category(
            audio.audio_id, cardiology.id, arrhythmia.id
        )

        assert (updated.category_id, updated.subcategory_id) == (cardiology.id, arrhythmia.id)
        assert updated.subject == "Arrhythmia"

    def test_assign_category_only(self, categories, audio):
        cardiology, _, _ = categories
        updated = audio_service.assign_audio_category(audio.audio_id, cardiology.id)
        assert updated.subject == "Cardiology"

    def test_clear_uses_uncategorized_label(self, categories, audio):
        cardiology, _, _ = categories
        audio_service.assign_audio_category(audio.audio_id, cardiology.id)
        updated = audio_service.assign_audio_category(audio.audio_id, None)
        assert updated.category_id is None
        assert updated.subject == "Uncategorized"

    def test_subcategory_of_other_category_rejected(self, categories, audio):
        _, arrhythmia, surgery = categories
        with pytest.raises(ValidationError) as exc_info:
            audio_service.assign_audio_category(audio.audio_id, surgery.id, arrhythmia.id)

        assert exc_info.value.code == ErrorCode.INVALID_HIERARCHY
        assert audio_service.get_audio(audio.audio_id).category_id is None

    def test_level_two_as_category_rejected(self, categories, audio):
        _, arrhythmia, _ = categories
        with pytest.raises(ValidationError) as exc_info:
            audio_service.assign_audio_category(audio.audio_id, arrhythmia.id)
        assert exc_info.value.code == ErrorCode.INVALID_LEVEL

    def test_inactive_category_rejected_for_new_association(self, service, categories, audio):
        _, _, surgery = categories
        service.set_active(surgery.id, False)

        with pytest.raises(ValidationError) as exc_info:
            audio_service.assign_audio_category(audio.audio_id, surgery.id)
        assert exc_info.value.code == ErrorCode.INACTIVE_CATEGORY

    def test_existing_inactive_reference_can_be_kept(self, service, categories, audio):
        """Test that deactivation does not lock records already pointing at the category."""
        cardiology, arrhythmia, _ = categories
        audio_service.assign_audio_category(audio.audio_id, cardiology.id)
        service.set_active(cardiology.id, False)
        service.set_active(arrhythmia.id, False)

        updated = audio_service.assign_audio_category(audio.audio_id, cardiology.id)
        assert updated.category_id == cardiology.id

        with pytest.raises(ValidationError) as exc_info:
            audio_service.assign_audio_category(audio.audio_id, cardiology.id, arrhythmia.id)
        assert exc_info.value.codes == [ErrorCode.INACTIVE_CATEGORY]

    def test_missing_audio(self, categories):
        cardiology, _, _ = categories
        with pytest.raises(NotFoundError) as exc_info:
            audio_service.assign_audio_category(12345, cardiology.id)
        assert exc_info.value.entity == "Audio"

    def test_missing_category(self, test_db, audio):
        with pytest.raises(ValidationError) as exc_info:
            audio_service.assign_audio_category(audio.audio_id, 999)
        assert exc_info.value.code == ErrorCode.NOT_FOUND

    def test_assignment_invalidates_cache(self, categories, audio, cache):
        cardiology, _, _ = categories
        cache.get_or_compute(QuerySpec.with_counts(), lambda: {})

        audio_service.assign_audio_category(audio.audio_id, cardiology.id, cache=cache)
        assert cache.size() == 0


class TestAudioRecords:
    """Tests for create_audio() / list_associations()."""

    def test_create_is_unchecked(self, test_db):
        """Test that imported records may carry any reference as-is."""
        created = audio_service.create_audio("Imported", "x", category_id=5, subcategory_id=6)
        assert (created.category_id, created.subcategory_id) == (5, 6)

    def test_list_in_id_order(self, test_db):
        first = audio_service.create_audio("a")
        second = audio_service.create_audio("b")
        assert [a.audio_id for a in audio_service.list_associations()] == [
            first.audio_id,
            second.audio_id,
        ]
