"""
Tests for the highlight model and page projection (highlight_model.py)
"""

import asyncio

import pytest

from highlight_model import CREATED, DELETED, HighlightModel, project_highlights
from highlight_store import (
    AyahRef, PersistenceFailure, SingleWordHighlight, WholeAyahHighlight, parse_timestamp,
)
from conftest import FakeHighlightStore, ayah_record, make_ayahs, word_record

PAGE_ONE = make_ayahs(1, 7)
COMPLETED_AT = parse_timestamp("2026-01-01T10:00:00Z")


def _model(records=None):
    model = HighlightModel(FakeHighlightStore(records), "student-1")
    asyncio.run(model.refresh())
    return model


class TestProjection:
    def test_single_word(self):
        highlight = SingleWordHighlight("a", 1, 3, 2, "tajweed", 1)
        projection = project_highlights(1, [highlight], PAGE_ONE)
        assert len(projection) == 1
        entry = projection.entries[0]
        assert (entry.ayah_index, entry.word_index, entry.category) == (2, 2, "tajweed")
        assert entry.highlight_ids == ("a",)
        assert not entry.completed

    def test_whole_ayah_expands_to_every_word(self):
        ayahs = make_ayahs(1, 7, words=6)
        projection = project_highlights(1, [WholeAyahHighlight("a", 1, 5, "recap", 1)], ayahs)
        assert [(e.ayah_index, e.word_index) for e in projection] == [(4, w) for w in range(6)]
        assert {e.category for e in projection} == {"recap"}

    def test_several_categories_on_one_word(self):
        highlights = [SingleWordHighlight("a", 1, 2, 0, "haraka", 1),
                      SingleWordHighlight("b", 1, 2, 0, "tajweed", 1)]
        projection = project_highlights(1, highlights, PAGE_ONE)
        assert projection.categories_at(1, 0) == ["tajweed", "haraka"]
        assert projection.categories_at(1, 1) == []

    def test_whole_ayah_and_word_of_same_category_union(self):
        highlights = [WholeAyahHighlight("a", 1, 2, "homework", 1),
                      SingleWordHighlight("b", 1, 2, 1, "homework", 1, completed_at=COMPLETED_AT)]
        projection = project_highlights(1, highlights, PAGE_ONE)
        assert len(projection) == 4
        shared = projection.entries_at(1, 1)
        assert len(shared) == 1
        assert shared[0].highlight_ids == ("a", "b")
        assert shared[0].completed
        assert not projection.entries_at(1, 0)[0].completed

    def test_word_index_past_ayah_is_dropped(self, caplog):
        highlight = SingleWordHighlight("a", 1, 3, 9, "letter", 1)
        projection = project_highlights(1, [highlight], PAGE_ONE)
        assert len(projection) == 0
        assert "Dropping highlight a" in caplog.text

    def test_ayah_not_on_page_is_ignored(self):
        projection = project_highlights(1, [SingleWordHighlight("a", 2, 3, 0, "letter", 1)], PAGE_ONE)
        assert len(projection) == 0

    def test_multi_surah_page_indexes(self):
        ayahs = make_ayahs(112, 4) + make_ayahs(113, 5) + make_ayahs(114, 6)
        projection = project_highlights(604, [SingleWordHighlight("a", 113, 1, 0, "recap", 604)], ayahs)
        assert projection.entries[0].ayah_index == 4


class TestScenarios:
    def test_click_word_creates_highlight(self):
        model = _model()
        result = asyncio.run(model.toggle_word(AyahRef(1, 3, 1), 2, "tajweed"))
        assert result.action == CREATED
        assert len(model.highlights) == 1
        payload = model.store.payloads[0]
        assert payload == {"surah": 1, "ayah_start": 3, "ayah_end": 3, "word_start": 2, "word_end": 2,
                           "color": "orange", "category": "tajweed", "page_number": 1}
        highlight = model.highlights[0]
        assert isinstance(highlight, SingleWordHighlight)
        assert highlight.completed_at is None
        assert len(model.project_for_page(1, PAGE_ONE)) == 1

    def test_clicking_again_deletes(self):
        model = _model()
        asyncio.run(model.toggle_word(AyahRef(1, 3, 1), 2, "tajweed"))
        result = asyncio.run(model.toggle_word(AyahRef(1, 3, 1), 2, "tajweed"))
        assert result.action == DELETED
        assert model.highlights == []
        assert len(model.project_for_page(1, PAGE_ONE)) == 0

    def test_whole_ayah_recap(self):
        model = _model()
        result = asyncio.run(model.toggle_whole_ayah(AyahRef(1, 5, 1), "recap"))
        assert result.action == CREATED
        payload = model.store.payloads[0]
        assert "word_start" not in payload and "word_end" not in payload
        highlight = model.highlights[0]
        assert highlight.word_start is None and highlight.word_end is None
        projection = model.project_for_page(1, PAGE_ONE)
        assert [(e.ayah_index, e.word_index, e.category) for e in projection] == [
            (4, w, "recap") for w in range(4)]

    def test_toggle_twice_restores_projection(self):
        model = _model([word_record("x", 1, 2, 0, "letter", 1)])
        before = model.project_for_page(1, PAGE_ONE)
        first = asyncio.run(model.toggle_word(AyahRef(1, 2, 1), 1, "letter"))
        assert model.project_for_page(1, PAGE_ONE) != before
        second = asyncio.run(model.toggle_word(AyahRef(1, 2, 1), 1, "letter"))
        assert (first.action, second.action) == (CREATED, DELETED)
        assert model.project_for_page(1, PAGE_ONE) == before

    def test_word_and_whole_ayah_toggles_are_independent(self):
        model = _model([word_record("x", 1, 5, 0, "recap", 1)])
        asyncio.run(model.toggle_whole_ayah(AyahRef(1, 5, 1), "recap"))
        assert len(model.highlights) == 2
        asyncio.run(model.toggle_whole_ayah(AyahRef(1, 5, 1), "recap"))
        assert [h.id for h in model.highlights] == ["x"]


class SlowHighlightStore(FakeHighlightStore):
    """Yields to the event loop before every create and delete."""
    async def create_highlight(self, student_id, payload):
        await asyncio.sleep(0)
        return await super().create_highlight(student_id, payload)

    async def delete_highlight(self, student_id, highlight_id):
        await asyncio.sleep(0)
        return await super().delete_highlight(student_id, highlight_id)


class TestOverlappingToggles:
    def test_same_word_toggles_run_in_order(self):
        store = SlowHighlightStore()
        model = HighlightModel(store, "s")

        async def double_click():
            ref = AyahRef(1, 3, 1)
            return await asyncio.gather(model.toggle_word(ref, 2, "tajweed"),
                                        model.toggle_word(ref, 2, "tajweed"))

        first, second = asyncio.run(double_click())
        assert (first.action, second.action) == (CREATED, DELETED)
        assert model.highlights == []
        assert store.calls == ["create", "delete"]
        assert model._toggle_locks == {}

    def test_different_words_do_not_wait_on_each_other(self):
        model = HighlightModel(SlowHighlightStore(), "s")

        async def two_words():
            ref = AyahRef(1, 3, 1)
            return await asyncio.gather(model.toggle_word(ref, 0, "letter"),
                                        model.toggle_word(ref, 1, "letter"))

        results = asyncio.run(two_words())
        assert [r.action for r in results] == [CREATED, CREATED]
        assert sorted(h.word_index for h in model.highlights) == [0, 1]

    def test_same_whole_ayah_toggles_run_in_order(self):
        store = SlowHighlightStore()
        model = HighlightModel(store, "s")

        async def double_click():
            ref = AyahRef(1, 5, 1)
            return await asyncio.gather(model.toggle_whole_ayah(ref, "recap"),
                                        model.toggle_whole_ayah(ref, "recap"))

        first, second = asyncio.run(double_click())
        assert (first.action, second.action) == (CREATED, DELETED)
        assert model.highlights == []


class TestValidation:
    def test_whole_ayah_rejects_word_only_categories(self, store):
        model = HighlightModel(store, "s")
        with pytest.raises(ValueError):
            asyncio.run(model.toggle_whole_ayah(AyahRef(1, 1, 1), "haraka"))
        assert store.calls == []

    def test_unknown_category(self, store):
        model = HighlightModel(store, "s")
        with pytest.raises(ValueError):
            asyncio.run(model.toggle_word(AyahRef(1, 1, 1), 0, "grammar"))
        assert store.calls == []


class TestFailureSemantics:
    def test_failed_create_leaves_state_untouched(self):
        model = _model()
        model.store.fail_on.add("create")
        notified = []
        model.add_listener(notified.append)
        with pytest.raises(PersistenceFailure):
            asyncio.run(model.toggle_word(AyahRef(1, 3, 1), 2, "tajweed"))
        assert model.highlights == []
        assert notified == []

    def test_failed_delete_keeps_highlight(self):
        model = _model([word_record("x", 1, 3, 2, "tajweed", 1)])
        model.store.fail_on.add("delete")
        before = model.project_for_page(1, PAGE_ONE)
        with pytest.raises(PersistenceFailure):
            asyncio.run(model.toggle_word(AyahRef(1, 3, 1), 2, "tajweed"))
        assert [h.id for h in model.highlights] == ["x"]
        assert model.project_for_page(1, PAGE_ONE) == before

    def test_failed_refresh(self, store):
        store.fail_on.add("list")
        model = HighlightModel(store, "s")
        with pytest.raises(PersistenceFailure):
            asyncio.run(model.refresh())

    def test_unexpected_store_error_is_wrapped(self):
        class BrokenStore(FakeHighlightStore):
            async def create_highlight(self, student_id, payload):
                raise ConnectionError("reset")

        model = HighlightModel(BrokenStore(), "s")
        with pytest.raises(PersistenceFailure):
            asyncio.run(model.toggle_word(AyahRef(1, 1, 1), 0, "recap"))
        assert model.highlights == []


class TestCompletion:
    def test_complete_category_keeps_category(self):
        model = _model([word_record("a", 1, 3, 0, "tajweed", 1),
                        word_record("b", 1, 4, 0, "tajweed", 1),
                        word_record("c", 1, 4, 1, "haraka", 1)])
        completed = asyncio.run(model.complete_category("tajweed"))
        assert sorted(h.id for h in completed) == ["a", "b"]
        assert all(h.category == "tajweed" and h.is_completed for h in completed)
        assert model.count_by_category()["tajweed"] == 2
        assert model.count_by_category(include_completed=False)["tajweed"] == 0
        assert model.count_by_category(include_completed=False)["haraka"] == 1
        assert model.completed_count() == 2

    def test_complete_only_one_page(self):
        model = _model([word_record("a", 1, 3, 0, "recap", 1),
                        word_record("b", 2, 1, 0, "recap", 2)])
        asyncio.run(model.complete_category("recap", page_number=2))
        assert {h.id: h.is_completed for h in model.highlights} == {"a": False, "b": True}

    def test_already_completed_are_skipped(self):
        model = _model([word_record("a", 1, 3, 0, "recap", 1, "2025-12-01T00:00:00Z")])
        assert asyncio.run(model.complete_category("recap")) == []
        assert "complete" not in model.store.calls

    def test_completion_failure_stops_and_raises(self):
        model = _model([word_record("a", 1, 3, 0, "recap", 1)])
        model.store.fail_on.add("complete")
        with pytest.raises(PersistenceFailure):
            asyncio.run(model.complete_category("recap"))
        assert not model.highlights[0].is_completed

    def test_page_progress(self):
        model = _model([word_record("a", 1, 3, 0, "recap", 1, "2026-01-01T00:00:00Z"),
                        word_record("b", 2, 1, 0, "recap", 2, "2026-01-01T00:00:00Z"),
                        word_record("c", 2, 2, 0, "letter", 2)])
        progress = model.page_progress([1, 2, 3, 4])
        assert progress["completed_pages"] == [1]
        assert progress["total_pages"] == 4
        assert progress["percentage"] == 25.0


class TestListeners:
    def test_listeners_receive_affected_pages(self):
        model = _model()
        pages = []
        model.add_listener(pages.append)
        asyncio.run(model.toggle_word(AyahRef(2, 6, 3), 0, "letter"))
        assert pages == [{3}]

    def test_refresh_skips_unsupported_records(self):
        model = _model([
            word_record("a", 1, 3, 0, "recap", 1),
            dict(word_record("b", 1, 3, 0, "recap", 1), word_end=2),
            dict(ayah_record("c", 1, 3, "recap", 1), ayah_end=5),
            dict(ayah_record("d", 1, 3, "recap", 1), category=None, type="homework"),
        ])
        assert [h.id for h in model.highlights] == ["a", "d"]
        assert model.highlights[1].category == "homework"

    def test_refresh_survives_malformed_rows(self):
        broken = word_record("b", 1, 4, 0, "tajweed", 1)
        del broken["page_number"]
        model = _model([word_record("a", 1, 3, 0, "recap", 1), broken])
        assert [h.id for h in model.highlights] == ["a"]
