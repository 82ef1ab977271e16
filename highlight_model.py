# -*- coding: utf-8 -*-
"""
highlight_model.py - A student's highlights in memory, their toggle/complete rules, and the
per-page word projection the renderer iterates over.

Mutations are confirmed by the store before the local set changes, so a
failed call leaves both the highlight set and every projection untouched.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from highlight_store import (
    CATEGORIES, AyahRef, Highlight, PersistenceFailure, SingleWordHighlight, WholeAyahHighlight,
    create_payload, highlight_from_payload, highlight_from_record, parse_timestamp,
    utc_now, validate_category, with_completion,
)

CREATED = "created"
DELETED = "deleted"


@dataclass(frozen=True)
class ToggleResult:
    action: str
    highlight: Highlight


@dataclass(frozen=True)
class ProjectedWord:
    ayah_index: int
    word_index: int
    category: str
    completed: bool
    highlight_ids: Tuple[str, ...]


class PageProjection:
    """
    Word-granular view of one page's highlights: at most one entry per
    (ayah_index, word_index, category).
    """
    def __init__(self, page_number, entries):
        self.page_number = page_number
        self.entries = tuple(sorted(entries, key=lambda e: (e.ayah_index, e.word_index,
                                                            CATEGORIES.index(e.category))))
        self._by_word = {}
        for entry in self.entries:
            self._by_word.setdefault((entry.ayah_index, entry.word_index), []).append(entry)

    def __len__(self):
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def __eq__(self, other):
        if not isinstance(other, PageProjection):
            return NotImplemented
        return self.page_number == other.page_number and self.entries == other.entries

    def entries_at(self, ayah_index, word_index) -> List[ProjectedWord]:
        return list(self._by_word.get((ayah_index, word_index), ()))

    def categories_at(self, ayah_index, word_index) -> List[str]:
        return [e.category for e in self.entries_at(ayah_index, word_index)]

    def tagged_words(self):
        return sorted(self._by_word)


def project_highlights(page_number, highlights, ayahs) -> PageProjection:
    """
    Expands the page's highlights onto its resolved ayahs. Whole-ayah
    highlights cover every word of the ayah; entries pointing past the
    ayah's word count are dropped.
    """
    positions = {(a.surah, a.number): index for index, a in enumerate(ayahs)}
    merged: Dict[Tuple[int, int, str], Tuple[bool, Tuple[str, ...]]] = {}

    for highlight in highlights:
        ayah_index = positions.get((highlight.surah, highlight.ayah))
        if ayah_index is None:
            logging.debug(f"Highlight {highlight.id} ({highlight.surah}:{highlight.ayah}) "
                          f"is not among the resolved ayahs of page {page_number}")
            continue
        word_count = len(ayahs[ayah_index].words)
        if isinstance(highlight, WholeAyahHighlight):
            word_indexes = range(word_count)
        elif 0 <= highlight.word_index < word_count:
            word_indexes = (highlight.word_index,)
        else:
            logging.warning(f"Dropping highlight {highlight.id}: word {highlight.word_index} is outside "
                            f"{highlight.surah}:{highlight.ayah} ({word_count} words)")
            continue

        for word_index in word_indexes:
            key = (ayah_index, word_index, highlight.category)
            completed, ids = merged.get(key, (False, ()))
            merged[key] = (completed or highlight.is_completed, ids + (highlight.id,))

    entries = [ProjectedWord(ayah_index=k[0], word_index=k[1], category=k[2],
                             completed=v[0], highlight_ids=v[1])
               for k, v in merged.items()]
    return PageProjection(page_number, entries)


class HighlightModel:
    """
    The highlight set of one student for the current viewing session.
    """
    def __init__(self, store, student_id):
        self.store = store
        self.student_id = student_id
        self.highlights: List[Highlight] = []
        self._listeners = []
        self._toggle_locks = {}  # key -> (lock, users)

    def add_listener(self, callback):
        """callback(page_numbers) runs after each confirmed change with the affected pages."""
        self._listeners.append(callback)

    def _notify(self, page_numbers):
        for callback in list(self._listeners):
            callback(set(page_numbers))

    async def refresh(self):
        """Replaces the local set with the store's current list for the student."""
        try:
            records = await self.store.list_highlights(self.student_id)
        except PersistenceFailure:
            raise
        except Exception as e:
            raise PersistenceFailure(f"Listing highlights failed: {e}") from e
        parsed = [highlight_from_record(r) for r in records]
        self.highlights = [h for h in parsed if h is not None]
        logging.info(f"Loaded {len(self.highlights)} highlights for student {self.student_id}")
        self._notify({h.page_number for h in self.highlights})
        return self.highlights

    # --- Queries ---
    def highlights_for_page(self, page_number) -> List[Highlight]:
        return [h for h in self.highlights if h.page_number == page_number]

    def find_single_word(self, ref: AyahRef, word_index, category) -> Optional[SingleWordHighlight]:
        for h in self.highlights:
            if (isinstance(h, SingleWordHighlight) and h.surah == ref.surah and h.ayah == ref.ayah
                    and h.word_index == word_index and h.category == category):
                return h
        return None

    def find_whole_ayah(self, ref: AyahRef, category) -> Optional[WholeAyahHighlight]:
        for h in self.highlights:
            if (isinstance(h, WholeAyahHighlight) and h.surah == ref.surah and h.ayah == ref.ayah
                    and h.category == category):
                return h
        return None

    def count_by_category(self, include_completed=True) -> Dict[str, int]:
        counts = {category: 0 for category in CATEGORIES}
        for h in self.highlights:
            if include_completed or not h.is_completed:
                counts[h.category] += 1
        return counts

    def completed_count(self) -> int:
        return sum(1 for h in self.highlights if h.is_completed)

    def page_progress(self, pages) -> dict:
        """A page is complete when it carries highlights and all of them are completed."""
        pages = list(pages)
        completed_pages = []
        for page in pages:
            on_page = self.highlights_for_page(page)
            if on_page and all(h.is_completed for h in on_page):
                completed_pages.append(page)
        total = len(pages)
        return {
            "completed_pages": completed_pages,
            "total_pages": total,
            "percentage": (len(completed_pages) / total) * 100 if total else 0.0,
        }

    def project_for_page(self, page_number, ayahs) -> PageProjection:
        return project_highlights(page_number, self.highlights_for_page(page_number), ayahs)

    # --- Mutations ---
    @contextlib.asynccontextmanager
    async def _serialized(self, key):
        """Runs overlapping toggles of the same target one after another."""
        lock, users = self._toggle_locks.get(key) or (asyncio.Lock(), 0)
        self._toggle_locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._toggle_locks[key]
            if users == 1:
                del self._toggle_locks[key]
            else:
                self._toggle_locks[key] = (lock, users - 1)

    async def _create(self, ref: AyahRef, category, word_index=None) -> Highlight:
        payload = create_payload(ref, category, word_index)
        try:
            result = await self.store.create_highlight(self.student_id, payload)
        except PersistenceFailure:
            raise
        except Exception as e:
            raise PersistenceFailure(f"Creating highlight failed: {e}") from e
        highlight = highlight_from_payload(result["id"], payload)
        self.highlights.append(highlight)
        return highlight

    async def _delete(self, highlight: Highlight):
        try:
            await self.store.delete_highlight(self.student_id, highlight.id)
        except PersistenceFailure:
            raise
        except Exception as e:
            raise PersistenceFailure(f"Deleting highlight {highlight.id} failed: {e}") from e
        self.highlights = [h for h in self.highlights if h.id != highlight.id]

    async def toggle_word(self, ref: AyahRef, word_index, category) -> ToggleResult:
        """Deletes the matching single-word highlight if there is one, creates it otherwise."""
        validate_category(category)
        if word_index < 0:
            raise ValueError(f"Invalid word index: {word_index}")
        key = ("word", ref.surah, ref.ayah, word_index, category)
        async with self._serialized(key):
            existing = self.find_single_word(ref, word_index, category)
            if existing:
                await self._delete(existing)
                result = ToggleResult(DELETED, existing)
            else:
                result = ToggleResult(CREATED, await self._create(ref, category, word_index))
        self._notify({ref.page_number, result.highlight.page_number})
        return result

    async def toggle_whole_ayah(self, ref: AyahRef, category) -> ToggleResult:
        """Same as toggle_word for a whole-ayah highlight (recap, homework and tajweed only)."""
        validate_category(category, whole_ayah=True)
        async with self._serialized(("ayah", ref.surah, ref.ayah, category)):
            existing = self.find_whole_ayah(ref, category)
            if existing:
                await self._delete(existing)
                result = ToggleResult(DELETED, existing)
            else:
                result = ToggleResult(CREATED, await self._create(ref, category))
        self._notify({ref.page_number, result.highlight.page_number})
        return result

    async def complete_category(self, category, page_number=None) -> List[Highlight]:
        """
        Marks every open highlight of the category as completed. Each highlight
        is updated locally only once the store confirms it; the first failure
        stops the run and is raised after listeners hear about what did succeed.
        """
        validate_category(category)
        targets = [h for h in self.highlights
                   if h.category == category and not h.is_completed
                   and (page_number is None or h.page_number == page_number)]
        completed = []
        failure = None
        for highlight in targets:
            try:
                record = await self.store.complete_highlight(self.student_id, highlight.id)
            except Exception as e:
                failure = e if isinstance(e, PersistenceFailure) else PersistenceFailure(
                    f"Completing highlight {highlight.id} failed: {e}")
                break
            completed_at = parse_timestamp((record or {}).get("completed_at")) or utc_now()
            updated = with_completion(highlight, completed_at)
            self.highlights = [updated if h.id == highlight.id else h for h in self.highlights]
            completed.append(updated)

        if completed:
            self._notify({h.page_number for h in completed})
        if failure is not None:
            raise failure
        return completed
