# -*- coding: utf-8 -*-
"""
mushaf_session.py - One student's viewing session of the mushaf.

Holds the current script, the surah cache, the highlight model and the page
tracker, and keeps the resolution and highlight projection of every mounted
page up to date as surahs arrive and highlights change.
"""

import logging

from utils import TOTAL_PAGES, is_valid_surah, DEFAULT_SETTINGS
from page_index import PageIndex
from surah_text_cache import SurahTextCache
from quran_text_source import text_source_from_settings
from page_content_resolver import PageContentResolver, PageResolution, build_render_instructions
from highlight_store import AyahRef, highlight_store_from_settings
from highlight_model import HighlightModel, PageProjection
from annotation_compositor import AnnotationIndex, compose_page


class MushafSession:
    def __init__(self, page_index: PageIndex, text_source, store, student_id,
                 script_id=DEFAULT_SETTINGS["script_id"], tracker=None):
        self.page_index = page_index
        self.script_id = script_id
        self.student_id = student_id
        self.cache = SurahTextCache(text_source)
        self.resolver = PageContentResolver(page_index, self.cache)
        self.highlights = HighlightModel(store, student_id)
        self.tracker = tracker
        self.annotations = AnnotationIndex()
        self.mounted = {}       # page_number -> PageResolution
        self.projections = {}   # page_number -> PageProjection
        self._current_page = 1
        self._page_listeners = []

        self.cache.add_listener(self._on_surah_loaded)
        self.highlights.add_listener(self._on_highlights_changed)

    @classmethod
    def from_settings(cls, settings, student_id, page_index=None, tracker=None):
        return cls(page_index or PageIndex(),
                   text_source_from_settings(settings),
                   highlight_store_from_settings(settings),
                   student_id,
                   script_id=settings.get("script_id", DEFAULT_SETTINGS["script_id"]),
                   tracker=tracker)

    @property
    def current_page(self):
        if self.tracker is not None:
            return self.tracker.current_page
        return self._current_page

    def add_page_listener(self, callback):
        """callback(page_number, resolution, projection) runs whenever a mounted page changes."""
        self._page_listeners.append(callback)

    def _notify_page(self, page_number):
        resolution = self.mounted[page_number]
        projection = self.projections[page_number]
        for callback in list(self._page_listeners):
            callback(page_number, resolution, projection)

    # --- Mounted pages ---
    def mount_page(self, page_number) -> PageResolution:
        if not 1 <= page_number <= TOTAL_PAGES:
            raise ValueError(f"Page number must be between 1 and {TOTAL_PAGES}, got {page_number}")
        resolution = self._refresh_page(page_number)
        if self.tracker is not None:
            self.tracker.attach_region(page_number)
        return resolution

    def unmount_page(self, page_number):
        self.mounted.pop(page_number, None)
        self.projections.pop(page_number, None)
        if self.tracker is not None:
            self.tracker.detach_region(page_number)

    def _project(self, page_number) -> PageProjection:
        resolution = self.mounted[page_number]
        if not resolution.ready:
            return PageProjection(page_number, ())
        return self.highlights.project_for_page(page_number, resolution.ayahs)

    def _refresh_page(self, page_number) -> PageResolution:
        resolution = self.resolver.resolve(page_number, self.script_id)
        self.mounted[page_number] = resolution
        self.projections[page_number] = self._project(page_number)
        self._notify_page(page_number)
        return resolution

    def _on_surah_loaded(self, script_id, surah_number):
        if script_id != self.script_id:
            return
        for page_number in sorted(self.mounted):
            descriptor = self.page_index.descriptor_for_page(page_number)
            if descriptor and surah_number in descriptor.surahs_on_page:
                logging.debug(f"Surah {surah_number} loaded; re-resolving page {page_number}")
                self._refresh_page(page_number)

    def _on_highlights_changed(self, page_numbers):
        for page_number in sorted(set(page_numbers) & set(self.mounted)):
            self.projections[page_number] = self._project(page_number)
            self._notify_page(page_number)

    def change_script(self, script_id):
        """Switches the script and re-resolves every mounted page against it."""
        if script_id == self.script_id:
            return
        logging.info(f"Switching script from '{self.script_id}' to '{script_id}'")
        self.script_id = script_id
        for page_number in sorted(self.mounted):
            self._refresh_page(page_number)

    async def load_page(self, page_number) -> PageResolution:
        """Waits for every surah the page needs, then mounts it. Raises DataUnavailable."""
        descriptor = self.page_index.descriptor_for_page(page_number)
        if descriptor is None:
            raise ValueError(f"Page number must be between 1 and {TOTAL_PAGES}, got {page_number}")
        for surah_number in descriptor.surahs_on_page:
            await self.cache.load(self.script_id, surah_number)
        return self.mount_page(page_number)

    def render_instructions(self, page_number):
        resolution = self.mounted.get(page_number) or self.resolver.resolve(page_number, self.script_id)
        return build_render_instructions(resolution.ayahs)

    # --- Navigation ---
    def jump_to(self, surah_number, ayah_number=1) -> int:
        if not is_valid_surah(surah_number):
            raise ValueError(f"Surah number must be between 1 and 114, got {surah_number}")
        page_number = self.page_index.page_for_surah_ayah(surah_number, ayah_number)
        if self.tracker is not None:
            self.tracker.jump_to(page_number)
        else:
            self._current_page = page_number
        return page_number

    # --- Highlights ---
    async def refresh_highlights(self):
        return await self.highlights.refresh()

    def ayah_ref(self, page_number, ayah_index) -> AyahRef:
        resolution = self.mounted.get(page_number)
        if resolution is None or not resolution.ready:
            raise ValueError(f"Page {page_number} is not resolved yet")
        if not 0 <= ayah_index < len(resolution.ayahs):
            raise ValueError(f"Page {page_number} has no ayah at index {ayah_index}")
        ayah = resolution.ayahs[ayah_index]
        return AyahRef(surah=ayah.surah, ayah=ayah.number, page_number=page_number)

    async def toggle_word(self, page_number, ayah_index, word_index, category):
        ref = self.ayah_ref(page_number, ayah_index)
        word_count = len(self.mounted[page_number].ayahs[ayah_index].words)
        if not 0 <= word_index < word_count:
            raise ValueError(f"Ayah {ref.surah}:{ref.ayah} has no word at index {word_index}")
        return await self.highlights.toggle_word(ref, word_index, category)

    async def toggle_whole_ayah(self, page_number, ayah_index, category):
        return await self.highlights.toggle_whole_ayah(self.ayah_ref(page_number, ayah_index), category)

    async def complete_category(self, category, page_number=None):
        return await self.highlights.complete_category(category, page_number)

    def set_annotations(self, annotations: AnnotationIndex):
        self.annotations = annotations
        for page_number in sorted(self.mounted):
            self._notify_page(page_number)

    def compose(self, page_number, selection=None, highlight_mode=False):
        """Word styles for a mounted page; empty while the page is pending."""
        resolution = self.mounted.get(page_number)
        if resolution is None or not resolution.ready:
            return {}
        return compose_page(resolution.ayahs, self.projections[page_number], self.annotations,
                            selection=selection, highlight_mode=highlight_mode)
