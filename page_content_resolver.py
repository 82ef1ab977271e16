# -*- coding: utf-8 -*-
"""
page_content_resolver.py - Works out which ayahs (with their words) belong on a mushaf page.

Resolution is a best-effort synchronous read of the surah cache: when a surah
the page needs is not cached yet, the page comes back empty with the missing
surahs listed as pending and their loads are scheduled. Callers re-resolve
once the cache reports the surah as loaded.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple, FrozenSet

from utils import SURAH_WITHOUT_BASMALA
from page_index import PageDescriptor, PageIndex
from surah_text_cache import Ayah, SurahTextCache, SurahTextEntry


@dataclass(frozen=True)
class PageResolution:
    page_number: int
    ayahs: Tuple[Ayah, ...] = ()
    pending: FrozenSet[int] = field(default_factory=frozenset)

    @property
    def ready(self) -> bool:
        return not self.pending and bool(self.ayahs)

    def surahs(self):
        return sorted({a.surah for a in self.ayahs})


@dataclass(frozen=True)
class AyahRenderInstruction:
    index: int
    ayah: Ayah
    surah_header: bool = False
    bismillah: bool = False


def _slice_by_position(entry: SurahTextEntry, first, last=None):
    """Ayahs at 1-based positions first..last (inclusive); last=None means to the end."""
    end = len(entry.ayahs) if last is None else last
    return entry.ayahs[first - 1:end]


def resolve_page(descriptor: Optional[PageDescriptor],
                 lookup: Callable[[int], Optional[SurahTextEntry]]) -> PageResolution:
    """
    Pure page assembly over an explicit surah lookup.

    Multi-surah pages are all-or-nothing: if any surah is missing the page is
    returned empty so it never shows with only some of its surahs.
    """
    if descriptor is None:
        return PageResolution(page_number=0)

    if descriptor.is_single_surah:
        entry = lookup(descriptor.surah_start)
        if entry is None:
            return PageResolution(descriptor.page_number, pending=frozenset([descriptor.surah_start]))
        ayahs = _slice_by_position(entry, descriptor.ayah_start, descriptor.ayah_end)
        return PageResolution(descriptor.page_number, ayahs=tuple(ayahs))

    entries = {surah: lookup(surah) for surah in descriptor.surahs_on_page}
    missing = frozenset(s for s, e in entries.items() if e is None)
    if missing:
        return PageResolution(descriptor.page_number, pending=missing)

    ayahs = []
    last = len(descriptor.surahs_on_page) - 1
    for position, surah in enumerate(descriptor.surahs_on_page):
        entry = entries[surah]
        if position == 0:
            ayahs.extend(_slice_by_position(entry, descriptor.ayah_start))
        elif position == last:
            ayahs.extend(_slice_by_position(entry, 1, descriptor.ayah_end))
        else:
            ayahs.extend(entry.ayahs)
    return PageResolution(descriptor.page_number, ayahs=tuple(ayahs))


def build_render_instructions(ayahs) -> List[AyahRenderInstruction]:
    """
    Marks where a surah begins on the page. A new surah gets a header, and a
    Basmala too unless it is Al-Fatihah (whose first ayah is the Basmala) or At-Tawbah.
    """
    instructions = []
    previous_surah = None
    for index, ayah in enumerate(ayahs):
        starts_surah = ayah.number == 1 and ayah.surah != previous_surah
        instructions.append(AyahRenderInstruction(
            index=index,
            ayah=ayah,
            surah_header=starts_surah,
            bismillah=starts_surah and ayah.surah not in (1, SURAH_WITHOUT_BASMALA),
        ))
        previous_surah = ayah.surah
    return instructions


class PageContentResolver:
    """
    Resolves pages against the session's surah cache, scheduling loads for
    whatever is missing.
    """
    def __init__(self, page_index: PageIndex, cache: SurahTextCache):
        self.page_index = page_index
        self.cache = cache

    def resolve(self, page_number, script_id) -> PageResolution:
        descriptor = self.page_index.descriptor_for_page(page_number)
        if descriptor is None:
            logging.warning(f"Cannot resolve page {page_number}: not in the mushaf table")
            return PageResolution(page_number=page_number)

        resolution = resolve_page(descriptor, lambda surah: self.cache.get(script_id, surah))
        for surah in sorted(resolution.pending):
            self.cache.request(script_id, surah)
        if descriptor.is_single_surah:
            self.cache.prefetch_neighbors(script_id, descriptor.surah_start)
        if resolution.pending:
            logging.debug(f"Page {page_number} waiting for surahs {sorted(resolution.pending)}")
        return resolution

    def render_instructions(self, page_number, script_id) -> List[AyahRenderInstruction]:
        return build_render_instructions(self.resolve(page_number, script_id).ayahs)
