# -*- coding: utf-8 -*-
"""
page_index.py - The static 604-page layout of the Madani Mushaf and lookups over it.

Each page is described by the surah/ayah it starts and ends on and by the
ordered list of surahs appearing on it. The table is loaded once from
data/mushaf_pages.json and never mutated.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional, List, Tuple

from utils import MUSHAF_PAGES_FILE, TOTAL_PAGES, get_ayah_count


@dataclass(frozen=True)
class PageDescriptor:
    page_number: int
    surah_start: int
    ayah_start: int
    surah_end: int
    ayah_end: int
    surahs_on_page: Tuple[int, ...]
    juz: Optional[int] = None
    hizb: Optional[int] = None
    total_ayahs: Optional[int] = None

    def __post_init__(self):
        surahs = tuple(self.surahs_on_page)
        object.__setattr__(self, "surahs_on_page", surahs)
        if not 1 <= self.page_number <= TOTAL_PAGES:
            raise ValueError(f"Page number out of range: {self.page_number}")
        if not surahs:
            raise ValueError(f"Page {self.page_number} lists no surahs")
        if surahs[0] != self.surah_start or surahs[-1] != self.surah_end:
            raise ValueError(f"Page {self.page_number}: surahs_on_page {surahs} does not match "
                             f"start/end surahs {self.surah_start}/{self.surah_end}")
        if any(b <= a for a, b in zip(surahs, surahs[1:])):
            raise ValueError(f"Page {self.page_number}: surahs_on_page must be strictly increasing")

    @property
    def is_single_surah(self) -> bool:
        return self.surah_start == self.surah_end

    @classmethod
    def from_record(cls, record: dict) -> "PageDescriptor":
        return cls(
            page_number=int(record["page_number"]),
            surah_start=int(record["surah_start"]),
            ayah_start=int(record["ayah_start"]),
            surah_end=int(record["surah_end"]),
            ayah_end=int(record["ayah_end"]),
            surahs_on_page=tuple(int(s) for s in record["surahs_on_page"]),
            juz=record.get("juz"),
            hizb=record.get("hizb"),
            total_ayahs=record.get("total_ayahs"),
        )

    def to_record(self) -> dict:
        return {
            "page_number": self.page_number,
            "surah_start": self.surah_start,
            "ayah_start": self.ayah_start,
            "surah_end": self.surah_end,
            "ayah_end": self.ayah_end,
            "juz": self.juz,
            "hizb": self.hizb,
            "total_ayahs": self.total_ayahs,
            "surahs_on_page": list(self.surahs_on_page),
        }


def load_page_descriptors(path=MUSHAF_PAGES_FILE) -> List[PageDescriptor]:
    """Loads and validates the page table, sorted by page number."""
    with open(path, 'r', encoding='utf-8') as f:
        records = json.load(f)
    pages = sorted((PageDescriptor.from_record(r) for r in records), key=lambda p: p.page_number)
    logging.debug(f"Loaded {len(pages)} mushaf page descriptors from {path}")
    return pages


def _page_holds(page: PageDescriptor, surah: int, ayah: int) -> bool:
    if page.is_single_surah and page.surah_start == surah:
        return page.ayah_start <= ayah <= page.ayah_end
    if page.surah_start == surah:
        return ayah >= page.ayah_start
    if page.surah_end == surah:
        return ayah <= page.ayah_end
    return surah in page.surahs_on_page


class PageIndex:
    """
    Lookup table of the 604 mushaf pages.
    """
    def __init__(self, pages: Optional[List[PageDescriptor]] = None, data_file=MUSHAF_PAGES_FILE):
        if pages is None:
            pages = load_page_descriptors(data_file)
        self.pages = list(pages)
        self.pages_by_number = {}
        self.sura_pages = {}
        self.juz_pages = {}
        self._build_indexes()

    def _build_indexes(self):
        """Builds the page-number, surah-start and juz-start indexes."""
        for page in self.pages:
            if page.page_number in self.pages_by_number:
                raise ValueError(f"Duplicate page number in mushaf table: {page.page_number}")
            self.pages_by_number[page.page_number] = page
            for surah in page.surahs_on_page:
                self.sura_pages.setdefault(surah, page.page_number)
            if page.juz is not None:
                self.juz_pages.setdefault(page.juz, page.page_number)

    def __len__(self):
        return len(self.pages)

    def __iter__(self):
        return iter(self.pages)

    def descriptor_for_page(self, page_number) -> Optional[PageDescriptor]:
        return self.pages_by_number.get(page_number)

    def lookup_page(self, surah, ayah=1) -> Optional[int]:
        """Returns the page holding (surah, ayah), or None when no page matches."""
        for page in self.pages:
            if _page_holds(page, surah, ayah):
                return page.page_number
        return None

    def page_for_surah_ayah(self, surah, ayah=1) -> int:
        """
        Returns the page holding (surah, ayah). Falls back to page 1 when the
        table has no match, which always points at a problem in the page data.
        """
        page_number = self.lookup_page(surah, ayah)
        if page_number is None:
            logging.warning(f"No mushaf page found for {surah}:{ayah}; falling back to page 1")
            return 1
        return page_number

    def surah_page_range(self, surah) -> Tuple[int, int]:
        """Returns (first_page, last_page) of a surah."""
        pages = [p.page_number for p in self.pages if surah in p.surahs_on_page]
        if not pages:
            raise ValueError(f"Surah {surah} does not appear in the page table")
        return pages[0], pages[-1]

    def ayah_refs_for_page(self, page_number) -> List[Tuple[int, int]]:
        """Lists the (surah, ayah) pairs on a page using the fixed ayah counts."""
        page = self.descriptor_for_page(page_number)
        if not page:
            return []
        if page.is_single_surah:
            return [(page.surah_start, a) for a in range(page.ayah_start, page.ayah_end + 1)]

        refs = []
        last = len(page.surahs_on_page) - 1
        for position, surah in enumerate(page.surahs_on_page):
            first_ayah = page.ayah_start if position == 0 else 1
            last_ayah = page.ayah_end if position == last else get_ayah_count(surah)
            refs.extend((surah, a) for a in range(first_ayah, last_ayah + 1))
        return refs

    def first_page_of_juz(self, juz) -> Optional[int]:
        return self.juz_pages.get(juz)

    def juz_for_page(self, page_number) -> Optional[int]:
        page = self.descriptor_for_page(page_number)
        return page.juz if page else None
