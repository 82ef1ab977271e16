"""
Shared fakes and fixtures for the mushaf highlighter tests.

Run: python -m pytest -q
"""

import asyncio
import os
import sys

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from utils import get_ayah_count, get_surah_name
from page_index import PageIndex
from surah_text_cache import Ayah, DataUnavailable
from highlight_store import PersistenceFailure

WORDS_PER_AYAH = 4


# ---------------------------------------------------------------------------
# Text source
# ---------------------------------------------------------------------------

def ayah_text(script_id, surah, ayah, words=WORDS_PER_AYAH):
    return " ".join(f"{script_id}:{surah}:{ayah}:{i}" for i in range(words))


def surah_payload(script_id, surah, ayah_count=None, words=WORDS_PER_AYAH):
    count = ayah_count or get_ayah_count(surah)
    return {
        "name": get_surah_name(surah),
        "ayahs": [{"numberInSurah": a, "text": ayah_text(script_id, surah, a, words)}
                  for a in range(1, count + 1)],
    }


def make_ayahs(surah, count, words=WORDS_PER_AYAH, script_id="test"):
    return tuple(Ayah(number=a, surah=surah, text=ayah_text(script_id, surah, a, words),
                      words=tuple(ayah_text(script_id, surah, a, words).split()))
                 for a in range(1, count + 1))


class FakeTextSource:
    """
    Synthetic surah text: every ayah has WORDS_PER_AYAH words and the real
    ayah count of its surah. Words embed the script id so script switches show.
    """
    def __init__(self, fail=()):
        self.fail = set(fail)
        self.calls = []
        self.gate = None

    async def fetch_surah(self, script_id, surah_number):
        self.calls.append((script_id, surah_number))
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        if surah_number in self.fail:
            raise DataUnavailable(script_id, surah_number, "offline")
        return surah_payload(script_id, surah_number)


# ---------------------------------------------------------------------------
# Highlight store
# ---------------------------------------------------------------------------

class FakeHighlightStore:
    """In-memory store; operations named in fail_on raise PersistenceFailure."""
    def __init__(self, records=None):
        self.records = [dict(r) for r in records or []]
        self.fail_on = set()
        self.calls = []
        self.payloads = []
        self._next_id = 1

    def _enter(self, operation):
        self.calls.append(operation)
        if operation in self.fail_on:
            raise PersistenceFailure(f"{operation} failed")

    async def list_highlights(self, student_id):
        self._enter("list")
        return [dict(r) for r in self.records]

    async def create_highlight(self, student_id, payload):
        self._enter("create")
        highlight_id = f"h{self._next_id}"
        self._next_id += 1
        self.payloads.append(dict(payload))
        self.records.append(dict(payload, id=highlight_id, completed_at=None))
        return {"id": highlight_id}

    async def delete_highlight(self, student_id, highlight_id):
        self._enter("delete")
        self.records = [r for r in self.records if r["id"] != highlight_id]

    async def complete_highlight(self, student_id, highlight_id):
        self._enter("complete")
        for record in self.records:
            if record["id"] == highlight_id:
                record["completed_at"] = "2026-01-01T10:00:00+00:00"
                return dict(record)
        raise PersistenceFailure(f"{highlight_id} not found")


def word_record(highlight_id, surah, ayah, word, category, page, completed_at=None):
    return {"id": highlight_id, "surah": surah, "ayah_start": ayah, "ayah_end": ayah,
            "word_start": word, "word_end": word, "category": category,
            "page_number": page, "completed_at": completed_at}


def ayah_record(highlight_id, surah, ayah, category, page, completed_at=None):
    return {"id": highlight_id, "surah": surah, "ayah_start": ayah, "ayah_end": ayah,
            "category": category, "page_number": page, "completed_at": completed_at}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def page_index():
    return PageIndex()


@pytest.fixture
def text_source():
    return FakeTextSource()


@pytest.fixture
def store():
    return FakeHighlightStore()


@pytest.fixture(scope="session")
def qapp():
    from PyQt5.QtWidgets import QApplication
    app = QApplication.instance() or QApplication([])
    yield app
