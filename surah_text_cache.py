# -*- coding: utf-8 -*-
"""
surah_text_cache.py - Lazily loads surah text per (script, surah) and keeps it for the session.

Entries are never evicted, so a page scrolled back into view renders from the
cache immediately.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from utils import TOTAL_SURAHS


class DataUnavailable(Exception):
    """A surah could not be fetched or parsed for a given script."""

    def __init__(self, script_id, surah_number, reason=""):
        self.script_id = script_id
        self.surah_number = surah_number
        self.reason = reason
        super().__init__(f"Surah {surah_number} unavailable for script '{script_id}': {reason}")


@dataclass(frozen=True)
class Ayah:
    number: int
    surah: int
    text: str
    words: Tuple[str, ...]


@dataclass(frozen=True)
class SurahTextEntry:
    script_id: str
    surah_number: int
    name: str
    ayahs: Tuple[Ayah, ...]

    def __len__(self):
        return len(self.ayahs)


@dataclass(frozen=True)
class LoadOutcome:
    script_id: str
    surah_number: int
    entry: Optional[SurahTextEntry] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.entry is not None


def build_surah_entry(script_id, surah_number, payload) -> SurahTextEntry:
    """
    Converts a text-source payload ({"name", "ayahs": [{"numberInSurah", "text"}]})
    into a cache entry, splitting each ayah into whitespace-separated words.
    """
    raw_ayahs = (payload or {}).get("ayahs") or []
    if not raw_ayahs:
        raise DataUnavailable(script_id, surah_number, "no ayahs in payload")

    ayahs = []
    for expected, raw in enumerate(raw_ayahs, start=1):
        number = raw.get("numberInSurah")
        if number != expected:
            raise DataUnavailable(script_id, surah_number,
                                  f"expected ayah {expected}, got {number!r}")
        text = (raw.get("text") or "").strip()
        words = tuple(text.split())
        if not words:
            raise DataUnavailable(script_id, surah_number, f"ayah {number} has no text")
        ayahs.append(Ayah(number=number, surah=surah_number, text=text, words=words))

    return SurahTextEntry(script_id=script_id, surah_number=surah_number,
                          name=payload.get("name") or "", ayahs=tuple(ayahs))


class SurahTextCache:
    """
    Session cache of surah text keyed by "{script_id}-{surah_number}".

    text_source must provide an awaitable fetch_surah(script_id, surah_number).
    """
    def __init__(self, text_source):
        self.text_source = text_source
        self._entries = {}
        self._in_flight = {}
        self._failures = {}
        self._background = set()
        self._listeners = []

    @staticmethod
    def cache_key(script_id, surah_number) -> str:
        return f"{script_id}-{surah_number}"

    def add_listener(self, callback):
        """callback(script_id, surah_number) runs after every newly stored surah."""
        self._listeners.append(callback)

    def get(self, script_id, surah_number) -> Optional[SurahTextEntry]:
        return self._entries.get(self.cache_key(script_id, surah_number))

    def is_loading(self, script_id, surah_number) -> bool:
        return self.cache_key(script_id, surah_number) in self._in_flight

    @property
    def pending(self):
        return set(self._in_flight)

    @property
    def failures(self):
        return dict(self._failures)

    def __len__(self):
        return len(self._entries)

    async def load(self, script_id, surah_number) -> SurahTextEntry:
        """Returns the cached entry, fetching it first if needed. Raises DataUnavailable."""
        key = self.cache_key(script_id, surah_number)
        entry = self._entries.get(key)
        if entry is not None:
            return entry

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_store(script_id, surah_number))
            self._in_flight[key] = task
            task.add_done_callback(lambda _t, k=key: self._in_flight.pop(k, None))
        # Shielded so one cancelled caller does not abort the fetch other callers share
        return await asyncio.shield(task)

    async def _fetch_and_store(self, script_id, surah_number) -> SurahTextEntry:
        key = self.cache_key(script_id, surah_number)
        try:
            payload = await self.text_source.fetch_surah(script_id, surah_number)
            entry = build_surah_entry(script_id, surah_number, payload)
        except DataUnavailable as e:
            self._failures[key] = e
            logging.warning(str(e))
            raise
        except Exception as e:
            error = DataUnavailable(script_id, surah_number, str(e))
            self._failures[key] = error
            logging.warning(str(error))
            raise error from e

        self._entries[key] = entry
        self._failures.pop(key, None)
        logging.debug(f"Cached surah {surah_number} ({len(entry)} ayahs) for script '{script_id}'")
        for callback in list(self._listeners):
            try:
                callback(script_id, surah_number)
            except Exception:
                logging.exception(f"Surah-loaded listener failed for {key}")
        return entry

    async def _load_outcome(self, script_id, surah_number) -> LoadOutcome:
        try:
            entry = await self.load(script_id, surah_number)
        except DataUnavailable as e:
            return LoadOutcome(script_id, surah_number, error=e)
        return LoadOutcome(script_id, surah_number, entry=entry)

    def request(self, script_id, surah_number) -> Optional["asyncio.Task"]:
        """
        Best-effort, non-blocking load. The returned task resolves to a
        LoadOutcome and never raises. Returns None when the surah is already
        cached or when there is no running event loop to schedule on.
        """
        if self.get(script_id, surah_number) is not None:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logging.debug(f"No running event loop; cannot schedule surah {surah_number} load")
            return None
        task = loop.create_task(self._load_outcome(script_id, surah_number))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def prefetch_neighbors(self, script_id, surah_number):
        """Schedules loads of the previous and next surah. Returns the scheduled tasks."""
        tasks = []
        for neighbor in (surah_number - 1, surah_number + 1):
            if 1 <= neighbor <= TOTAL_SURAHS:
                task = self.request(script_id, neighbor)
                if task is not None:
                    tasks.append(task)
        return tasks

    async def wait_idle(self):
        """Waits for every scheduled background load (used by the CLI and tests)."""
        while self._background:
            await asyncio.gather(*list(self._background))
