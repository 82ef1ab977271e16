# -*- coding: utf-8 -*-
"""
highlight_store.py - Highlight records and the stores that persist them.

A highlight covers either one word or a whole ayah and is tagged with a
mistake/purpose category. Stores are asynchronous: the REST store runs its
blocking requests calls in the event loop's executor.
"""

import asyncio
import functools
import json
import logging
import os
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional, Union

import requests

CATEGORIES = ("recap", "homework", "tajweed", "haraka", "letter")
WHOLE_AYAH_CATEGORIES = ("recap", "homework", "tajweed")
COMPLETED = "completed"

# Colour names stored alongside each highlight, as the instructor dashboard shows them.
CATEGORY_COLOR_NAMES = {
    "recap": "purple",
    "homework": "green",
    "tajweed": "orange",
    "haraka": "red",
    "letter": "brown",
    COMPLETED: "gold",
}


class PersistenceFailure(Exception):
    """A create/delete/complete/list call to the highlight store failed."""


def validate_category(category, whole_ayah=False):
    allowed = WHOLE_AYAH_CATEGORIES if whole_ayah else CATEGORIES
    if category not in allowed:
        scope = "whole-ayah" if whole_ayah else "word"
        raise ValueError(f"Category '{category}' cannot be used for {scope} highlights")


@dataclass(frozen=True)
class AyahRef:
    surah: int
    ayah: int
    page_number: int


@dataclass(frozen=True)
class SingleWordHighlight:
    id: str
    surah: int
    ayah: int
    word_index: int
    category: str
    page_number: int
    completed_at: Optional[datetime] = None

    @property
    def ayah_start(self):
        return self.ayah

    @property
    def ayah_end(self):
        return self.ayah

    @property
    def word_start(self):
        return self.word_index

    @property
    def word_end(self):
        return self.word_index

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


@dataclass(frozen=True)
class WholeAyahHighlight:
    id: str
    surah: int
    ayah: int
    category: str
    page_number: int
    completed_at: Optional[datetime] = None

    @property
    def ayah_start(self):
        return self.ayah

    @property
    def ayah_end(self):
        return self.ayah

    word_start = None
    word_end = None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


Highlight = Union[SingleWordHighlight, WholeAyahHighlight]


def parse_timestamp(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def highlight_from_record(record: dict) -> Optional[Highlight]:
    """
    Builds a highlight from a stored row. Accepts `category` or the API's
    `type` key. Rows spanning several words or ayahs are not produced here and
    are skipped (None).
    """
    category = record.get("category") or record.get("type")
    try:
        surah = int(record["surah"])
        ayah_start = int(record["ayah_start"])
        ayah_end = int(record.get("ayah_end", ayah_start))
        word_start = record.get("word_start")
        word_end = record.get("word_end", word_start)
        if word_start is not None:
            word_start = int(word_start)
        if word_end is not None:
            word_end = int(word_end)
        common = dict(
            id=str(record["id"]),
            surah=surah,
            ayah=ayah_start,
            category=category,
            page_number=int(record["page_number"]),
            completed_at=parse_timestamp(record.get("completed_at")),
        )
    except (KeyError, TypeError, ValueError) as e:
        logging.warning(f"Skipping malformed highlight record {record!r}: {e!r}")
        return None

    if category not in CATEGORIES:
        logging.warning(f"Skipping highlight {common['id']}: unknown category {category!r}")
        return None
    if ayah_end != ayah_start:
        logging.warning(f"Skipping highlight {common['id']}: spans ayahs {ayah_start}-{ayah_end}")
        return None
    if word_start is None and word_end is None:
        return WholeAyahHighlight(**common)
    if word_start is None or word_end is None or word_start != word_end:
        logging.warning(f"Skipping highlight {common['id']}: spans words {word_start}-{word_end}")
        return None
    return SingleWordHighlight(word_index=word_start, **common)


def highlight_to_record(highlight: Highlight) -> dict:
    record = {
        "id": highlight.id,
        "surah": highlight.surah,
        "ayah_start": highlight.ayah_start,
        "ayah_end": highlight.ayah_end,
        "category": highlight.category,
        "color": CATEGORY_COLOR_NAMES[highlight.category],
        "page_number": highlight.page_number,
        "completed_at": highlight.completed_at.isoformat() if highlight.completed_at else None,
    }
    if isinstance(highlight, SingleWordHighlight):
        record["word_start"] = highlight.word_start
        record["word_end"] = highlight.word_end
    return record


def create_payload(ref: AyahRef, category, word_index=None) -> dict:
    """The create request body. Word bounds are left out entirely for whole-ayah highlights."""
    payload = {
        "surah": ref.surah,
        "ayah_start": ref.ayah,
        "ayah_end": ref.ayah,
        "color": CATEGORY_COLOR_NAMES[category],
        "category": category,
        "page_number": ref.page_number,
    }
    if word_index is not None:
        payload["word_start"] = word_index
        payload["word_end"] = word_index
    return payload


def highlight_from_payload(highlight_id, payload) -> Highlight:
    return highlight_from_record(dict(payload, id=highlight_id))


def with_completion(highlight: Highlight, completed_at) -> Highlight:
    return replace(highlight, completed_at=completed_at)


class JsonHighlightStore:
    """
    Keeps each student's highlights in <directory>/<student_id>.json.
    """
    def __init__(self, directory):
        self.directory = directory

    def _path(self, student_id):
        return os.path.join(self.directory, f"{student_id}.json")

    def _read(self, student_id):
        path = self._path(student_id)
        if not os.path.exists(path):
            return []
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise PersistenceFailure(f"Cannot read highlights from {path}: {e}") from e

    def _write(self, student_id, records):
        path = self._path(student_id)
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(records, f, ensure_ascii=False, indent=4)
        except IOError as e:
            raise PersistenceFailure(f"Cannot write highlights to {path}: {e}") from e

    async def list_highlights(self, student_id):
        return self._read(student_id)

    async def create_highlight(self, student_id, payload):
        records = self._read(student_id)
        record = dict(payload, id=uuid.uuid4().hex, completed_at=None)
        records.append(record)
        self._write(student_id, records)
        return {"id": record["id"]}

    async def delete_highlight(self, student_id, highlight_id):
        records = self._read(student_id)
        remaining = [r for r in records if str(r.get("id")) != str(highlight_id)]
        if len(remaining) == len(records):
            raise PersistenceFailure(f"Highlight {highlight_id} not found for student {student_id}")
        self._write(student_id, remaining)

    async def complete_highlight(self, student_id, highlight_id):
        records = self._read(student_id)
        for record in records:
            if str(record.get("id")) == str(highlight_id):
                record["completed_at"] = utc_now().isoformat()
                self._write(student_id, records)
                return record
        raise PersistenceFailure(f"Highlight {highlight_id} not found for student {student_id}")


class RestHighlightStore:
    """
    Talks to the school backend's /highlights endpoints with a bearer token.
    """
    def __init__(self, base_url, token=None, timeout=15, session=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})

    @classmethod
    def from_settings(cls, settings):
        return cls(settings["highlights_api_url"], token=settings.get("highlights_api_token"),
                   timeout=settings.get("request_timeout", 15))

    def _request(self, method, path, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise PersistenceFailure(f"{method} {url} failed: {e}") from e
        if not response.ok:
            try:
                message = response.json().get("error")
            except ValueError:
                message = None
            raise PersistenceFailure(f"{method} {url} returned {response.status_code}: "
                                     f"{message or response.reason}")
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise PersistenceFailure(f"{method} {url} returned invalid JSON") from e

    async def _call(self, method, path, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, functools.partial(self._request, method, path, **kwargs))

    async def list_highlights(self, student_id):
        body = await self._call("GET", "/highlights", params={"student_id": student_id})
        return body.get("highlights", [])

    async def create_highlight(self, student_id, payload):
        body = dict(payload, student_id=student_id, type=payload["category"])
        result = await self._call("POST", "/highlights", json=body)
        highlight = result.get("highlight") or {}
        if "id" not in highlight:
            raise PersistenceFailure("Create highlight response carried no id")
        return {"id": highlight["id"]}

    async def delete_highlight(self, student_id, highlight_id):
        await self._call("DELETE", f"/highlights/{highlight_id}")

    async def complete_highlight(self, student_id, highlight_id):
        result = await self._call("PUT", f"/highlights/{highlight_id}/complete")
        return result.get("highlight") or {"id": highlight_id, "completed_at": utc_now().isoformat()}


def highlight_store_from_settings(settings):
    if settings.get("highlights_api_url"):
        return RestHighlightStore.from_settings(settings)
    return JsonHighlightStore(settings["highlights_dir"])
