# -*- coding: utf-8 -*-
"""
quran_text_source.py - Sources of per-surah Quran text for the surah cache.

Every source exposes an awaitable fetch_surah(script_id, surah_number) that
returns {"name": str, "ayahs": [{"numberInSurah": int, "text": str}, ...]}.
"""

import asyncio
import functools
import json
import logging
import os

import requests

from utils import DEFAULT_SETTINGS, QURAN_TEXT_DIR, is_valid_surah
from surah_text_cache import DataUnavailable


class AlQuranCloudSource:
    """
    Fetches surah text from the alquran.cloud REST API.
    Script ids are mapped to API editions (e.g. 'uthmani-hafs' -> 'quran-uthmani').
    """
    def __init__(self, base_url=None, script_editions=None, timeout=15, session=None):
        self.base_url = (base_url or DEFAULT_SETTINGS["text_api_url"]).rstrip("/")
        self.script_editions = dict(script_editions or DEFAULT_SETTINGS["script_editions"])
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings):
        return cls(base_url=settings.get("text_api_url"),
                   script_editions=settings.get("script_editions"),
                   timeout=settings.get("request_timeout", 15))

    def edition_for(self, script_id):
        edition = self.script_editions.get(script_id)
        if not edition:
            raise DataUnavailable(script_id, None, "no API edition configured for this script")
        return edition

    def fetch_surah_sync(self, script_id, surah_number):
        """Blocking fetch; run in an executor by fetch_surah."""
        if not is_valid_surah(surah_number):
            raise DataUnavailable(script_id, surah_number, "invalid surah number")
        url = f"{self.base_url}/surah/{surah_number}/{self.edition_for(script_id)}"
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            raise DataUnavailable(script_id, surah_number, f"request to {url} failed: {e}") from e

        data = body.get("data") if isinstance(body, dict) else None
        if not data or "ayahs" not in data:
            raise DataUnavailable(script_id, surah_number, f"unexpected response from {url}")
        logging.debug(f"Fetched surah {surah_number} ({len(data['ayahs'])} ayahs) from {url}")
        return {
            "name": data.get("name", ""),
            "ayahs": [{"numberInSurah": a.get("numberInSurah"), "text": a.get("text", "")}
                      for a in data["ayahs"]],
        }

    async def fetch_surah(self, script_id, surah_number):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, functools.partial(self.fetch_surah_sync, script_id, surah_number))


class LocalJsonTextSource:
    """
    Reads surah text from <data_dir>/<script_id>.json, a list of surahs shaped
    like {"id": n, "name": ..., "verses": [{"id": k, "text": ...}]}.
    Each script file is parsed once and kept.
    """
    def __init__(self, data_dir=None):
        self.data_dir = data_dir or QURAN_TEXT_DIR
        self._scripts = {}

    def _load_script(self, script_id):
        if script_id in self._scripts:
            return self._scripts[script_id]
        path = os.path.join(self.data_dir, f"{script_id}.json")
        try:
            with open(path, 'r', encoding='utf-8') as f:
                surahs = json.load(f)
        except FileNotFoundError as e:
            raise DataUnavailable(script_id, None, f"text file not found at {path}") from e
        except json.JSONDecodeError as e:
            raise DataUnavailable(script_id, None, f"error decoding {path}: {e}") from e
        by_number = {int(s["id"]): s for s in surahs}
        self._scripts[script_id] = by_number
        logging.info(f"Loaded {len(by_number)} surahs for script '{script_id}' from {path}")
        return by_number

    async def fetch_surah(self, script_id, surah_number):
        surah = self._load_script(script_id).get(surah_number)
        if surah is None:
            raise DataUnavailable(script_id, surah_number, "surah missing from local text file")
        return {
            "name": surah.get("name", ""),
            "ayahs": [{"numberInSurah": v.get("id"), "text": v.get("text", "")}
                      for v in surah.get("verses", [])],
        }


def text_source_from_settings(settings):
    """Prefers the local text directory when configured, the HTTP API otherwise."""
    if settings.get("text_data_dir"):
        return LocalJsonTextSource(settings["text_data_dir"])
    return AlQuranCloudSource.from_settings(settings)
