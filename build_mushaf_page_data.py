# -*- coding: utf-8 -*-
"""
build_mushaf_page_data.py - Regenerates data/mushaf_pages.json, the static
604-page table used by page_index.py.

Each page's ayah listing is fetched from the alquran.cloud API
(/page/{n}/quran-uthmani) and reduced to one descriptor record.

Usage:
    python build_mushaf_page_data.py                 # all 604 pages
    python build_mushaf_page_data.py --start 600     # pages 600..604 (printed, not written)
"""

import argparse
import json
import os
import time

import requests

from utils import DEFAULT_SETTINGS, MUSHAF_PAGES_FILE, TOTAL_PAGES
from page_index import PageDescriptor

PAGE_EDITION = "quran-uthmani"
MAX_RETRIES = 3
RETRY_DELAY = 5  # seconds; doubles each retry


def summarize_page(page_number, ayahs):
    """
    Reduces a page's [(surah, ayah, juz, hizb_quarter), ...] listing (reading
    order) to a descriptor record. Juz and hizb are those of the first ayah.
    """
    if not ayahs:
        raise ValueError(f"Page {page_number} has no ayahs")
    surahs_on_page = []
    for surah, _ayah, _juz, _hizb in ayahs:
        if not surahs_on_page or surahs_on_page[-1] != surah:
            surahs_on_page.append(surah)

    first, last = ayahs[0], ayahs[-1]
    record = {
        "page_number": page_number,
        "surah_start": first[0],
        "ayah_start": first[1],
        "surah_end": last[0],
        "ayah_end": last[1],
        "juz": first[2],
        "hizb": first[3],
        "total_ayahs": len(ayahs),
        "surahs_on_page": surahs_on_page,
    }
    # Raises ValueError if the listing breaks the descriptor invariants
    PageDescriptor.from_record(record)
    return record


def fetch_page_ayahs(page_number, session=None, base_url=None, timeout=15):
    """Returns the page's [(surah, ayah, juz, hizb_quarter)] listing from the API."""
    session = session or requests.Session()
    base_url = (base_url or DEFAULT_SETTINGS["text_api_url"]).rstrip("/")
    url = f"{base_url}/page/{page_number}/{PAGE_EDITION}"
    response = session.get(url, timeout=timeout)
    response.raise_for_status()
    data = response.json().get("data") or {}
    return [(a["surah"]["number"], a["numberInSurah"], a["juz"], a["hizbQuarter"])
            for a in data.get("ayahs", [])]


def fetch_with_retries(page_number, session, base_url=None):
    delay = RETRY_DELAY
    for attempt in range(1, MAX_RETRIES + 1):
        try:
            return fetch_page_ayahs(page_number, session, base_url)
        except (requests.RequestException, ValueError, KeyError) as e:
            print(f"  Attempt {attempt}/{MAX_RETRIES} for page {page_number} failed: {e}")
            if attempt == MAX_RETRIES:
                raise
            time.sleep(delay)
            delay *= 2


def write_page_data(records, output_path=MUSHAF_PAGES_FILE):
    """Writes the table one record per line so diffs stay readable."""
    os.makedirs(os.path.dirname(output_path), exist_ok=True)
    with open(output_path, 'w', encoding='utf-8') as f:
        f.write("[\n")
        lines = [json.dumps(r, ensure_ascii=False, separators=(",", ":")) for r in records]
        f.write(",\n".join(f"  {line}" for line in lines))
        f.write("\n]\n")


def build_mushaf_page_data(pages, session=None, base_url=None, delay=0.5):
    session = session or requests.Session()
    records = []
    for i, page_number in enumerate(pages, 1):
        ayahs = fetch_with_retries(page_number, session, base_url)
        record = summarize_page(page_number, ayahs)
        records.append(record)
        print(f"[{i}/{len(pages)}] Page {page_number}: {record['surah_start']}:{record['ayah_start']}"
              f" .. {record['surah_end']}:{record['ayah_end']} ({record['total_ayahs']} ayahs)")
        if delay and i < len(pages):
            time.sleep(delay)
    return records


def main():
    parser = argparse.ArgumentParser(description="Build the mushaf page table")
    parser.add_argument("--start", type=int, default=1, help="First page (default: 1)")
    parser.add_argument("--end", type=int, default=TOTAL_PAGES, help="Last page (default: 604)")
    parser.add_argument("--output", default=MUSHAF_PAGES_FILE, help="Output JSON path")
    parser.add_argument("--api-url", default=DEFAULT_SETTINGS["text_api_url"])
    parser.add_argument("--delay", type=float, default=0.5, help="Pause between requests in seconds")
    args = parser.parse_args()

    pages = list(range(args.start, args.end + 1))
    print(f"Fetching {len(pages)} page(s) from {args.api_url} ...")
    try:
        records = build_mushaf_page_data(pages, base_url=args.api_url, delay=args.delay)
    except (requests.RequestException, ValueError, KeyError) as e:
        print(f"Error: could not build page data: {e}")
        return 1

    if len(records) != TOTAL_PAGES:
        print(f"Built {len(records)} page(s); a partial table is not written.")
        return 0
    write_page_data(records, args.output)
    print(f"Wrote {len(records)} pages to {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
