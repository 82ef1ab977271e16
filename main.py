# -*- coding: utf-8 -*-
"""
main.py - Command-line front end for reading mushaf pages and managing a student's highlights.

Usage:
    python main.py page 604 --student s1 --shape
    python main.py locate 18 10
    python main.py toggle 1 3 tajweed --word 2 --student s1
    python main.py toggle 1 5 recap --student s1
    python main.py complete tajweed --student s1 --page 1
    python main.py summary --student s1
"""

import argparse
import asyncio
import logging
import sys

from utils import (
    BASMALA_TEXT, TOTAL_PAGES, fix_arabic_display, get_ayah_count, get_surah_name,
    is_valid_surah, load_settings, setup_logging, to_arabic_numerals,
)
from page_index import PageIndex
from surah_text_cache import DataUnavailable
from highlight_store import CATEGORIES, PersistenceFailure
from highlight_model import CREATED
from mushaf_session import MushafSession

LOCAL_STUDENT = "local"


def build_parser():
    parser = argparse.ArgumentParser(description="Mushaf pages with student highlights")
    parser.add_argument("--settings", help="Settings JSON (default: per-user settings file)")
    parser.add_argument("--log-level", help="Overrides the log_level setting")
    commands = parser.add_subparsers(dest="command", required=True)

    page = commands.add_parser("page", help="Print a page with its highlights")
    page.add_argument("page_number", type=int)
    page.add_argument("--script", help="Script id (default: from settings)")
    page.add_argument("--student", help="Student whose highlights are shown")
    page.add_argument("--shape", action="store_true", help="Reshape Arabic for terminals without shaping")

    locate = commands.add_parser("locate", help="Find the page holding a surah/ayah")
    locate.add_argument("surah", type=int)
    locate.add_argument("ayah", type=int, nargs="?", default=1)

    toggle = commands.add_parser("toggle", help="Add or remove a highlight")
    toggle.add_argument("surah", type=int)
    toggle.add_argument("ayah", type=int)
    toggle.add_argument("category", choices=CATEGORIES)
    toggle.add_argument("--word", type=int, help="0-based word index; whole ayah when omitted")
    toggle.add_argument("--student", required=True)
    toggle.add_argument("--script", help="Script id (default: from settings)")

    complete = commands.add_parser("complete", help="Mark a category's highlights as completed")
    complete.add_argument("category", choices=CATEGORIES)
    complete.add_argument("--student", required=True)
    complete.add_argument("--page", type=int, help="Only highlights on this page")

    summary = commands.add_parser("summary", help="Highlight counts and completed pages")
    summary.add_argument("--student", required=True)
    return parser


def _check_ayah(surah, ayah):
    if not is_valid_surah(surah):
        raise ValueError(f"Surah number must be between 1 and 114, got {surah}")
    if not 1 <= ayah <= get_ayah_count(surah):
        raise ValueError(f"Surah {surah} has {get_ayah_count(surah)} ayahs, got ayah {ayah}")


def format_page(session, page_number, shape=False):
    """Page text as printable lines, highlighted words followed by their categories."""
    display = fix_arabic_display if shape else (lambda text: text)
    descriptor = session.page_index.descriptor_for_page(page_number)
    projection = session.projections[page_number]
    lines = [f"Page {page_number} | Juz {descriptor.juz} | "
             + ", ".join(f"{s} {get_surah_name(s)}" for s in descriptor.surahs_on_page)]

    for instruction in session.render_instructions(page_number):
        ayah = instruction.ayah
        if instruction.surah_header:
            lines.append("")
            lines.append(display(f"== سورة {get_surah_name(ayah.surah)} =="))
        if instruction.bismillah:
            lines.append(display(BASMALA_TEXT))
        words = []
        for word_index, word in enumerate(ayah.words):
            categories = projection.categories_at(instruction.index, word_index)
            completed = any(e.completed for e in projection.entries_at(instruction.index, word_index))
            if categories:
                mark = ",".join(categories) + ("*" if completed else "")
                words.append(f"{word}[{mark}]")
            else:
                words.append(word)
        lines.append(display(f"{' '.join(words)} ({to_arabic_numerals(ayah.number)})"))
    return lines


async def cmd_page(session, args):
    if not 1 <= args.page_number <= TOTAL_PAGES:
        raise ValueError(f"Page number must be between 1 and {TOTAL_PAGES}, got {args.page_number}")
    if args.student:
        await session.refresh_highlights()
    await session.load_page(args.page_number)
    for line in format_page(session, args.page_number, shape=args.shape):
        print(line)
    return 0


async def cmd_toggle(session, args):
    _check_ayah(args.surah, args.ayah)
    await session.refresh_highlights()
    page_number = session.page_index.page_for_surah_ayah(args.surah, args.ayah)
    resolution = await session.load_page(page_number)
    ayah_index = next(i for i, a in enumerate(resolution.ayahs)
                      if a.surah == args.surah and a.number == args.ayah)
    if args.word is None:
        result = await session.toggle_whole_ayah(page_number, ayah_index, args.category)
    else:
        result = await session.toggle_word(page_number, ayah_index, args.word, args.category)
    verb = "Created" if result.action == CREATED else "Deleted"
    scope = "whole ayah" if args.word is None else f"word {args.word}"
    print(f"{verb} {args.category} highlight {result.highlight.id} on {args.surah}:{args.ayah} "
          f"({scope}, page {page_number})")
    return 0


async def cmd_complete(session, args):
    await session.refresh_highlights()
    completed = await session.complete_category(args.category, args.page)
    where = f" on page {args.page}" if args.page else ""
    print(f"Completed {len(completed)} {args.category} highlight(s){where}")
    return 0


async def cmd_summary(session, args):
    model = session.highlights
    await session.refresh_highlights()
    with_completed = model.count_by_category(include_completed=True)
    open_only = model.count_by_category(include_completed=False)
    print(f"Student {args.student}: {len(model.highlights)} highlight(s), "
          f"{model.completed_count()} completed")
    for category in CATEGORIES:
        print(f"  {category:<9} {with_completed[category]:>4} total  {open_only[category]:>4} open")
    highlighted_pages = sorted({h.page_number for h in model.highlights})
    progress = model.page_progress(highlighted_pages)
    print(f"Completed pages: {len(progress['completed_pages'])}/{progress['total_pages']} "
          f"highlighted page(s) ({progress['percentage']:.0f}%)")
    if progress["completed_pages"]:
        print("  " + ", ".join(str(p) for p in progress["completed_pages"]))
    return 0


COMMANDS = {
    "page": cmd_page,
    "toggle": cmd_toggle,
    "complete": cmd_complete,
    "summary": cmd_summary,
}


async def run(args, settings, page_index=None):
    page_index = page_index or PageIndex()
    if args.command == "locate":
        _check_ayah(args.surah, args.ayah)
        page_number = page_index.page_for_surah_ayah(args.surah, args.ayah)
        print(f"{args.surah}:{args.ayah} ({get_surah_name(args.surah)}) is on page {page_number}")
        return 0

    script = getattr(args, "script", None)
    if script:
        settings = dict(settings, script_id=script)
    student = getattr(args, "student", None) or LOCAL_STUDENT
    session = MushafSession.from_settings(settings, student, page_index=page_index)
    return await COMMANDS[args.command](session, args)


def main(argv=None, page_index=None):
    args = build_parser().parse_args(argv)
    settings = load_settings(args.settings)
    setup_logging(args.log_level or settings.get("log_level", "INFO"))
    try:
        return asyncio.run(run(args, settings, page_index))
    except (DataUnavailable, PersistenceFailure, ValueError) as e:
        logging.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
