# -*- coding: utf-8 -*-
"""
annotation_compositor.py - Turns a word's projected highlight categories, its
annotation markers and the current selection gesture into the style the page
widget paints behind it.

Only the background changes; the text keeps DEFAULT_TEXT_COLOR whatever the
categories are so the script stays legible.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Tuple

from PyQt5.QtCore import QPointF, QRectF
from PyQt5.QtGui import QBrush, QColor, QLinearGradient

from highlight_store import CATEGORIES, COMPLETED

# --- Category colors (QColor(Red, Green, Blue, Alpha)) ---
CATEGORY_COLORS = {
    "recap": QColor(147, 51, 234),     # Purple
    "homework": QColor(34, 197, 94),   # Green
    "tajweed": QColor(249, 115, 22),   # Orange
    "haraka": QColor(239, 68, 68),     # Red
    "letter": QColor(113, 63, 18),     # Brown
    COMPLETED: QColor(250, 204, 21),   # Gold
}

SINGLE_CATEGORY_ALPHA = 0.3
BLEND_ALPHA = 0.4
COMPLETED_ALPHA = 0.4

DEFAULT_TEXT_COLOR = QColor(0, 0, 0, 255)
SELECTION_COLOR = QColor(202, 138, 4, 102)   # Yellow, 40%
HOVER_COLOR = QColor(55, 65, 81, 77)         # Gray, 30%
BLEND_BORDER_COLOR = QColor(255, 255, 255, 51)
HARD_STOP_OFFSET = 1e-4

NOTE_INDICATOR = "note"
INK_INDICATOR = "ink"


def category_color(category, alpha) -> QColor:
    color = QColor(CATEGORY_COLORS[category])
    color.setAlphaF(alpha)
    return color


@dataclass(frozen=True)
class SelectionRange:
    """
    An in-progress drag selection between two (ayah_index, word_index)
    positions on a page, in either direction.
    """
    start: Tuple[int, int]
    end: Tuple[int, int]

    def contains(self, ayah_index, word_index) -> bool:
        first, last = sorted((tuple(self.start), tuple(self.end)))
        return first <= (ayah_index, word_index) <= last


@dataclass(frozen=True)
class AnnotationIndex:
    """Which highlights carry note threads and which word positions carry ink strokes."""
    note_highlight_ids: FrozenSet[str] = field(default_factory=frozenset)
    ink_words: FrozenSet[Tuple[int, int]] = field(default_factory=frozenset)

    def has_note(self, entries) -> bool:
        return any(hid in self.note_highlight_ids for e in entries for hid in e.highlight_ids)

    def has_ink(self, ayah_index, word_index) -> bool:
        return (ayah_index, word_index) in self.ink_words


@dataclass(frozen=True)
class WordStyle:
    background: Optional[QColor] = None
    segments: Tuple[QColor, ...] = ()
    border: Optional[QColor] = None
    indicator: Optional[str] = None
    text_color: QColor = field(default_factory=lambda: QColor(DEFAULT_TEXT_COLOR))
    hover: Optional[QColor] = None
    in_selection: bool = False
    categories: Tuple[str, ...] = ()
    completed: bool = False

    @property
    def is_blend(self) -> bool:
        return len(self.segments) > 1

    def brush(self, rect: QRectF) -> QBrush:
        """
        Brush for the word's background rect. Blends become a diagonal
        (top-left to bottom-right) gradient with hard stops, one equal
        segment per category.
        """
        if self.is_blend:
            gradient = QLinearGradient(QPointF(rect.left(), rect.top()),
                                       QPointF(rect.right(), rect.bottom()))
            count = len(self.segments)
            for i, color in enumerate(self.segments):
                # Qt replaces a stop at an equal position, so each segment starts just after the previous one
                start = i / count + (HARD_STOP_OFFSET if i else 0.0)
                gradient.setColorAt(start, color)
                gradient.setColorAt((i + 1) / count, color)
            return QBrush(gradient)
        if self.background is not None:
            return QBrush(self.background)
        return QBrush()


def _indicator(has_note, has_ink):
    if has_note:
        return NOTE_INDICATOR
    if has_ink:
        return INK_INDICATOR
    return None


def compose_word_style(entries, has_note=False, has_ink=False,
                       highlight_mode=False, in_selection=False) -> WordStyle:
    """
    entries are the ProjectedWord items on the word (any order). Completed
    wins over everything, one category gets its own color, several get a blend.
    """
    indicator = _indicator(has_note, has_ink)
    categories = tuple(c for c in CATEGORIES if any(e.category == c for e in entries))

    # The selection tint replaces committed colors until the gesture ends
    if in_selection:
        return WordStyle(background=QColor(SELECTION_COLOR), indicator=indicator,
                         in_selection=True, categories=categories)

    if not categories:
        hover = QColor(HOVER_COLOR) if highlight_mode else None
        return WordStyle(indicator=indicator, hover=hover)

    if any(e.completed for e in entries):
        return WordStyle(background=category_color(COMPLETED, COMPLETED_ALPHA),
                         indicator=indicator, categories=categories, completed=True)

    if len(categories) == 1:
        return WordStyle(background=category_color(categories[0], SINGLE_CATEGORY_ALPHA),
                         indicator=indicator, categories=categories)

    segments = tuple(category_color(c, BLEND_ALPHA) for c in categories)
    return WordStyle(segments=segments, border=QColor(BLEND_BORDER_COLOR),
                     indicator=indicator, categories=categories)


def compose_page(ayahs, projection, annotations: Optional[AnnotationIndex] = None,
                 selection: Optional[SelectionRange] = None,
                 highlight_mode=False) -> Dict[Tuple[int, int], WordStyle]:
    """Styles for every word on a resolved page keyed by (ayah_index, word_index)."""
    annotations = annotations or AnnotationIndex()
    styles = {}
    for ayah_index, ayah in enumerate(ayahs):
        for word_index in range(len(ayah.words)):
            entries = projection.entries_at(ayah_index, word_index) if projection else []
            styles[(ayah_index, word_index)] = compose_word_style(
                entries,
                has_note=annotations.has_note(entries),
                has_ink=annotations.has_ink(ayah_index, word_index),
                highlight_mode=highlight_mode,
                in_selection=bool(selection and selection.contains(ayah_index, word_index)),
            )
    return styles
