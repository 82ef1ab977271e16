# -*- coding: utf-8 -*-
"""
viewport_tracker.py - Keeps the "current page" of the continuously scrolling mushaf.

The tracker only observes: explicit jumps set the page first and ask the view
to scroll, and visibility reports from other pages are ignored until the jump
target itself shows up.
"""

import logging

from PyQt5.QtCore import QObject, QTimer, pyqtSignal

from utils import TOTAL_PAGES


def visible_ratio(region_top, region_height, view_top, view_height) -> float:
    """Share of a region (0.0 - 1.0) that falls inside the visible span."""
    if region_height <= 0 or view_height <= 0:
        return 0.0
    overlap = min(region_top + region_height, view_top + view_height) - max(region_top, view_top)
    return max(0.0, min(1.0, overlap / region_height))


class ViewportPageTracker(QObject):
    """
    Tracks which mounted page region dominates the viewport.
    """
    current_page_changed = pyqtSignal(int)
    scroll_requested = pyqtSignal(int)

    def __init__(self, threshold=0.5, grace_ms=150, total_pages=TOTAL_PAGES, parent=None):
        super().__init__(parent)
        if not 0.0 < threshold <= 1.0:
            raise ValueError(f"Visibility threshold must be in (0, 1], got {threshold}")
        self.threshold = threshold
        self.grace_ms = grace_ms
        self.total_pages = total_pages
        self._current_page = 1
        self._jump_target = None
        self._attaching = set()
        self._observed = set()
        self._ratios = {}

    @classmethod
    def from_settings(cls, settings, parent=None):
        return cls(threshold=settings.get("visibility_threshold", 0.5),
                   grace_ms=settings.get("observer_grace_ms", 150), parent=parent)

    @property
    def current_page(self):
        return self._current_page

    @property
    def jump_target(self):
        return self._jump_target

    def _check_page(self, page_number):
        if not 1 <= page_number <= self.total_pages:
            raise ValueError(f"Page number must be between 1 and {self.total_pages}, got {page_number}")

    def _set_current(self, page_number):
        if page_number != self._current_page:
            self._current_page = page_number
            self.current_page_changed.emit(page_number)

    # --- Regions ---
    def attach_region(self, page_number):
        """Starts observing a mounted page region after the grace delay."""
        self._check_page(page_number)
        if page_number in self._observed or page_number in self._attaching:
            return
        if self.grace_ms <= 0:
            self._start_observing(page_number)
            return
        self._attaching.add(page_number)
        QTimer.singleShot(self.grace_ms, lambda: self._start_observing(page_number))

    def _start_observing(self, page_number):
        if self.grace_ms > 0 and page_number not in self._attaching:
            # Detached during the grace delay
            return
        self._attaching.discard(page_number)
        self._observed.add(page_number)
        logging.debug(f"Observing page region {page_number}")

    def detach_region(self, page_number):
        self._attaching.discard(page_number)
        self._observed.discard(page_number)
        self._ratios.pop(page_number, None)

    def is_observing(self, page_number) -> bool:
        return page_number in self._observed

    def _is_known(self, page_number):
        return page_number in self._observed or page_number in self._attaching

    # --- Visibility ---
    def report_visibility(self, page_number, ratio):
        """Records a page's visible ratio and updates the current page if it now dominates."""
        if page_number not in self._observed:
            return
        self._ratios[page_number] = ratio

        if self._jump_target is not None and not self._is_known(self._jump_target):
            # Nothing will ever report for an unmounted target
            self._jump_target = None

        if self._jump_target is not None:
            if page_number != self._jump_target or ratio < self.threshold:
                return
            # The jump target is already current
            self._jump_target = None
            return

        candidates = {p: r for p, r in self._ratios.items() if r >= self.threshold}
        if not candidates:
            return
        dominant = max(candidates, key=lambda p: (candidates[p], -p))
        self._set_current(dominant)

    def jump_to(self, page_number):
        """Makes page_number current right away, then asks the view to scroll to it."""
        self._check_page(page_number)
        self._jump_target = page_number
        self._set_current(page_number)
        self.scroll_requested.emit(page_number)

    def cancel_jump(self):
        """Lets scroll reports drive the current page again after a jump that could not scroll."""
        self._jump_target = None


class ScrollAreaPageObserver(QObject):
    """
    Feeds a tracker from a QScrollArea whose content widget stacks one child
    widget per page, and performs the scrolls the tracker requests.
    """
    def __init__(self, tracker: ViewportPageTracker, scroll_area, parent=None):
        super().__init__(parent)
        self.tracker = tracker
        self.scroll_area = scroll_area
        self._page_widgets = {}
        scroll_area.verticalScrollBar().valueChanged.connect(self.refresh)
        tracker.scroll_requested.connect(self.scroll_to_page)

    def register_page(self, page_number, widget):
        self._page_widgets[page_number] = widget
        self.tracker.attach_region(page_number)

    def unregister_page(self, page_number):
        self._page_widgets.pop(page_number, None)
        self.tracker.detach_region(page_number)

    def _viewport_span(self):
        return self.scroll_area.verticalScrollBar().value(), self.scroll_area.viewport().height()

    def refresh(self, *_):
        view_top, view_height = self._viewport_span()
        for page_number, widget in sorted(self._page_widgets.items()):
            if not self.tracker.is_observing(page_number):
                continue
            ratio = visible_ratio(widget.y(), widget.height(), view_top, view_height)
            self.tracker.report_visibility(page_number, ratio)

    def scroll_to_page(self, page_number):
        widget = self._page_widgets.get(page_number)
        if widget is None:
            logging.debug(f"Page {page_number} is not mounted yet; cannot scroll to it")
            self.tracker.cancel_jump()
            return
        scroll_bar = self.scroll_area.verticalScrollBar()
        if scroll_bar.value() == widget.y():
            self.refresh()
        else:
            scroll_bar.setValue(widget.y())
