"""
Table of contents: heading extraction and active-heading tracking.

Geometry comes from the presentation layer as plain numbers (heading tops
relative to the scroll container's visible top edge), so the tracking
algorithm runs the same against a browser or synthetic test data.
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Optional, Sequence

from bs4 import BeautifulSoup

from mdreader.core.markdown_ext import PERMALINK_CLASS

logger = logging.getLogger(__name__)

TOC_LEVELS = ('h1', 'h2', 'h3', 'h4')
DEFAULT_THRESHOLD_OFFSET = 120.0
DEFAULT_BOTTOM_EPSILON = 4.0


@dataclass(frozen=True)
class Heading:
    id: str
    text: str
    level: int


@dataclass(frozen=True)
class HeadingPosition:
    id: str
    top: float


@dataclass(frozen=True)
class Viewport:
    scroll_top: float
    client_height: float
    scroll_height: float

    @property
    def max_scroll(self) -> float:
        return max(0.0, self.scroll_height - self.client_height)


def extract_headings(html: str) -> List[Heading]:
    """
    Read h1-h4 elements that carry an id, in document order.
    The permalink glyph is not part of the display text.
    """
    if not html:
        return []
    soup = BeautifulSoup(html, 'html.parser')
    headings = []
    for el in soup.find_all(TOC_LEVELS):
        anchor_id = el.get('id')
        if not anchor_id:
            continue
        for permalink in el.find_all('a', class_=PERMALINK_CLASS):
            permalink.decompose()
        headings.append(Heading(id=anchor_id, text=el.get_text().strip(), level=int(el.name[1])))
    return headings


def compute_active_heading(positions: Sequence[HeadingPosition], viewport: Viewport,
                           threshold_offset: float = DEFAULT_THRESHOLD_OFFSET,
                           bottom_epsilon: float = DEFAULT_BOTTOM_EPSILON) -> str:
    """
    Pick the heading the reader is currently in.

    Normally this is the last heading whose top has scrolled above the
    threshold line. Once the container is scrolled to (nearly) its end, the
    last heading still above the bottom edge wins instead, so a short final
    section can become active even though its heading never reaches the
    threshold. Falls back to the first heading.
    """
    if not positions:
        return ""

    at_bottom = (
        viewport.max_scroll > 0
        and viewport.scroll_top + viewport.client_height >= viewport.scroll_height - bottom_epsilon
    )

    active: Optional[str] = None
    if at_bottom:
        for pos in positions:
            if pos.top < viewport.client_height:
                active = pos.id
    else:
        for pos in positions:
            if pos.top <= threshold_offset:
                active = pos.id

    return active if active is not None else positions[0].id


class TocState(Enum):
    NO_HEADINGS = auto()
    TRACKING = auto()


class TocTracker:
    """Holds the TOC entries of the displayed document and its active entry."""

    def __init__(self, threshold_offset: float = DEFAULT_THRESHOLD_OFFSET,
                 bottom_epsilon: float = DEFAULT_BOTTOM_EPSILON):
        self.threshold_offset = threshold_offset
        self.bottom_epsilon = bottom_epsilon
        self.entries: List[Heading] = []
        self.active_id = ""

    @property
    def state(self) -> TocState:
        return TocState.TRACKING if self.entries else TocState.NO_HEADINGS

    def set_entries(self, entries: Sequence[Heading]) -> None:
        """Structural change: restart tracking at the first heading."""
        self.entries = list(entries)
        self.active_id = self.entries[0].id if self.entries else ""
        logger.debug(f"TOC: {len(self.entries)} entries, active '{self.active_id}'")

    def reset(self) -> None:
        self.set_entries([])

    def update(self, positions: Sequence[HeadingPosition], viewport: Viewport) -> str:
        """Recompute the active heading from live geometry."""
        if not self.entries:
            return self.active_id
        known = {e.id for e in self.entries}
        relevant = [p for p in positions if p.id in known]
        if not relevant:
            return self.active_id
        self.active_id = compute_active_heading(relevant, viewport, self.threshold_offset, self.bottom_epsilon)
        return self.active_id
