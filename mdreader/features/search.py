"""
In-document find: highlight every occurrence of a query in the rendered
HTML and step through them.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from mdreader.core.markdown_ext import unique_slug

logger = logging.getLogger(__name__)

MARK_CLASS = "find-mark"
ACTIVE_CLASS = "find-mark--active"
# Heading slugs never contain underscores
MATCH_ID_PREFIX = "find_match_"
SKIP_PARENTS = {'script', 'style', 'mark'}


@dataclass(frozen=True)
class SearchMatch:
    index: int  # 1-based
    element_id: str
    text: str


@dataclass
class SearchState:
    query: str = ""
    matches: List[SearchMatch] = field(default_factory=list)
    current_index: int = 0  # 0 = nothing selected


@dataclass(frozen=True)
class SearchSnapshot:
    query: str
    total: int
    current: Optional[SearchMatch]
    status: str
    html: str


class SearchEngine:
    """
    Highlights case-insensitive literal matches inside single text nodes.

    `scroll_to` is called with the newly current match so the presentation
    layer can bring it into view.
    """

    def __init__(self, html: str = "", scroll_to: Optional[Callable[[SearchMatch], None]] = None):
        self.scroll_to = scroll_to
        self._base_html = html
        self._soup: Optional[BeautifulSoup] = None
        self._marks: List[Tag] = []
        self.state = SearchState()

    # -- lifecycle --------------------------------------------------------
    def load(self, html: str, keep_query: bool = False) -> None:
        """Attach to newly rendered HTML; drops all match state."""
        query = self.state.query
        self._base_html = html
        self.clear()
        if keep_query and query.strip():
            self.search(query)

    def clear(self) -> None:
        """Remove highlights and forget the query."""
        self._soup = None
        self._marks = []
        self.state = SearchState()

    # -- queries ----------------------------------------------------------
    def search(self, query: str) -> SearchState:
        self._soup = None
        self._marks = []
        self.state = SearchState(query=query)
        if not query.strip() or not self._base_html:
            return self.state

        soup = BeautifulSoup(self._base_html, 'html.parser')
        pattern = re.compile(re.escape(query), re.IGNORECASE)
        marks: List[Tag] = []
        taken = {tag['id'] for tag in soup.find_all(id=True)}

        for node in list(soup.find_all(string=True)):
            if isinstance(node, Comment) or node.parent is None or node.parent.name in SKIP_PARENTS:
                continue
            text = str(node)
            pieces = []
            last = 0
            for m in pattern.finditer(text):
                if m.start() > last:
                    pieces.append(NavigableString(text[last:m.start()]))
                mark_id = unique_slug(f"{MATCH_ID_PREFIX}{len(marks) + 1}", taken)
                taken.add(mark_id)
                mark = soup.new_tag('mark', attrs={'class': MARK_CLASS, 'id': mark_id})
                mark.string = m.group(0)
                pieces.append(mark)
                marks.append(mark)
                last = m.end()
            if not pieces:
                continue
            if last < len(text):
                pieces.append(NavigableString(text[last:]))
            node.replace_with(*pieces)

        self._soup = soup
        self._marks = marks
        self.state.matches = [
            SearchMatch(index=i + 1, element_id=mark['id'], text=mark.get_text())
            for i, mark in enumerate(marks)
        ]
        logger.debug(f"Search '{query}': {len(marks)} matches")
        if marks:
            self._select(1)
        return self.state

    def next(self) -> Optional[SearchMatch]:
        return self._step(1)

    def previous(self) -> Optional[SearchMatch]:
        return self._step(-1)

    def _step(self, direction: int) -> Optional[SearchMatch]:
        total = len(self.state.matches)
        if not total:
            return None
        current = self.state.current_index or 1
        # current is 1-based; wrap in 0-based space
        target = (current - 1 + direction) % total + 1
        return self._select(target)

    def _select(self, index: int) -> SearchMatch:
        if self.state.current_index:
            previous = self._marks[self.state.current_index - 1]
            previous['class'] = [MARK_CLASS]
        self._marks[index - 1]['class'] = [MARK_CLASS, ACTIVE_CLASS]
        self.state.current_index = index
        match = self.state.matches[index - 1]
        if self.scroll_to is not None:
            self.scroll_to(match)
        return match

    # -- views ------------------------------------------------------------
    @property
    def current(self) -> Optional[SearchMatch]:
        if not self.state.current_index:
            return None
        return self.state.matches[self.state.current_index - 1]

    @property
    def total(self) -> int:
        return len(self.state.matches)

    @property
    def html(self) -> str:
        """The document HTML with highlights applied, if any."""
        if self._soup is None:
            return self._base_html
        return str(self._soup)

    @property
    def status_text(self) -> str:
        if not self.state.query.strip():
            return ""
        if not self.state.matches:
            return "No matches"
        return f"{self.state.current_index} of {len(self.state.matches)}"

    def snapshot(self) -> SearchSnapshot:
        return SearchSnapshot(query=self.state.query, total=self.total, current=self.current,
                              status=self.status_text, html=self.html)
