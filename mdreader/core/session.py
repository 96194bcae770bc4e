"""
Reader session: the single consumer of the rendering pipeline.

A session shows one document at a time. Opening a document renders it
right away with whatever extensions are ready, kicks off loading of any
extension the text asks for, and re-renders when such a load completes, but
only if that document is still the one being shown.
"""

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .assets import AssetResolver
from .config import ReaderConfig
from .document import Document
from .renderer import Renderer, RenderResult
from mdreader.features.announce import Announcer
from mdreader.features.registry import ExtensionLoader, CapabilityState, get_default_loader
from mdreader.features.search import SearchEngine, SearchMatch, SearchSnapshot
from mdreader.features.stats import WordCount, word_count
from mdreader.features.toc import HeadingPosition, TocTracker, Viewport

logger = logging.getLogger(__name__)

RenderListener = Callable[[RenderResult], None]


def call_inline(fn: Callable[[], None]) -> None:
    fn()


@dataclass(frozen=True)
class SessionView:
    """A consistent read of the session for the presentation layer."""
    document: Optional[Document]
    result: Optional[RenderResult]
    html: str
    active_id: str
    generation: int


class ReaderSession:
    """
    :param dispatch: hands a callable to the consumer thread. Extension
        completions arrive on the loader's worker; the host passes its
        event-loop scheduler here. Defaults to running the callable inline.
    """

    def __init__(self, config: Optional[ReaderConfig] = None, loader: Optional[ExtensionLoader] = None,
                 resolver: Optional[AssetResolver] = None, announcer: Optional[Announcer] = None,
                 dispatch: Callable[[Callable[[], None]], None] = call_inline,
                 scroll_to: Optional[Callable[[SearchMatch], None]] = None):
        self.config = config or ReaderConfig()
        self.loader = loader or get_default_loader()
        self.renderer = Renderer(resolver=resolver, cache_size=self.config.render_cache_size)
        self.announcer = announcer or Announcer()
        self.toc = TocTracker(self.config.threshold_offset, self.config.bottom_epsilon)
        self.search = SearchEngine(scroll_to=scroll_to)
        self.toc_open = False
        self._dispatch = dispatch
        self._listeners: List[RenderListener] = []
        self._document: Optional[Document] = None
        self._result: Optional[RenderResult] = None
        self._generation = 0
        self._lock = threading.RLock()

    # -- observers --------------------------------------------------------
    def add_listener(self, listener: RenderListener) -> None:
        self._listeners.append(listener)

    def _publish(self, result: RenderResult) -> None:
        for listener in self._listeners:
            try:
                listener(result)
            except Exception as e:
                logger.error(f"Render listener failed: {e}", exc_info=True)

    # -- state ------------------------------------------------------------
    @property
    def document(self) -> Optional[Document]:
        return self._document

    @property
    def result(self) -> Optional[RenderResult]:
        return self._result

    @property
    def generation(self) -> int:
        return self._generation

    def view(self) -> SessionView:
        with self._lock:
            return SessionView(
                document=self._document,
                result=self._result,
                html=self.search.html,
                active_id=self.toc.active_id,
                generation=self._generation,
            )

    @property
    def word_count(self) -> Optional[WordCount]:
        if self._document is None:
            return None
        return word_count(self._document.raw_text)

    # -- operations -------------------------------------------------------
    def open(self, document: Document) -> RenderResult:
        """Replace the displayed document."""
        with self._lock:
            self._generation += 1
            generation = self._generation
            self._document = document
            # Nothing from the previous document may survive the switch
            self.search.load("")
            self.toc.reset()

            for name in self.loader.triggered_by(document.raw_text):
                if self.loader.state(name) in (CapabilityState.READY, CapabilityState.FAILED):
                    continue
                future = self.loader.activate(name)
                future.add_done_callback(
                    lambda f, gen=generation: self._dispatch(lambda: self._extension_done(gen, f))
                )

            result = self.renderer.render(document, self.loader.snapshot())
            self._apply(result)

        logger.info(f"Opened document {document.name}: {len(result.headings)} headings")
        self.announcer.announce(f"Opened {document.name}")
        self._publish(result)
        return result

    def refresh(self) -> Optional[RenderResult]:
        """Re-render the current document with the current capability snapshot."""
        with self._lock:
            if self._document is None:
                return None
            result = self.renderer.render(self._document, self.loader.snapshot())
            if self._result is not None and result.html == self._result.html:
                return self._result
            self._apply(result, keep_query=True)
        self._publish(result)
        return result

    def close(self) -> None:
        with self._lock:
            self._generation += 1
            self._document = None
            self._result = None
            self.search.clear()
            self.toc.reset()

    def _apply(self, result: RenderResult, keep_query: bool = False) -> None:
        self._result = result
        self.toc.set_entries(result.headings)
        self.search.load(result.html, keep_query=keep_query)

    def _extension_done(self, generation: int, future: Future) -> None:
        with self._lock:
            current = self._generation
        if generation != current:
            logger.debug(f"Discarding stale extension completion (generation {generation}, current {current})")
            return
        if future.exception() is not None:
            return
        logger.debug(f"Extension '{future.result()}' ready, re-rendering {self._document.name if self._document else '-'}")
        self.refresh()

    # -- navigation -------------------------------------------------------
    # Extension completions may re-render on another thread, so everything
    # that touches TOC or search state holds the session lock.
    def update_scroll(self, positions: Sequence[HeadingPosition], viewport: Viewport) -> str:
        """Called after layout and on every scroll event by the presentation layer."""
        with self._lock:
            return self.toc.update(positions, viewport)

    def set_toc_open(self, is_open: bool) -> None:
        with self._lock:
            if is_open == self.toc_open:
                return
            self.toc_open = is_open
        self.announcer.announce("Table of contents opened" if is_open else "Table of contents closed")

    def find(self, query: str) -> SearchSnapshot:
        with self._lock:
            self.search.search(query)
            return self.search.snapshot()

    def search_next(self) -> SearchSnapshot:
        with self._lock:
            self.search.next()
            return self.search.snapshot()

    def search_previous(self) -> SearchSnapshot:
        with self._lock:
            self.search.previous()
            return self.search.snapshot()

    def close_search(self) -> SearchSnapshot:
        with self._lock:
            self.search.clear()
            return self.search.snapshot()

    def search_snapshot(self) -> SearchSnapshot:
        with self._lock:
            return self.search.snapshot()
