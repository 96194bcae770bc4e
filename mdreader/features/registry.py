from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from enum import Enum, auto
from typing import Any, Callable, Dict, FrozenSet, List, Optional
import importlib
import logging
import threading

from mdreader.core.exceptions import UnknownExtensionError

logger = logging.getLogger(__name__)


class CapabilityState(Enum):
    NOT_REQUESTED = auto()
    LOADING = auto()
    READY = auto()
    FAILED = auto()  # terminal, never becomes READY


class Extension:
    """
    An optional rendering capability that is too heavy to load up front.
    `trigger` is a cheap predicate over raw document text; `loader` does the
    expensive work and runs off the caller's thread.
    """
    def __init__(self, name: str, trigger: Callable[[str], bool], loader: Callable[[], Any], meta: Dict = None):
        self.name = name
        self.trigger = trigger
        self.loader = loader
        self.meta = meta or {}

    def __repr__(self):
        return f"Extension({self.name!r})"


class Pipeline:
    """
    A sequence of steps executed in order over the same document object.
    Unlike a best-effort filter chain, a failing step aborts the run so the
    caller can fall back to a safe rendering.
    """
    def __init__(self, name: str):
        self.name = name
        self._steps: List[Callable[[Any], Any]] = []

    def add_step(self, handler: Callable[[Any], Any]):
        self._steps.append(handler)

    def run(self, content: Any) -> Any:
        """Execute the pipeline; a step returning None mutated in place."""
        for step in self._steps:
            result = step(content)
            if result is not None:
                content = result
        return content

    def __iter__(self):
        return iter(self._steps)

    def __len__(self):
        return len(self._steps)


class ExtensionLoader:
    """
    Owns the lazy-load lifecycle of optional extensions.

    State only moves forward (NOT_REQUESTED -> LOADING -> READY or FAILED).
    Each extension is loaded at most once; concurrent `activate` calls share
    one future.
    """
    def __init__(self, executor: Optional[Executor] = None):
        self._extensions: Dict[str, Extension] = {}
        self._states: Dict[str, CapabilityState] = {}
        self._futures: Dict[str, Future] = {}
        self._executor = executor
        self._lock = threading.Lock()

    def register(self, extension: Extension) -> None:
        if not isinstance(extension, Extension):
            raise TypeError("Extension must be an Extension instance")
        with self._lock:
            if extension.name in self._extensions:
                logger.warning(f"Extension '{extension.name}' is already registered. Keeping the first one.")
                return
            self._extensions[extension.name] = extension
            self._states[extension.name] = CapabilityState.NOT_REQUESTED
        logger.info(f"ExtensionLoader: Registered extension '{extension.name}'")

    def get_extension(self, name: str) -> Extension:
        try:
            return self._extensions[name]
        except KeyError:
            raise UnknownExtensionError(name) from None

    def names(self) -> List[str]:
        return list(self._extensions)

    def state(self, name: str) -> CapabilityState:
        self.get_extension(name)
        return self._states[name]

    def snapshot(self) -> FrozenSet[str]:
        """Names of all extensions that are READY right now."""
        return frozenset(n for n, s in self._states.items() if s is CapabilityState.READY)

    def triggered_by(self, text: str) -> List[str]:
        """Extensions whose trigger predicate matches `text`."""
        matched = []
        for ext in self._extensions.values():
            try:
                if ext.trigger(text):
                    matched.append(ext.name)
            except Exception as e:
                logger.error(f"Trigger for extension '{ext.name}' failed: {e}", exc_info=True)
        return matched

    def load_triggered(self, text: str, timeout: Optional[float] = None) -> FrozenSet[str]:
        """
        Activate every extension `text` asks for and wait for the loads.
        For one-shot renders that cannot re-render later. Failed loads are
        left out of the returned snapshot.
        """
        futures = [self.activate(name) for name in self.triggered_by(text)]
        _, pending = wait(futures, timeout=timeout)
        if pending:
            logger.warning(f"ExtensionLoader: {len(pending)} extension(s) still loading after {timeout}s")
        return self.snapshot()

    def _get_executor(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="mdreader-ext")
        return self._executor

    def activate(self, name: str) -> Future:
        """
        Start loading `name` unless it is already loading or loaded.
        Returns a future that resolves to the name once the extension is
        READY, or carries the load error.
        """
        ext = self.get_extension(name)
        with self._lock:
            existing = self._futures.get(name)
            if existing is not None:
                return existing
            ready: Future = Future()
            self._futures[name] = ready
            self._states[name] = CapabilityState.LOADING

        logger.info(f"ExtensionLoader: Loading extension '{name}'")
        load = self._get_executor().submit(ext.loader)
        load.add_done_callback(lambda f: self._finish(name, ready, f))
        return ready

    def _finish(self, name: str, ready: Future, load: Future) -> None:
        error = load.exception()
        with self._lock:
            if error is None:
                self._states[name] = CapabilityState.READY
            else:
                self._states[name] = CapabilityState.FAILED
        if error is None:
            logger.info(f"ExtensionLoader: Extension '{name}' is ready")
            ready.set_result(name)
        else:
            logger.warning(f"ExtensionLoader: Extension '{name}' failed to load: {error}")
            ready.set_exception(error)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)


# -------------------------------------------------------------------------
# Built-in extensions
# -------------------------------------------------------------------------
MATH_EXTENSION = "math"


def has_math_delimiter(text: str) -> bool:
    return '$' in text


def load_math() -> Any:
    # latex2mathml pulls in its symbol tables on import
    return importlib.import_module("latex2mathml.converter")


def create_default_loader(executor: Optional[Executor] = None) -> ExtensionLoader:
    loader = ExtensionLoader(executor)
    loader.register(Extension(MATH_EXTENSION, has_math_delimiter, load_math, meta={"module": "latex2mathml"}))
    return loader


_default_loader: Optional[ExtensionLoader] = None
_default_lock = threading.Lock()


def get_default_loader() -> ExtensionLoader:
    """Process-wide loader shared by every session."""
    global _default_loader
    with _default_lock:
        if _default_loader is None:
            _default_loader = create_default_loader()
        return _default_loader
