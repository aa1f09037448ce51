# -----------------------------------------------------------------------------
#  paging.py
#  Page-at-a-time consumer of the sequence engine
# -----------------------------------------------------------------------------

from __future__ import annotations

import queue
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor

from fibseq.config import ERROR_TITLE, PAGE_SIZE
from fibseq.display import print_page_debug
from fibseq.engine import SequenceEngine, TermOverflowError

PageReady = Callable[[tuple[int, ...]], None]
ErrorReporter = Callable[[str, str], None]
Dispatch = Callable[[Callable[[], None]], None]


def _call_inline(fn: Callable[[], None]) -> None:
    fn()


class ForegroundQueue:
    """
    Hand-back point for the context that owns the presentation.

    Workers post() callables; the owning thread runs them with drain().
    """

    def __init__(self):
        self._q: queue.SimpleQueue[Callable[[], None]] = queue.SimpleQueue()

    def post(self, fn: Callable[[], None]) -> None:
        self._q.put(fn)

    def drain(self, timeout: float | None = None) -> int:
        """
        Run everything pending. With a timeout, first wait up to that long
        for at least one callable. Returns how many ran.
        """
        ran = 0
        if timeout is not None:
            try:
                fn = self._q.get(timeout=timeout)
            except queue.Empty:
                return 0
            fn()
            ran += 1
        while True:
            try:
                fn = self._q.get_nowait()
            except queue.Empty:
                return ran
            fn()
            ran += 1


class PagingConsumer:
    """
    Drives a SequenceEngine one page at a time.

    Every engine call and every append to `results` runs on a single
    background worker, so both have exactly one writer. The presentation
    layer is told about new pages through `dispatch`, which must deliver
    the callable on the context that owns the visual state.
    """

    def __init__(
        self,
        engine: SequenceEngine,
        *,
        page_size: int = PAGE_SIZE,
        on_page_ready: PageReady | None = None,
        report_error: ErrorReporter | None = None,
        dispatch: Dispatch | None = None,
        error_title: str = ERROR_TITLE,
        debug: bool = False,
    ):
        if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size < 1:
            raise ValueError(f"page_size must be a positive int, got {page_size!r}")
        self.engine = engine
        self.page_size = page_size
        self.error_title = error_title
        self.debug = debug
        self._on_page_ready = on_page_ready
        self._report_error = report_error
        self._dispatch = dispatch or _call_inline

        self._results: list[int] = []
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="fibseq-page")
        self._lock = threading.Lock()
        self._pending: Future | None = None
        self._closed = False

    # ---- state --------------------------------------------------------------

    @property
    def results(self) -> tuple[int, ...]:
        return tuple(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def is_exhausted(self) -> bool:
        return self.engine.is_exhausted()

    def in_flight(self) -> bool:
        with self._lock:
            return self._pending is not None and not self._pending.done()

    # ---- operations ---------------------------------------------------------

    def initialize(self) -> tuple[int, ...]:
        """Compute the first page and wait for it. No-op once results exist."""
        with self._lock:
            self._check_open()
            if self._results or (self._pending is not None and not self._pending.done()):
                fut = self._pending
            else:
                fut = self._schedule(0)
        if fut is not None:
            fut.result()
        return self.results

    def notify_approaching_end(self, current_position: int) -> Future | None:
        """
        Presentation is about to show `current_position`. Schedule the next
        page when that row is within one page of the end and the engine can
        still produce terms.

        Returns the future of the page being computed, or None if nothing was
        needed. A signal that arrives while a page is in flight gets that same
        future back instead of a second page.
        """
        with self._lock:
            if self._pending is not None and not self._pending.done():
                return self._pending
            if current_position + self.page_size < len(self._results):
                return None
            if self._closed or self._past_last_term():
                return None
            return self._schedule(len(self._results))

    def fetch_term(self, position: int) -> Future:
        """Look up one position on the worker. TermOverflowError surfaces from the future."""
        with self._lock:
            self._check_open()
            return self._worker.submit(self.engine.fetch, position)

    def wait(self, timeout: float | None = None) -> tuple[int, ...]:
        """Block until the page in flight (if any) is done; re-raises worker bugs."""
        with self._lock:
            fut = self._pending
        if fut is not None:
            fut.result(timeout=timeout)
        return self.results

    def close(self) -> None:
        with self._lock:
            self._closed = True
        self._worker.shutdown(wait=True)

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("PagingConsumer is closed")

    def _past_last_term(self) -> bool:
        # An overflow seen by fetch_term leaves cached terms the list has not reached yet
        return self.engine.is_exhausted() and len(self._results) > self.engine.max_position

    def __enter__(self) -> PagingConsumer:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ---- worker side --------------------------------------------------------

    def _schedule(self, start: int) -> Future:
        # caller holds self._lock
        self._pending = self._worker.submit(self._compute_page, start, self.page_size, self.debug)
        return self._pending

    def _compute_page(self, start: int, count: int, debug: bool) -> tuple[int, ...]:
        t0 = time.perf_counter()
        page: list[int] = []
        status = "PAGE"

        for position in range(start, start + count):
            try:
                value = self.engine.fetch(position)
            except TermOverflowError as e:
                self._publish_error(str(e))
                status = "OVF"
                break
            if value is None:
                status = "SKIP"
                continue
            page.append(value)

        self._results.extend(page)
        snapshot = tuple(self._results)

        if debug:
            dt = (time.perf_counter() - t0) * 1000.0
            print_page_debug(start, start + count - 1, len(page), status, dt)

        if self._on_page_ready is not None:
            cb = self._on_page_ready
            self._dispatch(lambda: cb(snapshot))
        return snapshot

    def _publish_error(self, message: str) -> None:
        if self._report_error is None:
            return
        report, title = self._report_error, self.error_title
        self._dispatch(lambda: report(title, message))
