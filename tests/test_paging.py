# tests/test_paging.py
"""
Tests for the page-at-a-time consumer (background worker + hand-back).

Run: pytest -v
"""

from __future__ import annotations

import threading

import pytest

from fibseq.engine import SequenceEngine, TermOverflowError
from fibseq.paging import ForegroundQueue, PagingConsumer

FIRST_PAGE = (0, 1, 1, 2, 3)
TWO_PAGES = (0, 1, 1, 2, 3, 5, 8, 13, 21, 34)

# ---------- helpers -----------------------------------------------------------


class GatedEngine(SequenceEngine):
    """Blocks fetches at or beyond `from_position` until the gate opens."""

    def __init__(self, from_position: int, bits: int = 64):
        super().__init__(bits)
        self.from_position = from_position
        self.gate = threading.Event()
        self.entered = threading.Event()
        self.calls: list[int] = []

    def fetch(self, position):
        self.calls.append(position)
        if position >= self.from_position:
            self.entered.set()
            assert self.gate.wait(timeout=5), "gate never opened"
        return super().fetch(position)


class Recorder:
    def __init__(self):
        self.pages: list[tuple[int, ...]] = []
        self.errors: list[tuple[str, str]] = []
        self.threads: set[str] = set()

    def on_page_ready(self, results):
        self.threads.add(threading.current_thread().name)
        self.pages.append(results)

    def report_error(self, title, message):
        self.errors.append((title, message))


@pytest.fixture
def rec():
    return Recorder()


def _consumer(rec, engine=None, **kw):
    return PagingConsumer(
        engine or SequenceEngine(),
        on_page_ready=rec.on_page_ready,
        report_error=rec.report_error,
        **kw,
    )


# ---------- first page --------------------------------------------------------


def test_initialize_computes_first_page(rec):
    with _consumer(rec) as pc:
        assert pc.initialize() == FIRST_PAGE
        assert pc.results == FIRST_PAGE
        assert rec.pages == [FIRST_PAGE]
        assert rec.errors == []


def test_initialize_twice_does_not_append(rec):
    with _consumer(rec) as pc:
        pc.initialize()
        assert pc.initialize() == FIRST_PAGE
        assert len(rec.pages) == 1


def test_engine_runs_on_the_worker_thread(rec):
    seen: list[str] = []

    class Spy(SequenceEngine):
        def fetch(self, position):
            seen.append(threading.current_thread().name)
            return super().fetch(position)

    with _consumer(rec, Spy()) as pc:
        pc.initialize()
        pc.notify_approaching_end(4).result()
    assert seen
    assert all(name.startswith("fibseq-page") for name in seen)


# ---------- next pages --------------------------------------------------------


def test_approaching_end_loads_next_page(rec):
    with _consumer(rec) as pc:
        pc.initialize()
        fut = pc.notify_approaching_end(2)
        assert fut is not None
        assert fut.result(timeout=5) == TWO_PAGES
        assert pc.results == TWO_PAGES
        assert rec.pages[-1] == TWO_PAGES


@pytest.mark.parametrize("position,loads", [
    (0, False),
    (4, False),
    (5, True),
    (9, True),
])
def test_signal_only_near_the_end(rec, position, loads):
    with _consumer(rec) as pc:
        pc.initialize()
        pc.notify_approaching_end(2).result(timeout=5)
        fut = pc.notify_approaching_end(position)
        assert (fut is not None) is loads
        pc.wait(timeout=5)
        assert len(pc) == (15 if loads else 10)


def test_duplicate_signals_while_in_flight_append_one_page(rec):
    eng = GatedEngine(from_position=5)
    with _consumer(rec, eng) as pc:
        pc.initialize()
        first = pc.notify_approaching_end(2)
        assert eng.entered.wait(timeout=5)

        assert pc.in_flight()
        again = pc.notify_approaching_end(3)
        once_more = pc.notify_approaching_end(4)
        assert again is first
        assert once_more is first

        eng.gate.set()
        assert pc.wait(timeout=5) == TWO_PAGES

    assert len(rec.pages) == 2
    assert eng.calls.count(5) == 1


def test_signals_after_a_page_lands_are_rechecked(rec):
    eng = GatedEngine(from_position=5)
    with _consumer(rec, eng) as pc:
        pc.initialize()
        pc.notify_approaching_end(4)
        eng.gate.set()
        pc.wait(timeout=5)
        # 4 is no longer near the end of 10 rows
        assert pc.notify_approaching_end(4) is None
        assert len(pc) == 10


# ---------- overflow ----------------------------------------------------------


def test_overflow_mid_page_reports_once_and_stops(rec):
    # u8: F(13)=233 is the last term
    with _consumer(rec, SequenceEngine(8)) as pc:
        pc.initialize()
        pc.notify_approaching_end(4).result(timeout=5)
        pc.notify_approaching_end(9).result(timeout=5)

        assert len(pc) == 14
        assert pc.results[-1] == 233
        assert pc.is_exhausted()
        assert rec.errors == [("Error", "Maximum 8-bit unsigned value reached.")]

        assert pc.notify_approaching_end(13) is None
        assert len(rec.errors) == 1


def test_overflow_inside_first_page(rec):
    with _consumer(rec, SequenceEngine(3), page_size=10, error_title="Overflow") as pc:
        assert pc.initialize() == (0, 1, 1, 2, 3, 5)
        assert rec.errors == [("Overflow", "Maximum 3-bit unsigned value reached.")]


def test_exhausted_engine_yields_silently(rec):
    eng = SequenceEngine(3)
    with pytest.raises(TermOverflowError):
        eng.fetch(6)
    with _consumer(rec, eng, page_size=10) as pc:
        assert pc.initialize() == (0, 1, 1, 2, 3, 5)
        assert rec.errors == []


def test_fetch_term_surfaces_overflow(rec):
    with _consumer(rec) as pc:
        assert pc.fetch_term(93).result(timeout=5) == 12200160415121876738
        with pytest.raises(TermOverflowError):
            pc.fetch_term(94).result(timeout=5)
        assert pc.is_exhausted()
        assert pc.fetch_term(94).result(timeout=5) is None


def test_lookup_overflow_leaves_the_list_scrolling(rec):
    # u8: a lookup past F(13) exhausts the engine before the list gets there
    with _consumer(rec, SequenceEngine(8)) as pc:
        pc.initialize()
        with pytest.raises(TermOverflowError):
            pc.fetch_term(14).result(timeout=5)

        pc.notify_approaching_end(4).result(timeout=5)
        pc.notify_approaching_end(9).result(timeout=5)
        assert len(pc) == 14
        assert pc.results[-1] == 233
        assert pc.notify_approaching_end(13) is None
        assert rec.errors == []


# ---------- shutdown ----------------------------------------------------------


def test_closed_consumer_refuses_new_work(rec):
    pc = _consumer(rec)
    pc.initialize()
    pc.close()

    assert pc.notify_approaching_end(4) is None
    with pytest.raises(RuntimeError, match="closed"):
        pc.fetch_term(1)
    with pytest.raises(RuntimeError, match="closed"):
        pc.initialize()
    assert pc.results == FIRST_PAGE


# ---------- hand-back ---------------------------------------------------------


def test_foreground_queue_delivers_on_drain(rec):
    fg = ForegroundQueue()
    with _consumer(rec, dispatch=fg.post) as pc:
        pc.initialize()
        assert rec.pages == []  # nothing delivered until the owner drains
        assert fg.drain() == 1
        assert rec.pages == [FIRST_PAGE]
        assert rec.threads == {threading.current_thread().name}


def test_foreground_queue_error_and_page_in_order(rec):
    fg = ForegroundQueue()
    order: list[str] = []
    pc = PagingConsumer(
        SequenceEngine(3),
        page_size=10,
        on_page_ready=lambda r: order.append(f"page:{len(r)}"),
        report_error=lambda t, m: order.append("error"),
        dispatch=fg.post,
    )
    with pc:
        pc.initialize()
        assert fg.drain(timeout=5) == 2
    assert order == ["error", "page:6"]


def test_drain_timeout_with_nothing_pending():
    assert ForegroundQueue().drain(timeout=0.01) == 0


def test_without_callbacks():
    with PagingConsumer(SequenceEngine(8)) as pc:
        pc.initialize()
        while pc.notify_approaching_end(len(pc) - 1) is not None:
            pc.wait(timeout=5)
        assert len(pc) == 14


@pytest.mark.parametrize("size", [0, -1, 2.5, True])
def test_bad_page_size(size):
    with pytest.raises(ValueError):
        PagingConsumer(SequenceEngine(), page_size=size)


def test_debug_lines_go_to_stderr(rec, capsys):
    with _consumer(rec, SequenceEngine(8), debug=True) as pc:
        pc.initialize()
        pc.notify_approaching_end(4).result(timeout=5)
        pc.notify_approaching_end(9).result(timeout=5)
    err = capsys.readouterr().err
    assert "PAGE" in err
    assert "OVF" in err
