# src/fibseq/cli.py

"""
fibseq - Fibonacci terms in a fixed-width word, one page at a time

Description:
    Scrolls through the Fibonacci sequence in pages. Terms are memoized and
    computed on a background worker; the list stops for good at the first
    term that no longer fits in the unsigned word (64-bit by default).

usage: see fibseq -h
"""

from __future__ import annotations

import argparse
import faulthandler
import os
import sys
import textwrap
import threading
import time
import traceback
from importlib.resources import files as pkg_files
from typing import NamedTuple

from colorama import Fore, Style
from colorama import init as colorama_init

from fibseq import __version__ as _ver
from fibseq import config as CONFIG
from fibseq.config import ERROR_TITLE, PAGE_SIZE
from fibseq.display import (
    format_row,
    print_profiles_with_descriptions,
    print_rows,
    print_status,
    print_verification,
    show_error,
    show_intro_help,
)
from fibseq.engine import WORD_BITS, SequenceEngine, TermOverflowError
from fibseq.paging import ForegroundQueue, PagingConsumer
from fibseq.runtime import APPLY, CFG, ensure_runtime_deps
from fibseq.runtime import current as _rt_current
from fibseq.utility import (
    UserInputError,
    clear_screen,
    flatten_dotted,
    get_terminal_height,
    get_terminal_width,
    parse_position,
    typename,
    verify_terms,
)
from fibseq.workspace import ensure_workspace_seeded, seed_workspace, workspace_dir


# In memory session history
class HistoryItem(NamedTuple):
    n: int
    value: int | None
    timestamp: float


_HISTORY: list[HistoryItem] = []


def add_to_history(n: int, value: int | None) -> None:
    _HISTORY.append(HistoryItem(n=n, value=value, timestamp=time.time()))


def get_history() -> list[HistoryItem]:
    return list(_HISTORY)


def _install_loud_error_handlers(debug: bool) -> None:
    if not debug:
        return
    # Always show full Python tracebacks
    faulthandler.enable()

    def _excepthook(exc_type, exc, tb):
        sys.stderr.write("\n[UNCAUGHT EXCEPTION]\n")
        traceback.print_exception(exc_type, exc, tb, file=sys.stderr)
        sys.stderr.flush()
    sys.excepthook = _excepthook

    # Page computations run on a worker thread
    def _thread_excepthook(args):
        sys.stderr.write("\n[UNCAUGHT THREAD EXCEPTION]\n")
        traceback.print_exception(args.exc_type, args.exc_value, args.exc_traceback, file=sys.stderr)
        sys.stderr.flush()
    threading.excepthook = _thread_excepthook


def _print_user_error(msg: str) -> None:
    """Uniform, one-line friendly error."""
    prefix = f"{Fore.RED}Error:{Style.RESET_ALL}"
    if not (msg.startswith("Invalid input:") or msg.startswith("Error:")):
        msg = f"{prefix} {msg}"
    print(msg, file=sys.stderr)


def _resolve_inputs(items: list[str]) -> tuple[str | None, int | None]:
    """Return (profile_or_command, position) based on the first two positionals.

    Rules:
      - If one item parses as a position -> position; else -> profile/command
      - If two items:
          * first numeric, second not -> (None, position)
          * first not, second numeric -> (profile, position)
          * both numeric -> take the first as position
          * neither numeric -> (profile, None)
    """
    if not items:
        return None, None

    if len(items) == 1:
        n = parse_position(items[0])
        return (None, n) if n is not None else (items[0], None)

    a, b = items[0], items[1]
    na, nb = parse_position(a), parse_position(b)

    if na is not None:
        return None, na
    if nb is not None:
        return a, nb
    return a, None


# ---- scroll view (presentation driver) ----

class ScrollView:
    """
    Terminal stand-in for a scrolling list: rows are printed as pages arrive,
    and scrolling to the last row signals the consumer that the end is near.
    """

    def __init__(self, *, page_size: int, bits: int, error_title: str,
                 show_position: bool = True, debug: bool = False):
        self.fg = ForegroundQueue()
        self.engine = SequenceEngine(bits)
        self.show_position = show_position
        self.shown = 0
        self.consumer = PagingConsumer(
            self.engine,
            page_size=page_size,
            on_page_ready=self.on_page_ready,
            report_error=show_error,
            dispatch=self.fg.post,
            error_title=error_title,
            debug=debug,
        )

    def on_page_ready(self, results: tuple[int, ...]) -> None:
        self.shown = print_rows(results, self.shown, show_position=self.show_position)

    def start(self) -> None:
        self.consumer.initialize()
        self.fg.drain()

    def scroll(self) -> bool:
        """Show the last row; returns False when no page was loaded."""
        fut = self.consumer.notify_approaching_end(max(self.shown - 1, 0))
        if fut is None:
            return False
        fut.result()
        self.fg.drain()
        return True

    def lookup(self, n: int) -> int | None:
        try:
            return self.consumer.fetch_term(n).result()
        except TermOverflowError as e:
            show_error(self.consumer.error_title, str(e))
            return None

    def close(self) -> None:
        self.consumer.close()
        self.fg.drain()


def _lookup_once(n: int, *, bits: int, error_title: str, show_position: bool) -> int:
    engine = SequenceEngine(bits)
    try:
        value = engine.fetch(n)
    except TermOverflowError as e:
        show_error(error_title, str(e))
        return 1
    print(format_row(n, value, show_position=show_position))
    return 0


# ---- argparse ----
def _build_parser() -> argparse.ArgumentParser:

    epilog = textwrap.dedent("""\
    commands:
      init
          Create the workspace folder and copy packaged profiles if missing.

      init overwrite
          Meant for developers. Requires environment variable FIBSEQ_DEV=1.
          Replaces all profiles in the workspace with the packaged ones.

      list
          List all available profiles.

      active
          Show the last used profile.

      where
          Show the workspace and package paths.
    """)

    p = argparse.ArgumentParser(
        description="fibseq — Fibonacci terms in a fixed-width word, one page at a time",
        usage=(
            "fibseq [[profile] [position]] [--page-size N] [--bits N] [--debug]\n"
            "       fibseq -h | --help\n"
            "       fibseq init [overwrite] | list | active | where\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=epilog,
    )
    p.add_argument("items", nargs="*", metavar="[[profile] position]",
                   help="optional profile name followed by a position to look up")
    p.add_argument("--page-size", type=int, default=None, help="Terms per page (overrides profile)")
    p.add_argument("--bits", type=int, default=None, help="Unsigned word width (overrides profile)")
    p.add_argument("--debug", action="store_true", help="Show per-page timings and full tracebacks")
    p.add_argument("--version", action="version", version=f"fibseq {_ver}")

    return p


def main(argv=None) -> int:
    """Thin wrapper: catch friendly errors, hide tracebacks unless debug."""
    try:
        return _main_impl(argv)
    except UserInputError as e:
        _print_user_error(str(e))
        return 2
    except KeyboardInterrupt:
        print("Aborted by user.", file=sys.stderr)
        return 130
    except Exception as e:
        debug = ("--debug" in (argv if argv is not None else sys.argv))
        if debug:
            raise
        print(f"Unexpected error: {e.__class__.__name__}: {e}", file=sys.stderr)
        print("Run with --debug for a full traceback.", file=sys.stderr)
        return 1


def _select_profile_name(explicit: str | None) -> str:
    """
    Precedence:
      1) explicit profile argument
      2) last used (from workspace)
      3) 'default'
    """
    if explicit:
        return explicit
    last = CONFIG.read_current_profile()
    if last and CONFIG.has_profile(last):
        return last
    return "default"


def _apply_profile(name: str, debug: bool) -> str:
    """Load & install a profile into the runtime; built-in defaults if missing."""
    if CONFIG.has_profile(name):
        selected = CONFIG.load_settings(name)
    else:
        selected = CONFIG.default_settings()
    APPLY(selected)
    rt = _rt_current()
    rt.debug = rt.debug or debug

    if rt.debug:
        print(f"[debug] active profile: {selected.name}", file=sys.stderr)
        src_path = getattr(selected, "_source", None)
        if src_path:
            print(f"[debug] profile file: {src_path}", file=sys.stderr)
        flat = flatten_dotted(rt.settings)
        for k in sorted(flat.keys(), key=str.lower):
            v = flat[k]
            print(f"        {k:.<40} {v!r} ({typename(v)})", file=sys.stderr)
        print(file=sys.stderr)
    return selected.name


def _check_override(value: int | None, minimum: int, flag: str) -> None:
    if value is not None and value < minimum:
        raise UserInputError(f"{flag} must be >= {minimum}, got {value}.")


# ---- main ----
def _main_impl(argv=None) -> int:

    colorama_init(autoreset=True)

    parser = _build_parser()
    args = parser.parse_args(argv)
    rt = _rt_current()
    rt.debug = bool(args.debug)

    _install_loud_error_handlers(args.debug)
    _check_override(args.page_size, 1, "--page-size")
    _check_override(args.bits, 2, "--bits")

    if not ensure_runtime_deps(strict=True):
        return 1

    # Ensure a first-run workspace seed silently
    ensure_workspace_seeded()

    if args.debug:
        print(f"[debug] terminal {get_terminal_width()}x{get_terminal_height()}", file=sys.stderr)
        print(f"[debug] workspace: {workspace_dir()}", file=sys.stderr)

    # --- parse inputs: command or profile + position ---
    profile, position = _resolve_inputs(args.items)

    if profile == "active":
        print(f"Active profile: {CONFIG.read_current_profile() or 'default'}")
        return 0

    if profile == "init":
        if len(args.items) == 2 and args.items[1] == "overwrite":
            if os.environ.get("FIBSEQ_DEV") != "1":
                print("Refusing to overwrite: set FIBSEQ_DEV=1 to enable developer overwrite.")
                return 2
            ws, copied = seed_workspace(overwrite=True)
            print(f"Workspace ready at: {ws} (overwrote existing files)")
            print(f"Copied -> profiles: {copied.get('profiles', 0)}")
            return 0

        ws, _, copied = ensure_workspace_seeded()
        print(f"Workspace ready at: {ws}")
        print(f"Copied -> profiles: {copied.get('profiles', 0)}")
        return 0

    if profile == "list":
        print_profiles_with_descriptions(CONFIG.list_profiles_with_descriptions(), CONFIG.read_current_profile())
        return 0

    if profile == "where":
        print(f"Workspace: {workspace_dir()}")
        print(f"Package:   {pkg_files('fibseq')}")
        return 0

    # Validate explicit profile (if given)
    if profile and not CONFIG.has_profile(profile):
        print(f"Unknown profile: '{profile}'")
        print("Available profiles:", ", ".join(CONFIG.list_all_profiles()))
        return 2

    profile_name = _apply_profile(_select_profile_name(profile), args.debug)

    def session_params() -> dict:
        # read from runtime each time so profile switches take effect
        return {
            "page_size": args.page_size or int(CFG("PAGING.PAGE_SIZE", PAGE_SIZE)),
            "bits": args.bits or int(CFG("ENGINE.WORD_BITS", WORD_BITS)),
            "error_title": str(CFG("DISPLAY.ERROR_TITLE", ERROR_TITLE)),
            "show_position": bool(CFG("DISPLAY.SHOW_POSITION", True)),
        }

    # --- one-shot lookup ---
    if position is not None:
        p = session_params()
        return _lookup_once(position, bits=p["bits"], error_title=p["error_title"],
                            show_position=p["show_position"])

    # --- REPL ---
    if not _rt_current().debug:
        clear_screen()
    print(f"{Fore.YELLOW}{Style.BRIGHT}fibseq v{_ver} — Fibonacci terms, one page at a time{Style.RESET_ALL}")

    view = ScrollView(**session_params(), debug=_rt_current().debug)
    view.start()
    try:
        while True:
            try:
                prompt = f"\nProfile: {profile_name} — Enter=more, integer, command or profile (h=Help, q=Quit): "
                user_input = input(prompt).strip()
                low = user_input.lower()

                if low in {"q", "quit"}:
                    break

                if low in {"", "n", "next"}:
                    if not view.scroll() and view.consumer.is_exhausted():
                        print(f"{Style.DIM}End of sequence: the next term does not fit in "
                              f"{view.engine.bits} bits.{Style.RESET_ALL}")
                    continue

                if low in {"h", "help"}:
                    show_intro_help()
                    continue

                if low in {"s", "status"}:
                    print_status(
                        shown=view.shown,
                        page_size=view.consumer.page_size,
                        bits=view.engine.bits,
                        exhausted=view.consumer.is_exhausted(),
                        profile=profile_name,
                        in_flight=view.consumer.in_flight(),
                    )
                    continue

                if low == "verify":
                    results = view.consumer.results
                    print_verification(verify_terms(results), len(results))
                    continue

                if low in {"p", "list profiles"}:
                    print_profiles_with_descriptions(CONFIG.list_profiles_with_descriptions(), profile_name)
                    continue

                if low in {"hist", "history"}:
                    hist = get_history()
                    if not hist:
                        print("History is empty.")
                    for item in hist:
                        ts = time.strftime("%H:%M:%S", time.localtime(item.timestamp))
                        shown_val = "-" if item.value is None else item.value
                        print(f"{ts}  F({item.n}) = {shown_val}")
                    continue

                if low.startswith("debug"):
                    parts = low.split()
                    rt = _rt_current()
                    if len(parts) == 1 or parts[1] == "status":
                        print(f"Debug is currently {'ON' if rt.debug else 'OFF'}.")
                    elif parts[1] in {"on", "off"}:
                        rt.debug = parts[1] == "on"
                        view.consumer.debug = rt.debug
                        print(f"Debug mode {'enabled' if rt.debug else 'disabled'} for this session.")
                    else:
                        print("Usage: DEBUG [on|off|status]")
                    continue

                # position?
                try:
                    n = parse_position(user_input)
                except UserInputError as e:
                    msg = str(e)
                    prefix = f"{Fore.RED}Invalid input:{Style.RESET_ALL}"
                    msg = msg.replace("Invalid input:", prefix, 1) if msg.startswith("Invalid input:") else f"{prefix} {msg}"
                    print(msg, file=sys.stderr)
                    continue

                if n is not None:
                    value = view.lookup(n)
                    if value is not None:
                        print(format_row(n, value, show_position=True))
                    elif view.consumer.is_exhausted():
                        print(f"F({n}) is beyond the {view.engine.bits}-bit range.")
                    add_to_history(n, value)
                    continue

                # treat as profile switch: new engine, new pages
                if CONFIG.has_profile(user_input):
                    try:
                        profile_name = _apply_profile(user_input, False)
                        CONFIG.write_current_profile(user_input)
                    except UserInputError as e:
                        _print_user_error(str(e))
                        continue
                    view.close()
                    view = ScrollView(**session_params(), debug=_rt_current().debug)
                    print(f"Applied profile: {profile_name}")
                    view.start()
                    continue

                print(f"{Fore.RED}Invalid input: {Style.RESET_ALL}'{user_input}'. Type H for help.")
            except (EOFError, KeyboardInterrupt):
                print()
                break
            except Exception as e:
                if _rt_current().debug:
                    traceback.print_exc()
                else:
                    _print_user_error(f"{e.__class__.__name__}: {e}")
                continue
    finally:
        view.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
