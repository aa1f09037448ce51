# src/fibseq/display.py
from __future__ import annotations

import sys
import textwrap
from collections.abc import Sequence

from colorama import Fore, Style

from fibseq.utility import get_terminal_width, max_representable_position

# ---------- rows --------------------------------------------------------------

def format_row(position: int, value: int, *, show_position: bool = True, width: int = 0) -> str:
    if not show_position:
        return str(value)
    label = f"F({position})"
    return f"{Style.DIM}{label:>{width}}{Style.RESET_ALL} = {value}"


def print_rows(results: Sequence[int], start: int = 0, *, show_position: bool = True) -> int:
    """Print results[start:] one per line. Returns the new number of rows shown."""
    end = len(results)
    if start >= end:
        return end
    width = len(f"F({end - 1})")
    for i in range(start, end):
        print(format_row(i, results[i], show_position=show_position, width=width))
    return end


# ---------- notifications -----------------------------------------------------

def show_error(title: str, message: str) -> None:
    """Modal-style error notice: a framed box on stderr."""
    inner = max(len(title), len(message)) + 2
    bar = "─" * inner
    sys.stderr.write(
        f"{Fore.RED}┌{bar}┐\n"
        f"│ {Style.BRIGHT}{title:<{inner - 2}}{Style.NORMAL} │\n"
        f"│ {message:<{inner - 2}} │\n"
        f"└{bar}┘{Style.RESET_ALL}\n"
    )
    sys.stderr.flush()


def print_status(*, shown: int, page_size: int, bits: int, exhausted: bool,
                 profile: str, in_flight: bool = False) -> None:
    state = f"{Fore.RED}exhausted{Style.RESET_ALL}" if exhausted else f"{Fore.GREEN}active{Style.RESET_ALL}"
    print(f"Rows shown:   {shown}")
    print(f"Engine:       {state} ({bits}-bit unsigned)")
    print(f"Last term:    F({max_representable_position(bits)})")
    print(f"Page size:    {page_size}")
    print(f"Profile:      {profile}")
    if in_flight:
        print(f"{Fore.YELLOW}A page is being computed...{Style.RESET_ALL}")


def print_verification(mismatches: Sequence[int], checked: int) -> None:
    if not mismatches:
        print(f"{Fore.GREEN}OK{Style.RESET_ALL}: {checked} term(s) match the GMP reference.")
        return
    shown = ", ".join(str(i) for i in mismatches[:20])
    more = " …" if len(mismatches) > 20 else ""
    print(f"{Fore.RED}MISMATCH{Style.RESET_ALL} at position(s): {shown}{more}")


def print_profiles_with_descriptions(items: Sequence[tuple[str, str]], current: str | None = None) -> None:
    if not items:
        print("No profiles found.")
        return
    w = max(len(nm) for nm, _ in items)
    for nm, desc in items:
        mark = "*" if nm == current else " "
        print(f" {mark} {Fore.YELLOW}{nm:<{w}}{Style.RESET_ALL}  {desc}")


def show_intro_help() -> None:
    text = textwrap.dedent("""\
        Scroll through the Fibonacci sequence one page at a time.

          Enter / n        scroll to the end of the list (loads the next page)
          <integer>        show the term at that position
          s / status       engine and paging status
          verify           check shown terms against the GMP reference
          hist             positions looked up this session
          p                list profiles ( * = active )
          <profile>        switch profile (starts a new session)
          debug on|off     toggle per-page timings
          h / help         this help
          q / quit         leave
    """)
    width = max(40, get_terminal_width())
    for line in text.splitlines():
        print(line[:width])


# ---------- debug -------------------------------------------------------------

def print_page_debug(first: int, last: int, added: int, status: str, dt_ms: float) -> None:
    """Emit a single debug line with timing and colored status (to STDERR)."""
    if status == "PAGE":
        stat = f"{Fore.GREEN}{Style.BRIGHT}PAGE{Style.RESET_ALL}"
    elif status == "SKIP":
        stat = f"{Fore.YELLOW}{Style.BRIGHT}SKIP{Style.RESET_ALL}"
    else:  # "OVF"
        stat = f"{Fore.RED}{Style.BRIGHT}OVF {Style.RESET_ALL}"

    tm = f"{Style.DIM}[{dt_ms:6.2f} ms]{Style.RESET_ALL}"
    sys.stderr.write(f"{tm} {stat}  {first}..{last}  +{added}\n")
    sys.stderr.flush()
