# -----------------------------------------------------------------------------
#  Utility functions
# -----------------------------------------------------------------------------

from __future__ import annotations

import re
import shutil
import sys
from collections.abc import Sequence
from functools import lru_cache

import gmpy2

_POSITION_RE = re.compile(r"^[+-]?\d[\d_]*$")


class UserInputError(Exception):
    pass


# --- Input parsing -----------------------------------------------------------

def parse_position(text: str) -> int | None:
    """
    Parse a sequence position typed by the user.

    Returns None when `text` does not look like a number at all (so the caller
    can treat it as a command or profile name). Raises UserInputError for
    numbers that are not valid positions.
    """
    s = (text or "").strip()
    if not _POSITION_RE.match(s):
        return None
    if "__" in s or s.endswith("_"):
        raise UserInputError(f"Invalid input: '{text}' is not a valid integer.")
    n = int(s.replace("_", ""))
    if n < 0:
        raise UserInputError(f"Invalid input: position must be >= 0, got {n}.")
    return n


# --- Reference terms (gmpy2) -------------------------------------------------

def reference_term(n: int) -> int:
    """F(n) computed independently by GMP."""
    return int(gmpy2.fib(n))


@lru_cache(maxsize=64)
def max_representable_position(bits: int) -> int:
    """Largest k with F(k) <= 2**bits - 1."""
    limit = gmpy2.mpz(1) << bits
    k = 1
    while gmpy2.fib(k + 1) < limit:
        k += 1
    return k


def verify_terms(results: Sequence[int]) -> list[int]:
    """Positions whose value disagrees with the reference (empty = all good)."""
    return [i for i, v in enumerate(results) if v != reference_term(i)]


# --- Terminal helpers --------------------------------------------------------

def clear_screen() -> None:
    try:
        sys.stdout.write("\x1b[2J\x1b[H")
        sys.stdout.flush()
    except Exception:
        pass


def get_terminal_width(default=80):
    try:
        return shutil.get_terminal_size((default, 24)).columns
    except Exception:
        return default


def get_terminal_height(default=24):
    try:
        return shutil.get_terminal_size((80, default)).lines
    except Exception:
        return default


def typename(v: object) -> str:
    return type(v).__name__


def flatten_dotted(d: dict, prefix: str = "") -> dict[str, object]:
    out: dict[str, object] = {}
    for k, v in (d or {}).items():
        key = f"{prefix}.{k}" if prefix else str(k)
        if isinstance(v, dict):
            out.update(flatten_dotted(v, key))
        else:
            out[key] = v
    return out
