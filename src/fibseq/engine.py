# -----------------------------------------------------------------------------
#  engine.py
#  Memoized Fibonacci terms in a fixed-width unsigned word
# -----------------------------------------------------------------------------

from __future__ import annotations

from enum import Enum

WORD_BITS = 64


class TermOverflowError(OverflowError):
    """The next term does not fit in the word. Terminal, never retried."""

    def __init__(self, bits: int = WORD_BITS):
        self.bits = bits
        super().__init__(f"Maximum {bits}-bit unsigned value reached.")


class Slot(Enum):
    UNSET = "unset"
    OVERFLOWED = "overflowed"


def checked_add(a: int, b: int, bits: int = WORD_BITS) -> tuple[int, bool]:
    """
    Wrapping unsigned add that reports overflow, like a hardware adder:
    returns (low `bits` bits of a+b, carry out).
    """
    wrapped = (a + b) & ((1 << bits) - 1)
    return wrapped, wrapped < a


class SequenceEngine:
    """
    Fibonacci terms F(0)=0, F(1)=1, F(n)=F(n-1)+F(n-2), cached by position.

    Slots form an arena indexed by position. A slot holds the term (int),
    Slot.OVERFLOWED for the first position past the word, or is missing
    (Slot.UNSET). Once an overflow is seen the engine is exhausted for good:
    positions never computed return None, cached terms stay valid.

    Not synchronized; callers keep all fetches on one execution context.
    """

    def __init__(self, bits: int = WORD_BITS):
        if not isinstance(bits, int) or bits < 2:
            raise ValueError(f"word width must be an int >= 2, got {bits!r}")
        self.bits = bits
        self.max_value = (1 << bits) - 1
        self.additions = 0  # checked adds performed; cache hits add nothing
        self._slots: list[int | Slot] = [0, 1]
        self._exhausted = False

    # ---- queries ------------------------------------------------------------

    def is_exhausted(self) -> bool:
        return self._exhausted

    def slot(self, position: int) -> int | Slot:
        if 0 <= position < len(self._slots):
            return self._slots[position]
        return Slot.UNSET

    @property
    def max_position(self) -> int:
        """Highest position holding a term."""
        last = len(self._slots) - 1
        return last - 1 if self._slots[last] is Slot.OVERFLOWED else last

    # ---- main API -----------------------------------------------------------

    def fetch(self, position: int) -> int | None:
        """
        Term at `position`, or None when it cannot be produced any more.

        Raises TermOverflowError (and exhausts the engine) when computing the
        term needs an addition that does not fit in the word.
        """
        if isinstance(position, bool) or not isinstance(position, int) or position < 0:
            raise ValueError(f"position must be a non-negative int, got {position!r}")

        # Base cases are definitional, never overflow-checked
        if position < 2:
            return position

        cur = self.slot(position)
        if isinstance(cur, int):
            return cur
        if self._exhausted or cur is Slot.OVERFLOWED:
            return None
        return self._fill(position)

    def _fill(self, position: int) -> int:
        slots = self._slots
        for i in range(len(slots), position + 1):
            total, overflowed = checked_add(slots[i - 1], slots[i - 2], self.bits)
            self.additions += 1
            if overflowed:
                slots.append(Slot.OVERFLOWED)
                self._exhausted = True
                raise TermOverflowError(self.bits)
            slots.append(total)
        return slots[position]
