from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _pkg_version

# Version
try:
    __version__ = _pkg_version("fibseq")
except PackageNotFoundError:
    __version__ = "0+unknown"

# Public API re-exports
from .config import has_profile, load_settings, read_current_profile
from .engine import SequenceEngine, Slot, TermOverflowError, checked_add
from .paging import ForegroundQueue, PagingConsumer
from .runtime import APPLY, CFG
from .workspace import workspace_dir

__all__ = [
    "APPLY",
    "CFG",
    "ForegroundQueue",
    "PagingConsumer",
    "SequenceEngine",
    "Slot",
    "TermOverflowError",
    "__version__",
    "checked_add",
    "has_profile",
    "load_settings",
    "read_current_profile",
    "workspace_dir",
]
