from __future__ import annotations

import tomllib as toml
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from fibseq.engine import WORD_BITS
from fibseq.utility import UserInputError
from fibseq.workspace import ensure_workspace_seeded, workspace_dir

PAGE_SIZE = 5
ERROR_TITLE = "Error"


@dataclass
class Settings:
    """
    Wrap the full TOML dict (without the [_PROFILE_] section).
    .as_dict() feeds runtime.apply().

      - name:        resolved profile name (FILE.stem if not provided in [_PROFILE_])
      - description: one-line description from [_PROFILE_] or "(no description)"
    """
    data: dict[str, Any]
    name: str
    description: str
    _source: Path | None = None

    def as_dict(self) -> dict[str, Any]:
        return self.data


# --- Paths -----------------------------------------------------------------

def _profiles_dir() -> Path:
    return workspace_dir() / "profiles"


def _profile_path(name: str) -> Path:
    return _profiles_dir() / f"{name}.toml"


# --- I/O -------------------------------------------------------------------


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as f:
            return toml.load(f)
    except toml.TOMLDecodeError as e:
        lineno = getattr(e, "lineno", None)
        colno = getattr(e, "colno", None)
        msg = getattr(e, "msg", str(e))
        where = []
        if lineno is not None:
            where.append(f"line {lineno}")
        if colno is not None:
            where.append(f"column {colno}")
        loc = f" (at {', '.join(where)})" if where else ""
        # No traceback chaining
        raise UserInputError(f"reading {path.name}: {msg}{loc}.") from None


# --- Metadata handling -----------------------------------------------------


def _sanitize_oneline(s: str) -> str:
    return " ".join(str(s).split()) or "(no description)"


def _split_profile_data(raw: dict[str, Any], fallback_name: str) -> tuple[dict[str, Any], str, str]:
    """
    Extract [_PROFILE_] meta (name, description) and return:
      (settings_without_profile, resolved_name, resolved_description)
    """
    meta = raw.get("_PROFILE_") or {}
    if not isinstance(meta, dict):
        raise UserInputError(f"{fallback_name}.toml: [_PROFILE_] must be a table, got {meta!r}.")
    raw = {k: v for k, v in raw.items() if k != "_PROFILE_"}

    name = str(meta.get("name") or fallback_name)
    description = _sanitize_oneline(str(meta.get("description") or ""))

    return raw, name, description


def _section(data: dict[str, Any], section: str, where: str) -> dict[str, Any]:
    sect = data.get(section, {})
    if not isinstance(sect, dict):
        raise UserInputError(f"{where}: [{section}] must be a table, got {sect!r}.")
    return dict(sect)


def _positive_int(sect: dict[str, Any], section: str, key: str, default: int, minimum: int, where: str) -> int:
    val = sect.get(key, default)
    if isinstance(val, bool) or not isinstance(val, int) or val < minimum:
        raise UserInputError(f"{where}: {section}.{key} must be an integer >= {minimum}, got {val!r}.")
    return val


def _flag(sect: dict[str, Any], section: str, key: str, default: bool, where: str) -> bool:
    val = sect.get(key, default)
    if not isinstance(val, bool):
        raise UserInputError(f"{where}: {section}.{key} must be true or false, got {val!r}.")
    return val


def _normalize(data: dict[str, Any], where: str) -> dict[str, Any]:
    """Fill defaults and validate the sections the engine and pager read."""
    paging = _section(data, "PAGING", where)
    engine = _section(data, "ENGINE", where)
    display = _section(data, "DISPLAY", where)
    behaviour = _section(data, "BEHAVIOUR", where)

    paging["PAGE_SIZE"] = _positive_int(paging, "PAGING", "PAGE_SIZE", PAGE_SIZE, 1, where)
    engine["WORD_BITS"] = _positive_int(engine, "ENGINE", "WORD_BITS", WORD_BITS, 2, where)
    display["ERROR_TITLE"] = str(display.get("ERROR_TITLE") or ERROR_TITLE)
    display["SHOW_POSITION"] = _flag(display, "DISPLAY", "SHOW_POSITION", True, where)
    behaviour["DEBUG"] = _flag(behaviour, "BEHAVIOUR", "DEBUG", False, where)

    data["PAGING"] = paging
    data["ENGINE"] = engine
    data["DISPLAY"] = display
    data["BEHAVIOUR"] = behaviour
    return data


# --- Public API ------------------------------------------------------------


def list_all_profiles() -> list[str]:
    """
    Return the list of available profile *names* (filename stems).
    """
    ensure_workspace_seeded()
    pdir = _profiles_dir()
    if not pdir.exists():
        return []
    return sorted(p.stem for p in pdir.glob("*.toml"))


def list_profiles_with_descriptions() -> list[tuple[str, str]]:
    """
    Return [(name, description), ...] for all profiles.
    Profiles lacking [_PROFILE_] get "(no description)".
    """
    items: list[tuple[str, str]] = []
    for p in _profiles_dir().glob("*.toml"):
        try:
            raw = _load_toml(p)
            _, nm, desc = _split_profile_data(raw, p.stem)
            items.append((nm, desc))
        except UserInputError:
            # Best-effort listing; fall back to filename
            items.append((p.stem, "(unreadable profile)"))
    return sorted(items, key=lambda t: t[0].lower())


def has_profile(name: str) -> bool:
    return _profile_path(name).exists()


def load_settings(name: str | None) -> Settings:
    """
    Load a profile by name (default 'default'), strip the [_PROFILE_] metadata,
    validate PAGING/ENGINE values, and return
    Settings(data=..., name=..., description=..., _source=path).
    """
    if not name:
        name = "default"

    path = _profile_path(name)
    if not path.exists():
        raise FileNotFoundError(f"Profile '{name}' not found at {path}")

    raw = _load_toml(path)
    data, resolved_name, description = _split_profile_data(raw, path.stem)

    return Settings(
        data=_normalize(data, path.name),
        name=resolved_name,
        description=description,
        _source=path,
    )


def default_settings() -> Settings:
    """Built-in values, used when no profile file is available."""
    return Settings(data=_normalize({}, "defaults"), name="default", description="(built-in defaults)")


def _current_profile_path() -> Path:
    p = _profiles_dir()
    p.mkdir(parents=True, exist_ok=True)
    return p / ".current"


def read_current_profile() -> str | None:
    try:
        s = _current_profile_path().read_text(encoding="utf-8").strip()
    except OSError:
        return None
    return s[:-5] if s.lower().endswith(".toml") else (s or None)


def write_current_profile(name: str) -> None:
    nm = (name or "").strip()
    if nm.lower().endswith(".toml"):
        nm = nm[:-5]
    _current_profile_path().write_text(nm, encoding="utf-8")
