from __future__ import annotations

import pytest

from fibseq import runtime


@pytest.fixture(autouse=True)
def workspace(tmp_path, monkeypatch):
    """Isolated workspace and a fresh runtime for every test."""
    home = tmp_path / "fibseq-home"
    monkeypatch.setenv("FIBSEQ_HOME", str(home))
    runtime.reset()
    return home
