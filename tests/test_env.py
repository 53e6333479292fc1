"""Tests for the subprocess environment handed to cpio and decompressors."""
from __future__ import annotations

import sys
from pathlib import Path

_REPO = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_REPO / "tools"))

from _env import clean_env  # noqa: E402


def test_locale_is_pinned(monkeypatch):
    monkeypatch.setenv("LC_ALL", "de_DE.UTF-8")
    monkeypatch.setenv("LANG", "de_DE.UTF-8")
    env = clean_env()
    assert env["LC_ALL"] == "C"
    assert env["LANG"] == "C"


def test_path_passes_through(monkeypatch):
    monkeypatch.setenv("PATH", "/opt/tools/bin:/usr/bin")
    assert clean_env()["PATH"] == "/opt/tools/bin:/usr/bin"


def test_unlisted_vars_are_dropped(monkeypatch):
    monkeypatch.setenv("LD_PRELOAD", "/tmp/evil.so")
    monkeypatch.setenv("XZ_DEFAULTS", "-T0")
    env = clean_env()
    assert "LD_PRELOAD" not in env
    assert "XZ_DEFAULTS" not in env


def test_absent_passthrough_vars_are_not_invented(monkeypatch):
    monkeypatch.delenv("TMPDIR", raising=False)
    assert "TMPDIR" not in clean_env()
