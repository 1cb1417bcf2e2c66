"""Tests for wsp.platform.paths module."""

from __future__ import annotations

from pathlib import Path

import pytest

from wsp.platform.paths import clear_caches, data_dir_with, home


def test_home_prefers_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    clear_caches()
    assert home() == tmp_path


def test_data_dir_with_xdg(tmp_path: Path) -> None:
    assert data_dir_with(str(tmp_path), Path("/home/x")) == tmp_path / "wsp"


def test_data_dir_without_xdg() -> None:
    assert data_dir_with("", Path("/home/x")) == Path("/home/x/.local/share/wsp")
    assert data_dir_with(None, Path("/home/x")) == Path("/home/x/.local/share/wsp")
