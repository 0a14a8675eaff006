"""Tests for the package logger location."""

from __future__ import annotations

from pathlib import Path

import gym_ledger


def test_resolve_log_dir_prefers_environment(tmp_path):
    environ = {gym_ledger.LOG_DIR_ENV: str(tmp_path / "logs")}
    assert gym_ledger.resolve_log_dir(environ) == tmp_path / "logs"


def test_resolve_log_dir_defaults_to_working_directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert gym_ledger.resolve_log_dir({gym_ledger.LOG_DIR_ENV: "  "}) == Path.cwd() / ".logs"
