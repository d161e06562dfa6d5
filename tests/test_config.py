"""Tests for budget_analytics.config."""

from __future__ import annotations

from budget_analytics import config
from budget_analytics.cli import run


def test_ensure_data_directories_creates_only_the_store_location(isolated_data_dir) -> None:
    config.ensure_data_directories()

    assert isolated_data_dir.is_dir()
    assert [path.name for path in isolated_data_dir.iterdir()] == []
    assert not hasattr(config, "IMPORTS_DIR")
    assert not hasattr(config, "EXPORTS_DIR")


def test_store_in_nested_directory_is_created(isolated_data_dir, monkeypatch) -> None:
    nested = isolated_data_dir / "profiles" / "home" / "store.json"
    monkeypatch.setenv("BUDGET_STORE_PATH", str(nested))

    config.ensure_data_directories()

    assert nested.parent.is_dir()
    assert config.get_store_path() == str(nested.resolve())


def test_cli_without_store_flag_writes_to_configured_store(isolated_data_dir, capsys) -> None:
    assert run(["caps", "--month", "2024-02", "--set", "Rent", "3000000"]) == 0

    assert "Rent" in capsys.readouterr().out
    assert (isolated_data_dir / "budget_store.json").is_file()
    assert sorted(path.name for path in isolated_data_dir.iterdir()) == ["budget_store.json"]
