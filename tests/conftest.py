from __future__ import annotations

from datetime import date

import pytest

from budget_analytics import logging_setup
from budget_analytics.models import Tx
from budget_analytics.taxonomy import Taxonomy


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path, monkeypatch):
    """Point the store at a per-test directory and undo CLI logging setup."""
    data_dir = tmp_path / "data"
    monkeypatch.setenv("BUDGET_DATA_DIR", str(data_dir))
    monkeypatch.setenv("BUDGET_STORE_PATH", str(data_dir / "budget_store.json"))
    yield data_dir
    logging_setup.reset_logging()


@pytest.fixture
def small_taxonomy() -> Taxonomy:
    return Taxonomy(
        {
            "Food": ["Lunch", "Dinner"],
            "Transport": ["Taxi", "Bus"],
            "Income": ["Salary"],
        }
    )


def _make_tx(day: str, amount: int, parent: str, child: str, tx_id: str = "") -> Tx:
    return Tx(
        id=tx_id or f"{day}-{child}-{amount}",
        date=date.fromisoformat(day),
        raw_date=day,
        amount=amount,
        category_parent=parent,
        category_child=child,
    )


@pytest.fixture
def make_tx():
    return _make_tx
