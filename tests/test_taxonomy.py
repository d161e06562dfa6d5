"""Tests for budget_analytics.taxonomy."""

from __future__ import annotations

import json

import pytest

from budget_analytics.taxonomy import (
    DEFAULT_TAXONOMY,
    INCOME_PARENT,
    CategoryPair,
    Taxonomy,
    load_taxonomy,
)


def test_default_taxonomy_children_have_one_parent() -> None:
    children = DEFAULT_TAXONOMY.all_children()
    assert len(children) == len(set(children))
    assert DEFAULT_TAXONOMY.parent_of("Coffee") == "Daily Food & Drinks"
    assert DEFAULT_TAXONOMY.parent_of("Momo") == "Others"
    assert DEFAULT_TAXONOMY.is_income_parent(INCOME_PARENT)


def test_duplicate_child_is_rejected() -> None:
    with pytest.raises(ValueError, match="Lunch"):
        Taxonomy({"Food": ["Lunch"], "Work": ["Lunch"]})


def test_empty_parent_is_rejected() -> None:
    with pytest.raises(ValueError):
        Taxonomy({"  ": ["Lunch"]})


def test_resolve_ignores_case_and_spacing(small_taxonomy) -> None:
    assert small_taxonomy.resolve("food", "LUNCH") == CategoryPair("Food", "Lunch")
    assert small_taxonomy.resolve(None, "  dinner ") == CategoryPair("Food", "Dinner")


def test_resolve_rejects_mismatched_parent(small_taxonomy) -> None:
    assert small_taxonomy.resolve("Transport", "Lunch") is None
    assert small_taxonomy.resolve("Food", "Pizza") is None


@pytest.mark.parametrize(
    "path, expected",
    [
        ("Food/Lunch", CategoryPair("Food", "Lunch")),
        ("Food > Dinner", CategoryPair("Food", "Dinner")),
        ("Transport:Taxi", CategoryPair("Transport", "Taxi")),
        ("Salary", CategoryPair("Income", "Salary")),
        ("Nope/Lunch", None),
        ("", None),
    ],
)
def test_resolve_path(small_taxonomy, path, expected) -> None:
    assert small_taxonomy.resolve_path(path) == expected


def test_resolve_path_prefers_whole_child_name() -> None:
    pair = DEFAULT_TAXONOMY.resolve_path("Parking (fixed)")
    assert pair == CategoryPair("Transportation", "Parking (fixed)")


def test_uncategorized_sentinel() -> None:
    assert Taxonomy.UNCATEGORIZED.is_uncategorized
    assert not CategoryPair("Food", "Lunch").is_uncategorized
    assert DEFAULT_TAXONOMY.children_of("Uncategorized") == ("Uncategorized",)


def test_load_taxonomy_from_file(tmp_path) -> None:
    path = tmp_path / "taxonomy.json"
    path.write_text(json.dumps({"Home": ["Rent", "Power"], "Income": ["Wages"]}), encoding="utf-8")

    taxonomy = load_taxonomy(path)

    assert list(taxonomy.parents) == ["Home", "Income"]
    assert taxonomy.children_of("Home") == ("Rent", "Power")


def test_load_taxonomy_rejects_bad_shape(tmp_path) -> None:
    path = tmp_path / "taxonomy.json"
    path.write_text(json.dumps(["Rent"]), encoding="utf-8")
    with pytest.raises(ValueError):
        load_taxonomy(path)


def test_load_taxonomy_defaults() -> None:
    assert load_taxonomy() is DEFAULT_TAXONOMY
