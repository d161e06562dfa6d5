"""Tests for budget_analytics.parsing."""

from __future__ import annotations

from datetime import date

import pytest

from budget_analytics.aggregations import aggregate_by_month
from budget_analytics.models import IssueKind, MonthlySeries, RowIssue, RowOk, StructuralImportFailure
from budget_analytics.parsing import (
    import_csv,
    normalize_payer,
    parse_amount,
    parse_date,
    parse_row,
    read_csv_file,
)


THREE_ROWS = (
    "date,amount,category\n"
    "2024-01-05,-100000,Food/Lunch\n"
    "2024-01-10,1500000,Income/Salary\n"
    "2024-01-15,abc,Food/Dinner\n"
)


def test_three_row_import_scenario(small_taxonomy) -> None:
    result = import_csv(THREE_ROWS, taxonomy=small_taxonomy)

    assert result.imported_count == 2
    assert [issue.kind for issue in result.errors] == [IssueKind.BAD_AMOUNT]
    assert result.months_available == {"2024-01"}
    assert aggregate_by_month(result.transactions) == [
        MonthlySeries(month="2024-01", income=1500000, expense=100000, balance=1400000)
    ]
    assert result.summary() == "2 rows imported, 1 skipped"


def test_three_row_import_with_default_taxonomy() -> None:
    result = import_csv(THREE_ROWS)

    lunch, salary = result.transactions
    # "Food" is not a parent in the built-in taxonomy
    assert (lunch.category_parent, lunch.category_child) == ("Uncategorized", "Uncategorized")
    assert lunch.amount == -100000
    assert salary.amount == 1500000
    assert len(result.issues_of(IssueKind.UNRESOLVED_CATEGORY)) == 1


@pytest.mark.parametrize(
    "text, expected",
    [
        ("1,500,000", 1500000),
        ("1.500.000", 1500000),
        ("1.500.000 ₫", 1500000),
        ("-25,000 VND", -25000),
        ("VNĐ 1,000", 1000),
        ("50000đ", 50000),
        ("(25,000)", -25000),
        ("+300", 300),
        ("1,234.56", 1235),
        ("1.234,5", 1235),
        ("12,5", 13),
        ("  42  ", 42),
    ],
)
def test_parse_amount(text, expected) -> None:
    assert parse_amount(text) == expected


@pytest.mark.parametrize("text", ["abc", "", "   ", "1.2.3,4,5", "--5", "12abc"])
def test_parse_amount_rejects_garbage(text) -> None:
    with pytest.raises(ValueError):
        parse_amount(text)


@pytest.mark.parametrize(
    "text",
    ["2024-01-05", "05/01/2024", "05-01-2024", "05/01/24", "2024/01/05"],
)
def test_parse_date_formats(text) -> None:
    assert parse_date(text) == date(2024, 1, 5)


def test_parse_date_rejects_invalid() -> None:
    with pytest.raises(ValueError):
        parse_date("31/02/2024")


@pytest.mark.parametrize(
    "raw, expected",
    [("tôi", "You"), ("ME", "You"), ("", "You"), (None, "You"), ("bản thân", "You"), ("Lan", "Lan")],
)
def test_normalize_payer(raw, expected) -> None:
    assert normalize_payer(raw) == expected


def test_vietnamese_export_headers() -> None:
    csv_text = (
        "Id,Ngày,Số tiền,Nhóm,Ví,Ghi chú,Với\n"
        'A1,05/01/2024,"-50,000",Coffee,Cash,morning,tôi\n'
        'A2,06/01/2024,"20,000,000",Salary,Bank,,\n'
    )
    result = import_csv(csv_text)

    coffee, salary = result.transactions
    assert coffee.id == "A1"
    assert coffee.amount == -50000
    assert (coffee.category_parent, coffee.category_child) == ("Daily Food & Drinks", "Coffee")
    assert coffee.wallet == "Cash"
    assert coffee.note == "morning"
    assert coffee.payer == "You"
    assert coffee.raw_date == "05/01/2024"
    assert salary.amount == 20000000
    assert salary.note is None
    assert result.errors == []


def test_headerless_rows_are_positional(small_taxonomy) -> None:
    csv_text = "2024-03-01,5000,Lunch,Lan,Cash,team lunch\n2024-03-02,8000,Taxi,,,\n"
    result = import_csv(csv_text, taxonomy=small_taxonomy, source_name="march.csv")

    lunch, taxi = result.transactions
    assert lunch.amount == -5000
    assert lunch.payer == "Lan"
    assert lunch.note == "team lunch"
    assert lunch.id == "march.csv-0"
    assert taxi.category_parent == "Transport"
    assert taxi.payer == "You"


def test_type_column_decides_sign(small_taxonomy) -> None:
    csv_text = "Date,Amount,Category,Type\n2024-01-01,50000,Lunch,Expense\n2024-01-02,-7000,Salary,Thu\n"
    result = import_csv(csv_text, taxonomy=small_taxonomy)

    assert [tx.amount for tx in result.transactions] == [-50000, 7000]


def test_unresolved_category_keeps_row_and_counts_as_expense(small_taxonomy) -> None:
    csv_text = "date,amount,category\n2024-02-01,-10000,Mystery\n2024-02-02,10000,Mystery\n2024-02-03,+2500,Refund\n"
    result = import_csv(csv_text, taxonomy=small_taxonomy)

    assert [tx.amount for tx in result.transactions] == [-10000, -10000, 2500]
    assert all(tx.category_child == "Uncategorized" for tx in result.transactions)
    assert len(result.issues_of(IssueKind.UNRESOLVED_CATEGORY)) == 3
    assert result.skipped_count == 0


def test_unknown_vietnamese_category_is_spending() -> None:
    result = import_csv("Ngày,Số tiền,Nhóm\n05/01/2024,50000,Bubble Tea\n")

    assert [tx.amount for tx in result.transactions] == [-50000]
    assert aggregate_by_month(result.transactions) == [
        MonthlySeries(month="2024-01", income=0, expense=50000, balance=-50000)
    ]


def test_separate_parent_and_child_columns(small_taxonomy) -> None:
    csv_text = "Date,Amount,Parent Category,Child Category\n2024-01-01,900,Food,Dinner\n2024-01-01,900,Food,Taxi\n"
    result = import_csv(csv_text, taxonomy=small_taxonomy)

    first, second = result.transactions
    assert (first.category_parent, first.category_child) == ("Food", "Dinner")
    assert second.category_child == "Uncategorized"


def test_row_level_issues(small_taxonomy) -> None:
    csv_text = (
        "date,amount,category\n"
        "2024-01-01,,Lunch\n"
        "31/02/2024,-1000,Lunch\n"
        "2024-01-03,0,Lunch\n"
        ",,\n"
        "2024-01-04,-2000,Dinner\n"
    )
    result = import_csv(csv_text, taxonomy=small_taxonomy)

    assert [tx.amount for tx in result.transactions] == [-2000]
    assert [(issue.kind, issue.row) for issue in result.errors] == [
        (IssueKind.MISSING_FIELD, 0),
        (IssueKind.BAD_DATE, 1),
        (IssueKind.ZERO_AMOUNT, 2),
    ]


def test_duplicate_rows_within_import(small_taxonomy) -> None:
    csv_text = "date,amount,category,note\n2024-01-01,-500,Lunch,x\n2024-01-01,-500,Lunch,x\n"

    deduped = import_csv(csv_text, taxonomy=small_taxonomy)
    assert deduped.imported_count == 1
    assert deduped.issues_of(IssueKind.DUPLICATE_ROW)[0].row == 1

    kept = import_csv(csv_text, taxonomy=small_taxonomy, dedupe=False)
    assert kept.imported_count == 2
    assert len({tx.id for tx in kept.transactions}) == 2


def test_rows_with_extra_fields_are_kept_with_a_warning(small_taxonomy) -> None:
    csv_text = "date,amount,category\n2024-01-01,-500,Lunch\n2024-01-02,-600,Lunch,extra,fields\n2024-01-03,-700,Dinner\n"
    result = import_csv(csv_text, taxonomy=small_taxonomy)

    assert [tx.amount for tx in result.transactions] == [-500, -600, -700]
    assert [(issue.kind, issue.row) for issue in result.errors] == [(IssueKind.MALFORMED_ROW, 1)]
    assert "extra,fields" in result.errors[0].message
    assert result.skipped_count == 0


def test_headerless_rows_may_fill_optional_columns(small_taxonomy) -> None:
    csv_text = "2024-01-05,-100000,Food/Lunch\n2024-01-06,-5000,Food/Dinner,Lan,Cash,team dinner\n"
    result = import_csv(csv_text, taxonomy=small_taxonomy)

    assert result.imported_count == 2
    assert result.errors == []
    dinner = result.transactions[1]
    assert (dinner.payer, dinner.wallet, dinner.note) == ("Lan", "Cash", "team dinner")
    assert result.transactions[0].wallet is None


def test_trailing_comma_does_not_drop_row(small_taxonomy) -> None:
    result = import_csv("date,amount,category\n2024-01-05,-100000,Food/Lunch,\n", taxonomy=small_taxonomy)

    assert result.imported_count == 1
    assert result.errors == []
    assert result.transactions[0].category_child == "Lunch"


def test_summary_export_is_anchored_to_month(small_taxonomy) -> None:
    csv_text = "Category,Amount\nLunch,100000\nDinner,50000\n"

    expenses = import_csv(csv_text, taxonomy=small_taxonomy, source_name="chi-tieu.csv", anchor_month="2024-05")
    assert [tx.amount for tx in expenses.transactions] == [-100000, -50000]
    assert {tx.date for tx in expenses.transactions} == {date(2024, 5, 1)}
    assert expenses.months_available == {"2024-05"}

    income = import_csv(csv_text, taxonomy=small_taxonomy, source_name="thu-nhap.csv", anchor_month="2024-05")
    assert [tx.amount for tx in income.transactions] == [100000, 50000]


def test_summary_export_without_anchor_reports_missing_date(small_taxonomy) -> None:
    result = import_csv("Category,Amount\nLunch,100000\n", taxonomy=small_taxonomy)

    assert result.transactions == []
    assert [issue.kind for issue in result.errors] == [IssueKind.MISSING_FIELD]


def test_bytes_input_with_bom(small_taxonomy) -> None:
    raw = "\ufeffdate,amount,category\n2024-01-05,-100,Lunch\n".encode("utf-8")
    result = import_csv(raw, taxonomy=small_taxonomy)

    assert result.imported_count == 1


@pytest.mark.parametrize("raw", ["", "   \n", b"\x00\x01\x02", "foo,bar\n1,2\n"])
def test_structural_failures(raw) -> None:
    with pytest.raises(StructuralImportFailure):
        import_csv(raw)


def test_parse_row_returns_tagged_results(small_taxonomy) -> None:
    ok = parse_row(0, {"date": "2024-01-01", "amount": "-10", "category": "Lunch"}, taxonomy=small_taxonomy)
    issue = parse_row(1, {"date": "2024-01-01", "amount": "ten", "category": "Lunch"}, taxonomy=small_taxonomy)

    assert isinstance(ok, RowOk)
    assert ok.warning is None
    assert ok.tx.amount == -10
    assert isinstance(issue, RowIssue)
    assert issue.issue.kind is IssueKind.BAD_AMOUNT


def test_read_csv_file_uses_file_name(tmp_path, small_taxonomy) -> None:
    path = tmp_path / "jan.csv"
    path.write_text(THREE_ROWS, encoding="utf-8")

    result = read_csv_file(path, taxonomy=small_taxonomy)

    assert [tx.id for tx in result.transactions] == ["jan.csv-0", "jan.csv-1"]
