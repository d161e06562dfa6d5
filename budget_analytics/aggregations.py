"""Monthly aggregation, category breakdowns and cap suggestions.

Every function here is pure: it takes an iterable of :class:`Tx` plus the
active exclusion set and returns plain records. Group-bys run on a small
pandas frame built from the transactions.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Union

import pandas as pd

from . import config
from .formatting import format_vnd
from .logging_setup import get_logger
from .models import CapStatus, CategoryBreakdown, MonthlySeries, PieSlice, Tx
from .taxonomy import DEFAULT_TAXONOMY, SAVINGS_PARENT, Taxonomy

__all__ = [
    "DEFAULT_NET",
    "GUARDRAIL_PCT",
    "INCOME_SHARE_LIMITS",
    "aggregate_by_month",
    "cap_performance",
    "clamp",
    "format_vnd",
    "income_share_warnings",
    "parent_and_sub_maps",
    "round1000",
    "savings_rate",
    "suggest_caps_for_month",
    "transactions_frame",
]

_logger = get_logger("budget_analytics.aggregations")

GUARDRAIL_PCT: float = config.GUARDRAIL_PCT
DEFAULT_NET: int = config.DEFAULT_NET

# Maximum share of monthly income each parent should take.
INCOME_SHARE_LIMITS: Dict[str, float] = {
    "Essential": 0.30,
    "Daily Food & Drinks": 0.20,
    "Transportation": 0.10,
    "Entertainment": 0.10,
    "Others": 0.10,
}

CAP_WARN_RATIO = 0.8

FRAME_COLUMNS = ["month", "parent", "child", "amount"]


def clamp(value: float, low: float, high: float) -> float:
    """Bound ``value`` to ``[low, high]``; raises ``ValueError`` if ``low > high``."""
    if low > high:
        raise ValueError(f"clamp bounds are inverted: {low} > {high}")
    return min(max(value, low), high)


def round1000(value: Union[int, float]) -> int:
    """Round to the nearest multiple of 1000, ties away from zero.

    Example:
        >>> round1000(1500)
        2000
        >>> round1000(-2500)
        -3000
    """
    thousands = (Decimal(str(value)) / 1000).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return int(thousands) * 1000


def transactions_frame(
    transactions: Iterable[Tx], excluded_children: Iterable[str] = ()
) -> pd.DataFrame:
    """Build a ``month/parent/child/amount`` frame without excluded children."""
    excluded = set(excluded_children)
    records = [
        (tx.month, tx.category_parent, tx.category_child, tx.amount)
        for tx in transactions
        if tx.category_child not in excluded
    ]
    frame = pd.DataFrame.from_records(records, columns=FRAME_COLUMNS)
    return frame.astype({"amount": "int64"})


def aggregate_by_month(
    transactions: Iterable[Tx], excluded_children: Iterable[str] = ()
) -> List[MonthlySeries]:
    """Income, expense and balance per month, ascending by month key.

    Income sums positive amounts, expense sums the magnitude of negative
    amounts. Months with no remaining transactions are omitted.
    """
    frame = transactions_frame(transactions, excluded_children)
    if frame.empty:
        return []

    frame["income"] = frame["amount"].clip(lower=0)
    frame["expense"] = (-frame["amount"]).clip(lower=0)
    monthly = frame.groupby("month", sort=True)[["income", "expense"]].sum()

    series: List[MonthlySeries] = []
    for month, row in monthly.iterrows():
        income = int(row["income"])
        expense = int(row["expense"])
        series.append(MonthlySeries(month=str(month), income=income, expense=expense, balance=income - expense))
    return series


def _expense_totals(expenses: pd.DataFrame, column: str) -> Dict[str, int]:
    totals = (-expenses.groupby(column, sort=False)["amount"].sum())
    return {str(name): int(value) for name, value in totals.items() if value > 0}


def parent_and_sub_maps(
    transactions: Iterable[Tx], month: str, excluded_children: Iterable[str] = ()
) -> CategoryBreakdown:
    """Expense totals for ``month`` per parent (pie slices) and per child.

    Parents keep the order in which they first appear in the data; parents
    with no spending are left out of ``pie_data``.
    """
    frame = transactions_frame(transactions, excluded_children)
    expenses = frame[(frame["month"] == month) & (frame["amount"] < 0)]

    parent_totals = _expense_totals(expenses, "parent")
    child_totals = _expense_totals(expenses, "child")
    pie_data = [PieSlice(name=name, value=value) for name, value in parent_totals.items()]
    return CategoryBreakdown(month=month, pie_data=pie_data, parent_totals=parent_totals, child_totals=child_totals)


def _pct_for(parent: str, guardrail_pct: Union[float, Mapping[str, float]]) -> float:
    if isinstance(guardrail_pct, Mapping):
        pct = float(guardrail_pct.get(parent, GUARDRAIL_PCT))
    else:
        pct = float(guardrail_pct)
    if pct < 0:
        raise ValueError(f"guardrail percentage must be non-negative, got {pct}")
    return pct


def suggest_caps_for_month(
    transactions: Iterable[Tx],
    month: str,
    prior_caps: Optional[Mapping[str, float]] = None,
    guardrail_pct: Union[float, Mapping[str, float], None] = None,
    *,
    excluded_children: Iterable[str] = (),
    trailing_months: Optional[int] = None,
) -> Dict[str, int]:
    """Suggest a cap for every parent with expense history up to ``month``.

    The baseline is the parent's average monthly expense across the trailing
    window of months in the data before ``month`` (months without spend count
    as zero). Parents with no spend in that window fall back to their actual
    expense in ``month``. When a positive prior cap exists the baseline is
    clamped to ``cap * (1 ± pct)``. Results are rounded to the nearest 1000.

    Args:
        transactions: Transactions to analyse.
        month: Target month key (``YYYY-MM``).
        prior_caps: Parent -> previous cap. Missing or non-positive caps
            disable the guardrail for that parent.
        guardrail_pct: Allowed relative change, either one value or a
            parent -> pct mapping. Defaults to ``GUARDRAIL_PCT``.
        excluded_children: Children left out of the analysis.
        trailing_months: Size of the baseline window. Defaults to
            ``config.TRAILING_MONTHS``.

    Returns:
        Parent -> suggested cap, in first-occurrence order.
    """
    window = config.TRAILING_MONTHS if trailing_months is None else trailing_months
    pct_setting = GUARDRAIL_PCT if guardrail_pct is None else guardrail_pct
    prior_caps = prior_caps or {}

    frame = transactions_frame(transactions, excluded_children)
    expenses = frame[(frame["amount"] < 0) & (frame["month"] <= month)]
    if expenses.empty:
        return {}

    dataset_months = sorted(set(frame["month"]))
    trailing = [m for m in dataset_months if m < month]
    trailing = trailing[-window:] if window > 0 else []

    parents = list(dict.fromkeys(expenses["parent"]))
    spend = (
        expenses.assign(expense=-expenses["amount"])
        .groupby(["parent", "month"])["expense"]
        .sum()
        .unstack(fill_value=0)
        .reindex(index=parents, columns=sorted(set(trailing) | {month}), fill_value=0)
    )

    suggestions: Dict[str, int] = {}
    for parent in parents:
        history_total = float(spend.loc[parent, trailing].sum()) if trailing else 0.0
        if history_total > 0:
            baseline = history_total / len(trailing)
        else:
            baseline = float(spend.loc[parent, month])

        prior = prior_caps.get(parent)
        if prior is not None and prior > 0:
            pct = _pct_for(parent, pct_setting)
            baseline = clamp(baseline, prior * (1 - pct), prior * (1 + pct))
        suggestions[str(parent)] = round1000(baseline)

    _logger.debug("Suggested caps for %s over %s: %s", month, trailing, suggestions)
    return suggestions


def _month_frame(
    transactions: Iterable[Tx], month: str, excluded_children: Iterable[str]
) -> pd.DataFrame:
    frame = transactions_frame(transactions, excluded_children)
    return frame[frame["month"] == month]


def _base_income(month_rows: pd.DataFrame, net_income: Optional[float]) -> float:
    income = float(month_rows.loc[month_rows["amount"] > 0, "amount"].sum())
    if income > 0:
        return income
    if net_income:
        return float(net_income)
    return float(DEFAULT_NET)


def income_share_warnings(
    transactions: Iterable[Tx],
    month: str,
    excluded_children: Iterable[str] = (),
    limits: Optional[Mapping[str, float]] = None,
    net_income: Optional[float] = None,
) -> List[str]:
    """Messages for parents whose spending exceeds their share of income.

    The base is the month's income, else ``net_income``, else ``DEFAULT_NET``.
    No warnings are produced when the base is zero.
    """
    month_rows = _month_frame(transactions, month, excluded_children)
    base = _base_income(month_rows, net_income)
    if base <= 0:
        return []

    spent = _expense_totals(month_rows[month_rows["amount"] < 0], "parent")
    warnings: List[str] = []
    for parent, limit in (limits or INCOME_SHARE_LIMITS).items():
        share = spent.get(parent, 0) / base
        if share > limit:
            warnings.append(
                f"{parent} spending {format_vnd(spent[parent])} is {share:.0%} of income "
                f"(limit {limit:.0%})"
            )
    return warnings


def savings_rate(
    transactions: Iterable[Tx],
    month: str,
    excluded_children: Iterable[str] = (),
    net_income: Optional[float] = None,
    savings_parent: str = SAVINGS_PARENT,
) -> int:
    """Percentage (0-100) of the month's base income moved into savings."""
    month_rows = _month_frame(transactions, month, excluded_children)
    base = _base_income(month_rows, net_income)
    if base <= 0:
        return 0
    saved = _expense_totals(month_rows[month_rows["amount"] < 0], "parent").get(savings_parent, 0)
    return int(clamp(round(saved / base * 100), 0, 100))


def cap_performance(
    transactions: Iterable[Tx],
    month: str,
    caps: Mapping[str, float],
    excluded_children: Iterable[str] = (),
    taxonomy: Optional[Taxonomy] = None,
) -> List[CapStatus]:
    """Compare each parent's spending in ``month`` with its cap.

    ``caps`` may hold parent names, child names, or both. A parent without
    its own cap uses the sum of its children's caps. Parents with neither a
    cap nor spending are skipped.
    """
    taxonomy = taxonomy or DEFAULT_TAXONOMY
    breakdown = parent_and_sub_maps(transactions, month, excluded_children)

    parents = list(taxonomy.parents) + [p for p in breakdown.parent_totals if p not in taxonomy.parents]
    results: List[CapStatus] = []
    for parent in parents:
        if parent in caps:
            cap = float(caps[parent])
        else:
            child_caps = [float(caps[c]) for c in taxonomy.children_of(parent) if c in caps]
            cap = sum(child_caps) if child_caps else 0.0
        actual = breakdown.parent_totals.get(parent, 0)
        if cap <= 0 and actual == 0:
            continue

        if cap <= 0:
            ratio, status = 0.0, "no-cap"
        else:
            ratio = actual / cap
            if actual >= cap:
                status = "over"
            elif ratio >= CAP_WARN_RATIO:
                status = "warn"
            else:
                status = "ok"
        results.append(CapStatus(parent=parent, cap=cap, actual=actual, ratio=ratio, status=status))
    return results
