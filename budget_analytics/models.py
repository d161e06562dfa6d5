"""Data models used by the budget analytics engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Set, Union

DEFAULT_PAYER = "You"


def month_key(value: date) -> str:
    """Return the canonical ``YYYY-MM`` key for ``value``."""
    return f"{value.year:04d}-{value.month:02d}"


@dataclass(frozen=True)
class Tx:
    """A single imported income or expense record.

    ``amount`` is signed VND without decimals: negative for expenses,
    positive for income.
    """

    id: str
    date: date
    raw_date: str
    amount: int
    category_parent: str
    category_child: str
    payer: str = DEFAULT_PAYER
    wallet: Optional[str] = None
    note: Optional[str] = None

    @property
    def month(self) -> str:
        return month_key(self.date)

    @property
    def is_income(self) -> bool:
        return self.amount > 0

    @property
    def is_expense(self) -> bool:
        return self.amount < 0


class IssueKind(str, Enum):
    MISSING_FIELD = "MissingField"
    BAD_AMOUNT = "BadAmount"
    UNRESOLVED_CATEGORY = "UnresolvedCategory"
    BAD_DATE = "BadDate"
    ZERO_AMOUNT = "ZeroAmount"
    DUPLICATE_ROW = "DuplicateRow"
    MALFORMED_ROW = "MalformedRow"

    @property
    def drops_row(self) -> bool:
        """Warnings keep the row; every other kind means it was skipped."""
        return self not in (IssueKind.UNRESOLVED_CATEGORY, IssueKind.MALFORMED_ROW)


@dataclass(frozen=True)
class ImportIssue:
    kind: IssueKind
    row: Optional[int]
    message: str


class StructuralImportFailure(ValueError):
    """The input could not be read as CSV at all; nothing was imported."""


# Row-level parse results ---------------------------------------------------


@dataclass(frozen=True)
class RowOk:
    tx: Tx
    warning: Optional[ImportIssue] = None


@dataclass(frozen=True)
class RowIssue:
    issue: ImportIssue


RowResult = Union[RowOk, RowIssue]


@dataclass
class ImportResult:
    transactions: List[Tx] = field(default_factory=list)
    months_available: Set[str] = field(default_factory=set)
    errors: List[ImportIssue] = field(default_factory=list)

    @property
    def imported_count(self) -> int:
        return len(self.transactions)

    @property
    def skipped_count(self) -> int:
        return sum(1 for issue in self.errors if issue.kind.drops_row)

    def issues_of(self, kind: IssueKind) -> List[ImportIssue]:
        return [issue for issue in self.errors if issue.kind is kind]

    def summary(self) -> str:
        """Return a short human readable outcome, e.g. ``"12 rows imported, 2 skipped"``."""
        return f"{self.imported_count} rows imported, {self.skipped_count} skipped"


# Aggregation outputs ---------------------------------------------------------


@dataclass(frozen=True)
class MonthlySeries:
    month: str
    income: int
    expense: int
    balance: int


@dataclass(frozen=True)
class PieSlice:
    name: str
    value: int


@dataclass(frozen=True)
class CategoryBreakdown:
    month: str
    pie_data: List[PieSlice]
    parent_totals: Dict[str, int]
    child_totals: Dict[str, int]

    @property
    def total(self) -> int:
        return sum(slice_.value for slice_ in self.pie_data)


@dataclass(frozen=True)
class CapStatus:
    parent: str
    cap: float
    actual: int
    ratio: float
    status: str
