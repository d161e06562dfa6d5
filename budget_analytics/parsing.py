"""CSV ingestion and transaction normalization.

This module turns raw CSV exports (detailed transaction books or per-category
summary files) into immutable :class:`~budget_analytics.models.Tx` records.
Row level problems never abort an import: each row yields either a
:class:`RowOk` or a :class:`RowIssue` and the batch collects both. Only
structural failures (undecodable bytes, binary input, untokenisable text)
raise :class:`StructuralImportFailure`.
"""

from __future__ import annotations

import csv
import io
import re
from dataclasses import replace
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from .logging_setup import get_logger
from .models import (
    DEFAULT_PAYER,
    ImportIssue,
    ImportResult,
    IssueKind,
    RowIssue,
    RowOk,
    RowResult,
    StructuralImportFailure,
    Tx,
    month_key,
)
from .taxonomy import DEFAULT_TAXONOMY, CategoryPair, Taxonomy

_logger = get_logger("budget_analytics.parsing")

# ---------------------------------------------------------------------------
# Column mapping
# ---------------------------------------------------------------------------

FIELD_ALIASES: Dict[str, List[str]] = {
    "id": ["Id", "Transaction Id", "Ref"],
    "date": ["Date", "Transaction Date", "Ngày"],
    "amount": ["Amount", "Value", "Số tiền"],
    "category": ["Category", "Category Path", "Nhóm", "Category - Nhóm"],
    "parent": ["Parent Category", "Category Parent", "Parent", "Nhóm cha"],
    "child": ["Child Category", "Category Child", "Subcategory", "Child"],
    "type": ["Type", "Kind", "Loại"],
    "payer": ["Payer", "Paid By", "Với", "Thành viên"],
    "wallet": ["Wallet", "Account", "Ví"],
    "note": ["Note", "Memo", "Notes", "Ghi chú"],
}

# Column order assumed when a file has no header row.
POSITIONAL_FIELDS: Tuple[str, ...] = ("date", "amount", "category", "payer", "wallet", "note")

DATE_FORMATS: Tuple[str, ...] = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d/%m/%y", "%Y/%m/%d")

SELF_PAYER_LABELS = {"tôi", "toi", "minh", "mình", "me", "self", "ban than", "bản thân"}

_TYPE_SIGNS: Dict[str, int] = {
    "income": 1,
    "thu": 1,
    "khoản thu": 1,
    "thu nhập": 1,
    "expense": -1,
    "chi": -1,
    "khoản chi": -1,
    "chi tiêu": -1,
}

_CURRENCY_RE = re.compile(r"(?i)vnđ|vnd|₫|đ|\s")
_DOT_THOUSANDS_RE = re.compile(r"^\d{1,3}(\.\d{3})+$")
_DECIMAL_COMMA_RE = re.compile(r"^\d+,\d{1,2}$")
_NUMBER_RE = re.compile(r"^\d+(\.\d+)?$")
_INCOME_SOURCE_RE = re.compile(r"(?i)thu|income")


def normalise_header(name: Any) -> str:
    """Normalise a header for comparison (lowercase alphanumerics only)."""
    return "".join(ch for ch in str(name).lower() if ch.isalnum())


_ALIAS_LOOKUP: Dict[str, str] = {
    normalise_header(alias): field_name
    for field_name, aliases in FIELD_ALIASES.items()
    for alias in aliases
}


def map_header(header: Sequence[Any]) -> Dict[str, int]:
    """Map known field names to column positions for a header row."""
    mapping: Dict[str, int] = {}
    for position, name in enumerate(header):
        field_name = _ALIAS_LOOKUP.get(normalise_header(name))
        if field_name and field_name not in mapping:
            mapping[field_name] = position
    return mapping


# ---------------------------------------------------------------------------
# Scalar parsers
# ---------------------------------------------------------------------------


def _split_amount(raw: Any) -> Tuple[int, Optional[int]]:
    """Return ``(magnitude, explicit_sign)`` for an amount cell.

    ``explicit_sign`` is ``-1``/``1`` when the text carries a sign (``-``,
    ``+`` or accounting parentheses) and ``None`` otherwise.
    """
    text = "" if raw is None else str(raw).strip()
    if not text:
        raise ValueError("amount is empty")

    s = _CURRENCY_RE.sub("", text)
    sign: Optional[int] = None
    if len(s) > 2 and s.startswith("(") and s.endswith(")"):
        sign = -1
        s = s[1:-1]
    if s[:1] in {"-", "+"}:
        sign = (sign or 1) * (-1 if s[0] == "-" else 1)
        s = s[1:]

    if "." in s and "," in s:
        if s.rfind(".") > s.rfind(","):
            s = s.replace(",", "")
        else:
            s = s.replace(".", "").replace(",", ".")
    elif _DECIMAL_COMMA_RE.match(s):
        s = s.replace(",", ".")
    elif _DOT_THOUSANDS_RE.match(s):
        s = s.replace(".", "")
    else:
        s = s.replace(",", "")

    if not _NUMBER_RE.match(s):
        raise ValueError(f"unparseable amount {text!r}")
    try:
        magnitude = int(Decimal(s).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    except InvalidOperation as exc:
        raise ValueError(f"unparseable amount {text!r}") from exc
    return magnitude, sign


def parse_amount(raw: Any) -> int:
    """Parse a VND amount string into a signed integer.

    Tolerates thousands separators (``1,500,000`` and ``1.500.000``), decimal
    commas, currency markers (``₫``, ``VND``, ``đ``), explicit ``+``/``-``
    signs and accounting parentheses. Raises ``ValueError`` when the text
    is not a number.

    Example:
        >>> parse_amount("-1.500.000 ₫")
        -1500000
        >>> parse_amount("(25,000)")
        -25000
    """
    magnitude, sign = _split_amount(raw)
    return -magnitude if sign == -1 else magnitude


def parse_date(raw: Any) -> date:
    """Parse ISO or day-first dates; raises ``ValueError`` otherwise."""
    text = "" if raw is None else str(raw).strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"unparseable date {text!r}")


def parse_month(value: str) -> date:
    """Return the first day of a ``YYYY-MM`` month key."""
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m").date()
    except ValueError as exc:
        raise ValueError(f"Invalid month key {value!r}; expected YYYY-MM") from exc


def normalize_payer(raw: Optional[str]) -> str:
    """Map blanks and self references (``tôi``, ``me``...) to ``"You"``."""
    text = (raw or "").strip()
    if not text or text.lower() in SELF_PAYER_LABELS:
        return DEFAULT_PAYER
    return text


def _type_sign(raw: Optional[str]) -> Optional[int]:
    if not raw:
        return None
    return _TYPE_SIGNS.get(" ".join(raw.split()).lower())


# ---------------------------------------------------------------------------
# Row parsing
# ---------------------------------------------------------------------------


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str) and pd.isna(value):
        return ""
    return str(value).strip()


def _resolve_category(cells: Mapping[str, str], taxonomy: Taxonomy) -> Optional[CategoryPair]:
    child = cells.get("child") or ""
    parent = cells.get("parent") or ""
    if child:
        return taxonomy.resolve(parent or None, child)
    category = cells.get("category") or ""
    if parent and category:
        return taxonomy.resolve(parent, category)
    return taxonomy.resolve_path(category)


def parse_row(
    index: int,
    cells: Mapping[str, str],
    *,
    taxonomy: Taxonomy = DEFAULT_TAXONOMY,
    source_name: str = "",
    anchor: Optional[date] = None,
    summary_sign: Optional[int] = None,
) -> RowResult:
    """Normalise one mapped CSV row into a transaction or an issue.

    Args:
        index: Zero-based data row index, used for ids and issue reports.
        cells: Field name -> cell text (see ``FIELD_ALIASES``).
        taxonomy: Taxonomy used to validate the category pair.
        source_name: Import label used to build fallback ids.
        anchor: Date assigned to every row of a summary export.
        summary_sign: Forced sign for summary exports (income/expense file).
    """
    required = ["amount"] if anchor is not None else ["date", "amount"]
    missing = [name for name in required if not cells.get(name)]
    if not (cells.get("category") or cells.get("child")):
        missing.append("category")
    if missing:
        return RowIssue(ImportIssue(IssueKind.MISSING_FIELD, index, "missing " + ", ".join(missing)))

    if anchor is not None:
        tx_date = anchor
        raw_date = anchor.strftime("%d/%m/%Y")
    else:
        raw_date = cells["date"]
        try:
            tx_date = parse_date(raw_date)
        except ValueError as exc:
            return RowIssue(ImportIssue(IssueKind.BAD_DATE, index, str(exc)))

    try:
        magnitude, explicit_sign = _split_amount(cells["amount"])
    except ValueError as exc:
        return RowIssue(ImportIssue(IssueKind.BAD_AMOUNT, index, str(exc)))
    if magnitude == 0:
        return RowIssue(ImportIssue(IssueKind.ZERO_AMOUNT, index, "amount is zero"))

    warning: Optional[ImportIssue] = None
    pair = _resolve_category(cells, taxonomy)
    if pair is None:
        raw_category = cells.get("category") or "/".join(
            part for part in (cells.get("parent"), cells.get("child")) if part
        )
        warning = ImportIssue(
            IssueKind.UNRESOLVED_CATEGORY,
            index,
            f"category {raw_category!r} not in taxonomy; filed as {Taxonomy.UNCATEGORIZED.child}",
        )
        pair = Taxonomy.UNCATEGORIZED

    sign = _type_sign(cells.get("type"))
    if sign is None:
        sign = summary_sign
    if sign is None:
        sign = explicit_sign
    if sign is None:
        # Only income children are positive; unknown categories count as spending.
        sign = 1 if taxonomy.is_income_parent(pair.parent) else -1
    amount = -magnitude if sign == -1 else magnitude

    tx = Tx(
        id=cells.get("id") or f"{source_name or 'csv'}-{index}",
        date=tx_date,
        raw_date=raw_date,
        amount=amount,
        category_parent=pair.parent,
        category_child=pair.child,
        payer=normalize_payer(cells.get("payer")),
        wallet=cells.get("wallet") or None,
        note=cells.get("note") or None,
    )
    return RowOk(tx, warning)


def row_fingerprint(tx: Tx) -> str:
    return f"{tx.raw_date}|{tx.category_child}|{tx.amount}|{tx.note or ''}"


# ---------------------------------------------------------------------------
# File loading
# ---------------------------------------------------------------------------

_ENCODINGS: Tuple[str, ...] = ("utf-8-sig", "cp1258")


def _decode(raw: Union[str, bytes]) -> str:
    if isinstance(raw, str):
        text = raw
    else:
        for encoding in _ENCODINGS:
            try:
                text = raw.decode(encoding)
                break
            except UnicodeDecodeError:
                continue
        else:
            raise StructuralImportFailure("Unable to decode CSV input with any supported encoding")
    if "\x00" in text:
        raise StructuralImportFailure("Input looks like binary data, not CSV text")
    return text.lstrip("\ufeff")


def _max_width(text: str) -> int:
    try:
        return max((len(fields) for fields in csv.reader(io.StringIO(text))), default=0)
    except csv.Error as exc:
        raise StructuralImportFailure(f"Unable to parse CSV input: {exc}") from exc


def _read_rows(text: str) -> pd.DataFrame:
    """Read every line into a frame as wide as the widest row.

    Shorter rows are padded with blanks, so optional trailing columns and
    trailing commas never cause a row to be rejected.
    """
    width = _max_width(text)
    if width == 0:
        raise StructuralImportFailure("CSV input is empty")
    try:
        return pd.read_csv(
            io.StringIO(text),
            header=None,
            names=list(range(width)),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            engine="python",
        )
    except pd.errors.EmptyDataError as exc:
        raise StructuralImportFailure("CSV input is empty") from exc
    except (pd.errors.ParserError, csv.Error) as exc:
        raise StructuralImportFailure(f"Unable to parse CSV input: {exc}") from exc


def _used_width(cells: Sequence[str]) -> int:
    """Index one past the last non-blank cell."""
    for position in range(len(cells) - 1, -1, -1):
        if cells[position]:
            return position + 1
    return 0


def _looks_like_data(first_row: Sequence[str]) -> bool:
    if not first_row:
        return False
    try:
        parse_date(first_row[0])
    except ValueError:
        return False
    return True


def import_csv(
    raw: Union[str, bytes],
    *,
    taxonomy: Optional[Taxonomy] = None,
    source_name: str = "",
    anchor_month: Optional[str] = None,
    dedupe: bool = True,
) -> ImportResult:
    """Parse CSV text (or bytes) into transactions plus per-row issues.

    Args:
        raw: CSV text or undecoded bytes.
        taxonomy: Taxonomy for category validation. Defaults to the built-in one.
        source_name: File name or label; used for fallback ids and to tell
            income from expense summary exports.
        anchor_month: ``YYYY-MM`` assigned to rows of a summary export that
            has no date column.
        dedupe: Drop repeated ``(date, child, amount, note)`` rows within this
            import.

    Returns:
        ImportResult with transactions, the set of month keys seen, and issues.

    Raises:
        StructuralImportFailure: When the input is not readable CSV.
    """
    taxonomy = taxonomy or DEFAULT_TAXONOMY
    text = _decode(raw)
    if not text.strip():
        raise StructuralImportFailure("CSV input is empty")
    frame = _read_rows(text)
    rows = [[_cell(value) for value in record] for record in frame.itertuples(index=False, name=None)]
    if not rows:
        raise StructuralImportFailure("CSV input has no rows")

    if _looks_like_data(rows[0]):
        mapping = {name: position for position, name in enumerate(POSITIONAL_FIELDS)}
        known_width = len(POSITIONAL_FIELDS)
        data_rows = rows
    else:
        mapping = map_header(rows[0])
        known_width = _used_width(rows[0])
        data_rows = rows[1:]
        if "amount" not in mapping:
            raise StructuralImportFailure(
                "Unrecognised CSV layout: expected an amount column "
                f"(one of {', '.join(FIELD_ALIASES['amount'])})"
            )

    anchor: Optional[date] = None
    summary_sign: Optional[int] = None
    if "date" not in mapping and anchor_month:
        anchor = parse_month(anchor_month)
        summary_sign = 1 if _INCOME_SOURCE_RE.search(source_name or "") else -1

    result = ImportResult()
    seen_keys: set = set()
    seen_ids: set = set()
    for index, row in enumerate(data_rows):
        if not any(row):
            continue
        cells = {name: row[pos] if pos < len(row) else "" for name, pos in mapping.items()}
        outcome = parse_row(
            index,
            cells,
            taxonomy=taxonomy,
            source_name=source_name,
            anchor=anchor,
            summary_sign=summary_sign,
        )
        if isinstance(outcome, RowIssue):
            result.errors.append(outcome.issue)
            continue

        tx = outcome.tx
        if dedupe:
            key = row_fingerprint(tx)
            if key in seen_keys:
                result.errors.append(ImportIssue(IssueKind.DUPLICATE_ROW, index, f"duplicate of an earlier row ({key})"))
                continue
            seen_keys.add(key)
        if tx.id in seen_ids:
            tx = replace(tx, id=f"{tx.id}-{index}")
        seen_ids.add(tx.id)

        if outcome.warning is not None:
            result.errors.append(outcome.warning)
        extra = [cell for cell in row[known_width:] if cell]
        if extra:
            result.errors.append(
                ImportIssue(IssueKind.MALFORMED_ROW, index, f"ignored {len(extra)} extra cells: {','.join(extra)}")
            )
        result.transactions.append(tx)
        result.months_available.add(month_key(tx.date))

    _logger.info("Imported %s: %s", source_name or "csv text", result.summary())
    for issue in result.errors:
        _logger.debug("Row %s: %s %s", issue.row, issue.kind.value, issue.message)
    return result


def read_csv_file(path: Union[str, Path], **kwargs: Any) -> ImportResult:
    """Read ``path`` from disk and import it (``source_name`` defaults to the file name)."""
    path = Path(path)
    kwargs.setdefault("source_name", path.name)
    return import_csv(path.read_bytes(), **kwargs)
