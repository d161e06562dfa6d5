"""Personal budget analytics.

This package provides:
- CSV import of transaction exports into immutable ``Tx`` records
- Monthly income/expense aggregation and category breakdowns
- Guardrail-bounded budget cap suggestions
- Persisted caps and analytics scope (category inclusion) stores
"""

from .aggregations import (
    DEFAULT_NET,
    GUARDRAIL_PCT,
    INCOME_SHARE_LIMITS,
    aggregate_by_month,
    cap_performance,
    clamp,
    income_share_warnings,
    parent_and_sub_maps,
    round1000,
    savings_rate,
    suggest_caps_for_month,
)
from .analytics_scope import (
    LEGACY_KEY,
    SCOPE_KEY,
    AnalyticsScopeState,
    AnalyticsScopeStore,
    migrate_legacy_exclusions,
)
from .caps_store import CAPS_KEY, CapsStore
from .formatting import format_vnd
from .models import (
    CapStatus,
    CategoryBreakdown,
    ImportIssue,
    ImportResult,
    IssueKind,
    MonthlySeries,
    PieSlice,
    RowIssue,
    RowOk,
    StructuralImportFailure,
    Tx,
    month_key,
)
from .parsing import import_csv, normalize_payer, parse_amount, parse_date, read_csv_file
from .storage import JsonFileStorage, KeyValueStorage, MemoryStorage
from .taxonomy import DEFAULT_TAXONOMY, CategoryPair, Taxonomy, load_taxonomy

__all__ = [
    # Aggregations
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
    # Stores
    "AnalyticsScopeState",
    "AnalyticsScopeStore",
    "CAPS_KEY",
    "CapsStore",
    "JsonFileStorage",
    "KeyValueStorage",
    "LEGACY_KEY",
    "MemoryStorage",
    "SCOPE_KEY",
    "migrate_legacy_exclusions",
    # Import and models
    "CapStatus",
    "CategoryBreakdown",
    "ImportIssue",
    "ImportResult",
    "IssueKind",
    "MonthlySeries",
    "PieSlice",
    "RowIssue",
    "RowOk",
    "StructuralImportFailure",
    "Tx",
    "import_csv",
    "month_key",
    "normalize_payer",
    "parse_amount",
    "parse_date",
    "read_csv_file",
    # Taxonomy
    "CategoryPair",
    "DEFAULT_TAXONOMY",
    "Taxonomy",
    "load_taxonomy",
]
