"""Command line entry point for budget analytics."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from . import config
from .aggregations import (
    aggregate_by_month,
    cap_performance,
    income_share_warnings,
    parent_and_sub_maps,
    savings_rate,
    suggest_caps_for_month,
)
from .analytics_scope import MODES, AnalyticsScopeStore
from .caps_store import CapsStore
from .formatting import format_percent, format_vnd
from .logging_setup import configure_logging, get_logger
from .models import ImportResult, StructuralImportFailure
from .parsing import parse_amount, parse_month, read_csv_file
from .storage import JsonFileStorage
from .taxonomy import Taxonomy, load_taxonomy

_logger = get_logger("budget_analytics.cli")

SCOPE_ACTIONS = ("show", "mode", "toggle", "include-parent", "exclude-parent", "include-all", "exclude-all", "reset")


def _month(value: str) -> str:
    try:
        parse_month(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="budget-analytics",
        description="Import transaction CSVs, summarise spending and manage budget caps.",
    )
    parser.add_argument("--store", type=Path, help="JSON store file (defaults to BUDGET_STORE_PATH).")
    parser.add_argument("--taxonomy", type=Path, help="JSON file mapping parent categories to children.")
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO or BUDGET_ANALYTICS_LOG_LEVEL).")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_csv_command(name: str, help_text: str) -> argparse.ArgumentParser:
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("csv_path", type=Path, help="Transaction CSV export.")
        cmd.add_argument("--anchor-month", type=_month, help="Month assigned to summary exports without dates.")
        cmd.add_argument("--no-dedupe", action="store_true", help="Keep repeated rows within the file.")
        return cmd

    add_csv_command("summary", "Monthly income, expense and balance.")

    breakdown = add_csv_command("breakdown", "Expense per parent category for one month.")
    breakdown.add_argument("--month", type=_month, required=True)

    suggest = add_csv_command("suggest", "Suggested caps per parent category.")
    suggest.add_argument("--month", type=_month, required=True)
    suggest.add_argument("--guardrail", type=float, help=f"Allowed change vs. prior cap (default {config.GUARDRAIL_PCT}).")
    suggest.add_argument("--apply", action="store_true", help="Save the suggestions as caps for the month.")

    caps = sub.add_parser("caps", help="Show or edit caps for a month.")
    caps.add_argument("--month", type=_month, required=True)
    action = caps.add_mutually_exclusive_group()
    action.add_argument("--export", action="store_true", help="Print the month's caps as CSV.")
    action.add_argument("--import", dest="import_path", type=Path, help="Load caps from a CSV file.")
    action.add_argument("--set", nargs=2, metavar=("CATEGORY", "AMOUNT"), help="Set a single cap.")

    scope = sub.add_parser("scope", help="Include or exclude categories from analytics.")
    scope.add_argument("action", choices=SCOPE_ACTIONS)
    scope.add_argument("value", nargs="?", help="Mode, child or parent name, depending on the action.")
    scope.add_argument("--month", type=_month, help="Month for per-month mode.")
    return parser


def _load(args: argparse.Namespace, taxonomy: Taxonomy) -> ImportResult:
    if not args.csv_path.exists():
        raise SystemExit(f"CSV file not found: {args.csv_path}")
    return read_csv_file(
        args.csv_path,
        taxonomy=taxonomy,
        anchor_month=args.anchor_month,
        dedupe=not args.no_dedupe,
    )


def _issue_lines(result: ImportResult) -> List[str]:
    lines = [result.summary()]
    for issue in result.errors:
        row = "-" if issue.row is None else issue.row
        lines.append(f"  row {row}: {issue.kind.value} - {issue.message}")
    return lines


def _prior_caps(caps: CapsStore, month: str) -> Dict[str, float]:
    current = caps.caps_for(month)
    if current:
        return current
    earlier = [m for m in caps.months() if m < month]
    return caps.caps_for(earlier[-1]) if earlier else {}


def _cmd_summary(args: argparse.Namespace, taxonomy: Taxonomy, scope: AnalyticsScopeStore) -> List[str]:
    result = _load(args, taxonomy)
    lines = []
    for row in aggregate_by_month(scope.filter_transactions(result.transactions)):
        lines.append(
            f"{row.month}  income {format_vnd(row.income)}  expense {format_vnd(row.expense)}"
            f"  balance {format_vnd(row.balance)}"
        )
    return lines + _issue_lines(result)


def _cmd_breakdown(args, taxonomy, scope, caps: CapsStore) -> List[str]:
    result = _load(args, taxonomy)
    excluded = scope.get_excluded_set(args.month)
    breakdown = parent_and_sub_maps(result.transactions, args.month, excluded)
    lines = [f"{slice_.name}: {format_vnd(slice_.value)}" for slice_ in breakdown.pie_data]
    lines.append(f"Total: {format_vnd(breakdown.total)}")

    month_caps = caps.caps_for(args.month)
    if month_caps:
        for status in cap_performance(result.transactions, args.month, month_caps, excluded, taxonomy):
            lines.append(f"  cap {status.parent}: {format_vnd(status.actual)} / {format_vnd(status.cap)} [{status.status}]")
    lines.extend(f"  warning: {text}" for text in income_share_warnings(result.transactions, args.month, excluded))
    lines.append(f"Savings rate: {format_percent(savings_rate(result.transactions, args.month, excluded) / 100)}")
    return lines


def _cmd_suggest(args, taxonomy, scope, caps: CapsStore) -> List[str]:
    result = _load(args, taxonomy)
    suggestions = suggest_caps_for_month(
        scope.filter_transactions(result.transactions),
        args.month,
        _prior_caps(caps, args.month),
        args.guardrail,
    )
    if args.apply:
        caps.set_caps(args.month, suggestions)
        _logger.info("Saved %d suggested caps for %s", len(suggestions), args.month)
    return [f"{parent}: {format_vnd(value)}" for parent, value in suggestions.items()]


def _cmd_caps(args, caps: CapsStore) -> List[str]:
    if args.export:
        return [caps.export_csv(args.month).rstrip("\n")]
    if args.import_path:
        if not args.import_path.exists():
            raise SystemExit(f"Caps file not found: {args.import_path}")
        applied = caps.import_csv(args.month, args.import_path.read_text(encoding="utf-8-sig"))
        return [f"Imported {len(applied)} caps for {args.month}"]
    if args.set:
        category, amount = args.set
        caps.set_cap(args.month, category, parse_amount(amount))
    return [f"{name}: {format_vnd(value)}" for name, value in caps.caps_for(args.month).items()]


def _cmd_scope(args, taxonomy: Taxonomy, scope: AnalyticsScopeStore) -> List[str]:
    action, value, month = args.action, args.value, args.month
    if action in ("mode", "toggle", "include-parent", "exclude-parent") and not value:
        raise ValueError(f"'{action}' needs a value")
    if action == "mode":
        scope.set_mode(value)
    elif action == "toggle":
        scope.toggle_child(value, month)
    elif action == "include-parent":
        scope.include_parent(value, month)
    elif action == "exclude-parent":
        scope.exclude_parent(value, month)
    elif action == "include-all":
        scope.include_all(month)
    elif action == "exclude-all":
        scope.exclude_all(taxonomy.all_children(), month)
    elif action == "reset":
        scope.reset(month)

    lines = [f"Mode: {scope.mode} (one of {', '.join(MODES)})"]
    if scope.mode == "global" or month:
        excluded = scope.get_excluded_set(month)
        included = scope.get_included_count(month, taxonomy.all_children())
        lines.append(f"Included: {included}/{len(taxonomy.all_children())}")
        lines.append("Excluded: " + (", ".join(sorted(excluded)) or "(none)"))
    else:
        for key, names in sorted(scope.by_month.items()):
            lines.append(f"{key}: " + ", ".join(names))
    return lines


def run(argv: Optional[Iterable[str]] = None) -> int:
    args = build_parser().parse_args(None if argv is None else list(argv))
    configure_logging(args.log_level)

    if args.store is None:
        config.ensure_data_directories()
    storage = JsonFileStorage(args.store or config.get_store_path())
    taxonomy = load_taxonomy(args.taxonomy)
    scope = AnalyticsScopeStore(storage, taxonomy)
    caps = CapsStore(storage)

    try:
        if args.command == "summary":
            lines = _cmd_summary(args, taxonomy, scope)
        elif args.command == "breakdown":
            lines = _cmd_breakdown(args, taxonomy, scope, caps)
        elif args.command == "suggest":
            lines = _cmd_suggest(args, taxonomy, scope, caps)
        elif args.command == "caps":
            lines = _cmd_caps(args, caps)
        else:
            lines = _cmd_scope(args, taxonomy, scope)
    except StructuralImportFailure as exc:
        print(f"Import failed: {exc}", file=sys.stderr)
        return 2
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    for line in lines:
        print(line)
    return 0


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
