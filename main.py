"""
Command-line entry point for the household budget guideline engine.

Subcommands:
1. guideline - actual vs. guideline series for a month or a month range
2. budget    - normalized budget per category for a month or range
3. today     - overall guideline through today, plus stale-entry flags
"""

import argparse
import logging
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

from tabulate import tabulate

from actuals import category_actuals
from budgeting import BudgetGuidelineEngine, GuidelineView, ScopeRequest
from cache import ReadThroughCache
from calendar_utils import YearMonth, months_between, parse_year_month
from config_manager import EngineSettings, load_config, resolve_connection_string, resolve_log_path
from data_fetch import BudgetDataLoader
from database_ops import DatabaseManager
from exceptions import FinanceAppError
from guideline import Periodicity

# Configure module-level logger
logger = logging.getLogger(__name__)


def setup_logging(config: dict) -> None:
    """
    Configure logging based on config settings.

    Args:
        config: Configuration dictionary with logging settings
    """
    log_config = config.get("logging", {})
    log_level = getattr(logging, str(log_config.get("level", "INFO")).upper(), logging.INFO)
    log_format = log_config.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    log_file = log_config.get("file")

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        try:
            log_path = resolve_log_path(log_file)
        except OSError as exc:
            raise RuntimeError(f"Unable to prepare log file path '{log_file}': {exc}") from exc
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers,
        force=True
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Household budget guideline and forecast engine",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to configuration file (default: config.yaml if present)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Guideline command
    guide_parser = subparsers.add_parser(
        "guideline",
        aliases=["guide"],
        help="Show actual spend against the guideline"
    )
    _add_period_arguments(guide_parser)
    guide_parser.add_argument("--category", type=str, help="Category focus")
    guide_parser.add_argument("--sub", type=str, help="Subcategory focus (requires --category)")
    guide_parser.add_argument("--source", type=str, help="Payment source keyword")
    guide_parser.add_argument(
        "--mode",
        type=str,
        choices=[p.value for p in Periodicity],
        default=Periodicity.CUMULATIVE.value,
        help="Per-period amounts or running totals (default: cumulative)"
    )
    guide_parser.add_argument("--full", action="store_true", help="Use the full budget as guideline")
    guide_parser.add_argument(
        "--include-collapsed",
        action="store_true",
        help="Include fixed costs, savings and transfers in the overall view"
    )

    # Budget command
    budget_parser = subparsers.add_parser("budget", aliases=["bud"], help="Show normalized budgets")
    _add_period_arguments(budget_parser)
    budget_parser.add_argument(
        "--include-collapsed",
        action="store_true",
        help="List collapsed categories too"
    )

    # Today command
    today_parser = subparsers.add_parser("today", help="Show today's overall position")
    today_parser.add_argument("--month", type=str, help="Month (YYYY-MM, default: current month)")
    today_parser.add_argument("--source", type=str, help="Payment source keyword")
    today_parser.add_argument("--full", action="store_true", help="Use the full budget as guideline")
    today_parser.add_argument(
        "--registrant",
        dest="registrants",
        action="append",
        default=[],
        help="Registrant to check for stale entries (can be specified multiple times)"
    )
    return parser


def _add_period_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--month", type=str, help="Single month (YYYY-MM, default: current month)")
    parser.add_argument("--start", type=str, help="First month of a range (YYYY-MM)")
    parser.add_argument("--end", type=str, help="Last month of a range (YYYY-MM)")


def _resolve_months(args: argparse.Namespace, today: date) -> List[YearMonth]:
    if args.start or args.end:
        if not (args.start and args.end):
            raise FinanceAppError("--start and --end must be given together")
        return months_between(args.start, args.end)
    if args.month:
        return [parse_year_month(args.month)]
    return [YearMonth.from_date(today)]


def print_view(view: GuidelineView) -> None:
    """Print a guideline view as a table followed by the forecast."""
    rows = [
        [str(actual.key), actual.value, guide.value, actual.value - guide.value]
        for actual, guide in zip(view.actual_series, view.guideline_series)
    ]
    scope = view.request.category or "Overall"
    if view.request.sub_category:
        scope = f"{scope} / {view.request.sub_category}"

    print("\n" + "=" * 60)
    print(f"GUIDELINE: {scope} (factor {view.guide_factor:.2f}, budget {view.budget:,.0f})")
    print("=" * 60)
    print(tabulate(rows, headers=["Period", "Actual", "Guideline", "Delta"], tablefmt="grid", intfmt=","))
    if view.weekend_boosted:
        print("Weekend days weighted in the guideline")

    if view.forecast is not None:
        f = view.forecast
        print(f"\nForecast (day {f.current_day}): month end {f.month_end_value:,}")
        status = "over budget by" if f.is_overspend else "remaining"
        print(f"  {status} {abs(f.remaining):,.0f}")


def handle_guideline_command(args: argparse.Namespace, engine: BudgetGuidelineEngine) -> None:
    months = _resolve_months(args, engine.today)
    request = ScopeRequest(
        months=months,
        range_mode=bool(args.start or args.end),
        category=args.category,
        sub_category=args.sub,
        source=args.source,
        periodicity=Periodicity(args.mode),
        guide_full=args.full,
        include_collapsed=args.include_collapsed,
    )
    print_view(engine.build_view(request))


def handle_budget_command(args: argparse.Namespace, engine: BudgetGuidelineEngine) -> None:
    months = _resolve_months(args, engine.today)
    settings = engine.settings
    budget = engine.range_budget(months)
    rows_in_scope = engine.loader.load_expense_list(months)
    spent = category_actuals(rows_in_scope, list(settings.categories))

    rows = []
    for category in settings.visible_categories(args.include_collapsed):
        amount = budget.category_total(category)
        rows.append([category, amount, spent.get(category, 0), amount - spent.get(category, 0)])
    total_budget = sum(r[1] for r in rows)
    total_spent = sum(r[2] for r in rows)
    rows.append(["Total", total_budget, total_spent, total_budget - total_spent])

    label = str(months[0]) if len(months) == 1 else f"{months[0]} .. {months[-1]}"
    print("\n" + "=" * 60)
    print(f"BUDGET: {label}")
    print("=" * 60)
    print(tabulate(rows, headers=["Category", "Budget", "Spent", "Left"], tablefmt="grid", floatfmt=",.0f"))


def handle_today_command(args: argparse.Namespace, engine: BudgetGuidelineEngine) -> None:
    month = parse_year_month(args.month) if args.month else YearMonth.from_date(engine.today)
    guide = engine.today_guide(month, source=args.source, guide_full=args.full)

    print("\n" + "=" * 60)
    print(f"TODAY: {month} day {guide.day}")
    print("=" * 60)
    print(tabulate(
        [[guide.budget, guide.guide, guide.actual, guide.delta]],
        headers=["Budget", "Guideline", "Actual", "Delta"],
        tablefmt="grid",
        floatfmt=",.0f"
    ))
    print("Over the guideline" if guide.is_over else "Within the guideline")

    if args.registrants:
        flags = engine.stale_registrants(month, args.registrants)
        print(tabulate(
            [[name, "yes" if stale else "no"] for name, stale in flags.items()],
            headers=["Registrant", f"No entry for {engine.settings.stale_entry_days}+ days"],
            tablefmt="grid"
        ))


def build_engine(config: dict) -> BudgetGuidelineEngine:
    """Composition root: store, cache, loader and engine from configuration."""
    settings = EngineSettings.from_config(config)
    db_manager = DatabaseManager(resolve_connection_string(config))
    db_manager.create_tables()
    cache = ReadThroughCache(default_ttl_ms=settings.ttl_ms)
    loader = BudgetDataLoader(db_manager, cache=cache, settings=settings)
    return BudgetGuidelineEngine(loader, settings)


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the application."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        config = load_config(Path(args.config) if args.config else None)
    except FinanceAppError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    try:
        engine = build_engine(config)
        if args.command in ["guideline", "guide"]:
            handle_guideline_command(args, engine)
        elif args.command in ["budget", "bud"]:
            handle_budget_command(args, engine)
        elif args.command == "today":
            handle_today_command(args, engine)
        else:
            parser.print_help()
            sys.exit(1)
    except FinanceAppError as e:
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
