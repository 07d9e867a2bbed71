#!/usr/bin/env python3
"""
run.py – CLI entry-point for QE ADO Sync.

Usage:
    python run.py compare --id 12345 --input cases.json
    python run.py push --plan 77 --story 12345 --input cases.json --only-new
    python run.py push --plan 77 --story 12345 --feature-id 900 --feature-title "Login" --input cases.json
    python run.py update --id 4567 --input case.json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ado_service import ADOService
from config import Settings
from errors import ServiceError
from models import STATUS_NEW, GeneratedTestCase, PlacementResult, TestCaseComparisonResult

console = Console()
logger = logging.getLogger("qe-ado-sync")

_STATUS_STYLE = {"NEW": "green", "UPDATE": "yellow", "EXISTS": "dim"}

# ── Logging ─────────────────────────────────────────────────────────────

def _configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, markup=False)],
    )


# ── Input ───────────────────────────────────────────────────────────────

def load_cases(path: str) -> list[GeneratedTestCase]:
    """Read test cases from a JSON list, or an object with a ``testCases`` key."""
    data: Any = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("testCases", [data])
    return [GeneratedTestCase.from_dict(item) for item in data]


# ── Pretty output helpers ──────────────────────────────────────────────

def _show_comparison(result: TestCaseComparisonResult) -> None:
    table = Table(
        title=f"#{result.work_item_id} {escape(result.work_item_title)}", show_lines=True
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Generated", style="bold")
    table.add_column("Status", width=8)
    table.add_column("Sim %", width=7, justify="right")
    table.add_column("Existing", width=30)
    table.add_column("Steps +/-/~", width=12, justify="center")

    for i, cmp in enumerate(result.comparisons, 1):
        style = _STATUS_STYLE.get(cmp.status, "")
        existing = f"#{cmp.existing.id} {escape(cmp.existing.title)}" if cmp.existing else "—"
        steps = (
            f"{cmp.diff.steps_added}/{cmp.diff.steps_removed}/{cmp.diff.steps_modified}"
            if cmp.diff
            else "—"
        )
        table.add_row(
            str(i),
            escape(cmp.generated.title),
            f"[{style}]{cmp.status}[/]",
            f"{cmp.similarity:.1f}",
            existing,
            steps,
        )
    console.print(table)

    s = result.summary
    console.print(
        f"  [green]{s.new_count}[/] new  |  "
        f"[yellow]{s.update_count}[/] updates  |  "
        f"[dim]{s.exists_count}[/] existing  "
        f"(generated {s.total_generated}, linked {s.total_existing})\n"
    )


def _show_placement(result: PlacementResult) -> None:
    suite = result.suite
    ids = [wi.id for wi in result.test_cases]
    console.print(
        Panel(
            f"[blue bold]Suite:[/]    {escape(suite.name)} (id={suite.id})\n"
            f"[green bold]Created:[/]  {len(ids)}  →  {ids or '—'}",
            title="Push Summary",
            border_style="green",
        )
    )


# ── Commands ────────────────────────────────────────────────────────────

def cmd_compare(service: ADOService, args: argparse.Namespace) -> None:
    cases = load_cases(args.input)
    result = service.compare_test_cases(args.id, cases)
    if args.json:
        console.print_json(data=result.to_dict())
    else:
        _show_comparison(result)


def cmd_push(service: ADOService, args: argparse.Namespace) -> None:
    plan_id = args.plan or Settings.ADO_TEST_PLAN_ID
    if not plan_id:
        raise ServiceError("A test plan id is required (--plan or ADO_TEST_PLAN_ID).", 400)

    cases = load_cases(args.input)
    if args.only_new:
        console.rule("[bold blue]Compare with existing test cases")
        comparison = service.compare_test_cases(args.story, cases)
        _show_comparison(comparison)
        cases = [c.generated for c in comparison.by_status(STATUS_NEW)]
        if not cases:
            console.print("[green]Nothing new to push.[/]")
            return

    title = args.title
    if not title:
        try:
            title = service.client.get_work_item(args.story, expand_relations=False).title
        except ServiceError as exc:
            logger.warning("Could not fetch title for #%s: %s", args.story, exc)
        title = title or f"PBI {args.story}"

    console.rule("[bold blue]Push to Azure DevOps")
    result = service.create_test_cases_in_plan(
        plan_id,
        args.story,
        title,
        cases,
        feature_id=args.feature_id,
        feature_title=args.feature_title,
        project=args.project,
    )
    _show_placement(result)


def cmd_update(service: ADOService, args: argparse.Namespace) -> None:
    cases = load_cases(args.input)
    if len(cases) != 1:
        raise ServiceError("update expects exactly one test case in the input file.", 400)
    tc = cases[0]
    work_item = service.update_test_case(
        args.id,
        title=tc.title or None,
        steps=tc.steps or None,
        priority=tc.priority,
        automation_status=tc.automation_status,
    )
    console.print(f"[yellow]Updated[/] Test Case #{work_item.id} (rev {work_item.rev})")


# ── CLI ─────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qe-ado-sync",
        description="Compare generated test cases with Azure DevOps and file them into Test Plans.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Enable debug-level logging.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    compare = sub.add_parser("compare", help="Classify test cases as NEW / UPDATE / EXISTS.")
    compare.add_argument("--id", type=int, required=True, help="Requirement work-item ID.")
    compare.add_argument("--input", required=True, help="JSON file with generated test cases.")
    compare.add_argument("--json", action="store_true", help="Print the raw JSON result.")
    compare.set_defaults(func=cmd_compare)

    push = sub.add_parser("push", help="Create test cases under plan → feature → story suites.")
    push.add_argument("--plan", type=int, default=0, help="Test Plan ID.")
    push.add_argument("--story", type=int, required=True, help="Story / PBI work-item ID.")
    push.add_argument("--title", default="", help="Story title (fetched from ADO if omitted).")
    push.add_argument("--input", required=True, help="JSON file with test cases.")
    push.add_argument("--feature-id", type=int, default=None)
    push.add_argument("--feature-title", default=None)
    push.add_argument("--project", default=None, help="Project that owns the Test Plan.")
    push.add_argument(
        "--only-new",
        action="store_true",
        default=False,
        help="Compare first and push only NEW test cases.",
    )
    push.set_defaults(func=cmd_push)

    update = sub.add_parser("update", help="Update one existing Test Case.")
    update.add_argument("--id", type=int, required=True, help="Test Case work-item ID.")
    update.add_argument("--input", required=True, help="JSON file with one test case.")
    update.set_defaults(func=cmd_update)

    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    console.print(
        Panel(
            "[bold white]QE ADO Sync[/]  –  Test-case comparison & Test Plan placement",
            border_style="bright_magenta",
        )
    )

    Settings.validate()

    try:
        args.func(ADOService(), args)
    except KeyboardInterrupt:
        console.print("\n[red]Aborted by user.[/]")
        sys.exit(130)
    except ServiceError as exc:
        console.print(f"\n[red bold]Error ({exc.status_code}):[/] {escape(exc.message)}")
        logger.debug("Traceback:", exc_info=True)
        sys.exit(1)
    except Exception as exc:
        console.print(f"\n[red bold]Error:[/] {escape(str(exc))}")
        logger.debug("Traceback:", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
