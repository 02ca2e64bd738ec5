"""CLI entry point for larder."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from dataclasses import asdict
from datetime import date
from pathlib import Path

from .config import load_config
from .errors import LarderError, PartialFailure
from .models import Location, RemovalReason, ReviewList, StapleFilter
from .receipts import parse_receipt_lines
from .service import PantryService
from .vision import create_backend, parse_response

_EXIT_CODES = {
    "validation": 2,
    "not_found": 3,
    "stale": 4,
    "unauthorized": 5,
    "storage": 6,
    "partial_failure": 7,
}


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="larder",
        description="Household food tracking: scans, receipts, undo and staples",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="path to the configuration file (TOML)",
    )
    parser.add_argument(
        "--owner", type=str, default=None, help="household id (overrides config)"
    )
    parser.add_argument(
        "--verbose", "-v", action="count", default=0, help="more log output"
    )

    sub = parser.add_subparsers(dest="command")

    # scan
    scan_parser = sub.add_parser("scan", help="reconcile a shelf scan")
    scan_parser.add_argument(
        "--location",
        "-l",
        required=True,
        choices=[loc.value for loc in Location],
    )
    source = scan_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--image", type=str, nargs="+", help="images to analyze")
    source.add_argument(
        "--observation",
        type=str,
        metavar="FILE",
        help="JSON file with already detected items",
    )
    scan_parser.add_argument("--commit", action="store_true", help="apply the review")
    scan_parser.add_argument("--import-id", type=str, default=None)
    scan_parser.add_argument("--json", action="store_true", help="output JSON")

    # receipt
    receipt_parser = sub.add_parser("receipt", help="import a parsed receipt")
    receipt_parser.add_argument("file", type=str, help="receipt JSON file")
    receipt_parser.add_argument("--receipt-id", type=str, default=None)
    receipt_parser.add_argument(
        "--date", type=date.fromisoformat, default=None, help="YYYY-MM-DD"
    )
    receipt_parser.add_argument("--store", type=str, default=None)
    receipt_parser.add_argument(
        "--commit", action="store_true", help="add the items to the inventory"
    )
    receipt_parser.add_argument("--json", action="store_true", help="output JSON")

    # undo
    undo_parser = sub.add_parser("undo", help="revert an import")
    undo_parser.add_argument("import_id", type=str)

    # imports
    sub.add_parser("imports", help="list recent imports")

    # inventory
    inv_parser = sub.add_parser("inventory", help="show the current inventory")
    inv_parser.add_argument(
        "--location", "-l", default=None, choices=[loc.value for loc in Location]
    )
    inv_parser.add_argument("--json", action="store_true", help="output JSON")

    # remove
    remove_parser = sub.add_parser("remove", help="remove one item by hand")
    remove_parser.add_argument("item_id", type=int)
    remove_parser.add_argument(
        "--reason",
        required=True,
        choices=[r.value for r in RemovalReason],
    )

    # staples
    staples_parser = sub.add_parser("staples", help="staple analysis")
    staples_sub = staples_parser.add_subparsers(dest="staples_command")
    staples_sub.add_parser("analyze", help="recompute from purchase history")
    list_parser = staples_sub.add_parser("list", help="list staple records")
    list_parser.add_argument(
        "--filter",
        dest="staple_filter",
        default=StapleFilter.ALL.value,
        choices=[f.value for f in StapleFilter],
    )
    list_parser.add_argument("--json", action="store_true", help="output JSON")
    staples_sub.add_parser("clear", help="delete all staple records")
    set_parser = staples_sub.add_parser(
        "set", help="classify an item or edit its preferences"
    )
    set_parser.add_argument("staple_id", type=int)
    kind = set_parser.add_mutually_exclusive_group()
    kind.add_argument("--staple", action="store_const", dest="kind", const="staple")
    kind.add_argument(
        "--occasional", action="store_const", dest="kind", const="occasional"
    )
    kind.add_argument(
        "--unclassified", action="store_const", dest="kind", const="unclassified"
    )
    suggest = set_parser.add_mutually_exclusive_group()
    suggest.add_argument(
        "--never-suggest",
        action="store_const",
        dest="never_suggest",
        const=True,
        help="never suggest an alternative for this item",
    )
    suggest.add_argument(
        "--allow-suggest", action="store_const", dest="never_suggest", const=False
    )
    set_parser.add_argument("--notes", type=str, default=None)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)
    if args.command == "staples" and args.staples_command is None:
        staples_parser.print_help()
        sys.exit(1)

    config = load_config(args.config)
    _setup_logging(config.logging.level, args.verbose)
    owner_id = args.owner or config.household.owner_id

    try:
        with PantryService(config) as service:
            match args.command:
                case "scan":
                    _cmd_scan(service, config, owner_id, args)
                case "receipt":
                    _cmd_receipt(service, owner_id, args)
                case "undo":
                    _cmd_undo(service, owner_id, args)
                case "imports":
                    _cmd_imports(service, owner_id)
                case "inventory":
                    _cmd_inventory(service, owner_id, args)
                case "remove":
                    service.remove_item(args.item_id, owner_id, args.reason)
                    print(f"Removed item {args.item_id} ({args.reason})")
                case "staples":
                    _cmd_staples(service, owner_id, args)
    except PartialFailure as e:
        for err in e.errors:
            print(f"  failed: {err.name}: {err.message}", file=sys.stderr)
        sys.exit(_EXIT_CODES[e.kind])
    except LarderError as e:
        print(f"error ({e.kind}): {e}", file=sys.stderr)
        sys.exit(_EXIT_CODES.get(e.kind, 1))
    except (OSError, ValueError, ImportError) as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)


def _setup_logging(level: str, verbose: int) -> None:
    if verbose >= 2:
        level = "DEBUG"
    elif verbose == 1:
        level = "INFO"
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _dump(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def _print_review(review: ReviewList) -> None:
    if not review.items:
        print("Nothing detected.")
        return
    for item in review.items:
        mark = "x" if item.selected else " "
        if item.not_detected:
            action = "remove? (not seen)"
        elif item.item_id is None:
            action = "new"
        else:
            action = f"update #{item.item_id}"
        print(
            f"  [{mark}] {item.name:<20} {item.quantity:g} {item.unit:<8} "
            f"{item.confidence:.0%}  {item.location.value:<8} {action}"
        )


def _cmd_scan(service: PantryService, config, owner_id: str, args) -> None:
    if args.image:
        backend = create_backend(config)
        print("Detecting items...", file=sys.stderr)
        observed = asyncio.run(backend.detect_items(args.image))
    else:
        observed = parse_response(Path(args.observation).read_text(encoding="utf-8"))

    observed = [o for o in observed if o.confidence >= config.vision.min_confidence]
    review = service.reconcile(observed, args.location, owner_id)

    if not args.commit:
        if args.json:
            _dump(asdict(review))
        else:
            _print_review(review)
        return

    import_id = args.import_id or f"scan-{uuid.uuid4().hex[:12]}"
    result = service.commit(review, owner_id, import_id=import_id)
    if args.json:
        _dump(asdict(result))
    else:
        print(
            f"inserted {result.inserted}, updated {result.updated}, "
            f"deleted {result.deleted}, skipped {result.skipped}"
        )
        if result.undo_entry is not None:
            print(f"Undo with: larder undo {import_id}")
    result.raise_for_errors()


def _cmd_receipt(service: PantryService, owner_id: str, args) -> None:
    data = json.loads(Path(args.file).read_text(encoding="utf-8"))
    if isinstance(data, list):
        data = {"lines": data}

    receipt_id = args.receipt_id or data.get("receipt_id") or Path(args.file).stem
    if args.date is not None:
        receipt_date = args.date
    elif data.get("date"):
        receipt_date = date.fromisoformat(data["date"])
    else:
        receipt_date = date.today()
    store = args.store or data.get("store", "")
    lines = parse_receipt_lines(data.get("lines", []))

    if not args.commit:
        count = service.record_receipt(
            owner_id, receipt_id, receipt_date, lines, store_name=store
        )
        print(f"Recorded receipt {receipt_id} ({count} lines)")
        return

    review = service.import_receipt(
        owner_id, receipt_id, receipt_date, lines, store_name=store
    )
    result = service.commit(review, owner_id, import_id=receipt_id)
    if args.json:
        _dump(asdict(result))
    else:
        _print_review(review)
        print(
            f"inserted {result.inserted}, updated {result.updated}, "
            f"skipped {result.skipped}"
        )
        if result.undo_entry is not None:
            print(f"Undo with: larder undo {receipt_id}")
    result.raise_for_errors()


def _cmd_undo(service: PantryService, owner_id: str, args) -> None:
    result = service.undo_import(args.import_id, owner_id)
    print(f"Deleted {result.deleted_count} item(s) from import {result.import_id}")
    for name in result.deleted_names:
        print(f"  {name}")


def _cmd_imports(service: PantryService, owner_id: str) -> None:
    statuses = service.import_status(owner_id)
    if not statuses:
        print("No imports recorded.")
        return
    for s in statuses:
        state = "undoable" if s.can_undo else "expired"
        print(
            f"  {s.import_id:<24} {s.created_at:%Y-%m-%d %H:%M} "
            f"{s.remaining:>3} left  {state}"
        )


def _cmd_inventory(service: PantryService, owner_id: str, args) -> None:
    items = service.inventory(owner_id, args.location)
    if args.json:
        _dump([asdict(i) for i in items])
        return
    if not items:
        print("Inventory is empty.")
        return
    for i in items:
        expiry = i.expiry_date.isoformat() if i.expiry_date else "-"
        print(
            f"  #{i.id:<5} {i.name:<20} {i.quantity:g} {i.unit:<8} "
            f"{i.location.value:<8} {expiry}  {i.freshness.value}"
        )


def _cmd_staples(service: PantryService, owner_id: str, args) -> None:
    match args.staples_command:
        case "analyze":
            result = service.analyze_staples(owner_id)
            print(
                f"Analyzed {result.receipts_analyzed} receipt(s): "
                f"{result.items_found} items, {result.staples_identified} staples "
                f"({result.inserted} new, {result.updated} updated, "
                f"{result.skipped} skipped)"
            )
            for agg in result.top_staples:
                freq = agg.avg_purchase_frequency_days
                every = f"every {freq} days" if freq is not None else ""
                print(f"  {agg.name:<20} x{agg.purchase_count}  {every}")
            result.raise_for_errors()
        case "list":
            summary = service.list_staples(owner_id, args.staple_filter)
            if args.json:
                _dump(asdict(summary))
                return
            print(
                f"{summary.total} item(s): {summary.staple_count} staples, "
                f"{summary.occasional_count} occasional, "
                f"{summary.unclassified_count} unclassified"
            )
            for r in summary.staples:
                lock = " (manual)" if r.manual_override else ""
                print(
                    f"  #{r.id:<5} {r.name:<20} x{r.purchase_count:<3} "
                    f"{r.classification}{lock}"
                )
        case "clear":
            count = service.clear_staples(owner_id)
            print(f"Cleared {count} staple record(s)")
        case "set":
            is_staple = is_occasional = None
            if args.kind is not None:
                is_staple = args.kind == "staple"
                is_occasional = args.kind == "occasional"
            record = service.classify_override(
                args.staple_id,
                owner_id,
                is_staple=is_staple,
                is_occasional=is_occasional,
                never_suggest_alternative=args.never_suggest,
                notes=args.notes,
            )
            print(f"{record.name} is now {record.classification}")
            if record.never_suggest_alternative:
                print("  never suggest alternatives")
            if record.notes:
                print(f"  notes: {record.notes}")
