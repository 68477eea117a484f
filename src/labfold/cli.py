#!/usr/bin/env python3
"""CLI entry point for labfold package.

Usage:
    labfold group <extractions.json> [--first-name A --last-name B] [--db labfold.db] [--save]
    labfold fingerprint <text_file>
    labfold compare <simhash> <simhash> [--threshold 5]
    labfold find-lab <name>
    labfold status [--db labfold.db] [--condition HSV-2 ...]
    labfold init-config [--output labfold.toml]
    labfold serve-mcp [--db labfold.db]
"""

import argparse
import json
import sys
from pathlib import Path

DEFAULT_DB = "labfold.db"


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="labfold",
        description="Verify, fingerprint, and deduplicate machine-extracted lab report results.",
    )
    parser.add_argument("--config", default="", help="TOML config file (default: labfold.toml if present)")
    parser.add_argument("--log-level", default="", help="Override the configured log level")
    sub = parser.add_subparsers(dest="command")

    # --- group ---
    group_parser = sub.add_parser("group", help="Group parsed documents by collection date")
    group_parser.add_argument("extractions", help="JSON file: list of document parser payloads")
    group_parser.add_argument("--first-name", default="", help="Profile first name for name matching")
    group_parser.add_argument("--last-name", default="", help="Profile last name for name matching")
    group_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")
    group_parser.add_argument("--save", action="store_true", help="Save each group to the database")
    group_parser.add_argument(
        "--allow-duplicates", action="store_true", help="Save even when an identical document exists"
    )

    # --- fingerprint ---
    fp_parser = sub.add_parser("fingerprint", help="Print content hashes of a text file")
    fp_parser.add_argument("path", help="Text file (OCR output)")

    # --- compare ---
    cmp_parser = sub.add_parser("compare", help="Hamming distance between two SimHashes")
    cmp_parser.add_argument("a", help="16-hex-char SimHash")
    cmp_parser.add_argument("b", help="16-hex-char SimHash")
    cmp_parser.add_argument("--threshold", type=int, default=None, help="Near-duplicate threshold")

    # --- find-lab ---
    lab_parser = sub.add_parser("find-lab", help="Look up a lab name in the directory")
    lab_parser.add_argument("name", help="Lab name as printed on the report")

    # --- status ---
    status_parser = sub.add_parser("status", help="Current status per test from saved records")
    status_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")
    status_parser.add_argument(
        "--condition", action="append", default=[], help="Declared known condition (repeatable)"
    )

    # --- init-config ---
    config_parser = sub.add_parser("init-config", help="Generate labfold.toml with defaults")
    config_parser.add_argument("--output", default="labfold.toml", help="Config file path")

    # --- serve-mcp ---
    mcp_parser = sub.add_parser("serve-mcp", help="Start MCP server for Claude integration")
    mcp_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    config = _load_config(args)

    from labfold.core.log import setup_logging

    setup_logging(args.log_level or config["logging"]["level"])

    if args.command == "group":
        _handle_group(args, config)
    elif args.command == "fingerprint":
        _handle_fingerprint(args)
    elif args.command == "compare":
        _handle_compare(args, config)
    elif args.command == "find-lab":
        _handle_find_lab(args, config)
    elif args.command == "status":
        _handle_status(args)
    elif args.command == "init-config":
        _handle_init_config(args)
    elif args.command == "serve-mcp":
        _handle_serve_mcp(args)


def _load_config(args) -> dict:
    from labfold.config import DEFAULT_CONFIG_PATH, _default_config, load_config

    if args.config:
        return load_config(args.config)
    if Path(DEFAULT_CONFIG_PATH).exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return _default_config()


def _handle_group(args, config):
    from labfold.config import scorer_from_config
    from labfold.db import FutureDateError, LabfoldDB
    from labfold.grouping import DateGrouper
    from labfold.models import UserProfile
    from labfold.parser import extraction_from_payload, parse_batch
    from labfold.verification import soft_warnings

    try:
        payloads = json.loads(Path(args.extractions).read_text())
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: cannot read {args.extractions}: {e}", file=sys.stderr)
        sys.exit(1)
    if isinstance(payloads, dict):
        payloads = [payloads]
    if not isinstance(payloads, list):
        print(f"Error: {args.extractions} must hold a JSON object or a list of objects", file=sys.stderr)
        sys.exit(1)

    parsed = parse_batch(payloads, extraction_from_payload)
    for f in parsed.failures:
        print(f"Skipped {f.file_label}: {f.user_message()} ({f.message})", file=sys.stderr)
    if parsed.all_failed:
        sys.exit(1)
    documents = parsed.extractions
    profile = UserProfile(first_name=args.first_name, last_name=args.last_name)
    groups = DateGrouper(scorer=scorer_from_config(config)).group(documents, profile)

    for g in groups:
        v = g.verification_result
        print(f"\n{'='*50}")
        print(f"{g.date_key}  {g.test_type}  overall: {g.overall_status}")
        print(f"{'='*50}")
        for t in g.tests:
            print(f"  {t.name:<30} {t.status:<13} {t.result_text}")
        for c in g.conflicts:
            seen = ", ".join(o.status for o in c.occurrences)
            print(f"  ! conflict on {c.test_name}: {seen} -> {c.suggested.status}")
        if v:
            print(f"  verification: {v.score}/100 ({v.level}), verified={g.is_verified}")
            for w in soft_warnings(v):
                print(f"    - {w}")

    if not args.save:
        return

    failed = False
    with LabfoldDB(args.db) as db:
        db.init_schema()
        threshold = config["fingerprint"]["near_duplicate_threshold"]
        for g in groups:
            existing = [db.find_exact_duplicate(h) for h in g.content_hashes]
            existing = [e for e in existing if e is not None]
            if existing and not args.allow_duplicates:
                print(f"Skipped {g.date_key}: identical document already saved as record {existing[0]}")
                continue
            for s in g.content_simhashes:
                for record_id, distance in db.find_near_duplicates(s, threshold):
                    print(f"Note: {g.date_key} looks like record {record_id} (distance {distance})")
            try:
                record_id = db.save_group(g)
            except FutureDateError as e:
                print(f"Error: {e}", file=sys.stderr)
                failed = True
                continue
            print(f"Saved {g.date_key} as record {record_id}")
    if failed:
        sys.exit(1)


def _handle_fingerprint(args):
    from labfold.fingerprint import fingerprint

    fp = fingerprint(Path(args.path).read_text(encoding="utf-8", errors="replace"))
    print(f"exact_hash: {fp.exact_hash}")
    print(f"simhash:    {fp.simhash}")


def _handle_compare(args, config):
    from labfold.fingerprint import hamming_distance

    threshold = args.threshold
    if threshold is None:
        threshold = config["fingerprint"]["near_duplicate_threshold"]
    distance = hamming_distance(args.a, args.b)
    verdict = "near duplicate" if distance < threshold else "different"
    print(f"distance: {distance}/64 ({verdict})")


def _handle_find_lab(args, config):
    from labfold.config import lab_directory_from_config

    directory = lab_directory_from_config(config)
    lab = directory.find_lab(args.name)
    if lab is None:
        print(f"No recognized lab matches {args.name!r}")
        sys.exit(1)
    print(f"{lab.canonical_name} [{lab.id}] ({lab.region}, {lab.country})")
    print(f"  normalized: {directory.normalize_lab_name(args.name)}")
    if lab.health_card_name:
        print(f"  health card: {lab.health_card_name}")


def _handle_status(args):
    from labfold.aggregation import aggregate
    from labfold.db import LabfoldDB
    from labfold.models import KnownCondition

    with LabfoldDB(args.db) as db:
        db.init_schema()
        history = db.load_history()
    conditions = [KnownCondition(condition_name=c) for c in args.condition]
    summary = aggregate(history, conditions)

    print(f"\n{'='*50}")
    print(f"Overall status: {summary.overall}")
    if summary.last_tested_date:
        print(f"Last tested:    {summary.last_tested_date.isoformat()}")
    print(f"{'='*50}")
    for label, entries in (("Routine", summary.routine), ("Known conditions", summary.known)):
        if not entries:
            continue
        print(f"\n{label}:")
        for e in entries:
            when = e.test_date.isoformat() if e.test_date else "unknown"
            print(f"  {e.name:<30} {e.status:<13} {when}")
    if summary.new_status_positives:
        names = ", ".join(e.name for e in summary.new_status_positives)
        print(f"\nPositive results not yet declared as known conditions: {names}")


def _handle_init_config(args):
    from labfold.config import generate_config

    path = generate_config(config_path=args.output)
    print(f"Config generated at {path}")


def _handle_serve_mcp(args):
    import os

    os.environ["LABFOLD_DB"] = args.db

    from labfold.mcp.server import mcp

    mcp.run()


if __name__ == "__main__":
    main()
