#!/usr/bin/env python3
"""
Administrative commands for the universal entity tables.

Usage:
  python3 scripts/universal_admin.py [--db-url URL] [--config PATH] init-db
  python3 scripts/universal_admin.py validate-field TABLE FIELD [--purpose P]
  python3 scripts/universal_admin.py migration-script TABLE OLD:NEW [OLD:NEW ...]
  python3 scripts/universal_admin.py [--db-url URL] duplicate-report ORG [--json]

validate-field and migration-script only read the naming configuration and
never touch the database.  --db-url defaults to $DATABASE_URL, then to a
local SQLite file.

Exit codes: 0 success, 1 invalid field / operation failed, 2 usage error.
"""

import argparse
import json
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DEFAULT_DB_URL = "sqlite:///universal.db"


def _parse_mapping(text: str) -> tuple[str, str]:
    old, sep, new = text.partition(":")
    if not sep or not old or not new:
        raise argparse.ArgumentTypeError(f"expected OLD:NEW, got {text!r}")
    return old, new


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Universal entity layer administration")
    p.add_argument(
        "--db-url",
        default=os.environ.get("DATABASE_URL", DEFAULT_DB_URL),
        help=f"Database URL (default: $DATABASE_URL or {DEFAULT_DB_URL!r})",
    )
    p.add_argument(
        "--config",
        default=None,
        help="Configuration YAML (default: $UNIVERSAL_CONFIG_PATH or the bundled defaults)",
    )
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the universal tables (idempotent)")

    v = sub.add_parser("validate-field", help="Check a field name against the naming conventions")
    v.add_argument("table")
    v.add_argument("field")
    v.add_argument("--purpose", default=None)

    m = sub.add_parser("migration-script", help="Print rename SQL for OLD:NEW column pairs")
    m.add_argument("table")
    m.add_argument("mappings", nargs="+", type=_parse_mapping, metavar="OLD:NEW")

    d = sub.add_parser("duplicate-report", help="Scan an organization for duplicate patterns")
    d.add_argument("organization_id")
    d.add_argument("--json", action="store_true", help="Emit JSON instead of a table")
    return p


def _cmd_init_db(args: argparse.Namespace) -> int:
    from universal_kernel.db.engine import create_tables, init_engine_from_url

    init_engine_from_url(args.db_url)
    create_tables()
    print(f"  Tables ready at {args.db_url}")
    return 0


def _cmd_validate_field(args: argparse.Namespace, config) -> int:
    from universal_config.bridges import build_naming_engine

    result = build_naming_engine(config).validate_field_name(args.table, args.field, args.purpose)
    status = "valid" if result.is_valid else "invalid"
    print(f"  {args.table}.{args.field}: {status} (confidence {result.confidence:.2f})")
    if result.pattern:
        print(f"  pattern:    {result.pattern}")
    if result.error:
        print(f"  error:      {result.error}")
    if result.suggestion:
        print(f"  suggestion: {result.suggestion}")
    return 0 if result.is_valid else 1


def _cmd_migration_script(args: argparse.Namespace, config) -> int:
    from universal_config.bridges import build_naming_engine

    print(build_naming_engine(config).generate_migration_script(args.table, args.mappings))
    return 0


def _cmd_duplicate_report(args: argparse.Namespace, config) -> int:
    from universal_config.bridges import build_duplicate_service
    from universal_kernel.db.engine import init_engine_from_url, session_scope

    init_engine_from_url(args.db_url)
    with session_scope() as session:
        patterns = build_duplicate_service(session, config).monitor_duplicate_patterns(
            args.organization_id
        )

    if args.json:
        print(json.dumps(
            [
                {
                    "pattern_type": p.pattern_type,
                    "frequency": p.frequency,
                    "impact_level": p.impact_level,
                    "recommended_action": p.recommended_action,
                    "affected": list(p.affected),
                }
                for p in patterns
            ],
            indent=2,
        ))
        return 0

    if not patterns:
        print(f"  No duplicate patterns for {args.organization_id}")
        return 0
    print(f"  {'PATTERN':<26} {'COUNT':>6}  {'IMPACT':<9} ACTION")
    for p in patterns:
        print(f"  {p.pattern_type:<26} {p.frequency:>6}  {p.impact_level:<9} {p.recommended_action}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    from universal_config import get_active_config
    from universal_kernel.exceptions import UniversalKernelError
    from universal_kernel.logging_config import configure_logging

    configure_logging(level=os.environ.get("LOG_LEVEL", "WARNING"))

    try:
        if args.command == "init-db":
            return _cmd_init_db(args)
        config = get_active_config(args.config)
        if args.command == "validate-field":
            return _cmd_validate_field(args, config)
        if args.command == "migration-script":
            return _cmd_migration_script(args, config)
        return _cmd_duplicate_report(args, config)
    except UniversalKernelError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
