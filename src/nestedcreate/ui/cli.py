# ruff: noqa: T201

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING, Any, cast

from dotenv import load_dotenv

from nestedcreate.adapters.schema_file import load_schema_file
from nestedcreate.adapters.sqlalchemy.unit_of_work import startup
from nestedcreate.app import create_nested
from nestedcreate.config import configure_logging
from nestedcreate.domain.orchestrator import CreateRequest
from nestedcreate.domain.policy import ConflictPolicy

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from types import FrameType

    from nestedcreate.domain.orchestrator import CreatedRow, NestedCreateResult

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bulk nested create into a relational database")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log every layer and statement",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create", help="Create nested entities from a JSON file")
    create.add_argument(
        "--schema",
        type=Path,
        required=True,
        help="JSON file describing tables, keys and relations",
    )
    create.add_argument(
        "--table",
        type=str,
        required=True,
        help="Table of the top-level entities",
    )
    create.add_argument(
        "--input",
        type=str,
        default="-",
        help="JSON list of entities to create, '-' for stdin (default: %(default)s)",
    )
    create.add_argument(
        "--on-conflict",
        type=str,
        default="error",
        help="error, ignore, replace or update (aliases: DoNothing, Error, Replace)",
    )
    create.add_argument(
        "--update-column",
        dest="update_columns",
        action="append",
        default=[],
        help="Column to overwrite with --on-conflict update (repeatable)",
    )
    create.add_argument(
        "--no-select-identity",
        dest="select_identity",
        action="store_false",
        help="Do not echo identity columns of the top-level rows",
    )
    create.add_argument(
        "--database-uri",
        type=str,
        help="SQLAlchemy database URI (defaults to DATABASE_URI or the data directory)",
    )
    return parser.parse_args(list(argv))


def _read_items(source: str) -> list[Mapping[str, Any]]:
    raw = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON input: {exc}") from exc
    if not isinstance(payload, list):
        raise ValueError("Input must be a JSON list of entities")
    return cast(list["Mapping[str, Any]"], payload)


def _row_payload(row: CreatedRow) -> dict[str, Any]:
    return {"table": row.table, "action": row.action.value, "values": row.values}


def _result_payload(result: NestedCreateResult) -> dict[str, Any]:
    return {
        "tables": {
            table_id: {
                "total_count": table.total_count,
                "affected_count": table.affected_count,
                "rows": [_row_payload(row) for row in table.rows],
            }
            for table_id, table in result.tables.items()
        },
        "items": [_row_payload(row) for row in result.items],
    }


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        configure_logging(verbose=parsed_args.verbose)
        registry = load_schema_file(parsed_args.schema)
        items = _read_items(parsed_args.input)
        policy = ConflictPolicy.parse(
            parsed_args.on_conflict, columns=tuple(parsed_args.update_columns)
        )
        request = CreateRequest(
            table=parsed_args.table,
            items=items,
            on_conflict=policy,
            select_identity=parsed_args.select_identity,
        )
    except (OSError, ValueError):
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.database_uri:
            startup(database_uri=parsed_args.database_uri, force=True)
        result = create_nested(request, registry=registry)
    except ValueError:
        log.exception("Nested create rejected")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error during nested create")
        sys.exit(1)

    print(json.dumps(_result_payload(result), indent=2, default=str))


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
