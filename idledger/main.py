import argparse
from datetime import datetime
import logging
from pathlib import Path
import sys

from idledger.config import get_settings
from idledger.errors import IdLedgerError
from idledger.pipeline import BatchRunner
from idledger.schemas import BatchResult
from idledger.session_store import SessionStore


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate and persist financial security identifiers")
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate_parser = subparsers.add_parser("validate", help="validate one CSV file")
    validate_parser.add_argument("input_file", help="CSV file with isin/cusip/sedol/lei columns")
    validate_parser.add_argument("--save", metavar="NAME", help="persist the result as a named session")
    validate_parser.add_argument("--reports", action="store_true", help="write error log and summary to OUTPUT_DIR")

    subparsers.add_parser("sessions", help="list saved sessions, newest first")

    show_parser = subparsers.add_parser("show", help="reload a saved session")
    show_parser.add_argument("session_id", type=int)

    delete_parser = subparsers.add_parser("delete", help="delete a saved session")
    delete_parser.add_argument("session_id", type=int)

    query_parser = subparsers.add_parser("query", help="run an ad-hoc SQL statement against the store")
    query_parser.add_argument("sql")

    export_parser = subparsers.add_parser("export", help="write a snapshot of the whole store")
    export_parser.add_argument("output_file")

    subparsers.add_parser("stats", help="show store totals")

    audit_parser = subparsers.add_parser("audit", help="show the audit trail")
    audit_parser.add_argument("--session-id", type=int, required=False)

    return parser.parse_args(argv)


def _print_result_counts(result: BatchResult, **extra: object) -> None:
    fields = {
        "total": result.total,
        "valid": result.valid_count,
        "errors": result.error_count,
        "warnings": result.warning_count,
        "isin": result.isin_count,
        "cusip": result.cusip_count,
        "sedol": result.sedol_count,
        "lei": result.lei_count,
        **extra,
    }
    print(" ".join(f"{key}={value}" for key, value in fields.items()))


def _format_time(value: datetime | None) -> str:
    return value.isoformat(sep=" ", timespec="seconds") if value is not None else ""


def _warn_if_not_durable(store: SessionStore) -> None:
    if not store.durable:
        print(f"warning=snapshot not durable: {store.last_flush_error}", file=sys.stderr)


def run_command(args: argparse.Namespace, store: SessionStore, runner: BatchRunner) -> int:
    if args.command == "validate":
        outcome = runner.run(Path(args.input_file), session_name=args.save, write_reports=args.reports)
        result = outcome.result
        rate = f"{result.records_per_second:.2f}" if result.records_per_second is not None else "n/a"
        _print_result_counts(
            result,
            records_per_second=rate,
            session_id=outcome.session_id,
            error_log=outcome.error_log_path,
        )
        for warning in result.warnings:
            print(f"row={warning.row_number} entity={warning.entity_name} warning={warning.message}")
        _warn_if_not_durable(store)
        return 0

    if args.command == "sessions":
        for session in store.list_sessions():
            print(
                "id={id} name={name} file={file} created={created} total={total} valid={valid} errors={errors} warnings={warnings}".format(
                    id=session.id,
                    name=session.name,
                    file=session.source_filename,
                    created=_format_time(session.created_at),
                    total=session.total,
                    valid=session.valid_count,
                    errors=session.error_count,
                    warnings=session.warning_count,
                )
            )
        return 0

    if args.command == "show":
        result = store.load(args.session_id)
        _print_result_counts(result, session_id=args.session_id)
        for record in result.error_records:
            for error in record.errors:
                print(f"row={record.row_number} entity={record.entity_name} field={error.field} error={error.message}")
        return 0

    if args.command == "delete":
        deleted = store.delete(args.session_id)
        print(f"session_id={args.session_id} deleted={deleted}")
        _warn_if_not_durable(store)
        return 0

    if args.command == "query":
        for table in store.run_query(args.sql):
            print(",".join(table.columns))
            for row in table.rows:
                print(",".join("" if value is None else str(value) for value in row))
        _warn_if_not_durable(store)
        return 0

    if args.command == "export":
        size = store.export_to(Path(args.output_file))
        print(f"output={args.output_file} bytes={size}")
        return 0

    if args.command == "stats":
        stats = store.stats()
        print(f"sessions={stats.total_sessions} records={stats.total_records} errors={stats.total_errors}")
        return 0

    if args.command == "audit":
        for entry in store.audit_entries(args.session_id):
            print(
                f"id={entry.id} action={entry.action} session_id={entry.session_id} "
                f"timestamp={_format_time(entry.timestamp)} details={entry.details}"
            )
        return 0

    raise ValueError(f"unknown command: {args.command}")


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    store = SessionStore.from_settings(settings)
    runner = BatchRunner(settings, store)
    try:
        exit_code = run_command(args, store, runner)
    except IdLedgerError as exc:
        print(f"error={exc}", file=sys.stderr)
        raise SystemExit(1) from exc
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
