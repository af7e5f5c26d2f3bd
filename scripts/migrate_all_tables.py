"""
Best-effort schema sync for all SQLAlchemy models.

- Creates missing tables via Base.metadata.create_all()
- Adds missing columns to existing tables (from current models)

For a NEW database: not needed; app startup already runs create_all() with all models.
Run on an EXISTING DB to pick up columns added to the models since it was created:
  python scripts/migrate_all_tables.py [--dry-run]
"""
import argparse
import os
import sys

# Project root
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from sqlalchemy import inspect, text  # noqa: E402
from sqlalchemy.schema import DefaultClause  # noqa: E402
from app.database import Base, engine  # noqa: E402
from app import models  # noqa: F401,E402


def _column_ddl(table_name: str, col) -> tuple[str, str | None]:
    """ALTER TABLE statement for one missing column, plus a warning if NOT NULL had to be dropped."""
    col_type = col.type.compile(dialect=engine.dialect)
    default_sql = None
    if isinstance(col.server_default, DefaultClause) and col.server_default.arg is not None:
        arg = col.server_default.arg
        default_sql = arg if isinstance(arg, str) else str(arg.compile(dialect=engine.dialect))

    stmt = f'ALTER TABLE {table_name} ADD COLUMN "{col.name}" {col_type}'
    if default_sql:
        stmt += f" DEFAULT {default_sql}"
    warning = None
    if not col.nullable:
        if default_sql is not None:
            stmt += " NOT NULL"
        else:
            # Existing rows would violate NOT NULL without a default
            warning = f"{table_name}.{col.name} is NOT NULL in model but added as NULL (no server default)."
    return stmt, warning


def missing_columns(insp) -> list[tuple[str, object]]:
    existing_tables = set(insp.get_table_names())
    out = []
    for table in Base.metadata.sorted_tables:
        if table.name not in existing_tables:
            continue
        existing_cols = {c["name"] for c in insp.get_columns(table.name)}
        out.extend((table.name, col) for col in table.columns if col.name not in existing_cols)
    return out


def main(argv=None):
    parser = argparse.ArgumentParser(description="Create missing tables and add missing columns.")
    parser.add_argument("--dry-run", action="store_true", help="print the statements without running them")
    args = parser.parse_args(argv)

    if not args.dry_run:
        Base.metadata.create_all(bind=engine)

    todo = missing_columns(inspect(engine))
    warnings = []
    with engine.begin() as conn:
        for table_name, col in todo:
            stmt, warning = _column_ddl(table_name, col)
            if warning:
                warnings.append(warning)
            if args.dry_run:
                print(f"  would run: {stmt}")
                continue
            conn.execute(text(stmt))
            print(f"  added: {table_name}.{col.name}")

    print(f"Done. {len(todo)} missing column(s){' (dry run)' if args.dry_run else ''}.")
    if warnings:
        print("\nWarnings:")
        for w in warnings:
            print(f" - {w}")


if __name__ == "__main__":
    main()
