"""
Import activity providers from a CSV file, same rules as POST /activity-providers/import/csv.

Run from project root:
  python scripts/import_providers_csv.py providers.csv --as admin@example.com [--skip-duplicates]

Every imported row is audited under the given user. Exit code is 1 if any row failed.
"""
import argparse
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.database import SessionLocal  # noqa: E402
from app import models  # noqa: F401,E402
from app.models.user import User, UserRole  # noqa: E402
from app.services.errors import ValidationError  # noqa: E402
from app.services.provider_import import import_providers, parse_provider_csv  # noqa: E402


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Bulk import activity providers from CSV.")
    parser.add_argument("csv_path")
    parser.add_argument("--as", dest="user_email", required=True, help="email of the manager/admin doing the import")
    parser.add_argument("--skip-duplicates", action="store_true")
    args = parser.parse_args(argv)

    with open(args.csv_path, "rb") as f:
        content = f.read()

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == args.user_email.strip().lower()).first()
        if not user or not user.is_active or not user.has_role(UserRole.manager):
            print(f"No active manager/admin user with email {args.user_email}")
            return 2
        try:
            rows = parse_provider_csv(content)
            result = import_providers(db, rows, skip_duplicates=args.skip_duplicates, user_id=user.id)
        except ValidationError as e:
            print(f"Import rejected: {e.message}")
            return 2
    finally:
        db.close()

    print(f"Imported: {result.imported}  Skipped: {result.skipped}  Failed: {len(result.errors)}")
    for err in result.errors:
        print(f"  row {err.row}: {err.error}")
    return 1 if result.errors else 0


if __name__ == "__main__":
    sys.exit(main())
