"""
Create (or promote) a back-office user.

Run from project root:
  python scripts/create_admin_user.py admin@example.com 'S3cret!' --role admin --name "Office Admin"

If the email already exists, the role is updated and the password is left unchanged
unless --reset-password is given.
"""
import argparse
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.database import Base, SessionLocal, engine  # noqa: E402
from app import models  # noqa: F401,E402
from app.models.user import User, UserRole  # noqa: E402
from app.services.auth import create_user, get_password_hash  # noqa: E402


def main(argv=None):
    parser = argparse.ArgumentParser(description="Create or promote a back-office user.")
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("--role", choices=[r.value for r in UserRole], default=UserRole.admin.value)
    parser.add_argument("--name", default=None, help="full name")
    parser.add_argument("--reset-password", action="store_true")
    args = parser.parse_args(argv)

    Base.metadata.create_all(bind=engine)
    role = UserRole(args.role)
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == args.email.strip().lower()).first()
        if user:
            user.role = role
            if args.name:
                user.full_name = args.name
            if args.reset_password:
                user.hashed_password = get_password_hash(args.password)
            print(f"Updated user: {user.email} (role={role.value})")
        else:
            user = create_user(db, args.email, args.password, role, full_name=args.name)
            print(f"Created user: {user.email} (role={role.value})")
        db.commit()
    finally:
        db.close()


if __name__ == "__main__":
    main()
