#!/usr/bin/env python3
"""
Create a back-office account directly in the database.

Usage:
  python scripts/create_admin.py --email admin@example.org --name "Jane Doe" [--password secret] [--role admin]
"""
from __future__ import annotations

import argparse
import secrets
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from digilib.core.config import get_settings
from digilib.core.security import hash_password
from digilib.db.session import Database
from digilib.repositories.sql_repository import SQLRepository
from digilib.services.account_service import normalize_email


def gen_password(length: int = 16) -> str:
    return secrets.token_urlsafe(length)[:length]


def main() -> None:
    ap = argparse.ArgumentParser(description="Create an admin or staff account")
    ap.add_argument("--email", required=True, help="Login email")
    ap.add_argument("--name", required=True, help="Full name")
    ap.add_argument("--password", help="Password (default: random)")
    ap.add_argument("--role", choices=("admin", "staff"), default="admin")
    ap.add_argument("--create-tables", action="store_true", help="Create missing tables first")
    args = ap.parse_args()

    email = normalize_email(args.email)
    if "@" not in email:
        raise SystemExit("Invalid email")
    password = (args.password or "").strip() or gen_password()
    if len(password) < 6:
        raise SystemExit("Password must have at least 6 characters")

    database = Database.from_settings(get_settings())
    try:
        if args.create_tables:
            database.create_all()
        repo = SQLRepository(database)
        if repo.get_admin_by_email(email):
            raise SystemExit(f"Admin '{email}' already exists")
        admin = repo.create_admin(
            fullname=args.name.strip(),
            email=email,
            password_hash=hash_password(password),
            role=args.role,
        )
    finally:
        database.dispose()
    print("OK: account created")
    print(f"  ID: {admin.id}")
    print(f"  Email: {email}")
    print(f"  Role: {args.role}")
    if not args.password:
        print(f"  Password: {password}")


if __name__ == "__main__":
    try:
        main()
    except SystemExit:
        raise
    except Exception as exc:  # pragma: no cover - CLI usage
        sys.stderr.write(f"Error: {exc}\n")
        raise SystemExit(1)
