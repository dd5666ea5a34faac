#!/usr/bin/env python3
"""Emit deterministic SQL that creates (or resets) an Ella Rises login."""

from __future__ import annotations

import argparse
import getpass
import os
import sys

import bcrypt

PASSWORD_ENV = "ER_BOOTSTRAP_PASSWORD"
MAX_PASSWORD_BYTES = 72


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def hash_password(password: str, *, rounds: int) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def render_sql(*, username: str, password_hash: str, role: str, email: str | None) -> str:
    username_value = _quote_sql(username)
    hash_value = _quote_sql(password_hash)
    role_value = _quote_sql(role)
    email_value = _quote_sql(email.strip().lower()) if email else "null"

    return f"""-- Ella Rises user bootstrap SQL
-- Run against the application database (psql or equivalent).

insert into users (username, password, role, email)
values ({username_value}, {hash_value}, {role_value}, {email_value})
on conflict (username) do update
set password = excluded.password,
    role = excluded.role,
    email = coalesce(excluded.email, users.email);
"""


def _read_password(args: argparse.Namespace) -> str:
    if args.password:
        return args.password
    from_env = os.getenv(PASSWORD_ENV)
    if from_env:
        return from_env
    return getpass.getpass("Password: ")


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to create or reset an Ella Rises user.")
    parser.add_argument("--username", required=True, help="Login name (unique)")
    parser.add_argument("--email", help="Optional contact email")
    parser.add_argument(
        "--role",
        choices=["user", "admin"],
        default="admin",
        help="admin may create, edit and delete records; user is read-only",
    )
    parser.add_argument(
        "--password",
        help=f"Password to hash; falls back to ${PASSWORD_ENV}, then an interactive prompt",
    )
    parser.add_argument("--rounds", type=int, default=10, help="bcrypt cost factor")
    args = parser.parse_args()

    password = _read_password(args)
    if not password:
        parser.error("a non-empty password is required")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        parser.error(f"password must be at most {MAX_PASSWORD_BYTES} bytes")

    sys.stdout.write(
        render_sql(
            username=args.username,
            password_hash=hash_password(password, rounds=args.rounds),
            role=args.role,
            email=args.email,
        )
    )


if __name__ == "__main__":
    main()
