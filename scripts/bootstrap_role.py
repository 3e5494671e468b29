#!/usr/bin/env python3
"""Emit SQL that grants a Supabase user a crowdprice role.

Moderators and admins review pending prices and have their own submissions
approved on arrival, so grants are recorded in the audit table as well.
"""

from __future__ import annotations

import argparse


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(*, role: str, user_id: str | None, email: str | None, actor: str) -> str:
    role_value = _quote_sql(role)

    if user_id:
        target_where = f"id = {_quote_sql(user_id)}::uuid"
        target_payload = f"jsonb_build_object('user_id', {_quote_sql(user_id)}, 'role', {role_value}, 'actor', {_quote_sql(actor)})"
    else:
        if email is None:
            raise ValueError("user_id or email is required")
        target_where = f"email = {_quote_sql(email)}"
        target_payload = f"jsonb_build_object('email', {_quote_sql(email)}, 'role', {role_value}, 'actor', {_quote_sql(actor)})"

    return f"""-- crowdprice role grant
-- Run in the Supabase SQL editor (or an equivalent privileged Postgres session).

update auth.users
set raw_app_meta_data = coalesce(raw_app_meta_data, '{{}}'::jsonb) || jsonb_build_object('role', {role_value})
where {target_where};

insert into role_grants (payload)
values ({target_payload});
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to grant a crowdprice role to a Supabase user.")
    parser.add_argument(
        "--role",
        choices=["user", "moderator", "admin"],
        default="moderator",
        help="Role to assign in auth.users.raw_app_meta_data.role",
    )
    identity_group = parser.add_mutually_exclusive_group(required=True)
    identity_group.add_argument("--user-id", help="Supabase auth.users id (UUID)")
    identity_group.add_argument("--email", help="Supabase auth.users email")
    parser.add_argument(
        "--actor",
        default="system",
        help="Operator label stored with the grant",
    )
    args = parser.parse_args()

    print(
        render_sql(
            role=args.role,
            user_id=args.user_id,
            email=args.email,
            actor=args.actor,
        )
    )


if __name__ == "__main__":
    main()
