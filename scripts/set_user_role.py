#!/usr/bin/env python3
"""Assign a role (staff or admin) to a user, or remove it (idempotent).

Usage:
  python scripts/set_user_role.py --email mechanic@avmoto.local --role staff
  python scripts/set_user_role.py --email owner@avmoto.local --role admin
  python scripts/set_user_role.py --email former@avmoto.local --clear
"""

import argparse
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.crm.constants import VALID_ROLES
from app.crm.models import User, UserRoleRecord
from scripts._db_utils import resolve_database_url, script_session


def set_role(email: str, role: str | None, *, database_url: str | None = None) -> bool:
    with script_session(resolve_database_url(database_url)) as s:
        user = s.query(User).filter(User.email.ilike(email)).one_or_none()
        if not user:
            print(f"User not found: {email}")
            return False
        record = s.get(UserRoleRecord, user.id)
        if role is None:
            if record is not None:
                s.delete(record)
            print(f"Role cleared for {email}")
            return True
        if record is None:
            s.add(UserRoleRecord(id=user.id, role=role))
        elif record.role == role:
            print(f"User already has role {role}: {email}")
            return True
        else:
            record.role = role
            record.updated_at = datetime.utcnow()
        print(f"Role {role} set for {email}")
        return True


def main() -> None:
    load_dotenv()
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="User email")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--role", choices=sorted(VALID_ROLES), help="Role to assign")
    group.add_argument("--clear", action="store_true", help="Remove the user's role row")
    args = parser.parse_args()

    ok = set_role(args.email, None if args.clear else args.role)
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
