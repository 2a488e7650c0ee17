#!/usr/bin/env python3
"""
Promote an existing dashboard account to superadmin with every page permission.

Usage:
  python scripts/promote_superadmin.py someone@example.com

The account must have signed in at least once so that it exists.
"""
import sys
import os
import argparse

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from ispdesk.db import SessionLocal
from ispdesk.models.models import User
from ispdesk.services import permissions as perms


def promote(email: str) -> int:
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email.strip().lower()).first()
        if not user:
            print(f"No user with email {email}. Ask them to sign in first.")
            return 1
        user.role = perms.SUPERADMIN
        user.approved = True
        user.page_permissions = perms.full_permissions()
        db.commit()
        print(f"{user.email} is now a superadmin")
        return 0
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Promote a user to superadmin")
    parser.add_argument("email")
    args = parser.parse_args()
    sys.exit(promote(args.email))
