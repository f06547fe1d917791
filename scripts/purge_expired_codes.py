#!/usr/bin/env python3
"""
Expired Code Purger

Deletes expired rows from the verification_codes and reset_codes ledgers.
Expired rows can never be verified again, so this only reclaims space.
Meant to run from cron.

Usage:
    python scripts/purge_expired_codes.py [--dry-run]
"""

import argparse
import os
import sys

# Add the parent directory to the path so we can import our modules
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import SessionLocal
from models.reset_code import ResetCode
from models.verification_code import VerificationCode
from services.verification_service import VerificationService, utcnow
from utils.logger_factory import new_logger


def count_expired(db) -> int:
    now = utcnow()
    return sum(
        db.query(model).filter(model.expires_at <= now).count()
        for model in (VerificationCode, ResetCode)
    )


def main():
    parser = argparse.ArgumentParser(description="Delete expired one-time codes")
    parser.add_argument("--dry-run", action="store_true", help="Only report how many rows would be deleted")
    args = parser.parse_args()

    log = new_logger("purge_expired_codes")
    db = SessionLocal()
    try:
        if args.dry_run:
            log.info(f"{count_expired(db)} expired code record(s) would be deleted")
            return
        deleted = VerificationService(db).purge_expired()
        log.info(f"Deleted {deleted} expired code record(s)")
    finally:
        db.close()


if __name__ == "__main__":
    main()
