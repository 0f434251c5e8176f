"""
Rewrite referrer_id/referral_type on referred customers and partners to the primary key
of the account that owns the code they used.

Usage:
    python scripts/fix_referrer_ids.py --dry-run
    python scripts/fix_referrer_ids.py
"""
import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from app.database import get_db_session
from app.services.referral_integrity_service import ReferralIntegrityService


async def fix(dry_run: bool):
    print("Dry run, no changes will be written" if dry_run else "Repairing referrer ids...")
    async with get_db_session() as session:
        result = await ReferralIntegrityService(session).repair(dry_run=dry_run)

    print(f"  Checked:    {result['checked']}")
    print(f"  Mismatched: {result['mismatched']}")
    print(f"  Fixed:      {result['fixed']}")
    print(f"  Unresolved: {result['unresolved']}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Repair referral attribution")
    parser.add_argument("--dry-run", action="store_true", help="Report changes without writing them")
    args = parser.parse_args()
    asyncio.run(fix(args.dry_run))
