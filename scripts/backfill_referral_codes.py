"""
Issue personal referral codes to partners and customers that have none.

Usage:
    python scripts/backfill_referral_codes.py [--limit N] [--dry-run]
"""
import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from app.database import get_db_session
from app.services.referral_backfill_service import ReferralBackfillService


async def backfill(limit: int, dry_run: bool):
    print("Backfilling personal referral codes...")
    async with get_db_session() as session:
        result = await ReferralBackfillService(session).backfill(limit=limit, dry_run=dry_run)
    print(f"  Partners:  {result['partners']}")
    print(f"  Customers: {result['customers']}")
    if dry_run:
        print("Dry run, nothing was saved")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Backfill personal referral codes")
    parser.add_argument("--limit", type=int, default=500, help="Max accounts of each type")
    parser.add_argument("--dry-run", action="store_true", help="Report codes without saving them")
    args = parser.parse_args()
    asyncio.run(backfill(args.limit, args.dry_run))
