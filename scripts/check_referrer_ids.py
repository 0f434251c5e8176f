"""
Report customers and partners whose stored referrer_id does not match the owner of the
referral code they signed up with.

Usage:
    python scripts/check_referrer_ids.py [--limit N]
"""
import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from app.database import get_db_session
from app.services.referral_integrity_service import ReferralIntegrityService


async def check(limit):
    async with get_db_session() as session:
        checked, mismatches = await ReferralIntegrityService(session).find_mismatches(limit=limit)

    print(f"=== CHECKED {checked} REFERRED ACCOUNTS ===")
    if not mismatches:
        print("  All referrer ids match their code owners")
        return 0

    for m in mismatches:
        print(
            f"  {m.account_type} {m.email} | code={m.referral_code_used} | reason={m.reason} | "
            f"stored={m.stored_referral_type}/{m.stored_referrer_id} | "
            f"expected={m.expected_referral_type}/{m.expected_referrer_id}"
        )
    print(f"\n{len(mismatches)} mismatched, run scripts/fix_referrer_ids.py to repair")
    return 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Check referral attribution integrity")
    parser.add_argument("--limit", type=int, default=None, help="Stop after checking N accounts")
    args = parser.parse_args()
    sys.exit(asyncio.run(check(args.limit)))
