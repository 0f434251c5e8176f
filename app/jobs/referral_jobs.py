"""
Referral Lifecycle Jobs

Sweeps that keep stored statuses in line with the clock. Landing pages and
attribution already treat an elapsed window as expired on read, so these only
make the stored state (and analytics) match.
"""

import logging
from datetime import datetime, timezone

from app.database import get_db_session
from app.repositories.partner_repository import PreRegistrationCodeRepository
from app.repositories.referral_repository import ReferralRepository
from app.services.referral_tracker import ReferralTracker

logger = logging.getLogger(__name__)


async def expire_stale_referrals() -> dict:
    """
    Mark open referrals and pre-registration codes past their expiry as EXPIRED.

    Returns:
        Counts of rows moved, keyed by table
    """
    logger.info("Starting referral expiry sweep...")
    start_time = datetime.now(timezone.utc)

    async with get_db_session() as session:
        tracker = ReferralTracker(ReferralRepository(session), PreRegistrationCodeRepository(session))
        result = await tracker.expire_stale(now=start_time)

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.info(
        f"Referral expiry sweep completed in {duration:.2f}s: "
        f"{result['referrals']} referrals, {result['pre_registration_codes']} pre-registration codes expired"
    )
    return result
