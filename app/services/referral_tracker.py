"""
Referral Tracker

Lifecycle of referral records:

    INVITED -> ACCESSED -> ACCEPTED -> APPLIED
        \\__________\\___________\\______> EXPIRED

Transitions only move forward. A later event may skip intermediate states
(a signup on an INVITED record goes straight to ACCEPTED), while a repeated
or out-of-order event is a no-op. Once the expiry window has elapsed any
event on a non-terminal record moves it to EXPIRED. APPLIED and EXPIRED are
terminal.

View counters are separate from the state machine: every view increments
scan_count with a single UPDATE, whatever state the record is in.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from app.config import settings
from app.models.referral import Referral, ReferralStatus, ReferralEventType
from app.repositories.partner_repository import PreRegistrationCodeRepository
from app.repositories.referral_repository import ReferralRepository
from app.services.attribution_service import as_utc
from app.services.referral_code_service import normalize_code
from app.services.referral_errors import ReferralNotFound

logger = logging.getLogger(__name__)


class TrackingEvent(str, Enum):
    """Events that can advance a referral."""
    ACCESSED = "ACCESSED"    # Page view or QR scan
    ACCEPTED = "ACCEPTED"    # Referee signed up
    APPLIED = "APPLIED"      # Referee's first paid order


STATUS_RANK = {
    ReferralStatus.INVITED.value: 0,
    ReferralStatus.ACCESSED.value: 1,
    ReferralStatus.ACCEPTED.value: 2,
    ReferralStatus.APPLIED.value: 3,
}

TERMINAL_STATUSES = frozenset({ReferralStatus.APPLIED.value, ReferralStatus.EXPIRED.value})

# Timestamp column stamped when a record enters each status
STATUS_TIMESTAMPS = {
    ReferralStatus.ACCESSED.value: "accessed_at",
    ReferralStatus.ACCEPTED.value: "accepted_at",
    ReferralStatus.APPLIED.value: "applied_at",
    ReferralStatus.EXPIRED.value: "expired_at",
}


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def is_expired(expires_at: Optional[datetime], now: datetime) -> bool:
    expires_at = as_utc(expires_at)
    return expires_at is not None and now >= expires_at


def next_status(
    current: str,
    event: TrackingEvent,
    expires_at: Optional[datetime],
    now: datetime,
) -> str:
    """
    Pure transition function.

    Args:
        current: Current ReferralStatus value
        event: Incoming event
        expires_at: End of the referral window (None never expires)
        now: Time the event happened

    Returns:
        The status the record should have after the event
    """
    if is_terminal(current):
        return current

    if is_expired(expires_at, now):
        return ReferralStatus.EXPIRED.value

    target = ReferralStatus(event.value).value
    if STATUS_RANK[target] > STATUS_RANK[current]:
        return target
    return current


@dataclass
class ViewResult:
    """Outcome of a tracked view."""
    referral: Referral
    scan_count: int
    changed: bool

    @property
    def is_expired(self) -> bool:
        return self.referral.status == ReferralStatus.EXPIRED.value


class ReferralTracker:
    """Records lifecycle events and view counters for referral records."""

    def __init__(
        self,
        referrals: ReferralRepository,
        pre_registrations: Optional[PreRegistrationCodeRepository] = None,
    ):
        self.referrals = referrals
        self.pre_registrations = pre_registrations

    def apply_event(
        self,
        referral: Referral,
        event: TrackingEvent,
        now: Optional[datetime] = None,
        order_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """
        Advance a loaded record in place.

        Returns True when the status changed.
        """
        now = now or datetime.now(timezone.utc)
        new_status = next_status(referral.status, event, referral.expires_at, now)
        if new_status == referral.status:
            return False

        logger.info(f"Referral {referral.referral_code}: {referral.status} -> {new_status} on {event.value}")
        referral.status = new_status
        setattr(referral, STATUS_TIMESTAMPS[new_status], now)
        if new_status == ReferralStatus.APPLIED.value and order_id is not None:
            referral.order_id = order_id
        return True

    async def create_record(
        self,
        code: str,
        referrer_type: str,
        referrer_id: uuid.UUID,
        is_personal: bool = False,
        referee_email: Optional[str] = None,
        referee_name: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Referral:
        """
        Create the record for a newly issued code.

        Personal codes never expire; invites expire after REFERRAL_EXPIRY_DAYS.
        """
        now = now or datetime.now(timezone.utc)
        expires_at = None if is_personal else now + timedelta(days=settings.REFERRAL_EXPIRY_DAYS)
        return await self.referrals.create(
            referral_code=normalize_code(code),
            referrer_type=referrer_type,
            referrer_id=referrer_id,
            is_personal=is_personal,
            referee_email=referee_email.strip().lower() if referee_email else None,
            referee_name=referee_name,
            notes=notes,
            status=ReferralStatus.INVITED.value,
            scan_count=0,
            expires_at=expires_at,
            created_at=now,
        )

    async def record_view(
        self,
        code: str,
        source: ReferralEventType = ReferralEventType.PAGE_VIEW,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ViewResult:
        """
        Count a view and apply the ACCESSED transition.

        The counter is bumped even when the record is already past ACCESSED
        or has expired.

        Raises:
            ReferralNotFound: no referral record has this code
        """
        code = normalize_code(code)
        now = now or datetime.now(timezone.utc)

        scan_count = await self.referrals.increment_scan(code, now)
        if scan_count is None:
            raise ReferralNotFound(code)

        referral = await self.referrals.get_by_code(code)
        changed = self.apply_event(referral, TrackingEvent.ACCESSED, now=now)

        await self.referrals.add_event(
            referral.id,
            source.value,
            ip_address=ip_address,
            user_agent=user_agent,
            event_data={"status": referral.status, "scan_count": scan_count},
        )
        await self.referrals.session.flush()
        return ViewResult(referral=referral, scan_count=scan_count, changed=changed)

    async def record_pre_registration_scan(self, code: str) -> Optional[int]:
        """Atomically count a scan of a printed pre-registration code."""
        if self.pre_registrations is None:
            return None
        return await self.pre_registrations.increment_scans(normalize_code(code))

    async def record_signup(
        self,
        code: str,
        referee_id: uuid.UUID,
        referee_email: Optional[str] = None,
        referee_is_customer: bool = True,
        now: Optional[datetime] = None,
    ) -> Optional[Referral]:
        """Move the code's record to ACCEPTED after a referred signup."""
        referral = await self.referrals.get_by_code(normalize_code(code))
        if referral is None:
            return None

        now = now or datetime.now(timezone.utc)
        if not referral.is_personal:
            if referee_is_customer and referral.referee_customer_id is None:
                referral.referee_customer_id = referee_id
            if not referral.referee_email and referee_email:
                referral.referee_email = referee_email.strip().lower()

        self.apply_event(referral, TrackingEvent.ACCEPTED, now=now)
        await self.referrals.add_event(
            referral.id,
            ReferralEventType.SIGNUP.value,
            event_data={
                "referee_id": str(referee_id),
                "referee_type": "CUSTOMER" if referee_is_customer else "PARTNER",
            },
        )
        return referral

    async def record_first_order(
        self,
        code: str,
        order_id: uuid.UUID,
        customer_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Referral]:
        """Move the code's record to APPLIED after the referee's first paid order."""
        referral = await self.referrals.get_by_code(normalize_code(code))
        if referral is None:
            return None

        self.apply_event(referral, TrackingEvent.APPLIED, now=now, order_id=order_id)
        await self.referrals.add_event(
            referral.id,
            ReferralEventType.ORDER_COMPLETE.value,
            event_data={
                "order_id": str(order_id),
                "customer_id": str(customer_id) if customer_id else None,
            },
        )
        return referral

    async def expire_stale(self, now: Optional[datetime] = None) -> dict:
        """Bulk-expire referrals and pre-registration codes past their window."""
        now = now or datetime.now(timezone.utc)
        expired_referrals = await self.referrals.expire_stale(now)
        expired_codes = 0
        if self.pre_registrations is not None:
            expired_codes = await self.pre_registrations.expire_past_due(now)
        return {"referrals": expired_referrals, "pre_registration_codes": expired_codes}
