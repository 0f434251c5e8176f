"""
Tests for maintenance tasks.

Covers:
- Attribution integrity audit and repair for customers and partners
- Personal code backfill
- Scheduled expiry sweep
"""

import re
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from app.jobs import referral_jobs
from app.jobs.scheduler import get_job_status, run_job
from app.models.customer import ReferralType
from app.models.partner import PreRegistrationStatus
from app.models.referral import ReferralStatus
from app.repositories.partner_repository import PreRegistrationCodeRepository
from app.repositories.referral_repository import ReferralRepository
from app.services.referral_backfill_service import ReferralBackfillService
from app.services.referral_integrity_service import MismatchReason, ReferralIntegrityService

from tests.conftest import PARTNER_CODE


class TestReferralIntegrity:

    async def test_consistent_attribution_is_clean(self, db_session, make_partner, make_customer):
        partner = await make_partner(code=PARTNER_CODE)
        await make_customer(referred_by=partner)

        checked, mismatches = await ReferralIntegrityService(db_session).find_mismatches()

        assert checked == 1
        assert mismatches == []

    async def test_detects_surrogate_referrer_id(self, db_session, make_partner, make_customer):
        partner = await make_partner(code=PARTNER_CODE)
        await make_customer(
            referral_type=ReferralType.PARTNER.value,
            referrer_id=uuid.uuid4(),
            referral_code_used=PARTNER_CODE,
        )

        _, [mismatch] = await ReferralIntegrityService(db_session).find_mismatches()

        assert mismatch.reason == MismatchReason.WRONG_REFERRER_ID
        assert mismatch.expected_referrer_id == partner.id
        assert mismatch.is_repairable

    async def test_detects_wrong_referral_type(self, db_session, make_partner, make_customer):
        partner = await make_partner(code=PARTNER_CODE)
        await make_customer(
            referral_type=ReferralType.CUSTOMER.value,
            referrer_id=partner.id,
            referral_code_used=PARTNER_CODE,
        )

        _, [mismatch] = await ReferralIntegrityService(db_session).find_mismatches()

        assert mismatch.reason == MismatchReason.WRONG_REFERRAL_TYPE
        assert mismatch.expected_referral_type == ReferralType.PARTNER.value

    async def test_dry_run_changes_nothing(self, db_session, make_partner, make_customer):
        await make_partner(code=PARTNER_CODE)
        wrong_id = uuid.uuid4()
        customer = await make_customer(
            referral_type=ReferralType.PARTNER.value,
            referrer_id=wrong_id,
            referral_code_used=PARTNER_CODE,
        )

        result = await ReferralIntegrityService(db_session).repair(dry_run=True)

        assert result["mismatched"] == 1
        assert result["fixed"] == 0
        assert customer.referrer_id == wrong_id

    async def test_repair_rewrites_to_owner(self, db_session, make_partner, make_customer):
        partner = await make_partner(code=PARTNER_CODE)
        customer = await make_customer(
            referral_type=ReferralType.PARTNER.value,
            referrer_id=uuid.uuid4(),
            referral_code_used=PARTNER_CODE,
        )

        result = await ReferralIntegrityService(db_session).repair(dry_run=False)

        assert result["fixed"] == 1
        await db_session.refresh(customer)
        assert customer.referrer_id == partner.id
        _, mismatches = await ReferralIntegrityService(db_session).find_mismatches()
        assert mismatches == []

    async def test_unresolvable_code_is_reported_not_cleared(self, db_session, make_customer):
        stale_id = uuid.uuid4()
        customer = await make_customer(
            referral_type=ReferralType.PARTNER.value,
            referrer_id=stale_id,
            referral_code_used="PARGONE00",
        )

        result = await ReferralIntegrityService(db_session).repair(dry_run=False)

        assert result["unresolved"] == 1
        assert result["fixed"] == 0
        await db_session.refresh(customer)
        assert customer.referrer_id == stale_id

    async def test_limit(self, db_session, make_partner, make_customer):
        partner = await make_partner(code=PARTNER_CODE)
        for _ in range(3):
            await make_customer(referred_by=partner)

        checked, _ = await ReferralIntegrityService(db_session, batch_size=2).find_mismatches(limit=2)

        assert checked == 2

    async def test_referred_partners_are_checked(self, db_session, make_partner):
        referrer = await make_partner(code=PARTNER_CODE)
        await make_partner(
            code="SALQ9W8E7",
            referral_type=ReferralType.PARTNER.value,
            referrer_id=referrer.id,
            referral_code_used=PARTNER_CODE,
        )

        checked, mismatches = await ReferralIntegrityService(db_session).find_mismatches()

        assert checked == 1
        assert mismatches == []

    async def test_partner_with_surrogate_referrer_is_repaired(self, db_session, make_partner):
        referrer = await make_partner(code=PARTNER_CODE)
        referred = await make_partner(
            code="SALQ9W8E7",
            referral_type=ReferralType.PARTNER.value,
            referrer_id=uuid.uuid4(),
            referral_code_used=PARTNER_CODE,
        )

        _, [mismatch] = await ReferralIntegrityService(db_session).find_mismatches()
        assert mismatch.account_type == ReferralType.PARTNER.value
        assert mismatch.account_id == referred.id
        assert mismatch.reason == MismatchReason.WRONG_REFERRER_ID

        result = await ReferralIntegrityService(db_session).repair(dry_run=False)

        assert result["fixed"] == 1
        await db_session.refresh(referred)
        assert referred.referrer_id == referrer.id
        assert referred.referral_type == ReferralType.PARTNER.value

    async def test_customers_and_partners_share_the_limit(self, db_session, make_partner, make_customer):
        referrer = await make_partner(code=PARTNER_CODE)
        await make_customer(referred_by=referrer)
        await make_partner(
            code="SALQ9W8E7",
            referral_type=ReferralType.PARTNER.value,
            referrer_id=referrer.id,
            referral_code_used=PARTNER_CODE,
        )

        checked, _ = await ReferralIntegrityService(db_session).find_mismatches()
        limited, _ = await ReferralIntegrityService(db_session).find_mismatches(limit=1)

        assert checked == 2
        assert limited == 1


class TestCodeBackfill:

    async def test_issues_codes_and_records(self, db_session, make_partner, make_customer):
        partner = await make_partner(code=None, business_name="Bark Avenue")
        customer = await make_customer(with_record=False)
        customer.personal_referral_code = None
        await db_session.flush()

        result = await ReferralBackfillService(db_session).backfill()

        assert result == {"partners": 1, "customers": 1, "dry_run": False}
        assert re.fullmatch(r"BAR[A-Z0-9]{6}", partner.personal_referral_code)
        assert re.fullmatch(r"PET[A-Z0-9]{6}", customer.personal_referral_code)
        record = await ReferralRepository(db_session).get_by_code(partner.personal_referral_code)
        assert record.is_personal
        assert record.referrer_id == partner.id

    async def test_dry_run(self, db_session, make_partner):
        partner = await make_partner(code=None)

        result = await ReferralBackfillService(db_session).backfill(dry_run=True)

        assert result["partners"] == 1
        assert partner.personal_referral_code is None

    async def test_unregistered_customers_are_skipped(self, db_session, make_customer):
        guest = await make_customer(with_record=False, is_registered=False)
        guest.personal_referral_code = None
        await db_session.flush()

        result = await ReferralBackfillService(db_session).backfill()

        assert result["customers"] == 0


class TestExpiryJob:

    async def test_sweep_expires_invites_and_printed_codes(self, db_session, make_customer, tracker, monkeypatch):
        owner = await make_customer()
        await tracker.create_record(
            "PETSTALE1",
            ReferralType.CUSTOMER.value,
            owner.id,
            now=datetime.now(timezone.utc) - timedelta(days=100),
        )
        await PreRegistrationCodeRepository(db_session).create(
            code="FLYER0009",
            status=PreRegistrationStatus.ACTIVE.value,
            expiration_date=datetime.now(timezone.utc) - timedelta(days=1),
        )

        @asynccontextmanager
        async def shared_session():
            yield db_session

        monkeypatch.setattr(referral_jobs, "get_db_session", shared_session)

        result = await referral_jobs.expire_stale_referrals()

        assert result == {"referrals": 1, "pre_registration_codes": 1}
        referral = await ReferralRepository(db_session).get_by_code("PETSTALE1")
        assert referral.status == ReferralStatus.EXPIRED.value
        code = await PreRegistrationCodeRepository(db_session).get_by_code("FLYER0009")
        assert code.status == PreRegistrationStatus.EXPIRED.value

    async def test_run_job_logs_failures(self, monkeypatch, caplog):
        async def boom():
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(referral_jobs, "expire_stale_referrals", boom)

        await run_job("expire_stale_referrals")

        assert "database unavailable" in caplog.text

    def test_no_jobs_until_started(self):
        assert get_job_status() == []
