"""
Tests for signup endpoints.

Covers:
- Personal code issuance for customers and partners
- Attribution from the code used at signup
- Pre-registration code claiming
- Failure responses
"""

import re

from app.models.partner import PreRegistrationStatus
from app.models.referral import ReferralStatus
from app.repositories.partner_repository import PreRegistrationCodeRepository
from app.repositories.referral_repository import ReferralRepository
from app.services import referral_code_service

from tests.conftest import PARTNER_CODE

CUSTOMER_URL = "/api/v1/auth/signup/customer"
PARTNER_URL = "/api/v1/auth/signup/partner"


def customer_payload(email="new@customers.example.com", **extra):
    return {"email": email, "firstName": "Nina", "lastName": "New", **extra}


def partner_payload(email="salon@partners.example.com", **extra):
    return {
        "email": email,
        "firstName": "Sam",
        "lastName": "Salon",
        "businessName": "Grooming Room",
        "businessType": "salon",
        **extra,
    }


class TestCustomerSignup:

    async def test_signup_with_partner_code(self, client, make_partner, db_session):
        partner = await make_partner(code=PARTNER_CODE)

        response = await client.post(CUSTOMER_URL, json=customer_payload(referralCode=PARTNER_CODE))

        assert response.status_code == 201
        data = response.json()
        assert data["account_type"] == "CUSTOMER"
        assert data["referral_type"] == "PARTNER"
        assert data["referrer_id"] == str(partner.id)
        assert data["referral_code_used"] == PARTNER_CODE
        assert re.fullmatch(r"PET[A-Z0-9]{6}", data["personal_referral_code"])
        assert data["share_url"] == f"https://pawtrait.test/c/{data['personal_referral_code']}"

        own_record = await ReferralRepository(db_session).get_by_code(data["personal_referral_code"])
        assert own_record.is_personal
        assert own_record.status == ReferralStatus.INVITED.value

    async def test_referrer_record_is_accepted(self, client, make_partner, db_session):
        await make_partner(code=PARTNER_CODE)

        await client.post(CUSTOMER_URL, json=customer_payload(referralCode=PARTNER_CODE))

        referral = await ReferralRepository(db_session).get_by_code(PARTNER_CODE)
        assert referral.status == ReferralStatus.ACCEPTED.value
        assert referral.accepted_at is not None

    async def test_code_is_matched_case_insensitively(self, client, make_partner):
        partner = await make_partner(code=PARTNER_CODE)

        response = await client.post(CUSTOMER_URL, json=customer_payload(referralCode="par1a2b3c"))

        assert response.json()["referrer_id"] == str(partner.id)

    async def test_customer_code_referral(self, client, make_customer):
        referrer = await make_customer(code="PETFRIEND")

        response = await client.post(CUSTOMER_URL, json=customer_payload(referralCode="PETFRIEND"))

        data = response.json()
        assert data["referral_type"] == "CUSTOMER"
        assert data["referrer_id"] == str(referrer.id)

    async def test_unknown_code_still_signs_up(self, client):
        response = await client.post(CUSTOMER_URL, json=customer_payload(referralCode="NOPE12345"))

        assert response.status_code == 201
        data = response.json()
        assert data["referral_type"] is None
        assert data["referrer_id"] is None
        assert data["referral_code_used"] is None

    async def test_duplicate_email_conflicts(self, client):
        await client.post(CUSTOMER_URL, json=customer_payload())

        response = await client.post(CUSTOMER_URL, json=customer_payload(email="NEW@customers.example.com"))

        assert response.status_code == 409

    async def test_code_exhaustion_returns_503(self, client, make_customer, monkeypatch):
        await make_customer(code="PETTAKEN1")
        monkeypatch.setattr(referral_code_service, "generate_code", lambda prefix, length=6: "PETTAKEN1")

        response = await client.post(CUSTOMER_URL, json=customer_payload())

        assert response.status_code == 503
        assert response.json()["detail"] == "Could not complete signup, please try again."

    async def test_invalid_email_is_rejected(self, client):
        response = await client.post(CUSTOMER_URL, json=customer_payload(email="not-an-email"))
        assert response.status_code == 422


class TestPartnerSignup:

    async def test_partner_code_derives_from_business_name(self, client):
        response = await client.post(PARTNER_URL, json=partner_payload())

        assert response.status_code == 201
        data = response.json()
        assert data["account_type"] == "PARTNER"
        assert re.fullmatch(r"GRO[A-Z0-9]{6}", data["personal_referral_code"])
        assert data["share_url"].endswith(f"/p/{data['personal_referral_code']}")

    async def test_pre_registration_code_is_claimed(self, client, db_session):
        await PreRegistrationCodeRepository(db_session).create(code="FLYER0001", status=PreRegistrationStatus.ACTIVE.value)

        response = await client.post(PARTNER_URL, json=partner_payload(preRegCode="flyer0001"))

        data = response.json()
        assert data["personal_referral_code"] == "FLYER0001"
        pre_registration = await PreRegistrationCodeRepository(db_session).get_by_code("FLYER0001")
        assert pre_registration.status == PreRegistrationStatus.USED.value
        assert pre_registration.conversions_count == 1
        assert str(pre_registration.partner_id) == data["id"]

    async def test_used_pre_registration_code_issues_new_code(self, client, make_partner, db_session):
        owner = await make_partner(code="HAPQ1W2E3")
        await PreRegistrationCodeRepository(db_session).create(
            code="FLYER0002",
            status=PreRegistrationStatus.USED.value,
            partner_id=owner.id,
        )

        response = await client.post(PARTNER_URL, json=partner_payload(preRegCode="FLYER0002"))

        assert response.status_code == 201
        assert response.json()["personal_referral_code"] != "FLYER0002"

    async def test_partner_referred_by_partner(self, client, make_partner):
        referrer = await make_partner(code=PARTNER_CODE)

        response = await client.post(PARTNER_URL, json=partner_payload(referralCode=PARTNER_CODE))

        data = response.json()
        assert data["referral_type"] == "PARTNER"
        assert data["referrer_id"] == str(referrer.id)

    async def test_duplicate_partner_email_conflicts(self, client, make_partner):
        await make_partner(email="salon@partners.example.com")

        response = await client.post(PARTNER_URL, json=partner_payload())

        assert response.status_code == 409
