"""
Tests for referral code issuance.

Covers:
- Code format and prefix derivation
- Uniqueness across partner, pre-registration, customer and referral codes
- Retry on collision and exhaustion after the attempt budget
"""

import re

import pytest

from app.models.partner import PreRegistrationStatus
from app.repositories.customer_repository import CustomerRepository
from app.repositories.partner_repository import PartnerRepository, PreRegistrationCodeRepository
from app.repositories.referral_repository import ReferralRepository
from app.services import referral_code_service
from app.services.referral_code_service import ReferralCodeService, derive_prefix, generate_code, normalize_code
from app.services.referral_errors import CodeGenerationExhausted

from tests.conftest import PARTNER_CODE


@pytest.fixture
def codes(db_session):
    return ReferralCodeService(
        PartnerRepository(db_session),
        PreRegistrationCodeRepository(db_session),
        CustomerRepository(db_session),
        ReferralRepository(db_session),
    )


def scripted_codes(monkeypatch, *values):
    """Make generate_code return the given codes in order, then repeat the last one."""
    calls = []

    def fake_generate(prefix, length=6):
        code = values[min(len(calls), len(values) - 1)]
        calls.append(code)
        return code

    monkeypatch.setattr(referral_code_service, "generate_code", fake_generate)
    return calls


class TestCodeFormat:
    """Test code shape and normalisation."""

    def test_generate_code_has_prefix_and_six_alphanumerics(self):
        code = generate_code("PAR")
        assert re.fullmatch(r"PAR[A-Z0-9]{6}", code)

    def test_generate_code_uppercases_prefix(self):
        assert generate_code("gro", 4).startswith("GRO")

    def test_derive_prefix_from_business_name(self):
        assert derive_prefix("Paws & Claws") == "PAW"
        assert derive_prefix("k9 salon") == "K9S"

    def test_derive_prefix_falls_back_to_default(self):
        assert derive_prefix(None) == "PAR"
        assert derive_prefix("&&&") == "PAR"

    def test_normalize_code(self):
        assert normalize_code("  par1a2b3c ") == "PAR1A2B3C"
        assert normalize_code(None) == ""


class TestCodeIssuance:
    """Test unique code issuance."""

    async def test_issue_returns_free_code(self, codes, monkeypatch):
        calls = scripted_codes(monkeypatch, "PARFREE01")
        assert await codes.issue("PAR") == "PARFREE01"
        assert len(calls) == 1

    async def test_issue_retries_after_collision(self, codes, make_partner, monkeypatch):
        await make_partner(code=PARTNER_CODE)
        calls = scripted_codes(monkeypatch, PARTNER_CODE, "PARZZZ999")

        code = await codes.issue("PAR")

        assert code == "PARZZZ999"
        assert calls == [PARTNER_CODE, "PARZZZ999"]

    async def test_issue_exhausts_after_ten_attempts(self, codes, make_partner, monkeypatch):
        await make_partner(code=PARTNER_CODE)
        calls = scripted_codes(monkeypatch, PARTNER_CODE)

        with pytest.raises(CodeGenerationExhausted) as exc_info:
            await codes.issue("PAR")

        assert len(calls) == 10
        assert exc_info.value.details == {"prefix": "PAR", "attempts": 10}

    async def test_custom_attempt_budget(self, db_session, make_partner, monkeypatch):
        await make_partner(code=PARTNER_CODE)
        calls = scripted_codes(monkeypatch, PARTNER_CODE)
        service = ReferralCodeService(
            PartnerRepository(db_session),
            PreRegistrationCodeRepository(db_session),
            CustomerRepository(db_session),
            ReferralRepository(db_session),
            max_attempts=3,
        )

        with pytest.raises(CodeGenerationExhausted):
            await service.issue("PAR")
        assert len(calls) == 3

    async def test_partner_code_uses_business_prefix(self, codes):
        code = await codes.issue_partner_code("Grooming Room")
        assert re.fullmatch(r"GRO[A-Z0-9]{6}", code)

    async def test_customer_code_uses_customer_prefix(self, codes):
        code = await codes.issue_customer_code()
        assert re.fullmatch(r"PET[A-Z0-9]{6}", code)


class TestCodeNamespaces:
    """A code is taken if any namespace already resolves it."""

    async def test_partner_code_is_taken(self, codes, make_partner):
        await make_partner(code="PARAAAAAA", with_record=False)
        assert await codes.is_code_taken("PARAAAAAA")

    async def test_pre_registration_code_is_taken(self, codes, db_session):
        await PreRegistrationCodeRepository(db_session).create(
            code="QRCODE123",
            status=PreRegistrationStatus.ACTIVE.value,
        )
        assert await codes.is_code_taken("QRCODE123")

    async def test_customer_code_is_taken(self, codes, make_customer):
        await make_customer(code="PETBBBBBB", with_record=False)
        assert await codes.is_code_taken("PETBBBBBB")

    async def test_referral_record_code_is_taken(self, codes, make_customer, tracker):
        customer = await make_customer(with_record=False)
        await tracker.create_record("PETINVITE", "CUSTOMER", customer.id)
        assert await codes.is_code_taken("PETINVITE")

    async def test_unknown_code_is_free(self, codes):
        assert not await codes.is_code_taken("NOPE00000")
