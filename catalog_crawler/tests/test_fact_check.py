"""
Tests for the Fact-Check Reviewer.
"""

import pytest

from catalog_crawler.entities import Campaign, Claim, Vehicle, VerificationState
from catalog_crawler.exceptions import VerificationInconclusive
from catalog_crawler.tests.conftest import FakeFactCheckClient
from catalog_crawler.types import CanonicalDocument, DocumentSection, SectionKind
from catalog_crawler.verification import FactCheckReviewer
from catalog_crawler.verification.fact_check import CONTEXT_WINDOW


SEED = "https://www.suzuki.se/bilar/vitara"
PDF_URL = "https://www.suzuki.se/media/prislista.pdf"

DOCUMENT = CanonicalDocument(
    seed_url=SEED,
    sections=[
        DocumentSection(source_url=SEED, kind=SectionKind.PRIMARY, text="Vitara Select 459 900 kr"),
        DocumentSection(source_url=PDF_URL, kind=SectionKind.PDF, text="ALLGRIP Select 489 900 kr"),
    ],
)


def vehicle_with(*claims) -> Vehicle:
    return Vehicle(brand="Suzuki", title="Vitara", claims=list(claims))


class TestVerify:
    """Tests for verification state assignment."""

    @pytest.mark.asyncio
    async def test_all_corroborated_is_verified(self):
        entity = vehicle_with(
            Claim(field="price", value=459900, source_url=SEED),
            Claim(field="allgrip_price", value=489900, source_url=PDF_URL),
        )
        client = FakeFactCheckClient()

        [result] = await FactCheckReviewer(client, max_claims=20, enabled=True).verify([entity], DOCUMENT)

        assert result.verification == VerificationState.VERIFIED
        assert all(claim.corroborated is True for claim in result.claims)

    @pytest.mark.asyncio
    async def test_contradicted_claim_flags_entity(self):
        entity = vehicle_with(
            Claim(field="price", value=459900, source_url=SEED),
            Claim(field="old_price", value=499900, source_url=SEED),
        )
        client = FakeFactCheckClient({"old_price": False})

        [result] = await FactCheckReviewer(client, max_claims=20, enabled=True).verify([entity], DOCUMENT)

        assert result.verification == VerificationState.FLAGGED
        assert result.is_flagged is True

    @pytest.mark.asyncio
    async def test_inconclusive_flags_entity(self):
        entity = vehicle_with(Claim(field="price", value=459900, source_url=SEED))
        client = FakeFactCheckClient({"price": VerificationInconclusive("service down")})

        [result] = await FactCheckReviewer(client, max_claims=20, enabled=True).verify([entity], DOCUMENT)

        assert result.verification == VerificationState.FLAGGED
        assert result.claims[0].corroborated is None
        assert "service down" in result.claims[0].note

    @pytest.mark.asyncio
    async def test_entity_without_claims_stays_unverified(self):
        entity = Campaign(title="Vinterkampanj")

        [result] = await FactCheckReviewer(
            FakeFactCheckClient(), max_claims=20, enabled=True
        ).verify([entity], DOCUMENT)

        assert result.verification == VerificationState.UNVERIFIED

    @pytest.mark.asyncio
    async def test_disabled_reviewer_leaves_entities_untouched(self):
        entity = vehicle_with(Claim(field="price", value=459900, source_url=SEED))
        client = FakeFactCheckClient()

        [result] = await FactCheckReviewer(client, max_claims=20, enabled=False).verify([entity], DOCUMENT)

        assert result.verification == VerificationState.UNVERIFIED
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_only_first_claims_are_checked(self):
        entity = vehicle_with(*[Claim(field=f"f{i}", value=i, source_url=SEED) for i in range(5)])
        client = FakeFactCheckClient()

        await FactCheckReviewer(client, max_claims=2, enabled=True).verify([entity], DOCUMENT)

        assert sorted(field for field, _ in client.calls) == ["f0", "f1"]

    @pytest.mark.asyncio
    async def test_unchecked_claims_flag_entity(self):
        entity = vehicle_with(
            Claim(field="price", value=459900, source_url=SEED),
            Claim(field="allgrip_price", value=489900, source_url=PDF_URL),
            Claim(field="old_price", value=499900, source_url=SEED),
        )
        client = FakeFactCheckClient({"old_price": False})

        [result] = await FactCheckReviewer(client, max_claims=2, enabled=True).verify([entity], DOCUMENT)

        assert result.verification == VerificationState.FLAGGED
        assert [claim.corroborated for claim in result.claims] == [True, True, None]
        assert "limit" in result.claims[2].note
        assert len(client.calls) == 2

    @pytest.mark.asyncio
    async def test_claim_checked_against_its_own_section(self):
        entity = vehicle_with(Claim(field="price", value=489900, source_url=PDF_URL))
        client = FakeFactCheckClient()

        await FactCheckReviewer(client, max_claims=20, enabled=True).verify([entity], DOCUMENT)

        assert client.calls == [("price", "ALLGRIP Select 489 900 kr")]

    def test_summarize(self):
        entities = [
            Vehicle(verification=VerificationState.VERIFIED),
            Vehicle(verification=VerificationState.FLAGGED),
            Campaign(),
        ]

        assert FactCheckReviewer.summarize(entities) == {
            "unverified": 1,
            "verified": 1,
            "flagged": 1,
        }


class TestSourceContext:
    """Tests for the source excerpt sent with each claim."""

    def reviewer(self):
        return FactCheckReviewer(FakeFactCheckClient(), max_claims=20, enabled=True)

    def test_unknown_source_falls_back_to_excerpt_search(self):
        claim = Claim(field="price", value=489900, source_excerpt="ALLGRIP Select 489 900 kr")

        assert self.reviewer().source_context(claim, DOCUMENT) == "ALLGRIP Select 489 900 kr"

    def test_unlocatable_claim_uses_its_excerpt(self):
        claim = Claim(field="price", value=1, source_excerpt="not in any section")

        assert self.reviewer().source_context(claim, DOCUMENT) == "not in any section"

    def test_long_section_is_windowed_around_excerpt(self):
        text = "a" * 5000 + " Select 459 900 kr " + "b" * 5000
        document = CanonicalDocument(
            seed_url=SEED,
            sections=[DocumentSection(source_url=SEED, kind=SectionKind.PRIMARY, text=text)],
        )
        claim = Claim(field="price", value=459900, source_excerpt="Select 459 900 kr", source_url=SEED)

        context = self.reviewer().source_context(claim, document)

        assert "Select 459 900 kr" in context
        assert len(context) == CONTEXT_WINDOW * 2 + len("Select 459 900 kr")
