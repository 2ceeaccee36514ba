"""Tests for the ambiguous-customer review queue."""

import pytest

from app.database.models import Order
from app.schemas.identity import AddressInput, IdentityObservation, Provider
from app.services.identity.ambiguity_report import AmbiguityReport
from app.services.identity.normalizer import compute_address_hash
from app.services.identity.resolver import IdentityResolver


class TestAmbiguityReport:
    @pytest.mark.asyncio
    async def test_groups_customers_sharing_email_and_phone(self, db_session, make_customer):
        a = await make_customer(primary_email="shared@x.com")
        b = await make_customer(
            identity_rows=[{"provider": "marketing", "email": "shared@x.com"}]
        )
        c = await make_customer(
            primary_phone="+15551110000",
            identity_rows=[{"provider": "accounting", "external_id": "qb-3", "phone": "+15551110000"}],
        )
        d = await make_customer(
            identity_rows=[{"provider": "marketplace", "phone": "+15551110000"}]
        )
        await make_customer(primary_email="alone@x.com")

        groups = await AmbiguityReport(db_session).find_ambiguous_groups()

        assert [(g.match_type, g.value, g.customer_ids, g.providers) for g in groups] == [
            ("email", "shared@x.com", [a.id, b.id], ["marketing"]),
            ("phone", "+15551110000", [c.id, d.id], ["accounting", "marketplace"]),
        ]

    @pytest.mark.asyncio
    async def test_value_repeated_on_one_customer_is_not_ambiguous(self, db_session, make_customer):
        await make_customer(
            primary_email="me@x.com",
            identity_rows=[
                {"provider": "storefront", "external_id": "sf-1", "email": "me@x.com"},
                {"provider": "marketing", "email": "me@x.com"},
            ],
        )

        assert await AmbiguityReport(db_session).find_ambiguous_groups() == []

    @pytest.mark.asyncio
    async def test_tombstones_are_excluded(self, db_session, make_customer):
        survivor = await make_customer(primary_email="dup@x.com")
        await make_customer(primary_email="dup@x.com", merged_into_id=survivor.id)

        assert await AmbiguityReport(db_session).find_ambiguous_groups() == []

    @pytest.mark.asyncio
    async def test_limit_applies_per_match_type(self, db_session, make_customer):
        for value in ("a@x.com", "b@x.com", "c@x.com"):
            await make_customer(primary_email=value)
            await make_customer(primary_email=value)

        groups = await AmbiguityReport(db_session).find_ambiguous_groups(limit=2)

        assert [g.value for g in groups] == ["a@x.com", "b@x.com"]

    @pytest.mark.asyncio
    async def test_same_address_from_two_providers_is_grouped(self, db_session):
        address = AddressInput(name="Pat Lee", address1="1 Elm St", city="Austin", postal_code="78701")
        resolver = IdentityResolver(db_session)
        marketplace = await resolver.resolve(
            IdentityObservation(provider=Provider.MARKETPLACE, first_name="Pat", last_name="Lee"),
            address,
        )
        fulfillment = await resolver.resolve(IdentityObservation(provider=Provider.FULFILLMENT), address)
        marketplace_id, fulfillment_id = marketplace.customer.id, fulfillment.customer.id
        db_session.add_all([
            Order(customer_id=marketplace_id, provider="marketplace", order_number="m-1"),
            Order(customer_id=marketplace_id, provider="marketplace", order_number="m-2"),
        ])
        await db_session.commit()

        groups = await AmbiguityReport(db_session).find_ambiguous_groups()

        assert marketplace_id != fulfillment_id
        assert len(groups) == 1
        group = groups[0]
        assert group.match_type == "address_hash"
        assert group.value == compute_address_hash(address)
        assert group.customer_ids == sorted([marketplace_id, fulfillment_id])
        assert group.providers == ["fulfillment", "marketplace"]
        summary = dict(zip(group.customer_ids, zip(group.customer_names, group.order_counts)))
        assert summary == {marketplace_id: ("Pat Lee", 2), fulfillment_id: ("Unknown", 0)}
