"""Tests for customer and identity lookups."""

import pytest

from app.repositories.customer_repository import CustomerRepository
from app.repositories.identity_repository import IdentityRepository


class TestCustomerRepository:
    @pytest.mark.asyncio
    async def test_create_customer_defaults(self, db_session):
        customer = await CustomerRepository(db_session).create_customer(primary_email="n@x.com")

        assert customer.id is not None
        assert customer.is_vip is False
        assert customer.is_merged is False
        assert customer.created_at is not None

    @pytest.mark.asyncio
    async def test_primary_lookups_ignore_tombstones(self, db_session, make_customer):
        live = await make_customer(primary_email="e@x.com", primary_phone="+15550000009")
        await make_customer(
            primary_email="e@x.com", primary_phone="+15550000009", merged_into_id=live.id
        )
        repo = CustomerRepository(db_session)

        assert await repo.find_live_ids_by_primary_email("e@x.com") == {live.id}
        assert await repo.find_live_ids_by_primary_phone("+15550000009") == {live.id}
        assert await repo.find_live_ids_by_primary_email("E@x.com") == set()

    @pytest.mark.asyncio
    async def test_find_live_by_primary_values(self, db_session, make_customer):
        target = await make_customer(primary_email="t@x.com")
        by_email = await make_customer(primary_email="t@x.com")
        by_phone = await make_customer(primary_phone="+15550000001")
        await make_customer(primary_email="other@x.com")
        repo = CustomerRepository(db_session)

        found = await repo.find_live_by_primary_values(
            ["t@x.com"], ["+15550000001"], exclude_id=target.id
        )

        assert [c.id for c in found] == [by_email.id, by_phone.id]
        assert await repo.find_live_by_primary_values([], []) == []

    @pytest.mark.asyncio
    async def test_lock_for_update_returns_tombstones_in_order(self, db_session, make_customer):
        first = await make_customer()
        second = await make_customer(merged_into_id=first.id)

        locked = await CustomerRepository(db_session).lock_for_update([second.id, first.id, 999])

        assert [c.id for c in locked] == [first.id, second.id]
        assert locked[1].is_merged


class TestIdentityRepository:
    @pytest.mark.asyncio
    async def test_owner_lookups(self, db_session, make_customer):
        owner = await make_customer(
            identity_rows=[
                {"provider": "storefront", "external_id": "sf-1", "email": "o@x.com"},
                {"provider": "fulfillment", "phone": "+15551234000"},
            ]
        )
        repo = IdentityRepository(db_session)

        assert (await repo.get_by_provider_external_id("storefront", "sf-1")).customer_id == owner.id
        assert await repo.get_by_provider_external_id("accounting", "sf-1") is None
        assert await repo.find_owner_ids_by_email("o@x.com") == {owner.id}
        assert await repo.find_owner_ids_by_phone("+15551234000") == {owner.id}
        assert await repo.find_owner_ids_by_external_id("storefront", "sf-1") == {owner.id}

    @pytest.mark.asyncio
    async def test_email_identity_requires_null_external_id(self, db_session, make_customer):
        customer = await make_customer(
            identity_rows=[{"provider": "storefront", "external_id": "sf-1", "email": "o@x.com"}]
        )
        repo = IdentityRepository(db_session)

        assert await repo.get_email_identity(customer.id, "storefront", "o@x.com") is None

        await repo.create_identity(customer_id=customer.id, provider="storefront", email="o@x.com")

        identity = await repo.get_email_identity(customer.id, "storefront", "o@x.com")
        assert identity.external_id is None
        assert identity.additional_metadata == {}

    @pytest.mark.asyncio
    async def test_find_live_owners_by_values_excludes_target(self, db_session, make_customer):
        target = await make_customer(identity_rows=[{"provider": "manual", "email": "v@x.com"}])
        other = await make_customer(
            identity_rows=[{"provider": "marketing", "email": "v@x.com", "phone": "+15550000002"}]
        )
        repo = IdentityRepository(db_session)

        rows = await repo.find_live_owners_by_values(["v@x.com"], [], exclude_id=target.id)

        assert rows == [(other.id, "v@x.com", "+15550000002")]
