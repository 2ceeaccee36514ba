"""Tests for the identity service facade used by sync jobs and endpoints."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import select

from app.core.exceptions import AmbiguousMatchError, ValidationError
from app.database.models import Customer, Interaction
from app.schemas.identity import (
    AddressInput,
    IdentityObservation,
    InteractionChannel,
    InteractionDirection,
    MatchMethod,
    Provider,
)
from app.services.identity import identity_service as service_module
from app.services.identity.identity_service import (
    IdentityService,
    SyncMetrics,
    UpsertResult,
    log_sync_metrics,
)
from app.services.identity.normalizer import compute_address_hash


class TestSyncMetrics:
    def test_record_and_total(self):
        metrics = SyncMetrics()
        for action in ("created", "created", "linked", "ambiguous", "errors"):
            metrics.record(action)

        assert metrics.created == 2
        assert metrics.total == 5
        assert metrics.as_dict() == {
            "created": 2,
            "updated": 0,
            "linked": 1,
            "ambiguous": 1,
            "unlinked": 0,
            "errors": 1,
            "total": 5,
        }

    @pytest.mark.parametrize("action", ["deleted", "total", "as_dict", "record", "COUNTERS"])
    def test_unknown_action_rejected(self, action):
        metrics = SyncMetrics()

        with pytest.raises(ValueError):
            metrics.record(action)

        assert metrics.total == 0

    def test_log_sync_metrics(self):
        metrics = SyncMetrics(created=3, unlinked=1)

        with patch.object(service_module.LOGGER, "info") as info:
            log_sync_metrics("storefront_customers", metrics)

        message = info.call_args.args[0]
        assert message.startswith("[storefront_customers] sync complete: 3 created")
        assert info.call_args.kwargs["extra"]["total"] == 4


class TestUpsertCustomerWithMetrics:
    """Outcome classification for sync jobs."""

    @pytest.mark.asyncio
    async def test_actions_across_a_sync_run(self, db_session, make_customer):
        service = IdentityService(db_session)
        metrics = SyncMetrics()

        created = await service.upsert_customer_with_metrics(
            IdentityObservation(provider=Provider.STOREFRONT, external_id="sf-1", email="a@x.com")
        )
        updated = await service.upsert_customer_with_metrics(
            IdentityObservation(provider=Provider.STOREFRONT, external_id="sf-1", first_name="Ann")
        )
        linked = await service.upsert_customer_with_metrics(
            IdentityObservation(provider=Provider.ACCOUNTING, external_id="qb-1", email="A@X.com")
        )
        await make_customer(primary_email="a@x.com")
        ambiguous = await service.upsert_customer_with_metrics(
            IdentityObservation(provider=Provider.MARKETING, email="a@x.com")
        )
        for result in (created, updated, linked, ambiguous):
            metrics.record(result.action)

        assert created.action == "created"
        assert updated == UpsertResult(
            action="updated", customer_id=created.customer_id, matched_by=MatchMethod.EXTERNAL_ID
        )
        assert linked.action == "linked"
        assert linked.matched_by == MatchMethod.EMAIL
        assert linked.customer_id == created.customer_id
        assert ambiguous.action == "ambiguous"
        assert ambiguous.customer_id is None
        assert len(ambiguous.ambiguous_customer_ids) == 2
        assert metrics.as_dict()["total"] == 4

    @pytest.mark.asyncio
    async def test_failed_resolution_is_rolled_back(self, db_session):
        service = IdentityService(db_session)

        with pytest.raises(ValidationError):
            await service.upsert_customer_with_metrics(
                IdentityObservation(provider=Provider.ACCOUNTING, email="no-id@x.com")
            )

        count = await db_session.execute(select(Customer.id))
        assert count.all() == []


class TestResolveOrCreate:
    @pytest.mark.asyncio
    async def test_returns_customer(self, db_session):
        customer = await IdentityService(db_session).resolve_or_create_customer(
            IdentityObservation(provider=Provider.SELF_REPORTED, phone="555-222-3333")
        )

        assert customer.primary_phone == "+15552223333"

    @pytest.mark.asyncio
    async def test_ambiguity_raises(self, db_session, make_customer):
        a = await make_customer(primary_phone="+15552223333")
        b = await make_customer(primary_phone="+15552223333")

        with pytest.raises(AmbiguousMatchError) as exc_info:
            await IdentityService(db_session).resolve_or_create_customer(
                IdentityObservation(provider=Provider.MANUAL, phone="5552223333")
            )

        assert exc_info.value.matched_by == "phone"
        assert exc_info.value.candidate_ids == [a.id, b.id]


class TestCustomerLookups:
    @pytest.mark.asyncio
    async def test_get_customer_skips_tombstones(self, db_session, make_customer):
        live = await make_customer()
        gone = await make_customer(merged_into_id=live.id)
        service = IdentityService(db_session)

        assert (await service.get_customer(live.id)).id == live.id
        assert await service.get_customer(gone.id) is None

    @pytest.mark.asyncio
    async def test_find_by_address_hash(self, db_session):
        address = AddressInput(name="Kim", address1="2 Pine Rd", city="Boise", postal_code="83702")
        service = IdentityService(db_session)
        created = await service.resolve_customer_advanced(
            IdentityObservation(provider=Provider.FULFILLMENT), address
        )
        address_hash = compute_address_hash(address)

        found = await service.find_by_address_hash(Provider.FULFILLMENT, address_hash)

        assert found.id == created.customer.id
        assert await service.find_by_address_hash(Provider.MARKETPLACE, address_hash) is None

    @pytest.mark.asyncio
    async def test_list_identities(self, db_session, make_customer):
        customer = await make_customer(
            identity_rows=[
                {"provider": "storefront", "external_id": "sf-1"},
                {"provider": "marketing", "email": "m@x.com"},
            ]
        )

        identities = await IdentityService(db_session).list_identities(customer.id)

        assert [identity.provider for identity in identities] == ["storefront", "marketing"]


class TestRecordInteraction:
    @pytest.mark.asyncio
    async def test_records_and_commits(self, db_session, session_maker, make_customer):
        customer = await make_customer()
        occurred_at = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        interaction = await IdentityService(db_session).record_interaction(
            customer.id,
            InteractionChannel.SELF_ID_FORM,
            direction=InteractionDirection.INBOUND,
            metadata={"form": "contact-us"},
            occurred_at=occurred_at,
        )

        assert interaction.id is not None
        async with session_maker() as fresh:
            row = (await fresh.execute(
                select(Interaction.channel, Interaction.direction, Interaction.customer_id)
            )).one()
        assert tuple(row) == ("self_id_form", "inbound", customer.id)

    @pytest.mark.asyncio
    async def test_unknown_channel_rejected(self, db_session, make_customer):
        customer = await make_customer()

        with pytest.raises(ValueError):
            await IdentityService(db_session).record_interaction(customer.id, "carrier_pigeon")
