"""Tests for API endpoints."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from app.core.exceptions import (
    AmbiguousMatchError,
    ConflictError,
    NotFoundError,
    TransactionFailure,
    ValidationError,
)
from app.database.client import db_client
from app.database.models import Customer, CustomerIdentity
from app.dependencies import get_ambiguity_report, get_identity_service, get_merge_coordinator
from app.main import app
from app.schemas.identity import MatchMethod
from app.services.identity.ambiguity_report import AmbiguousGroup
from app.services.identity.merge_coordinator import MergeCandidate, MergeResult
from app.services.identity.results import Ambiguous, Created, Resolved

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)

RESOLVE_BODY = {
    "observation": {
        "provider": "storefront",
        "external_id": "sf-1",
        "email": "a@x.com",
    }
}


def override(dependency, service) -> None:
    app.dependency_overrides[dependency] = lambda: service


class TestAuthentication:
    """Requests must carry a valid bearer token."""

    def test_missing_token(self, test_client: TestClient) -> None:
        response = test_client.post("/api/v1/customers/resolve", json=RESOLVE_BODY)

        assert response.status_code == 401
        assert response.json()["detail"] == "Authorization header missing"

    def test_wrong_scheme(self, test_client: TestClient, make_token) -> None:
        response = test_client.post(
            "/api/v1/customers/resolve",
            json=RESOLVE_BODY,
            headers={"Authorization": f"Basic {make_token()}"},
        )

        assert response.status_code == 401

    def test_token_signed_with_other_secret(self, test_client: TestClient, make_token) -> None:
        token = make_token(secret="not-the-secret")

        response = test_client.get(
            "/api/v1/customers/1", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid authentication token"

    def test_expired_token(self, test_client: TestClient, make_token) -> None:
        token = make_token(expires_in=-60)

        response = test_client.get(
            "/api/v1/customers/1", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401

    def test_health_is_public(self, test_client: TestClient) -> None:
        with patch.object(db_client, "health_check", AsyncMock(return_value={"status": "healthy"})):
            response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["database"] == "healthy"

    def test_only_health_and_docs_are_public(self, test_client: TestClient) -> None:
        response = test_client.get("/")

        assert response.status_code == 401


class TestResolveEndpoint:
    def test_created(self, test_client: TestClient, auth_headers) -> None:
        service = AsyncMock()
        service.resolve_customer_advanced.return_value = Created(customer=Customer(id=7))
        override(get_identity_service, service)

        response = test_client.post(
            "/api/v1/customers/resolve", json=RESOLVE_BODY, headers=auth_headers()
        )

        assert response.status_code == 200
        assert response.json() == {
            "customer_id": 7,
            "matched_by": "none",
            "is_new": True,
            "is_ambiguous": False,
            "ambiguous_customer_ids": [],
        }
        observation = service.resolve_customer_advanced.call_args.args[0]
        assert observation.external_id == "sf-1"

    def test_resolved_by_email(self, test_client: TestClient, auth_headers) -> None:
        service = AsyncMock()
        service.resolve_customer_advanced.return_value = Resolved(
            customer=Customer(id=3), matched_by=MatchMethod.EMAIL
        )
        override(get_identity_service, service)

        response = test_client.post(
            "/api/v1/customers/resolve", json=RESOLVE_BODY, headers=auth_headers()
        )

        assert response.json()["customer_id"] == 3
        assert response.json()["matched_by"] == "email"
        assert response.json()["is_new"] is False

    def test_ambiguous(self, test_client: TestClient, auth_headers) -> None:
        service = AsyncMock()
        service.resolve_customer_advanced.return_value = Ambiguous(
            matched_by=MatchMethod.PHONE, candidate_ids=(4, 9)
        )
        override(get_identity_service, service)

        response = test_client.post(
            "/api/v1/customers/resolve", json=RESOLVE_BODY, headers=auth_headers()
        )

        assert response.status_code == 200
        data = response.json()
        assert data["customer_id"] is None
        assert data["is_ambiguous"] is True
        assert data["ambiguous_customer_ids"] == [4, 9]

    def test_validation_error_maps_to_400(self, test_client: TestClient, auth_headers) -> None:
        service = AsyncMock()
        service.resolve_customer_advanced.side_effect = ValidationError("no identifier")
        override(get_identity_service, service)

        response = test_client.post(
            "/api/v1/customers/resolve", json=RESOLVE_BODY, headers=auth_headers()
        )

        assert response.status_code == 400
        assert response.json()["detail"] == {
            "error": "ValidationError",
            "message": "no identifier",
            "detail": None,
        }

    def test_conflict_maps_to_409(self, test_client: TestClient, auth_headers) -> None:
        service = AsyncMock()
        service.resolve_customer_advanced.side_effect = ConflictError("raced twice")
        override(get_identity_service, service)

        response = test_client.post(
            "/api/v1/customers/resolve", json=RESOLVE_BODY, headers=auth_headers()
        )

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "ConflictError"

    def test_unknown_provider_rejected(self, test_client: TestClient, auth_headers) -> None:
        response = test_client.post(
            "/api/v1/customers/resolve",
            json={"observation": {"provider": "fax", "email": "a@x.com"}},
            headers=auth_headers(),
        )

        assert response.status_code == 422


class TestCustomerEndpoint:
    def test_get_customer_with_identities(self, test_client: TestClient, auth_headers) -> None:
        service = AsyncMock()
        service.get_customer.return_value = Customer(
            id=5, primary_email="c@x.com", is_vip=True, created_at=NOW, updated_at=NOW
        )
        service.list_identities.return_value = [
            CustomerIdentity(
                id=11,
                customer_id=5,
                provider="accounting",
                external_id="qb-5",
                additional_metadata={"identity_type": "external_id"},
                created_at=NOW,
            )
        ]
        override(get_identity_service, service)

        response = test_client.get("/api/v1/customers/5", headers=auth_headers())

        assert response.status_code == 200
        data = response.json()
        assert data["primary_email"] == "c@x.com"
        assert data["is_vip"] is True
        assert data["identities"][0]["external_id"] == "qb-5"
        assert data["identities"][0]["metadata"] == {"identity_type": "external_id"}

    def test_missing_customer_is_404(self, test_client: TestClient, auth_headers) -> None:
        service = AsyncMock()
        service.get_customer.return_value = None
        override(get_identity_service, service)

        response = test_client.get("/api/v1/customers/404", headers=auth_headers())

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "NotFound"

    def test_non_positive_id_rejected(self, test_client: TestClient, auth_headers) -> None:
        response = test_client.get("/api/v1/customers/0", headers=auth_headers())

        assert response.status_code == 422


class TestAdminEndpoints:
    """Merge review is restricted to admin and manager roles."""

    def test_agent_cannot_merge(self, test_client: TestClient, auth_headers) -> None:
        override(get_merge_coordinator, AsyncMock())

        response = test_client.post(
            "/api/v1/customers/merge",
            json={"primary_customer_id": 1, "merge_customer_ids": [2]},
            headers=auth_headers("agent"),
        )

        assert response.status_code == 403

    def test_agent_cannot_list_candidates_or_groups(self, test_client: TestClient, auth_headers) -> None:
        override(get_merge_coordinator, AsyncMock())
        override(get_ambiguity_report, AsyncMock())

        candidates = test_client.get(
            "/api/v1/customers/1/merge-candidates", headers=auth_headers("agent")
        )
        groups = test_client.get("/api/v1/customers/ambiguous", headers=auth_headers("agent"))

        assert candidates.status_code == 403
        assert groups.status_code == 403

    def test_merge(self, test_client: TestClient, auth_headers) -> None:
        coordinator = AsyncMock()
        coordinator.merge_customers.return_value = MergeResult(
            merged_count=2, repointed={"orders": 3, "customer_identities": 4}
        )
        override(get_merge_coordinator, coordinator)

        response = test_client.post(
            "/api/v1/customers/merge",
            json={"primary_customer_id": 1, "merge_customer_ids": [2, 3]},
            headers=auth_headers("manager"),
        )

        assert response.status_code == 200
        assert response.json() == {
            "merged_count": 2,
            "repointed": {"orders": 3, "customer_identities": 4},
        }
        coordinator.merge_customers.assert_awaited_once_with(1, [2, 3])

    def test_merge_rejects_primary_in_list(self, test_client: TestClient, auth_headers) -> None:
        override(get_merge_coordinator, AsyncMock())

        response = test_client.post(
            "/api/v1/customers/merge",
            json={"primary_customer_id": 1, "merge_customer_ids": [1, 2]},
            headers=auth_headers("admin"),
        )

        assert response.status_code == 422

    def test_merge_rejects_empty_list(self, test_client: TestClient, auth_headers) -> None:
        override(get_merge_coordinator, AsyncMock())

        response = test_client.post(
            "/api/v1/customers/merge",
            json={"primary_customer_id": 1, "merge_customer_ids": []},
            headers=auth_headers("admin"),
        )

        assert response.status_code == 422

    def test_merge_errors(self, test_client: TestClient, auth_headers) -> None:
        coordinator = AsyncMock()
        override(get_merge_coordinator, coordinator)
        body = {"primary_customer_id": 1, "merge_customer_ids": [2]}

        coordinator.merge_customers.side_effect = NotFoundError("Customers not found: [2]")
        not_found = test_client.post("/api/v1/customers/merge", json=body, headers=auth_headers("admin"))
        coordinator.merge_customers.side_effect = TransactionFailure("rolled back")
        failed = test_client.post("/api/v1/customers/merge", json=body, headers=auth_headers("admin"))

        assert not_found.status_code == 404
        assert failed.status_code == 500
        assert failed.json()["detail"]["error"] == "TransactionFailure"

    def test_merge_candidates(self, test_client: TestClient, auth_headers) -> None:
        coordinator = AsyncMock()
        coordinator.list_merge_candidates.return_value = [
            MergeCandidate(customer=Customer(id=8, primary_email="d@x.com"), matched_on=["email"])
        ]
        override(get_merge_coordinator, coordinator)

        response = test_client.get(
            "/api/v1/customers/2/merge-candidates", headers=auth_headers("admin")
        )

        assert response.status_code == 200
        assert response.json()[0]["customer_id"] == 8
        assert response.json()[0]["matched_on"] == ["email"]

    def test_ambiguous_groups(self, test_client: TestClient, auth_headers) -> None:
        report = AsyncMock()
        report.find_ambiguous_groups.return_value = [
            AmbiguousGroup(
                match_type="address_hash",
                value="0123456789abcdef",
                customer_ids=[1, 2],
                providers=["fulfillment", "marketplace"],
                customer_names=["Ann Lee", "Unknown"],
                order_counts=[3, 0],
            )
        ]
        override(get_ambiguity_report, report)

        response = test_client.get(
            "/api/v1/customers/ambiguous?limit=10", headers=auth_headers("manager")
        )

        assert response.status_code == 200
        assert response.json()[0] == {
            "match_type": "address_hash",
            "value": "0123456789abcdef",
            "customer_ids": [1, 2],
            "providers": ["fulfillment", "marketplace"],
            "customer_names": ["Ann Lee", "Unknown"],
            "order_counts": [3, 0],
        }
        report.find_ambiguous_groups.assert_awaited_once_with(10)

    def test_ambiguous_match_error_detail(self, test_client: TestClient, auth_headers) -> None:
        service = AsyncMock()
        service.resolve_customer_advanced.side_effect = AmbiguousMatchError(
            "Ambiguous email match", matched_by="email", candidate_ids=[1, 2]
        )
        override(get_identity_service, service)

        response = test_client.post(
            "/api/v1/customers/resolve", json=RESOLVE_BODY, headers=auth_headers("admin")
        )

        assert response.status_code == 409
        assert response.json()["detail"]["detail"] == {"matched_by": "email", "candidate_ids": [1, 2]}
