import pytest
from fastapi.testclient import TestClient

from rubix_auth.auth.rbac_contract import Role
from rubix_auth.domain.models import AuditAction, RequestStatus
from rubix_auth.errors import InvalidCredentialsError
from rubix_auth.main import create_app

from tests.fakes import FakeDatabase


class TokenIsPrincipalId:
    """Treats the bearer token as the principal id."""

    async def resolve_principal_id(self, id_token: str) -> str:
        if id_token == "expired":
            raise InvalidCredentialsError("Unknown or expired token")
        return id_token


def auth(principal_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {principal_id}"}


@pytest.fixture
def client(fake_db: FakeDatabase, uow_factory):
    fake_db.users.add("root", Role.ELEVATED)
    fake_db.users.add("admin", Role.ADMIN)
    fake_db.users.add("bob")
    fake_db.users.add("gone", is_active=False)
    app = create_app(uow_factory=uow_factory, token_resolver=TokenIsPrincipalId())
    with TestClient(app) as test_client:
        yield test_client


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_missing_token_is_unauthorized(client: TestClient) -> None:
    response = client.get("/roles/requests/pending")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "INVALID_CREDENTIALS"


def test_expired_token_is_unauthorized(client: TestClient) -> None:
    response = client.get("/roles/requests/pending", headers=auth("expired"))
    assert response.status_code == 401


def test_inactive_account_is_forbidden(client: TestClient) -> None:
    response = client.get("/roles/requests/pending", headers=auth("gone"))
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "ACCOUNT_INACTIVE"


def test_standard_user_cannot_list_pending(client: TestClient) -> None:
    response = client.get("/roles/requests/pending", headers=auth("bob"))
    body = response.json()
    assert response.status_code == 403
    assert body["error"]["code"] == "PERMISSION_DENIED"
    assert body["error"]["details"] == {
        "required_permission": "access_admin_panel",
        "principal_id": "bob",
    }


def test_request_then_approve(client: TestClient, fake_db: FakeDatabase) -> None:
    created = client.post(
        "/roles/requests",
        json={"target_user_id": "bob", "requested_role": "admin", "reason": "Moderation"},
        headers=auth("admin"),
    )
    assert created.status_code == 201
    request_id = created.json()["id"]
    assert created.json()["status"] == "pending"

    pending = client.get("/roles/requests/pending", headers=auth("admin"))
    assert [item["id"] for item in pending.json()] == [request_id]

    approved = client.post(f"/roles/requests/{request_id}/approve", headers=auth("root"))
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
    assert approved.json()["processed_by"] == "root"
    assert fake_db.users.profiles["bob"].role is Role.ADMIN
    assert fake_db.requests.requests[request_id].status is RequestStatus.APPROVED

    again = client.post(f"/roles/requests/{request_id}/reject", headers=auth("root"))
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "REQUEST_ALREADY_PROCESSED"


def test_admin_cannot_approve_admin_request(client: TestClient) -> None:
    created = client.post(
        "/roles/requests",
        json={"target_user_id": "bob", "requested_role": "admin", "reason": "Help"},
        headers=auth("bob"),
    )
    response = client.post(
        f"/roles/requests/{created.json()['id']}/approve", headers=auth("admin")
    )
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "PERMISSION_DENIED"


def test_reject_with_reason(client: TestClient) -> None:
    created = client.post(
        "/roles/requests",
        json={"target_user_id": "bob", "requested_role": "admin", "reason": "Help"},
        headers=auth("bob"),
    )
    response = client.post(
        f"/roles/requests/{created.json()['id']}/reject",
        json={"reason": "Not now"},
        headers=auth("root"),
    )
    assert response.status_code == 200
    assert response.json()["rejection_reason"] == "Not now"


def test_request_for_elevated_is_policy_violation(client: TestClient) -> None:
    response = client.post(
        "/roles/requests",
        json={"target_user_id": "bob", "requested_role": "super_admin", "reason": "Please"},
        headers=auth("bob"),
    )
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "POLICY_VIOLATION"


def test_unknown_role_is_unprocessable(client: TestClient) -> None:
    response = client.post(
        "/roles/requests",
        json={"target_user_id": "bob", "requested_role": "owner", "reason": "Please"},
        headers=auth("bob"),
    )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_assign_and_remove_role(client: TestClient, fake_db: FakeDatabase) -> None:
    assigned = client.put(
        "/roles/users/bob", json={"role": "admin", "reason": "Team lead"}, headers=auth("root")
    )
    assert assigned.status_code == 200
    assert assigned.json()["action"] == AuditAction.ROLE_ASSIGNED.value
    assert assigned.json()["new_role"] == "admin"

    removed = client.request("DELETE", "/roles/users/bob", headers=auth("root"))
    assert removed.status_code == 200
    assert removed.json()["previous_role"] == "admin"
    assert fake_db.users.profiles["bob"].role is Role.STANDARD


def test_remove_elevated_is_policy_violation(client: TestClient) -> None:
    fake_db_root = client.request("DELETE", "/roles/users/root", headers=auth("root"))
    assert fake_db_root.status_code == 403
    assert fake_db_root.json()["error"]["code"] == "POLICY_VIOLATION"


def test_unknown_target_is_not_found(client: TestClient) -> None:
    response = client.put("/roles/users/ghost", json={"role": "admin"}, headers=auth("root"))
    assert response.status_code == 404
    assert response.json()["error"] == {
        "code": "NOT_FOUND",
        "message": "User not found",
        "details": {"user_id": "ghost"},
    }


def test_audit_history(client: TestClient) -> None:
    client.put("/roles/users/bob", json={"role": "admin"}, headers=auth("root"))

    response = client.get(
        "/roles/audit", params={"target_user_id": "bob"}, headers=auth("admin")
    )
    assert response.status_code == 200
    assert response.json()["total"] == 1

    out_of_range = client.get("/roles/audit", params={"limit": 501}, headers=auth("admin"))
    assert out_of_range.status_code == 422


def test_statistics_requires_analytics_permission(client: TestClient) -> None:
    assert client.get("/roles/statistics", headers=auth("bob")).status_code == 403

    response = client.get("/roles/statistics", headers=auth("admin"))
    assert response.status_code == 200
    body = response.json()
    assert body["pending_requests"] == 0
