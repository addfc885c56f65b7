from datetime import timedelta

import pytest

from rubix_auth.auth.rbac_contract import Role
from rubix_auth.domain.models import AuditAction, Credentials, RequestStatus
from rubix_auth.errors import (
    AccountInactiveError,
    NotFoundError,
    PermissionDeniedError,
    PolicyViolationError,
    RequestAlreadyProcessedError,
    ValidationError,
)
from rubix_auth.security.session_cache import SecureSessionCache
from rubix_auth.services.authorization import AuthorizationGuard
from rubix_auth.services.role_assignment import RoleAssignmentService
from rubix_auth.services.session_manager import SessionManager

from tests.fakes import NOW, FakeIdentityProvider, FakeSecureStore


@pytest.fixture
def service(uow_factory) -> RoleAssignmentService:
    return RoleAssignmentService(uow_factory, clock=lambda: NOW)


@pytest.fixture
def people(fake_db):
    users = fake_db.users
    users.add("root", Role.ELEVATED)
    users.add("root2", Role.ELEVATED)
    users.add("admin", Role.ADMIN)
    users.add("admin2", Role.ADMIN)
    users.add("user", Role.STANDARD)
    return users


# ---------------------------------------------------------------------------
# assign_role / remove_role
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_elevated_grants_admin_visible_after_revalidation(service, fake_db, people):
    identity = FakeIdentityProvider()
    identity.add_account("user", "user@example.com", "pw")
    manager = SessionManager(
        identity, people, SecureSessionCache(FakeSecureStore()), revalidation_interval=3600
    )
    await manager.sign_in(Credentials("user@example.com", "pw"))
    guard = AuthorizationGuard(lambda: manager.principal)
    assert not guard.has_role(Role.ADMIN)

    entry = await service.assign_role("user", Role.ADMIN, "root", "trusted")
    await manager.refresh_user()

    assert entry.action is AuditAction.ROLE_ASSIGNED
    assert entry.previous_role is Role.STANDARD
    assert entry.new_role is Role.ADMIN
    assert fake_db.audit.entries == [entry]
    assert people.profiles["user"].last_role_modified_by == "root"
    assert guard.has_role(Role.ADMIN)
    await manager.close()


@pytest.mark.anyio
async def test_admin_cannot_grant_admin(service, fake_db, people):
    with pytest.raises(PermissionDeniedError):
        await service.assign_role("user", Role.ADMIN, "admin")

    assert people.profiles["user"].role is Role.STANDARD
    assert fake_db.audit.entries == []
    assert fake_db.commits == 0


@pytest.mark.anyio
async def test_admin_can_demote_admin_to_standard(service, people):
    entry = await service.assign_role("admin2", Role.STANDARD, "admin")

    assert entry.previous_role is Role.ADMIN
    assert people.profiles["admin2"].role is Role.STANDARD


@pytest.mark.anyio
@pytest.mark.parametrize("assigner", ["root", "admin", "user"])
async def test_nobody_assigns_elevated(service, fake_db, people, assigner):
    with pytest.raises(PolicyViolationError):
        await service.assign_role("user", "super_admin", assigner)
    assert fake_db.audit.entries == []


@pytest.mark.anyio
async def test_standard_cannot_assign(service, people):
    with pytest.raises(PermissionDeniedError):
        await service.assign_role("admin", Role.STANDARD, "user")


@pytest.mark.anyio
async def test_unknown_role_name_is_validation_error(service, people):
    with pytest.raises(ValidationError):
        await service.assign_role("user", "owner", "root")


@pytest.mark.anyio
async def test_unknown_target_is_not_found(service, fake_db, people):
    with pytest.raises(NotFoundError):
        await service.assign_role("nobody", Role.ADMIN, "root")
    assert fake_db.rollbacks == 1


@pytest.mark.anyio
async def test_inactive_assigner_is_refused(service, people):
    people.profiles["root"].is_active = False
    with pytest.raises(AccountInactiveError):
        await service.assign_role("user", Role.ADMIN, "root")


@pytest.mark.anyio
async def test_admin_cannot_modify_elevated(service, people):
    with pytest.raises(PermissionDeniedError):
        await service.assign_role("root", Role.STANDARD, "admin")
    assert people.profiles["root"].role is Role.ELEVATED


@pytest.mark.anyio
async def test_elevated_cannot_demote_itself(service, people):
    with pytest.raises(PolicyViolationError):
        await service.assign_role("root", Role.ADMIN, "root")


@pytest.mark.anyio
async def test_elevated_may_demote_another_elevated(service, people):
    entry = await service.assign_role("root2", Role.ADMIN, "root", "handover")
    assert entry.previous_role is Role.ELEVATED
    assert people.profiles["root2"].role is Role.ADMIN


@pytest.mark.anyio
async def test_remove_role_reverts_to_standard(service, fake_db, people):
    entry = await service.remove_role("admin2", "root")

    assert entry.action is AuditAction.ROLE_REMOVED
    assert entry.new_role is Role.STANDARD
    assert people.profiles["admin2"].role is Role.STANDARD


@pytest.mark.anyio
@pytest.mark.parametrize("actor", ["root2", "admin"])
async def test_remove_role_never_demotes_elevated(service, fake_db, people, actor):
    with pytest.raises(PolicyViolationError, match="Cannot remove super admin role"):
        await service.remove_role("root", actor)
    assert people.profiles["root"].role is Role.ELEVATED
    assert fake_db.audit.entries == []


@pytest.mark.anyio
async def test_failed_audit_write_rolls_back_role_change(service, fake_db, people):
    async def broken_append(entry):
        raise RuntimeError("audit sink down")

    fake_db.audit.append = broken_append

    with pytest.raises(RuntimeError):
        await service.assign_role("user", Role.ADMIN, "root")

    assert people.profiles["user"].role is Role.STANDARD
    assert fake_db.rollbacks == 1
    assert fake_db.commits == 0


# ---------------------------------------------------------------------------
# request workflow
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_request_then_approve(service, fake_db, people):
    request = await service.create_role_change_request(
        "user", Role.ADMIN, "admin", "runs community events"
    )
    assert request.status is RequestStatus.PENDING
    assert request.current_role_at_request_time is Role.STANDARD

    approved = await service.approve(request.id, "root")

    assert approved.status is RequestStatus.APPROVED
    assert approved.processed_by == "root"
    assert people.profiles["user"].role is Role.ADMIN
    actions = [entry.action for entry in fake_db.audit.entries]
    assert actions == [
        AuditAction.ROLE_REQUESTED,
        AuditAction.ROLE_ASSIGNED,
        AuditAction.REQUEST_APPROVED,
    ]
    assert fake_db.audit.entries[1].reason == "Approved request: runs community events"


@pytest.mark.anyio
async def test_reject_then_approve_fails_already_processed(service, fake_db, people):
    request = await service.create_role_change_request("user", Role.ADMIN, "user", "please")
    rejected = await service.reject(request.id, "root", "not yet")
    assert rejected.status is RequestStatus.REJECTED
    assert rejected.rejection_reason == "not yet"

    with pytest.raises(RequestAlreadyProcessedError):
        await service.approve(request.id, "root")

    assert people.profiles["user"].role is Role.STANDARD
    assert fake_db.audit.entries[-1].action is AuditAction.REQUEST_REJECTED


@pytest.mark.anyio
async def test_approved_request_cannot_be_rejected(service, people):
    request = await service.create_role_change_request("user", Role.ADMIN, "admin", "x")
    await service.approve(request.id, "root")

    with pytest.raises(RequestAlreadyProcessedError):
        await service.reject(request.id, "root")


@pytest.mark.anyio
async def test_admin_cannot_approve_admin_request(service, fake_db, people):
    request = await service.create_role_change_request("user", Role.ADMIN, "admin", "x")

    with pytest.raises(PermissionDeniedError):
        await service.approve(request.id, "admin2")

    assert fake_db.requests.requests[request.id].status is RequestStatus.PENDING
    assert people.profiles["user"].role is Role.STANDARD


@pytest.mark.anyio
async def test_request_for_elevated_is_refused(service, fake_db, people):
    with pytest.raises(PolicyViolationError):
        await service.create_role_change_request("user", Role.ELEVATED, "root", "x")
    assert fake_db.requests.requests == {}


@pytest.mark.anyio
async def test_request_requires_reason(service, people):
    with pytest.raises(ValidationError):
        await service.create_role_change_request("user", Role.ADMIN, "admin", "   ")


@pytest.mark.anyio
async def test_request_for_current_role_is_refused(service, people):
    with pytest.raises(ValidationError):
        await service.create_role_change_request("admin2", Role.ADMIN, "root", "x")


@pytest.mark.anyio
async def test_unknown_request_is_not_found(service, people):
    with pytest.raises(NotFoundError):
        await service.approve("missing", "root")


# ---------------------------------------------------------------------------
# queries
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_list_pending_requests(service, people):
    first = await service.create_role_change_request("user", Role.ADMIN, "admin", "a")
    second = await service.create_role_change_request("admin2", Role.STANDARD, "root", "b")
    await service.reject(second.id, "root")

    pending = await service.list_pending_requests()

    assert [request.id for request in pending] == [first.id]


@pytest.mark.anyio
async def test_history_only_contains_role_changes(service, people):
    await service.assign_role("user", Role.ADMIN, "root")
    await service.create_role_change_request("admin2", Role.STANDARD, "root", "x")
    await service.remove_role("admin", "root")

    history = await service.get_role_assignment_history()
    for_user = await service.get_role_assignment_history("user")

    assert {entry.action for entry in history} == {
        AuditAction.ROLE_ASSIGNED,
        AuditAction.ROLE_REMOVED,
    }
    assert [entry.target_user_id for entry in for_user] == ["user"]


@pytest.mark.anyio
async def test_history_limit_is_validated(service):
    with pytest.raises(ValidationError):
        await service.get_role_assignment_history(limit=0)


@pytest.mark.anyio
async def test_statistics(service, fake_db, people):
    await service.assign_role("user", Role.ADMIN, "root")
    await service.create_role_change_request("admin2", Role.STANDARD, "root", "x")

    stats = await service.get_role_statistics()
    later = await service.get_role_statistics(now=NOW + timedelta(days=8))

    assert stats.total_by_role == {Role.ELEVATED: 2, Role.ADMIN: 3, Role.STANDARD: 0}
    assert stats.recent_changes == 1
    assert stats.pending_requests == 1
    assert later.recent_changes == 0


@pytest.mark.anyio
async def test_can_user_assign_role(service, people):
    assert await service.can_user_assign_role("root", Role.ADMIN)
    assert await service.can_user_assign_role("admin", "user")
    assert not await service.can_user_assign_role("admin", Role.ADMIN)
    assert not await service.can_user_assign_role("root", Role.ELEVATED)
    assert not await service.can_user_assign_role("ghost", Role.STANDARD)
    assert not await service.can_user_assign_role("root", "owner")
