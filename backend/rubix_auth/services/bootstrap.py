"""One-time creation of the elevated account."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from ..auth.rbac_contract import Role
from ..domain.models import AuditAction, AuditLogEntry, UserProfile
from ..domain.ports.identity import AccountRegistrar
from ..domain.ports.role_requests import RoleUnitOfWorkFactory
from ..errors import PolicyViolationError, ValidationError

logger = logging.getLogger("rubix_auth.bootstrap")

BOOTSTRAP_ACTOR = "system:bootstrap"


async def initialize_elevated_account(
    identity: AccountRegistrar,
    uow_factory: RoleUnitOfWorkFactory,
    email: str,
    password: str,
    display_name: str = "Super Administrator",
    *,
    now: datetime | None = None,
) -> UserProfile:
    """
    Create the single elevated account.

    The existence check runs before the identity account is created, and
    again inside the write transaction.

    Raises:
        ValidationError: If email or password is empty
        PolicyViolationError: If an elevated account already exists
    """
    email = (email or "").strip().lower()
    if not email or not password:
        raise ValidationError("Bootstrap email and password are required")
    now = now or datetime.now(timezone.utc)

    async with uow_factory() as uow:
        if await uow.users.elevated_account_exists():
            logger.warning("elevated_bootstrap_refused reason=already_exists")
            raise PolicyViolationError("Super admin account already exists")

    result = await identity.create_account(email, password, display_name)

    async with uow_factory() as uow:
        try:
            if await uow.users.elevated_account_exists():
                raise PolicyViolationError("Super admin account already exists")
            profile = await uow.users.create_profile(
                UserProfile(
                    id=result.principal_id,
                    email=email,
                    role=Role.ELEVATED,
                    display_name=display_name,
                    created_at=now,
                    last_role_modified_at=now,
                    last_role_modified_by=BOOTSTRAP_ACTOR,
                )
            )
            await uow.audit.append(
                AuditLogEntry(
                    action=AuditAction.ELEVATED_BOOTSTRAP,
                    performed_by=BOOTSTRAP_ACTOR,
                    target_user_id=profile.id,
                    timestamp=now,
                    new_role=Role.ELEVATED,
                    source="bootstrap",
                )
            )
            await uow.commit()
        except Exception as exc:
            await uow.rollback()
            # The identity account already exists; it has to be removed by hand
            logger.error(
                "elevated_bootstrap_orphaned_identity principal_id=%s email=%s error=%s",
                result.principal_id,
                email,
                exc.__class__.__name__,
            )
            raise

    logger.info("elevated_bootstrap principal_id=%s", profile.id)
    return profile
