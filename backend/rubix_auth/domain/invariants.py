"""
Domain invariants for role mutations.

All invariants are checked BEFORE any side effect (store write, audit
append). A violation is logged and raised as the matching AppError;
nothing is silently skipped.

INVARIANTS:
1. Request state machine - pending -> approved | rejected, terminal is final
2. Elevated is bootstrap-only - no assignment or request may target it
3. Elevated is never demoted through the removal path
4. An elevated account is only modified by another elevated actor
5. The last elevated account is never demoted
"""

import logging
from typing import Any

from ..auth.rbac_contract import Role
from ..errors import (
    PermissionDeniedError,
    PolicyViolationError,
    RequestAlreadyProcessedError,
)
from .models import RoleChangeRequest

logger = logging.getLogger("rubix_auth.invariants")


def _log_violation(invariant: str, message: str, details: dict[str, Any]) -> None:
    logger.warning(
        "invariant_violation invariant=%s message=%s details=%s",
        invariant,
        message,
        details,
    )


def validate_request_pending(request: RoleChangeRequest) -> None:
    """
    INVARIANT-1: Only pending requests can be approved or rejected.

    Raises:
        RequestAlreadyProcessedError: If the request is approved or rejected
    """
    if request.is_terminal:
        details = {"request_id": request.id, "status": request.status.value}
        message = f"Role change request {request.id} already {request.status.value}"
        _log_violation("INVARIANT-1.request_terminal", message, details)
        raise RequestAlreadyProcessedError(message, details=details)


def validate_not_elevated_target(requested_role: Role, *, target_user_id: str) -> None:
    """
    INVARIANT-2: Elevated can only be established through bootstrap.

    Raises:
        PolicyViolationError: If requested_role is ELEVATED
    """
    if requested_role is Role.ELEVATED:
        details = {"target_user_id": target_user_id}
        message = "Elevated role can only be established through bootstrap"
        _log_violation("INVARIANT-2.elevated_bootstrap_only", message, details)
        raise PolicyViolationError(message, details=details)


def validate_removal_target(current_role: Role, *, target_user_id: str) -> None:
    """
    INVARIANT-3: The removal path never demotes an elevated account.

    Non-overridable: no actor role bypasses this check.

    Raises:
        PolicyViolationError: If the target currently holds ELEVATED
    """
    if current_role is Role.ELEVATED:
        details = {"target_user_id": target_user_id}
        message = "Cannot remove super admin role"
        _log_violation("INVARIANT-3.elevated_not_removable", message, details)
        raise PolicyViolationError(message, details=details)


def validate_elevated_modification(
    current_role: Role,
    *,
    assigner_role: Role,
    assigner_id: str,
    target_user_id: str,
    elevated_count: int,
) -> None:
    """
    INVARIANT-4/5: Changing an elevated account's role.

    Only another elevated actor may do it, never on itself, and never
    when it would leave no elevated account.

    Raises:
        PermissionDeniedError: If the assigner is not elevated
        PolicyViolationError: On self-demotion or demoting the last elevated account
    """
    if current_role is not Role.ELEVATED:
        return

    details = {
        "target_user_id": target_user_id,
        "assigner_id": assigner_id,
        "elevated_count": elevated_count,
    }
    if assigner_role is not Role.ELEVATED:
        message = "Only a super admin can modify a super admin account"
        _log_violation("INVARIANT-4.elevated_modified_by_elevated", message, details)
        raise PermissionDeniedError(message, details=details)
    if assigner_id == target_user_id:
        message = "A super admin cannot demote itself"
        _log_violation("INVARIANT-4.no_self_demotion", message, details)
        raise PolicyViolationError(message, details=details)
    if elevated_count <= 1:
        message = "Cannot demote the last super admin account"
        _log_violation("INVARIANT-5.last_elevated", message, details)
        raise PolicyViolationError(message, details=details)
