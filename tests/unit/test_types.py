from __future__ import annotations

from dataclasses import FrozenInstanceError
from uuid import uuid4

import pytest

from fleet_api.core.rbac.types import (
    ApprovalLevel,
    DynamicPermissionContext,
    PermissionResult,
)


def test_context_fields_default_to_none() -> None:
    context = DynamicPermissionContext()
    assert context.user_id is None
    assert context.department is None
    assert context.amount is None
    assert context.time is None


def test_context_with_values_returns_copy() -> None:
    original = DynamicPermissionContext(department="North")
    user_id = uuid4()

    updated = original.with_values(user_id=user_id, vehicle_id=7)

    assert updated.user_id == user_id
    assert updated.vehicle_id == 7
    assert updated.department == "North"
    assert original.user_id is None
    assert original.vehicle_id is None


def test_context_is_frozen() -> None:
    context = DynamicPermissionContext()
    with pytest.raises(FrozenInstanceError):
        context.department = "North"  # type: ignore[misc]


def test_result_constructors() -> None:
    assert PermissionResult.allow() == PermissionResult(allowed=True)

    denied = PermissionResult.deny("Permission not granted")
    assert denied.allowed is False
    assert denied.requires_approval is False
    assert denied.approval_level is ApprovalLevel.NONE

    pending = PermissionResult.pending_approval(ApprovalLevel.MANAGER, "over budget")
    assert pending.allowed is True
    assert pending.requires_approval is True
