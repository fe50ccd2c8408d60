"""Role-based partition of work-detail fields.

Planning fields belong to PPIC (and MASTER); execution fields belong to
PRODUCTION, with MASTER and PPIC keeping write access to them as well. Any
other recognised role sees the fields read-only, and a request without a
recognised role sees nothing.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping, Optional

from models import RoleEnum


class FieldAccess(str, Enum):
    WRITE = "write"
    READ_ONLY = "read_only"
    HIDDEN = "hidden"


PLANNING_FIELDS: tuple[str, ...] = (
    "description",
    "location_id",
    "work_location",
    "work_scope_id",
    "work_type",
    "quantity",
    "uom",
    "is_additional_wo_details",
    "planned_start_date",
    "target_close_date",
    "period_close_target",
)

EXECUTION_FIELDS: tuple[str, ...] = (
    "pic",
    "spk_number",
    "spkk_number",
    "ptw_number",
    "work_permit",
    "actual_start_date",
    "actual_close_date",
    "notes",
)

FIELD_LABELS = {
    "description": "Description",
    "location_id": "Location",
    "work_location": "Work location",
    "work_scope_id": "Work scope",
    "work_type": "Work type",
    "quantity": "Quantity",
    "uom": "UOM",
    "is_additional_wo_details": "Additional WO details flag",
    "planned_start_date": "Planned start date",
    "target_close_date": "Target close date",
    "period_close_target": "Period close target",
    "pic": "Person in charge (PIC)",
    "spk_number": "SPK number",
    "spkk_number": "SPKK number",
    "ptw_number": "PTW number",
    "work_permit": "Work permit",
    "actual_start_date": "Actual start date",
    "actual_close_date": "Actual close date",
    "notes": "Notes",
}

_FIELD_ALIASES = {
    "location": "location_id",
    "work_scope": "work_scope_id",
    "storage_path": "work_permit",
    "work_permit_url": "work_permit",
}

PLANNING_ROLES = frozenset({RoleEnum.master, RoleEnum.ppic})
EXECUTION_ROLES = frozenset({RoleEnum.master, RoleEnum.ppic, RoleEnum.production})

_WRITE_ACCESS: dict[str, frozenset] = {
    **{name: PLANNING_ROLES for name in PLANNING_FIELDS},
    **{name: EXECUTION_ROLES for name in EXECUTION_FIELDS},
}


def normalize_role(role) -> Optional[RoleEnum]:
    if role is None:
        return None
    if isinstance(role, RoleEnum):
        return role
    try:
        return RoleEnum(str(role).strip().upper())
    except ValueError:
        return None


def normalize_field(field: str) -> str:
    return _FIELD_ALIASES.get(field, field)


def field_access(role, field: str) -> FieldAccess:
    normalized_role = normalize_role(role)
    writers = _WRITE_ACCESS.get(normalize_field(field))
    if normalized_role is None or writers is None:
        return FieldAccess.HIDDEN
    if normalized_role in writers:
        return FieldAccess.WRITE
    return FieldAccess.READ_ONLY


def field_access_map(role) -> dict[str, str]:
    """Access level of every work-detail form field for ``role``."""

    return {name: field_access(role, name).value for name in _WRITE_ACCESS}


def can_create_work_details(role) -> bool:
    return normalize_role(role) in PLANNING_ROLES


def runs_planning_rules(role) -> bool:
    return normalize_role(role) in PLANNING_ROLES


def runs_execution_rules(role) -> bool:
    return normalize_role(role) in {RoleEnum.master, RoleEnum.production}


def partition_changes(
    role, changes: Mapping[str, Any], current: Mapping[str, Any]
) -> tuple[dict[str, Any], list[str]]:
    """Split parsed ``changes`` into writable values and read-only violations.

    A read-only field whose submitted value equals the stored value is
    dropped silently so clients may post the whole record back.
    """

    writable: dict[str, Any] = {}
    errors: list[str] = []
    normalized_role = normalize_role(role)
    role_label = normalized_role.value if normalized_role else "this user"
    for name, value in changes.items():
        access = field_access(normalized_role, name)
        if access is FieldAccess.WRITE:
            writable[name] = value
        elif access is FieldAccess.READ_ONLY:
            if current.get(name) != value:
                errors.append(f"{FIELD_LABELS.get(name, name)} is read-only for {role_label}")
        else:
            errors.append(f"{FIELD_LABELS.get(name, name)} cannot be changed by {role_label}")
    return writable, errors


def validate_work_detail(role, values: Mapping[str, Any], *, is_update: bool, prefix: str = "") -> list[str]:
    """Return every human-readable problem with ``values`` for ``role``.

    Planning rules apply to PPIC/MASTER, execution rules to PRODUCTION/MASTER
    on update. Date ordering checks apply to everyone whenever both dates are
    present, and allow the same day.
    """

    errors: list[str] = []

    def _add(message: str) -> None:
        errors.append(f"{prefix}{message}")

    if runs_planning_rules(role):
        for name in (
            "description",
            "location_id",
            "work_location",
            "work_scope_id",
            "work_type",
        ):
            if not _present(values.get(name)):
                _add(f"{FIELD_LABELS[name]} is required")
        quantity = values.get("quantity")
        if quantity is None or quantity <= 0:
            _add("Quantity must be greater than 0")
        for name in ("uom", "planned_start_date", "target_close_date", "period_close_target"):
            if not _present(values.get(name)):
                _add(f"{FIELD_LABELS[name]} is required")

    if is_update and runs_execution_rules(role):
        if not _present(values.get("pic")):
            _add(f"{FIELD_LABELS['pic']} is required")

    planned = values.get("planned_start_date")
    target = values.get("target_close_date")
    if planned and target and target < planned:
        _add("Target close date must be on or after planned start date")

    actual_start = values.get("actual_start_date")
    actual_close = values.get("actual_close_date")
    if actual_close and not actual_start:
        _add("Actual start date is required when actual close date is set")
    elif actual_start and actual_close and actual_close < actual_start:
        _add("Actual close date must be on or after actual start date")

    return errors


def _present(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


__all__ = [
    "EXECUTION_FIELDS",
    "FIELD_LABELS",
    "FieldAccess",
    "PLANNING_FIELDS",
    "can_create_work_details",
    "field_access",
    "field_access_map",
    "normalize_role",
    "partition_changes",
    "validate_work_detail",
]
