from datetime import date
from decimal import Decimal

import pytest

from field_access import (
    EXECUTION_FIELDS,
    PLANNING_FIELDS,
    FieldAccess,
    can_create_work_details,
    field_access,
    field_access_map,
    partition_changes,
    validate_work_detail,
)
from models import RoleEnum


def _planning_values(**overrides):
    values = {
        "description": "Replace hull plates",
        "location_id": 1,
        "work_location": "Portside",
        "work_scope_id": 2,
        "work_type": "Repair",
        "quantity": Decimal("4"),
        "uom": "pcs",
        "planned_start_date": date(2024, 6, 1),
        "target_close_date": date(2024, 6, 10),
        "period_close_target": "June W2",
    }
    values.update(overrides)
    return values


def test_ppic_writes_planning_and_execution_fields():
    for name in PLANNING_FIELDS + EXECUTION_FIELDS:
        assert field_access(RoleEnum.ppic, name) is FieldAccess.WRITE


def test_production_reads_planning_and_writes_execution():
    for name in PLANNING_FIELDS:
        assert field_access(RoleEnum.production, name) is FieldAccess.READ_ONLY
    for name in EXECUTION_FIELDS:
        assert field_access(RoleEnum.production, name) is FieldAccess.WRITE


@pytest.mark.parametrize("role", [RoleEnum.admin, RoleEnum.operation, RoleEnum.finance])
def test_other_roles_are_read_only(role):
    assert set(field_access_map(role).values()) == {FieldAccess.READ_ONLY.value}


def test_unknown_role_sees_nothing():
    assert field_access("GUEST", "description") is FieldAccess.HIDDEN
    assert field_access(None, "pic") is FieldAccess.HIDDEN
    assert field_access(RoleEnum.master, "unknown_field") is FieldAccess.HIDDEN


def test_role_strings_and_aliases_are_normalized():
    assert field_access("master", "location") is FieldAccess.WRITE
    assert field_access("PRODUCTION", "work_permit_url") is FieldAccess.WRITE


def test_only_planning_roles_create_work_details():
    assert can_create_work_details(RoleEnum.ppic)
    assert can_create_work_details("MASTER")
    assert not can_create_work_details(RoleEnum.production)
    assert not can_create_work_details(None)


def test_partition_drops_unchanged_read_only_values():
    current = {"description": "Old", "pic": None}
    writable, errors = partition_changes(
        RoleEnum.production,
        {"description": "Old", "pic": "Budi"},
        current,
    )
    assert writable == {"pic": "Budi"}
    assert errors == []


def test_partition_rejects_changed_read_only_values():
    writable, errors = partition_changes(
        RoleEnum.production,
        {"description": "New", "pic": "Budi"},
        {"description": "Old"},
    )
    assert writable == {"pic": "Budi"}
    assert errors == ["Description is read-only for PRODUCTION"]


def test_partition_rejects_everything_for_unknown_role():
    writable, errors = partition_changes(None, {"pic": "Budi"}, {})
    assert writable == {}
    assert errors == ["Person in charge (PIC) cannot be changed by this user"]


def test_planning_rules_require_every_planning_field():
    errors = validate_work_detail(RoleEnum.ppic, {}, is_update=False, prefix="Row 1: ")
    assert "Row 1: Description is required" in errors
    assert "Row 1: Quantity must be greater than 0" in errors
    assert "Row 1: Period close target is required" in errors


def test_valid_planning_values_pass():
    assert validate_work_detail(RoleEnum.ppic, _planning_values(), is_update=False) == []


def test_zero_quantity_is_rejected():
    errors = validate_work_detail(RoleEnum.master, _planning_values(quantity=Decimal("0")), is_update=False)
    assert errors == ["Quantity must be greater than 0"]


def test_same_day_dates_are_allowed():
    values = _planning_values(
        planned_start_date=date(2024, 6, 1),
        target_close_date=date(2024, 6, 1),
        actual_start_date=date(2024, 6, 3),
        actual_close_date=date(2024, 6, 3),
    )
    assert validate_work_detail(RoleEnum.ppic, values, is_update=False) == []


def test_date_order_is_checked_for_every_role():
    values = {
        "planned_start_date": date(2024, 6, 10),
        "target_close_date": date(2024, 6, 1),
        "actual_start_date": date(2024, 6, 5),
        "actual_close_date": date(2024, 6, 4),
    }
    errors = validate_work_detail(RoleEnum.operation, values, is_update=True)
    assert errors == [
        "Target close date must be on or after planned start date",
        "Actual close date must be on or after actual start date",
    ]


def test_close_date_requires_start_date():
    errors = validate_work_detail(
        RoleEnum.operation, {"actual_close_date": date(2024, 6, 4)}, is_update=True
    )
    assert errors == ["Actual start date is required when actual close date is set"]


def test_production_update_requires_pic():
    errors = validate_work_detail(RoleEnum.production, {"pic": "  "}, is_update=True)
    assert errors == ["Person in charge (PIC) is required"]
    assert validate_work_detail(RoleEnum.production, {"pic": "Budi"}, is_update=True) == []
