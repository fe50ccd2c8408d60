"""Material master data and materials consumed per BASTP work detail."""

from __future__ import annotations

from collections import OrderedDict
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import joinedload

from activity_log import record_activity, snapshot
from extensions import db
from form_values import parse_decimal, parse_int, strip_or_none
from models import ActivityAction, BASTPWorkDetail, MaterialControl, MaterialList, User

from .services import (
    HandoverNotFoundError,
    HandoverValidationError,
    get_bastp,
    require_permission,
)

_CONTROL_FIELDS = ("material_id", "size", "amount", "uom", "work_details_id", "bastp_id")


def list_materials(search: Optional[str] = None) -> list[MaterialList]:
    query = MaterialList.active()
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(
                MaterialList.material.ilike(like),
                MaterialList.specification.ilike(like),
                MaterialList.category.ilike(like),
            )
        )
    return query.order_by(MaterialList.material).all()


def create_material(user: Optional[User], payload: dict) -> MaterialList:
    require_permission(user, "manage_bastp", "You do not have permission to manage materials.")
    payload = payload or {}
    name = strip_or_none(payload.get("material"))
    if not name:
        raise HandoverValidationError(["Material name is required"])

    material = MaterialList(
        material=name,
        specification=strip_or_none(payload.get("specification")),
        category=strip_or_none(payload.get("category")),
    )
    db.session.add(material)
    db.session.flush()
    record_activity(
        user,
        ActivityAction.CREATE,
        MaterialList.__tablename__,
        material.id,
        new_data=snapshot(material, ("material", "specification", "category")),
    )
    db.session.commit()
    return material


def _parse_entry(entry: dict, prefix: str, errors: list[str]) -> Optional[dict[str, Any]]:
    before = len(errors)
    try:
        material_id = parse_int(entry.get("material_id"), "material")
    except ValueError as exc:
        errors.append(f"{prefix}{exc}")
        material_id = None
    else:
        if not material_id:
            errors.append(f"{prefix}Please select a material")
        elif MaterialList.get_active(material_id) is None:
            errors.append(f"{prefix}Selected material could not be found")

    try:
        amount = parse_decimal(entry.get("amount"), "amount")
    except ValueError as exc:
        errors.append(f"{prefix}{exc}")
        amount = None
    else:
        if amount is None or amount <= 0:
            errors.append(f"{prefix}Amount must be greater than 0")

    uom = strip_or_none(entry.get("uom"))
    if not uom:
        errors.append(f"{prefix}UOM is required")

    if len(errors) > before:
        return None
    return {
        "material_id": material_id,
        "amount": amount,
        "uom": uom,
        "size": strip_or_none(entry.get("size")),
    }


def _require_link(bastp_id: int, work_details_id) -> int:
    try:
        work_details_id = parse_int(work_details_id, "work detail")
    except ValueError as exc:
        raise HandoverValidationError([str(exc)]) from exc
    if not work_details_id:
        raise HandoverValidationError(["Please select a work detail"])
    link = (
        BASTPWorkDetail.active()
        .filter(
            BASTPWorkDetail.bastp_id == bastp_id,
            BASTPWorkDetail.work_details_id == work_details_id,
        )
        .first()
    )
    if link is None:
        raise HandoverValidationError(["Work detail is not part of this BASTP"])
    return work_details_id


def add_material_controls(
    user: Optional[User], bastp_id: int, work_details_id, entries: Iterable[dict]
) -> list[MaterialControl]:
    """Record the materials used by one work detail of a BASTP."""

    require_permission(user, "manage_bastp", "You do not have permission to record materials.")
    bastp = get_bastp(bastp_id)
    work_details_id = _require_link(bastp.id, work_details_id)

    entries = list(entries or [])
    if not entries:
        raise HandoverValidationError(["Add at least one material"])

    errors: list[str] = []
    parsed = []
    for index, entry in enumerate(entries, start=1):
        values = _parse_entry(entry or {}, f"Material #{index}: ", errors)
        if values is not None:
            parsed.append(values)
    if errors:
        raise HandoverValidationError(errors)

    created = []
    for values in parsed:
        control = MaterialControl(bastp_id=bastp.id, work_details_id=work_details_id, **values)
        db.session.add(control)
        db.session.flush()
        record_activity(
            user,
            ActivityAction.CREATE,
            MaterialControl.__tablename__,
            control.id,
            new_data=snapshot(control, _CONTROL_FIELDS),
        )
        created.append(control)
    db.session.commit()
    return created


def get_material_control(control_id: int) -> MaterialControl:
    control = (
        MaterialControl.active()
        .options(joinedload(MaterialControl.material))
        .filter(MaterialControl.id == control_id)
        .first()
    )
    if control is None:
        raise HandoverNotFoundError("Material control not found.")
    return control


def update_material_control(user: Optional[User], control_id: int, payload: dict) -> MaterialControl:
    require_permission(user, "manage_bastp", "You do not have permission to record materials.")
    control = get_material_control(control_id)
    merged = {
        "material_id": control.material_id,
        "amount": control.amount,
        "uom": control.uom,
        "size": control.size,
        **(payload or {}),
    }
    errors: list[str] = []
    values = _parse_entry(merged, "", errors)
    if errors:
        raise HandoverValidationError(errors)

    old_data = snapshot(control, _CONTROL_FIELDS)
    for name, value in values.items():
        setattr(control, name, value)
    record_activity(
        user,
        ActivityAction.UPDATE,
        MaterialControl.__tablename__,
        control.id,
        old_data=old_data,
        new_data=snapshot(control, _CONTROL_FIELDS),
    )
    db.session.commit()
    return control


def delete_material_control(user: Optional[User], control_id: int) -> None:
    require_permission(user, "manage_bastp", "You do not have permission to record materials.")
    control = get_material_control(control_id)
    old_data = snapshot(control, _CONTROL_FIELDS)
    control.soft_delete()
    record_activity(user, ActivityAction.DELETE, MaterialControl.__tablename__, control.id, old_data=old_data)
    db.session.commit()


def list_material_controls(bastp_id: int, work_details_id: Optional[int] = None) -> list[MaterialControl]:
    get_bastp(bastp_id)
    query = (
        MaterialControl.active()
        .options(joinedload(MaterialControl.material))
        .filter(MaterialControl.bastp_id == bastp_id)
    )
    if work_details_id:
        query = query.filter(MaterialControl.work_details_id == work_details_id)
    return query.order_by(MaterialControl.work_details_id, MaterialControl.id).all()


def summarize_materials(controls: Iterable[MaterialControl]) -> list[dict]:
    """Total amount per material and unit across ``controls``."""

    totals: "OrderedDict[tuple, dict]" = OrderedDict()
    for control in controls:
        key = (control.material_id, (control.uom or "").upper())
        row = totals.get(key)
        if row is None:
            row = {
                "material_id": control.material_id,
                "material": control.material.material if control.material else None,
                "uom": control.uom,
                "amount": Decimal("0"),
                "entries": 0,
            }
            totals[key] = row
        row["amount"] += control.amount or Decimal("0")
        row["entries"] += 1
    return list(totals.values())
