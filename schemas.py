from marshmallow import Schema, fields

from bastp_status import compute_total_days
from models import BASTPStatus, RoleEnum
from progress_summary import current_progress
from work_status import derive_work_status, get_status_color, get_status_label


def _enum_value(value):
    return getattr(value, "value", value)


BASTP_STATUS_LABELS = {
    BASTPStatus.DRAFT.value: "Draft",
    BASTPStatus.VERIFIED.value: "Verified",
    BASTPStatus.READY_FOR_INVOICE.value: "Ready for Invoice",
    BASTPStatus.INVOICED.value: "Invoiced",
}


class UserSchema(Schema):
    id = fields.Int()
    name = fields.Str()
    email = fields.Str()
    company = fields.Str(allow_none=True)
    role = fields.Method("get_role")
    active = fields.Bool()

    def get_role(self, obj):
        role = getattr(obj, "role", None)
        if isinstance(role, RoleEnum):
            return role.value
        return role


class VesselSchema(Schema):
    id = fields.Int()
    name = fields.Str()
    type = fields.Str(allow_none=True)
    company = fields.Str(allow_none=True)
    created_at = fields.DateTime()


class WorkOrderSchema(Schema):
    id = fields.Int()
    vessel_id = fields.Int()
    shipyard_wo_number = fields.Str()
    shipyard_wo_date = fields.Date(allow_none=True)
    customer_wo_number = fields.Str(allow_none=True)
    customer_wo_date = fields.Date(allow_none=True)
    wo_document_delivery_date = fields.Date(allow_none=True)
    created_at = fields.DateTime()
    updated_at = fields.DateTime()

    vessel = fields.Nested(VesselSchema, only=("id", "name", "type", "company"), allow_none=True)


class LocationSchema(Schema):
    id = fields.Int()
    location = fields.Str()


class WorkScopeSchema(Schema):
    id = fields.Int()
    work_scope = fields.Str()


class ProgressReportSchema(Schema):
    id = fields.Int()
    work_details_id = fields.Int()
    progress_percentage = fields.Int()
    report_date = fields.Date()
    notes = fields.Str(allow_none=True)
    storage_path = fields.Str(allow_none=True)
    user_id = fields.Int(allow_none=True)
    created_at = fields.DateTime()


class WorkVerificationSchema(Schema):
    id = fields.Int()
    work_details_id = fields.Int()
    work_verification = fields.Bool()
    verification_date = fields.Date()
    notes = fields.Str(allow_none=True)
    user_id = fields.Int(allow_none=True)
    created_at = fields.DateTime()


class WorkDetailSchema(Schema):
    id = fields.Int()
    work_order_id = fields.Int()

    description = fields.Str()
    location_id = fields.Int(allow_none=True)
    work_location = fields.Str(allow_none=True)
    work_scope_id = fields.Int(allow_none=True)
    work_type = fields.Str(allow_none=True)
    quantity = fields.Float(allow_none=True)
    uom = fields.Str(allow_none=True)
    is_additional_wo_details = fields.Bool()
    planned_start_date = fields.Date(allow_none=True)
    target_close_date = fields.Date(allow_none=True)
    period_close_target = fields.Str(allow_none=True)

    pic = fields.Str(allow_none=True)
    spk_number = fields.Str(allow_none=True)
    spkk_number = fields.Str(allow_none=True)
    ptw_number = fields.Str(allow_none=True)
    storage_path = fields.Str(allow_none=True)
    actual_start_date = fields.Date(allow_none=True)
    actual_close_date = fields.Date(allow_none=True)
    notes = fields.Str(allow_none=True)
    created_at = fields.DateTime()
    updated_at = fields.DateTime()

    location = fields.Nested(LocationSchema, allow_none=True)
    work_scope = fields.Nested(WorkScopeSchema, allow_none=True)
    work_order = fields.Nested(
        WorkOrderSchema,
        only=("id", "shipyard_wo_number", "customer_wo_number", "vessel"),
        allow_none=True,
    )

    status = fields.Method("get_status")
    status_label = fields.Method("get_status_label")
    status_color = fields.Method("get_status_color")
    current_progress = fields.Method("get_current_progress")
    latest_progress_date = fields.Method("get_latest_progress_date")
    progress_count = fields.Method("get_progress_count")

    def get_status(self, obj):
        return derive_work_status(obj).value

    def get_status_label(self, obj):
        return get_status_label(derive_work_status(obj))

    def get_status_color(self, obj):
        return get_status_color(derive_work_status(obj))

    def get_current_progress(self, obj):
        return current_progress(obj.progress_reports).value

    def get_latest_progress_date(self, obj):
        as_of = current_progress(obj.progress_reports).as_of
        return as_of.isoformat() if as_of else None

    def get_progress_count(self, obj):
        return current_progress(obj.progress_reports).count


class GeneralServiceTypeSchema(Schema):
    id = fields.Int()
    service_name = fields.Str()
    service_code = fields.Str()
    display_order = fields.Int()


class GeneralServiceSchema(Schema):
    id = fields.Int()
    bastp_id = fields.Int()
    service_type_id = fields.Int()
    start_date = fields.Date(allow_none=True)
    close_date = fields.Date(allow_none=True)
    total_days = fields.Method("get_total_days")
    unit_price = fields.Float(allow_none=True)
    payment_price = fields.Float(allow_none=True)
    remarks = fields.Str(allow_none=True)

    service_type = fields.Nested(GeneralServiceTypeSchema, allow_none=True)

    def get_total_days(self, obj):
        return compute_total_days(obj.start_date, obj.close_date)


class BASTPSchema(Schema):
    id = fields.Int()
    number = fields.Str()
    date = fields.Date()
    delivery_date = fields.Date(allow_none=True)
    status = fields.Str()
    status_label = fields.Method("get_status_label")
    storage_path = fields.Str(allow_none=True)
    bastp_upload_date = fields.DateTime(allow_none=True)
    vessel_id = fields.Int()
    user_id = fields.Int(allow_none=True)
    created_at = fields.DateTime()
    updated_at = fields.DateTime()

    vessel = fields.Nested(VesselSchema, only=("id", "name", "type", "company"), allow_none=True)
    work_details = fields.Nested(
        WorkDetailSchema,
        many=True,
        only=(
            "id",
            "description",
            "work_location",
            "quantity",
            "uom",
            "pic",
            "actual_start_date",
            "actual_close_date",
            "status",
            "current_progress",
        ),
    )
    work_detail_ids = fields.List(fields.Int())
    total_work_details = fields.Int()
    is_invoiced = fields.Bool()
    general_services = fields.Nested(GeneralServiceSchema, many=True)

    def get_status_label(self, obj):
        return BASTP_STATUS_LABELS.get(obj.status, obj.status)


class InvoiceSchema(Schema):
    id = fields.Int()
    bastp_id = fields.Int()
    invoice_number = fields.Str(allow_none=True)
    faktur_number = fields.Str(allow_none=True)
    wo_document_collection_date = fields.Date(allow_none=True)
    due_date = fields.Date(allow_none=True)
    delivery_date = fields.Date(allow_none=True)
    collection_date = fields.Date(allow_none=True)
    receiver_name = fields.Str(allow_none=True)
    payment_price = fields.Float(allow_none=True)
    payment_status = fields.Bool()
    payment_date = fields.Date(allow_none=True)
    remarks = fields.Str(allow_none=True)
    created_at = fields.DateTime()
    updated_at = fields.DateTime()

    bastp = fields.Nested(
        BASTPSchema,
        only=("id", "number", "date", "status", "vessel", "total_work_details"),
        allow_none=True,
    )


class MaterialListSchema(Schema):
    id = fields.Int()
    material = fields.Str()
    specification = fields.Str(allow_none=True)
    category = fields.Str(allow_none=True)


class MaterialControlSchema(Schema):
    id = fields.Int()
    material_id = fields.Int()
    size = fields.Str(allow_none=True)
    amount = fields.Float()
    uom = fields.Str()
    work_details_id = fields.Int()
    bastp_id = fields.Int()
    created_at = fields.DateTime()

    material = fields.Nested(MaterialListSchema, allow_none=True)


class MaterialSummarySchema(Schema):
    material_id = fields.Int()
    material = fields.Str(allow_none=True)
    uom = fields.Str()
    amount = fields.Float()
    entries = fields.Int()


class ActivityLogSchema(Schema):
    id = fields.Int()
    user_id = fields.Int(allow_none=True)
    user_name = fields.Str(allow_none=True)
    user_email = fields.Str(allow_none=True)
    action = fields.Method("get_action")
    table_name = fields.Str()
    record_id = fields.Int(allow_none=True)
    old_data = fields.Raw(allow_none=True)
    new_data = fields.Raw(allow_none=True)
    changes = fields.Raw(allow_none=True)
    ip_address = fields.Str(allow_none=True)
    user_agent = fields.Str(allow_none=True)
    description = fields.Str(allow_none=True)
    created_at = fields.DateTime()

    def get_action(self, obj):
        return _enum_value(obj.action)
