from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import CheckConstraint

from extensions import db
from werkzeug.security import generate_password_hash, check_password_hash


class RoleEnum(str, Enum):
    master = "MASTER"
    admin = "ADMIN"
    ppic = "PPIC"
    production = "PRODUCTION"
    operation = "OPERATION"
    finance = "FINANCE"


# Explicitly enumerate scoped permissions per role for API guards.
ROLE_PERMISSIONS: dict[RoleEnum, set[str]] = {
    RoleEnum.master: {
        "manage_users",
        "manage_vessels",
        "manage_work_orders",
        "manage_work_details",
        "manage_work_progress",
        "verify_work",
        "manage_bastp",
        "manage_invoices",
        "view_invoices",
        "view_activity_logs",
    },
    RoleEnum.admin: {
        "manage_users",
        "manage_vessels",
        "manage_work_orders",
        "manage_work_details",
        "manage_work_progress",
        "verify_work",
        "manage_bastp",
        "view_invoices",
        "view_activity_logs",
    },
    RoleEnum.ppic: {
        "manage_vessels",
        "manage_work_orders",
        "manage_work_details",
        "manage_work_progress",
        "verify_work",
        "manage_bastp",
        "view_invoices",
    },
    RoleEnum.production: {
        "manage_vessels",
        "manage_work_orders",
        "manage_work_details",
        "manage_work_progress",
        "verify_work",
        "manage_bastp",
        "view_invoices",
    },
    RoleEnum.operation: {
        "manage_vessels",
        "manage_work_orders",
        "manage_work_details",
        "manage_work_progress",
        "verify_work",
        "manage_bastp",
        "view_invoices",
    },
    RoleEnum.finance: {
        "manage_invoices",
        "view_invoices",
    },
}


def role_has_permission(role, permission: str) -> bool:
    if role is None:
        return False
    try:
        role = RoleEnum(role)
    except ValueError:
        return False
    return permission in ROLE_PERMISSIONS.get(role, set())


class BASTPStatus(str, Enum):
    DRAFT = "DRAFT"
    VERIFIED = "VERIFIED"
    READY_FOR_INVOICE = "READY_FOR_INVOICE"
    INVOICED = "INVOICED"


class ActivityAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class TimestampMixin:
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    deleted_at = db.Column(db.DateTime, nullable=True, index=True)

    @classmethod
    def active(cls):
        """Query of rows that have not been soft-deleted."""
        return cls.query.filter(cls.deleted_at.is_(None))

    @classmethod
    def get_active(cls, record_id):
        if record_id is None:
            return None
        return cls.active().filter(cls.id == record_id).first()

    def soft_delete(self) -> None:
        self.deleted_at = datetime.utcnow()


class User(db.Model):
    __tablename__ = "profiles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    company = db.Column(db.String(120))
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.Enum(RoleEnum), nullable=False, default=RoleEnum.operation)
    active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def set_password(self, pw): self.password_hash = generate_password_hash(pw)
    def check_password(self, pw): return check_password_hash(self.password_hash, pw)


class Vessel(TimestampMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(120))
    company = db.Column(db.String(255))


class WorkOrder(TimestampMixin, db.Model):
    __tablename__ = "work_order"

    id = db.Column(db.Integer, primary_key=True)
    vessel_id = db.Column(db.Integer, db.ForeignKey("vessel.id"), nullable=False, index=True)
    vessel = db.relationship("Vessel", backref="work_orders")
    shipyard_wo_number = db.Column(db.String(120), nullable=False)
    shipyard_wo_date = db.Column(db.Date)
    customer_wo_number = db.Column(db.String(120))
    customer_wo_date = db.Column(db.Date)
    wo_document_delivery_date = db.Column(db.Date)

    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"))
    user = db.relationship("User", foreign_keys=[user_id])


class Location(TimestampMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    location = db.Column(db.String(255), nullable=False)


class WorkScope(TimestampMixin, db.Model):
    __tablename__ = "work_scope"

    id = db.Column(db.Integer, primary_key=True)
    work_scope = db.Column(db.String(255), nullable=False)


class WorkDetail(TimestampMixin, db.Model):
    __tablename__ = "work_details"
    __table_args__ = (
        CheckConstraint(
            "actual_close_date IS NULL OR actual_start_date IS NOT NULL",
            name="ck_work_details_close_requires_start",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    work_order_id = db.Column(db.Integer, db.ForeignKey("work_order.id"), nullable=False, index=True)
    work_order = db.relationship("WorkOrder", backref="work_details")

    # Planning fields (PPIC / MASTER)
    description = db.Column(db.Text, nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey("location.id"))
    location = db.relationship("Location")
    work_location = db.Column(db.String(255))
    work_scope_id = db.Column(db.Integer, db.ForeignKey("work_scope.id"))
    work_scope = db.relationship("WorkScope")
    work_type = db.Column(db.String(120))
    quantity = db.Column(db.Numeric(12, 2))
    uom = db.Column(db.String(40))
    is_additional_wo_details = db.Column(db.Boolean, nullable=False, default=False)
    planned_start_date = db.Column(db.Date)
    target_close_date = db.Column(db.Date)
    period_close_target = db.Column(db.String(120))

    # Execution fields (PRODUCTION)
    pic = db.Column(db.String(255))
    spk_number = db.Column(db.String(120))
    spkk_number = db.Column(db.String(120))
    ptw_number = db.Column(db.String(120))
    storage_path = db.Column(db.String(512))
    actual_start_date = db.Column(db.Date)
    actual_close_date = db.Column(db.Date)
    notes = db.Column(db.Text)

    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"))
    user = db.relationship("User", foreign_keys=[user_id])

    progress_reports = db.relationship(
        "ProgressReport",
        back_populates="work_detail",
        order_by="ProgressReport.report_date",
    )

    @property
    def active_progress_reports(self):
        return [report for report in self.progress_reports if report.deleted_at is None]


class ProgressReport(TimestampMixin, db.Model):
    __tablename__ = "work_progress"
    __table_args__ = (
        CheckConstraint(
            "progress_percentage >= 0 AND progress_percentage <= 100",
            name="ck_work_progress_percentage_range",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    work_details_id = db.Column(db.Integer, db.ForeignKey("work_details.id"), nullable=False, index=True)
    work_detail = db.relationship("WorkDetail", back_populates="progress_reports")
    progress_percentage = db.Column(db.Integer, nullable=False)
    report_date = db.Column(db.Date, nullable=False, default=date.today)
    notes = db.Column(db.Text)
    storage_path = db.Column(db.String(512))

    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"))
    user = db.relationship("User", foreign_keys=[user_id])


class WorkVerification(TimestampMixin, db.Model):
    __tablename__ = "work_verification"

    id = db.Column(db.Integer, primary_key=True)
    work_details_id = db.Column(db.Integer, db.ForeignKey("work_details.id"), nullable=False, index=True)
    work_detail = db.relationship("WorkDetail", backref="verifications")
    work_verification = db.Column(db.Boolean, nullable=False, default=True)
    verification_date = db.Column(db.Date, nullable=False, default=date.today)
    notes = db.Column(db.Text)

    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"))
    user = db.relationship("User", foreign_keys=[user_id])


class BASTP(TimestampMixin, db.Model):
    __tablename__ = "bastp"

    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.String(120), nullable=False)
    date = db.Column(db.Date, nullable=False, default=date.today)
    delivery_date = db.Column(db.Date)
    status = db.Column(db.String(30), nullable=False, default=BASTPStatus.DRAFT.value, index=True)
    storage_path = db.Column(db.String(512))
    bastp_upload_date = db.Column(db.DateTime)
    vessel_id = db.Column(db.Integer, db.ForeignKey("vessel.id"), nullable=False, index=True)
    vessel = db.relationship("Vessel")

    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"))
    user = db.relationship("User", foreign_keys=[user_id])

    work_detail_links = db.relationship("BASTPWorkDetail", back_populates="bastp")
    general_services = db.relationship(
        "GeneralService",
        back_populates="bastp",
        cascade="all, delete-orphan",
        order_by="GeneralService.id",
    )

    @property
    def active_work_detail_links(self):
        return [link for link in self.work_detail_links if link.deleted_at is None]

    @property
    def work_details(self):
        return [
            link.work_detail
            for link in self.active_work_detail_links
            if link.work_detail is not None and link.work_detail.deleted_at is None
        ]

    @property
    def work_detail_ids(self) -> list[int]:
        return [detail.id for detail in self.work_details]

    @property
    def total_work_details(self) -> int:
        return len(self.work_details)

    @property
    def is_invoiced(self) -> bool:
        return self.status == BASTPStatus.INVOICED.value


class BASTPWorkDetail(TimestampMixin, db.Model):
    __tablename__ = "bastp_work_details"

    id = db.Column(db.Integer, primary_key=True)
    bastp_id = db.Column(db.Integer, db.ForeignKey("bastp.id", ondelete="CASCADE"), nullable=False, index=True)
    bastp = db.relationship("BASTP", back_populates="work_detail_links")
    work_details_id = db.Column(db.Integer, db.ForeignKey("work_details.id"), nullable=False, index=True)
    work_detail = db.relationship("WorkDetail", backref="bastp_links")


class GeneralServiceType(db.Model):
    __tablename__ = "general_service_types"

    id = db.Column(db.Integer, primary_key=True)
    service_name = db.Column(db.String(255), nullable=False)
    service_code = db.Column(db.String(40), nullable=False, unique=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class GeneralService(db.Model):
    __tablename__ = "general_services"

    id = db.Column(db.Integer, primary_key=True)
    bastp_id = db.Column(db.Integer, db.ForeignKey("bastp.id", ondelete="CASCADE"), nullable=False, index=True)
    bastp = db.relationship("BASTP", back_populates="general_services")
    service_type_id = db.Column(db.Integer, db.ForeignKey("general_service_types.id"), nullable=False)
    service_type = db.relationship("GeneralServiceType")
    start_date = db.Column(db.Date)
    close_date = db.Column(db.Date)
    total_days = db.Column(db.Integer, nullable=False, default=0)
    unit_price = db.Column(db.Numeric(14, 2), default=Decimal("0.00"))
    payment_price = db.Column(db.Numeric(14, 2), default=Decimal("0.00"))
    remarks = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Invoice(TimestampMixin, db.Model):
    __tablename__ = "invoice_details"

    id = db.Column(db.Integer, primary_key=True)
    bastp_id = db.Column(db.Integer, db.ForeignKey("bastp.id"), nullable=False, index=True)
    bastp = db.relationship("BASTP", backref="invoices")
    invoice_number = db.Column(db.String(120))
    faktur_number = db.Column(db.String(120))
    wo_document_collection_date = db.Column(db.Date)
    due_date = db.Column(db.Date)
    delivery_date = db.Column(db.Date)
    collection_date = db.Column(db.Date)
    receiver_name = db.Column(db.String(255))
    payment_price = db.Column(db.Numeric(14, 2))
    payment_status = db.Column(db.Boolean, nullable=False, default=False)
    payment_date = db.Column(db.Date)
    remarks = db.Column(db.Text)

    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"))
    user = db.relationship("User", foreign_keys=[user_id])


class MaterialList(TimestampMixin, db.Model):
    __tablename__ = "material_lists"

    id = db.Column(db.Integer, primary_key=True)
    material = db.Column(db.String(255), nullable=False)
    specification = db.Column(db.String(255))
    category = db.Column(db.String(120))


class MaterialControl(TimestampMixin, db.Model):
    __tablename__ = "material_control"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_material_control_amount_positive"),
    )

    id = db.Column(db.Integer, primary_key=True)
    material_id = db.Column(db.Integer, db.ForeignKey("material_lists.id"), nullable=False)
    material = db.relationship("MaterialList")
    size = db.Column(db.String(120))
    amount = db.Column(db.Numeric(14, 3), nullable=False)
    uom = db.Column(db.String(40), nullable=False)
    work_details_id = db.Column(db.Integer, db.ForeignKey("work_details.id"), nullable=False, index=True)
    work_detail = db.relationship("WorkDetail", backref="material_controls")
    bastp_id = db.Column(db.Integer, db.ForeignKey("bastp.id"), nullable=False, index=True)
    bastp = db.relationship("BASTP", backref="material_controls")


class ActivityLog(db.Model):
    __tablename__ = "activity_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), index=True)
    user_name = db.Column(db.String(120))
    user_email = db.Column(db.String(120))
    action = db.Column(db.String(20), nullable=False)
    table_name = db.Column(db.String(120), nullable=False, index=True)
    record_id = db.Column(db.Integer, nullable=False)
    old_data = db.Column(db.JSON)
    new_data = db.Column(db.JSON)
    changes = db.Column(db.JSON)
    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.String(512))
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
