"""initial shipyard daily report schema

Revision ID: 5f2c1a9e7b30
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "5f2c1a9e7b30"
down_revision = None
branch_labels = None
depends_on = None


ROLE_ENUM = sa.Enum(
    "master",
    "admin",
    "ppic",
    "production",
    "operation",
    "finance",
    name="roleenum",
)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    ]


def _soft_delete_index(table: str) -> None:
    op.create_index(f"ix_{table}_deleted_at", table, ["deleted_at"])


def upgrade():
    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=120), nullable=False, unique=True),
        sa.Column("company", sa.String(length=120), nullable=True),
        sa.Column("password_hash", sa.String(length=256), nullable=False),
        sa.Column("role", ROLE_ENUM, nullable=False),
        sa.Column("active", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "vessel",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=120), nullable=True),
        sa.Column("company", sa.String(length=255), nullable=True),
        *_timestamps(),
    )
    _soft_delete_index("vessel")

    op.create_table(
        "location",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("location", sa.String(length=255), nullable=False),
        *_timestamps(),
    )
    _soft_delete_index("location")

    op.create_table(
        "work_scope",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("work_scope", sa.String(length=255), nullable=False),
        *_timestamps(),
    )
    _soft_delete_index("work_scope")

    op.create_table(
        "work_order",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("vessel_id", sa.Integer(), sa.ForeignKey("vessel.id"), nullable=False),
        sa.Column("shipyard_wo_number", sa.String(length=120), nullable=False),
        sa.Column("shipyard_wo_date", sa.Date(), nullable=True),
        sa.Column("customer_wo_number", sa.String(length=120), nullable=True),
        sa.Column("customer_wo_date", sa.Date(), nullable=True),
        sa.Column("wo_document_delivery_date", sa.Date(), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_work_order_vessel_id", "work_order", ["vessel_id"])
    _soft_delete_index("work_order")

    op.create_table(
        "work_details",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("work_order_id", sa.Integer(), sa.ForeignKey("work_order.id"), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("location.id"), nullable=True),
        sa.Column("work_location", sa.String(length=255), nullable=True),
        sa.Column("work_scope_id", sa.Integer(), sa.ForeignKey("work_scope.id"), nullable=True),
        sa.Column("work_type", sa.String(length=120), nullable=True),
        sa.Column("quantity", sa.Numeric(12, 2), nullable=True),
        sa.Column("uom", sa.String(length=40), nullable=True),
        sa.Column("is_additional_wo_details", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("planned_start_date", sa.Date(), nullable=True),
        sa.Column("target_close_date", sa.Date(), nullable=True),
        sa.Column("period_close_target", sa.String(length=120), nullable=True),
        sa.Column("pic", sa.String(length=255), nullable=True),
        sa.Column("spk_number", sa.String(length=120), nullable=True),
        sa.Column("spkk_number", sa.String(length=120), nullable=True),
        sa.Column("ptw_number", sa.String(length=120), nullable=True),
        sa.Column("storage_path", sa.String(length=512), nullable=True),
        sa.Column("actual_start_date", sa.Date(), nullable=True),
        sa.Column("actual_close_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "actual_close_date IS NULL OR actual_start_date IS NOT NULL",
            name="ck_work_details_close_requires_start",
        ),
    )
    op.create_index("ix_work_details_work_order_id", "work_details", ["work_order_id"])
    _soft_delete_index("work_details")

    op.create_table(
        "work_progress",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("work_details_id", sa.Integer(), sa.ForeignKey("work_details.id"), nullable=False),
        sa.Column("progress_percentage", sa.Integer(), nullable=False),
        sa.Column("report_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("storage_path", sa.String(length=512), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "progress_percentage >= 0 AND progress_percentage <= 100",
            name="ck_work_progress_percentage_range",
        ),
    )
    op.create_index("ix_work_progress_work_details_id", "work_progress", ["work_details_id"])
    _soft_delete_index("work_progress")

    op.create_table(
        "work_verification",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("work_details_id", sa.Integer(), sa.ForeignKey("work_details.id"), nullable=False),
        sa.Column("work_verification", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("verification_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_work_verification_work_details_id", "work_verification", ["work_details_id"])
    _soft_delete_index("work_verification")

    op.create_table(
        "bastp",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("number", sa.String(length=120), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("delivery_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="DRAFT"),
        sa.Column("storage_path", sa.String(length=512), nullable=True),
        sa.Column("bastp_upload_date", sa.DateTime(), nullable=True),
        sa.Column("vessel_id", sa.Integer(), sa.ForeignKey("vessel.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_bastp_status", "bastp", ["status"])
    op.create_index("ix_bastp_vessel_id", "bastp", ["vessel_id"])
    _soft_delete_index("bastp")

    op.create_table(
        "bastp_work_details",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "bastp_id",
            sa.Integer(),
            sa.ForeignKey("bastp.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("work_details_id", sa.Integer(), sa.ForeignKey("work_details.id"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_bastp_work_details_bastp_id", "bastp_work_details", ["bastp_id"])
    op.create_index("ix_bastp_work_details_work_details_id", "bastp_work_details", ["work_details_id"])
    _soft_delete_index("bastp_work_details")

    op.create_table(
        "general_service_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("service_name", sa.String(length=255), nullable=False),
        sa.Column("service_code", sa.String(length=40), nullable=False, unique=True),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "general_services",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "bastp_id",
            sa.Integer(),
            sa.ForeignKey("bastp.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "service_type_id",
            sa.Integer(),
            sa.ForeignKey("general_service_types.id"),
            nullable=False,
        ),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("close_date", sa.Date(), nullable=True),
        sa.Column("total_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=True),
        sa.Column("payment_price", sa.Numeric(14, 2), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_general_services_bastp_id", "general_services", ["bastp_id"])

    op.create_table(
        "invoice_details",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("bastp_id", sa.Integer(), sa.ForeignKey("bastp.id"), nullable=False),
        sa.Column("invoice_number", sa.String(length=120), nullable=True),
        sa.Column("faktur_number", sa.String(length=120), nullable=True),
        sa.Column("wo_document_collection_date", sa.Date(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("delivery_date", sa.Date(), nullable=True),
        sa.Column("collection_date", sa.Date(), nullable=True),
        sa.Column("receiver_name", sa.String(length=255), nullable=True),
        sa.Column("payment_price", sa.Numeric(14, 2), nullable=True),
        sa.Column("payment_status", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payment_date", sa.Date(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_invoice_details_bastp_id", "invoice_details", ["bastp_id"])
    _soft_delete_index("invoice_details")

    op.create_table(
        "material_lists",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("material", sa.String(length=255), nullable=False),
        sa.Column("specification", sa.String(length=255), nullable=True),
        sa.Column("category", sa.String(length=120), nullable=True),
        *_timestamps(),
    )
    _soft_delete_index("material_lists")

    op.create_table(
        "material_control",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("material_id", sa.Integer(), sa.ForeignKey("material_lists.id"), nullable=False),
        sa.Column("size", sa.String(length=120), nullable=True),
        sa.Column("amount", sa.Numeric(14, 3), nullable=False),
        sa.Column("uom", sa.String(length=40), nullable=False),
        sa.Column("work_details_id", sa.Integer(), sa.ForeignKey("work_details.id"), nullable=False),
        sa.Column("bastp_id", sa.Integer(), sa.ForeignKey("bastp.id"), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_material_control_amount_positive"),
    )
    op.create_index("ix_material_control_work_details_id", "material_control", ["work_details_id"])
    op.create_index("ix_material_control_bastp_id", "material_control", ["bastp_id"])
    _soft_delete_index("material_control")

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=True),
        sa.Column("user_name", sa.String(length=120), nullable=True),
        sa.Column("user_email", sa.String(length=120), nullable=True),
        sa.Column("action", sa.String(length=20), nullable=False),
        sa.Column("table_name", sa.String(length=120), nullable=False),
        sa.Column("record_id", sa.Integer(), nullable=False),
        sa.Column("old_data", sa.JSON(), nullable=True),
        sa.Column("new_data", sa.JSON(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_table_name", "activity_logs", ["table_name"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])


def downgrade():
    op.drop_table("activity_logs")
    op.drop_table("material_control")
    op.drop_table("material_lists")
    op.drop_table("invoice_details")
    op.drop_table("general_services")
    op.drop_table("general_service_types")
    op.drop_table("bastp_work_details")
    op.drop_table("bastp")
    op.drop_table("work_verification")
    op.drop_table("work_progress")
    op.drop_table("work_details")
    op.drop_table("work_order")
    op.drop_table("work_scope")
    op.drop_table("location")
    op.drop_table("vessel")
    op.drop_table("profiles")
    ROLE_ENUM.drop(op.get_bind(), checkfirst=True)
