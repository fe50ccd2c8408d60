from . import (
    activity_logs,
    auth,
    bastp,
    dashboard,
    files,
    invoices,
    lookups,
    materials,
    vessels,
    work_details,
    work_orders,
    work_progress,
    work_verification,
)

__all__ = [
    "activity_logs",
    "auth",
    "bastp",
    "dashboard",
    "files",
    "invoices",
    "lookups",
    "materials",
    "vessels",
    "work_details",
    "work_orders",
    "work_progress",
    "work_verification",
]
