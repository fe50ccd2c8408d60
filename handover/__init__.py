"""BASTP handover, invoicing and material control."""

from .services import (
    HandoverNotFoundError,
    HandoverPermissionError,
    HandoverValidationError,
    available_work_details,
    create_bastp,
    delete_bastp,
    get_bastp,
    list_bastps,
    list_general_service_types,
    status_counts,
    sync_bastp_statuses,
    update_bastp,
    upload_bastp_document,
)
from .invoices import (
    create_invoice,
    delete_invoice,
    get_invoice,
    invoice_totals,
    list_invoices,
    update_invoice,
)
from .materials import (
    add_material_controls,
    create_material,
    delete_material_control,
    list_material_controls,
    list_materials,
    summarize_materials,
    update_material_control,
)

__all__ = [
    "HandoverNotFoundError",
    "HandoverPermissionError",
    "HandoverValidationError",
    "available_work_details",
    "create_bastp",
    "delete_bastp",
    "get_bastp",
    "list_bastps",
    "list_general_service_types",
    "status_counts",
    "sync_bastp_statuses",
    "update_bastp",
    "upload_bastp_document",
    "create_invoice",
    "delete_invoice",
    "get_invoice",
    "invoice_totals",
    "list_invoices",
    "update_invoice",
    "add_material_controls",
    "create_material",
    "delete_material_control",
    "list_material_controls",
    "list_materials",
    "summarize_materials",
    "update_material_control",
]
