"""Work detail domain helpers."""

from .services import (
    WorkNotFoundError,
    WorkPermissionError,
    WorkValidationError,
    attach_work_permit,
    create_work_details,
    delete_work_detail,
    get_work_detail,
    list_work_details,
    parse_work_detail_payload,
    remove_work_permit,
    update_work_detail,
)
from .progress import (
    create_progress_report,
    delete_progress_report,
    list_progress_reports,
    progress_overview,
)
from .verification import (
    active_verification,
    delete_verification,
    list_verifications,
    verified_work_detail_ids,
    verify_work_detail,
)

__all__ = [
    "WorkNotFoundError",
    "WorkPermissionError",
    "WorkValidationError",
    "attach_work_permit",
    "create_work_details",
    "delete_work_detail",
    "get_work_detail",
    "list_work_details",
    "parse_work_detail_payload",
    "remove_work_permit",
    "update_work_detail",
    "create_progress_report",
    "delete_progress_report",
    "list_progress_reports",
    "progress_overview",
    "active_verification",
    "delete_verification",
    "list_verifications",
    "verified_work_detail_ids",
    "verify_work_detail",
]
