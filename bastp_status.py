"""BASTP handover status machine.

A handover document moves strictly forward through
``DRAFT -> VERIFIED -> READY_FOR_INVOICE -> INVOICED``. The status is
derived from observed data (verification coverage, an uploaded signed
document, an invoice referencing the BASTP) and is recomputed whenever the
list of BASTPs is fetched.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Callable, Optional

from models import BASTPStatus


@dataclass(frozen=True)
class BASTPState:
    id: int
    status: BASTPStatus
    work_detail_ids: tuple[int, ...] = ()
    storage_path: Optional[str] = None

    @classmethod
    def from_record(cls, record: Any) -> "BASTPState":
        if isinstance(record, Mapping):
            get = record.get
        else:
            def get(name, default=None):
                return getattr(record, name, default)

        work_detail_ids = get("work_detail_ids", None) or ()
        return cls(
            id=get("id"),
            status=BASTPStatus(get("status") or BASTPStatus.DRAFT.value),
            work_detail_ids=tuple(work_detail_ids),
            storage_path=get("storage_path"),
        )


@dataclass(frozen=True)
class TransitionContext:
    verified_work_detail_ids: frozenset = field(default_factory=frozenset)
    invoiced_bastp_ids: frozenset = field(default_factory=frozenset)


@dataclass(frozen=True)
class Transition:
    bastp_id: int
    from_status: BASTPStatus
    to_status: BASTPStatus


def _from_draft(bastp: BASTPState, context: TransitionContext) -> BASTPStatus:
    ids = [work_detail_id for work_detail_id in bastp.work_detail_ids if work_detail_id is not None]
    if ids and all(work_detail_id in context.verified_work_detail_ids for work_detail_id in ids):
        return BASTPStatus.VERIFIED
    return BASTPStatus.DRAFT


def _from_verified(bastp: BASTPState, context: TransitionContext) -> BASTPStatus:
    if bastp.storage_path and str(bastp.storage_path).strip():
        return BASTPStatus.READY_FOR_INVOICE
    return BASTPStatus.VERIFIED


def _from_ready_for_invoice(bastp: BASTPState, context: TransitionContext) -> BASTPStatus:
    if bastp.id in context.invoiced_bastp_ids:
        return BASTPStatus.INVOICED
    return BASTPStatus.READY_FOR_INVOICE


def _from_invoiced(bastp: BASTPState, context: TransitionContext) -> BASTPStatus:
    return BASTPStatus.INVOICED


_RULES: dict[BASTPStatus, Callable[[BASTPState, TransitionContext], BASTPStatus]] = {
    BASTPStatus.DRAFT: _from_draft,
    BASTPStatus.VERIFIED: _from_verified,
    BASTPStatus.READY_FOR_INVOICE: _from_ready_for_invoice,
    BASTPStatus.INVOICED: _from_invoiced,
}

_missing_rules = set(BASTPStatus) - set(_RULES)
if _missing_rules:  # pragma: no cover - guards future enum additions
    raise RuntimeError(f"BASTP statuses without a transition rule: {sorted(_missing_rules)}")

_ORDER = list(BASTPStatus)


def evaluate_transition(bastp: BASTPState, context: TransitionContext) -> BASTPStatus:
    """Return the status ``bastp`` moves to after one evaluation step."""

    next_status = _RULES[bastp.status](bastp, context)
    if _ORDER.index(next_status) < _ORDER.index(bastp.status):
        raise RuntimeError(
            f"BASTP {bastp.id} cannot move backwards from {bastp.status.value} to {next_status.value}"
        )
    return next_status


def settle(bastp: BASTPState, context: TransitionContext) -> list[Transition]:
    """Apply single steps until the status stops changing.

    Each returned transition corresponds to exactly one status write.
    """

    transitions: list[Transition] = []
    current = bastp
    while True:
        next_status = evaluate_transition(current, context)
        if next_status == current.status:
            return transitions
        transitions.append(Transition(current.id, current.status, next_status))
        current = replace(current, status=next_status)


def reconcile(
    bastps: Iterable[BASTPState], context: TransitionContext
) -> tuple[list[BASTPState], list[Transition]]:
    """Settle every BASTP, returning new states and the writes to perform."""

    states: list[BASTPState] = []
    writes: list[Transition] = []
    for bastp in bastps:
        transitions = settle(bastp, context)
        if transitions:
            writes.extend(transitions)
            bastp = replace(bastp, status=transitions[-1].to_status)
        states.append(bastp)
    return states, writes


def _as_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def compute_total_days(start_date, close_date) -> int:
    """Inclusive number of days a general service ran; 0 when unknown or inverted."""

    start = _as_date(start_date)
    close = _as_date(close_date)
    if start is None or close is None or close < start:
        return 0
    return (close - start).days + 1


__all__ = [
    "BASTPState",
    "Transition",
    "TransitionContext",
    "compute_total_days",
    "evaluate_transition",
    "reconcile",
    "settle",
]
