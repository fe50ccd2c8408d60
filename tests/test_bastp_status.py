from datetime import date

import pytest

from bastp_status import (
    BASTPState,
    Transition,
    TransitionContext,
    compute_total_days,
    evaluate_transition,
    reconcile,
    settle,
)
from models import BASTPStatus


def _state(status, work_detail_ids=(1, 2), storage_path=None, bastp_id=10):
    return BASTPState(
        id=bastp_id,
        status=status,
        work_detail_ids=tuple(work_detail_ids),
        storage_path=storage_path,
    )


def test_draft_stays_draft_until_every_detail_is_verified():
    context = TransitionContext(verified_work_detail_ids=frozenset({1}))
    assert evaluate_transition(_state(BASTPStatus.DRAFT), context) is BASTPStatus.DRAFT


def test_draft_without_work_details_never_verifies():
    context = TransitionContext(verified_work_detail_ids=frozenset({1, 2}))
    assert evaluate_transition(_state(BASTPStatus.DRAFT, ()), context) is BASTPStatus.DRAFT


def test_invoice_cannot_pull_an_empty_draft_forward():
    context = TransitionContext(
        verified_work_detail_ids=frozenset({1, 2}),
        invoiced_bastp_ids=frozenset({10}),
    )
    state = _state(BASTPStatus.DRAFT, (), storage_path="bastp-documents/signed.pdf")
    assert settle(state, context) == []
    assert evaluate_transition(state, context) is BASTPStatus.DRAFT


def test_fully_verified_draft_becomes_verified():
    context = TransitionContext(verified_work_detail_ids=frozenset({1, 2, 3}))
    assert evaluate_transition(_state(BASTPStatus.DRAFT), context) is BASTPStatus.VERIFIED


def test_verified_needs_a_document_to_be_ready():
    context = TransitionContext()
    assert evaluate_transition(_state(BASTPStatus.VERIFIED), context) is BASTPStatus.VERIFIED
    assert (
        evaluate_transition(_state(BASTPStatus.VERIFIED, storage_path="   "), context)
        is BASTPStatus.VERIFIED
    )
    assert (
        evaluate_transition(_state(BASTPStatus.VERIFIED, storage_path="bastp-documents/a.pdf"), context)
        is BASTPStatus.READY_FOR_INVOICE
    )


def test_ready_becomes_invoiced_once_an_invoice_exists():
    context = TransitionContext(invoiced_bastp_ids=frozenset({10}))
    assert evaluate_transition(_state(BASTPStatus.READY_FOR_INVOICE), context) is BASTPStatus.INVOICED


def test_invoiced_is_terminal():
    assert evaluate_transition(_state(BASTPStatus.INVOICED), TransitionContext()) is BASTPStatus.INVOICED


def test_statuses_never_move_backwards_when_evidence_disappears():
    # Verification removed and document gone: the stored status still holds.
    state = _state(BASTPStatus.READY_FOR_INVOICE)
    assert settle(state, TransitionContext()) == []


def test_settle_walks_every_step_to_a_fixed_point():
    context = TransitionContext(
        verified_work_detail_ids=frozenset({1, 2}),
        invoiced_bastp_ids=frozenset({10}),
    )
    state = _state(BASTPStatus.DRAFT, storage_path="bastp-documents/a.pdf")

    assert settle(state, context) == [
        Transition(10, BASTPStatus.DRAFT, BASTPStatus.VERIFIED),
        Transition(10, BASTPStatus.VERIFIED, BASTPStatus.READY_FOR_INVOICE),
        Transition(10, BASTPStatus.READY_FOR_INVOICE, BASTPStatus.INVOICED),
    ]


def test_reconcile_is_idempotent():
    context = TransitionContext(verified_work_detail_ids=frozenset({1, 2}))
    states, writes = reconcile(
        [
            _state(BASTPStatus.DRAFT, bastp_id=1),
            _state(BASTPStatus.DRAFT, (3,), bastp_id=2),
        ],
        context,
    )
    assert [state.status for state in states] == [BASTPStatus.VERIFIED, BASTPStatus.DRAFT]
    assert writes == [Transition(1, BASTPStatus.DRAFT, BASTPStatus.VERIFIED)]

    again, second_writes = reconcile(states, context)
    assert again == states
    assert second_writes == []


def test_from_record_accepts_mappings():
    state = BASTPState.from_record({"id": 4, "status": "VERIFIED", "work_detail_ids": [5, 6]})
    assert state.status is BASTPStatus.VERIFIED
    assert state.work_detail_ids == (5, 6)


@pytest.mark.parametrize(
    "start, close, expected",
    [
        (date(2024, 1, 1), date(2024, 1, 1), 1),
        (date(2024, 1, 1), date(2024, 1, 10), 10),
        ("2024-02-27", "2024-03-01", 4),
        (date(2024, 1, 10), date(2024, 1, 1), 0),
        (None, date(2024, 1, 1), 0),
        ("not-a-date", "2024-01-01", 0),
    ],
)
def test_compute_total_days(start, close, expected):
    assert compute_total_days(start, close) == expected
