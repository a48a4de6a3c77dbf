"""Integration tests for the buyer credit ledger"""

import uuid
from datetime import timedelta

import pytest

from groupbuy_gateway.domain.exceptions import (
    InvalidAmountError,
    NotFoundError,
    PaymentDeclinedError,
    UnavailableError,
)
from groupbuy_gateway.domain.models import (
    CreditTransactionStatus,
    CreditTransactionType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
)
from groupbuy_gateway.infrastructure.database.models import CreditTransaction, Payment
from groupbuy_gateway.services.credit import CreditLedgerService


class DecliningGateway:
    def capture(self, payment) -> str:
        raise PaymentDeclinedError("Issuer unavailable")


def ledger_balance(db, buyer_id) -> int:
    rows = db.query(CreditTransaction).filter(CreditTransaction.buyer_id == buyer_id).all()
    used = sum(r.amount_cents for r in rows if r.type == CreditTransactionType.CREDIT_USED)
    repaid = sum(r.amount_cents for r in rows if r.type == CreditTransactionType.CREDIT_REPAID)
    return used - repaid


def test_scenario_d_repay_more_than_used_then_all(order_service, credit_service, make_buyer, line, db):
    buyer = make_buyer()
    order_service.create(buyer.id, [line("onion", 1, 500)], PaymentMethod.PAY_LATER)

    with pytest.raises(InvalidAmountError):
        credit_service.repay(buyer.id, 600)

    payment = credit_service.repay(buyer.id, 500)

    db.refresh(buyer)
    assert buyer.used_credit_cents == 0
    assert ledger_balance(db, buyer.id) == 0
    assert payment.status == PaymentStatus.COMPLETED
    assert payment.type == PaymentType.CREDIT_REPAYMENT
    assert payment.reference.startswith("pay_")
    assert payment.paid_at is not None


def test_repay_rejects_non_positive_amount(credit_service, make_buyer):
    with pytest.raises(InvalidAmountError):
        credit_service.repay(make_buyer().id, 0)


def test_repay_rejects_credit_as_method(order_service, credit_service, make_buyer, line, db):
    buyer = make_buyer()
    order_service.create(buyer.id, [line("onion", 1, 500)], PaymentMethod.PAY_LATER)

    with pytest.raises(InvalidAmountError):
        credit_service.repay(buyer.id, 500, method=PaymentMethod.PAY_LATER)

    db.refresh(buyer)
    assert buyer.used_credit_cents == 500
    assert db.query(Payment).filter(Payment.type == PaymentType.CREDIT_REPAYMENT.value).count() == 0


def test_cancelling_repaid_order_leaves_credit_in_buyers_favour(
    order_service, credit_service, make_buyer, line, db
):
    buyer = make_buyer()
    order = order_service.create(buyer.id, [line("onion", 10, 3_000)], PaymentMethod.PAY_LATER)
    credit_service.repay(buyer.id, 30_000)

    order_service.update_status(order.id, OrderStatus.CANCELLED)

    db.refresh(buyer)
    assert buyer.used_credit_cents == -30_000
    assert ledger_balance(db, buyer.id) == -30_000

    # The balance offsets the next purchase on credit
    order_service.create(buyer.id, [line("onion", 5, 2_000)], PaymentMethod.PAY_LATER)
    db.refresh(buyer)
    assert buyer.used_credit_cents == -20_000
    assert ledger_balance(db, buyer.id) == -20_000


def test_payment_decline_is_an_unavailable_error():
    assert issubclass(PaymentDeclinedError, UnavailableError)
    assert PaymentDeclinedError("Issuer unavailable").kind == "Unavailable"


def test_repay_unknown_buyer(credit_service):
    with pytest.raises(NotFoundError):
        credit_service.repay(uuid.uuid4(), 100)


def test_declined_repayment_leaves_ledger_untouched(order_service, make_buyer, line, db, notifier, clock):
    buyer = make_buyer()
    order_service.create(buyer.id, [line("onion", 10, 3_000)], PaymentMethod.PAY_LATER)
    service = CreditLedgerService(db, notifier, gateway=DecliningGateway(), clock=clock)

    with pytest.raises(UnavailableError):
        service.repay(buyer.id, 10_000)

    db.refresh(buyer)
    assert buyer.used_credit_cents == 30_000
    assert ledger_balance(db, buyer.id) == 30_000

    payment = db.query(Payment).filter(Payment.type == PaymentType.CREDIT_REPAYMENT.value).one()
    assert payment.status == PaymentStatus.FAILED
    assert payment.failure_reason == "Issuer unavailable"


def test_status_marks_overdue_and_summarises(order_service, credit_service, make_buyer, line, clock):
    buyer = make_buyer(available_credit_cents=200_000, trust_score=64)
    order_service.create(buyer.id, [line("onion", 10, 3_000)], PaymentMethod.PAY_LATER)
    clock.advance(days=3)
    order_service.create(buyer.id, [line("oil", 2, 10_000)], PaymentMethod.PAY_LATER)
    clock.advance(days=5)  # first usage is 8 days old, due after 7

    status = credit_service.status(buyer.id)

    assert status.available_credit_cents == 200_000
    assert status.used_credit_cents == 50_000
    assert status.remaining_credit_cents == 150_000
    assert status.trust_score == 64
    assert status.utilization_ratio == pytest.approx(25.0)
    assert len(status.recent_transactions) == 2
    assert [t.amount_cents for t in status.overdue_transactions] == [30_000]
    assert status.overdue_transactions[0].status == CreditTransactionStatus.OVERDUE
    assert status.overdue_amount_cents == 30_000


def test_status_without_limit_has_zero_utilization(credit_service, make_buyer):
    status = credit_service.status(make_buyer(available_credit_cents=0).id)

    assert status.utilization_ratio == 0.0
    assert status.recent_transactions == []


def test_recent_transactions_are_capped_at_ten(order_service, credit_service, make_buyer, line, clock):
    buyer = make_buyer()
    for _ in range(12):
        order_service.create(buyer.id, [line("onion", 1, 1_000)], PaymentMethod.PAY_LATER)
        clock.advance(minutes=1)

    assert len(credit_service.status(buyer.id).recent_transactions) == 10


def test_repayment_settles_overdue_oldest_first(order_service, credit_service, make_buyer, line, clock, db):
    buyer = make_buyer()
    for quantity in (10, 20, 5):  # 30_000, 60_000, 15_000
        order_service.create(buyer.id, [line("onion", quantity, 3_000)], PaymentMethod.PAY_LATER)
        clock.advance(days=1)
    clock.advance(days=8)

    credit_service.repay(buyer.id, 50_000)

    usage = (
        db.query(CreditTransaction)
        .filter(CreditTransaction.type == CreditTransactionType.CREDIT_USED.value)
        .order_by(CreditTransaction.due_date)
        .all()
    )
    assert [(t.amount_cents, t.status) for t in usage] == [
        (30_000, CreditTransactionStatus.PAID),
        (60_000, CreditTransactionStatus.OVERDUE),
        (15_000, CreditTransactionStatus.PAID),
    ]
    db.refresh(buyer)
    assert buyer.used_credit_cents == 55_000
    assert ledger_balance(db, buyer.id) == 55_000


def test_scenario_e_medium_trust_increase(credit_service, make_buyer, db):
    buyer = make_buyer(trust_score=70, available_credit_cents=1_000)

    result = credit_service.request_increase(buyer.id, 1_000, "Festival stock")

    assert result.status == "APPROVED"
    assert result.approved_cents == 500
    assert result.new_credit_limit_cents == 1_500
    db.refresh(buyer)
    assert buyer.available_credit_cents == 1_500

    entry = db.query(CreditTransaction).filter(CreditTransaction.buyer_id == buyer.id).one()
    assert entry.type == CreditTransactionType.CREDIT_LIMIT_INCREASE
    assert entry.status == CreditTransactionStatus.ACTIVE
    assert entry.amount_cents == 500


def test_low_trust_increase_rejected(credit_service, make_buyer, db):
    buyer = make_buyer(trust_score=40, available_credit_cents=100_000)

    result = credit_service.request_increase(buyer.id, 50_000)

    assert result.status == "REJECTED"
    assert result.approved_cents == 0
    assert result.new_credit_limit_cents == 100_000
    assert db.query(CreditTransaction).count() == 0


def test_increase_validation(credit_service, make_buyer):
    with pytest.raises(InvalidAmountError):
        credit_service.request_increase(make_buyer().id, 0)
    with pytest.raises(NotFoundError):
        credit_service.request_increase(uuid.uuid4(), 1_000)


def test_usage_due_date_follows_credit_term(order_service, make_buyer, line, db, clock):
    buyer = make_buyer()
    order_service.create(buyer.id, [line("oil", 1, 12_000)], PaymentMethod.PAY_LATER)

    usage = db.query(CreditTransaction).one()
    assert usage.due_date == clock() + timedelta(days=7)
    assert usage.status == CreditTransactionStatus.ACTIVE
