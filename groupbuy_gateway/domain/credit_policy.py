"""Credit ledger policy - limit increases, utilization, overdue detection"""

from datetime import datetime
from typing import Iterable, List

from groupbuy_gateway.domain.models import (
    CreditTransactionStatus,
    CreditTransactionType,
    IncreaseDecision,
)

FULL_APPROVAL_TRUST_SCORE = 80
PARTIAL_APPROVAL_TRUST_SCORE = 60
PARTIAL_APPROVAL_RATIO = 0.5


def decide_limit_increase(
    trust_score: int,
    available_credit_cents: int,
    requested_cents: int,
) -> IncreaseDecision:
    """
    Map a buyer's trust score to the approved limit increase.

    Score bands:
    - 80+:     approve the full request
    - 60 - 80: approve up to half of the current limit
    - < 60:    reject

    Example:
        trust 70, limit ₹1000, request ₹1000 → approve ₹500
    """
    if trust_score >= FULL_APPROVAL_TRUST_SCORE:
        return IncreaseDecision(True, requested_cents, "Credit limit increase approved")

    if trust_score >= PARTIAL_APPROVAL_TRUST_SCORE:
        cap = round(available_credit_cents * PARTIAL_APPROVAL_RATIO)
        approved = min(requested_cents, cap)
        if approved > 0:
            return IncreaseDecision(True, approved, "Partial credit limit increase approved")
        return IncreaseDecision(False, 0, "No existing limit to extend partially")

    return IncreaseDecision(False, 0, "Credit score too low")


def utilization_ratio(used_credit_cents: int, available_credit_cents: int) -> float:
    """Used credit as a percentage of the limit (0 when there is no limit)"""
    if available_credit_cents <= 0:
        return 0.0
    return used_credit_cents / available_credit_cents * 100


def is_past_due(transaction, now: datetime) -> bool:
    """An ACTIVE credit usage whose due date has passed"""
    return (
        transaction.type == CreditTransactionType.CREDIT_USED
        and transaction.status == CreditTransactionStatus.ACTIVE
        and transaction.due_date is not None
        and transaction.due_date < now
    )


def select_overdue_to_settle(overdue: Iterable, repayment_cents: int) -> List:
    """
    Pick OVERDUE transactions a repayment clears, oldest due date first.

    Each selected transaction is covered in full by what is left of the
    repayment; a transaction too large for the remainder is skipped and
    smaller, later ones may still fit.
    """
    remaining = repayment_cents
    settled = []
    for txn in sorted(overdue, key=lambda t: (t.due_date is None, t.due_date)):
        if txn.amount_cents <= remaining:
            settled.append(txn)
            remaining -= txn.amount_cents
    return settled
