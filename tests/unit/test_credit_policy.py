"""Unit tests for credit limit policy and overdue handling"""

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from groupbuy_gateway.domain.credit_policy import (
    decide_limit_increase,
    is_past_due,
    select_overdue_to_settle,
    utilization_ratio,
)
from groupbuy_gateway.domain.models import CreditTransactionStatus, CreditTransactionType

NOW = datetime(2025, 3, 1, 12, 0)


def txn(amount_cents, due_in_days, status=CreditTransactionStatus.ACTIVE, type=CreditTransactionType.CREDIT_USED):
    return SimpleNamespace(
        amount_cents=amount_cents,
        due_date=NOW + timedelta(days=due_in_days),
        status=status.value,
        type=type.value,
    )


def test_high_trust_gets_full_request():
    decision = decide_limit_increase(trust_score=85, available_credit_cents=100_000, requested_cents=300_000)

    assert decision.approved is True
    assert decision.approved_cents == 300_000


def test_medium_trust_is_capped_at_half_the_limit():
    decision = decide_limit_increase(trust_score=70, available_credit_cents=100_000, requested_cents=100_000)

    assert decision.approved is True
    assert decision.approved_cents == 50_000


def test_medium_trust_small_request_is_granted_in_full():
    decision = decide_limit_increase(trust_score=60, available_credit_cents=100_000, requested_cents=20_000)

    assert decision.approved_cents == 20_000


def test_medium_trust_without_a_limit_is_rejected():
    decision = decide_limit_increase(trust_score=75, available_credit_cents=0, requested_cents=20_000)

    assert decision.approved is False
    assert decision.approved_cents == 0


@pytest.mark.parametrize("score", [0, 45, 59])
def test_low_trust_is_rejected(score):
    decision = decide_limit_increase(trust_score=score, available_credit_cents=100_000, requested_cents=10_000)

    assert decision.approved is False
    assert decision.approved_cents == 0
    assert decision.message == "Credit score too low"


def test_band_boundaries():
    assert decide_limit_increase(80, 100_000, 90_000).approved_cents == 90_000
    assert decide_limit_increase(79, 100_000, 90_000).approved_cents == 50_000


def test_utilization_ratio():
    assert utilization_ratio(25_000, 100_000) == pytest.approx(25.0)
    assert utilization_ratio(500, 0) == 0.0


def test_past_due_only_for_active_usage():
    assert is_past_due(txn(1_000, -1), NOW)
    assert not is_past_due(txn(1_000, 1), NOW)
    assert not is_past_due(txn(1_000, -1, status=CreditTransactionStatus.PAID), NOW)
    assert not is_past_due(txn(1_000, -1, type=CreditTransactionType.CREDIT_REPAID), NOW)


def test_overdue_settled_oldest_first_while_budget_lasts():
    oldest = txn(30_000, -10)
    middle = txn(50_000, -5)
    newest = txn(10_000, -1)

    settled = select_overdue_to_settle([newest, middle, oldest], 45_000)

    # 30k clears the oldest, 15k left: the 50k entry is skipped, the 10k fits
    assert settled == [oldest, newest]


def test_overdue_larger_than_repayment_is_left_open():
    assert select_overdue_to_settle([txn(80_000, -3)], 50_000) == []
