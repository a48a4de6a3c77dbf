"""Credit ledger - per-buyer trade credit, repayments and limit increases

``Buyer.used_credit_cents`` is a cache of the ledger: it always equals the
sum of CREDIT_USED amounts minus the sum of CREDIT_REPAID amounts. Every
write below changes the cache and the ledger in the same transaction.
"""

import logging
import uuid

from sqlalchemy.orm import Session

from groupbuy_gateway.config import settings
from groupbuy_gateway.domain.credit_policy import (
    decide_limit_increase,
    is_past_due,
    select_overdue_to_settle,
    utilization_ratio,
)
from groupbuy_gateway.domain.exceptions import (
    InvalidAmountError,
    NotFoundError,
    PaymentDeclinedError,
    UnavailableError,
)
from groupbuy_gateway.domain.models import (
    CreditIncreaseResult,
    CreditStatus,
    CreditTransactionStatus,
    CreditTransactionType,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
)
from groupbuy_gateway.infrastructure.clients.payment_gateway import PaymentGateway, SimulatedPaymentGateway
from groupbuy_gateway.infrastructure.database.models import Buyer, Order, Payment
from groupbuy_gateway.infrastructure.database.repositories import (
    BuyerRepository,
    CreditTransactionRepository,
    PaymentRepository,
)
from groupbuy_gateway.infrastructure.database.unit_of_work import UnitOfWork
from groupbuy_gateway.infrastructure.notifications.notifier import Notifier
from groupbuy_gateway.infrastructure.observability.metrics import (
    credit_increase_counter,
    credit_repayment_counter,
)
from groupbuy_gateway.utils.date_utils import Clock, days_from, utcnow

logger = logging.getLogger(__name__)

RECENT_TRANSACTIONS = 10


class CreditLedgerService:
    def __init__(
        self,
        db: Session,
        notifier: Notifier,
        gateway: PaymentGateway | None = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.uow = UnitOfWork(db, notifier)
        self.gateway = gateway or SimulatedPaymentGateway()
        self.clock = clock
        self.buyers = BuyerRepository(db)
        self.ledger = CreditTransactionRepository(db)
        self.payments = PaymentRepository(db)

    # ------------------------------------------------------------------
    # Ledger effects applied inside another operation's transaction
    # ------------------------------------------------------------------

    def record_usage(self, buyer: Buyer, order: Order) -> None:
        """Charge a PAY_LATER order to the buyer's credit line"""
        now = self.clock()
        self.ledger.append(
            buyer_id=buyer.id,
            order_id=order.id,
            amount_cents=order.total_amount_cents,
            type=CreditTransactionType.CREDIT_USED.value,
            status=CreditTransactionStatus.ACTIVE.value,
            description=f"Pay-later order #{str(order.id)[:8]}",
            due_date=days_from(now, settings.credit_term_days),
            created_at=now,
        )
        buyer.used_credit_cents += order.total_amount_cents

        if buyer.used_credit_cents > buyer.available_credit_cents:
            logger.warning(
                "Credit line exceeded",
                extra={
                    "buyer_id": str(buyer.id),
                    "used_credit_cents": buyer.used_credit_cents,
                    "available_credit_cents": buyer.available_credit_cents,
                },
            )

    def reconcile_order_amount(self, order: Order, new_amount_cents: int) -> int:
        """
        Bring a PAY_LATER order's credit usage in line with its new total.

        Returns the change applied to the buyer's used credit (may be negative).
        """
        if order.payment_method != PaymentMethod.PAY_LATER:
            return 0

        buyer = order.buyer
        usage = self.ledger.usage_for_order(order.id)
        if usage is None:
            # Usage never recorded; charge the full new amount
            now = self.clock()
            self.ledger.append(
                buyer_id=buyer.id,
                order_id=order.id,
                amount_cents=new_amount_cents,
                type=CreditTransactionType.CREDIT_USED.value,
                status=CreditTransactionStatus.ACTIVE.value,
                description=f"Pay-later order #{str(order.id)[:8]}",
                due_date=days_from(now, settings.credit_term_days),
                created_at=now,
            )
            delta = new_amount_cents
        else:
            delta = new_amount_cents - usage.amount_cents
            usage.amount_cents = new_amount_cents

        buyer.used_credit_cents += delta
        return delta

    def _mark_past_due(self, buyer_id: uuid.UUID) -> int:
        now = self.clock()
        marked = 0
        for txn in self.ledger.active_usage(buyer_id):
            if is_past_due(txn, now):
                txn.status = CreditTransactionStatus.OVERDUE.value
                marked += 1
        if marked:
            self.db.flush()
        return marked

    def _require_buyer(self, buyer_id: uuid.UUID) -> Buyer:
        buyer = self.buyers.get(buyer_id)
        if buyer is None:
            raise NotFoundError("Buyer not found")
        return buyer

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def status(self, buyer_id: uuid.UUID) -> CreditStatus:
        """Credit position, recent ledger entries and overdue exposure"""

        def work() -> CreditStatus:
            buyer = self._require_buyer(buyer_id)
            self._mark_past_due(buyer.id)
            overdue = self.ledger.overdue(buyer.id, self.clock())

            return CreditStatus(
                available_credit_cents=buyer.available_credit_cents,
                used_credit_cents=buyer.used_credit_cents,
                remaining_credit_cents=buyer.available_credit_cents - buyer.used_credit_cents,
                trust_score=buyer.trust_score,
                recent_transactions=self.ledger.recent(buyer.id, RECENT_TRANSACTIONS),
                overdue_transactions=overdue,
                overdue_amount_cents=sum(t.amount_cents for t in overdue),
                utilization_ratio=utilization_ratio(buyer.used_credit_cents, buyer.available_credit_cents),
            )

        return self.uow.run("credit.status", work)

    def repay(self, buyer_id: uuid.UUID, amount_cents: int, method: PaymentMethod = PaymentMethod.UPI) -> Payment:
        """
        Repay used credit.

        Flow:
        1. Validate amount against used credit, record a PROCESSING payment
        2. Capture the payment through the gateway
        3. On confirmation: complete the payment, append CREDIT_REPAID,
           reduce used credit, settle OVERDUE entries oldest-first
           On decline: store the payment as FAILED, ledger untouched
        """
        if amount_cents <= 0:
            raise InvalidAmountError("Repayment amount must be positive")
        if PaymentMethod(method) == PaymentMethod.PAY_LATER:
            raise InvalidAmountError("Used credit cannot be repaid with credit")

        def initiate() -> Payment:
            buyer = self._require_buyer(buyer_id)
            if amount_cents > buyer.used_credit_cents:
                raise InvalidAmountError("Repayment amount exceeds used credit")
            return self.payments.create_payment(
                buyer_id=buyer.id,
                amount_cents=amount_cents,
                type=PaymentType.CREDIT_REPAYMENT.value,
                method=PaymentMethod(method).value,
                status=PaymentStatus.PROCESSING.value,
                created_at=self.clock(),
            )

        payment = self.uow.run("credit.repay.initiate", initiate)
        payment_id = payment.id

        try:
            reference = self.gateway.capture(payment)
        except PaymentDeclinedError as e:
            self.uow.run("credit.repay.fail", lambda: self._fail_payment(payment_id, str(e)))
            credit_repayment_counter.labels(result="failed").inc()
            raise UnavailableError(f"Repayment could not be confirmed: {e}") from e

        def settle() -> Payment | None:
            payment = self.db.get(Payment, payment_id)
            buyer = self._require_buyer(payment.buyer_id)
            if payment.amount_cents > buyer.used_credit_cents:
                # Another repayment landed first
                return None

            now = self.clock()
            self._mark_past_due(buyer.id)

            payment.status = PaymentStatus.COMPLETED.value
            payment.reference = reference
            payment.paid_at = now

            self.ledger.append(
                buyer_id=buyer.id,
                amount_cents=payment.amount_cents,
                type=CreditTransactionType.CREDIT_REPAID.value,
                status=CreditTransactionStatus.PAID.value,
                description=f"Credit repayment - Payment #{str(payment.id)[:8]}",
                paid_at=now,
                created_at=now,
            )
            buyer.used_credit_cents -= payment.amount_cents

            for txn in select_overdue_to_settle(self.ledger.overdue(buyer.id, now), payment.amount_cents):
                txn.status = CreditTransactionStatus.PAID.value
                txn.paid_at = now

            return payment

        settled = self.uow.run("credit.repay.settle", settle)
        if settled is None:
            self.uow.run(
                "credit.repay.fail",
                lambda: self._fail_payment(payment_id, "Repayment exceeds outstanding credit"),
            )
            credit_repayment_counter.labels(result="failed").inc()
            raise InvalidAmountError("Repayment amount exceeds used credit")

        credit_repayment_counter.labels(result="completed").inc()
        logger.info(
            "Credit repaid",
            extra={"buyer_id": str(buyer_id), "payment_id": str(payment_id), "amount_cents": amount_cents},
        )
        return settled

    def _fail_payment(self, payment_id: uuid.UUID, reason: str) -> None:
        payment = self.db.get(Payment, payment_id)
        payment.status = PaymentStatus.FAILED.value
        payment.failure_reason = reason

    def request_increase(self, buyer_id: uuid.UUID, requested_cents: int, reason: str = "") -> CreditIncreaseResult:
        """Score a limit-increase request against the buyer's trust score"""
        if requested_cents <= 0:
            raise InvalidAmountError("Requested increase must be positive")

        def work() -> CreditIncreaseResult:
            buyer = self._require_buyer(buyer_id)
            decision = decide_limit_increase(buyer.trust_score, buyer.available_credit_cents, requested_cents)

            if decision.approved:
                buyer.available_credit_cents += decision.approved_cents
                self.ledger.append(
                    buyer_id=buyer.id,
                    amount_cents=decision.approved_cents,
                    type=CreditTransactionType.CREDIT_LIMIT_INCREASE.value,
                    status=CreditTransactionStatus.ACTIVE.value,
                    description=f"Credit limit increase: {reason}",
                    created_at=self.clock(),
                )

            return CreditIncreaseResult(
                status="APPROVED" if decision.approved else "REJECTED",
                requested_cents=requested_cents,
                approved_cents=decision.approved_cents,
                message=decision.message,
                new_credit_limit_cents=buyer.available_credit_cents,
            )

        result = self.uow.run("credit.increase", work)
        credit_increase_counter.labels(outcome=result.status.lower()).inc()
        logger.info(
            "Credit increase decided",
            extra={
                "buyer_id": str(buyer_id),
                "step": "credit_increase",
                "approval_outcome": result.status.lower(),
                "approved_cents": result.approved_cents,
            },
        )
        return result
