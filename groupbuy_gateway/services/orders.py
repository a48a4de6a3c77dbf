"""Order placement and fulfilment tracking"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from groupbuy_gateway.config import settings
from groupbuy_gateway.domain.exceptions import InvalidAmountError, InvalidStateError, NotFoundError
from groupbuy_gateway.domain.models import (
    BidStatus,
    GroupStatus,
    OrderLine,
    OrderStatus,
    OrderType,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
)
from groupbuy_gateway.infrastructure.database.models import Buyer, BuyingGroup, Order
from groupbuy_gateway.infrastructure.database.repositories import (
    BidRepository,
    BuyerRepository,
    GroupRepository,
    OrderRepository,
    PaymentRepository,
    ProductRepository,
    SupplierRepository,
)
from groupbuy_gateway.infrastructure.database.unit_of_work import UnitOfWork
from groupbuy_gateway.infrastructure.notifications.notifier import Notifier
from groupbuy_gateway.infrastructure.observability.logging import log_transition
from groupbuy_gateway.infrastructure.observability.metrics import record_bid_outcome
from groupbuy_gateway.services.credit import CreditLedgerService
from groupbuy_gateway.utils.date_utils import Clock, days_from, utcnow

logger = logging.getLogger(__name__)

MAX_TRUST_SCORE = 100

# DELIVERED and CANCELLED are terminal
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.DISPATCHED, OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DISPATCHED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
}


def validate_lines(lines: List[OrderLine]) -> None:
    if not lines:
        raise InvalidAmountError("Order must contain at least one item")
    for line in lines:
        if line.quantity <= 0:
            raise InvalidAmountError("Item quantity must be positive")
        if line.price_per_unit_cents < 0:
            raise InvalidAmountError("Item price cannot be negative")


class OrderService:
    def __init__(self, db: Session, notifier: Notifier, clock: Clock = utcnow):
        self.db = db
        self.uow = UnitOfWork(db, notifier)
        self.clock = clock
        self.credit = CreditLedgerService(db, notifier, clock=clock)
        self.buyers = BuyerRepository(db)
        self.suppliers = SupplierRepository(db)
        self.products = ProductRepository(db)
        self.groups = GroupRepository(db)
        self.orders = OrderRepository(db)
        self.payments = PaymentRepository(db)
        self.bids = BidRepository(db)

    def get(self, order_id: uuid.UUID) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    def _require_products(self, lines: List[OrderLine]) -> None:
        wanted = {line.product_id for line in lines}
        found = {product.id for product in self.products.get_many(wanted)}
        if wanted - found:
            raise NotFoundError("Product not found")

    def place(
        self,
        buyer: Buyer,
        lines: List[OrderLine],
        payment_method: PaymentMethod,
        group: Optional[BuyingGroup] = None,
        notes: Optional[str] = None,
        pickup_time: Optional[datetime] = None,
    ) -> Order:
        """
        Persist an order with its payment and credit effects.

        Runs inside the caller's transaction; emits nothing.
        """
        validate_lines(lines)
        self._require_products(lines)

        now = self.clock()
        method = PaymentMethod(payment_method)
        order = self.orders.create_order(
            lines,
            buyer_id=buyer.id,
            group_id=group.id if group is not None else None,
            order_type=(OrderType.GROUP if group is not None else OrderType.INDIVIDUAL).value,
            status=OrderStatus.PENDING.value,
            payment_method=method.value,
            notes=notes,
            pickup_time=pickup_time,
            created_at=now,
        )

        self.payments.create_payment(
            buyer_id=buyer.id,
            order_id=order.id,
            amount_cents=order.total_amount_cents,
            type=PaymentType.ORDER_PAYMENT.value,
            method=method.value,
            status=PaymentStatus.PENDING.value,
            due_date=days_from(now, settings.credit_term_days) if method == PaymentMethod.PAY_LATER else None,
            created_at=now,
        )

        if method == PaymentMethod.PAY_LATER:
            self.credit.record_usage(buyer, order)

        return order

    def create(
        self,
        buyer_id: uuid.UUID,
        items: List[OrderLine],
        payment_method: PaymentMethod = PaymentMethod.CASH,
        group_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
        pickup_time: Optional[datetime] = None,
    ) -> Order:
        """
        Place an individual order, or a member's order inside a forming group.

        Any order attached to a group is a GROUP order regardless of how the
        caller labelled it.
        """

        def work() -> Order:
            buyer = self.buyers.get(buyer_id)
            if buyer is None:
                raise NotFoundError("Buyer not found")

            group = None
            if group_id is not None:
                group = self.groups.get(group_id)
                if group is None:
                    raise NotFoundError("Group not found")
                if group.status != GroupStatus.FORMING:
                    raise InvalidStateError("Group is no longer accepting orders")
                if self.groups.get_membership(group.id, buyer.id) is None:
                    raise InvalidStateError("Buyer is not a member of this group")

            order = self.place(buyer, items, payment_method, group, notes, pickup_time)

            if group is not None:
                self.uow.notify(
                    group.id,
                    "new_order_added",
                    {
                        "order_id": str(order.id),
                        "buyer_name": buyer.name,
                        "total_amount_cents": order.total_amount_cents,
                    },
                )
            return order

        order = self.uow.run("order.create", work)
        log_transition("order", order.id, OrderStatus.PENDING.value, buyer_id=str(buyer_id))
        return order

    def add_items(self, order_id: uuid.UUID, items: List[OrderLine]) -> Order:
        """Append lines to a PENDING order; payment and credit follow the new total"""

        def work() -> Order:
            order = self.get(order_id)
            if order.status != OrderStatus.PENDING:
                raise InvalidStateError("Items can only be added to a pending order")

            validate_lines(items)
            self._require_products(items)
            self.orders.add_items(order, items)

            payment = self.payments.pending_for_order(order.id)
            if payment is not None:
                payment.amount_cents = order.total_amount_cents
            self.credit.reconcile_order_amount(order, order.total_amount_cents)
            return order

        return self.uow.run("order.add_items", work)

    def update_status(
        self,
        order_id: uuid.UUID,
        status: OrderStatus,
        supplier_id: Optional[uuid.UUID] = None,
    ) -> Order:
        """
        Move an order along its fulfilment path.

        DELIVERED credits the buyer with savings and trust. CANCELLED releases
        any credit the order held, fails its pending payment and rejects the
        bids still waiting on it.
        """
        target = OrderStatus(status)

        def work() -> Order:
            order = self.get(order_id)
            current = OrderStatus(order.status)
            if target not in ALLOWED_TRANSITIONS.get(current, set()):
                raise InvalidStateError(f"Cannot move order from {current.value} to {target.value}")

            if supplier_id is not None:
                if self.suppliers.get(supplier_id) is None:
                    raise NotFoundError("Supplier not found")
                order.supplier_id = supplier_id

            order.status = target.value

            if target == OrderStatus.DELIVERED:
                self._apply_delivery(order)
            elif target == OrderStatus.CANCELLED:
                self._release(order)

            if order.group_id is not None:
                self.uow.notify(
                    order.group_id,
                    "order_status_updated",
                    {"order_id": str(order.id), "status": target.value},
                )
            return order

        order = self.uow.run("order.update_status", work)
        log_transition("order", order.id, target.value)
        return order

    def _apply_delivery(self, order: Order) -> None:
        order.delivered_at = self.clock()
        buyer = order.buyer
        buyer.total_savings_cents += round(order.total_amount_cents * settings.delivered_savings_rate)
        buyer.trust_score = min(MAX_TRUST_SCORE, buyer.trust_score + settings.delivered_trust_bonus)

    def _release(self, order: Order) -> None:
        self.credit.reconcile_order_amount(order, 0)

        payment = self.payments.pending_for_order(order.id)
        if payment is not None:
            payment.status = PaymentStatus.FAILED.value
            payment.failure_reason = "Order cancelled"

        # Group bids are settled across the remaining orders, leave them open
        rejected = 0
        for bid in self.bids.list_pending_for_orders([order.id]):
            if not bid.is_group_bid:
                bid.status = BidStatus.REJECTED.value
                rejected += 1
        record_bid_outcome("rejected", rejected)
