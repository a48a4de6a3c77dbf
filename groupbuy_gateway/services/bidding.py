"""Bidding and settlement

A bid targets either one order or a whole confirmed group. Accepting a bid
is the settlement cascade: bid, order(s), payment(s), credit ledger, sibling
bids, group and supplier all change in one transaction.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from groupbuy_gateway.config import settings
from groupbuy_gateway.domain.allocation import split_pro_rata
from groupbuy_gateway.domain.bidding import effective_status, is_expired, rank_bids
from groupbuy_gateway.domain.consolidation import consolidate_orders
from groupbuy_gateway.domain.exceptions import (
    DeadlinePassedError,
    DuplicateBidError,
    InvalidAmountError,
    InvalidStateError,
    NotFoundError,
)
from groupbuy_gateway.domain.models import (
    BidStatus,
    BidTarget,
    GroupStatus,
    GroupTarget,
    OpenDemand,
    OrderStatus,
    OrderTarget,
    PaymentStatus,
    PaymentType,
)
from groupbuy_gateway.infrastructure.database.models import Bid, BuyingGroup, Order, Supplier
from groupbuy_gateway.infrastructure.database.repositories import (
    BidRepository,
    GroupRepository,
    OrderRepository,
    PaymentRepository,
    SupplierRepository,
)
from groupbuy_gateway.infrastructure.database.unit_of_work import UnitOfWork
from groupbuy_gateway.infrastructure.notifications.notifier import Notifier
from groupbuy_gateway.infrastructure.observability.logging import log_settlement, log_transition
from groupbuy_gateway.infrastructure.observability.metrics import (
    bid_placed_counter,
    group_transition_counter,
    record_bid_outcome,
    record_settlement,
)
from groupbuy_gateway.services.credit import CreditLedgerService
from groupbuy_gateway.services.groups import live_orders
from groupbuy_gateway.utils.date_utils import Clock, hours_from, utcnow

logger = logging.getLogger(__name__)


@dataclass
class Settlement:
    """What an accepted bid changed"""

    bid: Bid
    order_ids: List[uuid.UUID] = field(default_factory=list)
    credit_delta_cents: int = 0
    rejected: int = 0


def bid_channel(bid: Bid) -> Optional[uuid.UUID]:
    """Group channel interested in a bid, if any"""
    if bid.group_id is not None:
        return bid.group_id
    return bid.order.group_id


def settleable_as_group(orders: List[Order]) -> bool:
    """A group is settled whole only while none of its orders has been settled on its own"""
    return bool(orders) and all(order.status == OrderStatus.PENDING for order in orders)


class BiddingService:
    def __init__(self, db: Session, notifier: Notifier, clock: Clock = utcnow):
        self.db = db
        self.uow = UnitOfWork(db, notifier)
        self.clock = clock
        self.credit = CreditLedgerService(db, notifier, clock=clock)
        self.suppliers = SupplierRepository(db)
        self.groups = GroupRepository(db)
        self.orders = OrderRepository(db)
        self.payments = PaymentRepository(db)
        self.bids = BidRepository(db)

    def get(self, bid_id: uuid.UUID) -> Bid:
        bid = self.bids.get(bid_id)
        if bid is None:
            raise NotFoundError("Bid not found")
        return bid

    def _require_supplier(self, supplier_id: uuid.UUID) -> Supplier:
        supplier = self.suppliers.get(supplier_id)
        if supplier is None:
            raise NotFoundError("Supplier not found")
        return supplier

    # ------------------------------------------------------------------
    # Placing and rejecting
    # ------------------------------------------------------------------

    def place_bid(
        self,
        target: BidTarget,
        supplier_id: uuid.UUID,
        total_amount_cents: int,
        delivery_time: Optional[datetime] = None,
        message: Optional[str] = None,
        validity_hours: Optional[float] = None,
    ) -> Bid:
        """
        Offer a price for an order or a confirmed group.

        A group bid is anchored on the group's first order and tagged with
        the group id; a supplier gets one bid per order and one per group.
        """
        if total_amount_cents <= 0:
            raise InvalidAmountError("Bid amount must be positive")
        hours = validity_hours if validity_hours is not None else settings.default_bid_validity_hours
        if hours <= 0:
            raise InvalidAmountError("Bid validity must be positive")

        def work() -> Bid:
            supplier = self._require_supplier(supplier_id)
            now = self.clock()

            if isinstance(target, GroupTarget):
                group = self.groups.get(target.group_id)
                if group is None:
                    raise NotFoundError("Group not found")
                if group.status != GroupStatus.CONFIRMED:
                    raise InvalidStateError("Group is not open for bids")
                if group.target_pickup_time < now:
                    raise DeadlinePassedError("Group pickup time has passed")
                orders = live_orders(group)
                if not orders:
                    raise InvalidStateError("Group has no orders to bid on")
                if not settleable_as_group(orders):
                    raise InvalidStateError("Some group orders have already been settled")
                if self.bids.supplier_has_bid_in(supplier.id, [o.id for o in orders], group.id):
                    raise DuplicateBidError("You have already bid on this group")
                anchor, channel = orders[0], group.id
            else:
                anchor = self.orders.get(target.order_id)
                if anchor is None:
                    raise NotFoundError("Order not found")
                group_open = anchor.group is not None and anchor.group.status == GroupStatus.CONFIRMED
                if anchor.status != OrderStatus.PENDING and not group_open:
                    raise InvalidStateError("Order is not open for bids")
                if self.bids.find(supplier.id, anchor.id) is not None:
                    raise DuplicateBidError("You have already bid on this order")
                channel = anchor.group_id

            bid = self.bids.create_bid(
                supplier_id=supplier.id,
                order_id=anchor.id,
                group_id=target.group_id if isinstance(target, GroupTarget) else None,
                total_amount_cents=total_amount_cents,
                message=message,
                delivery_time=delivery_time,
                valid_until=hours_from(now, hours),
                created_at=now,
            )

            if channel is not None:
                self.uow.notify(
                    channel,
                    "new_bid_received",
                    {
                        "bid_id": str(bid.id),
                        "supplier_name": supplier.business_name,
                        "total_amount_cents": total_amount_cents,
                        "is_group_bid": bid.is_group_bid,
                    },
                )
            return bid

        bid = self.uow.run(
            "bid.place",
            work,
            on_integrity_error=lambda: DuplicateBidError("You have already bid on this target"),
        )
        bid_placed_counter.labels(target="group" if isinstance(target, GroupTarget) else "order").inc()
        log_transition("bid", bid.id, BidStatus.PENDING.value, supplier_id=str(supplier_id))
        return bid

    def reject_bid(self, bid_id: uuid.UUID) -> Bid:
        def work() -> Bid:
            bid = self.get(bid_id)
            if effective_status(bid, self.clock()) != BidStatus.PENDING:
                raise InvalidStateError("Only pending bids can be rejected")

            bid.status = BidStatus.REJECTED.value
            channel = bid_channel(bid)
            if channel is not None:
                self.uow.notify(channel, "bid_rejected", {"bid_id": str(bid.id)})
            return bid

        bid = self.uow.run("bid.reject", work)
        record_bid_outcome("rejected")
        log_transition("bid", bid.id, BidStatus.REJECTED.value)
        return bid

    # ------------------------------------------------------------------
    # Settlement cascade
    # ------------------------------------------------------------------

    def accept_bid(self, bid_id: uuid.UUID) -> Bid:
        """
        Accept a bid and settle what it targets.

        Order bid: the order takes the supplier and the bid amount.
        Group bid: every live order of the group takes the supplier and a
        pro-rata share of the bid amount; the group becomes ORDERED.

        In both cases payments and credit usage follow the new amounts and
        every other pending bid on the settled orders is rejected.
        """

        def work() -> Settlement:
            bid = self.get(bid_id)
            if bid.status != BidStatus.PENDING or is_expired(bid, self.clock()):
                raise InvalidStateError("Bid is no longer pending")

            bid.status = BidStatus.ACCEPTED.value
            settlement = Settlement(bid=bid)

            if bid.is_group_bid:
                self._settle_group(bid, settlement)
            else:
                self._settle_order(bid, settlement)

            supplier = bid.supplier
            supplier.total_orders += 1

            channel = bid_channel(bid)
            if channel is not None:
                self.uow.notify(
                    channel,
                    "bid_accepted",
                    {
                        "bid_id": str(bid.id),
                        "supplier_name": supplier.business_name,
                        "total_amount_cents": bid.total_amount_cents,
                    },
                )
            return settlement

        settlement = self.uow.run("bid.accept", work)
        bid = settlement.bid

        record_settlement(bid.total_amount_cents)
        record_bid_outcome("rejected", settlement.rejected)
        log_settlement(
            bid.id,
            bid.supplier_id,
            settlement.order_ids,
            bid.total_amount_cents,
            settlement.credit_delta_cents,
        )
        if bid.is_group_bid:
            group_transition_counter.labels(status=GroupStatus.ORDERED.value).inc()
            log_transition("group", bid.group_id, GroupStatus.ORDERED.value, bid_id=str(bid.id))
        return bid

    def _settle_order(self, bid: Bid, settlement: Settlement) -> None:
        order = bid.order
        if order.status != OrderStatus.PENDING:
            raise InvalidStateError("Order has already been settled")

        settlement.credit_delta_cents += self._apply_amount(order, bid.supplier_id, bid.total_amount_cents)
        settlement.order_ids.append(order.id)

        competing = self.bids.list_pending_for_orders([order.id])
        if order.group_id is not None:
            # The group can no longer be settled as a whole
            competing += self.bids.list_pending_for_group(order.group_id)
        settlement.rejected = self._reject_all(competing, keep=bid)

    def _settle_group(self, bid: Bid, settlement: Settlement) -> None:
        group: BuyingGroup = bid.group
        if group.status != GroupStatus.CONFIRMED:
            raise InvalidStateError("Group is not open for settlement")

        orders = live_orders(group)
        if not settleable_as_group(orders):
            raise InvalidStateError("Some group orders have already been settled")

        shares = split_pro_rata(bid.total_amount_cents, [order.total_amount_cents for order in orders])
        for order, share in zip(orders, shares):
            settlement.credit_delta_cents += self._apply_amount(order, bid.supplier_id, share)
            settlement.order_ids.append(order.id)

        competing = self.bids.list_pending_for_orders([order.id for order in orders])
        competing += self.bids.list_pending_for_group(group.id)
        settlement.rejected = self._reject_all(competing, keep=bid)

        group.status = GroupStatus.ORDERED.value

    def _apply_amount(self, order: Order, supplier_id: uuid.UUID, amount_cents: int) -> int:
        """Confirm an order at its settled amount; returns the credit change"""
        order.supplier_id = supplier_id
        order.status = OrderStatus.CONFIRMED.value

        payment = self.payments.pending_for_order(order.id)
        if payment is None:
            self.payments.create_payment(
                buyer_id=order.buyer_id,
                order_id=order.id,
                amount_cents=amount_cents,
                type=PaymentType.ORDER_PAYMENT.value,
                method=order.payment_method,
                status=PaymentStatus.PENDING.value,
                created_at=self.clock(),
            )
        else:
            payment.amount_cents = amount_cents

        delta = self.credit.reconcile_order_amount(order, amount_cents)
        order.total_amount_cents = amount_cents
        return delta

    @staticmethod
    def _reject_all(bids: List[Bid], keep: Bid) -> int:
        rejected = set()
        for other in bids:
            if other.id != keep.id and other.id not in rejected:
                other.status = BidStatus.REJECTED.value
                rejected.add(other.id)
        return len(rejected)

    # ------------------------------------------------------------------
    # Read paths (lazy expiry is persisted here)
    # ------------------------------------------------------------------

    def list_for_supplier(
        self,
        supplier_id: uuid.UUID,
        status: Optional[BidStatus] = None,
        limit: int = 20,
    ) -> List[Bid]:
        """Supplier's bids, newest first"""

        def work() -> List[Bid]:
            self._require_supplier(supplier_id)
            expired = self.bids.expire_stale(self.bids.list_pending_for_supplier(supplier_id), self.clock())
            if expired:
                self.db.flush()
                record_bid_outcome("expired", expired)
            wanted = BidStatus(status).value if status else None
            return self.bids.list_for_supplier(supplier_id, status=wanted, limit=limit)

        return self.uow.run("bid.list_for_supplier", work)

    def ranked_bids(self, target: BidTarget) -> List[Bid]:
        """Bids on an order or group, cheapest first"""

        def work() -> List[Bid]:
            if isinstance(target, GroupTarget):
                if self.groups.get(target.group_id) is None:
                    raise NotFoundError("Group not found")
                bids = self.bids.list_for_group(target.group_id)
            else:
                if self.orders.get(target.order_id) is None:
                    raise NotFoundError("Order not found")
                bids = self.bids.list_for_orders([target.order_id])
            record_bid_outcome("expired", self.bids.expire_stale(bids, self.clock()))
            return rank_bids(bids)

        return self.uow.run("bid.ranked", work)

    def list_available_for_supplier(
        self,
        supplier_id: uuid.UUID,
        area: Optional[str] = None,
        category: Optional[str] = None,
    ) -> List[OpenDemand]:
        """
        Open demand the supplier has not bid on yet.

        Confirmed groups come first as one consolidated demand each, then
        pending orders placed outside any group. ``area`` and ``category``
        narrow the result to what the supplier can actually serve.
        """
        supplier = self._require_supplier(supplier_id)
        if area and area not in (supplier.delivery_areas or []):
            return []
        if category and category not in (supplier.product_categories or []):
            return []

        now = self.clock()
        bid_orders, bid_groups = self.bids.targets_bid_by(supplier.id)
        demand: List[OpenDemand] = []

        for group in self.groups.list_confirmed():
            if group.id in bid_groups or group.target_pickup_time < now:
                continue
            orders = live_orders(group)
            if not settleable_as_group(orders) or any(order.id in bid_orders for order in orders):
                continue
            if category and not self._has_category(orders, category):
                continue
            demand.append(
                OpenDemand(
                    target=GroupTarget(group.id),
                    total_amount_cents=sum(order.total_amount_cents for order in orders),
                    lines=consolidate_orders(orders),
                    bid_amounts_cents=self._open_amounts(self.bids.list_for_group(group.id), now),
                    pickup_location=group.pickup_location,
                )
            )

        for order in self.orders.list_open_individual(bid_orders, settings.available_demand_limit):
            if category and not self._has_category([order], category):
                continue
            demand.append(
                OpenDemand(
                    target=OrderTarget(order.id),
                    total_amount_cents=order.total_amount_cents,
                    lines=consolidate_orders([order]),
                    bid_amounts_cents=self._open_amounts(order.bids, now),
                    buyer_id=order.buyer_id,
                )
            )

        return demand[: settings.available_demand_limit]

    @staticmethod
    def _has_category(orders: List[Order], category: str) -> bool:
        return any(item.product.category == category for order in orders for item in order.items)

    @staticmethod
    def _open_amounts(bids: List[Bid], now: datetime) -> List[int]:
        return sorted(b.total_amount_cents for b in bids if effective_status(b, now) == BidStatus.PENDING)
