"""Data access layer for group-buying entities"""

import uuid
from datetime import datetime
from typing import Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from groupbuy_gateway.domain.models import (
    BidStatus,
    CreditTransactionStatus,
    CreditTransactionType,
    GroupStatus,
    OrderLine,
    OrderStatus,
    PaymentStatus,
    PaymentType,
)
from groupbuy_gateway.infrastructure.database.models import (
    Bid,
    Buyer,
    BuyingGroup,
    CreditTransaction,
    GroupMembership,
    Order,
    OrderItem,
    Payment,
    Product,
    Supplier,
)


class BuyerRepository:
    """Read access to buyers; credit fields are written by the services"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, buyer_id: uuid.UUID) -> Optional[Buyer]:
        return self.db.query(Buyer).filter(Buyer.id == buyer_id).first()


class SupplierRepository:
    """Read access to suppliers"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, supplier_id: uuid.UUID) -> Optional[Supplier]:
        return self.db.query(Supplier).filter(Supplier.id == supplier_id).first()


class ProductRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_many(self, product_ids: Iterable[uuid.UUID]) -> List[Product]:
        ids = list(set(product_ids))
        if not ids:
            return []
        return self.db.query(Product).filter(Product.id.in_(ids)).all()


class GroupRepository:
    """Repository for buying groups and their memberships"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, group_id: uuid.UUID) -> Optional[BuyingGroup]:
        return self.db.query(BuyingGroup).filter(BuyingGroup.id == group_id).first()

    def create_group(self, **fields) -> BuyingGroup:
        group = BuyingGroup(**fields)
        self.db.add(group)
        self.db.flush()  # Get ID without committing
        return group

    def get_membership(self, group_id: uuid.UUID, buyer_id: uuid.UUID) -> Optional[GroupMembership]:
        return (
            self.db.query(GroupMembership)
            .filter(GroupMembership.group_id == group_id, GroupMembership.buyer_id == buyer_id)
            .first()
        )

    def add_membership(self, group: BuyingGroup, buyer_id: uuid.UUID, joined_at: datetime) -> GroupMembership:
        """Insert a confirmed membership and bump the group's cached count"""
        membership = GroupMembership(
            group_id=group.id,
            buyer_id=buyer_id,
            is_confirmed=True,
            joined_at=joined_at,
        )
        self.db.add(membership)
        group.member_count += 1
        self.db.flush()
        return membership

    def remove_membership(self, group: BuyingGroup, membership: GroupMembership) -> None:
        self.db.delete(membership)
        group.member_count -= 1
        self.db.flush()

    def list_forming(self, now: datetime) -> List[BuyingGroup]:
        """Groups still accepting members, deadline re-checked against now"""
        return (
            self.db.query(BuyingGroup)
            .filter(
                BuyingGroup.status == GroupStatus.FORMING.value,
                BuyingGroup.confirmation_deadline > now,
            )
            .order_by(BuyingGroup.created_at.desc())
            .all()
        )

    def list_confirmed(self) -> List[BuyingGroup]:
        return (
            self.db.query(BuyingGroup)
            .filter(BuyingGroup.status == GroupStatus.CONFIRMED.value)
            .order_by(BuyingGroup.created_at.desc())
            .all()
        )

    def group_ids_for_buyer(self, buyer_id: uuid.UUID) -> Set[uuid.UUID]:
        rows = self.db.query(GroupMembership.group_id).filter(GroupMembership.buyer_id == buyer_id).all()
        return {row[0] for row in rows}


class OrderRepository:
    """Repository for orders and their items"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, order_id: uuid.UUID) -> Optional[Order]:
        return self.db.query(Order).filter(Order.id == order_id).first()

    def create_order(self, lines: List[OrderLine], **fields) -> Order:
        """Create order with items; total is the sum of line totals"""
        order = Order(total_amount_cents=sum(line.total_price_cents for line in lines), **fields)
        self.db.add(order)
        self.db.flush()

        for line in lines:
            self.db.add(self._item(order.id, line))

        self.db.flush()
        return order

    def add_items(self, order: Order, lines: List[OrderLine]) -> List[OrderItem]:
        items = [self._item(order.id, line) for line in lines]
        for item in items:
            self.db.add(item)
        order.total_amount_cents += sum(item.total_price_cents for item in items)
        self.db.flush()
        return items

    def list_for_group(self, group_id: uuid.UUID) -> List[Order]:
        return (
            self.db.query(Order)
            .filter(Order.group_id == group_id)
            .order_by(Order.created_at.asc())
            .all()
        )

    def list_open_individual(self, exclude_ids: Set[uuid.UUID], limit: int) -> List[Order]:
        """PENDING orders outside any group, newest first"""
        query = self.db.query(Order).filter(
            Order.status == OrderStatus.PENDING.value,
            Order.group_id.is_(None),
        )
        if exclude_ids:
            query = query.filter(Order.id.notin_(exclude_ids))
        return query.order_by(Order.created_at.desc()).limit(limit).all()

    @staticmethod
    def _item(order_id: uuid.UUID, line: OrderLine) -> OrderItem:
        return OrderItem(
            order_id=order_id,
            product_id=line.product_id,
            quantity=line.quantity,
            unit=line.unit,
            price_per_unit_cents=line.price_per_unit_cents,
            total_price_cents=line.total_price_cents,
            notes=line.notes,
        )


class BidRepository:
    """Repository for supplier bids"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, bid_id: uuid.UUID) -> Optional[Bid]:
        return self.db.query(Bid).filter(Bid.id == bid_id).first()

    def create_bid(self, **fields) -> Bid:
        bid = Bid(status=BidStatus.PENDING.value, **fields)
        self.db.add(bid)
        self.db.flush()
        return bid

    def find(self, supplier_id: uuid.UUID, order_id: uuid.UUID) -> Optional[Bid]:
        return (
            self.db.query(Bid)
            .filter(Bid.supplier_id == supplier_id, Bid.order_id == order_id)
            .first()
        )

    def supplier_has_bid_in(self, supplier_id: uuid.UUID, order_ids: List[uuid.UUID], group_id: uuid.UUID) -> bool:
        """Any bid by the supplier on one of the group's orders or on the group itself"""
        query = self.db.query(Bid.id).filter(Bid.supplier_id == supplier_id)
        if order_ids:
            query = query.filter((Bid.order_id.in_(order_ids)) | (Bid.group_id == group_id))
        else:
            query = query.filter(Bid.group_id == group_id)
        return query.first() is not None

    def list_pending_for_orders(self, order_ids: List[uuid.UUID]) -> List[Bid]:
        if not order_ids:
            return []
        return (
            self.db.query(Bid)
            .filter(Bid.order_id.in_(order_ids), Bid.status == BidStatus.PENDING.value)
            .all()
        )

    def list_pending_for_group(self, group_id: uuid.UUID) -> List[Bid]:
        return (
            self.db.query(Bid)
            .filter(Bid.group_id == group_id, Bid.status == BidStatus.PENDING.value)
            .all()
        )

    def list_for_supplier(self, supplier_id: uuid.UUID, status: str | None = None, limit: int = 20) -> List[Bid]:
        """Fetch recent bids for a supplier"""
        query = self.db.query(Bid).filter(Bid.supplier_id == supplier_id)
        if status:
            query = query.filter(Bid.status == status)
        return query.order_by(Bid.created_at.desc()).limit(limit).all()

    def list_pending_for_supplier(self, supplier_id: uuid.UUID) -> List[Bid]:
        return (
            self.db.query(Bid)
            .filter(Bid.supplier_id == supplier_id, Bid.status == BidStatus.PENDING.value)
            .all()
        )

    def list_for_group(self, group_id: uuid.UUID) -> List[Bid]:
        return (
            self.db.query(Bid)
            .filter(Bid.group_id == group_id)
            .order_by(Bid.total_amount_cents.asc())
            .all()
        )

    def list_for_orders(self, order_ids: List[uuid.UUID]) -> List[Bid]:
        if not order_ids:
            return []
        return (
            self.db.query(Bid)
            .filter(Bid.order_id.in_(order_ids))
            .order_by(Bid.total_amount_cents.asc())
            .all()
        )

    def targets_bid_by(self, supplier_id: uuid.UUID) -> tuple[Set[uuid.UUID], Set[uuid.UUID]]:
        """(order ids, group ids) the supplier already has bids on"""
        rows = self.db.query(Bid.order_id, Bid.group_id).filter(Bid.supplier_id == supplier_id).all()
        order_ids = {row[0] for row in rows}
        group_ids = {row[1] for row in rows if row[1] is not None}
        return order_ids, group_ids

    def expire_stale(self, bids: Iterable[Bid], now: datetime) -> int:
        """Persist EXPIRED for pending bids read past their validity"""
        expired = 0
        for bid in bids:
            if bid.status == BidStatus.PENDING.value and now > bid.valid_until:
                bid.status = BidStatus.EXPIRED.value
                expired += 1
        return expired


class PaymentRepository:
    """Repository for order payments and credit repayments"""

    def __init__(self, db: Session):
        self.db = db

    def create_payment(self, **fields) -> Payment:
        payment = Payment(**fields)
        self.db.add(payment)
        self.db.flush()
        return payment

    def pending_for_order(self, order_id: uuid.UUID) -> Optional[Payment]:
        return (
            self.db.query(Payment)
            .filter(
                Payment.order_id == order_id,
                Payment.type == PaymentType.ORDER_PAYMENT.value,
                Payment.status == PaymentStatus.PENDING.value,
            )
            .order_by(Payment.created_at.desc())
            .first()
        )


class CreditTransactionRepository:
    """Append-only access to the credit ledger"""

    def __init__(self, db: Session):
        self.db = db

    def append(self, **fields) -> CreditTransaction:
        txn = CreditTransaction(**fields)
        self.db.add(txn)
        self.db.flush()
        return txn

    def usage_for_order(self, order_id: uuid.UUID) -> Optional[CreditTransaction]:
        return (
            self.db.query(CreditTransaction)
            .filter(
                CreditTransaction.order_id == order_id,
                CreditTransaction.type == CreditTransactionType.CREDIT_USED.value,
            )
            .first()
        )

    def recent(self, buyer_id: uuid.UUID, limit: int = 10) -> List[CreditTransaction]:
        return (
            self.db.query(CreditTransaction)
            .filter(CreditTransaction.buyer_id == buyer_id)
            .order_by(CreditTransaction.created_at.desc())
            .limit(limit)
            .all()
        )

    def active_usage(self, buyer_id: uuid.UUID) -> List[CreditTransaction]:
        return (
            self.db.query(CreditTransaction)
            .filter(
                CreditTransaction.buyer_id == buyer_id,
                CreditTransaction.type == CreditTransactionType.CREDIT_USED.value,
                CreditTransaction.status == CreditTransactionStatus.ACTIVE.value,
            )
            .all()
        )

    def overdue(self, buyer_id: uuid.UUID, now: datetime) -> List[CreditTransaction]:
        return (
            self.db.query(CreditTransaction)
            .filter(
                CreditTransaction.buyer_id == buyer_id,
                CreditTransaction.status == CreditTransactionStatus.OVERDUE.value,
                CreditTransaction.due_date < now,
            )
            .order_by(CreditTransaction.due_date.asc())
            .all()
        )
