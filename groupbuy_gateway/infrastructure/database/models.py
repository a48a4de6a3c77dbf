"""SQLAlchemy ORM models

Buyer, Supplier, BuyingGroup, Order and Bid are versioned: every UPDATE is
guarded by ``version = <value read>`` so concurrent writers of one aggregate
cannot both commit.
"""

import uuid
from sqlalchemy import (
    Column,
    String,
    BigInteger,
    Boolean,
    Float,
    DateTime,
    Integer,
    ForeignKey,
    Text,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from groupbuy_gateway.domain.models import (
    BidStatus,
    CreditTransactionStatus,
    GroupStatus,
    OrderStatus,
    OrderType,
    PaymentStatus,
)

Base = declarative_base()


class Buyer(Base):
    """Small buyer (street vendor) with a trade-credit line"""

    __tablename__ = "buyer"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    phone = Column(String(20), nullable=True, unique=True)
    area = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    trust_score = Column(Integer, nullable=False, default=50)
    available_credit_cents = Column(BigInteger, nullable=False, default=0)
    used_credit_cents = Column(BigInteger, nullable=False, default=0)
    total_savings_cents = Column(BigInteger, nullable=False, default=0)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}


class Supplier(Base):
    """Wholesale supplier bidding on consolidated demand"""

    __tablename__ = "supplier"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_name = Column(Text, nullable=False)
    phone = Column(String(20), nullable=True, unique=True)
    delivery_areas = Column(JSON, nullable=False, default=list)
    product_categories = Column(JSON, nullable=False, default=list)
    rating = Column(Float, nullable=False, default=0.0)
    total_orders = Column(Integer, nullable=False, default=0)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    bids = relationship("Bid", back_populates="supplier")

    __mapper_args__ = {"version_id_col": version}


class Product(Base):
    """Catalog entry; read-only for the core"""

    __tablename__ = "product"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    category = Column(Text, nullable=False, index=True)
    unit = Column(String(20), nullable=False)
    market_price_cents = Column(BigInteger, nullable=False)


class BuyingGroup(Base):
    """Time-boxed cohort of buyers pooling their orders"""

    __tablename__ = "buying_group"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    pickup_location = Column(Text, nullable=False)
    pickup_latitude = Column(Float, nullable=True)
    pickup_longitude = Column(Float, nullable=True)
    target_pickup_time = Column(DateTime, nullable=False)
    confirmation_deadline = Column(DateTime, nullable=False)
    min_members = Column(Integer, nullable=False)
    max_members = Column(Integer, nullable=False)
    member_count = Column(Integer, nullable=False, default=0)
    status = Column(Text, nullable=False, default=GroupStatus.FORMING.value, index=True)
    total_value_cents = Column(BigInteger, nullable=False, default=0)
    estimated_savings_cents = Column(BigInteger, nullable=False, default=0)
    created_by = Column(UUID(as_uuid=True), ForeignKey("buyer.id"), nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    memberships = relationship(
        "GroupMembership",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="GroupMembership.joined_at",
    )
    orders = relationship("Order", back_populates="group", order_by="Order.created_at")

    __mapper_args__ = {"version_id_col": version}


class GroupMembership(Base):
    """(group, buyer) pair; unique per pair"""

    __tablename__ = "group_membership"
    __table_args__ = (UniqueConstraint("group_id", "buyer_id", name="uq_membership_group_buyer"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id = Column(UUID(as_uuid=True), ForeignKey("buying_group.id", ondelete="CASCADE"), nullable=False)
    buyer_id = Column(UUID(as_uuid=True), ForeignKey("buyer.id"), nullable=False, index=True)
    is_confirmed = Column(Boolean, nullable=False, default=True)
    joined_at = Column(DateTime, nullable=False)

    group = relationship("BuyingGroup", back_populates="memberships")
    buyer = relationship("Buyer")


class Order(Base):
    """Buyer order; anchor for bids and payments"""

    __tablename__ = "purchase_order"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    buyer_id = Column(UUID(as_uuid=True), ForeignKey("buyer.id"), nullable=False, index=True)
    group_id = Column(UUID(as_uuid=True), ForeignKey("buying_group.id"), nullable=True, index=True)
    supplier_id = Column(UUID(as_uuid=True), ForeignKey("supplier.id"), nullable=True, index=True)
    order_type = Column(Text, nullable=False, default=OrderType.INDIVIDUAL.value)
    status = Column(Text, nullable=False, default=OrderStatus.PENDING.value, index=True)
    total_amount_cents = Column(BigInteger, nullable=False, default=0)
    payment_method = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    pickup_time = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False)

    buyer = relationship("Buyer")
    supplier = relationship("Supplier")
    group = relationship("BuyingGroup", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    bids = relationship("Bid", back_populates="order", foreign_keys="Bid.order_id")
    payments = relationship("Payment", back_populates="order")

    __mapper_args__ = {"version_id_col": version}


class OrderItem(Base):
    """Single line of an order"""

    __tablename__ = "order_item"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(UUID(as_uuid=True), ForeignKey("purchase_order.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(UUID(as_uuid=True), ForeignKey("product.id"), nullable=False)
    quantity = Column(Float, nullable=False)
    unit = Column(String(20), nullable=False)
    price_per_unit_cents = Column(BigInteger, nullable=False)
    total_price_cents = Column(BigInteger, nullable=False)
    notes = Column(Text, nullable=True)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")


class Bid(Base):
    """
    Supplier offer against an order, or against a whole group.

    Group bids are stored against the group's first order (``order_id``) and
    tagged with ``group_id``; ``target`` exposes the distinction.
    """

    __tablename__ = "bid"
    __table_args__ = (
        UniqueConstraint("supplier_id", "order_id", name="uq_bid_supplier_order"),
        UniqueConstraint("supplier_id", "group_id", name="uq_bid_supplier_group"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    supplier_id = Column(UUID(as_uuid=True), ForeignKey("supplier.id"), nullable=False, index=True)
    order_id = Column(UUID(as_uuid=True), ForeignKey("purchase_order.id"), nullable=False, index=True)
    group_id = Column(UUID(as_uuid=True), ForeignKey("buying_group.id"), nullable=True, index=True)
    total_amount_cents = Column(BigInteger, nullable=False)
    message = Column(Text, nullable=True)
    delivery_time = Column(DateTime, nullable=True)
    valid_until = Column(DateTime, nullable=False)
    status = Column(Text, nullable=False, default=BidStatus.PENDING.value)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False)

    supplier = relationship("Supplier", back_populates="bids")
    order = relationship("Order", back_populates="bids", foreign_keys=[order_id])
    group = relationship("BuyingGroup")

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_group_bid(self) -> bool:
        return self.group_id is not None


class Payment(Base):
    """Order payment or credit repayment"""

    __tablename__ = "payment"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    buyer_id = Column(UUID(as_uuid=True), ForeignKey("buyer.id"), nullable=False, index=True)
    order_id = Column(UUID(as_uuid=True), ForeignKey("purchase_order.id"), nullable=True, index=True)
    amount_cents = Column(BigInteger, nullable=False)
    type = Column(Text, nullable=False)
    method = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default=PaymentStatus.PENDING.value)
    reference = Column(Text, nullable=True)
    failure_reason = Column(Text, nullable=True)
    due_date = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False)

    order = relationship("Order", back_populates="payments")


class CreditTransaction(Base):
    """Append-only credit ledger entry"""

    __tablename__ = "credit_transaction"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    buyer_id = Column(UUID(as_uuid=True), ForeignKey("buyer.id"), nullable=False, index=True)
    order_id = Column(UUID(as_uuid=True), ForeignKey("purchase_order.id"), nullable=True, index=True)
    amount_cents = Column(BigInteger, nullable=False)
    type = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default=CreditTransactionStatus.ACTIVE.value)
    description = Column(Text, nullable=True)
    due_date = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False)
