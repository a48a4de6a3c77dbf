"""Domain models - enums and pure Python dataclasses representing business entities"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union


class GroupStatus(str, Enum):
    FORMING = "FORMING"
    CONFIRMED = "CONFIRMED"
    ORDERED = "ORDERED"
    CANCELLED = "CANCELLED"


class OrderType(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    GROUP = "GROUP"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    DISPATCHED = "DISPATCHED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    UPI = "UPI"
    PAY_LATER = "PAY_LATER"


class PaymentType(str, Enum):
    ORDER_PAYMENT = "ORDER_PAYMENT"
    CREDIT_REPAYMENT = "CREDIT_REPAYMENT"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class BidStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class CreditTransactionType(str, Enum):
    CREDIT_USED = "CREDIT_USED"
    CREDIT_REPAID = "CREDIT_REPAID"
    CREDIT_LIMIT_INCREASE = "CREDIT_LIMIT_INCREASE"


class CreditTransactionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class OrderTarget:
    """Bid against a single order"""

    order_id: uuid.UUID


@dataclass(frozen=True)
class GroupTarget:
    """Bid against a confirmed group's consolidated demand"""

    group_id: uuid.UUID


BidTarget = Union[OrderTarget, GroupTarget]


@dataclass
class OrderLine:
    """Requested line item when creating or extending an order"""

    product_id: uuid.UUID
    quantity: float
    unit: str
    price_per_unit_cents: int
    notes: Optional[str] = None

    @property
    def total_price_cents(self) -> int:
        return round(self.quantity * self.price_per_unit_cents)


@dataclass
class Contribution:
    """One buyer's share of a consolidated line"""

    buyer_id: uuid.UUID
    quantity: float
    price_cents: int


@dataclass
class ConsolidatedLine:
    """Aggregate demand for one (product, unit) across a group's orders"""

    product_id: uuid.UUID
    unit: str
    quantity: float
    total_price_cents: int
    contributions: List[Contribution] = field(default_factory=list)


@dataclass
class IncreaseDecision:
    """Output of the credit-limit increase policy"""

    approved: bool
    approved_cents: int
    message: str


@dataclass
class CreditIncreaseResult:
    status: str  # "APPROVED" or "REJECTED"
    requested_cents: int
    approved_cents: int
    message: str
    new_credit_limit_cents: int


@dataclass
class CreditStatus:
    """Snapshot of a buyer's credit position"""

    available_credit_cents: int
    used_credit_cents: int
    remaining_credit_cents: int
    trust_score: int
    recent_transactions: list
    overdue_transactions: list
    overdue_amount_cents: int
    utilization_ratio: float


@dataclass
class OpenDemand:
    """Something a supplier can still bid on: a lone order or a confirmed group"""

    target: BidTarget
    total_amount_cents: int
    lines: List[ConsolidatedLine]
    bid_amounts_cents: List[int]
    buyer_id: Optional[uuid.UUID] = None
    pickup_location: Optional[str] = None
