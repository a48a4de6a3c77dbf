"""Pydantic schemas for API request/response validation"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from groupbuy_gateway.domain.models import (
    BidStatus,
    Coordinates,
    GroupTarget,
    OrderLine,
    OrderStatus,
    OrderTarget,
    PaymentMethod,
)
from groupbuy_gateway.utils.date_utils import to_naive_utc


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ----------------------------------------------------------------------
# Shared
# ----------------------------------------------------------------------


class CoordinatesSchema(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    def to_domain(self) -> Coordinates:
        return Coordinates(self.latitude, self.longitude)


class OrderItemRequest(BaseModel):
    """Single requested line"""

    product_id: uuid.UUID
    quantity: float = Field(..., gt=0)
    unit: str = Field(..., min_length=1)
    price_per_unit_cents: int = Field(..., ge=0)
    notes: Optional[str] = None

    def to_domain(self) -> OrderLine:
        return OrderLine(
            product_id=self.product_id,
            quantity=self.quantity,
            unit=self.unit,
            price_per_unit_cents=self.price_per_unit_cents,
            notes=self.notes,
        )


class ContributionSchema(ORMModel):
    buyer_id: uuid.UUID
    quantity: float
    price_cents: int


class ConsolidatedLineSchema(ORMModel):
    product_id: uuid.UUID
    unit: str
    quantity: float
    total_price_cents: int
    contributions: List[ContributionSchema]


# ----------------------------------------------------------------------
# Groups
# ----------------------------------------------------------------------


class GroupCreateRequest(BaseModel):
    """Request body for POST /v1/groups"""

    name: str = Field(..., min_length=1)
    pickup_location: str = Field(..., min_length=1)
    coordinates: Optional[CoordinatesSchema] = None
    target_pickup_time: datetime
    creator_id: uuid.UUID
    min_members: Optional[int] = Field(None, ge=1)
    max_members: Optional[int] = Field(None, ge=1)
    initial_items: List[OrderItemRequest] = []

    @field_validator("target_pickup_time")
    @classmethod
    def pickup_in_utc(cls, value: datetime) -> datetime:
        return to_naive_utc(value)


class MembershipRequest(BaseModel):
    buyer_id: uuid.UUID


class MembershipSchema(ORMModel):
    buyer_id: uuid.UUID
    is_confirmed: bool
    joined_at: datetime


class GroupResponse(ORMModel):
    id: uuid.UUID
    name: str
    pickup_location: str
    pickup_latitude: Optional[float] = None
    pickup_longitude: Optional[float] = None
    target_pickup_time: datetime
    confirmation_deadline: datetime
    min_members: int
    max_members: int
    member_count: int
    status: str
    total_value_cents: int
    estimated_savings_cents: int
    created_by: uuid.UUID
    memberships: List[MembershipSchema] = []


# ----------------------------------------------------------------------
# Orders
# ----------------------------------------------------------------------


class OrderCreateRequest(BaseModel):
    """Request body for POST /v1/orders"""

    buyer_id: uuid.UUID
    group_id: Optional[uuid.UUID] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    items: List[OrderItemRequest] = Field(..., min_length=1)
    notes: Optional[str] = None
    pickup_time: Optional[datetime] = None

    @field_validator("pickup_time")
    @classmethod
    def pickup_in_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


class AddItemsRequest(BaseModel):
    items: List[OrderItemRequest] = Field(..., min_length=1)


class OrderStatusRequest(BaseModel):
    status: OrderStatus
    supplier_id: Optional[uuid.UUID] = None


class OrderItemSchema(ORMModel):
    product_id: uuid.UUID
    quantity: float
    unit: str
    price_per_unit_cents: int
    total_price_cents: int
    notes: Optional[str] = None


class OrderResponse(ORMModel):
    id: uuid.UUID
    buyer_id: uuid.UUID
    group_id: Optional[uuid.UUID] = None
    supplier_id: Optional[uuid.UUID] = None
    order_type: str
    status: str
    total_amount_cents: int
    payment_method: str
    notes: Optional[str] = None
    pickup_time: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime
    items: List[OrderItemSchema] = []


# ----------------------------------------------------------------------
# Bids
# ----------------------------------------------------------------------


class BidCreateRequest(BaseModel):
    """Request body for POST /v1/bids; exactly one of order_id / group_id"""

    supplier_id: uuid.UUID
    order_id: Optional[uuid.UUID] = None
    group_id: Optional[uuid.UUID] = None
    total_amount_cents: int = Field(..., gt=0)
    message: Optional[str] = None
    delivery_time: Optional[datetime] = None
    validity_hours: Optional[float] = Field(None, gt=0)

    @field_validator("delivery_time")
    @classmethod
    def delivery_in_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)

    @model_validator(mode="after")
    def check_target(self) -> "BidCreateRequest":
        if (self.order_id is None) == (self.group_id is None):
            raise ValueError("Provide exactly one of order_id or group_id")
        return self

    def target(self):
        if self.group_id is not None:
            return GroupTarget(self.group_id)
        return OrderTarget(self.order_id)


class BidResponse(ORMModel):
    id: uuid.UUID
    supplier_id: uuid.UUID
    order_id: uuid.UUID
    group_id: Optional[uuid.UUID] = None
    is_group_bid: bool
    total_amount_cents: int
    message: Optional[str] = None
    delivery_time: Optional[datetime] = None
    valid_until: datetime
    status: BidStatus
    created_at: datetime


class OpenDemandResponse(BaseModel):
    target_type: str  # "order" | "group"
    target_id: uuid.UUID
    total_amount_cents: int
    lines: List[ConsolidatedLineSchema]
    bid_amounts_cents: List[int]
    buyer_id: Optional[uuid.UUID] = None
    pickup_location: Optional[str] = None


# ----------------------------------------------------------------------
# Credit
# ----------------------------------------------------------------------


class CreditTransactionSchema(ORMModel):
    id: uuid.UUID
    order_id: Optional[uuid.UUID] = None
    amount_cents: int
    type: str
    status: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    created_at: datetime


class CreditStatusResponse(ORMModel):
    available_credit_cents: int
    used_credit_cents: int
    remaining_credit_cents: int
    trust_score: int
    recent_transactions: List[CreditTransactionSchema]
    overdue_transactions: List[CreditTransactionSchema]
    overdue_amount_cents: int
    utilization_ratio: float


class RepaymentRequest(BaseModel):
    amount_cents: int = Field(..., gt=0)
    method: PaymentMethod = PaymentMethod.UPI


class PaymentResponse(ORMModel):
    id: uuid.UUID
    amount_cents: int
    type: str
    method: str
    status: str
    reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime


class CreditIncreaseRequest(BaseModel):
    requested_cents: int = Field(..., gt=0)
    reason: str = ""


class CreditIncreaseResponse(ORMModel):
    status: str
    requested_cents: int
    approved_cents: int
    message: str
    new_credit_limit_cents: int
