"""/v1/bids and /v1/suppliers/{id}/... - supplier bidding endpoints"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from groupbuy_gateway.api.dependencies import get_bidding_service
from groupbuy_gateway.api.v1.schemas import (
    BidCreateRequest,
    BidResponse,
    ConsolidatedLineSchema,
    OpenDemandResponse,
)
from groupbuy_gateway.domain.models import BidStatus, GroupTarget
from groupbuy_gateway.services.bidding import BiddingService

router = APIRouter()


@router.post("/bids", response_model=BidResponse, status_code=201)
def place_bid(request_body: BidCreateRequest, service: BiddingService = Depends(get_bidding_service)):
    return service.place_bid(
        target=request_body.target(),
        supplier_id=request_body.supplier_id,
        total_amount_cents=request_body.total_amount_cents,
        delivery_time=request_body.delivery_time,
        message=request_body.message,
        validity_hours=request_body.validity_hours,
    )


@router.post("/bids/{bid_id}/accept", response_model=BidResponse)
def accept_bid(bid_id: uuid.UUID, service: BiddingService = Depends(get_bidding_service)):
    """
    Accept a bid.

    Settles the order (or every order of the group) at the bid price and
    rejects all competing pending bids.
    """
    return service.accept_bid(bid_id)


@router.post("/bids/{bid_id}/reject", response_model=BidResponse)
def reject_bid(bid_id: uuid.UUID, service: BiddingService = Depends(get_bidding_service)):
    return service.reject_bid(bid_id)


@router.get("/suppliers/{supplier_id}/bids", response_model=List[BidResponse])
def supplier_bids(
    supplier_id: uuid.UUID,
    status: Optional[BidStatus] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    service: BiddingService = Depends(get_bidding_service),
):
    return service.list_for_supplier(supplier_id, status=status, limit=limit)


@router.get("/suppliers/{supplier_id}/available-orders", response_model=List[OpenDemandResponse])
def available_orders(
    supplier_id: uuid.UUID,
    area: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    service: BiddingService = Depends(get_bidding_service),
):
    """Open orders and confirmed groups the supplier can still bid on"""
    demand = service.list_available_for_supplier(supplier_id, area=area, category=category)

    return [
        OpenDemandResponse(
            target_type="group" if isinstance(d.target, GroupTarget) else "order",
            target_id=d.target.group_id if isinstance(d.target, GroupTarget) else d.target.order_id,
            total_amount_cents=d.total_amount_cents,
            lines=[ConsolidatedLineSchema.model_validate(line) for line in d.lines],
            bid_amounts_cents=d.bid_amounts_cents,
            buyer_id=d.buyer_id,
            pickup_location=d.pickup_location,
        )
        for d in demand
    ]
