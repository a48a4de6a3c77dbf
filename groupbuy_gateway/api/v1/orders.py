"""/v1/orders - order placement and fulfilment endpoints"""

import uuid
from typing import List

from fastapi import APIRouter, Depends

from groupbuy_gateway.api.dependencies import get_bidding_service, get_order_service
from groupbuy_gateway.api.v1.schemas import (
    AddItemsRequest,
    BidResponse,
    OrderCreateRequest,
    OrderResponse,
    OrderStatusRequest,
)
from groupbuy_gateway.domain.models import OrderTarget
from groupbuy_gateway.services.bidding import BiddingService
from groupbuy_gateway.services.orders import OrderService

router = APIRouter()


@router.post("/orders", response_model=OrderResponse, status_code=201)
def create_order(request_body: OrderCreateRequest, service: OrderService = Depends(get_order_service)):
    """
    Place an order.

    PAY_LATER orders draw on the buyer's credit line immediately; the draw is
    adjusted when a supplier's bid settles the final price.
    """
    return service.create(
        buyer_id=request_body.buyer_id,
        items=[item.to_domain() for item in request_body.items],
        payment_method=request_body.payment_method,
        group_id=request_body.group_id,
        notes=request_body.notes,
        pickup_time=request_body.pickup_time,
    )


@router.get("/orders/{order_id}", response_model=OrderResponse)
def get_order(order_id: uuid.UUID, service: OrderService = Depends(get_order_service)):
    return service.get(order_id)


@router.post("/orders/{order_id}/items", response_model=OrderResponse)
def add_items(
    order_id: uuid.UUID,
    request_body: AddItemsRequest,
    service: OrderService = Depends(get_order_service),
):
    return service.add_items(order_id, [item.to_domain() for item in request_body.items])


@router.patch("/orders/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: uuid.UUID,
    request_body: OrderStatusRequest,
    service: OrderService = Depends(get_order_service),
):
    return service.update_status(order_id, request_body.status, request_body.supplier_id)


@router.get("/orders/{order_id}/bids", response_model=List[BidResponse])
def order_bids(order_id: uuid.UUID, service: BiddingService = Depends(get_bidding_service)):
    """Bids on the order, cheapest first"""
    return service.ranked_bids(OrderTarget(order_id))
