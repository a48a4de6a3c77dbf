"""/v1/groups - buying group lifecycle endpoints"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from groupbuy_gateway.api.dependencies import get_bidding_service, get_group_service
from groupbuy_gateway.api.v1.schemas import (
    BidResponse,
    ConsolidatedLineSchema,
    GroupCreateRequest,
    GroupResponse,
    MembershipRequest,
)
from groupbuy_gateway.domain.models import Coordinates, GroupTarget
from groupbuy_gateway.services.bidding import BiddingService
from groupbuy_gateway.services.groups import GroupService

router = APIRouter()


@router.post("/groups", response_model=GroupResponse, status_code=201)
def create_group(request_body: GroupCreateRequest, service: GroupService = Depends(get_group_service)):
    """
    Open a buying group.

    The creator becomes the first member; initial items are placed as a
    pay-later group order.
    """
    return service.create(
        name=request_body.name,
        pickup_location=request_body.pickup_location,
        target_pickup_time=request_body.target_pickup_time,
        creator_id=request_body.creator_id,
        coordinates=request_body.coordinates.to_domain() if request_body.coordinates else None,
        min_members=request_body.min_members,
        max_members=request_body.max_members,
        initial_items=[item.to_domain() for item in request_body.initial_items],
    )


@router.get("/groups/suggestions", response_model=List[GroupResponse])
def suggest_groups(
    buyer_id: uuid.UUID = Query(..., description="Buyer looking for a group"),
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
    radius_km: Optional[float] = Query(None, gt=0),
    service: GroupService = Depends(get_group_service),
):
    """Forming groups the buyer can still join, filtered by distance when a location is given"""
    coordinates = None
    if latitude is not None and longitude is not None:
        coordinates = Coordinates(latitude, longitude)
    return service.suggestions(buyer_id, coordinates, radius_km)


@router.get("/groups/{group_id}", response_model=GroupResponse)
def get_group(group_id: uuid.UUID, service: GroupService = Depends(get_group_service)):
    return service.get(group_id)


@router.post("/groups/{group_id}/join", response_model=GroupResponse)
def join_group(
    group_id: uuid.UUID,
    request_body: MembershipRequest,
    service: GroupService = Depends(get_group_service),
):
    return service.join(group_id, request_body.buyer_id)


@router.post("/groups/{group_id}/leave", response_model=GroupResponse)
def leave_group(
    group_id: uuid.UUID,
    request_body: MembershipRequest,
    service: GroupService = Depends(get_group_service),
):
    return service.leave(group_id, request_body.buyer_id)


@router.post("/groups/{group_id}/confirm", response_model=GroupResponse)
def confirm_group(group_id: uuid.UUID, service: GroupService = Depends(get_group_service)):
    return service.confirm(group_id)


@router.get("/groups/{group_id}/consolidated", response_model=List[ConsolidatedLineSchema])
def consolidated_demand(group_id: uuid.UUID, service: GroupService = Depends(get_group_service)):
    """Per-product totals across the group's orders, with each buyer's contribution"""
    return service.consolidate(group_id)


@router.get("/groups/{group_id}/bids", response_model=List[BidResponse])
def group_bids(group_id: uuid.UUID, service: BiddingService = Depends(get_bidding_service)):
    """Group bids, cheapest first"""
    return service.ranked_bids(GroupTarget(group_id))
