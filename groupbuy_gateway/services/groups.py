"""Buying group lifecycle: FORMING -> CONFIRMED -> ORDERED, or FORMING -> CANCELLED"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from groupbuy_gateway.config import settings
from groupbuy_gateway.domain.consolidation import consolidate_orders
from groupbuy_gateway.domain.exceptions import (
    DeadlinePassedError,
    DuplicateMembershipError,
    GroupFullError,
    InsufficientMembersError,
    InvalidAmountError,
    InvalidStateError,
    NotFoundError,
)
from groupbuy_gateway.domain.models import (
    ConsolidatedLine,
    Coordinates,
    GroupStatus,
    OrderLine,
    OrderStatus,
    PaymentMethod,
)
from groupbuy_gateway.domain.proximity import within_radius
from groupbuy_gateway.infrastructure.database.models import BuyingGroup
from groupbuy_gateway.infrastructure.database.repositories import BuyerRepository, GroupRepository
from groupbuy_gateway.infrastructure.database.unit_of_work import UnitOfWork
from groupbuy_gateway.infrastructure.notifications.notifier import Notifier
from groupbuy_gateway.infrastructure.observability.logging import log_transition
from groupbuy_gateway.infrastructure.observability.metrics import group_transition_counter, membership_counter
from groupbuy_gateway.services.orders import OrderService
from groupbuy_gateway.utils.date_utils import Clock, minutes_from, utcnow

logger = logging.getLogger(__name__)


def pickup_coordinates(group: BuyingGroup) -> Optional[Coordinates]:
    if group.pickup_latitude is None or group.pickup_longitude is None:
        return None
    return Coordinates(group.pickup_latitude, group.pickup_longitude)


def live_orders(group: BuyingGroup) -> list:
    return [order for order in group.orders if order.status != OrderStatus.CANCELLED]


class GroupService:
    def __init__(self, db: Session, notifier: Notifier, clock: Clock = utcnow):
        self.db = db
        self.uow = UnitOfWork(db, notifier)
        self.clock = clock
        self.order_service = OrderService(db, notifier, clock=clock)
        self.buyers = BuyerRepository(db)
        self.groups = GroupRepository(db)

    def get(self, group_id: uuid.UUID) -> BuyingGroup:
        group = self.groups.get(group_id)
        if group is None:
            raise NotFoundError("Group not found")
        return group

    def create(
        self,
        name: str,
        pickup_location: str,
        target_pickup_time: datetime,
        creator_id: uuid.UUID,
        coordinates: Optional[Coordinates] = None,
        min_members: Optional[int] = None,
        max_members: Optional[int] = None,
        initial_items: Optional[List[OrderLine]] = None,
    ) -> BuyingGroup:
        """
        Open a group with the creator as its first confirmed member.

        The creator's initial items become a PAY_LATER group order. Members
        have confirmation_window_minutes to gather before joins close.
        """
        min_members = min_members if min_members is not None else settings.default_min_members
        max_members = max_members if max_members is not None else settings.default_max_members
        if min_members < 1 or max_members < min_members:
            raise InvalidAmountError("Member bounds must satisfy 1 <= min_members <= max_members")

        def work() -> BuyingGroup:
            creator = self.buyers.get(creator_id)
            if creator is None:
                raise NotFoundError("Buyer not found")

            now = self.clock()
            group = self.groups.create_group(
                name=name,
                pickup_location=pickup_location,
                pickup_latitude=coordinates.latitude if coordinates else None,
                pickup_longitude=coordinates.longitude if coordinates else None,
                target_pickup_time=target_pickup_time,
                confirmation_deadline=minutes_from(now, settings.confirmation_window_minutes),
                min_members=min_members,
                max_members=max_members,
                member_count=0,
                status=GroupStatus.FORMING.value,
                created_by=creator.id,
                created_at=now,
            )
            self.groups.add_membership(group, creator.id, now)

            if initial_items:
                self.order_service.place(creator, initial_items, PaymentMethod.PAY_LATER, group)

            self.uow.broadcast(
                "new_group_formed",
                {
                    "group_id": str(group.id),
                    "name": group.name,
                    "pickup_location": group.pickup_location,
                    "created_by": creator.name,
                },
            )
            return group

        group = self.uow.run("group.create", work)
        group_transition_counter.labels(status=GroupStatus.FORMING.value).inc()
        log_transition("group", group.id, GroupStatus.FORMING.value, buyer_id=str(creator_id))
        return group

    def join(self, group_id: uuid.UUID, buyer_id: uuid.UUID) -> BuyingGroup:
        def work() -> BuyingGroup:
            group = self.get(group_id)
            buyer = self.buyers.get(buyer_id)
            if buyer is None:
                raise NotFoundError("Buyer not found")
            if group.status != GroupStatus.FORMING:
                raise InvalidStateError("Group is not accepting new members")
            if group.member_count >= group.max_members:
                raise GroupFullError("Group is full")

            now = self.clock()
            if now > group.confirmation_deadline:
                raise DeadlinePassedError("Group confirmation deadline has passed")
            if self.groups.get_membership(group.id, buyer.id) is not None:
                raise DuplicateMembershipError("Already a member of this group")

            self.groups.add_membership(group, buyer.id, now)
            self.uow.notify(
                group.id,
                "member_joined",
                {"buyer_id": str(buyer.id), "buyer_name": buyer.name, "member_count": group.member_count},
            )
            return group

        group = self.uow.run(
            "group.join",
            work,
            on_integrity_error=lambda: DuplicateMembershipError("Already a member of this group"),
        )
        membership_counter.labels(change="joined").inc()
        logger.info("Member joined", extra={"group_id": str(group_id), "buyer_id": str(buyer_id)})
        return group

    def leave(self, group_id: uuid.UUID, buyer_id: uuid.UUID) -> BuyingGroup:
        """
        Remove a member; the group is cancelled once it drops below min_members.

        The member's orders stay attached to the group.
        """

        def work() -> BuyingGroup:
            membership = self.groups.get_membership(group_id, buyer_id)
            if membership is None:
                raise NotFoundError("Not a member of this group")
            group = membership.group
            if group.status != GroupStatus.FORMING:
                raise InvalidStateError("Membership is frozen once the group leaves FORMING")

            self.groups.remove_membership(group, membership)

            if group.member_count < group.min_members:
                group.status = GroupStatus.CANCELLED.value
                self.uow.notify(group.id, "group_cancelled", {"reason": "Insufficient members"})
            else:
                self.uow.notify(
                    group.id,
                    "member_left",
                    {"buyer_id": str(buyer_id), "member_count": group.member_count},
                )
            return group

        group = self.uow.run("group.leave", work)
        membership_counter.labels(change="left").inc()
        if group.status == GroupStatus.CANCELLED:
            group_transition_counter.labels(status=GroupStatus.CANCELLED.value).inc()
            log_transition("group", group.id, GroupStatus.CANCELLED.value, reason="insufficient_members")
        return group

    def confirm(self, group_id: uuid.UUID) -> BuyingGroup:
        """Close membership and open the group's consolidated demand to suppliers"""

        def work() -> BuyingGroup:
            group = self.get(group_id)
            if group.status != GroupStatus.FORMING:
                raise InvalidStateError("Group is not in FORMING status")
            if group.member_count < group.min_members:
                raise InsufficientMembersError(f"Need at least {group.min_members} members to confirm")

            total = sum(order.total_amount_cents for order in live_orders(group))
            group.total_value_cents = total
            group.estimated_savings_cents = round(total * settings.estimated_savings_rate)
            group.status = GroupStatus.CONFIRMED.value

            self.uow.broadcast(
                "group_ready_for_bids",
                {
                    "group_id": str(group.id),
                    "name": group.name,
                    "total_value_cents": total,
                    "pickup_location": group.pickup_location,
                },
            )
            self.uow.notify(
                group.id,
                "group_confirmed",
                {"total_value_cents": total, "estimated_savings_cents": group.estimated_savings_cents},
            )
            return group

        group = self.uow.run("group.confirm", work)
        group_transition_counter.labels(status=GroupStatus.CONFIRMED.value).inc()
        log_transition(
            "group",
            group.id,
            GroupStatus.CONFIRMED.value,
            total_value_cents=group.total_value_cents,
            member_count=group.member_count,
        )
        return group

    def suggestions(
        self,
        buyer_id: uuid.UUID,
        coordinates: Optional[Coordinates] = None,
        radius_km: Optional[float] = None,
    ) -> List[BuyingGroup]:
        """Open groups the buyer could join, nearest pickup within radius_km when coordinates are given"""
        if self.buyers.get(buyer_id) is None:
            raise NotFoundError("Buyer not found")

        radius = radius_km if radius_km is not None else settings.suggestion_radius_km
        joined = self.groups.group_ids_for_buyer(buyer_id)

        suggested = []
        for group in self.groups.list_forming(self.clock()):
            if group.id in joined:
                continue
            if coordinates is not None and not within_radius(coordinates, pickup_coordinates(group), radius):
                continue
            suggested.append(group)
        return suggested

    def consolidate(self, group_id: uuid.UUID) -> List[ConsolidatedLine]:
        return consolidate_orders(live_orders(self.get(group_id)))
