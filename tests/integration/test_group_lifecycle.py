"""Integration tests for the buying group lifecycle"""

from datetime import timedelta

import pytest

from groupbuy_gateway.domain.exceptions import (
    DeadlinePassedError,
    DuplicateMembershipError,
    GroupFullError,
    InsufficientMembersError,
    InvalidAmountError,
    InvalidStateError,
    NotFoundError,
)
from groupbuy_gateway.domain.models import Coordinates, GroupStatus, OrderType, PaymentMethod
from groupbuy_gateway.infrastructure.database.models import Order
from groupbuy_gateway.infrastructure.notifications.notifier import BROADCAST_CHANNEL


def test_create_makes_creator_first_member(forming_group, notifier, clock):
    assert forming_group.status == GroupStatus.FORMING
    assert forming_group.member_count == 1
    assert len(forming_group.memberships) == 1
    assert forming_group.memberships[0].buyer_id == forming_group.created_by
    assert forming_group.memberships[0].is_confirmed is True
    assert forming_group.confirmation_deadline == clock() + timedelta(minutes=30)
    assert (BROADCAST_CHANNEL, "new_group_formed") in [(c, e) for c, e, _ in notifier.events]


def test_create_with_initial_items_places_pay_later_group_order(group_service, make_buyer, line, db, clock):
    creator = make_buyer(used_credit_cents=0)

    group = group_service.create(
        name="Parel bulk",
        pickup_location="Parel depot",
        target_pickup_time=clock() + timedelta(hours=20),
        creator_id=creator.id,
        initial_items=[line("onion", 10, 3_000)],
    )

    orders = db.query(Order).filter(Order.group_id == group.id).all()
    assert len(orders) == 1
    assert orders[0].order_type == OrderType.GROUP
    assert orders[0].payment_method == PaymentMethod.PAY_LATER
    assert orders[0].total_amount_cents == 30_000
    db.refresh(creator)
    assert creator.used_credit_cents == 30_000


def test_create_rejects_bad_member_bounds(group_service, make_buyer, clock):
    creator = make_buyer()

    with pytest.raises(InvalidAmountError):
        group_service.create(
            name="Broken",
            pickup_location="Nowhere",
            target_pickup_time=clock() + timedelta(days=1),
            creator_id=creator.id,
            min_members=5,
            max_members=3,
        )


def test_create_requires_existing_creator(group_service, clock):
    import uuid

    with pytest.raises(NotFoundError):
        group_service.create(
            name="Ghost",
            pickup_location="Nowhere",
            target_pickup_time=clock() + timedelta(days=1),
            creator_id=uuid.uuid4(),
        )


def test_scenario_a_three_members_confirm(forming_group, group_service, make_buyer, notifier):
    """min 3 / max 5: creator plus two joins can confirm"""
    for _ in range(2):
        group_service.join(forming_group.id, make_buyer().id)

    group = group_service.confirm(forming_group.id)

    assert group.status == GroupStatus.CONFIRMED
    assert group.member_count == 3
    assert "group_ready_for_bids" in notifier.names()
    assert "group_confirmed" in notifier.names()


def test_scenario_b_two_members_cannot_confirm(forming_group, group_service, make_buyer):
    group_service.join(forming_group.id, make_buyer().id)

    with pytest.raises(InsufficientMembersError):
        group_service.confirm(forming_group.id)

    assert group_service.get(forming_group.id).status == GroupStatus.FORMING


def test_confirm_twice_is_invalid_state_and_keeps_totals(
    forming_group, group_service, order_service, make_buyer, line
):
    members = [make_buyer(), make_buyer()]
    for member in members:
        group_service.join(forming_group.id, member.id)
    order_service.create(members[0].id, [line("onion", 10, 3_000)], group_id=forming_group.id)
    order_service.create(members[1].id, [line("oil", 2, 12_000)], group_id=forming_group.id)

    group = group_service.confirm(forming_group.id)
    assert group.total_value_cents == 54_000
    assert group.estimated_savings_cents == 8_100

    with pytest.raises(InvalidStateError):
        group_service.confirm(forming_group.id)

    assert group_service.get(forming_group.id).total_value_cents == 54_000


def test_join_full_group(forming_group, group_service, make_buyer):
    for _ in range(4):
        group_service.join(forming_group.id, make_buyer().id)

    with pytest.raises(GroupFullError):
        group_service.join(forming_group.id, make_buyer().id)

    assert group_service.get(forming_group.id).member_count == 5


def test_join_after_deadline(forming_group, group_service, make_buyer, clock):
    clock.advance(minutes=31)

    with pytest.raises(DeadlinePassedError):
        group_service.join(forming_group.id, make_buyer().id)


def test_join_twice(forming_group, group_service, make_buyer):
    buyer = make_buyer()
    group_service.join(forming_group.id, buyer.id)

    with pytest.raises(DuplicateMembershipError):
        group_service.join(forming_group.id, buyer.id)

    assert group_service.get(forming_group.id).member_count == 2


def test_join_unknown_group_or_buyer(forming_group, group_service, make_buyer):
    import uuid

    with pytest.raises(NotFoundError):
        group_service.join(uuid.uuid4(), make_buyer().id)
    with pytest.raises(NotFoundError):
        group_service.join(forming_group.id, uuid.uuid4())


def test_join_confirmed_group_is_invalid_state(forming_group, group_service, make_buyer):
    for _ in range(2):
        group_service.join(forming_group.id, make_buyer().id)
    group_service.confirm(forming_group.id)

    with pytest.raises(InvalidStateError):
        group_service.join(forming_group.id, make_buyer().id)


def test_leave_below_minimum_cancels(forming_group, group_service, make_buyer, notifier):
    buyers = [make_buyer(), make_buyer(), make_buyer()]
    for buyer in buyers:
        group_service.join(forming_group.id, buyer.id)

    group = group_service.leave(forming_group.id, buyers[0].id)
    assert group.status == GroupStatus.FORMING
    assert group.member_count == 3
    assert notifier.names()[-1] == "member_left"

    group = group_service.leave(forming_group.id, buyers[1].id)
    assert group.status == GroupStatus.CANCELLED
    assert group.member_count == 2
    assert notifier.names()[-1] == "group_cancelled"


def test_leave_without_membership(forming_group, group_service, make_buyer):
    with pytest.raises(NotFoundError):
        group_service.leave(forming_group.id, make_buyer().id)


def test_suggestions_exclude_joined_far_and_expired(group_service, make_buyer, clock):
    seeker = make_buyer()
    near_creator, far_creator = make_buyer(), make_buyer()
    dadar = Coordinates(19.0178, 72.8478)

    near = group_service.create(
        name="Near",
        pickup_location="Dadar",
        target_pickup_time=clock() + timedelta(days=1),
        creator_id=near_creator.id,
        coordinates=Coordinates(19.0190, 72.8450),
    )
    group_service.create(
        name="Far",
        pickup_location="Andheri",
        target_pickup_time=clock() + timedelta(days=1),
        creator_id=far_creator.id,
        coordinates=Coordinates(19.1136, 72.8697),
    )
    mine = group_service.create(
        name="Mine",
        pickup_location="Dadar",
        target_pickup_time=clock() + timedelta(days=1),
        creator_id=seeker.id,
        coordinates=dadar,
    )

    suggested = group_service.suggestions(seeker.id, dadar, radius_km=2.0)
    assert [g.id for g in suggested] == [near.id]

    everywhere = {g.id for g in group_service.suggestions(seeker.id)}
    assert near.id in everywhere
    assert mine.id not in everywhere
    assert len(everywhere) == 2

    clock.advance(minutes=45)
    assert group_service.suggestions(seeker.id) == []


def test_consolidate_group_orders(forming_group, group_service, order_service, make_buyer, line):
    member = make_buyer()
    group_service.join(forming_group.id, member.id)
    order_service.create(forming_group.created_by, [line("onion", 10, 3_000)], group_id=forming_group.id)
    order_service.create(member.id, [line("onion", 5, 3_200), line("oil", 2, 12_000)], group_id=forming_group.id)

    lines = group_service.consolidate(forming_group.id)

    assert [(l.unit, l.quantity, l.total_price_cents) for l in lines] == [("kg", 15, 46_000), ("l", 2, 24_000)]
    assert {c.buyer_id for c in lines[0].contributions} == {forming_group.created_by, member.id}
