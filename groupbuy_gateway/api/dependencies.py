"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends
from sqlalchemy.orm import Session

from groupbuy_gateway.infrastructure.clients.payment_gateway import PaymentGateway, SimulatedPaymentGateway
from groupbuy_gateway.infrastructure.database.session import get_db
from groupbuy_gateway.infrastructure.notifications.notifier import Notifier, build_notifier
from groupbuy_gateway.services.bidding import BiddingService
from groupbuy_gateway.services.credit import CreditLedgerService
from groupbuy_gateway.services.groups import GroupService
from groupbuy_gateway.services.orders import OrderService
from groupbuy_gateway.utils.date_utils import Clock, utcnow


def get_notifier() -> Notifier:
    """Provide the configured event notifier"""
    return build_notifier()


def get_payment_gateway() -> PaymentGateway:
    return SimulatedPaymentGateway()


def get_clock() -> Clock:
    return utcnow


def get_group_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> GroupService:
    return GroupService(db, notifier, clock=clock)


def get_order_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> OrderService:
    return OrderService(db, notifier, clock=clock)


def get_bidding_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> BiddingService:
    return BiddingService(db, notifier, clock=clock)


def get_credit_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
) -> CreditLedgerService:
    return CreditLedgerService(db, notifier, gateway=gateway, clock=clock)
