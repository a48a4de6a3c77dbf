"""Bid expiry and ranking

Expiry is lazy: a bid past ``valid_until`` is read as EXPIRED wherever it is
looked at, with no background sweep.
"""

from datetime import datetime
from typing import Iterable, List

from groupbuy_gateway.domain.models import BidStatus


def is_expired(bid, now: datetime) -> bool:
    return bid.status == BidStatus.PENDING and now > bid.valid_until


def effective_status(bid, now: datetime) -> BidStatus:
    if is_expired(bid, now):
        return BidStatus.EXPIRED
    return BidStatus(bid.status)


def rank_bids(bids: Iterable) -> List:
    """Cheapest first; earlier bids win ties"""
    return sorted(bids, key=lambda b: (b.total_amount_cents, b.created_at))
