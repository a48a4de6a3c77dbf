"""Order consolidation - per-member order lines folded into per-product demand"""

from typing import Dict, Iterable, List, Tuple

from groupbuy_gateway.domain.models import ConsolidatedLine, Contribution


def consolidate_orders(orders: Iterable) -> List[ConsolidatedLine]:
    """
    Aggregate order items by (product_id, unit).

    Accepts any objects exposing ``buyer_id`` and ``items`` (each item with
    ``product_id``, ``unit``, ``quantity`` and ``total_price_cents``), so ORM
    rows and plain test doubles both work.

    Lines keep first-seen order; each line records every contributing buyer
    so suppliers and members can see who asked for what.

    Example:
        A: 10 kg onions (₹300), B: 5 kg onions (₹160), B: 2 l oil (₹240)
        → [onions/kg 15 ₹460 (A 10, B 5), oil/l 2 ₹240 (B 2)]
    """
    consolidated: Dict[Tuple, ConsolidatedLine] = {}

    for order in orders:
        for item in order.items:
            key = (item.product_id, item.unit)
            line = consolidated.get(key)
            if line is None:
                line = ConsolidatedLine(
                    product_id=item.product_id,
                    unit=item.unit,
                    quantity=0,
                    total_price_cents=0,
                )
                consolidated[key] = line

            line.quantity += item.quantity
            line.total_price_cents += item.total_price_cents
            line.contributions.append(
                Contribution(
                    buyer_id=order.buyer_id,
                    quantity=item.quantity,
                    price_cents=item.total_price_cents,
                )
            )

    return list(consolidated.values())
