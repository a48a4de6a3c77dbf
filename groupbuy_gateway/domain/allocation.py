"""Pro-rata split of a group bid across member orders"""

from typing import List


def split_pro_rata(total_cents: int, weights_cents: List[int]) -> List[int]:
    """
    Split total_cents proportionally to weights_cents.

    Requirements:
    - Shares sum exactly to total_cents
    - Last share absorbs the rounding remainder
    - All-zero weights fall back to an equal split

    Example:
        900 split over [600, 300, 100] → [540, 270, 90]
        1000 split over [1, 1, 1]      → [333, 333, 334]
    """
    if not weights_cents:
        return []

    weight_total = sum(weights_cents)
    if weight_total <= 0:
        weights_cents = [1] * len(weights_cents)
        weight_total = len(weights_cents)

    shares = [total_cents * w // weight_total for w in weights_cents[:-1]]
    shares.append(total_cents - sum(shares))
    return shares
