"""Payment gateway client used to confirm credit repayments

Real settlement is out of scope; the simulated gateway confirms every
payment immediately with a generated reference.
"""

import uuid
from typing import Protocol

from groupbuy_gateway.domain.exceptions import PaymentDeclinedError


class PaymentGateway(Protocol):
    def capture(self, payment) -> str:
        """
        Confirm a PROCESSING payment.

        Returns:
            Gateway payment reference

        Raises:
            PaymentDeclinedError: payment was refused or could not be confirmed
        """
        ...


class SimulatedPaymentGateway:
    """Confirms every payment of a positive amount"""

    def capture(self, payment) -> str:
        if payment.amount_cents <= 0:
            raise PaymentDeclinedError("Amount must be positive")
        return f"pay_{uuid.uuid4().hex[:14]}"
