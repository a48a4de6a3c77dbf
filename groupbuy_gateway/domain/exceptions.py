"""Domain-specific exceptions

Every failure of a core operation is raised as one of these. ``kind`` is the
stable name the transport layer maps to a response.
"""


class DomainException(Exception):
    """Base exception for domain layer"""

    kind = "DomainError"


class NotFoundError(DomainException):
    """Referenced group, order, bid, buyer or supplier does not exist"""

    kind = "NotFound"


class InvalidStateError(DomainException):
    """Entity is in a status that forbids the operation"""

    kind = "InvalidState"


class InsufficientMembersError(DomainException):
    """Group confirmation attempted below the minimum member count"""

    kind = "InsufficientMembers"


class GroupFullError(DomainException):
    """Join attempted on a group already at its member cap"""

    kind = "Full"


class DeadlinePassedError(DomainException):
    """Join or bid attempted after the relevant deadline"""

    kind = "DeadlinePassed"


class DuplicateMembershipError(DomainException):
    """Buyer is already a member of the group"""

    kind = "DuplicateMembership"


class DuplicateBidError(DomainException):
    """Supplier already has a bid on the order or group"""

    kind = "DuplicateBid"


class InvalidAmountError(DomainException):
    """Amount is non-positive or exceeds what the ledger allows"""

    kind = "InvalidAmount"


class UnavailableError(DomainException):
    """Persistence or payment collaborator failed; aggregate left unchanged"""

    kind = "Unavailable"


class PaymentDeclinedError(UnavailableError):
    """Payment gateway refused or could not confirm a payment"""
