"""/v1/credit/{buyer_id} - buyer trade credit endpoints"""

import uuid

from fastapi import APIRouter, Depends

from groupbuy_gateway.api.dependencies import get_credit_service
from groupbuy_gateway.api.v1.schemas import (
    CreditIncreaseRequest,
    CreditIncreaseResponse,
    CreditStatusResponse,
    PaymentResponse,
    RepaymentRequest,
)
from groupbuy_gateway.services.credit import CreditLedgerService

router = APIRouter()


@router.get("/credit/{buyer_id}", response_model=CreditStatusResponse)
def credit_status(buyer_id: uuid.UUID, service: CreditLedgerService = Depends(get_credit_service)):
    """
    Credit position of a buyer.

    Returns:
        Limit, usage, the 10 latest ledger entries and overdue exposure
    """
    return service.status(buyer_id)


@router.post("/credit/{buyer_id}/repay", response_model=PaymentResponse)
def repay_credit(
    buyer_id: uuid.UUID,
    request_body: RepaymentRequest,
    service: CreditLedgerService = Depends(get_credit_service),
):
    return service.repay(buyer_id, request_body.amount_cents, request_body.method)


@router.post("/credit/{buyer_id}/increase", response_model=CreditIncreaseResponse)
def request_credit_increase(
    buyer_id: uuid.UUID,
    request_body: CreditIncreaseRequest,
    service: CreditLedgerService = Depends(get_credit_service),
):
    return service.request_increase(buyer_id, request_body.requested_cents, request_body.reason)
