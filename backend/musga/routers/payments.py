"""
Musga - Payments API Router

Checkout, confirmation, purchase/sales history, earnings and licensed downloads.
All endpoints require authentication.
"""
import logging
import os
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse
from pydantic import AliasChoices, Field
from sqlalchemy.orm import Session

from ..auth import get_current_account
from ..config import DEFAULT_PAGE_SIZE
from ..database import get_db
from ..errors import NotFound
from ..models.db_models import AccountDB, LicensingType, TransactionStatus
from ..services.ledger import LedgerService
from ..services.payment_gateway import PaymentGateway, get_payment_gateway
from .common import CamelModel, Money, PaginatedResponse, TrackResponse, paginated

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class CreatePaymentIntentRequest(CamelModel):
    track_id: str = Field(..., min_length=1, validation_alias=AliasChoices("trackId", "vocalId", "track_id"))


class PaymentIntentResponse(CamelModel):
    client_secret: str
    amount: Money
    transaction_id: str


class TransactionResponse(CamelModel):
    id: str
    vocal_id: str
    buyer_id: str
    seller_id: str
    amount: Money
    platform_fee: Money
    seller_amount: Money
    gateway_ref: str
    licensing_type: LicensingType
    status: TransactionStatus
    failure_reason: Optional[str] = None
    refund_id: Optional[str] = None
    created_at: Optional[datetime] = None
    vocal: Optional[TrackResponse] = None


class ConfirmPaymentResponse(CamelModel):
    success: bool
    transaction: TransactionResponse
    reason: Optional[str] = None


class EarningsResponse(CamelModel):
    total_earnings: Money
    total_sales: int


def get_ledger(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> LedgerService:
    return LedgerService(db, gateway)


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/create-payment-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    request: CreatePaymentIntentRequest,
    current_account: AccountDB = Depends(get_current_account),
    ledger: LedgerService = Depends(get_ledger),
):
    """
    Start checkout for a track. No funds move until confirmation.
    """
    intent = ledger.initiate_purchase(request.track_id, current_account.id)
    return PaymentIntentResponse(
        client_secret=intent.client_secret,
        amount=intent.amount,
        transaction_id=intent.transaction.id,
    )


@router.post("/confirm-payment/{gateway_ref}", response_model=ConfirmPaymentResponse)
async def confirm_payment(
    gateway_ref: str,
    current_account: AccountDB = Depends(get_current_account),
    ledger: LedgerService = Depends(get_ledger),
):
    """
    Settle a pending transaction.

    A declined payment is reported as success=false with a reason, not as an
    HTTP error, so clients can tell a decline from a bad request.
    """
    transaction = ledger.confirm_purchase(gateway_ref, requester=current_account)
    succeeded = transaction.status == TransactionStatus.COMPLETED
    return ConfirmPaymentResponse(
        success=succeeded,
        transaction=TransactionResponse.model_validate(transaction),
        reason=None if succeeded else transaction.failure_reason,
    )


@router.get("/purchases", response_model=PaginatedResponse[TransactionResponse])
async def get_purchases(
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    current_account: AccountDB = Depends(get_current_account),
    ledger: LedgerService = Depends(get_ledger),
):
    """
    Completed purchases made by the caller, newest first.
    """
    result = ledger.list_purchases(current_account.id, page, limit)
    return paginated(result, TransactionResponse)


@router.get("/sales", response_model=PaginatedResponse[TransactionResponse])
async def get_sales(
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    track_id: Optional[str] = Query(None, alias="trackId"),
    vocal_id: Optional[str] = Query(None, alias="vocalId"),
    current_account: AccountDB = Depends(get_current_account),
    ledger: LedgerService = Depends(get_ledger),
):
    """
    Completed sales of the caller's tracks, optionally for one track.
    """
    result = ledger.list_sales(current_account.id, page, limit, track_id=track_id or vocal_id)
    return paginated(result, TransactionResponse)


@router.get("/earnings", response_model=EarningsResponse)
async def get_earnings(
    current_account: AccountDB = Depends(get_current_account),
    ledger: LedgerService = Depends(get_ledger),
):
    """
    Seller's net earnings and number of completed sales.
    """
    summary = ledger.earnings_summary(current_account.id)
    return EarningsResponse(total_earnings=summary.total_earnings, total_sales=summary.total_sales)


@router.get("/download/{track_id}")
def download_vocal(
    track_id: str,
    current_account: AccountDB = Depends(get_current_account),
    ledger: LedgerService = Depends(get_ledger),
):
    """
    Stream the master file to a buyer holding a completed license.
    """
    file_path = ledger.resolve_download_path(track_id, current_account.id)
    if not os.path.exists(file_path):
        logger.error(f"Licensed master missing on disk for track {track_id}: {file_path}")
        raise NotFound("File not found")

    logger.info(f"Master download: track={track_id} buyer={current_account.id}")
    return FileResponse(
        file_path,
        media_type="audio/mpeg",
        filename=os.path.basename(file_path),
    )
