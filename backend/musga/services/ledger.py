"""
Ledger Service

Checkout, confirmation and bookkeeping for license sales.

Transaction lifecycle:
    PENDING --(gateway success)--> COMPLETED
    PENDING --(gateway failure)--> FAILED

Money amounts are fixed at checkout (amount == platform_fee + seller_amount)
and never recomputed. An exclusive track is marked sold by a single
conditional UPDATE at confirmation time, so at most one transaction per
exclusive track can ever complete.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple
from uuid import uuid4

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from ..config import PLATFORM_FEE_RATE
from ..errors import Conflict, Forbidden, InvalidArgument, InvalidState, NotFound
from ..models.db_models import (
    AccountDB, LicenseTransactionDB, LicensingType, ProcessingStatus, TrackDB, TransactionStatus,
)
from .pagination import Page, paginate
from .payment_gateway import PaymentGateway, PaymentOutcome

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

FAILURE_PAYMENT_DECLINED = "Payment failed"
FAILURE_EXCLUSIVE_TAKEN = "Exclusive license already sold"


def compute_fee_split(price: Decimal, rate: Decimal = PLATFORM_FEE_RATE) -> Tuple[Decimal, Decimal]:
    """
    Split a sale price into (platform_fee, seller_amount).

    The fee is rounded half-up to cents; the seller gets the exact remainder.
    """
    amount = Decimal(price).quantize(CENT, rounding=ROUND_HALF_UP)
    fee = (amount * Decimal(rate)).quantize(CENT, rounding=ROUND_HALF_UP)
    return fee, amount - fee


@dataclass
class PurchaseIntent:
    """What the buyer's client needs to complete payment."""
    client_secret: str
    amount: Decimal
    transaction: LicenseTransactionDB


@dataclass
class EarningsSummary:
    total_earnings: Decimal
    total_sales: int


class LedgerService:

    def __init__(self, db: Session, gateway: PaymentGateway, fee_rate: Decimal = PLATFORM_FEE_RATE):
        self.db = db
        self.gateway = gateway
        self.fee_rate = Decimal(fee_rate)

    # =========================================================================
    # CHECKOUT
    # =========================================================================

    def initiate_purchase(self, track_id: str, buyer_id: str) -> PurchaseIntent:
        """
        Open a PENDING transaction for `buyer_id` on `track_id`.

        No money moves here; the client completes payment with the returned
        secret and then calls confirm_purchase.
        """
        # Row lock on databases that support it; availability is re-read under it
        track = self.db.query(TrackDB).filter(TrackDB.id == track_id).with_for_update().first()
        if track is None:
            raise NotFound("Vocal not found")
        if track.is_sold and track.licensing_type == LicensingType.EXCLUSIVE:
            raise Conflict("This vocal has already been sold exclusively")
        if not track.is_active:
            raise NotFound("Vocal not found")
        if track.processing_status != ProcessingStatus.READY:
            raise InvalidState("This vocal is still being processed")

        buyer = self.db.query(AccountDB).filter(
            AccountDB.id == buyer_id,
            AccountDB.is_active.is_(True),
        ).first()
        if buyer is None:
            raise NotFound("Buyer not found")

        if track.singer_id == buyer.id:
            raise InvalidArgument("You cannot purchase your own vocal")

        amount = Decimal(track.price).quantize(CENT, rounding=ROUND_HALF_UP)
        fee, seller_amount = compute_fee_split(amount, self.fee_rate)

        intent = self.gateway.create_intent(amount)

        transaction = LicenseTransactionDB(
            id=str(uuid4()),
            vocal_id=track.id,
            buyer_id=buyer.id,
            seller_id=track.singer_id,
            amount=amount,
            platform_fee=fee,
            seller_amount=seller_amount,
            gateway_ref=intent.ref,
            licensing_type=track.licensing_type,
            status=TransactionStatus.PENDING,
        )
        self.db.add(transaction)
        self.db.commit()
        self.db.refresh(transaction)

        logger.info(
            f"Purchase initiated: txn={transaction.id} vocal={track.id} buyer={buyer.id} "
            f"amount={amount} fee={fee}"
        )
        return PurchaseIntent(client_secret=intent.client_secret, amount=amount, transaction=transaction)

    def confirm_purchase(self, gateway_ref: str, requester: Optional[AccountDB] = None) -> LicenseTransactionDB:
        """
        Settle a PENDING transaction from the gateway's outcome.

        A gateway decline, or losing the race for an exclusive track, ends the
        transaction FAILED and is returned rather than raised.
        """
        transaction = self.db.query(LicenseTransactionDB).filter(
            LicenseTransactionDB.gateway_ref == gateway_ref
        ).first()
        if transaction is None:
            raise NotFound("Transaction not found")
        if requester is not None and requester.id != transaction.buyer_id:
            raise Forbidden("Only the buyer can confirm this payment")
        if transaction.status != TransactionStatus.PENDING:
            raise InvalidState("Transaction is not pending")

        outcome = self.gateway.get_outcome(gateway_ref)

        status = TransactionStatus.FAILED
        reason: Optional[str] = FAILURE_PAYMENT_DECLINED
        if outcome == PaymentOutcome.SUCCEEDED:
            status, reason = TransactionStatus.COMPLETED, None
            if transaction.licensing_type == LicensingType.EXCLUSIVE:
                claimed = self.db.execute(
                    update(TrackDB)
                    .where(TrackDB.id == transaction.vocal_id, TrackDB.is_sold.is_(False))
                    .values(is_sold=True, is_active=False)
                    .execution_options(synchronize_session=False)
                )
                if claimed.rowcount == 0:
                    status, reason = TransactionStatus.FAILED, FAILURE_EXCLUSIVE_TAKEN
            else:
                # Non-exclusive checkout on a track since sold exclusively
                sold = self.db.query(TrackDB.is_sold).filter(TrackDB.id == transaction.vocal_id).scalar()
                if sold:
                    status, reason = TransactionStatus.FAILED, FAILURE_EXCLUSIVE_TAKEN

        settled = self.db.execute(
            update(LicenseTransactionDB)
            .where(
                LicenseTransactionDB.id == transaction.id,
                LicenseTransactionDB.status == TransactionStatus.PENDING,
            )
            .values(status=status, failure_reason=reason)
            .execution_options(synchronize_session=False)
        )
        if settled.rowcount == 0:
            # Another confirmation settled it first; undo the track claim
            self.db.rollback()
            raise InvalidState("Transaction is not pending")

        if status == TransactionStatus.COMPLETED:
            self.db.execute(
                update(TrackDB)
                .where(TrackDB.id == transaction.vocal_id)
                .values(download_count=TrackDB.download_count + 1)
                .execution_options(synchronize_session=False)
            )

        self.db.commit()
        self.db.refresh(transaction)
        if transaction.vocal is not None:
            self.db.refresh(transaction.vocal)

        if status == TransactionStatus.COMPLETED:
            logger.info(f"Purchase completed: txn={transaction.id} vocal={transaction.vocal_id}")
        else:
            logger.info(f"Purchase failed: txn={transaction.id} vocal={transaction.vocal_id} reason={reason!r}")
        return transaction

    # =========================================================================
    # READ SIDE
    # =========================================================================

    def list_purchases(self, buyer_id: str, page: int = 1, page_size: int = 20) -> Page:
        query = self.db.query(LicenseTransactionDB).filter(
            LicenseTransactionDB.buyer_id == buyer_id,
            LicenseTransactionDB.status == TransactionStatus.COMPLETED,
        ).order_by(LicenseTransactionDB.created_at.desc(), LicenseTransactionDB.id.desc())
        return paginate(query, page, page_size)

    def list_sales(
        self,
        seller_id: str,
        page: int = 1,
        page_size: int = 20,
        track_id: Optional[str] = None,
    ) -> Page:
        query = self.db.query(LicenseTransactionDB).filter(
            LicenseTransactionDB.seller_id == seller_id,
            LicenseTransactionDB.status == TransactionStatus.COMPLETED,
        )
        if track_id:
            query = query.filter(LicenseTransactionDB.vocal_id == track_id)
        query = query.order_by(LicenseTransactionDB.created_at.desc(), LicenseTransactionDB.id.desc())
        return paginate(query, page, page_size)

    def earnings_summary(self, seller_id: str) -> EarningsSummary:
        total, count = self.db.query(
            func.coalesce(func.sum(LicenseTransactionDB.seller_amount), 0),
            func.count(LicenseTransactionDB.id),
        ).filter(
            LicenseTransactionDB.seller_id == seller_id,
            LicenseTransactionDB.status == TransactionStatus.COMPLETED,
        ).one()
        return EarningsSummary(
            total_earnings=Decimal(str(total or 0)).quantize(CENT, rounding=ROUND_HALF_UP),
            total_sales=int(count or 0),
        )

    def resolve_download_path(self, track_id: str, buyer_id: str) -> str:
        """Master file path for a track the buyer holds a completed license for."""
        transaction = self.db.query(LicenseTransactionDB).filter(
            LicenseTransactionDB.vocal_id == track_id,
            LicenseTransactionDB.buyer_id == buyer_id,
            LicenseTransactionDB.status == TransactionStatus.COMPLETED,
        ).first()
        if transaction is None or transaction.vocal is None:
            raise NotFound("Purchase not found or not completed")
        return transaction.vocal.file_path
