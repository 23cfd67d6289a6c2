"""
PhotoBazaar Backend: Purchases and Downloads
=============================================

What:  Creates purchases, drives them through pending → completed | failed,
       and grants counted downloads of the private original.
Why:   Money and download quotas live here only, behind conditional UPDATEs.
How:   Every state change is a conditional UPDATE whose WHERE clause restates
       the precondition, so two racing requests cannot both win:

    complete   WHERE status = 'pending'
    sell       WHERE sold = false                  (exclusive photos)
    download   WHERE status = 'completed'
                 AND download_count < max_downloads
                 AND (download_expires_at IS NULL OR download_expires_at > now)

       When an UPDATE matches nothing, the row is re-read to report which
       precondition failed.
Who:   Called by the purchase, photo and download routes.
When:  On every buy, payment callback and download request.

Completion drivers (PAYMENT_MODE):
    instant   the purchase request completes the purchase in the same
              transaction
    webhook   the purchase stays pending until POST
              /api/purchases/{id}/payment-callback arrives with a valid
              HMAC-SHA256 signature; replays are no-ops

Money:
    commission = round(amount * COMMISSION_RATE, 2) (half-up)
    photographer_earning = amount - commission
    The photographer's total_earnings/total_sales move by one atomic UPDATE
    at completion.
"""

import hashlib
import hmac
import logging
import uuid
from datetime import timedelta
from pathlib import Path
from typing import Optional, Tuple

from sqlalchemy import desc, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from photobazaar.config import settings
from photobazaar.exceptions import (
    AlreadyPurchasedError,
    AuthenticationError,
    DownloadExpiredError,
    DownloadLimitExceededError,
    InvalidOperationError,
    NotFoundError,
    PhotoUnavailableError,
    PurchaseRequiredError,
    ValidationError,
)
from photobazaar.models.photo import Photo
from photobazaar.models.purchase import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUSES,
    Purchase,
)
from photobazaar.models.user import User
from photobazaar.schemas.common import Pagination
from photobazaar.schemas.photo import PurchaseStatus
from photobazaar.schemas.purchase import (
    DownloadGrant,
    PaymentCallback,
    PurchasePage,
    PurchaseResponse,
    SalesPage,
    SalesSummary,
)
from photobazaar.security.policy import Action, authorize
from photobazaar.security.tokens import (
    DOWNLOAD,
    create_download_token,
    decode_token,
    token_subject,
)
from photobazaar.services.file_service import file_service
from photobazaar.services.photo_query import purchase_info
from photobazaar.utils import (
    generate_transaction_id,
    pagination_meta,
    safe_filename,
    split_commission,
    utcnow,
)

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Payment-Signature"


def sign_payload(body: bytes, secret: Optional[str] = None) -> str:
    """Hex HMAC-SHA256 of a callback body, as the payment provider sends it."""
    key = (secret or settings.payment_webhook_secret).encode("utf-8")
    return hmac.new(key, body, hashlib.sha256).hexdigest()


class PurchaseService:
    """
    Purchase lifecycle and download accounting.

    Responsibilities:
        - create_purchase(): open (and in instant mode complete) a purchase
        - complete_purchase() / fail_purchase(): state transitions
        - handle_payment_callback(): signed provider callback
        - grant_download() / resolve_download(): counted download, then the file
        - get_purchase(), list_purchases(), list_sales(), get_purchase_status()

    Error Handling Strategy:
        Preconditions raise application exceptions (PhotoUnavailableError,
        AlreadyPurchasedError, DownloadLimitExceededError, ...) before any
        write where possible. When a conditional UPDATE matches no row the
        purchase is re-read and the failed precondition is raised instead.
        Unique-key races on (buyer, photo) are caught inside a SAVEPOINT and
        resolved against the row that won. Nothing commits here; the request
        session commits or rolls back as a whole.
    """

    # ── Lookups ───────────────────────────────────────────────────────────

    async def _find(self, db: AsyncSession, buyer_id: uuid.UUID, photo_id: uuid.UUID) -> Optional[Purchase]:
        return await db.scalar(
            select(Purchase).where(Purchase.buyer_id == buyer_id, Purchase.photo_id == photo_id)
        )

    async def _get(self, db: AsyncSession, purchase_id: uuid.UUID) -> Purchase:
        purchase = await db.get(Purchase, purchase_id)
        if purchase is None:
            raise NotFoundError(resource="Purchase", resource_id=str(purchase_id))
        return purchase

    # ── Creation ──────────────────────────────────────────────────────────

    def _price(self, purchase: Purchase, photo: Photo, payment_method: str) -> None:
        commission, earning = split_commission(photo.price, settings.commission_rate)
        purchase.amount = photo.price
        purchase.commission = commission
        purchase.photographer_earning = earning
        purchase.payment_method = payment_method

    async def create_purchase(
        self,
        db: AsyncSession,
        buyer: User,
        photo_id: uuid.UUID,
        payment_method: str = "credit_card",
    ) -> Purchase:
        """
        Open (and in instant mode, complete) a purchase of one photo.

        Raises:
            NotFoundError: photo missing or inactive
            InvalidOperationError: buyer owns the photo
            PhotoUnavailableError: exclusive photo already sold
            AlreadyPurchasedError: buyer holds a completed purchase
        """
        photo = await db.scalar(select(Photo).where(Photo.id == photo_id, Photo.is_active.is_(True)))
        if photo is None:
            raise NotFoundError(resource="Photo", resource_id=str(photo_id))
        if photo.photographer_id == buyer.id:
            raise InvalidOperationError(
                "You cannot purchase your own photo",
                context={"photo_id": str(photo_id)},
            )
        if photo.is_exclusive and photo.sold:
            raise PhotoUnavailableError(context={"photo_id": str(photo_id)})

        purchase = await self._find(db, buyer.id, photo.id)
        if purchase is not None and purchase.status == STATUS_COMPLETED:
            raise AlreadyPurchasedError(context={"purchase_id": str(purchase.id)})

        if purchase is None:
            purchase = await self._insert(db, buyer, photo, payment_method)
        elif purchase.status == STATUS_PENDING:
            logger.info("Resubmitted pending purchase %s", purchase.id)
        else:
            # failed or refunded: retry on the same row
            self._price(purchase, photo, payment_method)
            purchase.status = STATUS_PENDING
            purchase.transaction_id = generate_transaction_id()
            purchase.purchased_at = utcnow()
            purchase.completed_at = None
            purchase.download_url = None
            purchase.download_expires_at = None
            purchase.download_count = 0
            purchase.max_downloads = settings.max_downloads
            await db.flush()
            logger.info("Retrying purchase %s", purchase.id)

        if settings.payment_mode == "instant":
            purchase = await self.complete_purchase(db, purchase)
            if purchase.status == STATUS_FAILED:
                raise PhotoUnavailableError(context={"photo_id": str(photo_id)})
        else:
            await db.refresh(purchase)
        return purchase

    async def _insert(self, db: AsyncSession, buyer: User, photo: Photo, payment_method: str) -> Purchase:
        """
        INSERT a pending purchase, tolerating a concurrent insert of the same pair.

        Returns:
            The new row, or the competing request's row if it is still pending.

        Raises:
            AlreadyPurchasedError: the competing row is already completed
        """
        purchase = Purchase(
            buyer_id=buyer.id,
            photo_id=photo.id,
            photographer_id=photo.photographer_id,
            status=STATUS_PENDING,
            transaction_id=generate_transaction_id(),
            max_downloads=settings.max_downloads,
        )
        self._price(purchase, photo, payment_method)
        try:
            async with db.begin_nested():
                db.add(purchase)
        except IntegrityError:
            # A concurrent request inserted (buyer, photo) first
            existing = await self._find(db, buyer.id, photo.id)
            if existing is None:
                raise
            if existing.status == STATUS_COMPLETED:
                raise AlreadyPurchasedError(context={"purchase_id": str(existing.id)})
            return existing

        logger.info(
            "Purchase created: %s buyer=%s photo=%s amount=%s commission=%s",
            purchase.id,
            buyer.id,
            photo.id,
            purchase.amount,
            purchase.commission,
        )
        return purchase

    # ── State Transitions ─────────────────────────────────────────────────

    async def complete_purchase(self, db: AsyncSession, purchase: Purchase) -> Purchase:
        """
        pending → completed. Idempotent: an already completed purchase is
        returned unchanged.

        For an exclusive photo that another buyer claimed first, the
        purchase is marked failed and returned with that status.
        """
        if purchase.status == STATUS_COMPLETED:
            return purchase
        if purchase.status != STATUS_PENDING:
            raise InvalidOperationError(
                f"A {purchase.status} purchase cannot be completed",
                context={"purchase_id": str(purchase.id)},
            )

        now = utcnow()
        transitioned = await db.execute(
            update(Purchase)
            .where(Purchase.id == purchase.id, Purchase.status == STATUS_PENDING)
            .values(
                status=STATUS_COMPLETED,
                completed_at=now,
                download_url=f"/api/purchases/{purchase.id}/download",
                download_expires_at=now + timedelta(days=settings.download_expiry_days),
            )
            .execution_options(synchronize_session=False)
        )
        if transitioned.rowcount == 0:
            # Another request moved it first; report whatever it became
            await db.refresh(purchase)
            return purchase

        photo = await db.get(Photo, purchase.photo_id)
        if photo is not None and photo.is_exclusive:
            claimed = await db.execute(
                update(Photo)
                .where(Photo.id == photo.id, Photo.sold.is_(False))
                .values(sold=True)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                await self._mark_failed(db, purchase.id)
                await db.refresh(purchase)
                logger.warning("Exclusive photo %s already sold; purchase %s failed", photo.id, purchase.id)
                return purchase

        await db.execute(
            update(User)
            .where(User.id == purchase.photographer_id)
            .values(
                total_earnings=User.total_earnings + purchase.photographer_earning,
                total_sales=User.total_sales + 1,
            )
            .execution_options(synchronize_session=False)
        )

        await db.refresh(purchase)
        if photo is not None:
            await db.refresh(photo, ["sold"])
        logger.info(
            "Purchase completed: %s photographer=%s earning=%s",
            purchase.id,
            purchase.photographer_id,
            purchase.photographer_earning,
        )
        return purchase

    async def _mark_failed(self, db: AsyncSession, purchase_id: uuid.UUID) -> int:
        result = await db.execute(
            update(Purchase)
            .where(Purchase.id == purchase_id)
            .values(
                status=STATUS_FAILED,
                completed_at=None,
                download_url=None,
                download_expires_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def fail_purchase(self, db: AsyncSession, purchase: Purchase, reason: Optional[str] = None) -> Purchase:
        """pending → failed. Idempotent for already failed purchases."""
        if purchase.status == STATUS_FAILED:
            return purchase
        if purchase.status != STATUS_PENDING:
            raise InvalidOperationError(
                f"A {purchase.status} purchase cannot be marked failed",
                context={"purchase_id": str(purchase.id)},
            )
        await db.execute(
            update(Purchase)
            .where(Purchase.id == purchase.id, Purchase.status == STATUS_PENDING)
            .values(status=STATUS_FAILED)
            .execution_options(synchronize_session=False)
        )
        await db.refresh(purchase)
        logger.info("Purchase failed: %s reason=%s", purchase.id, reason or "unspecified")
        return purchase

    def verify_signature(self, body: bytes, signature: Optional[str]) -> None:
        if not signature:
            raise AuthenticationError(f"Missing {SIGNATURE_HEADER} header")
        provided = signature.removeprefix("sha256=").strip()
        if not hmac.compare_digest(sign_payload(body), provided):
            logger.warning("Rejected payment callback with bad signature")
            raise AuthenticationError("Invalid payment signature")

    async def handle_payment_callback(
        self,
        db: AsyncSession,
        purchase_id: uuid.UUID,
        body: bytes,
        signature: Optional[str],
    ) -> Purchase:
        """
        Apply a payment provider callback to a pending purchase.

        Args:
            body: raw request body, exactly as signed
            signature: value of the X-Payment-Signature header

        Returns:
            The purchase after the transition. Replays return it unchanged.

        Raises:
            AuthenticationError: missing or wrong signature
            ValidationError: malformed body or transaction id mismatch
            InvalidOperationError: a completed purchase cannot be failed
        """
        self.verify_signature(body, signature)
        try:
            callback = PaymentCallback.model_validate_json(body)
        except ValueError as e:
            raise ValidationError(message="Malformed payment callback", context={"error": str(e)[:200]})

        purchase = await self._get(db, purchase_id)
        # Why: a valid signature for one purchase must not settle another
        if callback.transaction_id != purchase.transaction_id:
            raise ValidationError(
                message="Transaction ID does not match this purchase",
                field="transactionId",
            )

        if callback.status == STATUS_COMPLETED:
            return await self.complete_purchase(db, purchase)
        return await self.fail_purchase(db, purchase, callback.reason)

    # ── Downloads ─────────────────────────────────────────────────────────

    async def grant_download(
        self,
        db: AsyncSession,
        buyer: User,
        purchase_id: Optional[uuid.UUID] = None,
        photo_id: Optional[uuid.UUID] = None,
    ) -> DownloadGrant:
        """
        Count one download and return a short-lived URL for the original.

        Raises:
            PurchaseRequiredError: no completed purchase by this buyer
            DownloadLimitExceededError: download_count reached max_downloads
            DownloadExpiredError: the download window has closed
        """
        if purchase_id is not None:
            purchase = await db.get(Purchase, purchase_id)
            if purchase is None or purchase.buyer_id != buyer.id:
                raise NotFoundError(resource="Purchase", resource_id=str(purchase_id))
        else:
            purchase = await self._find(db, buyer.id, photo_id)
            if purchase is None:
                raise PurchaseRequiredError(context={"photo_id": str(photo_id)})

        now = utcnow()
        counted = await db.execute(
            update(Purchase)
            .where(
                Purchase.id == purchase.id,
                Purchase.status == STATUS_COMPLETED,
                Purchase.download_count < Purchase.max_downloads,
                or_(
                    Purchase.download_expires_at.is_(None),
                    Purchase.download_expires_at > now,
                ),
            )
            .values(download_count=Purchase.download_count + 1)
            .execution_options(synchronize_session=False)
        )
        await db.refresh(purchase)

        if counted.rowcount == 0:
            context = {"purchase_id": str(purchase.id)}
            logger.info("Download denied for purchase %s (status=%s)", purchase.id, purchase.status)
            if purchase.status != STATUS_COMPLETED:
                raise PurchaseRequiredError(context=context)
            if purchase.download_count >= purchase.max_downloads:
                raise DownloadLimitExceededError(purchase.max_downloads, context=context)
            raise DownloadExpiredError(context=context)

        await db.execute(
            update(Photo)
            .where(Photo.id == purchase.photo_id)
            .values(downloads=Photo.downloads + 1)
            .execution_options(synchronize_session=False)
        )

        token, url_expires_at = create_download_token(buyer.id, purchase.id)
        extension = Path(purchase.photo.full_image_path).suffix.lower()
        logger.info(
            "Download granted: purchase=%s count=%d/%d",
            purchase.id,
            purchase.download_count,
            purchase.max_downloads,
        )
        return DownloadGrant(
            purchase_id=purchase.id,
            photo_id=purchase.photo_id,
            download_url=f"/api/downloads/{token}",
            url_expires_at=url_expires_at,
            filename=safe_filename(purchase.photo.title, extension),
            download_count=purchase.download_count,
            max_downloads=purchase.max_downloads,
            downloads_remaining=purchase.downloads_remaining,
        )

    async def resolve_download(self, db: AsyncSession, token: str) -> Tuple[Path, str]:
        """Absolute path and attachment filename for a signed download token."""
        payload = decode_token(token, DOWNLOAD)
        purchase = await db.get(Purchase, token_subject(payload, "pid"))
        if (
            purchase is None
            or purchase.buyer_id != token_subject(payload)
            or purchase.status != STATUS_COMPLETED
        ):
            raise PurchaseRequiredError()

        path = file_service.resolve_original(purchase.photo.full_image_path)
        return path, safe_filename(purchase.photo.title, path.suffix.lower())

    # ── Listings ──────────────────────────────────────────────────────────

    async def get_purchase(self, db: AsyncSession, actor: User, purchase_id: uuid.UUID) -> Purchase:
        purchase = await self._get(db, purchase_id)
        authorize(actor, Action.VIEW_PURCHASE, purchase)
        return purchase

    async def list_purchases(
        self,
        db: AsyncSession,
        buyer: User,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> PurchasePage:
        """
        The buyer's purchases, newest first, optionally filtered by status.

        Raises:
            ValidationError: unknown status value
        """
        conditions = [Purchase.buyer_id == buyer.id]
        if status:
            if status not in STATUSES:
                raise ValidationError(
                    message=f"Unknown status '{status}'. Use one of: {', '.join(STATUSES)}",
                    field="status",
                )
            conditions.append(Purchase.status == status)

        total = await db.scalar(select(func.count(Purchase.id)).where(*conditions)) or 0
        rows = await db.scalars(
            select(Purchase)
            .where(*conditions)
            .order_by(desc(Purchase.purchased_at), Purchase.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return PurchasePage(
            purchases=[PurchaseResponse.model_validate(p) for p in rows.all()],
            pagination=Pagination(**pagination_meta(page, limit, total)),
        )

    async def list_sales(self, db: AsyncSession, actor: User, page: int = 1, limit: int = 10) -> SalesPage:
        authorize(actor, Action.VIEW_SALES)
        conditions = [Purchase.photographer_id == actor.id, Purchase.status == STATUS_COMPLETED]
        total = await db.scalar(select(func.count(Purchase.id)).where(*conditions)) or 0
        rows = await db.scalars(
            select(Purchase)
            .where(*conditions)
            .order_by(desc(Purchase.completed_at), Purchase.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return SalesPage(
            sales=[PurchaseResponse.model_validate(p) for p in rows.all()],
            pagination=Pagination(**pagination_meta(page, limit, total)),
            summary=SalesSummary(total_sales=actor.total_sales, total_earnings=actor.total_earnings),
        )

    async def get_purchase_status(self, db: AsyncSession, user: User, photo_id: uuid.UUID) -> PurchaseStatus:
        photo = await db.get(Photo, photo_id)
        if photo is None:
            raise NotFoundError(resource="Photo", resource_id=str(photo_id))
        purchase = await self._find(db, user.id, photo.id)
        return PurchaseStatus(
            photo_id=photo.id,
            is_purchased=purchase is not None and purchase.status == STATUS_COMPLETED,
            is_owner=photo.photographer_id == user.id,
            can_download=purchase is not None and purchase.can_download(),
            purchase_info=purchase_info(purchase) if purchase else None,
        )


purchase_service = PurchaseService()
