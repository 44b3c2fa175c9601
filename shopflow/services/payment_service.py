import hashlib
import hmac
import logging
import uuid
from datetime import timedelta
from typing import List, Optional

from tortoise import timezone
from tortoise.transactions import in_transaction

from shopflow.core.config import PAYMENT_EXPIRY_MINUTES, PAYMENT_SERVER_KEY, PAYMENT_URL_BASE
from shopflow.core.errors import InvalidSignatureError, NotFoundError
from shopflow.events import streams
from shopflow.events.outbox_utility import create_outbox_event
from shopflow.models.payment import Payment, PaymentStatus
from shopflow.schemas.events import PaymentFailed, PaymentSucceeded

log = logging.getLogger(__name__)

TERMINAL_STATUSES = {PaymentStatus.SUCCESS, PaymentStatus.FAILED}


def compute_signature(order_id: str, status_code: str, gross_amount: str, server_key: str = PAYMENT_SERVER_KEY) -> str:
    # Signature Formula: SHA512(order_id + status_code + gross_amount + server_key)
    data = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(data.encode()).hexdigest()


def verify_signature(order_id: str, status_code: str, gross_amount: str, signature: str,
                     server_key: str = PAYMENT_SERVER_KEY) -> None:
    """Raises InvalidSignatureError unless the notification came from the gateway."""
    expected = compute_signature(order_id, status_code, gross_amount, server_key)
    if not hmac.compare_digest(expected, signature or ""):
        raise InvalidSignatureError("invalid signature")


async def create_pending_payment(order_id: int, amount: int) -> str:
    """Opens a PENDING payment for the order and returns its payment URL. Idempotent per order."""
    existing = await Payment.get_or_none(order_id=order_id)
    if existing:
        return existing.payment_url

    snap_token = uuid.uuid4().hex
    payment_url = f"{PAYMENT_URL_BASE}/{snap_token}"
    payment, created = await Payment.get_or_create(
        order_id=order_id,
        defaults={"amount": amount, "payment_url": payment_url, "snap_token": snap_token},
    )
    if created:
        log.info(f"Pending payment {payment.id} created for order {order_id}, amount {amount}")
    return payment.payment_url


async def _finish_payment(order_id: int, status: PaymentStatus) -> bool:
    """Moves a payment to SUCCESS/FAILED and writes the matching outbox row in one transaction."""
    async with in_transaction() as conn:
        payment = await Payment.filter(order_id=order_id).select_for_update().using_db(conn).first()
        if not payment:
            raise NotFoundError(f"Payment for order {order_id} not found.")
        if payment.status in TERMINAL_STATUSES:
            log.info(f"Payment for order {order_id} already {payment.status.value}; ignoring.")
            return False

        payment.status = status
        await payment.save(update_fields=["status", "updated_at"], using_db=conn)

        if status == PaymentStatus.SUCCESS:
            stream, event, label = streams.PAYMENT_SUCCESS, PaymentSucceeded(order_id=order_id), "success"
        else:
            stream, event, label = streams.PAYMENT_FAILED, PaymentFailed(order_id=order_id), "failed"
        await create_outbox_event(
            aggregate_type="payment",
            aggregate_id=payment.id,
            related_id=order_id,
            status=label,
            stream=stream,
            event=event,
            conn=conn,
        )
    return True


async def handle_paid_payment(order_id: int) -> bool:
    return await _finish_payment(order_id, PaymentStatus.SUCCESS)


async def handle_failed_payment(order_id: int) -> bool:
    return await _finish_payment(order_id, PaymentStatus.FAILED)


async def _set_status(order_id: int, status: PaymentStatus) -> bool:
    payment = await Payment.get_or_none(order_id=order_id)
    if not payment:
        raise NotFoundError(f"Payment for order {order_id} not found.")
    if payment.status in TERMINAL_STATUSES:
        return False
    payment.status = status
    await payment.save(update_fields=["status", "updated_at"])
    return True


async def handle_notification(order_id: int, transaction_status: str, fraud_status: Optional[str] = None) -> PaymentStatus:
    """
    Applies a gateway transaction status to the order's payment and returns
    the resulting payment status.
    """
    if transaction_status == "capture":
        if fraud_status == "challenge":
            log.info(f"Payment for order {order_id} requires manual review")
            await _set_status(order_id, PaymentStatus.CHALLENGE)
        elif fraud_status == "deny":
            log.info(f"Payment for order {order_id} denied due to fraud")
            await handle_failed_payment(order_id)
        else:
            log.info(f"Payment captured and accepted for order {order_id}")
            await handle_paid_payment(order_id)
    elif transaction_status == "settlement":
        log.info(f"Payment settled for order {order_id}")
        await handle_paid_payment(order_id)
    elif transaction_status == "pending":
        log.info(f"Payment pending for order {order_id}")
        await _set_status(order_id, PaymentStatus.PENDING)
    elif transaction_status in ("deny", "cancel", "expire"):
        log.info(f"Payment {transaction_status} for order {order_id}")
        await handle_failed_payment(order_id)
    else:
        log.warning(f"Unknown transaction status '{transaction_status}' for order {order_id}")

    payment = await Payment.get_or_none(order_id=order_id)
    if not payment:
        raise NotFoundError(f"Payment for order {order_id} not found.")
    return payment.status


async def cleanup_expired_payments(max_age_minutes: int = PAYMENT_EXPIRY_MINUTES) -> List[int]:
    """
    Fails payments stuck in PENDING past the expiry window, covering
    notifications missed during downtime. Returns the affected order IDs.
    """
    cutoff = timezone.now() - timedelta(minutes=max_age_minutes)
    expired = await Payment.filter(status=PaymentStatus.PENDING, created_at__lt=cutoff)
    if not expired:
        log.info(f"No expired pending payments found (older than {max_age_minutes} minutes)")
        return []

    log.info(f"Found {len(expired)} expired pending payments to cleanup")
    failed = []
    for payment in expired:
        try:
            if await handle_failed_payment(payment.order_id):
                failed.append(payment.order_id)
        except Exception as e:
            log.error(f"Error handling failed payment for order {payment.order_id}: {e}")
    return failed
