# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Payment Processing Service

Records payment attempts against orders and reconciles them with the
external gateways (Paystack, MTN Mobile Money).

DESIGN PRINCIPLES:
- A payment row is written once per reference. Its status only moves
  forward: a pending or failed attempt may settle as paid, paid is final
- Payment references are unique per transaction
- Order.payment_status carries the payment outcome; fulfilment status is
  left alone. Once an order is paid, later failure reports are ignored
- Gateway orders leave stock when they become paid
- MoMo webhook processing calls apply_momo_status in-process
"""

import hashlib
import hmac

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Order, Payment, User
from ..models.orders import PAYMENT_FAILED, PAYMENT_PAID
from ..models.users import ROLE_OUTLET
from ..validation import (
    AuthenticationError,
    ConflictError,
    GatewayError,
    NotFoundError,
    ValidationError,
    check_length,
    parse_choice,
    parse_int,
    parse_money,
    require_fields,
)
from . import notification_service, order_service
from .gateway_client import get_json


# =============================================================================
# CONSTANTS
# =============================================================================

METHOD_PAYSTACK = "paystack"
METHOD_MOMO = "momo"
METHOD_CASH = "cash"
METHOD_CARD = "card"
VALID_METHODS = (METHOD_PAYSTACK, METHOD_MOMO, METHOD_CASH, METHOD_CARD)

STATUS_PENDING = "pending"
STATUS_PAID = "paid"
STATUS_FAILED = "failed"
VALID_PAYMENT_STATUSES = (STATUS_PENDING, STATUS_PAID, STATUS_FAILED)

# MTN request-to-pay states
MOMO_SUCCESSFUL = "SUCCESSFUL"
MOMO_PENDING = "PENDING"
MOMO_FAILED_STATES = {"FAILED", "REJECTED", "TIMEOUT"}

PAYSTACK_CHARGE_SUCCESS = "charge.success"

DEFAULT_CURRENCY = "GHS"


# =============================================================================
# PAYMENT CREATION
# =============================================================================

def _persist(payment: Payment) -> Payment:
    db.session.add(payment)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Payment reference {payment.reference} already recorded")
    return payment


def _reference_from(value) -> str:
    # Some clients post the whole Paystack callback object
    if isinstance(value, dict):
        value = value.get("reference")
    reference = str(value).strip() if value is not None else ""
    if not reference:
        raise ValidationError("reference is required")
    return check_length(reference, "reference", 128)


def record_payment(data: dict, payer: User | None = None) -> Payment:
    """
    Persist a payment from caller-supplied fields.

    No gateway is contacted; the caller is trusted to have verified it.

    Raises:
        ValidationError: missing/invalid fields
        NotFoundError: unknown orderId
        ConflictError: reference already recorded
    """
    require_fields(data, "orderId", "amount", "paymentMethod")
    reference = _reference_from(data.get("referenceId", data.get("reference")))
    order = _get_order(parse_int(data["orderId"], "orderId", minimum=1))

    payment = Payment(
        reference=reference,
        order_id=order.id,
        outlet_id=_outlet_for(order, data.get("outletId")),
        payer_id=payer.id if payer else order.user_id,
        payer_email=check_length(data.get("payerEmail"), "payerEmail", 255),
        payer_phone=check_length(data.get("phoneNumber"), "phoneNumber", 32),
        amount_cents=parse_money(data["amount"], "amount"),
        currency=check_length(data.get("currency") or DEFAULT_CURRENCY, "currency", 8),
        method=parse_choice(data["paymentMethod"], "paymentMethod", VALID_METHODS),
        status=parse_choice(data.get("status") or STATUS_PENDING, "status", VALID_PAYMENT_STATUSES),
    )
    _persist(payment)
    db.session.commit()
    return payment


def _get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")
    return order


def _outlet_for(order: Order, requested=None) -> int | None:
    if requested not in (None, ""):
        outlet_id = parse_int(requested, "outletId", minimum=1)
        outlet = db.session.get(User, outlet_id)
        if not outlet or outlet.role != ROLE_OUTLET:
            raise NotFoundError("Outlet not found")
        return outlet_id
    outlet_ids = order.outlet_ids
    return outlet_ids[0] if outlet_ids else None


def _mark_order(order: Order, payment_status: str, reference: str) -> bool:
    if order.payment_status == PAYMENT_PAID and payment_status != PAYMENT_PAID:
        current_app.logger.warning(
            "Ignoring %s report for paid order %s (reference %s)", payment_status, order.order_number, reference
        )
        return False
    if order.payment_status == payment_status and order.payment_reference == reference:
        return False
    order.payment_status = payment_status
    order.payment_reference = reference
    if payment_status == PAYMENT_PAID:
        order_service.deduct_order_stock(order)
    notification_service.publish_order_event(
        order,
        notification_service.EVENT_PAYMENT_STATUS,
        {
            "orderId": order.id,
            "orderNumber": order.order_number,
            "paymentStatus": payment_status,
            "reference": reference,
        },
    )
    return True


# =============================================================================
# PAYSTACK
# =============================================================================

def verify_paystack(data: dict, payer: User | None = None) -> Payment:
    """
    Verify a Paystack transaction and record it.

    Calls GET /transaction/verify/<reference>. Anything other than
    data.status == "success" is rejected before a Payment is written.

    Raises:
        ValidationError: missing fields or the gateway reports non-success
        GatewayError: Paystack unreachable or answered with an HTTP error
        NotFoundError: unknown order or outlet
        ConflictError: reference already recorded
    """
    require_fields(data, "reference", "amount", "orderId", "outletId", "email")
    reference = _reference_from(data["reference"])
    amount_cents = parse_money(data["amount"], "amount")
    order = _get_order(parse_int(data["orderId"], "orderId", minimum=1))
    outlet_id = _outlet_for(order, data["outletId"])

    base_url = current_app.config["PAYSTACK_BASE_URL"].rstrip("/")
    status_code, body = get_json(
        f"{base_url}/transaction/verify/{reference}",
        headers={
            "Authorization": f"Bearer {current_app.config.get('PAYSTACK_SECRET_KEY') or ''}",
            "Content-Type": "application/json",
        },
        gateway="Paystack",
    )
    if status_code >= 400:
        current_app.logger.warning("Paystack verify %s answered HTTP %s", reference, status_code)
        raise GatewayError("Failed to verify transaction")

    transaction = body.get("data") if isinstance(body, dict) else None
    gateway_status = transaction.get("status") if isinstance(transaction, dict) else None
    if gateway_status != "success":
        current_app.logger.info("Paystack transaction %s not successful: %s", reference, gateway_status)
        raise ValidationError("Transaction not successful")

    payment = Payment(
        reference=reference,
        order_id=order.id,
        outlet_id=outlet_id,
        payer_id=payer.id if payer else order.user_id,
        payer_email=check_length(data["email"], "email", 255),
        amount_cents=amount_cents,
        currency=check_length(data.get("currency") or DEFAULT_CURRENCY, "currency", 8),
        method=METHOD_PAYSTACK,
        status=STATUS_PAID,
    )
    _persist(payment)
    _mark_order(order, PAYMENT_PAID, reference)
    db.session.commit()
    return payment


def _settle(order: Order, reference: str, *, method: str, status: str, **fields) -> Payment:
    """
    Record a gateway-reported outcome for `reference`, or settle the
    existing row as paid. Nothing is committed.
    """
    recorded = db.session.query(Payment).filter(Payment.reference == reference).first()
    if recorded is not None:
        if status == STATUS_PAID and recorded.status != STATUS_PAID:
            current_app.logger.info("Payment %s settled as paid after %s", reference, recorded.status)
            recorded.status = STATUS_PAID
        return recorded

    payment = Payment(
        reference=reference,
        order_id=order.id,
        outlet_id=_outlet_for(order),
        payer_id=order.user_id,
        payer_email=fields.get("payer_email") or (order.user.email if order.user else order.guest_email),
        payer_phone=fields.get("payer_phone"),
        amount_cents=order.total_price_cents if fields.get("amount_cents") is None else fields["amount_cents"],
        currency=DEFAULT_CURRENCY,
        method=method,
        status=status,
    )
    db.session.add(payment)
    return payment


def verify_paystack_signature(raw_body: bytes, signature: str | None) -> None:
    """
    Paystack signs each webhook body with HMAC-SHA512 keyed by the secret key.

    Raises:
        AuthenticationError: no secret configured, or the signature differs
    """
    secret = current_app.config.get("PAYSTACK_SECRET_KEY")
    if not secret or not signature:
        raise AuthenticationError("Invalid signature")
    expected = hmac.new(secret.encode(), raw_body, hashlib.sha512).hexdigest()
    if not hmac.compare_digest(expected, signature.strip()):
        raise AuthenticationError("Invalid signature")


def handle_paystack_event(event) -> Order | None:
    """
    Apply a verified Paystack webhook event.

    Only charge.success is acted on: the order carrying the reference is
    marked paid and a paid Payment is recorded once. Other events and
    unknown references are acknowledged and ignored.
    """
    if not isinstance(event, dict) or event.get("event") != PAYSTACK_CHARGE_SUCCESS:
        return None
    data = event.get("data") if isinstance(event.get("data"), dict) else {}
    reference = str(data.get("reference") or "").strip()
    if not reference:
        return None

    order = order_service.find_by_payment_reference(reference)
    if order is None:
        current_app.logger.warning("Paystack webhook for unknown reference %s", reference)
        return None

    customer = data.get("customer") if isinstance(data.get("customer"), dict) else {}
    amount = data.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        amount = None
    _settle(
        order,
        reference,
        method=METHOD_PAYSTACK,
        status=STATUS_PAID,
        payer_email=check_length(customer.get("email"), "email", 255),
        amount_cents=amount,
    )
    _mark_order(order, PAYMENT_PAID, reference)
    db.session.commit()
    current_app.logger.info("Paystack charge %s applied to order %s", reference, order.order_number)
    return order


def list_outlet_payments(outlet_id: int) -> list[Payment]:
    return (
        db.session.query(Payment)
        .filter(Payment.outlet_id == outlet_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )


# =============================================================================
# MTN MOBILE MONEY
# =============================================================================

def resolve_momo_status(transaction_id: str, webhook_status: str | None) -> str:
    """
    Decide the final status for a MoMo transaction.

    Asks MTN when credentials are configured; otherwise, or when that call
    fails, falls back to the status the webhook reported (default FAILED).
    """
    fallback = (webhook_status or "FAILED").upper()
    consumer_key = current_app.config.get("MTN_CONSUMER_KEY")
    consumer_secret = current_app.config.get("MTN_CONSUMER_SECRET")

    if not (consumer_key and consumer_secret):
        current_app.logger.info("No MTN credentials configured; using webhook status %s", fallback)
        return fallback

    status_url = f"{current_app.config['MTN_API_URL'].rstrip('/')}/{transaction_id}"
    try:
        status_code, body = get_json(
            status_url,
            headers={
                "X-Target-Environment": current_app.config.get("MTN_TARGET_ENVIRONMENT", "sandbox"),
                "Ocp-Apim-Subscription-Key": consumer_key,
            },
            gateway="MTN MoMo",
        )
    except GatewayError:
        return fallback

    if status_code >= 400 or not isinstance(body, dict) or not body.get("status"):
        current_app.logger.warning(
            "Failed to verify MoMo transaction %s (HTTP %s); using webhook status", transaction_id, status_code
        )
        return fallback
    return str(body["status"]).upper()


def apply_momo_status(transaction_id: str, status: str, payer_phone: str | None = None) -> Order:
    """
    Apply a MoMo outcome to the order whose payment_reference is the
    transaction id.

    SUCCESSFUL records a paid Payment (once per reference) and marks the
    order paid; FAILED/REJECTED/TIMEOUT record a failed Payment and mark it
    failed; PENDING leaves everything untouched.

    Callbacks may arrive out of order. A failed row for the transaction is
    settled as paid when SUCCESSFUL follows it, and a failure that follows
    success changes nothing.
    """
    status = (status or "").upper()
    order = db.session.query(Order).filter(Order.payment_reference == transaction_id).first()
    if not order:
        raise NotFoundError("Order not found for transaction")

    if status == MOMO_SUCCESSFUL:
        payment_status, order_payment_status = STATUS_PAID, PAYMENT_PAID
    elif status in MOMO_FAILED_STATES:
        payment_status, order_payment_status = STATUS_FAILED, PAYMENT_FAILED
    elif status == MOMO_PENDING:
        return order
    else:
        raise ValidationError(f"Unknown MoMo status: {status}")

    _settle(
        order,
        transaction_id,
        method=METHOD_MOMO,
        status=payment_status,
        payer_phone=payer_phone or order.phone_number,
    )
    _mark_order(order, order_payment_status, transaction_id)
    db.session.commit()
    return order


def process_momo_webhook(transaction_id: str, payload: dict) -> None:
    """Background half of the MoMo webhook: verify, then apply."""
    if not isinstance(payload, dict):
        payload = {}
    status = resolve_momo_status(transaction_id, payload.get("status"))
    try:
        apply_momo_status(transaction_id, status, payer_phone=payload.get("phoneNumber"))
    except NotFoundError:
        current_app.logger.warning("MoMo webhook for unknown transaction %s", transaction_id)
        return
    current_app.logger.info("MoMo transaction %s applied with status %s", transaction_id, status)
