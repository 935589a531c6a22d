# Overview: Service-layer operations for RFQs; submission, staff pricing, customer decisions and conversion to orders.

"""
RFQ (Request for Quote) Service

WHY: Customers do not buy at list price; they ask for a quote, staff price
it, and only an accepted quote becomes an order. This module owns the RFQ
state machine (see workflow.RFQ_TRANSITIONS) and the conversion step.

EXPIRY: a quote (QUOTE_SENT / PARTIALLY_QUOTED) is only good until
price_valid_until. Every guarded operation checks this first; a lapsed quote
is moved to EXPIRED, committed, and the requested operation is refused.
expire_stale_quotes() does the same in bulk for the maintenance command.

CONVERSION: customer_accept prices the quoted lines, reserves one unit per
line, writes the Order and its lines, and flips the RFQ, all in a single
transaction. Any failure (nothing quoted, out of stock, lost race) rolls the
whole thing back; the RFQ keeps its prior status and no unit stays reserved.
"""

from datetime import timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import RFQ, RFQLine, CartLine, Cart, Order, OrderLine, Product
from ..time_utils import as_naive_utc, parse_iso_datetime, utcnow
from ..workflow import (
    CartLineStatus,
    OrderStatus,
    PaymentStatus,
    QUOTED_STATUSES,
    RFQLineStatus,
    RFQStatus,
    check_rfq_transition,
)
from . import cart_service, inventory_service
from .concurrency import begin_write, lock_for_update, run_with_retry

CENT = Decimal("0.01")

CONTACT_FIELDS = (
    "company_name",
    "contact_name",
    "contact_email",
    "contact_phone",
    "use_case",
    "site_info",
    "additional_notes",
)


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_money(value, field: str) -> Decimal | None:
    """None/"" -> None; otherwise a finite, non-negative Decimal rounded to cents."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number.")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number.")
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{field} must be a non-negative number.")
    return quantize_money(amount)


def _clean(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _log_transition(rfq: RFQ, previous: RFQStatus, target: RFQStatus) -> None:
    current_app.logger.info("RFQ %s: %s -> %s", rfq.id, previous.value, target.value)


# =============================================================================
# LOADING AND GUARDS
# =============================================================================

def _load_rfq(rfq_id: int, *, user_id: int | None = None, lock: bool = False) -> RFQ:
    """
    Fetch an RFQ, optionally scoped to its owner and row-locked.

    An RFQ owned by someone else is reported as missing.
    """
    query = db.session.query(RFQ).filter(RFQ.id == rfq_id)
    if user_id is not None:
        query = query.filter(RFQ.user_id == user_id)
    if lock:
        query = lock_for_update(query)
    rfq = query.first()
    if not rfq:
        raise NotFoundError("RFQ not found.")
    return rfq


def _is_lapsed(rfq: RFQ, now) -> bool:
    return (
        rfq.status in QUOTED_STATUSES
        and rfq.price_valid_until is not None
        and as_naive_utc(rfq.price_valid_until) < now
    )


def _expire_if_lapsed(rfq: RFQ) -> bool:
    """Move a lapsed quote to EXPIRED and commit. Returns True if it expired."""
    now = utcnow()
    if not _is_lapsed(rfq, now):
        return False

    previous = rfq.status
    rfq.status = check_rfq_transition("expire", previous)
    rfq.decided_at = now
    rfq.decision_reason = "Quote validity lapsed"
    db.session.commit()
    _log_transition(rfq, previous, RFQStatus.EXPIRED)
    return True


def _guard(rfq: RFQ, operation: str) -> RFQStatus:
    """Apply lazy expiry, then check the transition. Returns the target status."""
    if _expire_if_lapsed(rfq):
        raise StateConflictError(
            "This quote has expired.",
            details={"operation": operation, "status": RFQStatus.EXPIRED.value},
            code="QUOTE_EXPIRED",
        )
    return check_rfq_transition(operation, rfq.status)


def _apply(rfq: RFQ, operation: str, reason: str | None = None) -> RFQ:
    previous = rfq.status
    target = _guard(rfq, operation)
    rfq.status = target
    if target in (RFQStatus.REJECTED_BY_ADMIN, RFQStatus.REJECTED_BY_CUSTOMER):
        rfq.decided_at = utcnow()
        rfq.decision_reason = _clean(reason)
    db.session.commit()
    _log_transition(rfq, previous, target)
    return rfq


# =============================================================================
# CUSTOMER: SUBMIT / VIEW
# =============================================================================

def _parse_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required.")

    parsed = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError("Each item must be an object.", details={"index": index})

        product_id = item.get("product_id")
        if isinstance(product_id, bool) or not isinstance(product_id, int) or product_id <= 0:
            raise ValidationError("Each item needs a valid product_id.", details={"index": index})

        quantity = cart_service.parse_quantity(item.get("quantity"))

        cart_item_id = item.get("cart_item_id")
        if cart_item_id is not None and (isinstance(cart_item_id, bool) or not isinstance(cart_item_id, int)):
            raise ValidationError("cart_item_id must be an integer.", details={"index": index})

        parsed.append({"product_id": product_id, "quantity": quantity, "cart_item_id": cart_item_id})
    return parsed


def _owned_cart_line_ids(user_id: int, cart_item_ids: list[int]) -> set[int]:
    if not cart_item_ids:
        return set()
    rows = (
        db.session.query(CartLine.id)
        .join(Cart, Cart.id == CartLine.cart_id)
        .filter(
            CartLine.id.in_(cart_item_ids),
            CartLine.status == CartLineStatus.ACTIVE,
            Cart.user_id == user_id,
        )
        .all()
    )
    return {row[0] for row in rows}


def submit(user_id: int, data: dict) -> RFQ:
    """
    Create an RFQ in PENDING_REVIEW from the submitted items.

    Items may name the cart line they came from (cart_item_id); those cart
    lines are folded to RFQED after the RFQ is committed. Folding is
    best-effort and cannot fail the submission.

    Raises:
        ValidationError: no items, bad product id or quantity, unknown or
            unavailable product
    """
    items = _parse_items(data.get("items"))

    product_ids = {item["product_id"] for item in items}
    products = {p.id: p for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()}
    missing = sorted(pid for pid in product_ids if pid not in products or not products[pid].is_active)
    if missing:
        raise ValidationError("One or more products are invalid or unavailable.", details={"product_ids": missing})

    owned = _owned_cart_line_ids(user_id, [i["cart_item_id"] for i in items if i["cart_item_id"]])

    currency = _clean(data.get("currency")) or products[items[0]["product_id"]].currency \
        or current_app.config["DEFAULT_CURRENCY"]

    rfq = RFQ(
        user_id=user_id,
        currency=currency,
        status=RFQStatus.PENDING_REVIEW,
        **{field: _clean(data.get(field)) for field in CONTACT_FIELDS},
    )
    db.session.add(rfq)
    db.session.flush()

    for item in items:
        db.session.add(RFQLine(
            rfq_id=rfq.id,
            product_id=item["product_id"],
            cart_line_id=item["cart_item_id"] if item["cart_item_id"] in owned else None,
            quantity=item["quantity"],
            currency=currency,
            line_status=RFQLineStatus.PENDING_REVIEW,
        ))

    db.session.commit()
    current_app.logger.info("RFQ %s submitted by user %s with %s line(s)", rfq.id, user_id, len(items))

    if owned:
        cart_service.fold_into_rfq(user_id, rfq.id, sorted(owned))

    return rfq


def rfq_detail(rfq: RFQ) -> dict:
    body = rfq.to_dict()
    body["items"] = [line.to_dict() for line in rfq.lines]
    body["order_id"] = rfq.order.id if rfq.order else None
    return body


def list_rfqs(user_id: int) -> list[RFQ]:
    rfqs = (
        db.session.query(RFQ)
        .filter(RFQ.user_id == user_id)
        .order_by(RFQ.created_at.desc(), RFQ.id.desc())
        .all()
    )
    for rfq in rfqs:
        _expire_if_lapsed(rfq)
    return rfqs


def get_rfq(user_id: int, rfq_id: int) -> RFQ:
    rfq = _load_rfq(rfq_id, user_id=user_id)
    _expire_if_lapsed(rfq)
    return rfq


# =============================================================================
# ADMIN: REVIEW / QUOTE / REJECT
# =============================================================================

def admin_accept(rfq_id: int) -> RFQ:
    """PENDING_REVIEW -> UNDER_REVIEW."""
    return run_with_retry(lambda: _apply(_load_rfq(rfq_id, lock=True), "admin_accept"))


def _price_line(line: RFQLine, entry: dict) -> None:
    unit = parse_money(entry.get("quoted_unit_price"), "quoted_unit_price")
    total = parse_money(entry.get("quoted_total_price"), "quoted_total_price")
    if unit is None and total is None:
        raise ValidationError(
            "Each quoted item needs a unit or total price.",
            details={"rfq_item_id": line.id},
        )

    if unit is None:
        unit = quantize_money(total / line.quantity)
    if total is None:
        total = quantize_money(unit * line.quantity)

    lead_time = entry.get("line_lead_time_days")
    if lead_time is not None and (isinstance(lead_time, bool) or not isinstance(lead_time, int) or lead_time < 0):
        raise ValidationError("line_lead_time_days must be a non-negative integer.", details={"rfq_item_id": line.id})

    line.quoted_unit_price = unit
    line.quoted_total_price = total
    line.line_lead_time_days = lead_time
    if "line_notes" in entry:
        line.line_notes = _clean(entry.get("line_notes"))
    line.line_status = RFQLineStatus.QUOTED


def admin_quote(rfq_id: int, data: dict) -> RFQ:
    """
    Price some or all lines of an RFQ.

    Allowed from PENDING_REVIEW, UNDER_REVIEW and PARTIALLY_QUOTED. Ends in
    QUOTE_SENT when every line is priced, PARTIALLY_QUOTED otherwise.
    price_valid_until comes from the request or defaults to
    QUOTE_VALIDITY_DAYS from now.
    """
    entries = data.get("items")
    if not isinstance(entries, list) or not entries:
        raise ValidationError("At least one quoted item is required.")

    valid_until_raw = data.get("price_valid_until")
    if valid_until_raw is not None and not isinstance(valid_until_raw, str):
        raise ValidationError("price_valid_until must be an ISO-8601 datetime.")
    try:
        valid_until = parse_iso_datetime(valid_until_raw) if valid_until_raw else None
    except (TypeError, ValueError):
        raise ValidationError("price_valid_until must be an ISO-8601 datetime.")

    def _op():
        rfq = _load_rfq(rfq_id, lock=True)
        previous = rfq.status
        _guard(rfq, "admin_quote")

        lines = {line.id: line for line in rfq.lines}
        for entry in entries:
            line_id = entry.get("id", entry.get("rfq_item_id")) if isinstance(entry, dict) else None
            line = lines.get(line_id)
            if line is None:
                raise ValidationError("Quoted item does not belong to this RFQ.", details={"rfq_item_id": line_id})
            _price_line(line, entry)

        now = utcnow()
        if valid_until is not None and valid_until <= now:
            raise ValidationError("price_valid_until must be in the future.")

        fully_quoted = all(line.line_status == RFQLineStatus.QUOTED for line in rfq.lines)
        target = RFQStatus.QUOTE_SENT if fully_quoted else RFQStatus.PARTIALLY_QUOTED

        rfq.status = target
        rfq.quoted_at = now
        rfq.price_valid_until = valid_until or now + timedelta(days=current_app.config["QUOTE_VALIDITY_DAYS"])
        db.session.commit()
        _log_transition(rfq, previous, target)
        return rfq

    return run_with_retry(_op)


def admin_reject(rfq_id: int, reason: str | None = None) -> RFQ:
    """QUOTE_SENT / PARTIALLY_QUOTED -> REJECTED_BY_ADMIN."""
    return run_with_retry(lambda: _apply(_load_rfq(rfq_id, lock=True), "admin_reject", reason))


# =============================================================================
# CUSTOMER: CANCEL / REJECT / ACCEPT
# =============================================================================

def customer_cancel(user_id: int, rfq_id: int, reason: str | None = None) -> RFQ:
    """Withdraw an RFQ that has not been fully quoted yet."""
    rfq = run_with_retry(lambda: _apply(_load_rfq(rfq_id, user_id=user_id, lock=True), "customer_cancel", reason))
    cart_service.restore_from_rfq(rfq)
    return rfq


def customer_reject(user_id: int, rfq_id: int, reason: str | None = None) -> RFQ:
    """Decline a quote."""
    rfq = run_with_retry(lambda: _apply(_load_rfq(rfq_id, user_id=user_id, lock=True), "customer_reject", reason))
    cart_service.restore_from_rfq(rfq)
    return rfq


def _priced_lines(rfq: RFQ) -> list[tuple[RFQLine, Decimal, Decimal]]:
    """
    (line, unit_price, line_total) for every QUOTED line with a price.

    unit_price = quoted_unit_price, else quoted_total_price / quantity
    line_total = quoted_total_price, else unit_price * quantity
    """
    priced = []
    for line in rfq.lines:
        if line.line_status != RFQLineStatus.QUOTED:
            continue
        if line.quoted_unit_price is None and line.quoted_total_price is None:
            continue

        unit_price = line.quoted_unit_price
        if unit_price is None:
            unit_price = quantize_money(Decimal(line.quoted_total_price) / line.quantity)
        line_total = line.quoted_total_price
        if line_total is None:
            line_total = quantize_money(Decimal(unit_price) * line.quantity)
        priced.append((line, Decimal(unit_price), Decimal(line_total)))
    return priced


def customer_accept(user_id: int, rfq_id: int, pickup_location: str | None = None) -> Order:
    """
    Accept a quote and turn it into an order.

    One transaction: lock the RFQ, price the quoted lines, reserve one unit
    per line, create the Order and its lines, mark the RFQ CONVERTED_TO_ORDER.

    Raises:
        NotFoundError: RFQ missing or not owned by the caller
        StateConflictError: RFQ not in QUOTE_SENT / PARTIALLY_QUOTED, or expired
        ValidationError: no quoted line has a price
        OutOfStockError: a line's product has no unit left (400)
    """
    try:
        begin_write()
        rfq = _load_rfq(rfq_id, user_id=user_id, lock=True)
        previous = rfq.status
        target = _guard(rfq, "customer_accept")

        priced = _priced_lines(rfq)
        if not priced:
            raise ValidationError("No quoted items are available to order.")

        order = Order(
            rfq_id=rfq.id,
            user_id=rfq.user_id,
            status=OrderStatus.AWAITING_PICKUP,
            currency=rfq.currency,
            total_price=sum((total for _, _, total in priced), Decimal("0.00")),
            pickup_location=_clean(pickup_location),
            payment_status=PaymentStatus.UNPAID,
        )
        db.session.add(order)
        db.session.flush()

        for line, unit_price, line_total in priced:
            unit = inventory_service.reserve_one(line.product_id, commit=False)
            db.session.add(OrderLine(
                order_id=order.id,
                rfq_line_id=line.id,
                product_id=line.product_id,
                product_unit_id=unit.id,
                quantity=line.quantity,
                unit_price=unit_price,
                line_total=line_total,
                currency=line.currency,
            ))

        rfq.status = target
        rfq.decided_at = utcnow()
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        # orders.rfq_id uniqueness is the backstop for a concurrent accept
        if db.session.query(Order.id).filter(Order.rfq_id == rfq_id).first():
            raise StateConflictError("This quote has already been accepted.") from exc
        raise
    except Exception:
        db.session.rollback()
        raise

    _log_transition(rfq, previous, target)
    current_app.logger.info("Order %s created from RFQ %s (total %s)", order.id, rfq.id, order.total_price)
    return order


# =============================================================================
# MAINTENANCE
# =============================================================================

def expire_stale_quotes() -> int:
    """Bulk-expire every quote whose price_valid_until has passed. Returns the count."""
    now = utcnow()
    result = db.session.execute(
        update(RFQ)
        .where(
            RFQ.status.in_(list(QUOTED_STATUSES)),
            RFQ.price_valid_until.isnot(None),
            RFQ.price_valid_until < now,
        )
        .values(status=RFQStatus.EXPIRED, decided_at=now, decision_reason="Quote validity lapsed")
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    if result.rowcount:
        current_app.logger.info("Expired %s stale quote(s)", result.rowcount)
    return result.rowcount
