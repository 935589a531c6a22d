# Overview: Service-layer operations for orders; pickup readiness, cash settlement and cancellation.

"""
Order Fulfillment Service

WHY: Orders are picked up in person and paid in cash at the counter. The
order row carries the settled state; a Payment row records what was due,
what was tendered and the change handed back.

State machine (workflow.ORDER_TRANSITIONS):
    AWAITING_PICKUP -> READY_FOR_PICKUP -> COMPLETED
    AWAITING_PICKUP / READY_FOR_PICKUP -> CANCELLED

Unit lifecycle follows the order: completing sells every reserved unit,
cancelling releases them back to IN_STOCK.
"""

from decimal import Decimal, InvalidOperation

from flask import current_app

from ..errors import NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import Order, Payment
from ..time_utils import utcnow
from ..workflow import (
    OrderStatus,
    PaymentMethod,
    PaymentRecordStatus,
    PaymentStatus,
    check_order_transition,
)
from . import inventory_service
from .concurrency import lock_for_update, run_with_retry
from .rfq_service import quantize_money


def _load_order(order_id: int, *, user_id: int | None = None, lock: bool = False) -> Order:
    query = db.session.query(Order).filter(Order.id == order_id)
    if user_id is not None:
        query = query.filter(Order.user_id == user_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if not order:
        raise NotFoundError("Order not found.")
    return order


def _log_transition(order: Order, previous: OrderStatus, target: OrderStatus) -> None:
    current_app.logger.info("Order %s: %s -> %s", order.id, previous.value, target.value)


def order_detail(order: Order) -> dict:
    body = order.to_dict()
    body["items"] = [line.to_dict() for line in order.lines]
    return body


def list_orders(user_id: int) -> list[Order]:
    return (
        db.session.query(Order)
        .filter(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def get_order(user_id: int, order_id: int) -> Order:
    return _load_order(order_id, user_id=user_id)


def mark_ready(order_id: int) -> Order:
    """AWAITING_PICKUP -> READY_FOR_PICKUP."""
    def _op():
        order = _load_order(order_id, lock=True)
        previous = order.status
        order.status = check_order_transition("mark_ready", previous)
        order.ready_at = utcnow()
        db.session.commit()
        _log_transition(order, previous, order.status)
        return order

    return run_with_retry(_op)


def parse_cash(value) -> Decimal:
    """Finite, strictly positive amount of cash, rounded to cents."""
    if value is None or value == "" or isinstance(value, bool):
        raise ValidationError("cash_received is required and must be a positive number.")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("cash_received must be a positive number.")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("cash_received must be a positive number.")
    return quantize_money(amount)


def pay_and_complete(order_id: int, cash_received, cashier_user_id: int | None = None) -> Order:
    """
    Settle an order in cash and complete it.

    Allowed only from READY_FOR_PICKUP with payment_status UNPAID.
    change = cash_received - total_price, to the cent.

    Raises:
        ValidationError: cash missing/invalid or less than the amount due
        StateConflictError: wrong status, or already paid
    """
    cash = parse_cash(cash_received)

    def _op():
        order = _load_order(order_id, lock=True)
        if order.payment_status == PaymentStatus.PAID:
            raise StateConflictError(
                "Order has already been paid.",
                details={"order_id": order.id, "payment_status": order.payment_status.value},
            )
        previous = order.status
        target = check_order_transition("pay_and_complete", previous)

        amount_due = Decimal(order.total_price)
        if cash < amount_due:
            raise ValidationError(
                "Insufficient cash received.",
                details={"amount_due": f"{amount_due:.2f}", "cash_received": f"{cash:.2f}"},
            )
        change = quantize_money(cash - amount_due)

        for line in order.lines:
            inventory_service.sell(line.product_unit_id, commit=False)

        now = utcnow()
        db.session.add(Payment(
            order_id=order.id,
            payment_method=PaymentMethod.CASH,
            status=PaymentRecordStatus.CAPTURED,
            currency=order.currency,
            amount_due=amount_due,
            amount_received=cash,
            change_given=change,
            created_by_user_id=cashier_user_id,
        ))

        order.payment_status = PaymentStatus.PAID
        order.payment_method = PaymentMethod.CASH
        order.amount_received = cash
        order.change_given = change
        order.paid_at = now
        order.completed_at = now
        order.status = target
        db.session.commit()

        _log_transition(order, previous, target)
        return order

    return run_with_retry(_op)


def cancel_order(order_id: int, reason: str | None = None) -> Order:
    """Cancel before completion; every reserved unit goes back to IN_STOCK."""
    def _op():
        order = _load_order(order_id, lock=True)
        previous = order.status
        target = check_order_transition("cancel", previous)

        for line in order.lines:
            inventory_service.release(line.product_unit_id, commit=False)

        order.status = target
        order.cancelled_at = utcnow()
        order.cancel_reason = (reason or "").strip() or None
        db.session.commit()

        _log_transition(order, previous, target)
        return order

    return run_with_retry(_op)
