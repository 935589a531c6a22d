# Overview: Closed status enums and the transition tables for RFQs and orders.

"""
Status enums and state machines.

Every status column in the schema is one of the enums below. Legal moves live
in RFQ_TRANSITIONS / ORDER_TRANSITIONS and are checked in exactly one place
(check_rfq_transition / check_order_transition), so services never compare
status strings by hand.
"""

from __future__ import annotations

import enum

from .errors import StateConflictError


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class CartStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class CartLineStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    REMOVED = "REMOVED"
    RFQED = "RFQED"


class RFQStatus(str, enum.Enum):
    PENDING_REVIEW = "PENDING_REVIEW"
    UNDER_REVIEW = "UNDER_REVIEW"
    QUOTE_SENT = "QUOTE_SENT"
    PARTIALLY_QUOTED = "PARTIALLY_QUOTED"
    CONVERTED_TO_ORDER = "CONVERTED_TO_ORDER"
    REJECTED_BY_CUSTOMER = "REJECTED_BY_CUSTOMER"
    REJECTED_BY_ADMIN = "REJECTED_BY_ADMIN"
    EXPIRED = "EXPIRED"


class RFQLineStatus(str, enum.Enum):
    PENDING_REVIEW = "PENDING_REVIEW"
    QUOTED = "QUOTED"


class UnitStatus(str, enum.Enum):
    IN_STOCK = "IN_STOCK"
    RESERVED = "RESERVED"
    SOLD = "SOLD"
    RETIRED = "RETIRED"


class OrderStatus(str, enum.Enum):
    AWAITING_PICKUP = "AWAITING_PICKUP"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    UNPAID = "UNPAID"
    PAID = "PAID"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"


class PaymentRecordStatus(str, enum.Enum):
    CAPTURED = "CAPTURED"


# =============================================================================
# RFQ STATE MACHINE
# =============================================================================

RFQ_TERMINAL = frozenset({
    RFQStatus.CONVERTED_TO_ORDER,
    RFQStatus.REJECTED_BY_ADMIN,
    RFQStatus.REJECTED_BY_CUSTOMER,
    RFQStatus.EXPIRED,
})

# Statuses in which a customer holds a live price
QUOTED_STATUSES = frozenset({RFQStatus.QUOTE_SENT, RFQStatus.PARTIALLY_QUOTED})

# operation -> (allowed prior statuses, resulting status)
# admin_quote resolves to QUOTE_SENT or PARTIALLY_QUOTED depending on the lines;
# its entry records the fully-quoted target.
RFQ_TRANSITIONS: dict[str, tuple[frozenset, RFQStatus]] = {
    "admin_accept": (
        frozenset({RFQStatus.PENDING_REVIEW}),
        RFQStatus.UNDER_REVIEW,
    ),
    "admin_quote": (
        frozenset({RFQStatus.PENDING_REVIEW, RFQStatus.UNDER_REVIEW, RFQStatus.PARTIALLY_QUOTED}),
        RFQStatus.QUOTE_SENT,
    ),
    "admin_reject": (
        QUOTED_STATUSES,
        RFQStatus.REJECTED_BY_ADMIN,
    ),
    "customer_cancel": (
        frozenset({RFQStatus.PENDING_REVIEW, RFQStatus.UNDER_REVIEW, RFQStatus.PARTIALLY_QUOTED}),
        RFQStatus.REJECTED_BY_CUSTOMER,
    ),
    "customer_reject": (
        QUOTED_STATUSES,
        RFQStatus.REJECTED_BY_CUSTOMER,
    ),
    "customer_accept": (
        QUOTED_STATUSES,
        RFQStatus.CONVERTED_TO_ORDER,
    ),
    "expire": (
        QUOTED_STATUSES,
        RFQStatus.EXPIRED,
    ),
}

RFQ_OPERATION_MESSAGES = {
    "admin_accept": "This RFQ cannot be moved to Under Review.",
    "admin_quote": "This RFQ can no longer be quoted.",
    "admin_reject": "This RFQ cannot be rejected.",
    "customer_cancel": "This RFQ can no longer be cancelled.",
    "customer_reject": "This quote can no longer be rejected.",
    "customer_accept": "This quote can no longer be accepted.",
    "expire": "This quote cannot expire.",
}


def check_rfq_transition(operation: str, current: RFQStatus) -> RFQStatus:
    """Return the status `operation` leads to from `current`, or raise StateConflictError."""
    allowed, target = RFQ_TRANSITIONS[operation]
    if current not in allowed:
        raise StateConflictError(
            RFQ_OPERATION_MESSAGES[operation],
            details={"operation": operation, "status": RFQStatus(current).value},
        )
    return target


# =============================================================================
# ORDER STATE MACHINE
# =============================================================================

ORDER_TERMINAL = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})

ORDER_TRANSITIONS: dict[str, tuple[frozenset, OrderStatus]] = {
    "mark_ready": (
        frozenset({OrderStatus.AWAITING_PICKUP}),
        OrderStatus.READY_FOR_PICKUP,
    ),
    "pay_and_complete": (
        frozenset({OrderStatus.READY_FOR_PICKUP}),
        OrderStatus.COMPLETED,
    ),
    "cancel": (
        frozenset({OrderStatus.AWAITING_PICKUP, OrderStatus.READY_FOR_PICKUP}),
        OrderStatus.CANCELLED,
    ),
}

ORDER_OPERATION_MESSAGES = {
    "mark_ready": "This order cannot be marked ready for pickup.",
    "pay_and_complete": "Order must be READY_FOR_PICKUP to accept payment.",
    "cancel": "This order can no longer be cancelled.",
}


def check_order_transition(operation: str, current: OrderStatus) -> OrderStatus:
    allowed, target = ORDER_TRANSITIONS[operation]
    if current not in allowed:
        raise StateConflictError(
            ORDER_OPERATION_MESSAGES[operation],
            details={"operation": operation, "status": OrderStatus(current).value},
        )
    return target
