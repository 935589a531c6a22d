from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..workflow import OrderStatus, PaymentMethod, PaymentRecordStatus, PaymentStatus
from .columns import enum_type, money, money_str


class Order(db.Model):
    """
    Order created from exactly one accepted RFQ.

    total_price is fixed at creation as the sum of the line totals and is
    never re-derived. Fulfilment is pickup + cash: AWAITING_PICKUP ->
    READY_FOR_PICKUP -> COMPLETED, with CANCELLED reachable before completion.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # One order per RFQ; backstop for concurrent accepts of the same quote
    rfq_id = db.Column(db.Integer, db.ForeignKey("rfqs.id"), nullable=False, unique=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    status = db.Column(enum_type(OrderStatus), nullable=False, default=OrderStatus.AWAITING_PICKUP)
    currency = db.Column(db.String(3), nullable=False, default="PHP")
    total_price = db.Column(money(), nullable=False)
    pickup_location = db.Column(db.String(255), nullable=True)

    payment_status = db.Column(enum_type(PaymentStatus, 16), nullable=False, default=PaymentStatus.UNPAID)
    payment_method = db.Column(enum_type(PaymentMethod, 16), nullable=True)
    amount_received = db.Column(money(), nullable=True)
    change_given = db.Column(money(), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    ready_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    rfq = db.relationship("RFQ", backref=db.backref("order", uselist=False))
    user = db.relationship("User", backref=db.backref("orders", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rfq_id": self.rfq_id,
            "user_id": self.user_id,
            "status": self.status.value,
            "currency": self.currency,
            "total_price": money_str(self.total_price),
            "pickup_location": self.pickup_location,
            "payment_status": self.payment_status.value,
            "payment_method": self.payment_method.value if self.payment_method else None,
            "amount_received": money_str(self.amount_received),
            "change_given": money_str(self.change_given),
            "created_at": to_utc_z(self.created_at),
            "ready_at": to_utc_z(self.ready_at),
            "paid_at": to_utc_z(self.paid_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancel_reason": self.cancel_reason,
        }


class OrderLine(db.Model):
    """
    Order line bound to exactly one reserved product unit.

    unit_price / line_total are snapshots of the accepted quote, so later
    catalog price changes never touch a placed order.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    rfq_line_id = db.Column(db.Integer, db.ForeignKey("rfq_items.id"), nullable=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    # A released unit can back a later order line; the IN_STOCK -> RESERVED
    # swap in inventory_service keeps it to one live line at a time
    product_unit_id = db.Column(db.Integer, db.ForeignKey("product_units.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(money(), nullable=False)
    line_total = db.Column(money(), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="PHP")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    order = db.relationship("Order", backref=db.backref("lines", lazy=True, order_by="OrderLine.id"))
    product = db.relationship("Product")
    unit = db.relationship("ProductUnit")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "rfq_line_id": self.rfq_line_id,
            "product_id": self.product_id,
            "product_unit_id": self.product_unit_id,
            "machine_id": self.unit.machine_id if self.unit else None,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "line_total": money_str(self.line_total),
            "currency": self.currency,
            "product": {
                "id": self.product.id,
                "name": self.product.name,
                "slug": self.product.slug,
            } if self.product else None,
        }


class Payment(db.Model):
    """
    Cash settlement record.

    WHY: The order row carries the settled state; this row is the audit copy
    of what was due, what was tendered, and what change was handed back.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    payment_method = db.Column(enum_type(PaymentMethod, 16), nullable=False, default=PaymentMethod.CASH)
    status = db.Column(enum_type(PaymentRecordStatus, 16), nullable=False, default=PaymentRecordStatus.CAPTURED)
    currency = db.Column(db.String(3), nullable=False, default="PHP")

    amount_due = db.Column(money(), nullable=False)
    amount_received = db.Column(money(), nullable=False)
    change_given = db.Column(money(), nullable=False)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    order = db.relationship("Order", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "payment_method": self.payment_method.value,
            "status": self.status.value,
            "currency": self.currency,
            "amount_due": money_str(self.amount_due),
            "amount_received": money_str(self.amount_received),
            "change_given": money_str(self.change_given),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
