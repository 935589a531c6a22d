from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..workflow import RFQLineStatus, RFQStatus
from .columns import enum_type, money, money_str


class RFQ(db.Model):
    """
    Request for quote header.

    Lifecycle: PENDING_REVIEW -> UNDER_REVIEW -> QUOTE_SENT / PARTIALLY_QUOTED
    -> CONVERTED_TO_ORDER | REJECTED_BY_CUSTOMER | REJECTED_BY_ADMIN | EXPIRED.
    Legal moves are defined in storefront.workflow.RFQ_TRANSITIONS.
    """
    __tablename__ = "rfqs"
    __table_args__ = (
        db.Index("ix_rfqs_user_created", "user_id", "created_at"),
        db.Index("ix_rfqs_status_valid_until", "status", "price_valid_until"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Nullable in the schema; every route that creates an RFQ requires a session
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    company_name = db.Column(db.String(255), nullable=True)
    contact_name = db.Column(db.String(255), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(64), nullable=True)
    use_case = db.Column(db.Text, nullable=True)
    site_info = db.Column(db.Text, nullable=True)
    additional_notes = db.Column(db.Text, nullable=True)

    currency = db.Column(db.String(3), nullable=False, default="PHP")
    status = db.Column(enum_type(RFQStatus), nullable=False, default=RFQStatus.PENDING_REVIEW)

    # Quote validity; past this point QUOTE_SENT / PARTIALLY_QUOTED lapse to EXPIRED
    price_valid_until = db.Column(db.DateTime(timezone=True), nullable=True)

    quoted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    decision_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    user = db.relationship("User", backref=db.backref("rfqs", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "company_name": self.company_name,
            "contact_name": self.contact_name,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "use_case": self.use_case,
            "site_info": self.site_info,
            "additional_notes": self.additional_notes,
            "currency": self.currency,
            "status": self.status.value,
            "price_valid_until": to_utc_z(self.price_valid_until),
            "quoted_at": to_utc_z(self.quoted_at),
            "decided_at": to_utc_z(self.decided_at),
            "decision_reason": self.decision_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "created_at": to_utc_z(self.created_at),
            "status": self.status.value,
            "currency": self.currency,
            "company_name": self.company_name,
        }


class RFQLine(db.Model):
    """
    One requested product on an RFQ.

    Staff pricing sets quoted_unit_price and/or quoted_total_price (either
    one is enough, the other is derivable) and flips line_status to QUOTED.
    Only QUOTED lines with a price become order lines.
    """
    __tablename__ = "rfq_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    rfq_id = db.Column(db.Integer, db.ForeignKey("rfqs.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    # Source cart line, when the RFQ was submitted from the cart
    cart_line_id = db.Column(db.Integer, db.ForeignKey("cart_items.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="PHP")

    quoted_unit_price = db.Column(money(), nullable=True)
    quoted_total_price = db.Column(money(), nullable=True)
    line_lead_time_days = db.Column(db.Integer, nullable=True)
    line_notes = db.Column(db.Text, nullable=True)

    line_status = db.Column(enum_type(RFQLineStatus), nullable=False, default=RFQLineStatus.PENDING_REVIEW)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    rfq = db.relationship("RFQ", backref=db.backref("lines", lazy=True, order_by="RFQLine.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rfq_id": self.rfq_id,
            "product_id": self.product_id,
            "cart_line_id": self.cart_line_id,
            "quantity": self.quantity,
            "currency": self.currency,
            "quoted_unit_price": money_str(self.quoted_unit_price),
            "quoted_total_price": money_str(self.quoted_total_price),
            "line_lead_time_days": self.line_lead_time_days,
            "line_notes": self.line_notes,
            "line_status": self.line_status.value,
            "product": {
                "id": self.product.id,
                "name": self.product.name,
                "slug": self.product.slug,
                "base_price": money_str(self.product.base_price),
            } if self.product else None,
        }
