from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..workflow import CartLineStatus, CartStatus
from .columns import enum_type, money, money_str


class Cart(db.Model):
    """
    Per-user staging area for RFQ lines.

    Created lazily on first add and reused across logins; never deleted.
    INVARIANT: at most one ACTIVE cart per user (partial unique index).
    """
    __tablename__ = "cart_sessions"
    __table_args__ = (
        db.Index(
            "uq_cart_sessions_one_active",
            "user_id",
            unique=True,
            sqlite_where=db.text("status = 'ACTIVE'"),
            postgresql_where=db.text("status = 'ACTIVE'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    status = db.Column(enum_type(CartStatus, 16), nullable=False, default=CartStatus.ACTIVE)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user = db.relationship("User", backref=db.backref("carts", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status.value,
            "created_at": to_utc_z(self.created_at),
        }


class CartLine(db.Model):
    """
    One product entry in a cart.

    ACTIVE -> REMOVED is a soft delete; ACTIVE -> RFQED happens when the line
    is folded into a submitted RFQ. Rows are kept for history.
    INVARIANT: ACTIVE lines are unique per (cart, product).
    """
    __tablename__ = "cart_items"
    __table_args__ = (
        db.Index(
            "uq_cart_items_active_product",
            "cart_id",
            "product_id",
            unique=True,
            sqlite_where=db.text("status = 'ACTIVE'"),
            postgresql_where=db.text("status = 'ACTIVE'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("cart_sessions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)

    # Catalog price at the time the line was first added
    unit_price = db.Column(money(), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="PHP")

    status = db.Column(enum_type(CartLineStatus, 16), nullable=False, default=CartLineStatus.ACTIVE)

    # Set when the line was folded into an RFQ (no FK: rfq_items already points back here)
    rfq_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    cart = db.relationship("Cart", backref=db.backref("lines", lazy=True))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cart_id": self.cart_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "currency": self.currency,
            "status": self.status.value,
            "rfq_id": self.rfq_id,
            "product": {
                "id": self.product.id,
                "name": self.product.name,
                "slug": self.product.slug,
                "base_price": money_str(self.product.base_price),
            } if self.product else None,
            "created_at": to_utc_z(self.created_at),
        }
