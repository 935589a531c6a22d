from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..workflow import UnitStatus
from .columns import enum_type, money, money_str


class Product(db.Model):
    """
    Sellable catalog entry.

    Catalog CRUD lives outside this service; the transactional core only
    reads is_active / base_price / currency when a line is added to a cart.
    """
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=True, unique=True)

    base_price = db.Column(money(), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="PHP")

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "slug": self.slug,
            "base_price": money_str(self.base_price),
            "currency": self.currency,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class ProductUnit(db.Model):
    """
    One allocatable physical unit of a product.

    WHY: Stock is tracked per unit, not as a counter, so a reservation is a
    single-row compare-and-swap (IN_STOCK -> RESERVED) that two callers can
    never both win. Allocation is FIFO by (created_at, id).
    """
    __tablename__ = "product_units"
    __table_args__ = (
        db.Index("ix_product_units_alloc", "product_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # e.g. "IOT-GW-01-0003"
    machine_id = db.Column(db.String(96), nullable=False, unique=True)

    status = db.Column(enum_type(UnitStatus, 16), nullable=False, default=UnitStatus.IN_STOCK)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    reserved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sold_at = db.Column(db.DateTime(timezone=True), nullable=True)

    product = db.relationship("Product", backref=db.backref("units", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "machine_id": self.machine_id,
            "status": self.status.value,
            "created_at": to_utc_z(self.created_at),
            "reserved_at": to_utc_z(self.reserved_at),
            "sold_at": to_utc_z(self.sold_at),
        }
