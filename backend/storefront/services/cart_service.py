# Overview: Service-layer operations for the cart; upsert, soft delete and RFQ folding of cart lines.

"""
Cart Service

WHY: The cart is a per-user staging area. Lines accumulate here and are
bundled into an RFQ on submit. Rows are never physically deleted: removal
is a status change (REMOVED) and submission folds lines to RFQED, so the
history of what a customer asked about is preserved.

Concurrency: one ACTIVE cart per user and one ACTIVE line per
(cart, product) are both partial unique indexes. Two concurrent adds of the
same product cannot create two lines; the loser's insert fails and is
retried as an increment.
"""

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Cart, CartLine, Product, RFQ
from ..time_utils import utcnow
from ..workflow import CartLineStatus, CartStatus
from .concurrency import run_with_retry

UPSERT_ATTEMPTS = 3


def parse_quantity(value, field: str = "quantity") -> int:
    """Positive integer or ValidationError. Integral strings ("3") are accepted."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a positive integer.")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer.")
    return value


def _find_active_cart(user_id: int) -> Cart | None:
    return db.session.query(Cart).filter_by(user_id=user_id, status=CartStatus.ACTIVE).first()


def get_or_create_active_cart(user_id: int) -> Cart:
    """
    Return the user's ACTIVE cart, creating it on first use.

    Idempotent under concurrency: if another request creates the cart between
    our lookup and insert, the unique index rejects ours and we return theirs.
    """
    cart = _find_active_cart(user_id)
    if cart:
        return cart

    cart = Cart(user_id=user_id, status=CartStatus.ACTIVE)
    db.session.add(cart)
    try:
        db.session.commit()
        return cart
    except IntegrityError:
        db.session.rollback()

    cart = _find_active_cart(user_id)
    if not cart:
        raise ValidationError("Could not open a cart for this user.")
    return cart


def _active_lines(cart_id: int) -> list[CartLine]:
    return (
        db.session.query(CartLine)
        .filter_by(cart_id=cart_id, status=CartLineStatus.ACTIVE)
        .order_by(CartLine.created_at.asc(), CartLine.id.asc())
        .all()
    )


def get_cart(user_id: int) -> dict:
    """ACTIVE lines of the user's cart plus simple totals."""
    cart = get_or_create_active_cart(user_id)
    lines = _active_lines(cart.id)
    return {
        "cart_id": cart.id,
        "items": [line.to_dict() for line in lines],
        "item_count": len(lines),
        "total_quantity": sum(line.quantity for line in lines),
    }


def add_line(user_id: int, product_id, quantity) -> CartLine:
    """
    Add a product to the cart, or increment the existing ACTIVE line.

    A new line snapshots the product's current base price and currency.

    Raises:
        ValidationError: bad quantity, bad product id, or product not sellable
        NotFoundError: product does not exist
    """
    qty = parse_quantity(quantity)
    if isinstance(product_id, bool) or not isinstance(product_id, int):
        raise ValidationError("product_id must be an integer.")

    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found.")
    if not product.is_active:
        raise ValidationError("This product is not available.", details={"product_id": product_id})

    cart = get_or_create_active_cart(user_id)

    for _ in range(UPSERT_ATTEMPTS):
        line = db.session.query(CartLine).filter_by(
            cart_id=cart.id,
            product_id=product_id,
            status=CartLineStatus.ACTIVE,
        ).first()

        if line:
            # Increment in SQL so concurrent adds never lose an update
            line.quantity = CartLine.quantity + qty
            line.updated_at = utcnow()
        else:
            line = CartLine(
                cart_id=cart.id,
                product_id=product_id,
                quantity=qty,
                unit_price=product.base_price,
                currency=product.currency or current_app.config["DEFAULT_CURRENCY"],
                status=CartLineStatus.ACTIVE,
            )
            db.session.add(line)

        try:
            db.session.commit()
            return line
        except IntegrityError:
            # Concurrent insert of the same product won; retry as an increment
            db.session.rollback()

    raise ValidationError("Cart is busy, please retry.")


def _owned_active_line(user_id: int, line_id: int) -> CartLine:
    line = (
        db.session.query(CartLine)
        .join(Cart, Cart.id == CartLine.cart_id)
        .filter(
            CartLine.id == line_id,
            CartLine.status == CartLineStatus.ACTIVE,
            Cart.user_id == user_id,
            Cart.status == CartStatus.ACTIVE,
        )
        .first()
    )
    if not line:
        raise NotFoundError("Cart item not found.")
    return line


def set_quantity(user_id: int, line_id: int, quantity) -> CartLine:
    qty = parse_quantity(quantity)

    def _op():
        line = _owned_active_line(user_id, line_id)
        line.quantity = qty
        line.updated_at = utcnow()
        db.session.commit()
        return line

    return run_with_retry(_op)


def remove_line(user_id: int, line_id: int) -> CartLine:
    """Soft delete: the row stays, status becomes REMOVED."""
    def _op():
        line = _owned_active_line(user_id, line_id)
        line.status = CartLineStatus.REMOVED
        line.updated_at = utcnow()
        db.session.commit()
        return line

    return run_with_retry(_op)


def fold_into_rfq(user_id: int, rfq_id: int, cart_line_ids: list[int]) -> int:
    """
    Mark the given ACTIVE cart lines as RFQED for a submitted RFQ.

    Best-effort: runs after the RFQ is committed, and a failure here is
    logged, never raised. The RFQ stands either way; the cart may then still
    show the item. Returns the number of lines folded.
    """
    if not cart_line_ids:
        return 0

    try:
        user_carts = db.session.query(Cart.id).filter(Cart.user_id == user_id)
        result = db.session.execute(
            update(CartLine)
            .where(
                CartLine.id.in_(cart_line_ids),
                CartLine.status == CartLineStatus.ACTIVE,
                CartLine.cart_id.in_(user_carts.scalar_subquery()),
            )
            .values(status=CartLineStatus.RFQED, rfq_id=rfq_id, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return result.rowcount
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning(
            "Failed to fold cart lines %s into RFQ %s", cart_line_ids, rfq_id, exc_info=True
        )
        return 0


def restore_from_rfq(rfq: RFQ) -> int:
    """
    Put an RFQ's folded cart lines back in the owner's cart.

    Only when RESTORE_CART_ON_RFQ_CANCEL is enabled; otherwise folding is
    one-way and this is a no-op. A restored line merges into an existing
    ACTIVE line for the same product. Best-effort like fold_into_rfq.
    """
    if not current_app.config.get("RESTORE_CART_ON_RFQ_CANCEL") or not rfq.user_id:
        return 0

    rfq_id, user_id = rfq.id, rfq.user_id
    try:
        folded = db.session.query(CartLine).filter_by(rfq_id=rfq_id, status=CartLineStatus.RFQED).all()
        if not folded:
            return 0

        cart = _find_active_cart(user_id)
        if not cart:
            cart = Cart(user_id=user_id, status=CartStatus.ACTIVE)
            db.session.add(cart)
            db.session.flush()

        now = utcnow()
        for line in folded:
            existing = db.session.query(CartLine).filter_by(
                cart_id=cart.id,
                product_id=line.product_id,
                status=CartLineStatus.ACTIVE,
            ).first()
            if existing:
                existing.quantity = CartLine.quantity + line.quantity
                existing.updated_at = now
                line.status = CartLineStatus.REMOVED
            else:
                line.cart_id = cart.id
                line.status = CartLineStatus.ACTIVE
                line.rfq_id = None
            line.updated_at = now
            db.session.flush()

        db.session.commit()
        current_app.logger.info("Restored %s cart line(s) from RFQ %s", len(folded), rfq_id)
        return len(folded)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Failed to restore cart lines from RFQ %s", rfq_id, exc_info=True)
        return 0
