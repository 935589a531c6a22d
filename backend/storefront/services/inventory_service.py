# Overview: Service-layer operations for inventory units; FIFO allocation with compare-and-swap reservation.

"""
Inventory Allocator

WHY: Each product's stock is a set of ProductUnit rows. Reserving stock means
moving one unit IN_STOCK -> RESERVED with a conditional UPDATE keyed on the
unit id AND its expected status. The UPDATE's affected-row count is the only
proof the caller won the unit; zero rows means someone else got there first,
so we pick again instead of pretending success.

Transactions: functions take commit=True by default. Callers composing a
larger unit of work (customer_accept) pass commit=False and own the commit
or rollback.
"""

from flask import current_app
from sqlalchemy import func, update

from ..errors import NotFoundError, OutOfStockError, StateConflictError, ValidationError
from ..extensions import db
from ..models import Product, ProductUnit
from ..time_utils import utcnow
from ..workflow import UnitStatus
from .concurrency import lock_for_update


def _transition_unit(unit_id: int, expected: UnitStatus, target: UnitStatus, **values) -> bool:
    """Conditional status change; True only if exactly one row matched."""
    result = db.session.execute(
        update(ProductUnit)
        .where(ProductUnit.id == unit_id, ProductUnit.status == expected)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _next_in_stock_unit_id(product_id: int, exclude: set[int]) -> int | None:
    query = db.session.query(ProductUnit.id).filter(
        ProductUnit.product_id == product_id,
        ProductUnit.status == UnitStatus.IN_STOCK,
    )
    if exclude:
        query = query.filter(ProductUnit.id.notin_(exclude))
    query = query.order_by(ProductUnit.created_at.asc(), ProductUnit.id.asc())
    row = lock_for_update(query, skip_locked=True).first()
    return row[0] if row else None


def reserve_one(product_id: int, commit: bool = True) -> ProductUnit:
    """
    Reserve the oldest IN_STOCK unit of a product.

    Retries selection when the compare-and-swap loses a race, up to
    RESERVE_MAX_ATTEMPTS times.

    Raises:
        OutOfStockError: no IN_STOCK unit, or contention outlasted the retries
    """
    attempts = current_app.config.get("RESERVE_MAX_ATTEMPTS", 5)
    lost: set[int] = set()

    for _ in range(attempts):
        unit_id = _next_in_stock_unit_id(product_id, lost)
        if unit_id is None:
            break

        if _transition_unit(unit_id, UnitStatus.IN_STOCK, UnitStatus.RESERVED, reserved_at=utcnow()):
            if commit:
                db.session.commit()
            return db.session.get(ProductUnit, unit_id, populate_existing=True)

        # Zero rows matched: a concurrent caller reserved this unit first
        current_app.logger.info("Unit %s taken concurrently; retrying allocation", unit_id)
        lost.add(unit_id)

    product = db.session.get(Product, product_id)
    name = product.name if product else f"Product {product_id}"
    if commit:
        # A lost CAS may have opened a write transaction
        db.session.rollback()
    raise OutOfStockError(
        f"{name} is no longer in stock.",
        details={"product_id": product_id},
        code="OUT_OF_STOCK",
    )


def release(unit_id: int, commit: bool = True) -> ProductUnit:
    """RESERVED -> IN_STOCK (order cancelled, reservation undone)."""
    if not _transition_unit(unit_id, UnitStatus.RESERVED, UnitStatus.IN_STOCK, reserved_at=None):
        _raise_transition_failure(unit_id, "released")
    if commit:
        db.session.commit()
    return db.session.get(ProductUnit, unit_id, populate_existing=True)


def sell(unit_id: int, commit: bool = True) -> ProductUnit:
    """RESERVED -> SOLD (order paid and handed over)."""
    if not _transition_unit(unit_id, UnitStatus.RESERVED, UnitStatus.SOLD, sold_at=utcnow()):
        _raise_transition_failure(unit_id, "sold")
    if commit:
        db.session.commit()
    return db.session.get(ProductUnit, unit_id, populate_existing=True)


def _raise_transition_failure(unit_id: int, verb: str) -> None:
    unit = db.session.get(ProductUnit, unit_id, populate_existing=True)
    if not unit:
        raise NotFoundError("Product unit not found.")
    raise StateConflictError(
        f"Unit {unit.machine_id} cannot be {verb} from status {unit.status.value}.",
        details={"unit_id": unit_id, "status": unit.status.value},
    )


def add_units(product_id: int, count: int, commit: bool = True) -> list[ProductUnit]:
    """
    Create `count` IN_STOCK units with sequential machine ids (<SKU>-0001...).

    Used when stock is received; catalog management calls this after creating
    a product with an initial stock quantity.
    """
    if not isinstance(count, int) or isinstance(count, bool) or count <= 0:
        raise ValidationError("Unit count must be a positive integer.")

    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found.")

    existing = db.session.query(func.count(ProductUnit.id)).filter_by(product_id=product_id).scalar() or 0

    units = []
    now = utcnow()
    for seq in range(existing + 1, existing + count + 1):
        unit = ProductUnit(
            product_id=product_id,
            machine_id=f"{product.sku}-{seq:04d}",
            status=UnitStatus.IN_STOCK,
            created_at=now,
        )
        db.session.add(unit)
        units.append(unit)

    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return units


def count_in_stock(product_id: int) -> int:
    return db.session.query(func.count(ProductUnit.id)).filter(
        ProductUnit.product_id == product_id,
        ProductUnit.status == UnitStatus.IN_STOCK,
    ).scalar() or 0
