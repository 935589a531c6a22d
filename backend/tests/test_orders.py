"""
Order fulfillment tests.

Verifies:
- Cash settlement computes change to the cent and sells every reserved unit
- Short or invalid tender leaves the order untouched
- A paid order cannot be paid again
- Cancelling releases reserved units
- Customers only see their own orders
"""

from decimal import Decimal

import pytest

from storefront.errors import StateConflictError, ValidationError
from storefront.extensions import db
from storefront.models import Order, Payment, ProductUnit
from storefront.services import inventory_service, order_service, rfq_service
from storefront.workflow import (
    OrderStatus,
    PaymentMethod,
    PaymentRecordStatus,
    PaymentStatus,
    RFQStatus,
    UnitStatus,
)

from conftest import make_order, make_rfq


def _reload(order_id) -> Order:
    return db.session.get(Order, order_id, populate_existing=True)


def _unit_statuses(order: Order) -> set[UnitStatus]:
    return {
        db.session.get(ProductUnit, line.product_unit_id, populate_existing=True).status
        for line in order.lines
    }


class TestCashSettlement:

    @pytest.mark.parametrize("tendered,change", [
        ("1800", Decimal("0.00")),
        ("2000", Decimal("200.00")),
        (1800.5, Decimal("0.50")),
        ("1800.005", Decimal("0.01")),
    ])
    def test_change_to_the_cent(self, db_session, customer, product_a, tendered, change):
        order = make_order(customer, product_a, status=OrderStatus.READY_FOR_PICKUP)

        paid = order_service.pay_and_complete(order.id, tendered)

        assert paid.status == OrderStatus.COMPLETED
        assert paid.payment_status == PaymentStatus.PAID
        assert paid.payment_method == "CASH"
        assert paid.change_given == change
        assert paid.paid_at is not None
        assert paid.completed_at is not None
        assert _unit_statuses(paid) == {UnitStatus.SOLD}

    def test_payment_row_recorded(self, db_session, customer, admin, product_a):
        order = make_order(customer, product_a, status=OrderStatus.READY_FOR_PICKUP)
        order_service.pay_and_complete(order.id, "2000", cashier_user_id=admin.id)

        payment = db.session.query(Payment).filter_by(order_id=order.id).one()
        assert payment.amount_due == Decimal("1800.00")
        assert payment.amount_received == Decimal("2000.00")
        assert payment.change_given == Decimal("200.00")
        assert payment.status == PaymentRecordStatus.CAPTURED
        assert payment.payment_method == PaymentMethod.CASH
        assert payment.to_dict()["payment_method"] == "CASH"
        assert payment.created_by_user_id == admin.id

    def test_insufficient_cash_changes_nothing(self, db_session, customer, product_a):
        order = make_order(customer, product_a, status=OrderStatus.READY_FOR_PICKUP)

        with pytest.raises(ValidationError) as exc:
            order_service.pay_and_complete(order.id, "1799.99")
        assert exc.value.details == {"amount_due": "1800.00", "cash_received": "1799.99"}

        refreshed = _reload(order.id)
        assert refreshed.status == OrderStatus.READY_FOR_PICKUP
        assert refreshed.payment_status == PaymentStatus.UNPAID
        assert refreshed.amount_received is None
        assert _unit_statuses(refreshed) == {UnitStatus.RESERVED}
        assert db.session.query(Payment).count() == 0

    @pytest.mark.parametrize("tendered", [None, "", "abc", "NaN", "Infinity", "-5", 0, True])
    def test_invalid_cash(self, db_session, customer, product_a, tendered):
        order = make_order(customer, product_a, status=OrderStatus.READY_FOR_PICKUP)
        with pytest.raises(ValidationError):
            order_service.pay_and_complete(order.id, tendered)
        assert _reload(order.id).status == OrderStatus.READY_FOR_PICKUP

    def test_second_payment_is_rejected(self, db_session, customer, product_a):
        order = make_order(customer, product_a, status=OrderStatus.READY_FOR_PICKUP)
        order_service.pay_and_complete(order.id, "1800")

        with pytest.raises(StateConflictError) as exc:
            order_service.pay_and_complete(order.id, "1800")
        assert exc.value.message == "Order has already been paid."
        assert db.session.query(Payment).filter_by(order_id=order.id).count() == 1

    def test_pay_over_http(self, client, admin_headers, customer, product_a):
        order = make_order(customer, product_a)

        resp = client.post(f"/api/admin/order/{order.id}/ready-for-pickup", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["order"]["status"] == "READY_FOR_PICKUP"

        resp = client.post(f"/api/admin/order/{order.id}/pay-and-complete", headers=admin_headers,
                           json={"cash_received": 1850.25})
        assert resp.status_code == 200
        assert resp.json["change"] == "50.25"
        assert resp.json["order"]["status"] == "COMPLETED"
        assert resp.json["order"]["amount_received"] == "1850.25"

        resp = client.post(f"/api/admin/order/{order.id}/pay-and-complete", headers=admin_headers,
                           json={"cash_received": 1850.25})
        assert resp.status_code == 400


class TestCancellation:

    @pytest.mark.parametrize("status", [OrderStatus.AWAITING_PICKUP, OrderStatus.READY_FOR_PICKUP])
    def test_cancel_releases_units(self, db_session, customer, product_a, status):
        order = make_order(customer, product_a, status=status)
        assert inventory_service.count_in_stock(product_a.id) == 2

        cancelled = order_service.cancel_order(order.id, "  Customer no-show ")

        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancel_reason == "Customer no-show"
        assert cancelled.cancelled_at is not None
        assert _unit_statuses(cancelled) == {UnitStatus.IN_STOCK}
        assert inventory_service.count_in_stock(product_a.id) == 3

    def test_cancelled_order_cannot_be_paid_or_cancelled(self, db_session, customer, product_a):
        order = make_order(customer, product_a, status=OrderStatus.READY_FOR_PICKUP)
        order_service.cancel_order(order.id)

        with pytest.raises(StateConflictError):
            order_service.pay_and_complete(order.id, "5000")
        with pytest.raises(StateConflictError):
            order_service.cancel_order(order.id)
        assert inventory_service.count_in_stock(product_a.id) == 3

    def test_released_unit_backs_the_next_order(self, db_session, customer, product_a):
        first = make_order(customer, product_a)
        released_unit_id = first.lines[0].product_unit_id
        order_service.cancel_order(first.id)
        assert inventory_service.count_in_stock(product_a.id) == 3

        rfq = make_rfq(customer, [(product_a, 1, "950.00")], status=RFQStatus.QUOTE_SENT)
        second = rfq_service.customer_accept(customer.id, rfq.id)

        assert second.status == OrderStatus.AWAITING_PICKUP
        assert second.lines[0].product_unit_id == released_unit_id
        assert _unit_statuses(second) == {UnitStatus.RESERVED}
        assert inventory_service.count_in_stock(product_a.id) == 2
        assert _reload(first.id).status == OrderStatus.CANCELLED

    def test_cancel_over_http(self, client, admin_headers, customer, product_a):
        order = make_order(customer, product_a)
        resp = client.post(f"/api/admin/order/{order.id}/cancel", headers=admin_headers,
                           json={"reason": "Stock damaged"})
        assert resp.status_code == 200
        assert resp.json["order"]["status"] == "CANCELLED"
        assert resp.json["order"]["cancel_reason"] == "Stock damaged"

    def test_unknown_order_is_404(self, client, admin_headers):
        assert client.post("/api/admin/order/424242/cancel", headers=admin_headers).status_code == 404


class TestCustomerOrders:

    def test_list_and_get_are_scoped(self, client, customer, customer_headers, other_customer, product_a):
        mine = make_order(customer, product_a, quantity=1)
        theirs = make_order(other_customer, product_a, quantity=1)

        resp = client.get("/api/orders/list", headers=customer_headers)
        assert resp.status_code == 200
        assert [o["id"] for o in resp.json["orders"]] == [mine.id]

        resp = client.get(f"/api/orders/{mine.id}", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json["order"]["total_price"] == "900.00"
        assert resp.json["order"]["items"][0]["machine_id"].startswith("IOT-GW-01-")

        assert client.get(f"/api/orders/{theirs.id}", headers=customer_headers).status_code == 404
