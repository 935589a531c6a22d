"""
Cart tests.

Verifies:
- Adding a product creates one ACTIVE line per (cart, product); re-adding merges
- New lines snapshot the product's price at add time
- Quantities must be positive integers
- Removal is a soft delete
- Users can only touch their own lines
- Submitting an RFQ from the cart folds the lines; restoring them is opt-in
- Fold and restore failures are logged and never fail the RFQ operation
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from storefront.errors import NotFoundError, ValidationError
from storefront.extensions import db
from storefront.models import RFQ, Cart, CartLine
from storefront.services import cart_service, rfq_service
from storefront.workflow import CartLineStatus, CartStatus, RFQStatus

CART_URL = "/api/product-catalog/cart"
RFQ_URL = "/api/product-catalog/rfq"


def _add(client, headers, product_id, quantity=1):
    return client.post(f"{CART_URL}/items", headers=headers, json={"product_id": product_id, "quantity": quantity})


class TestCartRoutes:

    def test_empty_cart_is_created_on_first_view(self, client, customer, customer_headers):
        resp = client.get(CART_URL, headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json["items"] == []
        assert resp.json["item_count"] == 0
        assert db.session.query(Cart).filter_by(user_id=customer.id, status=CartStatus.ACTIVE).count() == 1

    def test_add_snapshots_price(self, client, customer_headers, product_a):
        resp = _add(client, customer_headers, product_a.id, 2)
        assert resp.status_code == 201
        item = resp.json["item"]
        assert item["quantity"] == 2
        assert item["unit_price"] == "1000.00"
        assert item["currency"] == "PHP"
        assert item["status"] == "ACTIVE"

    def test_quantity_defaults_to_one(self, client, customer_headers, product_a):
        resp = client.post(f"{CART_URL}/items", headers=customer_headers, json={"product_id": product_a.id})
        assert resp.status_code == 201
        assert resp.json["item"]["quantity"] == 1

    def test_re_adding_merges_into_one_line(self, client, customer_headers, product_a):
        first = _add(client, customer_headers, product_a.id, 2).json["item"]
        second = _add(client, customer_headers, product_a.id, 3).json["item"]
        assert second["id"] == first["id"]
        assert second["quantity"] == 5

        cart = client.get(CART_URL, headers=customer_headers).json
        assert cart["item_count"] == 1
        assert cart["total_quantity"] == 5

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "abc", True, None])
    def test_rejects_bad_quantity(self, client, customer_headers, product_a, quantity):
        resp = client.post(f"{CART_URL}/items", headers=customer_headers,
                           json={"product_id": product_a.id, "quantity": quantity})
        assert resp.status_code == 400

    def test_missing_product_is_404(self, client, customer_headers):
        assert _add(client, customer_headers, 999999).status_code == 404

    def test_inactive_product_is_400(self, client, customer_headers, product_a):
        product_a.is_active = False
        db.session.commit()
        assert _add(client, customer_headers, product_a.id).status_code == 400

    def test_update_quantity(self, client, customer_headers, product_a):
        line_id = _add(client, customer_headers, product_a.id).json["item"]["id"]
        resp = client.patch(f"{CART_URL}/items/{line_id}", headers=customer_headers, json={"quantity": 4})
        assert resp.status_code == 200
        assert resp.json["item"]["quantity"] == 4

        resp = client.patch(f"{CART_URL}/items/{line_id}", headers=customer_headers, json={"quantity": 0})
        assert resp.status_code == 400

    def test_remove_is_soft_delete(self, client, customer_headers, product_a):
        line_id = _add(client, customer_headers, product_a.id).json["item"]["id"]
        resp = client.delete(f"{CART_URL}/items/{line_id}", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json["item"]["status"] == "REMOVED"

        assert client.get(CART_URL, headers=customer_headers).json["items"] == []
        assert db.session.get(CartLine, line_id) is not None

        # Removed line cannot be edited or removed again
        assert client.delete(f"{CART_URL}/items/{line_id}", headers=customer_headers).status_code == 404

    def test_re_add_after_remove_starts_new_line(self, client, customer_headers, product_a):
        old_id = _add(client, customer_headers, product_a.id, 2).json["item"]["id"]
        client.delete(f"{CART_URL}/items/{old_id}", headers=customer_headers)
        new = _add(client, customer_headers, product_a.id, 1).json["item"]
        assert new["id"] != old_id
        assert new["quantity"] == 1

    def test_other_users_line_is_404(self, client, customer_headers, other_customer, product_a):
        line = cart_service.add_line(other_customer.id, product_a.id, 1)
        line_id = line.id

        assert client.patch(f"{CART_URL}/items/{line_id}", headers=customer_headers,
                            json={"quantity": 9}).status_code == 404
        assert client.delete(f"{CART_URL}/items/{line_id}", headers=customer_headers).status_code == 404
        assert db.session.get(CartLine, line_id, populate_existing=True).quantity == 1


class TestCartService:

    def test_snapshot_survives_price_change(self, db_session, customer, product_a):
        line = cart_service.add_line(customer.id, product_a.id, 1)
        product_a.base_price = Decimal("1200.00")
        db.session.commit()

        line = db.session.get(CartLine, line.id, populate_existing=True)
        assert line.unit_price == Decimal("1000.00")

    def test_one_active_cart_per_user(self, db_session, customer):
        first = cart_service.get_or_create_active_cart(customer.id)
        second = cart_service.get_or_create_active_cart(customer.id)
        assert first.id == second.id

    def test_product_id_must_be_integer(self, db_session, customer, product_a):
        with pytest.raises(ValidationError):
            cart_service.add_line(customer.id, str(product_a.id), 1)

    def test_set_quantity_unknown_line(self, db_session, customer):
        with pytest.raises(NotFoundError):
            cart_service.set_quantity(customer.id, 424242, 2)

    @pytest.mark.parametrize("value,expected", [(1, 1), ("3", 3), (" 7 ", 7)])
    def test_parse_quantity_accepts(self, value, expected):
        assert cart_service.parse_quantity(value) == expected


class TestCartFolding:

    def _submit_from_cart(self, user, product, quantity=2):
        line = cart_service.add_line(user.id, product.id, quantity)
        rfq = rfq_service.submit(user.id, {
            "items": [{"product_id": product.id, "quantity": quantity, "cart_item_id": line.id}],
        })
        return line.id, rfq

    def test_submit_folds_cart_lines(self, db_session, customer, product_a):
        line_id, rfq = self._submit_from_cart(customer, product_a)

        line = db.session.get(CartLine, line_id, populate_existing=True)
        assert line.status == CartLineStatus.RFQED
        assert line.rfq_id == rfq.id
        assert cart_service.get_cart(customer.id)["items"] == []
        assert rfq.lines[0].cart_line_id == line_id

    def test_foreign_cart_line_is_not_folded(self, db_session, customer, other_customer, product_a):
        theirs = cart_service.add_line(other_customer.id, product_a.id, 1)
        rfq = rfq_service.submit(customer.id, {
            "items": [{"product_id": product_a.id, "quantity": 1, "cart_item_id": theirs.id}],
        })

        assert rfq.lines[0].cart_line_id is None
        line = db.session.get(CartLine, theirs.id, populate_existing=True)
        assert line.status == CartLineStatus.ACTIVE

    def test_cancel_keeps_lines_folded_by_default(self, db_session, customer, product_a):
        line_id, rfq = self._submit_from_cart(customer, product_a)
        rfq_service.customer_cancel(customer.id, rfq.id)

        line = db.session.get(CartLine, line_id, populate_existing=True)
        assert line.status == CartLineStatus.RFQED

    def test_cancel_restores_lines_when_enabled(self, app, db_session, customer, product_a, monkeypatch):
        monkeypatch.setitem(app.config, "RESTORE_CART_ON_RFQ_CANCEL", True)
        line_id, rfq = self._submit_from_cart(customer, product_a)
        rfq_service.customer_cancel(customer.id, rfq.id)

        line = db.session.get(CartLine, line_id, populate_existing=True)
        assert line.status == CartLineStatus.ACTIVE
        assert line.rfq_id is None
        assert cart_service.get_cart(customer.id)["total_quantity"] == 2

    def test_restore_merges_into_existing_line(self, app, db_session, customer, product_a, monkeypatch):
        monkeypatch.setitem(app.config, "RESTORE_CART_ON_RFQ_CANCEL", True)
        line_id, rfq = self._submit_from_cart(customer, product_a, quantity=2)
        cart_service.add_line(customer.id, product_a.id, 3)

        rfq_service.customer_cancel(customer.id, rfq.id)

        cart = cart_service.get_cart(customer.id)
        assert cart["item_count"] == 1
        assert cart["total_quantity"] == 5
        folded = db.session.get(CartLine, line_id, populate_existing=True)
        assert folded.status == CartLineStatus.REMOVED

    def test_fold_failure_does_not_fail_submission(self, client, customer, customer_headers, product_a, monkeypatch):
        line_id = cart_service.add_line(customer.id, product_a.id, 2).id
        real_execute = db.session.execute

        def fold_unreachable(statement, *args, **kwargs):
            if getattr(statement, "table", None) is CartLine.__table__:
                raise OperationalError("UPDATE cart_items", {}, Exception("database is locked"))
            return real_execute(statement, *args, **kwargs)

        monkeypatch.setattr(db.session, "execute", fold_unreachable)
        resp = client.post(RFQ_URL, headers=customer_headers, json={
            "items": [{"product_id": product_a.id, "quantity": 2, "cart_item_id": line_id}],
        })
        monkeypatch.undo()

        assert resp.status_code == 201
        rfq = db.session.get(RFQ, resp.json["rfq"]["id"], populate_existing=True)
        assert rfq.status == RFQStatus.PENDING_REVIEW
        assert rfq.lines[0].cart_line_id == line_id

        line = db.session.get(CartLine, line_id, populate_existing=True)
        assert line.status == CartLineStatus.ACTIVE
        assert line.rfq_id is None

    def test_restore_failure_does_not_fail_cancel(self, app, client, customer, customer_headers, product_a,
                                                  monkeypatch):
        monkeypatch.setitem(app.config, "RESTORE_CART_ON_RFQ_CANCEL", True)
        line_id, rfq = self._submit_from_cart(customer, product_a)
        rfq_id = rfq.id

        def flush_unreachable(*args, **kwargs):
            raise OperationalError("UPDATE cart_items", {}, Exception("database is locked"))

        monkeypatch.setattr(db.session, "flush", flush_unreachable)
        resp = client.patch(f"{RFQ_URL}/{rfq_id}/cancel", headers=customer_headers)
        monkeypatch.undo()

        assert resp.status_code == 200
        assert resp.json["rfq"]["status"] == "REJECTED_BY_CUSTOMER"
        assert db.session.get(RFQ, rfq_id, populate_existing=True).status == RFQStatus.REJECTED_BY_CUSTOMER

        line = db.session.get(CartLine, line_id, populate_existing=True)
        assert line.status == CartLineStatus.RFQED
        assert line.rfq_id == rfq_id
