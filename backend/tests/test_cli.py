"""CLI command tests (stock intake, bootstrap, maintenance)."""

from datetime import timedelta

from storefront.extensions import db
from storefront.models import ProductUnit, User, UserSession
from storefront.services import session_service
from storefront.time_utils import utcnow
from storefront.workflow import RFQStatus, UserRole

from conftest import TEST_PASSWORD, make_rfq


class TestInventoryCommands:

    def test_add_product_with_stock(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["inventory", "add-product", "--sku", "PLC-01", "--name", "PLC Controller",
                                     "--price", "4500", "--stock", "2"])
        assert "PASS Created product PLC-01 with 2 unit(s)" in result.output

        result = runner.invoke(args=["inventory", "add-units", "--sku", "PLC-01", "--count", "1"])
        assert "PLC-01-0003 .. PLC-01-0003" in result.output

        result = runner.invoke(args=["inventory", "stock", "--sku", "PLC-01"])
        assert "PLC-01: 3 in stock" in result.output
        assert db.session.query(ProductUnit).count() == 3

    def test_duplicate_sku_and_bad_count(self, app, db_session, product_a):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["inventory", "add-product", "--sku", product_a.sku, "--name", "Dup"])
        assert "already exists" in result.output

        result = runner.invoke(args=["inventory", "add-units", "--sku", product_a.sku, "--count", "0"])
        assert "FAIL" in result.output


class TestUserCommands:

    def test_init_creates_admin_once(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["system", "init"])
        assert "PASS Created admin: admin" in result.output

        result = runner.invoke(args=["system", "init"])
        assert "already exists" in result.output
        assert db.session.query(User).filter_by(role=UserRole.ADMIN).count() == 1

    def test_create_user(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["users", "create", "--username", "clerk", "--email", "Clerk@Example.com",
                                     "--password", TEST_PASSWORD, "--role", "admin"])
        assert "PASS Created user: clerk" in result.output

        user = db.session.query(User).filter_by(username="clerk").one()
        assert user.email == "clerk@example.com"
        assert user.role == UserRole.ADMIN

    def test_revoke_sessions(self, app, db_session, customer):
        session_service.login("alice", TEST_PASSWORD)
        result = app.test_cli_runner().invoke(args=["users", "revoke-sessions", "alice"])
        assert "Revoked 1 session(s)" in result.output
        assert db.session.query(UserSession).filter_by(is_active=True).count() == 0


class TestMaintenanceCommands:

    def test_expire_quotes(self, app, db_session, customer, product_a):
        rfq = make_rfq(customer, [(product_a, 1, "900.00")], status=RFQStatus.QUOTE_SENT)
        rfq.price_valid_until = utcnow() - timedelta(hours=1)
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["maintenance", "expire-quotes"])
        assert "Expired 1 quote(s)." in result.output

    def test_cleanup_sessions(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-sessions"])
        assert "Deactivated 0 lapsed session(s), deleted 0 old session(s)." in result.output
