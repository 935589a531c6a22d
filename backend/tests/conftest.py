"""
Pytest fixtures for storefront backend tests.

Provides the in-memory test app, a file-backed app for multi-threaded
tests, user/product fixtures, and helpers that put RFQs and orders into a
given workflow state without walking every step over HTTP.
"""

import threading
from datetime import timedelta
from decimal import Decimal

import pytest
from storefront import create_app
from storefront.extensions import db
from storefront.models import Product, RFQ, RFQLine, User
from storefront.services import inventory_service, order_service, rfq_service
from storefront.services.auth_service import hash_password, next_user_code
from storefront.time_utils import utcnow
from storefront.workflow import (
    OrderStatus,
    RFQLineStatus,
    RFQStatus,
    UserRole,
    UserStatus,
)

TEST_PASSWORD = "Password123!"
TEST_JWT_SECRET = "test-jwt-secret-with-at-least-32-bytes"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'JWT_SECRET': TEST_JWT_SECRET,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is deliberately slow; hash the shared test password once."""
    return hash_password(TEST_PASSWORD)


@pytest.fixture(scope='function')
def client(app):
    """Bearer-token client; cookies are not replayed between requests."""
    return app.test_client(use_cookies=False)


@pytest.fixture(scope='function')
def cookie_client(app):
    """Browser-like client that keeps the auth cookie."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# USERS / PRODUCTS
# =============================================================================


def make_user(username: str, password_hash: str, role: UserRole = UserRole.CUSTOMER,
              status: UserStatus = UserStatus.ACTIVE) -> User:
    user = User(
        user_code=next_user_code(role),
        username=username,
        email=f"{username}@example.com",
        first_name=username.title(),
        last_name="Tester",
        password_hash=password_hash,
        role=role,
        status=status,
    )
    db.session.add(user)
    db.session.commit()
    return user


def make_product(sku: str, name: str, price: str | None, stock: int = 0) -> Product:
    product = Product(
        sku=sku,
        name=name,
        slug=sku.lower(),
        base_price=Decimal(price) if price is not None else None,
        currency="PHP",
        is_active=True,
    )
    db.session.add(product)
    db.session.commit()
    if stock:
        inventory_service.add_units(product.id, stock)
    return product


@pytest.fixture(scope='function')
def customer(db_session, password_hash):
    return make_user("alice", password_hash)


@pytest.fixture(scope='function')
def other_customer(db_session, password_hash):
    return make_user("bob", password_hash)


@pytest.fixture(scope='function')
def admin(db_session, password_hash):
    return make_user("staff", password_hash, role=UserRole.ADMIN)


@pytest.fixture(scope='function')
def product_a(db_session):
    """IoT gateway at 1000.00 with three units in stock."""
    return make_product("IOT-GW-01", "IoT Gateway", "1000.00", stock=3)


@pytest.fixture(scope='function')
def product_b(db_session):
    """Sensor at 250.00 with no stock."""
    return make_product("SNS-TH-02", "Temperature Sensor", "250.00", stock=0)


# =============================================================================
# AUTH HELPERS
# =============================================================================


def login(client, username: str, password: str = TEST_PASSWORD):
    return client.post('/api/auth/login', json={
        'username': username,
        'password': password,
    })


def get_auth_token(client, username: str, password: str = TEST_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = login(client, username, password)
    assert response.status_code == 200, response.json
    return response.json['token']


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def customer_headers(client, customer):
    return auth_headers(get_auth_token(client, customer.username))


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, admin.username))


# =============================================================================
# WORKFLOW STATE HELPERS
# =============================================================================


def make_rfq(user: User, lines, status: RFQStatus = RFQStatus.PENDING_REVIEW,
             valid_for: timedelta | None = timedelta(days=7)) -> RFQ:
    """
    Insert an RFQ directly in `status`.

    lines: iterable of (product, quantity, quoted_unit_price or None). A line
    with a price is QUOTED, otherwise PENDING_REVIEW.
    """
    rfq = RFQ(user_id=user.id, currency="PHP", status=status, company_name="Acme Farms")
    db.session.add(rfq)
    db.session.flush()

    for product, quantity, unit_price in lines:
        unit = Decimal(unit_price) if unit_price is not None else None
        db.session.add(RFQLine(
            rfq_id=rfq.id,
            product_id=product.id,
            quantity=quantity,
            currency="PHP",
            quoted_unit_price=unit,
            quoted_total_price=unit * quantity if unit is not None else None,
            line_status=RFQLineStatus.QUOTED if unit is not None else RFQLineStatus.PENDING_REVIEW,
        ))

    if status in (RFQStatus.QUOTE_SENT, RFQStatus.PARTIALLY_QUOTED) and valid_for is not None:
        rfq.quoted_at = utcnow()
        rfq.price_valid_until = utcnow() + valid_for

    db.session.commit()
    return rfq


def make_order(user: User, product: Product, quantity: int = 2, unit_price: str = "900.00",
               status: OrderStatus = OrderStatus.AWAITING_PICKUP):
    """Accepted quote -> order, optionally advanced to READY_FOR_PICKUP."""
    rfq = make_rfq(user, [(product, quantity, unit_price)], status=RFQStatus.QUOTE_SENT)
    order = rfq_service.customer_accept(user.id, rfq.id)
    if status == OrderStatus.READY_FOR_PICKUP:
        order = order_service.mark_ready(order.id)
    return order


# =============================================================================
# MULTI-THREADED TESTS
# =============================================================================


@pytest.fixture(scope='function')
def threaded_app(tmp_path):
    """
    App on a temporary SQLite file.

    In-memory SQLite shares one connection, so real concurrency needs a
    file: each thread gets its own connection and the database's own
    locking decides who wins.
    """
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30, 'check_same_thread': False}},
        'JWT_SECRET': TEST_JWT_SECRET,
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.session.remove()
        db.engine.dispose()


def run_concurrently(app, worker, count: int) -> list:
    """
    Start `count` threads that call worker(index) together.

    Returns a list of ("ok", value) / ("error", exception) in completion order.
    """
    results = []
    lock = threading.Lock()
    barrier = threading.Barrier(count)

    def _run(index):
        with app.app_context():
            try:
                barrier.wait()
                value = worker(index)
                with lock:
                    results.append(("ok", value))
            except Exception as exc:
                with lock:
                    results.append(("error", exc))
            finally:
                db.session.remove()

    threads = [threading.Thread(target=_run, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results
