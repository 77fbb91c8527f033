"""
Pytest fixtures for Breakfast Factory backend tests.

Provides test database setup, role fixtures (customer, outlet, admin),
catalog fixtures, and an httpx mock transport for the payment and LLM
gateways.
"""

import httpx
import pytest

from bfactory import create_app
from bfactory.extensions import db
from bfactory.models import Category, Product, User
from bfactory.models.users import ROLE_ADMIN, ROLE_OUTLET, ROLE_USER
from bfactory.services import notification_service, session_service
from bfactory.services.auth_service import hash_password


PASSWORD = "Password123!"
_password_hash = None


def _hashed_password() -> str:
    # bcrypt is slow on purpose; hash once per run
    global _password_hash
    if _password_hash is None:
        _password_hash = hash_password(PASSWORD)
    return _password_hash


class GatewayStub:
    """
    Routes outbound httpx requests to canned responses.

    Handlers are keyed by (method, path prefix); every request is recorded.
    """

    def __init__(self):
        self.routes = []
        self.requests = []

    def add(self, method: str, path_prefix: str, response):
        self.routes.append((method.upper(), path_prefix, response))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, prefix, response in self.routes:
            if request.method == method and request.url.path.startswith(prefix):
                if isinstance(response, Exception):
                    raise response
                if callable(response):
                    return response(request)
                return response
        return httpx.Response(404, json={"message": "no stub"})


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PAYSTACK_SECRET_KEY': 'sk_test_secret',
        'PAYSTACK_BASE_URL': 'https://paystack.test',
        'MTN_API_URL': 'https://momo.test/collection/v1_0/requesttopay',
        'AI_ENDPOINT': 'https://ai.test',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
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
        notification_service.clear_subscribers()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        notification_service.clear_subscribers()


@pytest.fixture(scope='function')
def gateway(app):
    """Install an httpx MockTransport for every outbound gateway call."""
    stub = GatewayStub()
    previous = {key: app.config.get(key) for key in ("HTTP_TRANSPORT", "MTN_CONSUMER_KEY", "MTN_CONSUMER_SECRET", "GITHUB_TOKEN")}
    app.config["HTTP_TRANSPORT"] = httpx.MockTransport(stub.handler)
    yield stub
    app.config.update(previous)


def make_user(db_session, *, email: str, role: str = ROLE_USER, name: str = "Test User", **fields) -> User:
    user = User(
        name=name,
        email=email,
        password_hash=_hashed_password(),
        role=role,
        status=fields.pop("status", "active"),
        **fields,
    )
    db_session.add(user)
    db_session.commit()
    return user


def make_product(db_session, outlet, *, name="Waakye", price_cents=1500, quantity=10, category=None) -> Product:
    product = Product(
        outlet_id=outlet.id if outlet else None,
        category_id=category.id if category else None,
        name=name,
        price_cents=price_cents,
        quantity=quantity,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def customer(db_session):
    return make_user(db_session, email="ama@example.com", name="Ama Mensah")


@pytest.fixture(scope='function')
def outlet(db_session):
    return make_user(
        db_session,
        email="outlet@example.com",
        name="Kofi Owusu",
        role=ROLE_OUTLET,
        store_name="Kofi's Kitchen",
    )


@pytest.fixture(scope='function')
def other_outlet(db_session):
    return make_user(
        db_session,
        email="outlet2@example.com",
        name="Esi Boateng",
        role=ROLE_OUTLET,
        store_name="Esi's Bakery",
    )


@pytest.fixture(scope='function')
def admin(db_session):
    return make_user(db_session, email="admin@example.com", name="Admin", role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Breakfast", description="Morning staples")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def product(db_session, outlet, category):
    return make_product(db_session, outlet, name="Waakye", price_cents=1500, quantity=10, category=category)


def auth_headers_for(user) -> dict:
    """Create a session directly and return Authorization headers."""
    _, token = session_service.create_session(user_id=user.id)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def customer_headers(customer):
    return auth_headers_for(customer)


@pytest.fixture(scope='function')
def outlet_headers(outlet):
    return auth_headers_for(outlet)


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers_for(admin)


def get_auth_token(client, email: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
