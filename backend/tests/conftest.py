"""
Pytest fixtures for GymPOS backend tests.

Provides test database setup, two gym tenants (each with its wallets),
users with bearer tokens, catalog fixtures and a test client.
"""

from decimal import Decimal

import pytest
from gympos import create_app
from gympos.extensions import db
from gympos.models import User, Product, Discount, Member
from gympos.models.auth import ROLE_GYM_OWNER, ROLE_STAFF, ROLE_SUPER_ADMIN
from gympos.models.catalog import CATEGORY_MEMBERSHIP, CATEGORY_RETAIL
from gympos.services.session_service import create_session
from gympos.services.tenant_service import create_gym


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PLATFORM_FEE_PER_TRANSACTION': Decimal("5000"),
        'GYM_INVOICE_INCLUDE_EXTRA_MONTH': False,
        'WALLET_WITHDRAWAL_FEE_BPS': 250,
        'WALLET_MIN_WITHDRAWAL': Decimal("10000"),
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

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def gym_a(db_session):
    """Gym A (first tenant), provisioned with one wallet per payment channel."""
    return create_gym(name="Gym A - Iron Temple", code="IRON")


@pytest.fixture(scope='function')
def gym_b(db_session):
    """Gym B (second tenant)."""
    return create_gym(name="Gym B - Beta Fitness", code="BETA")


def _make_user(db_session, gym, email, role):
    user = User(
        gym_id=gym.id if gym else None,
        name=email.split("@")[0],
        email=email,
        role=role,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def owner_a(db_session, gym_a):
    return _make_user(db_session, gym_a, "owner_a@iron.test", ROLE_GYM_OWNER)


@pytest.fixture(scope='function')
def staff_a(db_session, gym_a):
    return _make_user(db_session, gym_a, "staff_a@iron.test", ROLE_STAFF)


@pytest.fixture(scope='function')
def owner_b(db_session, gym_b):
    return _make_user(db_session, gym_b, "owner_b@beta.test", ROLE_GYM_OWNER)


@pytest.fixture(scope='function')
def super_admin(db_session):
    return _make_user(db_session, None, "root@gympos.test", ROLE_SUPER_ADMIN)


@pytest.fixture(scope='function')
def product_a(db_session, gym_a):
    """30-day membership pass sold by Gym A."""
    product = Product(
        gym_id=gym_a.id,
        name="Monthly Pass",
        category=CATEGORY_MEMBERSHIP,
        price=Decimal("100000.00"),
        duration=30,
        is_active=True,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def retail_a(db_session, gym_a):
    """Retail item without a duration sold by Gym A."""
    product = Product(
        gym_id=gym_a.id,
        name="Protein Bar",
        category=CATEGORY_RETAIL,
        price=Decimal("100000.00"),
        is_active=True,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, gym_b):
    product = Product(
        gym_id=gym_b.id,
        name="Beta Pass",
        category=CATEGORY_MEMBERSHIP,
        price=Decimal("50000.00"),
        duration=30,
        is_active=True,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def member_a(db_session, gym_a):
    member = Member(gym_id=gym_a.id, name="Alice Lifter", email="alice@iron.test")
    db_session.add(member)
    db_session.commit()
    return member


def make_discount(db_session, gym, **overrides):
    """Helper to create a discount with sensible defaults."""
    fields = {
        "code": "PROMO",
        "name": "Promo",
        "discount_type": "percentage",
        "value": Decimal("10"),
        "used_count": 0,
        "is_active": True,
    }
    fields.update(overrides)
    discount = Discount(gym_id=gym.id, **fields)
    db_session.add(discount)
    db_session.commit()
    return discount


def issue_token(user) -> str:
    """Helper to issue a bearer token for a user."""
    _, token = create_session(user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
