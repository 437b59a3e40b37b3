from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlmodel import select

from coursestore.config import Settings
from coursestore.database import create_db_engine
from coursestore.dependencies.services import build_services
from coursestore.main import create_app
from coursestore.models.cart import CartItem
from coursestore.models.course import Course
from coursestore.models.user import User
from coursestore.services.payment_providers import SimulatedProvider
from coursestore.utils.token import create_access_token

WEBHOOK_SECRET = "whsec_test"


@pytest.fixture
def test_settings():
    return Settings(
        DATABASE_URL="sqlite://",
        PAYMENT_PROVIDER="simulated",
        SIMULATED_WEBHOOK_SECRET=WEBHOOK_SECRET,
        DB_RETRY_ATTEMPTS=3,
        DB_RETRY_DELAY_SECONDS=0,
        BREVO_API_KEY=None,
        ADMIN_EMAILS=[],
    )


@pytest.fixture
def provider():
    return SimulatedProvider(webhook_secret=WEBHOOK_SECRET, base_url="http://frontend.test")


@pytest.fixture
def services(test_settings, provider):
    engine = create_db_engine(test_settings.database_url)
    services = build_services(test_settings, engine=engine, provider=provider)
    services.gateway.create_all()
    yield services
    services.gateway.dispose()


@pytest.fixture
def gateway(services):
    return services.gateway


@pytest.fixture
def users(gateway):
    with gateway.transaction() as session:
        student = User(first_name="Asha", last_name="Rao", email="asha@example.com")
        other = User(first_name="Ben", last_name="Ito", email="ben@example.com")
        admin = User(first_name="Root", email="admin@example.com", role="admin")
        session.add_all([student, other, admin])
    return {"student": student, "other": other, "admin": admin}


@pytest.fixture
def courses(gateway):
    with gateway.transaction() as session:
        python = Course(title="Python Basics", price=Decimal("50.00"), status="published")
        sql = Course(title="SQL in Practice", price=Decimal("30.00"), status="published")
        draft = Course(title="Unreleased", price=Decimal("10.00"), status="draft")
        session.add_all([python, sql, draft])
    return {"python": python, "sql": sql, "draft": draft}


@pytest.fixture
def add_to_cart(gateway):
    def _add(user, *courses):
        with gateway.transaction() as session:
            for course in courses:
                session.add(CartItem(user_id=user.id, course_id=course.id))
    return _add


@pytest.fixture
def db_rows(gateway):
    """Fresh reads straight from the database."""

    def _rows(model, **filters):
        with gateway.session() as session:
            query = select(model)
            for name, value in filters.items():
                query = query.where(getattr(model, name) == value)
            return list(session.exec(query).all())

    return _rows


@pytest.fixture
def app(services):
    return create_app(services)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_headers():
    def _headers(user):
        token = create_access_token({"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}"}
    return _headers
