"""
Pytest fixtures for courier backend tests.

Provides the test app on an in-memory database, a per-test wipe of all
tables, and the directory records and sequence counters most tests need.
"""

from decimal import Decimal

import pytest
from courier import create_app
from courier.extensions import db
from courier.models import Branch, Driver, Employee
from courier.services import parcel_service, sequence_service


TENANT = "default"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SEQUENCE_RETRY_BACKOFF': 0.01,
        'DEFAULT_TENANT_KEY': TENANT,
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
def counters(db_session):
    """Provision TRACKING (GT100001...) and MANIFEST (MAN1...) for the default tenant."""
    return {
        kind: sequence_service.provision_counter(TENANT, kind)
        for kind in sorted(sequence_service.VALID_KINDS)
    }


@pytest.fixture(scope='function')
def origin(db_session):
    branch = Branch(name="Main Office", city="Baghdad", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def destination(db_session):
    branch = Branch(name="Basra Office", city="Basra", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def driver(db_session, origin):
    driver = Driver(id="DRV-1", name="Ali", branch_id=origin.id, is_active=True)
    db_session.add(driver)
    db_session.commit()
    return driver


@pytest.fixture(scope='function')
def employee(db_session, origin):
    employee = Employee(
        id="E1",
        name="Sara",
        job_title="Clerk",
        salary=Decimal("500000"),
        branch_id=origin.id,
        is_active=True,
    )
    db_session.add(employee)
    db_session.commit()
    return employee


@pytest.fixture(scope='function')
def make_parcel(db_session, counters, origin, destination):
    """Factory: accept a parcel through the service with sensible defaults."""
    def _make(**overrides):
        data = {
            "sender_name": "Omar",
            "sender_phone": "07700000001",
            "receiver_name": "Huda",
            "receiver_phone": "07800000002",
            "receiver_city": "Basra",
            "origin_branch_id": origin.id,
            "destination_branch_id": destination.id,
            "shipping_cost": "10000",
            "shipping_tax": "0",
            "payment_type": "PREPAID",
        }
        data.update(overrides)
        return parcel_service.create_parcel(TENANT, data, actor_user_id=1)

    return _make


def actor_headers(actor_id: int = 1, tenant_key: str | None = None) -> dict:
    """Helper to create the gateway headers routes expect."""
    headers = {'X-Actor-Id': str(actor_id)}
    if tenant_key:
        headers['X-Tenant-Key'] = tenant_key
    return headers
