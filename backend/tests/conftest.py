"""
Pytest fixtures for TradeSphere backend tests.

Provides test database setup, an identity provider driven by request
headers, catalog/warehouse factories and a test client.
"""

import pytest
from tradesphere import create_app, set_identity_provider
from tradesphere.extensions import db
from tradesphere.identity import CurrentUser
from tradesphere.services import catalog_service, location_service


def header_identity_provider(request):
    """Test identity: X-User-Id / X-User-Role headers."""
    user_id = request.headers.get("X-User-Id")
    role = request.headers.get("X-User-Role")
    if not user_id or not role:
        return None
    return CurrentUser(id=int(user_id), role=role)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DB_RETRY_BACKOFF': 0,
    })
    set_identity_provider(app, header_identity_provider)

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
def app_config(app):
    """Temporarily override config keys; restored after the test."""
    saved = {}

    def _set(**values):
        for key, value in values.items():
            saved.setdefault(key, app.config.get(key))
            app.config[key] = value

    yield _set
    app.config.update(saved)


# =============================================================================
# IDENTITY HEADERS
# =============================================================================

def identity_headers(role: str, user_id: int = 1) -> dict:
    """Helper to create identity headers for the test provider."""
    return {'X-User-Id': str(user_id), 'X-User-Role': role}


@pytest.fixture
def admin_headers():
    return identity_headers("ADMIN", 1)


@pytest.fixture
def manager_headers():
    return identity_headers("MANAGER", 2)


@pytest.fixture
def operator_headers():
    return identity_headers("OPERATOR", 3)


@pytest.fixture
def viewer_headers():
    return identity_headers("VIEWER", 4)


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture(scope='function')
def warehouse(db_session):
    """Warehouse MAIN with ZONE A > RACK A-01 > SHELF A-01-1 > BIN A-01-1-A."""
    wh = location_service.create_warehouse(code="MAIN", name="Main Warehouse")
    zone = location_service.create_location(warehouse_id=wh.id, code="A", name="Zone A", type="ZONE")
    rack = location_service.create_location(
        warehouse_id=wh.id, code="A-01", name="Rack 1", type="RACK", parent_id=zone.id
    )
    shelf = location_service.create_location(
        warehouse_id=wh.id, code="A-01-1", name="Shelf 1", type="SHELF", parent_id=rack.id
    )
    location_service.create_location(
        warehouse_id=wh.id, code="A-01-1-A", name="Bin A", type="BIN", parent_id=shelf.id, capacity=100
    )
    return wh


@pytest.fixture(scope='function')
def default_loc(warehouse):
    """The warehouse's default (lowest-code active) location: zone A."""
    return location_service.default_location(warehouse.id)


@pytest.fixture(scope='function')
def second_loc(warehouse):
    """A second zone in the same warehouse."""
    return location_service.create_location(warehouse_id=warehouse.id, code="B", name="Zone B", type="ZONE")


@pytest.fixture(scope='function')
def make_product(db_session):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        patch = {
            "sku": f"SKU-{counter['n']:03d}",
            "name": f"Product {counter['n']}",
            "price_cents": 1000,
            "cost_cents": 500,
            "reorder_point": 0,
        }
        opening_stock = overrides.pop("opening_stock", None)
        opening_location_id = overrides.pop("opening_location_id", None)
        patch.update(overrides)
        return catalog_service.create_product(
            patch=patch,
            opening_stock=opening_stock,
            opening_location_id=opening_location_id,
        )

    return _make


@pytest.fixture(scope='function')
def supplier(db_session):
    return catalog_service.create_supplier(patch={"code": "ACME", "name": "Acme Supplies"})


@pytest.fixture(scope='function')
def customer(db_session):
    return catalog_service.create_customer(patch={
        "code": "CUST1",
        "name": "Jane Buyer",
        "shipping_address": "1 Main St",
    })
