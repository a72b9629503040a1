"""
Pytest fixtures for the quote engine tests.

Provides the app (in-memory SQLite), test client, a clean database per test,
and a record store fixture that runs each test against both backends.
"""

import copy

import pytest
from prefabquote import create_app
from prefabquote.extensions import db
from prefabquote.storage import InMemoryDocumentStore, SqlRecordStore


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'STORAGE_BACKEND': 'sql',
}

SAMPLE_CONFIGURATION = {
    "productType": "garden-room",
    "size": {"widthM": 4, "depthM": 3, "heightM": 2.5},
    "cladding": {"areaSqm": 28.8},
    "bathroom": {"half": 1, "threeQuarter": 0},
    "electrical": {"switches": 0, "sockets": 0, "heaters": 0},
    "internalDoors": 0,
    "internalWall": {"finish": "none", "areaSqM": 0},
    "floor": {"type": "wooden", "areaSqM": 12},
    "glazing": {"windows": [], "externalDoors": [], "skylights": []},
    "delivery": {"cost": 0},
    "extras": {"other": []},
}

SAMPLE_CUSTOMER = {
    "firstName": "Aoife",
    "lastName": "Byrne",
    "email": "Aoife.Byrne@example.ie",
    "phone": {"countryPrefix": "+353", "phoneNum": "871234567"},
    "addressLine1": "1 Main Street",
    "town": "Galway",
    "county": "Galway",
    "eircode": "h91 e2k3",
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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


@pytest.fixture(scope='function', params=['sql', 'memory'])
def store(request, db_session):
    """Each test using this runs once per storage backend."""
    if request.param == 'sql':
        return SqlRecordStore(db)
    return InMemoryDocumentStore()


@pytest.fixture(scope='function', params=['sql', 'memory'])
def api_client(request, app, db_session):
    """Test client against either backend."""
    if request.param == 'sql':
        return app.test_client()
    memory_app = create_app({**TEST_CONFIG, 'STORAGE_BACKEND': 'memory'})
    return memory_app.test_client()


@pytest.fixture
def configuration():
    return copy.deepcopy(SAMPLE_CONFIGURATION)


@pytest.fixture
def customer():
    return copy.deepcopy(SAMPLE_CUSTOMER)


@pytest.fixture
def memory_app():
    """App wired to the in-memory document store."""
    return create_app({**TEST_CONFIG, 'STORAGE_BACKEND': 'memory'})
