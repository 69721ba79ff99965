import os

import pytest

from app import create_app
from models import db
from utils.csv_tools import load_data_from_csv
from utils.session_codec import Session

DATA_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "data")
PASSWORD = "password123"


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SECRET_KEY": "test-secret-key",
        "SHARED_PASSWORD": PASSWORD,
        "APP_ENV": "testing",
    })
    with app.app_context():
        load_data_from_csv(db.session, DATA_DIR)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(app):
    """Returns a test client already logged in as `username`."""
    def _login(username):
        client = app.test_client()
        response = client.post("/api/auth/login", json={"username": username, "password": PASSWORD})
        assert response.status_code == 200, response.get_json()
        return client
    return _login


@pytest.fixture
def token_for(app):
    def _token(person_id, role, name="Test User"):
        session = Session(user_id=person_id, role=role, name=name, person_id=person_id)
        return app.extensions["session_codec"].encode(session)
    return _token


@pytest.fixture
def teacher(login):
    return login("T001")


@pytest.fixture
def student(login):
    return login("ABS022")


@pytest.fixture
def parent(login):
    return login("P001")

