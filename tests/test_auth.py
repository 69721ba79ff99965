import logging
import os

import pytest

from app import console_handler, create_app
from models import db, Parent, Person, Role
from utils.csv_tools import load_data_from_csv

DATA_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "data")
PASSWORD = "password123"


def post_login(client, username, password=PASSWORD):
    return client.post("/api/auth/login", json={"username": username, "password": password})


@pytest.mark.parametrize("username, role", [
    ("T001", "TEACHER"),
    ("P001", "PARENT"),
    ("ABS022", "STUDENT"),
])
def test_login_resolves_role_and_sets_cookie(client, username, role):
    response = post_login(client, username)
    assert response.status_code == 200
    user = response.get_json()["user"]
    assert user["id"] == username
    assert user["username"] == username
    assert user["role"] == role

    cookie = response.headers["Set-Cookie"]
    assert cookie.startswith("session=")
    assert "HttpOnly" in cookie
    assert "SameSite=Lax" in cookie
    assert "Max-Age=86400" in cookie


def test_login_returns_profile(client):
    user = post_login(client, "ABS022").get_json()["user"]
    assert user["name"] == "David Johnson"
    assert user["profile"]["AdmissionNumber"] == "ABS022"
    assert user["profile"]["StudentClassID"] == "jss1"


def test_teacher_profile_wins_over_parent_profile(app, client):
    with app.app_context():
        db.session.add(Parent(parent_id="T001", phone_num="0", email="t001@home", address="Lagos"))
        db.session.commit()
    assert post_login(client, "T001").get_json()["user"]["role"] == "TEACHER"


def test_parent_profile_wins_over_student_profile(app, client):
    with app.app_context():
        db.session.add(Parent(parent_id="ABS021", phone_num="0", email="abs021@home", address="Lagos"))
        db.session.commit()
    assert post_login(client, "ABS021").get_json()["user"]["role"] == "PARENT"


def test_wrong_password_is_rejected(client):
    response = post_login(client, "T001", "nope")
    assert response.status_code == 401
    assert response.get_json() == {"error": "Invalid credentials"}
    assert "Set-Cookie" not in response.headers


def test_unknown_username_is_rejected(client):
    response = post_login(client, "NOBODY")
    assert response.status_code == 401
    assert response.get_json() == {"error": "Invalid credentials"}


def test_person_without_role_profile_cannot_log_in(client, caplog):
    with caplog.at_level(logging.WARNING):
        response = post_login(client, "X001")
    assert response.status_code == 401
    assert response.get_json() == {"error": "Invalid credentials"}
    assert "no role profile" in caplog.text


def test_login_requires_username(client):
    response = client.post("/api/auth/login", json={"password": PASSWORD})
    assert response.status_code == 400
    assert response.get_json() == {"error": "username is required"}


def test_login_requires_json_object(client):
    response = client.post("/api/auth/login", data="username=T001", content_type="text/plain")
    assert response.status_code == 400


def test_session_endpoint_returns_decoded_session(teacher):
    response = teacher.get("/api/auth/session")
    assert response.status_code == 200
    assert response.get_json()["session"] == {
        "userId": "T001",
        "role": "TEACHER",
        "name": "John Smith",
        "personId": "T001",
    }


def test_session_endpoint_without_cookie_is_unauthorized(client):
    response = client.get("/api/auth/session")
    assert response.status_code == 401
    assert response.get_json() == {"error": "Unauthorized"}


def test_forged_cookie_is_unauthorized(client):
    client.set_cookie("session", '{"userId":"T001","role":"TEACHER","name":"x","personId":"T001"}')
    assert client.get("/api/auth/session").status_code == 401


def test_session_for_deleted_person_is_unauthorized(client, token_for):
    client.set_cookie("session", token_for("GHOST", Role.STUDENT))
    assert client.get("/api/auth/session").status_code == 401


def test_session_for_removed_person_is_unauthorized(app, client, token_for):
    with app.app_context():
        db.session.add(Person(person_id="TMP1", first_name="Temp", last_name="Person"))
        db.session.commit()
    client.set_cookie("session", token_for("TMP1", Role.PARENT))
    assert client.get("/api/auth/session").status_code == 200

    with app.app_context():
        db.session.delete(db.session.get(Person, "TMP1"))
        db.session.commit()
    assert client.get("/api/auth/session").status_code == 401


def test_logout_clears_cookie(teacher):
    response = teacher.post("/api/auth/logout")
    assert response.status_code == 200
    assert teacher.get("/api/auth/session").status_code == 401


def test_demo_users_lists_loginable_accounts(client):
    users = client.get("/api/demo-users").get_json()["users"]
    roles = {u["PersonID"]: u["role"] for u in users}
    assert roles["T001"] == "TEACHER"
    assert roles["P001"] == "PARENT"
    assert roles["ABS021"] == "STUDENT"
    assert "X001" not in roles


@pytest.mark.parametrize("app_env, secure", [
    ("production", True),
    ("development", False),
])
def test_session_cookie_is_secure_in_production(app_env, secure):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SHARED_PASSWORD": PASSWORD,
        "APP_ENV": app_env,
    })
    try:
        with app.app_context():
            load_data_from_csv(db.session, DATA_DIR)
        response = post_login(app.test_client(), "T001")
        assert response.status_code == 200
        assert ("Secure" in response.headers["Set-Cookie"]) is secure
    finally:
        with app.app_context():
            db.session.remove()
            db.drop_all()


def test_building_apps_adds_one_console_handler(app):
    create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite://"})
    assert app.logger.handlers.count(console_handler) == 1
