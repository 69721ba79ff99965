# utils/auth.py
# Login against the shared password, role resolution, and the guard that
# turns the `session` cookie into the current user.

from functools import wraps

from flask import current_app
from flask_login import LoginManager, UserMixin, current_user

from models import Person, Role, Student
from utils.errors import Forbidden, InvalidCredentials, Unauthorized
from utils.session_codec import DecodeError, Session

SESSION_COOKIE = "session"

login_manager = LoginManager()
login_manager.session_protection = None


class RoleProfile:
    """Which specialization a Person resolved to, plus that profile row."""

    def __init__(self, role, profile=None):
        self.role = role
        self.profile = profile

    @property
    def is_known(self):
        return self.role is not Role.UNKNOWN


class SessionUser(UserMixin):
    """Flask-Login user built from a decoded session token."""

    def __init__(self, session):
        self.session = session

    @property
    def role(self):
        return self.session.role

    @property
    def person_id(self):
        return self.session.person_id

    def get_id(self):
        return self.session.person_id


def session_codec():
    return current_app.extensions["session_codec"]


def resolve_role(store, person):
    if person.teacher is not None:
        return RoleProfile(Role.TEACHER, person.teacher)
    if person.parent is not None:
        return RoleProfile(Role.PARENT, person.parent)
    student = store.query(Student).filter_by(admission_number=person.person_id).first()
    if student is not None:
        return RoleProfile(Role.STUDENT, student)
    return RoleProfile(Role.UNKNOWN)


def authenticate(store, username, password, shared_password):
    """
    Checks a login attempt.

    The password is the same for every account; the username is a PersonID.
    A Person with no teacher, parent or student profile cannot log in.

    Returns:
        tuple: (Session, RoleProfile) for the authenticated person.
    """
    if password != shared_password:
        current_app.logger.info("Login failed for %s: wrong password", username)
        raise InvalidCredentials()

    person = store.get(Person, username) if username else None
    if person is None:
        current_app.logger.info("Login failed for %s: no such person", username)
        raise InvalidCredentials()

    resolved = resolve_role(store, person)
    if not resolved.is_known:
        current_app.logger.warning("Login refused for %s: no role profile", person.person_id)
        raise InvalidCredentials()

    session = Session(
        user_id=person.person_id,
        role=resolved.role,
        name=person.full_name,
        person_id=person.person_id,
    )
    return session, resolved


def authorize(token, allowed_roles=()):
    if not token:
        raise Unauthorized()
    try:
        session = session_codec().decode(token)
    except DecodeError as e:
        current_app.logger.info("Rejected session token: %s", e)
        raise Unauthorized() from e
    if allowed_roles and session.role not in allowed_roles:
        raise Forbidden()
    return session


@login_manager.request_loader
def load_user_from_request(request):
    try:
        return SessionUser(authorize(request.cookies.get(SESSION_COOKIE)))
    except Unauthorized:
        return None


@login_manager.unauthorized_handler
def unauthorized():
    raise Unauthorized()


def role_required(*roles):
    """Rejects anonymous callers with 401 and callers outside `roles` with 403."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return login_manager.unauthorized()
            if roles and current_user.role not in roles:
                raise Forbidden()
            return f(*args, **kwargs)
        return decorated_function
    return decorator
