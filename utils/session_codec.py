# utils/session_codec.py
# Signs the login session into the `session` cookie value and reads it back.
# Uses the same itsdangerous serializer Flask uses for its own cookies, so a
# token is HMAC-protected and expires after `max_age` seconds.

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from models import Role

SESSION_ROLES = (Role.STUDENT, Role.TEACHER, Role.PARENT)


class DecodeError(Exception):
    pass


class Session:
    """The authenticated caller as carried in the session cookie."""

    def __init__(self, user_id, role, name, person_id):
        self.user_id = user_id
        self.role = role
        self.name = name
        self.person_id = person_id

    def to_dict(self):
        return {
            "userId": self.user_id,
            "role": self.role.value,
            "name": self.name,
            "personId": self.person_id,
        }

    def __eq__(self, other):
        return isinstance(other, Session) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"<Session {self.person_id} ({self.role.name})>"


class SessionCodec:
    salt = "school-portal-session"

    def __init__(self, secret_key, max_age):
        self.max_age = max_age
        self._serializer = URLSafeTimedSerializer(secret_key, salt=self.salt)

    def encode(self, session):
        return self._serializer.dumps(session.to_dict())

    def decode(self, token):
        if not token:
            raise DecodeError("missing session token")
        try:
            payload = self._serializer.loads(token, max_age=self.max_age)
        except SignatureExpired as e:
            raise DecodeError("session token expired") from e
        except BadSignature as e:
            raise DecodeError("session token is not valid") from e

        if not isinstance(payload, dict):
            raise DecodeError("malformed session payload")
        try:
            role = Role(payload["role"])
            session = Session(
                user_id=str(payload["userId"]),
                role=role,
                name=str(payload["name"]),
                person_id=str(payload["personId"]),
            )
        except (KeyError, ValueError) as e:
            raise DecodeError("malformed session payload") from e
        if role not in SESSION_ROLES:
            raise DecodeError(f"role {role.value} cannot hold a session")
        return session
