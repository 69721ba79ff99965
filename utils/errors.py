# utils/errors.py
# Error taxonomy for the JSON API. Each error carries the HTTP status it maps to.


class ApiError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_response(self):
        return {"error": self.message}, self.status_code


class Unauthorized(ApiError):
    status_code = 401
    default_message = "Unauthorized"


class InvalidCredentials(Unauthorized):
    default_message = "Invalid credentials"


class Forbidden(ApiError):
    status_code = 403
    default_message = "Access denied"


class ValidationError(ApiError):
    status_code = 400
    default_message = "Invalid data provided"


class NotFound(ApiError):
    status_code = 404
    default_message = "Not found"


class Conflict(ApiError):
    """A referential or uniqueness guard refused the write."""
    status_code = 400
    default_message = "Conflict"
