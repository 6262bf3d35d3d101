"""Error types raised by the service layer and rendered by app.py."""


class ApiError(Exception):
    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(self, message, code=None, details=None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details

    def to_dict(self):
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class InvalidRequest(ApiError):
    status_code = 400
    default_code = "INVALID_REQUEST"


class InvalidState(ApiError):
    status_code = 400
    default_code = "INVALID_STATE"


class Unauthorized(ApiError):
    status_code = 401
    default_code = "UNAUTHORIZED"


class Forbidden(ApiError):
    status_code = 403
    default_code = "FORBIDDEN"


class NotFound(ApiError):
    status_code = 404
    default_code = "NOT_FOUND"


class Conflict(ApiError):
    status_code = 409
    default_code = "CONFLICT"
