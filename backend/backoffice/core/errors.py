"""Error taxonomy shared by every workflow.

Each class carries a stable machine-readable ``kind`` and the HTTP status the
API layer answers with. Workflows raise these; ``main.py`` renders them as
``{"error": message, "kind": kind}``.
"""


class BackofficeError(Exception):
    kind = "error"
    status_code = 500

    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationError(BackofficeError):
    kind = "authentication"
    status_code = 401
    default_message = "Unauthorized"


class AuthorizationError(BackofficeError):
    kind = "authorization"
    status_code = 403
    default_message = "Forbidden"


class ValidationError(BackofficeError):
    kind = "validation"
    status_code = 400
    default_message = "Invalid input"


class NotFoundError(BackofficeError):
    kind = "not_found"
    status_code = 404
    default_message = "Not found"


class ConflictError(BackofficeError):
    kind = "conflict"
    status_code = 409
    default_message = "Conflict"


class ExpiredError(BackofficeError):
    kind = "expired"
    status_code = 410
    default_message = "Invitation has expired"


class InvalidStateError(BackofficeError):
    kind = "invalid_state"
    status_code = 400
    default_message = "Operation not allowed in the current state"


class WindowExpiredError(BackofficeError):
    kind = "window_expired"
    status_code = 400
    default_message = "Recovery window has closed"


class WindowOpenError(BackofficeError):
    kind = "window_open"
    status_code = 400
    default_message = "Recovery window is still open"


class CapacityError(BackofficeError):
    kind = "capacity"
    status_code = 400
    default_message = "Company capacity exceeded"


class SelfActionError(BackofficeError):
    kind = "self_action"
    status_code = 400
    default_message = "This action cannot be applied to your own account"


class PersistenceError(BackofficeError):
    kind = "persistence"
    status_code = 500
    default_message = "Database operation failed"
