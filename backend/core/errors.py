"""Error kinds raised by the booking and settlement services.

Routes do not translate these one by one; ``backend.main`` registers a single
handler that renders ``{"kind", "detail", "field"}`` with the status below.
"""


class CoreError(Exception):
    kind = "error"
    status_code = 400

    def __init__(self, detail: str, field: str | None = None):
        super().__init__(detail)
        self.detail = detail
        self.field = field

    def to_dict(self) -> dict:
        return {"kind": self.kind, "detail": self.detail, "field": self.field}


class ValidationError(CoreError):
    """Malformed input, rejected before any state change."""

    kind = "validation"
    status_code = 400


class AuthorizationError(CoreError):
    """Caller lacks the role or ownership the operation needs."""

    kind = "forbidden"
    status_code = 403


class NotFoundError(CoreError):
    kind = "not_found"
    status_code = 404


class ConflictError(CoreError):
    """The entity changed underneath the caller; safe to retry after a re-read."""

    kind = "conflict"
    status_code = 409


class IntegrityError(CoreError):
    """Fatal: the operation is aborted as a whole and must be looked at."""

    kind = "integrity"
    status_code = 500


class SignatureMismatchError(IntegrityError):
    status_code = 401
