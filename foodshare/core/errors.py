# foodshare/core/errors.py
"""
Domain errors raised by the service layer.

The HTTP layer maps every subclass of FoodShareError to a status code and
a machine-readable ``code`` so the browser can tell a lost race (refresh the
entity) apart from a generic failure (show a message).
"""
from typing import Iterable, List, Optional


class FoodShareError(Exception):
    status_code = 400
    code = "error"
    refresh = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ValidationError(FoodShareError):
    status_code = 422
    code = "validation_error"

    def __init__(self, message: str = "", fields: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.fields: List[str] = list(fields or [])


class AuthError(FoodShareError):
    status_code = 401
    code = "unauthorized"


class NotFoundError(FoodShareError):
    status_code = 404
    code = "not_found"


class IllegalStateError(FoodShareError):
    status_code = 409
    code = "no_longer_available"


class IllegalTransitionError(IllegalStateError):
    pass


class ConflictError(FoodShareError):
    status_code = 409
    refresh = True


class AlreadyAcceptedError(ConflictError):
    code = "already_accepted"


class AlreadyAssignedError(ConflictError):
    code = "already_assigned"


class AccessDeniedError(FoodShareError):
    status_code = 403
    code = "access_denied"


class UpstreamUnavailableError(FoodShareError):
    status_code = 503
    code = "upstream_unavailable"


class PartialUploadError(FoodShareError):
    """Some (possibly all) uploads failed; ``succeeded`` keeps the URLs that made it."""
    status_code = 207
    code = "partial_upload"

    def __init__(self, succeeded: List[str], failed: List[str]):
        super().__init__(f"{len(failed)} of {len(succeeded) + len(failed)} uploads failed")
        self.succeeded = succeeded
        self.failed = failed


class DuplicateAccountError(FoodShareError):
    status_code = 409
    code = "email_taken"
