from typing import Any, Optional

from pydantic import BaseModel


class ProblemDetail(BaseModel):
    """RFC 7807 compliant error response."""

    type: str = "about:blank"
    title: str
    detail: Optional[str] = None
    status: int
    instance: Optional[str] = None
    code: str
    kind: str
    ok: bool = False
    error: Optional[str] = None
    details: Optional[Any] = None


class DomainException(Exception):
    """Base class for domain-specific exceptions.

    ``kind`` groups errors by what the caller should do next: change the input
    (``validation``), stop because the state moved on (``conflict``), or retry
    (``upstream``, flagged by ``retryable``).
    """

    kind = "domain"
    default_status = 400
    default_title = "Request failed"
    retryable = False

    def __init__(
        self,
        code: str,
        detail: str | None = None,
        *,
        status_code: int | None = None,
        title: str | None = None,
        details: Any = None,
        type_: str = "about:blank",
    ) -> None:
        super().__init__(detail or code)
        self.status_code = status_code or self.default_status
        self.title = title or self.default_title
        self.detail = detail
        self.details = details
        self.type = type_
        self.code = code


class ValidationError(DomainException):
    """Bad input shape or value; the request must change."""

    kind = "validation"
    default_status = 400
    default_title = "Invalid request"


class AuthorizationError(DomainException):
    """The caller is not permitted to perform the operation."""

    kind = "authorization"
    default_status = 403
    default_title = "Forbidden"


class AuthenticationError(AuthorizationError):
    default_status = 401
    default_title = "Unauthorized"


class NotFoundError(DomainException):
    kind = "not_found"
    default_status = 404
    default_title = "Not found"


class ConflictError(DomainException):
    """The operation is not valid for the current state of the resource."""

    kind = "conflict"
    default_status = 409
    default_title = "Conflict"


class UpstreamError(DomainException):
    """The record store failed or timed out; retrying is safe."""

    kind = "upstream"
    default_status = 502
    default_title = "Upstream error"
    retryable = True


class DataIntegrityError(DomainException):
    kind = "data_integrity"
    default_status = 500
    default_title = "Inconsistent data"


class ConfigurationError(DomainException):
    kind = "configuration"
    default_status = 500
    default_title = "Server misconfigured"

    def __init__(self, detail: str) -> None:
        super().__init__("configuration_error", detail)


class MustJoinFirst(AuthorizationError):
    def __init__(self) -> None:
        super().__init__("must_join_first", "You must join before using this action")


class NotAnOpponent(AuthorizationError):
    def __init__(self) -> None:
        super().__init__(
            "not_an_opponent", "Only a member of the opponent pair can do this"
        )


class PlayerNotFound(NotFoundError):
    def __init__(self, player_id: str) -> None:
        super().__init__(
            "player_not_found",
            f"player '{player_id}' not found",
            title="Player not found",
        )


class MatchNotFound(NotFoundError):
    def __init__(self, match_id: str) -> None:
        super().__init__(
            "match_not_found",
            f"match '{match_id}' not found",
            title="Match not found",
        )
