"""
Domain exceptions raised by the authorization and rating core.

Each carries the HTTP status and problem code the API layer renders; the
core itself never imports FastAPI.
"""

from typing import Optional

from pydantic import BaseModel


class ProblemDetail(BaseModel):
    """RFC 7807 compliant error response."""

    type: str = "about:blank"
    title: str
    detail: Optional[str] = None
    status: int
    instance: Optional[str] = None
    code: str


class DomainException(Exception):
    """Base class for domain-specific exceptions."""

    def __init__(
        self,
        status_code: int,
        title: str,
        *,
        code: str,
        detail: Optional[str] = None,
        type_: str = "about:blank",
        headers: Optional[dict] = None,
    ) -> None:
        super().__init__(detail or title)
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type = type_
        self.code = code
        self.headers = headers


class AuthorizationDenied(DomainException):
    def __init__(self, action: str, group_id: Optional[int] = None) -> None:
        scope = f" in group {group_id}" if group_id is not None else ""
        super().__init__(
            status_code=403,
            title="Permission denied",
            detail=f"not allowed to {action}{scope}",
            code="authorization_denied",
        )
        self.action = action
        self.group_id = group_id


class ValidationError(DomainException):
    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=400,
            title="Validation failed",
            detail=detail,
            code="validation_error",
        )


class NotFound(DomainException):
    def __init__(self, kind: str, key) -> None:
        super().__init__(
            status_code=404,
            title=f"{kind.capitalize()} not found",
            detail=f"{kind} '{key}' not found",
            code=f"{kind}_not_found",
        )


class Conflict(DomainException):
    def __init__(self, detail: str, code: str = "conflict") -> None:
        super().__init__(status_code=409, title="Conflict", detail=detail, code=code)


class ConcurrencyTimeout(DomainException):
    """Group lock not acquired in time. Transient; the caller may retry."""

    def __init__(self, group_id: Optional[int], timeout: float) -> None:
        scope = f"group {group_id}" if group_id is not None else "ungrouped matches"
        super().__init__(
            status_code=503,
            title="Recompute busy",
            detail=f"could not acquire the recompute lock for {scope} within {timeout:g}s",
            code="concurrency_timeout",
            headers={"Retry-After": "1"},
        )
        self.group_id = group_id
        self.timeout = timeout


class MissingReferenceWarning(UserWarning):
    """A match references a player id that no longer exists."""

    def __init__(self, player_id: int, match_id: Optional[int], frozen_name: str) -> None:
        super().__init__(
            f"player {player_id} referenced by match {match_id} no longer exists; "
            f"using recorded name '{frozen_name}'"
        )
        self.player_id = player_id
        self.match_id = match_id
        self.frozen_name = frozen_name
