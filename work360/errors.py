from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


@dataclass(frozen=True, slots=True)
class FieldViolation:
    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class DomainError(Exception):
    kind = "DomainError"
    status_code = 400
    default_code = "DOMAIN_ERROR"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class ValidationError(DomainError):
    kind = "ValidationError"
    status_code = 400
    default_code = "VALIDATION_ERROR"

    def __init__(
        self,
        violations: list[FieldViolation],
        *,
        message: str = "Some of the submitted fields are not valid.",
    ):
        super().__init__(message)
        self.violations = list(violations)

    @classmethod
    def single(cls, field: str, message: str) -> ValidationError:
        return cls([FieldViolation(field=field, message=message)], message=message)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["errors"] = [item.to_dict() for item in self.violations]
        return payload


class Forbidden(DomainError):
    kind = "Forbidden"
    status_code = 403
    default_code = "FORBIDDEN"


class InvalidState(DomainError):
    kind = "InvalidState"
    status_code = 409
    default_code = "INVALID_STATE"


class InvalidTransition(InvalidState):
    default_code = "INVALID_TRANSITION"

    def __init__(self, source: str, target: str):
        super().__init__(f"Cannot move a request from {source} to {target}.")
        self.source = source
        self.target = target


class NotFound(DomainError):
    kind = "NotFound"
    status_code = 404
    default_code = "NOT_FOUND"


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    kind: str | None = None,
    errors: list[dict[str, str]] | None = None,
) -> JSONResponse:
    error: dict[str, Any] = {
        "kind": kind or code,
        "code": code,
        "message": message,
        "request_id": get_request_id(request),
    }
    if errors:
        error["errors"] = errors
    return JSONResponse(status_code=status_code, content={"error": error})
