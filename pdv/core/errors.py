# pdv/core/errors.py
"""
Taxonomia de erros da camada de serviço.

Cada erro sabe o status HTTP e o corpo JSON que gera; o mapeamento para
respostas fica em pdv/error_handlers.py.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional


class ServiceError(Exception):
    status_code = 400
    code: Optional[str] = None

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.code:
            body["code"] = self.code
        return body


class ValidationError(ServiceError):
    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None, code: Optional[str] = None):
        super().__init__(message, code)
        self.details = details or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, details=[{"field": field, "message": message}])

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(ServiceError):
    status_code = 404
    code = "NOT_FOUND"


# Códigos de conflito
DUPLICATE_ORDER_NUMBER = "DUPLICATE_ORDER_NUMBER"
FOREIGN_KEY_VIOLATION = "FOREIGN_KEY_VIOLATION"
DUPLICATE_EMAIL = "DUPLICATE_EMAIL"
DATABASE_BUSY = "DATABASE_BUSY"
INTEGRITY_VIOLATION = "INTEGRITY_VIOLATION"

_CONFLICT_STATUS = {
    DUPLICATE_ORDER_NUMBER: 409,
    DATABASE_BUSY: 409,
    FOREIGN_KEY_VIOLATION: 400,
    DUPLICATE_EMAIL: 400,
    INTEGRITY_VIOLATION: 409,
}


class ConflictError(ServiceError):
    code = INTEGRITY_VIOLATION

    def __init__(self, message: str, code: str = INTEGRITY_VIOLATION, field: Optional[str] = None):
        super().__init__(message, code)
        self.field = field

    @property
    def status_code(self) -> int:  # type: ignore[override]
        return _CONFLICT_STATUS.get(self.code, 409)

    @property
    def retryable(self) -> bool:
        return self.code in (DUPLICATE_ORDER_NUMBER, DATABASE_BUSY)

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.field:
            body["field"] = self.field
        return body


class AuthorizationError(ServiceError):
    """401 sem credenciais válidas; 403 com credenciais mas sem permissão."""

    def __init__(self, message: str = "Permissão negada", authenticated: bool = True):
        super().__init__(message, "FORBIDDEN" if authenticated else "UNAUTHENTICATED")
        self.status_code = 403 if authenticated else 401


class UnexpectedError(ServiceError):
    status_code = 500
    code = "UNEXPECTED_ERROR"
