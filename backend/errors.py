"""
Помилки Родового дерева
=======================
Невелика таксономія помилок ядра. Кожна помилка має стабільний код
і людське повідомлення; API-шар лише перекладає код у HTTP статус.
"""

from enum import Enum


class ErrorCode(str, Enum):
    NOT_FOUND = "not-found"
    MISSING_PARAMETERS = "missing-parameters"
    INVALID_ARGUMENT = "invalid-argument"
    PERMISSION_DENIED = "permission-denied"
    ABORTED = "aborted"
    INTERNAL = "internal"


HTTP_STATUS = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.MISSING_PARAMETERS: 400,
    ErrorCode.INVALID_ARGUMENT: 400,
    ErrorCode.PERMISSION_DENIED: 403,
    ErrorCode.ABORTED: 409,
    ErrorCode.INTERNAL: 500,
}


class FamilyTreeError(Exception):
    """Базова помилка ядра"""

    code: ErrorCode = ErrorCode.INTERNAL

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def http_status(self) -> int:
        return HTTP_STATUS[self.code]

    def to_dict(self) -> dict:
        return {"error": self.code.value, "message": self.message}

    def __str__(self):
        return f"[{self.code.value}] {self.message}"


class NotFoundError(FamilyTreeError):
    code = ErrorCode.NOT_FOUND


class MissingParametersError(FamilyTreeError):
    code = ErrorCode.MISSING_PARAMETERS


class InvalidArgumentError(FamilyTreeError):
    code = ErrorCode.INVALID_ARGUMENT


class PermissionDeniedError(FamilyTreeError):
    code = ErrorCode.PERMISSION_DENIED


class AbortedError(FamilyTreeError):
    code = ErrorCode.ABORTED


class InternalError(FamilyTreeError):
    code = ErrorCode.INTERNAL
