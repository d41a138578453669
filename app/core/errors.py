"""Taxonomia de erros da aplicação

Três tipos de erro atravessam as camadas:

- INTERNAL: falhas de infraestrutura (banco, cache, broker)
- BUSINESS: violação de regra de negócio, sempre com um ``reason``
- VALIDATION: entrada com formato inválido

O ``reason`` é um slug legível por máquina usado pela camada HTTP para
escolher o status code.
"""
import logging
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    INTERNAL = "internal"
    BUSINESS = "business"
    VALIDATION = "validation"


class Reason:
    UNKNOWN = "UNKNOWN"
    NOT_FOUND = "NOT_FOUND"
    DUPLICATE = "DUPLICATE"
    UNAUTHORIZED = "UNAUTHORIZED"
    USER_DISABLED = "USER_DISABLED"
    FORBIDDEN = "FORBIDDEN"
    BAD_REQUEST = "BAD_REQUEST"
    INVALID_STATE = "INVALID_STATE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppError(Exception):
    """Erro base com tipo, reason e metadados"""

    kind: ErrorKind = ErrorKind.INTERNAL
    default_reason: str = Reason.UNKNOWN

    def __init__(self, message: str, reason: Optional[str] = None, meta: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason or self.default_reason
        self.meta: Dict[str, Any] = dict(meta or {})

    def with_meta(self, **meta: Any) -> "AppError":
        self.meta.update(meta)
        return self

    def __str__(self) -> str:
        cause = self.__cause__
        if cause is not None:
            return f"{self.message}: {cause}"
        return self.message


class InternalError(AppError):
    kind = ErrorKind.INTERNAL
    default_reason = Reason.INTERNAL_ERROR


class BusinessError(AppError):
    kind = ErrorKind.BUSINESS


class ValidationError(AppError):
    kind = ErrorKind.VALIDATION
    default_reason = Reason.BAD_REQUEST


class TaskAlreadyExistsError(BusinessError):
    """Nome de task já registrado no runner"""

    default_reason = Reason.DUPLICATE

    def __init__(self, name: str):
        super().__init__("task already exists", meta={"task": name})
        self.name = name


class InvalidCronExpressionError(BusinessError):
    default_reason = Reason.BAD_REQUEST

    def __init__(self, expression: str, detail: str = ""):
        message = "invalid cron expression"
        if detail:
            message = f"{message} {expression!r}: {detail}"
        super().__init__(message, meta={"expression": expression})
        self.expression = expression


def is_reason(exc: BaseException, reason: str) -> bool:
    return isinstance(exc, AppError) and exc.reason == reason


def is_internal(exc: BaseException) -> bool:
    return isinstance(exc, AppError) and exc.kind is ErrorKind.INTERNAL


def is_business(exc: BaseException) -> bool:
    return isinstance(exc, AppError) and exc.kind is ErrorKind.BUSINESS


def is_validation(exc: BaseException) -> bool:
    return isinstance(exc, AppError) and exc.kind is ErrorKind.VALIDATION


def log_level_for(exc: BaseException) -> int:
    """Erros de negócio e validação são esperados e vão em INFO"""
    if is_business(exc) or is_validation(exc):
        return logging.INFO
    return logging.ERROR
