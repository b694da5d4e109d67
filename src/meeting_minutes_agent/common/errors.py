"""
Единые ошибки и коды ошибок.

Назначение:
- предсказуемые коды для HTTP/WS/логов
- единый стиль исключений по проекту
- клиент по коду понимает, имеет ли смысл повтор (retryable)
"""

from __future__ import annotations

from dataclasses import dataclass


class ErrCode:
    # Общие
    UNKNOWN = "unknown"
    VALIDATION = "validation"
    BAD_INPUT = "bad_input"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"

    # Жизненный цикл встречи / live-транскрипция
    INVALID_STATE = "invalid_state"
    ALREADY_ACTIVE = "already_active"
    SESSION_NOT_FOUND = "session_not_found"

    # Провайдеры
    STT_PROVIDER_ERROR = "stt_provider_error"
    LLM_PROVIDER_ERROR = "llm_provider_error"
    DELIVERY_PROVIDER_ERROR = "delivery_provider_error"

    # Инфра/хранилища
    DB_ERROR = "db_error"
    REDIS_ERROR = "redis_error"


@dataclass
class AppError(Exception):
    """
    Базовая ошибка приложения.
    - code: стабильный код ошибки
    - message: безопасное сообщение
    - details: доп. данные (без секретов/PII)
    """

    code: str
    message: str
    details: dict | None = None

    retryable = False

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}"


class ValidationError(AppError):
    def __init__(self, message: str = "Ошибка валидации", details: dict | None = None) -> None:
        super().__init__(ErrCode.VALIDATION, message, details)


class BadInputError(AppError):
    def __init__(self, message: str = "Некорректные входные данные", details: dict | None = None) -> None:
        super().__init__(ErrCode.BAD_INPUT, message, details)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Не авторизован", details: dict | None = None) -> None:
        super().__init__(ErrCode.UNAUTHORIZED, message, details)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Доступ запрещён", details: dict | None = None) -> None:
        super().__init__(ErrCode.FORBIDDEN, message, details)


class NotFoundError(AppError):
    def __init__(self, message: str = "Не найдено", details: dict | None = None) -> None:
        super().__init__(ErrCode.NOT_FOUND, message, details)


class ConflictError(AppError):
    def __init__(self, message: str = "Конфликт", details: dict | None = None) -> None:
        super().__init__(ErrCode.CONFLICT, message, details)


class InvalidStateError(AppError):
    """
    Операция недопустима для текущего состояния сущности.
    Повтор без перечитывания состояния бессмыслен.
    """

    def __init__(
        self,
        message: str = "Операция недопустима в текущем состоянии",
        details: dict | None = None,
        code: str = ErrCode.INVALID_STATE,
    ) -> None:
        super().__init__(code, message, details)


class AlreadyActiveError(InvalidStateError):
    def __init__(self, message: str = "Live-транскрипция уже запущена", details: dict | None = None) -> None:
        super().__init__(message, details, code=ErrCode.ALREADY_ACTIVE)


class SessionNotFoundError(AppError):
    def __init__(self, message: str = "Live-транскрипция не запущена", details: dict | None = None) -> None:
        super().__init__(ErrCode.SESSION_NOT_FOUND, message, details)


class ProviderError(AppError):
    """
    Сбой/таймаут внешнего движка (STT, LLM, доставка).
    """

    retryable = True

    def __init__(self, code: str, message: str, details: dict | None = None) -> None:
        super().__init__(code, message, details)


class PersistenceError(AppError):
    def __init__(self, message: str = "Ошибка записи в БД", details: dict | None = None) -> None:
        super().__init__(ErrCode.DB_ERROR, message, details)
