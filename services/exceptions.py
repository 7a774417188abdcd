"""Ошибки бизнес-логики и их отображение на HTTP-коды."""


class ServiceError(Exception):
    """Базовая ошибка сервиса: стабильная пара (code, message) для клиента."""

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidRangeError(ServiceError):
    """Некорректный или перевёрнутый интервал времени, неизвестный тип аренды."""

    status_code = 400
    code = "INVALID_RANGE"
    default_message = "Invalid rental time range"


class NotFoundError(ServiceError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class ConflictError(ServiceError):
    """Прицеп занят на выбранный период."""

    status_code = 409
    code = "CONFLICT"
    default_message = "Trailer is not available for the selected time period"


class InvalidTransitionError(ServiceError):
    """Недопустимая смена статуса брони, платежа или чата."""

    status_code = 409
    code = "INVALID_TRANSITION"
    default_message = "Invalid status transition"


class AuthError(ServiceError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Authentication required"


class ForbiddenError(ServiceError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Access denied"


class UpstreamError(ServiceError):
    """Сбой платёжного шлюза или Telegram API."""

    status_code = 502
    code = "UPSTREAM_ERROR"
    default_message = "Upstream service error"


class InvalidInputError(ServiceError):
    """Недопустимые данные запроса: тип файла, набор сторон фото."""

    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid request data"
