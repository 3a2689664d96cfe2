from dataclasses import dataclass
from fastapi import status


@dataclass(frozen=True)
class ErrorDefinition:
    code: str
    message: str
    status_code: int


class ErrorCatalog:
    INVALID_TOKEN = ErrorDefinition("INVALID_TOKEN", "Invalid token", status.HTTP_401_UNAUTHORIZED)
    PERMISSION_DENIED = ErrorDefinition(
        "PERMISSION_DENIED",
        "Permission denied",
        status.HTTP_403_FORBIDDEN,
    )
    NETWORK_FAILURE = ErrorDefinition(
        "NETWORK_FAILURE",
        "Error al obtener datos del sistema de punto de venta",
        status.HTTP_502_BAD_GATEWAY,
    )
    PERSISTENCE_FAILURE = ErrorDefinition(
        "PERSISTENCE_FAILURE",
        "Error al guardar en el registro de rectificaciones",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    SESSION_NOT_FOUND = ErrorDefinition(
        "SESSION_NOT_FOUND",
        "ID de sesión no encontrado.",
        status.HTTP_404_NOT_FOUND,
    )
    REQUEST_NOT_FOUND = ErrorDefinition(
        "REQUEST_NOT_FOUND",
        "Solicitud de rectificación asociada no encontrada.",
        status.HTTP_404_NOT_FOUND,
    )
    NOT_FOUND = ErrorDefinition("NOT_FOUND", "Resource not found", status.HTTP_404_NOT_FOUND)
    REQUEST_ALREADY_DECIDED = ErrorDefinition(
        "REQUEST_ALREADY_DECIDED",
        "La solicitud ya fue resuelta",
        status.HTTP_409_CONFLICT,
    )
    REQUEST_ALREADY_EXISTS = ErrorDefinition(
        "REQUEST_ALREADY_EXISTS",
        "La sesión ya tiene una solicitud de rectificación",
        status.HTTP_409_CONFLICT,
    )
    LOAD_CANCELLED = ErrorDefinition(
        "LOAD_CANCELLED",
        "Carga cancelada",
        status.HTTP_409_CONFLICT,
    )
    DB_UNAVAILABLE = ErrorDefinition(
        "DB_UNAVAILABLE",
        "Database unavailable",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    VALIDATION_ERROR = ErrorDefinition(
        "VALIDATION_ERROR",
        "Validation error",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    CONFIRMATION_REQUIRED = ErrorDefinition(
        "CONFIRMATION_REQUIRED",
        "Una vez enviada, no podrá realizar más cambios sobre esta rectificación",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INTERNAL_ERROR = ErrorDefinition(
        "INTERNAL_ERROR",
        "Internal server error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


class AppError(Exception):
    def __init__(self, error: ErrorDefinition, details: object | None = None):
        self.error = error
        self.details = details
        super().__init__(error.message)
