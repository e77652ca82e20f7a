"""
Sistema de manejo de errores personalizado.

Este módulo define todas las excepciones de la sincronización
Whatnot ↔ ShipStation y utilidades para manejo consistente de errores.
"""

import logging
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Fragmentos de mensajes de Whatnot que indican tracking ya asignado
ALREADY_TRACKED_MARKERS = ("already has tracking", "cannot override tracking")


class ErrorCode(Enum):
    """
    Códigos de error estandardizados para la aplicación.
    """

    # Errores generales
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Errores de conexión / API
    WHATNOT_API_ERROR = "WHATNOT_API_ERROR"
    SHIPSTATION_API_ERROR = "SHIPSTATION_API_ERROR"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Errores de sincronización
    SYNC_FAILED = "SYNC_FAILED"
    SYNC_ALREADY_RUNNING = "SYNC_ALREADY_RUNNING"
    TRACKING_ALREADY_EXISTS = "TRACKING_ALREADY_EXISTS"


class ErrorSeverity(Enum):
    """
    Niveles de severidad para errores.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AppException(Exception):
    """
    Excepción base para todas las excepciones personalizadas de la aplicación.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        is_retryable: bool = False,
    ):
        """
        Inicializa la excepción.

        Args:
            message: Mensaje de error
            error_code: Código de error estandardizado
            details: Información adicional del error
            severity: Severidad del error
            is_retryable: Si la operación puede reintentarse
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.severity = severity
        self.is_retryable = is_retryable
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convierte la excepción a diccionario.

        Returns:
            Dict: Representación de la excepción
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code.value,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        return f"{self.error_code.value}: {self.message}"


class ConfigurationException(AppException):
    """
    Excepción para configuración faltante o inválida.

    Cubre credenciales faltantes, fecha inicial faltante cuando no hay
    cursor, cuentas desconocidas y archivo de cuentas ilegible.
    """

    def __init__(self, message: str, setting: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            severity=ErrorSeverity.HIGH,
            is_retryable=False,
            **kwargs,
        )
        self.setting = setting
        self.details.update({"setting": setting})


class AuthenticationException(AppException):
    """
    Excepción para credenciales rechazadas (HTTP 401). Nunca se reintenta.
    """

    def __init__(self, message: str, service: str, endpoint: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.AUTHENTICATION_FAILED,
            severity=ErrorSeverity.CRITICAL,
            is_retryable=False,
            **kwargs,
        )
        self.service = service
        self.endpoint = endpoint
        self.details.update({"service": service, "endpoint": endpoint})


class RateLimitException(AppException):
    """
    Excepción para errores de rate limiting (HTTP 429).
    """

    def __init__(self, message: str, retry_after: float, endpoint: Optional[str] = None, **kwargs):
        """
        Inicializa la excepción de rate limiting.

        Args:
            message: Mensaje de error
            retry_after: Segundos a esperar antes de reintentar
            endpoint: Endpoint que respondió 429
            **kwargs: Argumentos adicionales para AppException
        """
        super().__init__(
            message=message,
            error_code=ErrorCode.RATE_LIMIT_EXCEEDED,
            severity=ErrorSeverity.LOW,
            is_retryable=True,
            **kwargs,
        )
        self.retry_after = retry_after
        self.endpoint = endpoint
        self.details.update({"retry_after": retry_after, "endpoint": endpoint})


class WhatnotAPIException(AppException):
    """
    Excepción para errores de la API GraphQL de Whatnot.

    Los errores de mutación se conservan como pares campo/mensaje
    en ``user_errors``.
    """

    def __init__(
        self,
        message: str,
        user_errors: Optional[List[Dict[str, Any]]] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        kwargs.setdefault("is_retryable", status_code is not None and status_code >= 500)
        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.WHATNOT_API_ERROR),
            severity=kwargs.pop("severity", ErrorSeverity.MEDIUM),
            **kwargs,
        )
        self.user_errors = user_errors or []
        self.status_code = status_code
        self.details.update({"user_errors": self.user_errors, "status_code": status_code})


class TrackingAlreadyExistsException(WhatnotAPIException):
    """
    La orden en Whatnot ya tiene tracking y no puede sobrescribirse.

    No es un error fatal: el orquestador lo cuenta como "already tracked".
    """

    def __init__(self, message: str, order_ids: Optional[List[str]] = None, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.TRACKING_ALREADY_EXISTS,
            severity=ErrorSeverity.LOW,
            is_retryable=False,
            **kwargs,
        )
        self.order_ids = list(order_ids or [])
        self.details.update({"order_ids": self.order_ids})


class ShipStationAPIException(AppException):
    """
    Excepción para respuestas de error de ShipStation (distintas de 401 y 429).
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        response_body: Optional[str] = None,
        **kwargs,
    ):
        severity = ErrorSeverity.HIGH if status_code and status_code >= 500 else ErrorSeverity.MEDIUM
        super().__init__(
            message=message,
            error_code=ErrorCode.SHIPSTATION_API_ERROR,
            severity=severity,
            is_retryable=False,
            **kwargs,
        )
        self.status_code = status_code
        self.endpoint = endpoint
        self.response_body = response_body
        self.details.update({"status_code": status_code, "endpoint": endpoint})


class SyncException(AppException):
    """
    Excepción para errores de sincronización.
    """

    def __init__(self, message: str, service: str, operation: str, **kwargs):
        """
        Inicializa la excepción de sincronización.

        Args:
            message: Mensaje de error
            service: Servicio involucrado (whatnot, shipstation)
            operation: Operación que falló
            **kwargs: Argumentos adicionales para AppException
        """
        kwargs.setdefault("is_retryable", True)
        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.SYNC_FAILED),
            severity=kwargs.pop("severity", ErrorSeverity.HIGH),
            **kwargs,
        )
        self.service = service
        self.operation = operation
        self.details.update({"service": service, "operation": operation})


class SyncAlreadyRunningException(SyncException):
    """
    Ya hay una ejecución en curso; la nueva solicitud se rechaza.
    """

    def __init__(self, running: Optional[str] = None, **kwargs):
        super().__init__(
            message="A sync or tracking update is already running",
            service="sync_service",
            operation=running or "unknown",
            error_code=ErrorCode.SYNC_ALREADY_RUNNING,
            severity=ErrorSeverity.LOW,
            is_retryable=False,
            **kwargs,
        )
        self.running = running


# === FUNCIONES DE UTILIDAD ===


def is_already_tracked_message(text: Optional[str]) -> bool:
    """
    Indica si un mensaje de error de Whatnot significa tracking ya asignado.

    Args:
        text: Mensaje de error

    Returns:
        bool: True si el mensaje contiene un marcador de tracking existente
    """
    if not text:
        return False
    lowered = text.lower()
    return any(marker in lowered for marker in ALREADY_TRACKED_MARKERS)


def error_message(exception: Exception) -> str:
    """Mensaje legible de una excepción, sin el prefijo de código."""
    if isinstance(exception, AppException):
        return exception.message
    return str(exception) or type(exception).__name__


def log_error(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None,
    level: int = logging.ERROR,
) -> None:
    """
    Loggea un error de manera consistente.

    Args:
        exception: Excepción a loggear
        context: Contexto adicional
        level: Nivel de logging
    """
    context = context or {}

    log_data = {
        "exception_type": type(exception).__name__,
        "exception_message": str(exception),
        **context,
    }

    if isinstance(exception, AppException):
        message = f"{exception.error_code.value}: {exception.message}"
        log_data.update(
            {
                "error_code": exception.error_code.value,
                "severity": exception.severity.value,
                "is_retryable": exception.is_retryable,
            }
        )
    else:
        message = f"Unhandled exception: {type(exception).__name__}: {str(exception)}"
        log_data["traceback"] = "".join(
            traceback.format_exception(type(exception), exception, exception.__traceback__)
        )

    logger.log(level, message, extra=log_data)
