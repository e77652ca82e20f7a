"""
Configuración del sistema de logging.

Este módulo configura el logging de la sincronización con:
- Handler de consola (con colores en terminal)
- Archivos rotativos de log y de errores
- Logging estructurado en JSON para producción
- Contexto por cuenta y tipo de ejecución
"""

import json
import logging
import logging.config
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from ordersync.core.config import Settings, get_settings

# Atributos estándar de LogRecord que no se consideran "extra"
_STANDARD_RECORD_ATTRS = frozenset(
    [
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "message",
        "taskName",
    ]
)


class ColoredFormatter(logging.Formatter):
    """
    Formatter que agrega colores al nivel de log en consola.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Verde
        "WARNING": "\033[33m",  # Amarillo
        "ERROR": "\033[31m",  # Rojo
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def format(self, record):
        formatted = super().format(record)

        if hasattr(sys.stderr, "isatty") and sys.stderr.isatty():
            color = self.COLORS.get(record.levelname, self.COLORS["RESET"])
            reset = self.COLORS["RESET"]
            formatted = formatted.replace(record.levelname, f"{color}{record.levelname}{reset}")

        return formatted


class StructuredFormatter(logging.Formatter):
    """
    Formatter para logging estructurado en JSON.
    """

    def format(self, record):
        """
        Formatea el record como JSON estructurado.

        Args:
            record: LogRecord a formatear

        Returns:
            str: Mensaje en formato JSON
        """
        settings = get_settings()

        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "app_name": settings.APP_NAME,
            "app_version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
        }

        for key in ("account", "run_type"):
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_RECORD_ATTRS and key not in log_entry
        }
        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class SyncOperationFilter(logging.Filter):
    """
    Filtro que marca los logs de operaciones de sincronización.
    """

    SYNC_MODULES = ("sync", "tracking", "whatnot", "shipstation")

    def filter(self, record):
        if any(module in record.name.lower() for module in self.SYNC_MODULES):
            record.operation_type = "sync"

            if not hasattr(record, "sync_timestamp"):
                record.sync_timestamp = datetime.now(timezone.utc).isoformat()

        return True


def setup_logging(level: Optional[str] = None, settings: Optional[Settings] = None) -> None:
    """
    Configura el sistema de logging completo de la aplicación.

    Args:
        level: Nivel de log que reemplaza a LOG_LEVEL (opcional)
        settings: Configuración a usar (por defecto la global)
    """
    settings = settings or get_settings()
    level = (level or settings.LOG_LEVEL).upper()

    if settings.LOG_FILE_PATH:
        Path(settings.LOG_FILE_PATH).parent.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(get_logging_configuration(settings, level))

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level))

    sync_filter = SyncOperationFilter()
    for handler in root_logger.handlers:
        handler.addFilter(sync_filter)

    configure_specific_loggers(settings)

    logger = logging.getLogger(__name__)
    logger.debug(f"Sistema de logging configurado - Nivel: {level}")
    if settings.LOG_FILE_PATH:
        logger.debug(f"Logs guardándose en: {settings.LOG_FILE_PATH}")


def get_logging_configuration(settings: Optional[Settings] = None, level: Optional[str] = None) -> Dict[str, Any]:
    """
    Genera configuración completa de logging para dictConfig.

    Returns:
        Dict: Configuración de logging
    """
    settings = settings or get_settings()
    level = (level or settings.LOG_LEVEL).upper()

    config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": settings.LOG_FORMAT,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": ("%(asctime)s - %(name)s - %(levelname)s - %(module)s.%(funcName)s:%(lineno)d - %(message)s"),
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "colored": {
                "()": ColoredFormatter,
                "format": settings.LOG_FORMAT,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {"()": StructuredFormatter},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "colored" if settings.DEBUG else "standard",
                "stream": "ext://sys.stderr",
            }
        },
        "root": {"level": level, "handlers": ["console"]},
    }

    if settings.LOG_FILE_PATH:
        max_bytes = settings.LOG_MAX_SIZE_MB * 1024 * 1024

        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "detailed",
            "filename": settings.LOG_FILE_PATH,
            "maxBytes": max_bytes,
            "backupCount": settings.LOG_BACKUP_COUNT,
            "encoding": "utf-8",
        }

        config["handlers"]["error_file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "ERROR",
            "formatter": "detailed",
            "filename": settings.LOG_FILE_PATH.replace(".log", "_errors.log"),
            "maxBytes": max_bytes,
            "backupCount": settings.LOG_BACKUP_COUNT,
            "encoding": "utf-8",
        }

        if settings.is_production:
            config["handlers"]["json_file"] = {
                "class": "logging.handlers.RotatingFileHandler",
                "level": "INFO",
                "formatter": "json",
                "filename": settings.LOG_FILE_PATH.replace(".log", ".json"),
                "maxBytes": max_bytes,
                "backupCount": settings.LOG_BACKUP_COUNT,
                "encoding": "utf-8",
            }
            config["root"]["handlers"].append("json_file")

        config["root"]["handlers"].extend(["file", "error_file"])

    return config


def configure_specific_loggers(settings: Optional[Settings] = None) -> None:
    """
    Ajusta niveles de loggers propios y de librerías externas.
    """
    settings = settings or get_settings()

    logging.getLogger("ordersync.services").setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    logging.getLogger("ordersync.api").setLevel(logging.INFO)

    for logger_name in ("aiohttp.access", "aiohttp.client", "asyncio", "redis"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def log_sync_operation(operation: str, service: str, **kwargs):
    """
    Logger específico para operaciones de sincronización.

    Args:
        operation: Tipo de operación (create_order, attach_tracking, etc.)
        service: Servicio involucrado (whatnot, shipstation)
        **kwargs: Datos adicionales
    """
    logger = logging.getLogger("ordersync.sync.operation")

    extra_data = {
        "sync_operation": operation,
        "service": service,
        "sync_timestamp": datetime.now(timezone.utc).isoformat(),
        **kwargs,
    }

    logger.info(f"Sync operation: {operation} on {service}", extra=extra_data)


def log_api_call(method: str, url: str, status_code: int, duration: float, **kwargs):
    """
    Logger específico para llamadas a APIs externas.

    Args:
        method: Método HTTP
        url: URL de la API
        status_code: Código de respuesta
        duration: Duración en segundos
        **kwargs: Datos adicionales
    """
    logger = logging.getLogger("ordersync.api.call")

    extra_data = {
        "method": method,
        "url": url,
        "status_code": status_code,
        "duration_ms": round(duration * 1000, 2),
        **kwargs,
    }

    if 200 <= status_code < 300:
        level = logging.DEBUG
    elif 400 <= status_code < 500:
        level = logging.WARNING
    else:
        level = logging.ERROR

    logger.log(
        level,
        f"API call: {method} {url} -> {status_code} ({duration * 1000:.1f}ms)",
        extra=extra_data,
    )


class LogContext:
    """
    Context manager para agregar contexto temporal a los logs.

    Ejemplo:
        with LogContext(account="main", run_type="tracking"):
            logger.info("Procesando cuenta")
    """

    def __init__(self, **context):
        self.context = context
        self.old_factory = None

    def __enter__(self):
        self.old_factory = logging.getLogRecordFactory()
        old_factory = self.old_factory
        context = self.context

        def record_factory(*args, **kwargs):
            record = old_factory(*args, **kwargs)
            for key, value in context.items():
                setattr(record, key, value)
            return record

        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        logging.setLogRecordFactory(self.old_factory)
