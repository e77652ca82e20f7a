"""
Configuración centralizada de la aplicación.

Este módulo maneja todas las variables de entorno y configuraciones
de la sincronización Whatnot ↔ ShipStation usando Pydantic Settings
para validación automática.
"""

from datetime import datetime
from functools import lru_cache
from typing import Optional

import pytz
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Configuración de la aplicación usando Pydantic Settings.

    Todas las configuraciones se cargan desde variables de entorno
    con valores por defecto apropiados para desarrollo.
    """

    # === CONFIGURACIÓN BÁSICA DE LA APP ===
    APP_NAME: str = "Whatnot-ShipStation Sync"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # === CONFIGURACIÓN DE LOGGING ===
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE_PATH: Optional[str] = Field(default="logs/ordersync.log")
    LOG_MAX_SIZE_MB: int = Field(default=10)
    LOG_BACKUP_COUNT: int = Field(default=5)
    LOG_FORMAT: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # === CONFIGURACIÓN DE WHATNOT ===
    WHATNOT_API_URL: str = Field(default="https://api.whatnot.com/seller-api/graphql")
    # Fecha mínima de creación cuando una cuenta todavía no tiene cursor
    WHATNOT_INITIAL_SYNC_DATE: Optional[str] = Field(default=None)
    WHATNOT_PAGE_SIZE: int = Field(default=50, ge=1, le=100)
    WHATNOT_ITEMS_PAGE_SIZE: int = Field(default=50, ge=1, le=100)
    WHATNOT_PAGE_DELAY_SECONDS: float = Field(default=1.0, ge=0)
    WHATNOT_REQUEST_TIMEOUT: int = Field(default=30)
    WHATNOT_MAX_RETRIES: int = Field(default=3, ge=1)

    # === CONFIGURACIÓN DE SHIPSTATION ===
    SHIPSTATION_BASE_URL: str = Field(default="https://ssapi.shipstation.com")
    SHIPSTATION_API_KEY: Optional[str] = Field(default=None)
    SHIPSTATION_API_SECRET: Optional[str] = Field(default=None)
    SHIPSTATION_REQUEST_TIMEOUT: int = Field(default=60)
    # Reintentos ante HTTP 429 (además del intento inicial)
    SHIPSTATION_MAX_RETRIES: int = Field(default=3, ge=0)
    SHIPSTATION_DEFAULT_RETRY_AFTER: int = Field(default=60, ge=0)
    SHIPSTATION_RATE_LIMIT_PER_MINUTE: int = Field(default=40, ge=1)
    SHIPSTATION_MAX_RPS: float = Field(default=0.66, gt=0)
    SHIPSTATION_RATE_LIMIT_BURST: int = Field(default=1, ge=1)
    SHIPSTATION_PAGE_SIZE: int = Field(default=500, ge=1, le=500)
    # ShipStation devuelve fechas sin zona horaria en hora del Pacífico
    SHIPSTATION_TIMEZONE: str = Field(default="America/Los_Angeles")

    # === CONFIGURACIÓN DE AGRUPACIÓN ===
    STREAM_TIMEZONE: str = Field(default="America/New_York")

    # === CONFIGURACIÓN DE TRACKING ===
    TRACKING_DEFAULT_LOOKBACK_DAYS: int = Field(default=2, ge=0)
    SHIPMENT_DEFAULT_WINDOW_DAYS: int = Field(default=7, ge=0)
    DEFAULT_COURIER: str = Field(default="usps")

    # === CONFIGURACIÓN DE ESTADO PERSISTENTE ===
    STATE_DIR: str = Field(default="state")
    REDIS_URL: Optional[str] = Field(default=None)

    # === CONFIGURACIÓN DE CUENTAS ===
    ACCOUNTS_FILE: str = Field(default="accounts.json")

    # === CONFIGURACIÓN DE ESTADO DE EJECUCIÓN ===
    MAX_STATUS_LOGS: int = Field(default=100, ge=1)
    LOG_DEDUP_WINDOW_SECONDS: float = Field(default=5.0, ge=0)
    PROGRESS_QUEUE_SIZE: int = Field(default=100, ge=1)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
    }

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Valida que el nivel de log sea válido."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL debe ser uno de: {valid_levels}")
        return v.upper()

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Valida que el entorno sea válido."""
        valid_envs = ["development", "staging", "production", "testing"]
        if v.lower() not in valid_envs:
            raise ValueError(f"ENVIRONMENT debe ser uno de: {valid_envs}")
        return v.lower()

    @field_validator("SHIPSTATION_TIMEZONE", "STREAM_TIMEZONE")
    @classmethod
    def validate_timezone(cls, v):
        """Valida que la zona horaria exista."""
        try:
            pytz.timezone(v)
        except pytz.UnknownTimeZoneError as e:
            raise ValueError(f"Zona horaria desconocida: {v}") from e
        return v

    @field_validator("WHATNOT_INITIAL_SYNC_DATE")
    @classmethod
    def validate_initial_sync_date(cls, v):
        """Valida que la fecha inicial sea ISO-8601."""
        if v is None or not v.strip():
            return None
        try:
            datetime.fromisoformat(v.strip().replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"WHATNOT_INITIAL_SYNC_DATE debe ser ISO-8601: {v}") from e
        return v.strip()

    @property
    def is_production(self) -> bool:
        """Verifica si está en entorno de producción."""
        return self.ENVIRONMENT == "production"

    @property
    def shipstation_requests_per_second(self) -> float:
        """Tasa sostenida permitida contra ShipStation."""
        return min(self.SHIPSTATION_RATE_LIMIT_PER_MINUTE / 60.0, self.SHIPSTATION_MAX_RPS)

    def get_whatnot_headers(self, token: str) -> dict:
        """
        Obtiene headers para requests a Whatnot.

        Args:
            token: Token de la cuenta de vendedor

        Returns:
            dict: Headers de autenticación
        """
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "User-Agent": f"{self.APP_NAME}/{self.APP_VERSION}",
        }


@lru_cache()
def get_settings() -> Settings:
    """
    Obtiene instancia singleton de configuración.

    Usa LRU cache para evitar recrear la configuración
    múltiples veces durante la ejecución.

    Returns:
        Settings: Instancia de configuración
    """
    return Settings()


# Instancia global para uso directo
settings = get_settings()


def validate_required_settings(settings: Optional[Settings] = None) -> bool:
    """
    Valida que todas las configuraciones requeridas estén presentes.

    Returns:
        bool: True si todas las configuraciones están presentes

    Raises:
        ConfigurationException: Si alguna configuración requerida falta
    """
    from ordersync.utils.error_handler import ConfigurationException

    settings = settings or get_settings()

    required_fields = ["SHIPSTATION_API_KEY", "SHIPSTATION_API_SECRET"]

    missing_fields = []
    for field in required_fields:
        value = getattr(settings, field, None)
        if not value or (isinstance(value, str) and not value.strip()):
            missing_fields.append(field)

    if missing_fields:
        raise ConfigurationException(
            f"Configuraciones requeridas faltantes: {missing_fields}",
            setting=",".join(missing_fields),
        )

    return True
