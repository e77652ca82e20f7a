"""
Configuración de cuentas Whatnot / ShipStation.

Las cuentas se leen de un archivo JSON con la forma
``{"accounts": [{"name", "enabled", "whatnotToken", "shipstationStoreId"}]}``.
El núcleo las trata como entrada de solo lectura.
"""

import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ordersync.utils.error_handler import ConfigurationException

logger = logging.getLogger(__name__)


class Account(BaseModel):
    """
    Cuenta de vendedor: token de Whatnot y tienda de ShipStation asociada.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    name: str
    enabled: bool = True
    whatnot_token: Optional[str] = Field(default=None, alias="whatnotToken")
    shipstation_store_id: Optional[str] = Field(default=None, alias="shipstationStoreId")
    # Fecha mínima de creación propia de la cuenta (reemplaza WHATNOT_INITIAL_SYNC_DATE)
    start_at: Optional[str] = Field(default=None, alias="startAt")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("El nombre de la cuenta es requerido")
        return v.strip()

    @field_validator("shipstation_store_id", mode="before")
    @classmethod
    def coerce_store_id(cls, v):
        """ShipStation usa ids numéricos; se guardan como texto."""
        if v is None or v == "":
            return None
        return str(v)


def load_accounts(path: Union[str, Path]) -> List[Account]:
    """
    Carga las cuentas desde un archivo JSON.

    Args:
        path: Ruta del archivo de cuentas

    Returns:
        List[Account]: Cuentas configuradas (habilitadas o no)

    Raises:
        ConfigurationException: Si el archivo no existe o es inválido
    """
    path = Path(path)

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationException(f"Accounts file not found: {path}", setting="ACCOUNTS_FILE") from e
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationException(f"Cannot read accounts file {path}: {e}", setting="ACCOUNTS_FILE") from e

    entries = raw.get("accounts") if isinstance(raw, dict) else None
    if not isinstance(entries, list):
        raise ConfigurationException(
            f"Accounts file {path} must contain an 'accounts' list", setting="ACCOUNTS_FILE"
        )

    try:
        accounts = [Account.model_validate(entry) for entry in entries]
    except ValidationError as e:
        raise ConfigurationException(f"Invalid account entry in {path}: {e}", setting="ACCOUNTS_FILE") from e

    logger.debug(f"Loaded {len(accounts)} accounts from {path}")
    return accounts


def enabled_accounts(accounts: Iterable[Account]) -> List[Account]:
    """Filtra las cuentas habilitadas."""
    return [account for account in accounts if account.enabled]


def find_account(accounts: Iterable[Account], name: str) -> Account:
    """
    Busca una cuenta por nombre.

    Raises:
        ConfigurationException: Si no existe ninguna cuenta con ese nombre
    """
    for account in accounts:
        if account.name == name:
            return account
    raise ConfigurationException(f"Unknown account: {name}", setting="ACCOUNTS_FILE")
