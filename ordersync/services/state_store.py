"""
Estado persistente de la sincronización.

Guarda, por cuenta, el cursor de paginación de Whatnot, la última hora
de sincronización de tracking de ShipStation y el estado de un lote de
tracking en curso, permitiendo reanudar operaciones interrumpidas.

Los documentos JSON se leen y escriben en archivo y se replican en
Redis cuando REDIS_URL está configurado.
"""

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ordersync.core.config import Settings, get_settings
from ordersync.utils.formatting import to_iso

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class JsonStateBackend:
    """
    Almacenamiento de documentos JSON por (namespace, clave).

    El archivo local (reemplazo atómico) es la fuente de verdad. Redis
    es una réplica de solo escritura para observadores externos; sus
    fallos se registran y nunca afectan a las lecturas.
    """

    def __init__(self, directory: str | Path, redis_url: Optional[str] = None, redis_client=None):
        """
        Inicializa el backend.

        Args:
            directory: Directorio raíz de los archivos de estado
            redis_url: URL de Redis (opcional)
            redis_client: Cliente Redis ya creado (opcional, útil en tests)
        """
        self.directory = Path(directory)
        self.redis_url = redis_url
        self.redis_client = redis_client
        self._redis_checked = redis_client is not None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "JsonStateBackend":
        settings = settings or get_settings()
        return cls(settings.STATE_DIR, settings.REDIS_URL)

    async def _get_redis(self):
        if self._redis_checked:
            return self.redis_client
        self._redis_checked = True

        if not self.redis_url:
            logger.debug(f"📁 State backend using files only: {self.directory}")
            return None

        try:
            client = redis.from_url(self.redis_url, encoding="utf-8", decode_responses=True)
            await client.ping()
            self.redis_client = client
            logger.info("📡 State backend mirrored to Redis")
        except (RedisError, OSError) as e:
            logger.warning(f"Redis not available, using file-based state only: {e}")
            self.redis_client = None

        return self.redis_client

    def _path(self, namespace: str, key: str) -> Path:
        safe_key = _UNSAFE_KEY_CHARS.sub("_", str(key))
        return self.directory / namespace / f"{safe_key}.json"

    @staticmethod
    def _redis_key(namespace: str, key: str) -> str:
        return f"ordersync:{namespace}:{key}"

    async def read(self, namespace: str, key: str) -> Optional[Dict[str, Any]]:
        """
        Lee un documento del archivo local.

        Redis nunca se consulta: una réplica que falló al escribir o al
        borrar quedaría desactualizada y haría retroceder el cursor.

        Returns:
            Dict | None: Documento o None si no existe
        """
        path = self._path(namespace, key)
        if not path.exists():
            return None

        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    async def write(self, namespace: str, key: str, data: Dict[str, Any]) -> None:
        """
        Escribe un documento. Los errores de archivo se propagan.
        """
        path = self._path(namespace, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(data, indent=2)

        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

        client = await self._get_redis()
        if client is not None:
            try:
                await client.set(self._redis_key(namespace, key), payload)
            except RedisError as e:
                logger.warning(f"Could not mirror {namespace}/{key} to Redis: {e}")

    async def delete(self, namespace: str, key: str) -> None:
        """Elimina un documento de archivo y Redis."""
        client = await self._get_redis()
        if client is not None:
            try:
                await client.delete(self._redis_key(namespace, key))
            except RedisError as e:
                logger.warning(f"Could not delete {namespace}/{key} from Redis: {e}")

        path = self._path(namespace, key)
        if path.exists():
            path.unlink()

    async def close(self) -> None:
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None
        self._redis_checked = False


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


class CursorStore:
    """
    Cursor de paginación de Whatnot por cuenta.

    Se escribe después de cada página; un cursor vacío nunca reemplaza
    al guardado.
    """

    NAMESPACE = "cursors"

    def __init__(self, backend: JsonStateBackend):
        self.backend = backend

    async def load_cursor(self, account_name: str) -> Optional[str]:
        data = await self.backend.read(self.NAMESPACE, account_name)
        cursor = (data or {}).get("cursor")
        if cursor:
            logger.debug(f"Loaded cursor for account {account_name}")
        else:
            logger.debug(f"No cursor found for account {account_name}")
        return cursor or None

    async def save_cursor(self, account_name: str, cursor: Optional[str]) -> bool:
        """
        Guarda el cursor de la cuenta.

        Returns:
            bool: False si el cursor estaba vacío y no se guardó
        """
        if not cursor:
            logger.debug(f"Ignoring empty cursor for account {account_name}")
            return False

        await self.backend.write(self.NAMESPACE, account_name, {"cursor": cursor, "timestamp": _now_iso()})
        logger.debug(f"Saved cursor for account {account_name}")
        return True


class SyncTimeStore:
    """
    Última sincronización de tracking completa por tienda de ShipStation.
    """

    NAMESPACE = "sync_times"

    def __init__(
        self,
        backend: JsonStateBackend,
        lookback_days: int = 2,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.backend = backend
        self.lookback_days = lookback_days
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @staticmethod
    def _key(store_id: str | int | None) -> str:
        return f"shipstation_{store_id if store_id is not None else 'all'}"

    async def load_sync_time(self, store_id: str | int | None) -> str:
        """
        Obtiene la última hora de sincronización.

        Returns:
            str: ISO-8601; si nunca se sincronizó, ahora menos la ventana por defecto
        """
        data = await self.backend.read(self.NAMESPACE, self._key(store_id))
        last_sync_time = (data or {}).get("lastSyncTime")

        if last_sync_time:
            logger.info(f"Loaded previous sync time for store {store_id}: {last_sync_time}")
            return last_sync_time

        default_start = to_iso(self._clock() - timedelta(days=self.lookback_days))
        logger.info(f"No previous sync time found for store {store_id}. Using default lookback: {default_start}")
        return default_start

    async def save_sync_time(self, store_id: str | int | None, last_sync_time: str) -> None:
        await self.backend.write(
            self.NAMESPACE,
            self._key(store_id),
            {"lastSyncTime": last_sync_time, "timestamp": _now_iso()},
        )
        logger.info(f"Saved sync time for store {store_id}: {last_sync_time}")


@dataclass
class TrackingState:
    """
    Estado de un lote de tracking en curso.

    Attributes:
        last_processed_shipment_id: Último envío intentado
        processed_shipment_ids: Envíos ya intentados en este lote, en orden
        last_sync_time: Marca de tiempo con la que se inició el lote
    """

    last_processed_shipment_id: Optional[str] = None
    processed_shipment_ids: List[str] = field(default_factory=list)
    last_sync_time: Optional[str] = None
    updated_at: Optional[str] = None

    def __post_init__(self) -> None:
        self._index = set(self.processed_shipment_ids)

    def is_processed(self, shipment_id: str) -> bool:
        return shipment_id in self._index

    def mark_processed(self, shipment_id: str) -> None:
        if shipment_id not in self._index:
            self._index.add(shipment_id)
            self.processed_shipment_ids.append(shipment_id)
        self.last_processed_shipment_id = shipment_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lastProcessedShipmentId": self.last_processed_shipment_id,
            "processedShipmentIds": list(self.processed_shipment_ids),
            "lastSyncTime": self.last_sync_time,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackingState":
        ids = data.get("processedShipmentIds") or []
        last_id = data.get("lastProcessedShipmentId")
        return cls(
            last_processed_shipment_id=str(last_id) if last_id is not None else None,
            processed_shipment_ids=[str(shipment_id) for shipment_id in ids],
            last_sync_time=data.get("lastSyncTime"),
            updated_at=data.get("updatedAt"),
        )


class TrackingStateStore:
    """
    Estado de tracking en curso por tienda de ShipStation.
    """

    NAMESPACE = "tracking_state"

    def __init__(self, backend: JsonStateBackend):
        self.backend = backend

    @staticmethod
    def _key(store_id: str | int | None) -> str:
        return f"shipstation_{store_id if store_id is not None else 'all'}"

    async def load(self, store_id: str | int | None) -> Optional[TrackingState]:
        data = await self.backend.read(self.NAMESPACE, self._key(store_id))
        if not data:
            logger.debug(f"No tracking state found for store {store_id}")
            return None

        state = TrackingState.from_dict(data)
        logger.info(
            f"Loaded tracking state for store {store_id}: "
            f"{len(state.processed_shipment_ids)} shipments already processed"
        )
        return state

    async def save(self, store_id: str | int | None, state: TrackingState) -> None:
        state.updated_at = _now_iso()
        await self.backend.write(self.NAMESPACE, self._key(store_id), state.to_dict())
        logger.debug(f"Saved tracking state for store {store_id}")

    async def clear(self, store_id: str | int | None) -> None:
        await self.backend.delete(self.NAMESPACE, self._key(store_id))
        logger.info(f"Reset tracking state for store {store_id}")
