# app/infra/cache/risk_cache.py
import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from app.domain.entities.risk import PhoneNumber, RiskCheckResult, RiskCheckSuccess

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: RiskCheckSuccess
    expires_at: float


class RiskCache:
    """
    Cache en memoria de resultados exitosos, con TTL fijo desde la inserción.

    - Expiración perezosa en lectura + `sweep()` periódico.
    - Solo se guardan RiskCheckSuccess; los fallos nunca se cachean.
    - `get_or_load` agrupa misses concurrentes de la misma llave (single-flight):
      un solo request upstream, todos los que esperan reciben el mismo resultado.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, Future] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(phone) -> str:
        return str(phone)

    def _lookup(self, key: str) -> Optional[RiskCheckSuccess]:
        # caller holds the lock
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry.value

    def get(self, phone: PhoneNumber) -> Optional[RiskCheckSuccess]:
        with self._lock:
            value = self._lookup(self._key(phone))
        return value.from_cache() if value is not None else None

    def put(self, phone: PhoneNumber, value: RiskCheckSuccess) -> None:
        if not isinstance(value, RiskCheckSuccess):
            raise TypeError("only successful risk checks can be cached")
        key = self._key(phone)
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                expires_at=self._clock() + self.ttl_seconds,
            )

    def invalidate(self, phone: Optional[PhoneNumber] = None) -> None:
        with self._lock:
            if phone is None:
                self._entries.clear()
            else:
                self._entries.pop(self._key(phone), None)

    def sweep(self) -> int:
        """Elimina entradas vencidas. Devuelve cuántas se borraron."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now >= e.expires_at]
            for k in expired:
                del self._entries[k]
        if expired:
            logger.debug(f"🧹 Risk cache sweep removed {len(expired)} entries")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_or_load(
        self,
        phone: PhoneNumber,
        loader: Callable[[], RiskCheckResult],
    ) -> RiskCheckResult:
        key = self._key(phone)

        with self._lock:
            cached = self._lookup(key)
            if cached is not None:
                return cached.from_cache()

            future = self._inflight.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._inflight[key] = future

        if not leader:
            logger.debug(f"Joining in-flight risk check for {key}")
            return future.result()

        try:
            result = loader()
        except BaseException as e:
            with self._lock:
                self._inflight.pop(key, None)
            future.set_exception(e)
            raise

        with self._lock:
            if isinstance(result, RiskCheckSuccess):
                self._entries[key] = CacheEntry(
                    key=key,
                    value=result,
                    expires_at=self._clock() + self.ttl_seconds,
                )
            self._inflight.pop(key, None)

        future.set_result(result)
        return result
