# app/infra/tasks.py
import asyncio
import logging
from typing import Awaitable, Callable

from app.infra.cache.risk_cache import RiskCache

logger = logging.getLogger(__name__)


async def run_detached(name: str, job: Callable[..., Awaitable], *args, **kwargs) -> None:
    """
    Envoltorio para trabajo en segundo plano (BackgroundTasks) cuyo resultado
    nadie espera: cualquier excepción queda registrada en el log.
    """
    try:
        await job(*args, **kwargs)
    except Exception:
        logger.exception(f"❌ Tarea en segundo plano '{name}' falló")


async def sweep_cache_forever(cache: RiskCache, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            cache.sweep()
        except Exception:
            logger.exception("❌ Falló la limpieza del cache de riesgo")
