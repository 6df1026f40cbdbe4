# app/infra/store/shop_tokens.py
import logging
from typing import Dict, Optional, Protocol, runtime_checkable

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

KEY_PREFIX = "fsbd:shop_token:"


@runtime_checkable
class ShopTokenStore(Protocol):
    async def get(self, shop: str) -> Optional[str]: ...

    async def save(self, shop: str, token: str) -> None: ...

    async def remove(self, shop: str) -> None: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class InMemoryShopTokenStore:
    def __init__(self, tokens: Optional[Dict[str, str]] = None):
        self._tokens: Dict[str, str] = dict(tokens or {})

    async def get(self, shop: str) -> Optional[str]:
        return self._tokens.get(shop)

    async def save(self, shop: str, token: str) -> None:
        self._tokens[shop] = token

    async def remove(self, shop: str) -> None:
        self._tokens.pop(shop, None)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class RedisShopTokenStore:
    """Tokens de tiendas instaladas guardados en Redis (uno por llave)."""

    def __init__(self, client: aioredis.Redis):
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisShopTokenStore":
        return cls(aioredis.from_url(url, encoding="utf-8", decode_responses=True))

    async def get(self, shop: str) -> Optional[str]:
        return await self._redis.get(KEY_PREFIX + shop)

    async def save(self, shop: str, token: str) -> None:
        await self._redis.set(KEY_PREFIX + shop, token)

    async def remove(self, shop: str) -> None:
        await self._redis.delete(KEY_PREFIX + shop)

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            logger.error(f"❌ Redis no responde: {e}")
            return False

    async def close(self) -> None:
        await self._redis.close()
