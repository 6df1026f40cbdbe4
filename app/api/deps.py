# app/api/deps.py
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from app.core.config import Settings
from app.domain.services.order_checker import BehaviorFlags, OrderChecker
from app.infra.cache.risk_cache import RiskCache
from app.infra.fraudshield.client import FraudShieldClient
from app.infra.shopify.client import ShopifyClient
from app.infra.store.shop_tokens import (
    InMemoryShopTokenStore,
    RedisShopTokenStore,
    ShopTokenStore,
)

logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    settings: Settings
    cache: RiskCache
    risk_client: FraudShieldClient
    token_store: ShopTokenStore

    def shopify_for(self, shop: str, access_token: str) -> ShopifyClient:
        return ShopifyClient(
            shop,
            access_token,
            api_version=self.settings.SHOPIFY_API_VERSION,
            timeout=self.settings.SHOPIFY_TIMEOUT,
        )

    def risk_client_for(self, api_key: Optional[str]) -> FraudShieldClient:
        """Cliente con otra API key (prueba de conexión desde el admin).

        Comparte la sesión HTTP del cliente principal; la key viaja por request.
        """
        if not api_key:
            return self.risk_client
        return FraudShieldClient(
            api_key,
            api_url=self.risk_client.api_url,
            cache=RiskCache(self.settings.RISK_CACHE_TTL),
            thresholds=self.risk_client.thresholds,
            timeout=self.risk_client.timeout,
            session=self.risk_client.session,
        )

    def order_checker(self, shopify: ShopifyClient) -> OrderChecker:
        return OrderChecker(
            self.risk_client,
            shopify,
            BehaviorFlags.from_settings(self.settings),
        )

    async def shopify_for_shop(self, shop: Optional[str]) -> Optional[ShopifyClient]:
        if not shop:
            return None
        token = await self.token_store.get(shop)
        if not token:
            return None
        return self.shopify_for(shop, token)


def build_container(settings: Settings) -> AppContainer:
    cache = RiskCache(ttl_seconds=settings.RISK_CACHE_TTL)
    risk_client = FraudShieldClient(
        settings.FRAUDSHIELD_API_KEY,
        api_url=settings.FRAUDSHIELD_API_URL,
        cache=cache,
        thresholds=settings.thresholds,
        timeout=settings.FRAUDSHIELD_TIMEOUT,
    )

    if settings.REDIS_URL:
        token_store = RedisShopTokenStore.from_url(settings.REDIS_URL)
    else:
        token_store = InMemoryShopTokenStore()

    return AppContainer(
        settings=settings,
        cache=cache,
        risk_client=risk_client,
        token_store=token_store,
    )


async def seed_token_store(container: AppContainer) -> None:
    s = container.settings
    if s.SHOPIFY_SHOP_DOMAIN and s.SHOPIFY_ACCESS_TOKEN:
        await container.token_store.save(s.SHOPIFY_SHOP_DOMAIN, s.SHOPIFY_ACCESS_TOKEN)
        logger.info(f"🔑 Token cargado para {s.SHOPIFY_SHOP_DOMAIN}")


def get_container(request: Request) -> AppContainer:
    return request.app.state.container
