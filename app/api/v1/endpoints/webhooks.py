# app/api/v1/endpoints/webhooks.py
import json
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from app.api.deps import AppContainer, get_container
from app.core.security import verify_shopify_webhook
from app.infra.tasks import run_detached

logger = logging.getLogger(__name__)

SHOP_HEADER = "X-Shopify-Shop-Domain"

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _parse_order(raw_body: bytes) -> dict:
    try:
        data = json.loads(raw_body)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


async def _process_created(container: AppContainer, shop: str, order: dict) -> None:
    shopify = await container.shopify_for_shop(shop)
    if shopify is None:
        logger.error(f"Sin access token para la tienda: {shop}")
        return
    await container.order_checker(shopify).process_order(order)


async def _process_updated(container: AppContainer, shop: str, order: dict) -> None:
    shopify = await container.shopify_for_shop(shop)
    if shopify is None:
        return
    await container.order_checker(shopify).process_updated_order(order)


@router.post("/orders-create")
async def orders_create(
    request: Request,
    background_tasks: BackgroundTasks,
    raw_body: bytes = Depends(verify_shopify_webhook),
    container: AppContainer = Depends(get_container),
):
    # Shopify espera el 200 en pocos segundos: se responde ya y se procesa después
    order = _parse_order(raw_body)
    shop = request.headers.get(SHOP_HEADER)
    logger.info(f"📦 Webhook de nueva orden: #{order.get('order_number')} de {shop}")

    background_tasks.add_task(
        run_detached,
        f"orders-create #{order.get('order_number')}",
        _process_created,
        container,
        shop,
        order,
    )
    return {"received": True}


@router.post("/orders-updated")
async def orders_updated(
    request: Request,
    background_tasks: BackgroundTasks,
    raw_body: bytes = Depends(verify_shopify_webhook),
    container: AppContainer = Depends(get_container),
):
    order = _parse_order(raw_body)
    shop = request.headers.get(SHOP_HEADER)

    background_tasks.add_task(
        run_detached,
        f"orders-updated #{order.get('order_number')}",
        _process_updated,
        container,
        shop,
        order,
    )
    return {"received": True}
