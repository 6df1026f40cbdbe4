# app/api/v1/endpoints/admin.py
import asyncio
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request

from app.api.deps import AppContainer, get_container
from app.core.config import settings
from app.core.rate_limit import limiter
from app.domain.entities.risk import RiskCheckResult, RiskCheckSuccess
from app.domain.services.order_checker import CheckOutcome
from app.domain.services.risk_classifier import tier_presentation
from app.infra.shopify.client import ShopifyError
from app.schemas.check_schemas import (
    CheckOrderRequest,
    CheckOrderResponse,
    CheckPhoneRequest,
    ClearCacheRequest,
    ConnectionTestResponse,
    OrderStatusResponse,
    ShopRequest,
    TestConnectionRequest,
    WebhookListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin"])

WEBHOOK_TOPICS = {
    "orders/create": "/webhooks/orders-create",
    "orders/updated": "/webhooks/orders-updated",
}

_OUTCOME_MESSAGES = {
    CheckOutcome.ORDER_NOT_FOUND: "Order not found",
    CheckOutcome.SKIPPED_NO_PHONE: "No phone number found",
}


def risk_result_payload(result: RiskCheckResult) -> Dict[str, Any]:
    payload = result.to_dict()
    if isinstance(result, RiskCheckSuccess):
        p = tier_presentation(result.tier)
        payload.update(risk_label=p.label, risk_icon=p.icon, risk_color=p.color)
    return payload


async def _require_shopify(container: AppContainer, shop):
    if not shop:
        raise HTTPException(status_code=400, detail="Shop parameter required.")
    shopify = await container.shopify_for_shop(shop)
    if shopify is None:
        raise HTTPException(status_code=401, detail="Shop not authenticated.")
    return shopify


@router.post("/test-connection", response_model=ConnectionTestResponse)
@limiter.limit(settings.RATE_LIMIT)
async def test_connection(
    request: Request,
    data: TestConnectionRequest,
    container: AppContainer = Depends(get_container),
):
    client = container.risk_client_for(data.api_key)
    result = await asyncio.to_thread(client.test_connection)
    return ConnectionTestResponse(success=result.ok, status=result.status, message=result.message)


@router.post("/check-phone")
@limiter.limit(settings.RATE_LIMIT)
async def check_phone(
    request: Request,
    data: CheckPhoneRequest,
    container: AppContainer = Depends(get_container),
):
    if not data.phone:
        raise HTTPException(status_code=400, detail="ফোন নম্বর দিন।")

    result = await asyncio.to_thread(container.risk_client.check_phone, data.phone)
    return risk_result_payload(result)


@router.post("/check-order", response_model=CheckOrderResponse)
@limiter.limit(settings.RATE_LIMIT)
async def check_order(
    request: Request,
    data: CheckOrderRequest,
    container: AppContainer = Depends(get_container),
):
    if not data.order_id or not data.shop:
        raise HTTPException(status_code=400, detail="Order ID and shop required.")

    shopify = await _require_shopify(container, data.shop)
    try:
        report = await container.order_checker(shopify).manual_check(data.order_id)
    except ShopifyError as e:
        raise HTTPException(status_code=502, detail=f"Error consultando Shopify: {e}")

    return CheckOrderResponse(
        success=report.outcome is CheckOutcome.ANNOTATED,
        outcome=report.outcome.value,
        order_id=report.order_id,
        message=_OUTCOME_MESSAGES.get(report.outcome)
        or (report.result.message if report.result is not None and not report.result.success else None),
        result=risk_result_payload(report.result) if report.result is not None else None,
    )


@router.get("/order-status/{order_id}", response_model=OrderStatusResponse)
@limiter.limit(settings.RATE_LIMIT)
async def order_status(
    request: Request,
    order_id: str,
    shop: str | None = None,
    container: AppContainer = Depends(get_container),
):
    shopify = await _require_shopify(container, shop)
    try:
        meta = await asyncio.to_thread(shopify.get_order_metafields, order_id)
    except ShopifyError as e:
        raise HTTPException(status_code=500, detail=str(e))

    if not meta.get("checked"):
        return OrderStatusResponse(checked=False)

    return OrderStatusResponse(
        checked=True,
        risk_level=meta.get("risk_level"),
        risk_label=meta.get("risk_label"),
        total_parcel=meta.get("total_parcel"),
        success_parcel=meta.get("success_parcel"),
        cancel_parcel=meta.get("cancel_parcel"),
        success_ratio=meta.get("success_ratio"),
        report_count=meta.get("report_count"),
        couriers=meta.get("couriers"),
        checked_at=meta.get("checked_at"),
        error=meta.get("error"),
    )


@router.post("/cache/clear")
@limiter.limit(settings.RATE_LIMIT)
async def clear_cache(
    request: Request,
    data: ClearCacheRequest,
    container: AppContainer = Depends(get_container),
):
    container.risk_client.clear_cache(data.phone or None)
    return {"cleared": data.phone or "all", "entries": len(container.cache)}


@router.get("/webhooks", response_model=WebhookListResponse)
@limiter.limit(settings.RATE_LIMIT)
async def list_webhooks(
    request: Request,
    shop: str | None = None,
    container: AppContainer = Depends(get_container),
):
    shopify = await _require_shopify(container, shop)
    try:
        webhooks = await asyncio.to_thread(shopify.list_webhooks)
    except ShopifyError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return WebhookListResponse(shop=shop, webhooks=webhooks)


@router.post("/webhooks/register", response_model=WebhookListResponse)
@limiter.limit(settings.RATE_LIMIT)
async def register_webhooks(
    request: Request,
    data: ShopRequest,
    container: AppContainer = Depends(get_container),
):
    shopify = await _require_shopify(container, data.shop)
    host = container.settings.APP_HOST.rstrip("/")
    registered = []
    try:
        for topic, path in WEBHOOK_TOPICS.items():
            resp = await asyncio.to_thread(shopify.register_webhook, topic, f"{host}{path}")
            registered.append(resp.get("webhook") or {"topic": topic})
    except ShopifyError as e:
        raise HTTPException(status_code=502, detail=f"Error registrando webhooks: {e}")

    logger.info(f"✅ Webhooks registrados para: {data.shop}")
    return WebhookListResponse(shop=data.shop, webhooks=registered)
