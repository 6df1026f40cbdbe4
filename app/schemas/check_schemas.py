# app/schemas/check_schemas.py
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class TestConnectionRequest(BaseModel):
    api_key: Optional[str] = Field(None, description="API key a probar; vacío usa la configurada")


class ConnectionTestResponse(BaseModel):
    success: bool
    status: str
    message: str


class CheckPhoneRequest(BaseModel):
    phone: Optional[str] = Field(None, example="01712345678")


class CheckOrderRequest(BaseModel):
    order_id: Optional[Union[int, str]] = Field(None, example=5123456789)
    shop: Optional[str] = Field(None, example="my-store.myshopify.com")


class CheckOrderResponse(BaseModel):
    success: bool
    outcome: str
    order_id: Optional[Union[int, str]] = None
    message: Optional[str] = None
    result: Optional[Dict[str, Any]] = None


class ClearCacheRequest(BaseModel):
    phone: Optional[str] = None


class ShopRequest(BaseModel):
    shop: Optional[str] = None


class OrderStatusResponse(BaseModel):
    checked: bool
    risk_level: Optional[str] = None
    risk_label: Optional[str] = None
    total_parcel: Optional[int] = None
    success_parcel: Optional[int] = None
    cancel_parcel: Optional[int] = None
    success_ratio: Optional[float] = None
    report_count: Optional[int] = None
    couriers: Optional[Dict[str, Any]] = None
    checked_at: Optional[str] = None
    error: Optional[str] = None


class WebhookListResponse(BaseModel):
    shop: str
    webhooks: List[Dict[str, Any]]
