# app/domain/services/order_checker.py
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from app.domain.entities.risk import RiskCheckFailure, RiskCheckResult
from app.domain.services.order_annotator import AnnotationReport, OrderAnnotator
from app.domain.services.risk_classifier import tier_presentation

logger = logging.getLogger(__name__)

COD_KEYWORDS = ("cod", "cash on delivery", "cash_on_delivery", "manual", "কুরিয়ার")


class CheckOutcome(str, Enum):
    SKIPPED_DISABLED = "skipped_disabled"
    SKIPPED_NOT_COD = "skipped_not_cod"
    SKIPPED_NO_PHONE = "skipped_no_phone"
    ALREADY_CHECKED = "already_checked"
    ORDER_NOT_FOUND = "order_not_found"
    ANNOTATED = "annotated"
    ERROR_RECORDED = "error_recorded"


@dataclass(frozen=True)
class BehaviorFlags:
    auto_check_enabled: bool = True
    check_cod_only: bool = True
    auto_tag_orders: bool = True
    add_order_notes: bool = True

    @classmethod
    def from_settings(cls, settings) -> "BehaviorFlags":
        return cls(
            auto_check_enabled=settings.AUTO_CHECK_ENABLED,
            check_cod_only=settings.CHECK_COD_ONLY,
            auto_tag_orders=settings.AUTO_TAG_ORDERS,
            add_order_notes=settings.ADD_ORDER_NOTES,
        )


@dataclass(frozen=True)
class CheckReport:
    outcome: CheckOutcome
    order_id: Any = None
    result: Optional[RiskCheckResult] = None
    annotation: Optional[AnnotationReport] = None


def is_cod_order(order: dict) -> bool:
    gateway = (order.get("gateway") or "").lower()
    payment_method = " ".join(order.get("payment_gateway_names") or []).lower()
    return any(kw in gateway or kw in payment_method for kw in COD_KEYWORDS)


def extract_phone(order: dict) -> Optional[str]:
    """billing -> shipping -> customer -> order.phone; el primero no vacío."""
    for source in ("billing_address", "shipping_address", "customer"):
        phone = (order.get(source) or {}).get("phone")
        if phone:
            return phone
    return order.get("phone") or None


def _order_label(order: dict) -> str:
    return f"#{order.get('order_number') or order.get('id')}"


class OrderChecker:
    def __init__(self, risk_client, shopify, behavior: Optional[BehaviorFlags] = None):
        self.risk_client = risk_client
        self.shopify = shopify
        self.behavior = behavior or BehaviorFlags()
        self.annotator = OrderAnnotator(
            shopify,
            tag_orders=self.behavior.auto_tag_orders,
            add_notes=self.behavior.add_order_notes,
        )

    async def process_order(self, order: dict) -> CheckReport:
        """Flujo de orders/create."""
        order_id = order.get("id")
        label = _order_label(order)

        if not self.behavior.auto_check_enabled:
            logger.info(f"Auto-check desactivado, se omite la orden {label}")
            return CheckReport(CheckOutcome.SKIPPED_DISABLED, order_id)

        if self.behavior.check_cod_only and not is_cod_order(order):
            logger.info(f"La orden {label} no es COD, se omite")
            return CheckReport(CheckOutcome.SKIPPED_NOT_COD, order_id)

        phone = extract_phone(order)
        if not phone:
            logger.info(f"Sin teléfono para la orden {label}")
            return CheckReport(CheckOutcome.SKIPPED_NO_PHONE, order_id)

        logger.info(f"🔎 Verificando teléfono {phone} para la orden {label}")
        return await self._check_and_record(order_id, label, phone)

    async def process_updated_order(self, order: dict) -> CheckReport:
        """Flujo de orders/updated: solo si la orden aún no fue verificada."""
        order_id = order.get("id")
        meta = await asyncio.to_thread(self.shopify.get_order_metafields, order_id)
        if meta.get("checked") == "yes":
            logger.debug(f"La orden {_order_label(order)} ya fue verificada")
            return CheckReport(CheckOutcome.ALREADY_CHECKED, order_id)
        return await self.process_order(order)

    async def manual_check(self, order_id) -> CheckReport:
        """Re-verificación pedida por un operador: ignora los gates y limpia el cache."""
        order = await asyncio.to_thread(self.shopify.get_order, order_id)
        if not order:
            return CheckReport(CheckOutcome.ORDER_NOT_FOUND, order_id)

        phone = extract_phone(order)
        if not phone:
            return CheckReport(CheckOutcome.SKIPPED_NO_PHONE, order_id)

        self.risk_client.clear_cache(phone)
        return await self._check_and_record(order.get("id", order_id), _order_label(order), phone)

    async def _check_and_record(self, order_id, label: str, phone: str) -> CheckReport:
        result = await asyncio.to_thread(self.risk_client.check_phone, phone)

        if isinstance(result, RiskCheckFailure):
            logger.error(f"❌ Error de API para la orden {label}: {result.message}")
            annotation = await self.annotator.record_error(order_id, result.message)
            return CheckReport(CheckOutcome.ERROR_RECORDED, order_id, result, annotation)

        annotation = await self.annotator.annotate(order_id, result)
        p = tier_presentation(result.tier)
        logger.info(
            f"✅ Orden {label}: {p.icon} {p.label} "
            f"(Ratio: {result.summary.ratio}%)"
        )
        return CheckReport(CheckOutcome.ANNOTATED, order_id, result, annotation)
