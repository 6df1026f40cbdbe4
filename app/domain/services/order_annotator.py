# app/domain/services/order_annotator.py
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Tuple

from app.domain.entities.risk import RiskCheckSuccess
from app.domain.services.risk_classifier import tier_presentation

logger = logging.getLogger(__name__)

BRAND_TAG = "FraudShieldBD"
REPORTED_TAG = "fsbd:reported"


def format_number(value: float) -> str:
    """80.0 -> "80", 66.67 -> "66.67"."""
    value = float(value)
    return str(int(value)) if value.is_integer() else str(value)


def risk_tags(result: RiskCheckSuccess) -> List[str]:
    tags = [BRAND_TAG, f"fsbd:{result.tier.value}"]
    if result.fraud_report_count > 0:
        tags.append(REPORTED_TAG)
    return tags


def result_metafields(result: RiskCheckSuccess) -> List[Tuple[str, Any, str]]:
    s = result.summary
    text = "single_line_text_field"
    return [
        ("checked", "yes", text),
        ("risk_level", result.tier.value, text),
        ("risk_label", tier_presentation(result.tier).label, text),
        ("total_parcel", str(s.total), "number_integer"),
        ("success_parcel", str(s.success), "number_integer"),
        ("cancel_parcel", str(s.cancelled), "number_integer"),
        ("success_ratio", format_number(s.ratio), "number_decimal"),
        ("report_count", str(result.fraud_report_count), "number_integer"),
        ("couriers", {k: c.to_dict() for k, c in result.couriers.items()}, "json"),
        ("checked_at", result.checked_at.isoformat(), text),
    ]


def build_order_note(result: RiskCheckSuccess) -> str:
    p = tier_presentation(result.tier)
    s = result.summary

    lines = [
        f"🛡️ FraudShieldBD: {p.icon} {p.label} (রেশিও: {format_number(s.ratio)}%)",
        f"📦 Total: {s.total} | ✅ Success: {s.success} | ❌ Cancel: {s.cancelled}",
    ]
    if result.fraud_report_count > 0:
        lines.append(f"🚨 ফ্রড রিপোর্ট: {result.fraud_report_count} টি")

    if result.couriers:
        lines.append("")
        lines.append("📋 কুরিয়ার ব্রেকডাউন:")
        for c in result.couriers.values():
            cs = c.stats
            lines.append(
                f"  • {c.name}: {cs.total} (✅{cs.success} ❌{cs.cancelled}) "
                f"{format_number(cs.ratio)}%"
            )
    return "\n".join(lines)


@dataclass
class AnnotationReport:
    order_id: Any
    failed: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class OrderAnnotator:
    """
    Escribe el resultado sobre la orden: tags, metafields y nota.
    Cada escritura es independiente; un fallo se registra y no frena al resto.
    """

    def __init__(self, shopify, tag_orders: bool = True, add_notes: bool = True):
        self.shopify = shopify
        self.tag_orders = tag_orders
        self.add_notes = add_notes

    async def annotate(self, order_id, result: RiskCheckSuccess) -> AnnotationReport:
        report = AnnotationReport(order_id=order_id)

        # 1) Tags
        if self.tag_orders:
            try:
                await asyncio.to_thread(self.shopify.add_order_tags, order_id, risk_tags(result))
            except Exception as e:
                logger.error(f"❌ No se pudo etiquetar la orden {order_id}: {e}")
                report.failed.append("tags")

        # 2) Metafields (concurrentes)
        report.failed.extend(
            await self._write_metafields(order_id, result_metafields(result))
        )

        # 3) Nota (se agrega al final, nunca se sobrescribe)
        if self.add_notes:
            try:
                await asyncio.to_thread(
                    self.shopify.add_order_note, order_id, build_order_note(result)
                )
            except Exception as e:
                logger.error(f"❌ No se pudo agregar la nota a la orden {order_id}: {e}")
                report.failed.append("note")

        return report

    async def record_error(self, order_id, message: str) -> AnnotationReport:
        fields = [
            ("checked", "error", "single_line_text_field"),
            ("error", message, "single_line_text_field"),
            ("checked_at", datetime.now(timezone.utc).isoformat(), "single_line_text_field"),
        ]
        report = AnnotationReport(order_id=order_id)
        report.failed.extend(await self._write_metafields(order_id, fields))
        return report

    async def _write_metafields(self, order_id, fields) -> List[str]:
        outcomes = await asyncio.gather(
            *(
                asyncio.to_thread(self.shopify.set_order_metafield, order_id, key, value, value_type)
                for key, value, value_type in fields
            ),
            return_exceptions=True,
        )

        failed = []
        for (key, _, _), outcome in zip(fields, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"❌ Metafield '{key}' falló para la orden {order_id}: {outcome}")
                failed.append(f"metafield:{key}")
        return failed
