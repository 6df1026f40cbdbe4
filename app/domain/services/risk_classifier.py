# app/domain/services/risk_classifier.py
from dataclasses import dataclass

from app.domain.entities.risk import RiskTier, Thresholds

DEFAULT_THRESHOLDS = Thresholds()


@dataclass(frozen=True)
class TierPresentation:
    label: str
    icon: str
    color: str


_PRESENTATION = {
    RiskTier.UNKNOWN: TierPresentation("অজানা", "❓", "#6b7280"),
    RiskTier.HIGH: TierPresentation("হাই রিস্ক", "⛔", "#dc2626"),
    RiskTier.MEDIUM: TierPresentation("মিডিয়াম রিস্ক", "⚠️", "#d97706"),
    RiskTier.SAFE: TierPresentation("সেফ", "✅", "#16a34a"),
}


def classify(
    total_parcels: int,
    success_ratio: float,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> RiskTier:
    """
    Cortes de riesgo, evaluados en orden:
      - sin historial          -> UNKNOWN
      - ratio < thresholds.low  -> HIGH
      - ratio < thresholds.high -> MEDIUM
      - resto                   -> SAFE
    """
    if total_parcels == 0:
        return RiskTier.UNKNOWN
    if success_ratio < thresholds.low:
        return RiskTier.HIGH
    if success_ratio < thresholds.high:
        return RiskTier.MEDIUM
    return RiskTier.SAFE


def tier_presentation(tier: RiskTier) -> TierPresentation:
    return _PRESENTATION[tier]
