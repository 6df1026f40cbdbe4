# app/domain/entities/risk.py
import copy
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union


PHONE_PATTERN = re.compile(r"^01[3-9]\d{8}$")


@dataclass(frozen=True)
class PhoneNumber:
    """Local mobile number, always 11 digits (01[3-9]XXXXXXXX)."""

    value: str

    def __post_init__(self):
        if not isinstance(self.value, str) or not PHONE_PATTERN.match(self.value):
            raise ValueError(f"invalid phone number: {self.value!r}")

    def __str__(self) -> str:
        return self.value


class RiskTier(str, Enum):
    UNKNOWN = "unknown"
    HIGH = "high"
    MEDIUM = "medium"
    SAFE = "safe"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    RiskTier.UNKNOWN: 0,
    RiskTier.SAFE: 1,
    RiskTier.MEDIUM: 2,
    RiskTier.HIGH: 3,
}


class ErrorKind(str, Enum):
    INVALID_PHONE = "invalid_phone"
    NO_CREDENTIAL = "no_api_key"
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"
    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    NO_SUBSCRIPTION = "no_subscription"
    FORBIDDEN = "forbidden"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_ERROR = "external_error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    UNKNOWN_API_ERROR = "api_error"


@dataclass(frozen=True)
class Thresholds:
    # ratio < low -> high risk, ratio < high -> medium risk
    low: float = 50
    high: float = 70


@dataclass(frozen=True)
class ParcelStats:
    total: int = 0
    success: int = 0
    cancelled: int = 0
    ratio: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_parcel": self.total,
            "success_parcel": self.success,
            "cancelled_parcel": self.cancelled,
            "success_ratio": self.ratio,
        }


@dataclass(frozen=True)
class CourierStats:
    name: str
    logo: str = ""
    stats: ParcelStats = field(default_factory=ParcelStats)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "logo": self.logo, **self.stats.to_dict()}


@dataclass(frozen=True)
class RateLimitInfo:
    daily_limit: Optional[str] = None
    daily_remaining: Optional[str] = None
    source_kind: str = "api"
    plan: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "daily_limit": self.daily_limit,
            "daily_remaining": self.daily_remaining,
            "data_source": self.source_kind,
            "plan": self.plan,
        }


@dataclass(frozen=True)
class RiskCheckSuccess:
    summary: ParcelStats
    tier: RiskTier
    couriers: Mapping[str, CourierStats]
    fraud_reports: Tuple[Mapping[str, Any], ...]
    rate_limit: RateLimitInfo
    checked_at: datetime
    served_from_cache: bool = False

    success = True

    def __post_init__(self):
        # El resultado vive en el cache compartido: copias privadas de solo lectura
        object.__setattr__(self, "couriers", MappingProxyType(dict(self.couriers or {})))
        object.__setattr__(
            self,
            "fraud_reports",
            tuple(
                MappingProxyType(copy.deepcopy(dict(r))) if isinstance(r, Mapping) else r
                for r in self.fraud_reports or ()
            ),
        )

    @property
    def fraud_report_count(self) -> int:
        return len(self.fraud_reports)

    def from_cache(self) -> "RiskCheckSuccess":
        return replace(self, served_from_cache=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "summary": self.summary.to_dict(),
            "risk_level": self.tier.value,
            "couriers": {k: c.to_dict() for k, c in self.couriers.items()},
            "reports": [
                copy.deepcopy(dict(r)) if isinstance(r, Mapping) else r
                for r in self.fraud_reports
            ],
            "report_count": self.fraud_report_count,
            "rate_info": self.rate_limit.to_dict(),
            "checked_at": self.checked_at.isoformat(),
            "from_cache": self.served_from_cache,
        }


@dataclass(frozen=True)
class RiskCheckFailure:
    kind: ErrorKind
    message: str

    success = False

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.kind.value, "message": self.message}


RiskCheckResult = Union[RiskCheckSuccess, RiskCheckFailure]
