# app/infra/fraudshield/client.py
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

import requests
from urllib3.exceptions import ReadTimeoutError

from app.domain.entities.risk import (
    CourierStats,
    ErrorKind,
    ParcelStats,
    PhoneNumber,
    RateLimitInfo,
    RiskCheckFailure,
    RiskCheckResult,
    RiskCheckSuccess,
    Thresholds,
)
from app.domain.services.phone_service import normalize_phone
from app.domain.services.risk_classifier import classify
from app.infra.cache.risk_cache import RiskCache

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://fraudshield.bd/api/customer/check"
DEFAULT_TIMEOUT = 20.0
# Lecturas cortas para revisar el deadline entre bytes de un upstream lento
READ_CHUNK_SIZE = 1
CLIENT_VERSION = "1.0.0"
SOURCE_ID = "shopify-app"
PROBE_PHONE = "01700000000"

MSG_INVALID_PHONE = "ভ্যালিড বাংলাদেশি ফোন নম্বর দিন (01XXXXXXXXX)"
MSG_NO_API_KEY = "FraudShieldBD API Key সেট করা হয়নি।"
MSG_TIMEOUT = "FraudShieldBD সার্ভার থেকে রেসপন্স পেতে দেরি হচ্ছে।"


# ==========================================================
#  STATUS HTTP -> ErrorKind
# ==========================================================

_STATUS_KINDS: Dict[int, ErrorKind] = {
    400: ErrorKind.BAD_REQUEST,
    401: ErrorKind.UNAUTHORIZED,
    402: ErrorKind.NO_SUBSCRIPTION,
    403: ErrorKind.FORBIDDEN,
    429: ErrorKind.RATE_LIMITED,
    502: ErrorKind.UPSTREAM_ERROR,
    503: ErrorKind.SERVICE_UNAVAILABLE,
}


def error_kind_for_status(status_code: int) -> ErrorKind:
    """Mapeo total: cualquier código no documentado es UNKNOWN_API_ERROR."""
    return _STATUS_KINDS.get(status_code, ErrorKind.UNKNOWN_API_ERROR)


def error_message(kind: ErrorKind, status_code: int, upstream: str) -> str:
    if kind is ErrorKind.BAD_REQUEST:
        return f"ভ্যালিডেশন এরর: {upstream}"
    if kind is ErrorKind.UNAUTHORIZED:
        return "API Key ভুল বা ইনভ্যালিড। সঠিক API Key দিন।"
    if kind is ErrorKind.NO_SUBSCRIPTION:
        return "সাবস্ক্রিপশন নেই বা মেয়াদ শেষ। fraudshield.bd থেকে সাবস্ক্রাইব করুন।"
    if kind is ErrorKind.FORBIDDEN:
        return f"অ্যাক্সেস ব্লকড: {upstream}"
    if kind is ErrorKind.RATE_LIMITED:
        return f"লিমিট ওভার! {upstream}"
    if kind is ErrorKind.UPSTREAM_ERROR:
        return "কুরিয়ার API এরর। কিছুক্ষণ পর ট্রাই করুন।"
    if kind is ErrorKind.SERVICE_UNAVAILABLE:
        return "সার্ভিস সাময়িকভাবে বন্ধ। কিছুক্ষণ পর ট্রাই করুন।"
    return f"API Error ({status_code}): {upstream}"


def _as_int(value: Any) -> int:
    try:
        return int(float(value or 0))
    except (TypeError, ValueError):
        return 0


def _as_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _parcel_stats(data: Mapping[str, Any]) -> ParcelStats:
    return ParcelStats(
        total=_as_int(data.get("total_parcel")),
        success=_as_int(data.get("success_parcel")),
        cancelled=_as_int(data.get("cancelled_parcel")),
        ratio=_as_float(data.get("success_ratio")),
    )


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def parse_response(
    body: Mapping[str, Any],
    headers: Mapping[str, str],
    thresholds: Thresholds,
    now: Optional[datetime] = None,
) -> RiskCheckSuccess:
    # Cuerpos con forma inesperada se leen como vacíos, nunca revientan
    courier_data = _mapping(body.get("courierData"))
    summary = _parcel_stats(_mapping(courier_data.get("summary")))
    reports = body.get("reports")
    if not isinstance(reports, list):
        reports = []

    couriers: Dict[str, CourierStats] = {}
    for key, data in courier_data.items():
        if key == "summary" or not isinstance(data, Mapping):
            continue
        couriers[key] = CourierStats(
            name=data.get("name") or key,
            logo=data.get("logo") or "",
            stats=_parcel_stats(data),
        )

    rate_limit = RateLimitInfo(
        daily_limit=headers.get("x-daily-limit"),
        daily_remaining=headers.get("x-daily-remaining"),
        source_kind=headers.get("x-data-source") or "api",
        plan=headers.get("x-subscription-plan"),
    )

    return RiskCheckSuccess(
        summary=summary,
        tier=classify(summary.total, summary.ratio, thresholds),
        couriers=couriers,
        fraud_reports=tuple(reports),
        rate_limit=rate_limit,
        checked_at=now or datetime.now(timezone.utc),
    )


@dataclass(frozen=True)
class ConnectionTestResult:
    ok: bool
    status: str  # "success" | "unauthorized" | "no_subscription" | "error"
    message: str


@dataclass(frozen=True)
class RawReply:
    status_code: int
    headers: Mapping[str, str]
    body: Any  # JSON decodificado o None


# ==========================================================
#  CLIENTE
# ==========================================================

class FraudShieldClient:
    def __init__(
        self,
        api_key: str,
        api_url: str = DEFAULT_API_URL,
        cache: Optional[RiskCache] = None,
        thresholds: Optional[Thresholds] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api_key = api_key or ""
        self.api_url = api_url
        self.cache = cache if cache is not None else RiskCache()
        self.thresholds = thresholds or Thresholds()
        self.timeout = timeout
        self.session = session or requests.Session()
        self._clock = clock

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-Source": SOURCE_ID,
            "X-Plugin-Ver": CLIENT_VERSION,
        }

    def _post(self, phone: str) -> RawReply:
        """POST acotado por un deadline total de `timeout` segundos.

        El `timeout` de requests solo limita cada lectura del socket; el cuerpo
        se lee en streaming y se corta en cuanto se pasa el deadline. Lanza
        requests.Timeout en ese caso.
        """
        deadline = self._clock() + self.timeout
        response = self.session.post(
            self.api_url,
            json={"phone": phone},
            headers=self._headers(),
            timeout=(self.timeout, self.timeout),
            stream=True,
        )
        try:
            chunks = []
            for chunk in response.iter_content(chunk_size=READ_CHUNK_SIZE):
                if self._clock() >= deadline:
                    raise requests.Timeout(
                        f"FraudShieldBD no respondió en {self.timeout}s"
                    )
                chunks.append(chunk)
        except requests.ConnectionError as e:
            # requests envuelve el read timeout del cuerpo como ConnectionError
            if e.args and isinstance(e.args[0], ReadTimeoutError):
                raise requests.Timeout(str(e)) from e
            raise
        finally:
            response.close()

        try:
            body = json.loads(b"".join(chunks))
        except ValueError:
            body = None
        return RawReply(response.status_code, response.headers, body)

    def check_phone(self, raw_phone) -> RiskCheckResult:
        phone = normalize_phone(raw_phone)
        if phone is None:
            return RiskCheckFailure(ErrorKind.INVALID_PHONE, MSG_INVALID_PHONE)

        if not self.api_key:
            return RiskCheckFailure(ErrorKind.NO_CREDENTIAL, MSG_NO_API_KEY)

        return self.cache.get_or_load(phone, lambda: self._fetch(phone))

    def _fetch(self, phone: PhoneNumber) -> RiskCheckResult:
        logger.info(f"🔄 Consultando FraudShieldBD para {phone}")
        try:
            reply = self._post(phone.value)
        except requests.Timeout:
            logger.warning(f"⏱️ FraudShieldBD timeout para {phone}")
            return RiskCheckFailure(ErrorKind.TIMEOUT, MSG_TIMEOUT)
        except requests.RequestException as e:
            logger.error(f"❌ Error de conexión con FraudShieldBD: {e}")
            return RiskCheckFailure(
                ErrorKind.CONNECTION_ERROR,
                f"FraudShieldBD সার্ভারে কানেক্ট হতে পারছে না: {e}",
            )

        if reply.status_code != 200:
            return self._error_result(reply.status_code, reply.body)

        if not isinstance(reply.body, dict):
            logger.error("❌ FraudShieldBD devolvió 200 sin JSON válido")
            return RiskCheckFailure(
                ErrorKind.UNKNOWN_API_ERROR,
                "API Error (200): invalid response body",
            )

        result = parse_response(reply.body, reply.headers, self.thresholds)
        logger.info(
            f"✅ {phone}: {result.tier.value} "
            f"(ratio {result.summary.ratio}%, {result.summary.total} parcels)"
        )
        return result

    def _error_result(self, status_code: int, body) -> RiskCheckFailure:
        upstream = "Unknown error"
        if isinstance(body, dict):
            upstream = body.get("message") or body.get("error") or upstream

        kind = error_kind_for_status(status_code)
        logger.warning(f"⚠️ FraudShieldBD respondió {status_code} ({kind.value}): {upstream}")
        return RiskCheckFailure(kind, error_message(kind, status_code, upstream))

    def test_connection(self) -> ConnectionTestResult:
        """Un solo request de prueba para validar la API key; no usa el cache."""
        if not self.api_key:
            return ConnectionTestResult(False, "error", "API Key সেট করা হয়নি।")

        try:
            reply = self._post(PROBE_PHONE)
        except requests.RequestException as e:
            return ConnectionTestResult(False, "error", f"কানেকশন ব্যর্থ: {e}")

        if reply.status_code == 200:
            return ConnectionTestResult(True, "success", "✅ কানেকশন সফল!")
        if reply.status_code == 401:
            return ConnectionTestResult(False, "unauthorized", "❌ API Key ভুল বা ইনভ্যালিড।")
        if reply.status_code == 402:
            return ConnectionTestResult(False, "no_subscription", "⚠️ সাবস্ক্রিপশন নেই বা মেয়াদ শেষ।")

        message = f"Error: {reply.status_code}"
        if isinstance(reply.body, dict) and reply.body.get("message"):
            message = reply.body["message"]
        return ConnectionTestResult(False, "error", message)

    def clear_cache(self, raw_phone=None) -> None:
        if raw_phone is None:
            self.cache.invalidate()
            return
        phone = normalize_phone(raw_phone)
        if phone is not None:
            self.cache.invalidate(phone)
