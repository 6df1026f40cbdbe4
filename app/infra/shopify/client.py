# app/infra/shopify/client.py
import json
import logging
from typing import Any, Dict, Iterable, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

METAFIELD_NAMESPACE = "fraudshieldbd"
DEFAULT_API_VERSION = "2024-01"
DEFAULT_TIMEOUT = (5, 15)  # connect, read


class ShopifyError(Exception):
    """Fallo de una llamada al Admin API de Shopify."""


def make_session(access_token: str) -> requests.Session:
    s = requests.Session()
    s.headers.update({
        "X-Shopify-Access-Token": access_token,
        "Content-Type": "application/json",
    })
    retry = Retry(
        total=3, connect=3, read=3,
        backoff_factor=0.6,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods={"GET", "PUT"},
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    return s


def parse_tags(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [t.strip() for t in raw.split(",") if t.strip()]


def merge_tags(existing: Iterable[str], new_tags: Iterable[str]) -> List[str]:
    merged: List[str] = []
    for tag in list(existing) + list(new_tags):
        if tag not in merged:
            merged.append(tag)
    return merged


class ShopifyClient:
    """Cliente REST mínimo del Admin API (órdenes, metafields, webhooks)."""

    def __init__(
        self,
        shop: str,
        access_token: str,
        api_version: str = DEFAULT_API_VERSION,
        timeout=DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.shop = shop
        self.api_version = api_version
        self.base_url = f"https://{shop}/admin/api/{api_version}"
        self.timeout = timeout
        self.session = session or make_session(access_token)

    def _request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        kwargs.setdefault("timeout", self.timeout)
        url = f"{self.base_url}{endpoint}"
        try:
            resp = self.session.request(method, url, **kwargs)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise ShopifyError(f"{method} {endpoint} failed: {e}") from e

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            return {}

    def get(self, endpoint: str, params: Optional[dict] = None) -> Dict[str, Any]:
        return self._request("GET", endpoint, params=params)

    def post(self, endpoint: str, data: dict) -> Dict[str, Any]:
        return self._request("POST", endpoint, json=data)

    def put(self, endpoint: str, data: dict) -> Dict[str, Any]:
        return self._request("PUT", endpoint, json=data)

    # -----------------------------
    # Órdenes
    # -----------------------------

    def get_order(self, order_id) -> Optional[dict]:
        try:
            data = self.get(f"/orders/{order_id}.json")
        except ShopifyError as e:
            cause = e.__cause__
            if isinstance(cause, requests.HTTPError) and cause.response is not None \
                    and cause.response.status_code == 404:
                return None
            raise
        return data.get("order")

    def get_orders(self, **params) -> List[dict]:
        query = {"limit": 50, "status": "any", **params}
        return self.get("/orders.json", params=query).get("orders", [])

    def add_order_tags(self, order_id, new_tags: Iterable[str]) -> Optional[dict]:
        order = self.get_order(order_id)
        if not order:
            return None

        merged = merge_tags(parse_tags(order.get("tags")), new_tags)
        return self.put(
            f"/orders/{order_id}.json",
            {"order": {"id": order_id, "tags": ", ".join(merged)}},
        )

    def add_order_note(self, order_id, note: str) -> Optional[dict]:
        order = self.get_order(order_id)
        if not order:
            return None

        existing = order.get("note") or ""
        new_note = f"{existing}\n\n{note}" if existing else note
        return self.put(
            f"/orders/{order_id}.json",
            {"order": {"id": order_id, "note": new_note}},
        )

    # -----------------------------
    # Metafields
    # -----------------------------

    def set_order_metafield(
        self,
        order_id,
        key: str,
        value,
        value_type: str = "single_line_text_field",
    ) -> Dict[str, Any]:
        if isinstance(value, (dict, list)):
            value, value_type = json.dumps(value, ensure_ascii=False), "json"
        return self.post(
            f"/orders/{order_id}/metafields.json",
            {
                "metafield": {
                    "namespace": METAFIELD_NAMESPACE,
                    "key": key,
                    "value": str(value),
                    "type": value_type,
                }
            },
        )

    def get_order_metafields(self, order_id) -> Dict[str, Any]:
        data = self.get(
            f"/orders/{order_id}/metafields.json",
            params={"namespace": METAFIELD_NAMESPACE},
        )
        result: Dict[str, Any] = {}
        for mf in data.get("metafields", []):
            value = mf.get("value")
            if mf.get("type") == "json":
                try:
                    value = json.loads(value)
                except (TypeError, ValueError):
                    pass
            result[mf.get("key")] = value
        return result

    # -----------------------------
    # Webhooks
    # -----------------------------

    def register_webhook(self, topic: str, address: str) -> Dict[str, Any]:
        return self.post(
            "/webhooks.json",
            {"webhook": {"topic": topic, "address": address, "format": "json"}},
        )

    def list_webhooks(self) -> List[dict]:
        return self.get("/webhooks.json").get("webhooks", [])
