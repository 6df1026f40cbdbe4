import json
import unittest
from unittest.mock import MagicMock

import requests

from app.infra.shopify.client import ShopifyClient, ShopifyError, merge_tags, parse_tags


class FakeHttpResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.content = b"" if payload is None else json.dumps(payload).encode()

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


def make_client(*responses):
    session = MagicMock()
    session.request.side_effect = list(responses)
    return ShopifyClient("demo.myshopify.com", "shpat_x", timeout=7, session=session), session


class TestTagHelpers(unittest.TestCase):
    def test_parse_tags(self):
        self.assertEqual(parse_tags("a, b ,, c"), ["a", "b", "c"])
        self.assertEqual(parse_tags(None), [])

    def test_merge_dedupes(self):
        self.assertEqual(merge_tags(["a", "b"], ["b", "c", "c"]), ["a", "b", "c"])


class TestShopifyClient(unittest.TestCase):
    def test_add_order_tags_merges_existing(self):
        client, session = make_client(
            FakeHttpResponse(200, {"order": {"id": 1, "tags": "VIP, FraudShieldBD"}}),
            FakeHttpResponse(200, {"order": {"id": 1}}),
        )

        client.add_order_tags(1, ["FraudShieldBD", "fsbd:safe"])

        method, url = session.request.call_args.args
        self.assertEqual(method, "PUT")
        self.assertEqual(url, "https://demo.myshopify.com/admin/api/2024-01/orders/1.json")
        self.assertEqual(
            session.request.call_args.kwargs["json"],
            {"order": {"id": 1, "tags": "VIP, FraudShieldBD, fsbd:safe"}},
        )
        self.assertEqual(session.request.call_args.kwargs["timeout"], 7)

    def test_add_order_note_appends(self):
        client, session = make_client(
            FakeHttpResponse(200, {"order": {"id": 1, "note": "old"}}),
            FakeHttpResponse(200, {"order": {"id": 1}}),
        )
        client.add_order_note(1, "new")
        self.assertEqual(
            session.request.call_args.kwargs["json"]["order"]["note"], "old\n\nnew"
        )

    def test_add_order_note_on_empty_note(self):
        client, session = make_client(
            FakeHttpResponse(200, {"order": {"id": 1, "note": None}}),
            FakeHttpResponse(200, {"order": {"id": 1}}),
        )
        client.add_order_note(1, "new")
        self.assertEqual(session.request.call_args.kwargs["json"]["order"]["note"], "new")

    def test_missing_order(self):
        client, _ = make_client(FakeHttpResponse(404, {"errors": "Not Found"}))
        self.assertIsNone(client.get_order(1))

    def test_server_error_raises(self):
        client, _ = make_client(FakeHttpResponse(500, {"errors": "boom"}))
        with self.assertRaises(ShopifyError):
            client.get_order(1)

    def test_transport_error_raises(self):
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("refused")
        client = ShopifyClient("demo.myshopify.com", "shpat_x", session=session)
        with self.assertRaises(ShopifyError):
            client.set_order_metafield(1, "checked", "yes")

    def test_metafields_are_decoded(self):
        client, session = make_client(FakeHttpResponse(200, {"metafields": [
            {"key": "checked", "value": "yes", "type": "single_line_text_field"},
            {"key": "couriers", "value": '{"pathao": {"name": "Pathao"}}', "type": "json"},
            {"key": "broken", "value": "{not json", "type": "json"},
        ]}))

        meta = client.get_order_metafields(1)

        self.assertEqual(meta["checked"], "yes")
        self.assertEqual(meta["couriers"], {"pathao": {"name": "Pathao"}})
        self.assertEqual(meta["broken"], "{not json")
        self.assertEqual(session.request.call_args.kwargs["params"], {"namespace": "fraudshieldbd"})

    def test_register_webhook(self):
        client, session = make_client(FakeHttpResponse(201, {"webhook": {"id": 3}}))
        resp = client.register_webhook("orders/create", "https://app.test/webhooks/orders-create")
        self.assertEqual(resp, {"webhook": {"id": 3}})
        self.assertEqual(
            session.request.call_args.kwargs["json"]["webhook"]["topic"], "orders/create"
        )


if __name__ == "__main__":
    unittest.main()
