import unittest
from unittest.mock import MagicMock

from app.domain.entities.risk import ErrorKind, RiskTier, Thresholds
from app.domain.services.order_checker import (
    BehaviorFlags,
    CheckOutcome,
    OrderChecker,
    extract_phone,
    is_cod_order,
)
from app.infra.cache.risk_cache import RiskCache
from app.infra.fraudshield.client import FraudShieldClient
from fakes import DummyResponse, FakeShopify, fraudshield_body


def cod_order(**overrides):
    order = {
        "id": 501,
        "order_number": 1501,
        "gateway": "cod",
        "payment_gateway_names": ["Cash on Delivery (COD)"],
        "shipping_address": {"phone": "01712345678"},
        "tags": "",
        "note": None,
    }
    order.update(overrides)
    return order


def make_checker(response, orders=(), behavior=None, metafields=None):
    session = MagicMock()
    session.post.return_value = response
    risk_client = FraudShieldClient(
        "secret-key",
        api_url="https://fraudshield.test/check",
        cache=RiskCache(),
        thresholds=Thresholds(50, 70),
        session=session,
    )
    shop = FakeShopify(orders=orders)
    for order_id, meta in (metafields or {}).items():
        shop.metafields[order_id].update(meta)
    checker = OrderChecker(risk_client, shop, behavior or BehaviorFlags())
    return checker, shop, session


class TestOrderHelpers(unittest.TestCase):
    def test_cod_detection(self):
        self.assertTrue(is_cod_order({"gateway": "Cash on Delivery (COD)"}))
        self.assertTrue(is_cod_order({"gateway": "", "payment_gateway_names": ["manual"]}))
        self.assertTrue(is_cod_order({"payment_gateway_names": ["bogus", "cash_on_delivery"]}))
        self.assertTrue(is_cod_order({"gateway": "কুরিয়ার পেমেন্ট"}))
        self.assertFalse(is_cod_order({"gateway": "shopify_payments", "payment_gateway_names": ["bkash"]}))
        self.assertFalse(is_cod_order({}))

    def test_phone_priority(self):
        order = {
            "billing_address": {"phone": ""},
            "shipping_address": {"phone": "01812345678"},
            "customer": {"phone": "01912345678"},
            "phone": "01512345678",
        }
        self.assertEqual(extract_phone(order), "01812345678")

        order["shipping_address"] = None
        self.assertEqual(extract_phone(order), "01912345678")

        order["customer"] = {}
        self.assertEqual(extract_phone(order), "01512345678")

        order["billing_address"] = {"phone": "01312345678"}
        self.assertEqual(extract_phone(order), "01312345678")

        self.assertIsNone(extract_phone({}))


class TestProcessOrder(unittest.IsolatedAsyncioTestCase):
    async def test_safe_customer_is_annotated(self):
        order = cod_order()
        checker, shop, session = make_checker(
            DummyResponse(200, fraudshield_body(total=20, success=16, cancelled=4, ratio=80)),
            orders=[order],
        )

        report = await checker.process_order(order)

        self.assertIs(report.outcome, CheckOutcome.ANNOTATED)
        self.assertIs(report.result.tier, RiskTier.SAFE)
        self.assertIn("fsbd:safe", shop.tags(501))
        self.assertIn("FraudShieldBD", shop.tags(501))
        self.assertNotIn("fsbd:reported", shop.tags(501))
        self.assertEqual(shop.metafields[501]["checked"], "yes")
        self.assertEqual(shop.metafields[501]["success_ratio"], "80")
        self.assertIn("FraudShieldBD", shop.orders[501]["note"])
        self.assertEqual(session.post.call_args.kwargs["json"], {"phone": "01712345678"})

    async def test_no_subscription_records_error_only(self):
        order = cod_order()
        checker, shop, _ = make_checker(
            DummyResponse(402, {"message": "subscription expired"}),
            orders=[order],
        )

        report = await checker.process_order(order)

        self.assertIs(report.outcome, CheckOutcome.ERROR_RECORDED)
        self.assertIs(report.result.kind, ErrorKind.NO_SUBSCRIPTION)
        self.assertEqual(shop.metafields[501]["checked"], "error")
        self.assertTrue(shop.metafields[501]["error"])
        self.assertEqual(shop.orders[501]["tags"], "")
        self.assertIsNone(shop.orders[501]["note"])

    async def test_disabled(self):
        order = cod_order()
        checker, shop, session = make_checker(
            DummyResponse(200, fraudshield_body()),
            orders=[order],
            behavior=BehaviorFlags(auto_check_enabled=False),
        )
        report = await checker.process_order(order)
        self.assertIs(report.outcome, CheckOutcome.SKIPPED_DISABLED)
        session.post.assert_not_called()

    async def test_non_cod_skipped_only_in_cod_mode(self):
        order = cod_order(gateway="shopify_payments", payment_gateway_names=["shopify_payments"])
        checker, _, session = make_checker(DummyResponse(200, fraudshield_body()), orders=[order])
        report = await checker.process_order(order)
        self.assertIs(report.outcome, CheckOutcome.SKIPPED_NOT_COD)
        session.post.assert_not_called()

        checker, _, session = make_checker(
            DummyResponse(200, fraudshield_body()),
            orders=[order],
            behavior=BehaviorFlags(check_cod_only=False),
        )
        report = await checker.process_order(order)
        self.assertIs(report.outcome, CheckOutcome.ANNOTATED)

    async def test_no_phone(self):
        order = cod_order(shipping_address={})
        checker, shop, session = make_checker(DummyResponse(200, fraudshield_body()), orders=[order])
        report = await checker.process_order(order)
        self.assertIs(report.outcome, CheckOutcome.SKIPPED_NO_PHONE)
        session.post.assert_not_called()
        self.assertEqual(shop.metafields[501], {})

    async def test_invalid_phone_is_recorded_as_error(self):
        order = cod_order(shipping_address={"phone": "12345"})
        checker, shop, session = make_checker(DummyResponse(200, fraudshield_body()), orders=[order])
        report = await checker.process_order(order)
        self.assertIs(report.outcome, CheckOutcome.ERROR_RECORDED)
        self.assertIs(report.result.kind, ErrorKind.INVALID_PHONE)
        session.post.assert_not_called()

    async def test_reported_customer_gets_reported_tag(self):
        order = cod_order()
        checker, shop, _ = make_checker(
            DummyResponse(200, fraudshield_body(ratio=30, success=6, cancelled=14, reports=[{"id": 9}])),
            orders=[order],
        )
        await checker.process_order(order)
        self.assertIn("fsbd:high", shop.tags(501))
        self.assertIn("fsbd:reported", shop.tags(501))


class TestUpdatedOrder(unittest.IsolatedAsyncioTestCase):
    async def test_already_checked_stops_without_risk_call(self):
        order = cod_order()
        checker, _, session = make_checker(
            DummyResponse(200, fraudshield_body()),
            orders=[order],
            metafields={501: {"checked": "yes"}},
        )
        report = await checker.process_updated_order(order)
        self.assertIs(report.outcome, CheckOutcome.ALREADY_CHECKED)
        session.post.assert_not_called()

    async def test_previous_error_is_retried(self):
        order = cod_order()
        checker, shop, session = make_checker(
            DummyResponse(200, fraudshield_body()),
            orders=[order],
            metafields={501: {"checked": "error"}},
        )
        report = await checker.process_updated_order(order)
        self.assertIs(report.outcome, CheckOutcome.ANNOTATED)
        self.assertEqual(shop.metafields[501]["checked"], "yes")


class TestManualCheck(unittest.IsolatedAsyncioTestCase):
    async def test_manual_check_bypasses_gates_and_cache(self):
        order = cod_order(gateway="shopify_payments", payment_gateway_names=[])
        checker, shop, session = make_checker(
            DummyResponse(200, fraudshield_body()),
            orders=[order],
            behavior=BehaviorFlags(auto_check_enabled=False),
            metafields={501: {"checked": "yes"}},
        )

        first = await checker.manual_check(501)
        second = await checker.manual_check(501)

        self.assertIs(first.outcome, CheckOutcome.ANNOTATED)
        self.assertIs(second.outcome, CheckOutcome.ANNOTATED)
        self.assertFalse(second.result.served_from_cache)
        self.assertEqual(session.post.call_count, 2)

    async def test_order_not_found(self):
        checker, _, session = make_checker(DummyResponse(200, fraudshield_body()))
        report = await checker.manual_check(999)
        self.assertIs(report.outcome, CheckOutcome.ORDER_NOT_FOUND)
        session.post.assert_not_called()

    async def test_manual_check_without_phone(self):
        order = cod_order(shipping_address=None)
        checker, _, session = make_checker(DummyResponse(200, fraudshield_body()), orders=[order])
        report = await checker.manual_check(501)
        self.assertIs(report.outcome, CheckOutcome.SKIPPED_NO_PHONE)


if __name__ == "__main__":
    unittest.main()
