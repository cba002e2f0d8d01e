from __future__ import annotations

import hashlib
import hmac
import os
import unittest
from unittest import mock

import requests

from marketplace_fixtures import InMemoryAppMixin, auth_headers, make_product, make_user, user
from vinimai.errors import AuthorizationError, ConflictError, UpstreamError, ValidationError
from vinimai.extensions import db
from vinimai.integrations.common import IntegrationMisconfiguredError
from vinimai.integrations.payments.factory import (
    DEV_KEY_ID,
    DEV_KEY_SECRET,
    build_payments_provider,
    gateway_timeout_seconds,
)
from vinimai.integrations.payments.razorpay_provider import RazorpayPaymentsProvider
from vinimai.models import Order, PaymentAttempt, PaymentConfirmation
from vinimai.services import notification_service, order_service, payment_service


class PaymentVerificationTestCase(InMemoryAppMixin, unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        with cls.app.app_context():
            cls.seller_id = make_user("pay_seller", "9300000001", "seller")
            cls.buyer_id = make_user("pay_buyer", "9300000002", "buyer")
            cls.stranger_id = make_user("pay_stranger", "9300000003", "buyer")

    def _placed_order(self, price: str = "1000.00") -> int:
        pid = make_product(self.seller_id, price=price)
        return int(order_service.create_order(user(self.buyer_id), pid, "9 Residency Road").id)

    def test_create_payment_order_charges_buyer_total_in_paise(self):
        with self.app.app_context():
            oid = self._placed_order()
            out = payment_service.create_payment_order(user(self.buyer_id), oid, "1030.00")
            self.assertEqual(out["order_id"], oid)
            self.assertEqual(out["amount"], 103000)
            self.assertEqual(out["currency"], "INR")
            self.assertEqual(out["key_id"], DEV_KEY_ID)
            self.assertTrue(out["gateway_order_id"].startswith("order_mock_"))

    def test_create_payment_order_guards(self):
        with self.app.app_context():
            oid = self._placed_order()
            with self.assertRaises(ValidationError):
                payment_service.create_payment_order(user(self.buyer_id), oid, "1000.00")
            with self.assertRaises(AuthorizationError):
                payment_service.create_payment_order(user(self.stranger_id), oid)

    def _checkout(self, oid: int) -> str:
        return payment_service.create_payment_order(user(self.buyer_id), oid)["gateway_order_id"]

    def test_bad_signature_leaves_order_placed(self):
        with self.app.app_context():
            oid = self._placed_order()
            gw = self._checkout(oid)
            result = payment_service.verify_payment(user(self.buyer_id), oid, gw, "pay_bad_sig", "deadbeef")
            self.assertFalse(result["success"])
            self.assertEqual(db.session.get(Order, oid).status, "placed")
            self.assertIsNone(PaymentConfirmation.query.filter_by(payment_id="pay_bad_sig").first())

    def test_good_signature_confirms_and_notifies_both_parties(self):
        with self.app.app_context():
            oid = self._placed_order()
            gw = self._checkout(oid)
            sig = payment_service.compute_signature(gw, "pay_good")
            result = payment_service.verify_payment(user(self.buyer_id), oid, gw, "pay_good", sig)
            self.assertTrue(result["success"])
            self.assertEqual(result["order"]["status"], "confirmed")
            self.assertEqual(result["payment"]["amount"], "1030.00")
            self.assertEqual(result["payment"]["gateway_order_id"], gw)
            for uid in (self.buyer_id, self.seller_id):
                types = [n.type for n in notification_service.list_for_user(user(uid))]
                self.assertIn("payment_confirmed", types)

    def test_checkout_records_the_gateway_order(self):
        with self.app.app_context():
            oid = self._placed_order("500")
            gw = self._checkout(oid)
            self.assertEqual(self._checkout(oid), gw)
            rows = PaymentAttempt.query.filter_by(order_id=oid).all()
            self.assertEqual([(r.gateway_order_id, r.amount_minor, r.currency) for r in rows], [(gw, 51500, "INR")])

    def test_payment_for_cheap_order_cannot_confirm_dear_order(self):
        with self.app.app_context():
            cheap = self._placed_order("10")
            dear = self._placed_order("50000")
            gw = self._checkout(cheap)
            self._checkout(dear)
            sig = payment_service.compute_signature(gw, "pay_cheap")
            with self.assertRaises(ConflictError) as ctx:
                payment_service.verify_payment(user(self.buyer_id), dear, gw, "pay_cheap", sig)
            self.assertEqual(ctx.exception.code, "PAYMENT_ORDER_MISMATCH")
            self.assertEqual(db.session.get(Order, dear).status, "placed")
            self.assertIsNone(PaymentConfirmation.query.filter_by(payment_id="pay_cheap").first())

    def test_gateway_order_never_issued_is_refused(self):
        with self.app.app_context():
            oid = self._placed_order()
            sig = payment_service.compute_signature("order_invented", "pay_invented")
            with self.assertRaises(ConflictError):
                payment_service.verify_payment(user(self.buyer_id), oid, "order_invented", "pay_invented", sig)
            self.assertEqual(db.session.get(Order, oid).status, "placed")

    def test_gateway_order_for_a_stale_amount_is_refused(self):
        with self.app.app_context():
            oid = self._placed_order()
            gw = self._checkout(oid)
            PaymentAttempt.query.filter_by(gateway_order_id=gw).update({"amount_minor": 100})
            db.session.commit()
            sig = payment_service.compute_signature(gw, "pay_stale")
            with self.assertRaises(ConflictError):
                payment_service.verify_payment(user(self.buyer_id), oid, gw, "pay_stale", sig)
            self.assertEqual(db.session.get(Order, oid).status, "placed")

    def test_replayed_payment_is_refused(self):
        with self.app.app_context():
            oid = self._placed_order()
            other = self._placed_order()
            gw = self._checkout(oid)
            self._checkout(other)
            sig = payment_service.compute_signature(gw, "pay_replay")
            payment_service.verify_payment(user(self.buyer_id), oid, gw, "pay_replay", sig)

            with self.assertRaises(ConflictError):
                payment_service.verify_payment(user(self.buyer_id), oid, gw, "pay_replay", sig)
            with self.assertRaises(ConflictError):
                payment_service.verify_payment(user(self.buyer_id), other, gw, "pay_replay", sig)
            self.assertEqual(db.session.get(Order, other).status, "placed")
            self.assertEqual(PaymentConfirmation.query.filter_by(payment_id="pay_replay").count(), 1)

    def test_second_payment_for_confirmed_order_conflicts(self):
        with self.app.app_context():
            oid = self._placed_order()
            gw = self._checkout(oid)
            first = payment_service.compute_signature(gw, "pay_first")
            payment_service.verify_payment(user(self.buyer_id), oid, gw, "pay_first", first)
            second = payment_service.compute_signature(gw, "pay_second")
            with self.assertRaises(ConflictError) as ctx:
                payment_service.verify_payment(user(self.buyer_id), oid, gw, "pay_second", second)
            self.assertEqual(ctx.exception.details["current_status"], "confirmed")
            self.assertIsNone(PaymentConfirmation.query.filter_by(payment_id="pay_second").first())

    def test_signature_is_hmac_sha256_of_order_and_payment(self):
        expected = hmac.new(
            DEV_KEY_SECRET.encode("utf-8"),
            b"order_abc|pay_xyz",
            hashlib.sha256,
        ).hexdigest()
        self.assertEqual(payment_service.compute_signature("order_abc", "pay_xyz", DEV_KEY_SECRET), expected)
        self.assertTrue(payment_service.signature_matches("order_abc", "pay_xyz", expected, DEV_KEY_SECRET))
        self.assertFalse(payment_service.signature_matches("order_abc", "pay_other", expected, DEV_KEY_SECRET))

    def test_http_verify_accepts_gateway_field_names(self):
        with self.app.app_context():
            oid = self._placed_order("250")
            gw = self._checkout(oid)
        sig = payment_service.compute_signature(gw, "pay_http", DEV_KEY_SECRET)
        res = self.client.post(
            "/api/payments/verify",
            json={
                "order_id": oid,
                "razorpay_order_id": gw,
                "razorpay_payment_id": "pay_http",
                "razorpay_signature": sig,
            },
            headers=auth_headers(self.buyer_id, "buyer"),
        )
        self.assertEqual(res.status_code, 200)
        body = res.get_json()
        self.assertTrue(body["success"])
        self.assertEqual(body["order"]["status"], "confirmed")

    def test_http_verify_with_foreign_gateway_order_is_conflict(self):
        with self.app.app_context():
            cheap = self._placed_order("20")
            dear = self._placed_order("9000")
            gw = self._checkout(cheap)
        sig = payment_service.compute_signature(gw, "pay_http_swap", DEV_KEY_SECRET)
        res = self.client.post(
            "/api/payments/verify",
            json={"order_id": dear, "gateway_order_id": gw, "payment_id": "pay_http_swap", "signature": sig},
            headers=auth_headers(self.buyer_id, "buyer"),
        )
        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.get_json()["error"], "PAYMENT_ORDER_MISMATCH")

    def test_http_verify_requires_signature(self):
        with self.app.app_context():
            oid = self._placed_order()
        res = self.client.post(
            "/api/payments/verify",
            json={"order_id": oid, "gateway_order_id": "order_q", "payment_id": "pay_q"},
            headers=auth_headers(self.buyer_id, "buyer"),
        )
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["fields"], {"signature": "required"})


class RazorpayProviderTestCase(unittest.TestCase):
    def _response(self, status: int, body: dict) -> mock.Mock:
        resp = mock.Mock()
        resp.status_code = status
        resp.content = b"{}"
        resp.json.return_value = body
        return resp

    @mock.patch("vinimai.integrations.payments.razorpay_provider.requests.post")
    def test_create_order_posts_with_basic_auth(self, post):
        post.return_value = self._response(200, {"id": "order_Lx1", "amount": 103000, "currency": "INR"})
        provider = RazorpayPaymentsProvider(key_id="rzp_live_k", key_secret="s3cr3t", timeout_seconds=5)
        result = provider.create_order(amount_minor=103000, currency="INR", receipt="order_7", notes={"order_id": "7"})
        self.assertEqual(result.gateway_order_id, "order_Lx1")
        self.assertEqual(result.amount, 103000)
        args, kwargs = post.call_args
        self.assertEqual(args[0], "https://api.razorpay.com/v1/orders")
        self.assertEqual(kwargs["auth"], ("rzp_live_k", "s3cr3t"))
        self.assertEqual(kwargs["timeout"], 5.0)
        self.assertEqual(kwargs["json"]["receipt"], "order_7")

    @mock.patch("vinimai.integrations.payments.razorpay_provider.requests.post")
    def test_gateway_error_description_is_surfaced(self, post):
        post.return_value = self._response(400, {"error": {"description": "The amount must be at least INR 1.00"}})
        provider = RazorpayPaymentsProvider(key_id="k", key_secret="s")
        with self.assertRaises(UpstreamError) as ctx:
            provider.create_order(amount_minor=10, currency="INR", receipt="order_1")
        self.assertEqual(ctx.exception.code, "GATEWAY_ORDER_FAILED")
        self.assertIn("at least INR 1.00", ctx.exception.message)

    @mock.patch("vinimai.integrations.payments.razorpay_provider.requests.post")
    def test_timeout_is_retryable(self, post):
        post.side_effect = requests.Timeout("read timed out")
        provider = RazorpayPaymentsProvider(key_id="k", key_secret="s")
        with self.assertRaises(UpstreamError) as ctx:
            provider.refund(payment_id="pay_1", amount_minor=100)
        self.assertEqual(ctx.exception.code, "GATEWAY_TIMEOUT")
        self.assertTrue(ctx.exception.to_dict()["retryable"])

    @mock.patch("vinimai.integrations.payments.razorpay_provider.requests.post")
    def test_refund_targets_payment(self, post):
        post.return_value = self._response(200, {"id": "rfnd_9", "status": "processed", "amount": 93000})
        provider = RazorpayPaymentsProvider(key_id="k", key_secret="s")
        result = provider.refund(payment_id="pay_AB", amount_minor=93000, notes={"reason": "faulty"})
        self.assertEqual(result.refund_id, "rfnd_9")
        self.assertEqual(post.call_args[0][0], "https://api.razorpay.com/v1/payments/pay_AB/refund")
        self.assertEqual(post.call_args[1]["json"], {"amount": 93000, "notes": {"reason": "faulty"}})


class PaymentsFactoryTestCase(unittest.TestCase):
    def test_unknown_provider_is_misconfiguration(self):
        with mock.patch.dict(os.environ, {"PAYMENTS_PROVIDER": "bogus"}):
            with self.assertRaises(IntegrationMisconfiguredError):
                build_payments_provider()

    def test_razorpay_selected_with_dev_keys_outside_production(self):
        with mock.patch.dict(os.environ, {"PAYMENTS_PROVIDER": "razorpay", "VINIMAI_ENV": "dev"}):
            provider = build_payments_provider()
        self.assertIsInstance(provider, RazorpayPaymentsProvider)
        self.assertEqual(provider.key_id, DEV_KEY_ID)

    def test_timeout_is_clamped(self):
        with mock.patch.dict(os.environ, {"PAYMENT_GATEWAY_TIMEOUT_SECONDS": "60"}):
            self.assertEqual(gateway_timeout_seconds(), 15.0)
        with mock.patch.dict(os.environ, {"PAYMENT_GATEWAY_TIMEOUT_SECONDS": "0.2"}):
            self.assertEqual(gateway_timeout_seconds(), 1.0)
        with mock.patch.dict(os.environ, {"PAYMENT_GATEWAY_TIMEOUT_SECONDS": "soon"}):
            self.assertEqual(gateway_timeout_seconds(), 12.0)


if __name__ == "__main__":
    unittest.main()
