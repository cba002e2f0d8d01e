from __future__ import annotations

import unittest
from datetime import datetime, timedelta
from unittest import mock

from marketplace_fixtures import InMemoryAppMixin, auth_headers, make_product, make_user, pay_order, user
from vinimai.errors import AuthorizationError, ConflictError, UpstreamError, ValidationError
from vinimai.extensions import db
from vinimai.integrations.payments.mock_provider import MockPaymentsProvider
from vinimai.models import Order, ReturnRequest
from vinimai.services import notification_service, order_service, payment_service, return_service


class ReturnsAndRefundsTestCase(InMemoryAppMixin, unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        with cls.app.app_context():
            cls.admin_id = make_user("ret_admin", "9400000001", "admin")
            cls.seller_id = make_user("ret_seller", "9400000002", "seller")
            cls.buyer_id = make_user("ret_buyer", "9400000003", "buyer")

    def _order_at(self, status: str) -> tuple[int, str]:
        """Place and pay for a 1000.00 order, then advance it to ``status``."""
        pid = make_product(self.seller_id, price="1000.00")
        oid = int(order_service.create_order(user(self.buyer_id), pid, "5 Church Street").id)
        pay_id = f"pay_ret_{oid}"
        pay_order(self.buyer_id, oid, pay_id)
        if status != "confirmed":
            order_service.update_order_status(user(self.seller_id), oid, status)
        return oid, pay_id

    def test_return_after_delivery_deducts_fee_and_notifies(self):
        with self.app.app_context():
            oid, _ = self._order_at("delivered")
            row = return_service.request_return(user(self.buyer_id), oid, "Not as described", "within_days")
            self.assertEqual(row.status, "requested")
            self.assertEqual(row.to_dict()["refund_amount"], "930.00")
            self.assertIn("return_request", [n.type for n in notification_service.list_for_user(user(self.admin_id))])
            self.assertIn("return_request", [n.type for n in notification_service.list_for_user(user(self.seller_id))])

            with self.assertRaises(ConflictError):
                return_service.request_return(user(self.buyer_id), oid, "Again", "within_days")

    def test_faulty_item_gets_full_refund(self):
        with self.app.app_context():
            oid, _ = self._order_at("delivered")
            row = return_service.request_return(user(self.buyer_id), oid, "Screen cracked", "within_days", is_faulty=True)
            self.assertEqual(row.to_dict()["refund_amount"], "1030.00")

    def test_return_window_closes(self):
        with self.app.app_context():
            oid, _ = self._order_at("delivered")
            order = db.session.get(Order, oid)
            order.delivered_at = datetime.utcnow() - timedelta(days=3)
            db.session.commit()
            with self.assertRaises(ValidationError) as ctx:
                return_service.request_return(user(self.buyer_id), oid, "Changed my mind", "within_days")
            self.assertEqual(ctx.exception.fields, {"order_id": "window_closed"})

    def test_on_spot_return_needs_delivery_in_progress(self):
        with self.app.app_context():
            at_door, _ = self._order_at("out_for_delivery")
            row = return_service.request_return(user(self.buyer_id), at_door, "Wrong colour", "on_spot")
            self.assertEqual(row.return_type, "on_spot")

            not_shipped, _ = self._order_at("confirmed")
            with self.assertRaises(ConflictError):
                return_service.request_return(user(self.buyer_id), not_shipped, "Too slow", "on_spot")
            with self.assertRaises(ConflictError):
                return_service.request_return(user(self.buyer_id), not_shipped, "Too slow", "within_days")

    def test_only_buyer_may_request_return(self):
        with self.app.app_context():
            oid, _ = self._order_at("delivered")
            with self.assertRaises(AuthorizationError):
                return_service.request_return(user(self.seller_id), oid, "Hmm", "within_days")
            with self.assertRaises(ValidationError):
                return_service.request_return(user(self.buyer_id), oid, "Hmm", "next_year")

    def test_refund_requires_approved_return(self):
        with self.app.app_context():
            oid, pay_id = self._order_at("delivered")
            rid = int(return_service.request_return(user(self.buyer_id), oid, "Broken zip", "within_days").id)
            with self.assertRaises(ConflictError):
                payment_service.refund_payment(user(self.admin_id), pay_id, return_id=rid)

            return_service.decide_return(user(self.admin_id), rid, True, "Photos confirm damage")
            self.assertIn("return_approved", [n.type for n in notification_service.list_for_user(user(self.buyer_id))])

            out = payment_service.refund_payment(user(self.admin_id), pay_id, reason="Damaged", return_id=rid)
            self.assertEqual(out["amount"], "930.00")
            self.assertTrue(out["refund_id"].startswith("rfnd_mock_"))
            row = db.session.get(ReturnRequest, rid)
            self.assertEqual(row.status, "processed")
            self.assertEqual(row.refund_id, out["refund_id"])
            self.assertIsNotNone(row.processed_at)
            self.assertIn("refund_processed", [n.type for n in notification_service.list_for_user(user(self.buyer_id))])

            with self.assertRaises(ConflictError):
                payment_service.refund_payment(user(self.admin_id), pay_id, return_id=rid)

    def test_return_decision_is_single_shot(self):
        with self.app.app_context():
            oid, _ = self._order_at("delivered")
            rid = int(return_service.request_return(user(self.buyer_id), oid, "Too small", "within_days").id)
            with self.assertRaises(AuthorizationError):
                return_service.decide_return(user(self.seller_id), rid, True)
            row = return_service.decide_return(user(self.admin_id), rid, False, "Worn item")
            self.assertEqual(row.status, "rejected")
            with self.assertRaises(ConflictError):
                return_service.decide_return(user(self.admin_id), rid, True)

    def test_refund_guards(self):
        with self.app.app_context():
            _, pay_id = self._order_at("delivered")
            with self.assertRaises(AuthorizationError):
                payment_service.refund_payment(user(self.buyer_id), pay_id)
            with self.assertRaises(ValidationError):
                payment_service.refund_payment(user(self.admin_id), pay_id, amount="5000")
            out = payment_service.refund_payment(user(self.admin_id), pay_id, amount="10.50")
            self.assertEqual(out["amount"], "10.50")
            self.assertIsNone(out["return"])

    def test_gateway_failure_keeps_return_approved(self):
        with self.app.app_context():
            oid, pay_id = self._order_at("delivered")
            rid = int(return_service.request_return(user(self.buyer_id), oid, "Missing parts", "within_days").id)
            return_service.decide_return(user(self.admin_id), rid, True)
            with mock.patch.object(
                MockPaymentsProvider,
                "refund",
                side_effect=UpstreamError("Payment gateway timed out", code="GATEWAY_TIMEOUT"),
            ):
                with self.assertRaises(UpstreamError):
                    payment_service.refund_payment(user(self.admin_id), pay_id, return_id=rid)
            self.assertEqual(db.session.get(ReturnRequest, rid).status, "approved")

    def test_refund_lost_to_concurrent_processing_is_logged(self):
        with self.app.app_context():
            oid, pay_id = self._order_at("delivered")
            rid = int(return_service.request_return(user(self.buyer_id), oid, "Scratched lens", "within_days").id)
            return_service.decide_return(user(self.admin_id), rid, True)
            with mock.patch(
                "vinimai.services.payment_service.mark_return_processed",
                side_effect=ConflictError("Return is processed, not approved", details={"current_status": "processed"}),
            ):
                with self.assertLogs("vinimai.services.payment_service", level="ERROR") as logs:
                    with self.assertRaises(ConflictError):
                        payment_service.refund_payment(user(self.admin_id), pay_id, return_id=rid)
            self.assertTrue(any("refund_unrecorded" in line and "rfnd_mock_" in line for line in logs.output))

    def test_http_return_and_admin_refund(self):
        with self.app.app_context():
            oid, pay_id = self._order_at("delivered")
        res = self.client.post(
            "/api/returns",
            json={"order_id": oid, "reason": "Stopped working", "return_type": "within_days", "is_faulty": True},
            headers=auth_headers(self.buyer_id, "buyer"),
        )
        self.assertEqual(res.status_code, 201)
        rid = res.get_json()["return"]["id"]

        admin = auth_headers(self.admin_id, "admin")
        res = self.client.put(f"/api/admin/returns/{rid}/approve", json={}, headers=admin)
        self.assertEqual(res.status_code, 200)

        res = self.client.post(
            "/api/payments/refund",
            json={"payment_id": pay_id, "return_id": rid},
            headers=auth_headers(self.buyer_id, "buyer"),
        )
        self.assertEqual(res.status_code, 403)

        res = self.client.post("/api/payments/refund", json={"payment_id": pay_id, "return_id": rid}, headers=admin)
        self.assertEqual(res.status_code, 200)
        body = res.get_json()
        self.assertEqual(body["amount"], "1030.00")
        self.assertEqual(body["return"]["status"], "processed")

        res = self.client.get(f"/api/returns/order/{oid}", headers=auth_headers(self.seller_id, "seller"))
        self.assertEqual(res.status_code, 200)
        self.assertEqual([r["status"] for r in res.get_json()["items"]], ["processed"])


if __name__ == "__main__":
    unittest.main()
