from __future__ import annotations

import unittest
from decimal import Decimal

from marketplace_fixtures import InMemoryAppMixin, auth_headers, interleaved, make_product, make_user, user
from vinimai.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from vinimai.extensions import db
from vinimai.models import Offer, Product
from vinimai.services import notification_service, offer_service


class OfferNegotiationTestCase(InMemoryAppMixin, unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        with cls.app.app_context():
            cls.seller_id = make_user("offer_seller", "9100000001", "seller")
            cls.buyer_id = make_user("offer_buyer", "9100000002", "buyer")
            cls.other_buyer_id = make_user("offer_buyer_two", "9100000003", "buyer")

    def _new_offer(self, amount: str = "900") -> int:
        pid = make_product(self.seller_id)
        return int(offer_service.create_offer(user(self.buyer_id), pid, amount, "Can you do 900?").id)

    def _rejection_notices(self) -> int:
        return len([n for n in notification_service.list_for_user(user(self.buyer_id)) if n.type == "offer_rejected"])

    def test_create_offer_denormalizes_seller_and_notifies(self):
        with self.app.app_context():
            pid = make_product(self.seller_id, title="Record player")
            offer = offer_service.create_offer(user(self.buyer_id), pid, "900")
            self.assertEqual(offer.status, "pending")
            self.assertEqual(offer.seller_id, self.seller_id)
            self.assertEqual(offer.amount, Decimal("900.00"))
            received = [n for n in notification_service.list_for_user(user(self.seller_id)) if n.type == "offer_received"]
            self.assertTrue(any("Record player" in n.message for n in received))

    def test_cannot_offer_on_own_or_hidden_product(self):
        with self.app.app_context():
            own = make_product(self.seller_id)
            with self.assertRaises(ValidationError):
                offer_service.create_offer(user(self.seller_id), own, "10")
            hidden = make_product(self.seller_id, status="pending")
            with self.assertRaises(NotFoundError):
                offer_service.create_offer(user(self.buyer_id), hidden, "10")
            with self.assertRaises(ValidationError):
                offer_service.create_offer(user(self.buyer_id), own, "0")

    def test_accept_is_terminal(self):
        with self.app.app_context():
            oid = self._new_offer()
            accepted = offer_service.accept_offer(user(self.seller_id), oid)
            self.assertEqual(accepted.status, "accepted")
            self.assertIsNotNone(accepted.decided_at)
            accepted_notes = [n for n in notification_service.list_for_user(user(self.buyer_id)) if n.type == "offer_accepted"]
            self.assertTrue(any("proceed with payment" in n.message for n in accepted_notes))

            with self.assertRaises(ConflictError) as ctx:
                offer_service.accept_offer(user(self.seller_id), oid)
            self.assertEqual(ctx.exception.details["current_status"], "accepted")
            with self.assertRaises(ConflictError):
                offer_service.reject_offer(user(self.seller_id), oid)
            self.assertEqual(db.session.get(Offer, oid).status, "accepted")

    def test_wrong_actor_cannot_decide(self):
        with self.app.app_context():
            oid = self._new_offer()
            with self.assertRaises(AuthorizationError):
                offer_service.accept_offer(user(self.buyer_id), oid)
            with self.assertRaises(AuthorizationError):
                offer_service.counter_offer(user(self.other_buyer_id), oid, "950")
            self.assertEqual(db.session.get(Offer, oid).status, "pending")

    def test_counter_round_accepted_by_buyer(self):
        with self.app.app_context():
            oid = self._new_offer("800")
            countered = offer_service.counter_offer(user(self.seller_id), oid, "950", "Lowest I can go")
            self.assertEqual(countered.status, "countered")
            self.assertEqual(countered.counter_amount, Decimal("950.00"))
            self.assertIn("offer_countered", [n.type for n in notification_service.list_for_user(user(self.buyer_id))])

            # A second counter would open another round.
            with self.assertRaises(ConflictError):
                offer_service.counter_offer(user(self.seller_id), oid, "925")
            with self.assertRaises(AuthorizationError):
                offer_service.respond_to_counter(user(self.seller_id), oid, True)

            settled = offer_service.respond_to_counter(user(self.buyer_id), oid, True)
            self.assertEqual(settled.status, "accepted")
            self.assertEqual(offer_service.agreed_amount(settled), Decimal("950.00"))
            self.assertIn("offer_counter_accepted", [n.type for n in notification_service.list_for_user(user(self.seller_id))])

    def test_counter_declined_by_buyer(self):
        with self.app.app_context():
            oid = self._new_offer("700")
            offer_service.counter_offer(user(self.seller_id), oid, "990")
            declined = offer_service.respond_to_counter(user(self.buyer_id), oid, False)
            self.assertEqual(declined.status, "rejected")
            self.assertEqual(offer_service.agreed_amount(declined), Decimal("700.00"))
            with self.assertRaises(ConflictError):
                offer_service.respond_to_counter(user(self.buyer_id), oid, True)

    def test_only_one_offer_per_product_can_be_accepted(self):
        with self.app.app_context():
            pid = make_product(self.seller_id, title="Film camera")
            first = int(offer_service.create_offer(user(self.buyer_id), pid, "900").id)
            second = int(offer_service.create_offer(user(self.other_buyer_id), pid, "950").id)
            offer_service.accept_offer(user(self.seller_id), first)

            with self.assertRaises(ConflictError) as ctx:
                offer_service.accept_offer(user(self.seller_id), second)
            self.assertEqual(ctx.exception.details["accepted_offer_id"], first)
            self.assertEqual(db.session.get(Offer, second).status, "pending")

            offer_service.counter_offer(user(self.seller_id), second, "980")
            with self.assertRaises(ConflictError):
                offer_service.respond_to_counter(user(self.other_buyer_id), second, True)
            self.assertEqual(db.session.get(Offer, second).status, "countered")
            declined = offer_service.respond_to_counter(user(self.other_buyer_id), second, False)
            self.assertEqual(declined.status, "rejected")

    def test_offer_on_product_no_longer_for_sale_cannot_be_accepted(self):
        with self.app.app_context():
            pid = make_product(self.seller_id, title="Sold elsewhere")
            oid = int(offer_service.create_offer(user(self.buyer_id), pid, "500").id)
            db.session.get(Product, pid).is_available = False
            db.session.commit()
            with self.assertRaises(ConflictError):
                offer_service.accept_offer(user(self.seller_id), oid)
            self.assertEqual(db.session.get(Offer, oid).status, "pending")

    def test_concurrent_accept_and_reject_keep_the_first_decision(self):
        with self.app.app_context():
            oid = self._new_offer()
            rejected_before = self._rejection_notices()
            # The accept lands after the reject has read the offer as pending.
            with interleaved(
                "vinimai.services.offer_service",
                lambda: offer_service.accept_offer(user(self.seller_id), oid),
            ):
                with self.assertRaises(ConflictError) as ctx:
                    offer_service.reject_offer(user(self.seller_id), oid)
            self.assertEqual(ctx.exception.details["current_status"], "accepted")
            row = db.session.get(Offer, oid)
            self.assertEqual(row.status, "accepted")
            self.assertIsNotNone(row.decided_at)
            self.assertEqual(self._rejection_notices(), rejected_before)

    def test_listing_is_limited_to_own_offers(self):
        with self.app.app_context():
            self._new_offer()
            mine = offer_service.list_offers_by_buyer(user(self.buyer_id), self.buyer_id)
            self.assertTrue(mine)
            self.assertTrue(all(o.buyer_id == self.buyer_id for o in mine))
            with self.assertRaises(AuthorizationError):
                offer_service.list_offers_by_buyer(user(self.other_buyer_id), self.buyer_id)
            self.assertTrue(offer_service.list_offers_by_seller(user(self.seller_id), self.seller_id))

    def test_http_double_accept_returns_conflict_with_current_state(self):
        with self.app.app_context():
            oid = self._new_offer()
        headers = auth_headers(self.seller_id, "seller")
        first = self.client.put(f"/api/offers/{oid}/accept", headers=headers)
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.get_json()["offer"]["status"], "accepted")

        second = self.client.put(f"/api/offers/{oid}/accept", headers=headers)
        self.assertEqual(second.status_code, 409)
        body = second.get_json()
        self.assertEqual(body["error"], "CONFLICT")
        self.assertEqual(body["current_status"], "accepted")

    def test_http_counter_flow(self):
        with self.app.app_context():
            oid = self._new_offer("600")
        res = self.client.put(
            f"/api/offers/{oid}/counter",
            json={"counter_amount": "750.50"},
            headers=auth_headers(self.seller_id, "seller"),
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["offer"]["counter_amount"], "750.50")

        res = self.client.put(f"/api/offers/{oid}/counter/reject", headers=auth_headers(self.buyer_id, "buyer"))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["offer"]["status"], "rejected")


if __name__ == "__main__":
    unittest.main()
