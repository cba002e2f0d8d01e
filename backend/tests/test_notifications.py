from __future__ import annotations

import unittest
from unittest import mock

from sqlalchemy.exc import OperationalError

from marketplace_fixtures import InMemoryAppMixin, auth_headers, make_user, user
from vinimai.errors import NotFoundError
from vinimai.extensions import db
from vinimai.services import notification_service


class NotificationsTestCase(InMemoryAppMixin, unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        with cls.app.app_context():
            cls.admin_id = make_user("note_admin", "9600000001", "admin")
            cls.second_admin_id = make_user("note_admin_two", "9600000002", "admin")
            cls.buyer_id = make_user("note_buyer", "9600000003", "buyer")
            cls.other_id = make_user("note_other", "9600000004", "buyer")

    def test_mark_read_is_idempotent(self):
        with self.app.app_context():
            row = notification_service.notify(self.buyer_id, "Hello", "First message", "order_status")
            nid = int(row.id)
            before = notification_service.unread_count(user(self.buyer_id))

            first = notification_service.mark_read(user(self.buyer_id), nid)
            self.assertTrue(first.is_read)
            stamped = first.read_at
            second = notification_service.mark_read(user(self.buyer_id), nid)
            self.assertEqual(second.read_at, stamped)
            self.assertEqual(notification_service.unread_count(user(self.buyer_id)), before - 1)

    def test_other_users_cannot_see_or_mark(self):
        with self.app.app_context():
            nid = int(notification_service.notify(self.buyer_id, "Private", "For one buyer", "order_status").id)
            self.assertNotIn(nid, [n.id for n in notification_service.list_for_user(user(self.other_id))])
            with self.assertRaises(NotFoundError):
                notification_service.mark_read(user(self.other_id), nid)
            with self.assertRaises(NotFoundError):
                notification_service.mark_read(user(self.buyer_id), 987654)

    def test_role_broadcast_reaches_every_holder(self):
        with self.app.app_context():
            nid = int(notification_service.notify_role("admin", "Review", "A listing awaits", "product_approval").id)
            for uid in (self.admin_id, self.second_admin_id):
                self.assertIn(nid, [n.id for n in notification_service.list_for_user(user(uid))])
            self.assertNotIn(nid, [n.id for n in notification_service.list_for_user(user(self.buyer_id))])
            with self.assertRaises(NotFoundError):
                notification_service.mark_read(user(self.buyer_id), nid)

    def test_unread_filter(self):
        with self.app.app_context():
            keep = int(notification_service.notify(self.other_id, "A", "unread", "offer_received").id)
            done = int(notification_service.notify(self.other_id, "B", "read", "offer_received").id)
            notification_service.mark_read(user(self.other_id), done)
            unread_ids = [n.id for n in notification_service.list_for_user(user(self.other_id), unread_only=True)]
            self.assertIn(keep, unread_ids)
            self.assertNotIn(done, unread_ids)

    def test_failed_write_is_swallowed(self):
        with self.app.app_context():
            with mock.patch.object(
                db.session,
                "commit",
                side_effect=OperationalError("INSERT", {}, Exception("disk I/O error")),
            ):
                self.assertIsNone(notification_service.notify(self.buyer_id, "Lost", "never stored", "order_status"))
            self.assertNotIn("Lost", [n.title for n in notification_service.list_for_user(user(self.buyer_id))])
            self.assertIsNone(notification_service.notify(None, "Nobody", "no recipient", "order_status"))

    def test_http_inbox_requires_token(self):
        res = self.client.get("/api/notifications")
        self.assertEqual(res.status_code, 401)
        body = res.get_json()
        self.assertEqual(body["error"], "UNAUTHORIZED")
        self.assertIn("trace_id", body)

    def test_http_inbox_and_mark_read(self):
        with self.app.app_context():
            nid = int(notification_service.notify(self.buyer_id, "Shipped", "On its way", "order_status").id)
        headers = auth_headers(self.buyer_id, "buyer")
        res = self.client.get("/api/notifications?unread=1", headers=headers)
        self.assertEqual(res.status_code, 200)
        body = res.get_json()
        self.assertIn(nid, [n["id"] for n in body["items"]])
        self.assertGreaterEqual(body["unread"], 1)

        res = self.client.put(f"/api/notifications/{nid}/read", headers=headers)
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.get_json()["notification"]["is_read"])

        res = self.client.put(f"/api/notifications/{nid}/read", headers=auth_headers(self.other_id, "buyer"))
        self.assertEqual(res.status_code, 404)


if __name__ == "__main__":
    unittest.main()
