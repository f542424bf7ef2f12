from __future__ import annotations

import os
import unittest
from datetime import datetime, timedelta
from unittest.mock import patch

from carmarket import create_app
from carmarket.extensions import db
from carmarket.models import CarListing, ListingEvent, ListingTransition, PromotionPackage, User
from carmarket.services import listing_actions_service as actions_service
from carmarket.utils.jwt_utils import create_token


def _upsert_user(*, email: str, role: str, showroom_id: int | None = None) -> User:
    row = User.query.filter_by(email=email).first()
    if row is None:
        row = User(name=email.split("@")[0], email=email, role=role, showroom_id=showroom_id)
        row.set_password("password123")
        db.session.add(row)
        db.session.flush()
    row.role = role
    row.showroom_id = showroom_id
    db.session.add(row)
    db.session.flush()
    return row


class ListingActionsApiTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._prev_db_uri = os.getenv("SQLALCHEMY_DATABASE_URI")
        cls._prev_db_url = os.getenv("DATABASE_URL")
        db_uri = "sqlite:///:memory:"
        os.environ["SQLALCHEMY_DATABASE_URI"] = db_uri
        os.environ["DATABASE_URL"] = db_uri

        cls.app = create_app()
        cls.app.config.update(TESTING=True, LISTING_FEATURE_DEFAULT_DAYS=7)
        cls.client = cls.app.test_client()
        with cls.app.app_context():
            db.create_all()
            cls.seller_id = int(_upsert_user(email="actions-seller@carmarket.dev", role="seller").id)
            cls.other_seller_id = int(_upsert_user(email="actions-seller2@carmarket.dev", role="seller").id)
            cls.buyer_id = int(_upsert_user(email="actions-buyer@carmarket.dev", role="buyer").id)
            cls.dealer_id = int(
                _upsert_user(email="actions-dealer@carmarket.dev", role="dealer_basic", showroom_id=77).id
            )
            cls.moderator_id = int(_upsert_user(email="actions-mod@carmarket.dev", role="moderator").id)
            cls.admin_id = int(_upsert_user(email="actions-admin@carmarket.dev", role="admin").id)
            cls.stray_id = int(_upsert_user(email="actions-stray@carmarket.dev", role="pilot").id)
            package = PromotionPackage(name="Gold", plan="gold", price=500, duration_days=30, feature_duration_days=14)
            db.session.add(package)
            db.session.commit()
            cls.package_id = int(package.id)

    @classmethod
    def tearDownClass(cls):
        with cls.app.app_context():
            db.session.remove()
        if cls._prev_db_uri is None:
            os.environ.pop("SQLALCHEMY_DATABASE_URI", None)
        else:
            os.environ["SQLALCHEMY_DATABASE_URI"] = cls._prev_db_uri
        if cls._prev_db_url is None:
            os.environ.pop("DATABASE_URL", None)
        else:
            os.environ["DATABASE_URL"] = cls._prev_db_url

    def _headers(self, user_id: int, **extra) -> dict:
        headers = {"Authorization": f"Bearer {create_token(int(user_id))}"}
        headers.update(extra)
        return headers

    def _listing(self, *, seller_id: int | None = None, status: str = "draft", **fields) -> int:
        with self.app.app_context():
            row = CarListing(
                seller_id=int(seller_id or self.seller_id),
                title="2019 Toyota Land Cruiser",
                make="Toyota",
                model="Land Cruiser",
                year=2019,
                price=185000,
                status=status,
                **fields,
            )
            db.session.add(row)
            db.session.commit()
            return int(row.id)

    def _row(self, listing_id: int) -> dict:
        with self.app.app_context():
            row = db.session.get(CarListing, int(listing_id))
            return row.to_dict(include_private=True)

    def _transitions(self, listing_id: int) -> list[dict]:
        with self.app.app_context():
            rows = ListingTransition.query.filter_by(listing_id=int(listing_id)).order_by(ListingTransition.id.asc()).all()
            return [r.to_dict() for r in rows]

    def _act(self, listing_id: int, user_id: int, body: dict, **headers):
        return self.client.put(
            f"/api/listings/{listing_id}/actions",
            json=body,
            headers=self._headers(user_id, **headers),
        )

    def test_seller_publish_moves_draft_to_pending(self):
        listing_id = self._listing()
        res = self._act(listing_id, self.seller_id, {"action": "publish"})
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True)
        self.assertTrue(body.get("ok"))
        self.assertEqual(body.get("status"), "pending")
        self.assertFalse(body.get("is_featured"))
        self.assertIsNone(body.get("feature_start"))
        self.assertEqual(body.get("listing", {}).get("status"), "pending")
        row = self._row(listing_id)
        self.assertEqual(row["status"], "pending")
        self.assertEqual(row["version"], 1)
        self.assertEqual(row["updated_by"], self.seller_id)

    def test_admin_publish_goes_straight_to_active(self):
        listing_id = self._listing()
        res = self._act(listing_id, self.admin_id, {"action": "publish"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json(force=True).get("status"), "active")

    def test_dealer_owner_can_publish(self):
        listing_id = self._listing(seller_id=self.dealer_id, showroom_id=77)
        res = self._act(listing_id, self.dealer_id, {"action": "publish"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json(force=True).get("status"), "pending")

    def test_other_seller_cannot_publish(self):
        listing_id = self._listing()
        res = self._act(listing_id, self.other_seller_id, {"action": "publish"})
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.get_json(force=True).get("error"), "Unauthorized")
        self.assertEqual(self._row(listing_id)["status"], "draft")

    def test_reject_with_empty_reason_is_422_and_unchanged(self):
        listing_id = self._listing(status="pending")
        for reason in ("", "   "):
            res = self._act(listing_id, self.moderator_id, {"action": "reject", "reason": reason})
            self.assertEqual(res.status_code, 422)
            body = res.get_json(force=True)
            self.assertFalse(body.get("ok", True))
            self.assertEqual(body.get("error"), "MissingReason")
        row = self._row(listing_id)
        self.assertEqual(row["status"], "pending")
        self.assertEqual(row["version"], 0)
        self.assertEqual(self._transitions(listing_id), [])

    def test_reject_with_reason_persists_it(self):
        listing_id = self._listing(status="pending")
        res = self._act(listing_id, self.moderator_id, {"action": "reject", "reason": " Photos are blurry "})
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True)
        self.assertEqual(body.get("status"), "rejected")
        self.assertIn("reason_captured", body.get("side_effects") or [])
        self.assertEqual(self._row(listing_id)["rejection_reason"], "Photos are blurry")
        items = self._transitions(listing_id)
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0]["reason"], "Photos are blurry")
        self.assertEqual(items[0]["actor_role"], "moderator")

    def test_second_approve_is_invalid_transition(self):
        listing_id = self._listing(status="pending")
        first = self._act(listing_id, self.moderator_id, {"action": "approve"})
        self.assertEqual(first.status_code, 200)
        second = self._act(listing_id, self.moderator_id, {"action": "approve"})
        self.assertEqual(second.status_code, 403)
        self.assertEqual(second.get_json(force=True).get("error"), "InvalidTransition")
        self.assertEqual(len(self._transitions(listing_id)), 1)

    def test_buyer_delete_is_unauthorized(self):
        listing_id = self._listing(status="active")
        res = self.client.delete(f"/api/listings/{listing_id}", headers=self._headers(self.buyer_id))
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.get_json(force=True).get("error"), "Unauthorized")
        self.assertEqual(self._row(listing_id)["status"], "active")

    def test_admin_feature_on_sold_is_invalid_transition(self):
        listing_id = self._listing(status="sold")
        res = self._act(listing_id, self.admin_id, {"action": "feature"})
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.get_json(force=True).get("error"), "InvalidTransition")

    def test_feature_uses_configured_default_duration(self):
        listing_id = self._listing(status="active")
        res = self._act(listing_id, self.admin_id, {"action": "feature"})
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True)
        self.assertTrue(body.get("is_featured"))
        start = datetime.fromisoformat(body["feature_start"])
        end = datetime.fromisoformat(body["feature_end"])
        self.assertEqual(end - start, timedelta(days=7))
        self.assertEqual(body.get("listing", {}).get("featured_days_remaining"), 7)

    def test_feature_uses_package_duration(self):
        listing_id = self._listing(status="active", promotion_package_id=self.package_id)
        res = self._act(listing_id, self.admin_id, {"action": "feature", "featured": True})
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True)
        start = datetime.fromisoformat(body["feature_start"])
        end = datetime.fromisoformat(body["feature_end"])
        self.assertEqual(end - start, timedelta(days=14))

    def test_feature_false_clears_window(self):
        now = datetime.utcnow()
        listing_id = self._listing(
            status="active",
            is_featured=True,
            feature_start=now,
            feature_end=now + timedelta(days=5),
        )
        res = self._act(listing_id, self.admin_id, {"action": "feature", "featured": False})
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True)
        self.assertFalse(body.get("is_featured"))
        self.assertIsNone(body.get("feature_end"))
        self.assertIn("featured_cleared", body.get("side_effects") or [])

    def test_seller_cannot_feature_own_listing(self):
        listing_id = self._listing(status="active")
        res = self._act(listing_id, self.seller_id, {"action": "feature"})
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.get_json(force=True).get("error"), "Unauthorized")

    def test_mark_sold_accepts_legacy_spelling(self):
        listing_id = self._listing(status="active")
        res = self._act(listing_id, self.seller_id, {"action": "mark_sold"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json(force=True).get("status"), "sold")

    def test_owner_delete_returns_204_and_soft_deletes(self):
        listing_id = self._listing(status="sold")
        res = self.client.delete(f"/api/listings/{listing_id}", headers=self._headers(self.seller_id))
        self.assertEqual(res.status_code, 204)
        self.assertEqual(res.data, b"")
        row = self._row(listing_id)
        self.assertEqual(row["status"], "deleted")
        self.assertIsNotNone(row["deleted_at"])

        again = self.client.delete(f"/api/listings/{listing_id}", headers=self._headers(self.admin_id))
        self.assertEqual(again.status_code, 403)
        self.assertEqual(again.get_json(force=True).get("error"), "InvalidTransition")

    def test_delete_via_action_endpoint(self):
        listing_id = self._listing(status="rejected")
        res = self._act(listing_id, self.admin_id, {"action": "delete"})
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True)
        self.assertEqual(body.get("status"), "deleted")
        self.assertIn("soft_deleted", body.get("side_effects") or [])

    def test_missing_token_is_401(self):
        listing_id = self._listing()
        res = self.client.put(f"/api/listings/{listing_id}/actions", json={"action": "publish"})
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.get_json(force=True).get("error"), "AuthenticationRequired")

        bad = self.client.put(
            f"/api/listings/{listing_id}/actions",
            json={"action": "publish"},
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        self.assertEqual(bad.status_code, 401)

    def test_unknown_role_is_forbidden(self):
        listing_id = self._listing(seller_id=self.stray_id)
        res = self._act(listing_id, self.stray_id, {"action": "publish"})
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.get_json(force=True).get("error"), "Unauthorized")

    def test_malformed_bodies_are_400(self):
        listing_id = self._listing(status="active")
        cases = [
            {"action": "archive"},
            {},
            {"action": "reject", "reason": 12},
            {"action": "feature", "featured": "maybe"},
            {"action": "feature", "featured": 0.5},
        ]
        for body in cases:
            res = self._act(listing_id, self.admin_id, body)
            self.assertEqual(res.status_code, 400, body)
            self.assertFalse(res.get_json(force=True).get("ok", True))
        raw = self.client.put(
            f"/api/listings/{listing_id}/actions",
            data="[1, 2]",
            content_type="application/json",
            headers=self._headers(self.admin_id),
        )
        self.assertEqual(raw.status_code, 400)
        self.assertEqual(raw.get_json(force=True).get("error"), "InvalidRequest")

    def test_missing_listing_is_404(self):
        res = self._act(987654, self.admin_id, {"action": "publish"})
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.get_json(force=True).get("error"), "NotFound")
        gone = self.client.delete("/api/listings/987654", headers=self._headers(self.admin_id))
        self.assertEqual(gone.status_code, 404)

    def test_idempotency_key_replays_previous_result(self):
        listing_id = self._listing()
        first = self._act(listing_id, self.seller_id, {"action": "publish"}, **{"Idempotency-Key": "pub-1"})
        self.assertEqual(first.status_code, 200)
        self.assertFalse(first.get_json(force=True).get("replayed"))

        second = self._act(listing_id, self.seller_id, {"action": "publish"}, **{"Idempotency-Key": "pub-1"})
        self.assertEqual(second.status_code, 200)
        body = second.get_json(force=True)
        self.assertTrue(body.get("replayed"))
        self.assertEqual(body.get("status"), "pending")
        self.assertEqual(len(self._transitions(listing_id)), 1)

        reused = self._act(listing_id, self.moderator_id, {"action": "approve"}, **{"Idempotency-Key": "pub-1"})
        self.assertEqual(reused.status_code, 409)
        self.assertEqual(reused.get_json(force=True).get("error"), "Conflict")

    def test_idempotency_key_is_not_shared_with_other_callers(self):
        listing_id = self._listing()
        first = self._act(listing_id, self.seller_id, {"action": "publish"}, **{"Idempotency-Key": "shared-1"})
        self.assertEqual(first.status_code, 200)

        res = self._act(listing_id, self.buyer_id, {"action": "publish"}, **{"Idempotency-Key": "shared-1"})
        self.assertEqual(res.status_code, 403)
        body = res.get_json(force=True)
        self.assertFalse(body.get("ok", True))
        self.assertNotIn("listing", body)
        self.assertNotIn("replayed", body)
        self.assertEqual(len(self._transitions(listing_id)), 1)

    def test_replay_reports_recorded_transition_after_later_change(self):
        listing_id = self._listing()
        first = self._act(listing_id, self.seller_id, {"action": "publish"}, **{"Idempotency-Key": "pub-later"})
        self.assertEqual(first.status_code, 200)
        approved = self._act(listing_id, self.moderator_id, {"action": "approve"})
        self.assertEqual(approved.status_code, 200)

        res = self._act(listing_id, self.seller_id, {"action": "publish"}, **{"Idempotency-Key": "pub-later"})
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True)
        self.assertTrue(body.get("replayed"))
        self.assertEqual(body.get("status"), "pending")
        self.assertFalse(body.get("is_featured"))
        self.assertEqual(self._row(listing_id)["status"], "active")
        self.assertEqual(len(self._transitions(listing_id)), 2)

    def test_stale_version_is_409_conflict(self):
        listing_id = self._listing(status="pending")
        real_snapshot_of = actions_service.snapshot_of

        def _stale(row):
            snap = real_snapshot_of(row)
            return snap.evolve(version=snap.version + 3)

        with patch.object(actions_service, "snapshot_of", side_effect=_stale):
            res = self._act(listing_id, self.moderator_id, {"action": "approve"})
        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.get_json(force=True).get("error"), "Conflict")
        row = self._row(listing_id)
        self.assertEqual(row["status"], "pending")
        self.assertEqual(row["version"], 0)
        self.assertEqual(self._transitions(listing_id), [])

    def test_applied_action_writes_event_with_request_id(self):
        listing_id = self._listing(status="pending")
        res = self._act(listing_id, self.admin_id, {"action": "approve"}, **{"X-Request-Id": "req-approve-1"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.headers.get("X-Request-Id"), "req-approve-1")
        with self.app.app_context():
            event = ListingEvent.query.filter_by(listing_id=listing_id, event_type="listing.approve").first()
            self.assertIsNotNone(event)
            self.assertEqual(event.request_id, "req-approve-1")
            self.assertEqual(event.actor_role, "admin")
            meta = event.metadata_dict()
            self.assertEqual(meta.get("from_status"), "pending")
            self.assertEqual(meta.get("to_status"), "active")

    def test_denied_response_carries_trace_id(self):
        listing_id = self._listing(status="sold")
        res = self._act(listing_id, self.admin_id, {"action": "approve"}, **{"X-Request-Id": "req-denied-1"})
        self.assertEqual(res.status_code, 403)
        body = res.get_json(force=True)
        self.assertEqual(body.get("trace_id"), "req-denied-1")
        self.assertEqual(body.get("status"), 403)
        self.assertTrue(str(body.get("message") or "").strip())


if __name__ == "__main__":
    unittest.main()
