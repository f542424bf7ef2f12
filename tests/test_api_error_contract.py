from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from carmarket import create_app


class ApiErrorContractTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        with patch.dict(os.environ, {"SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"}, clear=False):
            cls.app = create_app()
        cls.app.config.update(TESTING=True)
        cls.client = cls.app.test_client()

    def test_unknown_api_route_returns_json_error_shape(self):
        res = self.client.get("/api/does-not-exist")
        self.assertEqual(res.status_code, 404)
        self.assertTrue(res.is_json)
        body = res.get_json(force=True) or {}
        self.assertFalse(bool(body.get("ok", True)))
        self.assertTrue(str(body.get("error") or "").strip())
        self.assertTrue(str(body.get("message") or "").strip())
        self.assertEqual(int(body.get("status") or 0), 404)
        self.assertTrue(str(body.get("trace_id") or "").strip())

    def test_wrong_method_is_json_405(self):
        res = self.client.post("/api/listings/1/actions", json={"action": "publish"})
        self.assertEqual(res.status_code, 405)
        body = res.get_json(force=True) or {}
        self.assertEqual(int(body.get("status") or 0), 405)

    def test_request_id_is_echoed(self):
        res = self.client.get("/api/roles", headers={"X-Request-Id": "trace-123"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.headers.get("X-Request-Id"), "trace-123")

        generated = self.client.get("/api/roles")
        self.assertTrue((generated.headers.get("X-Request-Id") or "").strip())


class ProductionConfigTestCase(unittest.TestCase):
    def test_production_requires_secret_and_database(self):
        env = {"CARMARKET_ENV": "production", "SECRET_KEY": "short", "DATABASE_URL": "", "SQLALCHEMY_DATABASE_URI": ""}
        with patch.dict(os.environ, env, clear=False):
            with self.assertRaises(RuntimeError):
                create_app()
        env["SECRET_KEY"] = "a-long-enough-production-secret"
        with patch.dict(os.environ, env, clear=False):
            with self.assertRaises(RuntimeError):
                create_app()

    def test_feature_default_days_from_env(self):
        env = {"SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:", "LISTING_FEATURE_DEFAULT_DAYS": "21"}
        with patch.dict(os.environ, env, clear=False):
            app = create_app()
        self.assertEqual(app.config["LISTING_FEATURE_DEFAULT_DAYS"], 21)

        env["LISTING_FEATURE_DEFAULT_DAYS"] = "soon"
        with patch.dict(os.environ, env, clear=False):
            app = create_app()
        self.assertEqual(app.config["LISTING_FEATURE_DEFAULT_DAYS"], 7)


if __name__ == "__main__":
    unittest.main()
