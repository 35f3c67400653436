# backend/tests/test_prod_settings.py

import importlib
import os
import sys
from unittest import mock

from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase

PROD = "backend.settings.prod"

GOOD_ENV = {
    "SECRET_KEY": "a-long-random-production-key",
    "ALLOWED_HOSTS": "erp.example.com",
    "DATABASE_URL": "postgres://erp:secret@db:5432/erp",
    "CORS_ALLOWED_ORIGINS": "https://erp.example.com",
}


class ProductionSettingsTests(SimpleTestCase):
    """
    GUARANTEES:
    - Production refuses to start on insecure or missing configuration
    - SQLite is never accepted, since stock locks need row-level locking
    - A valid environment loads with DEBUG off and WhiteNoise installed
    """

    def _load(self, **overrides):
        environ = {**GOOD_ENV, **overrides}
        sys.modules.pop(PROD, None)
        try:
            with mock.patch.dict(os.environ, environ):
                return importlib.import_module(PROD)
        finally:
            sys.modules.pop(PROD, None)

    def test_valid_environment_loads(self):
        prod = self._load()

        self.assertFalse(prod.DEBUG)
        self.assertEqual(prod.DATABASES["default"]["ENGINE"], "django.db.backends.postgresql")
        self.assertEqual(prod.MIDDLEWARE[1], "whitenoise.middleware.WhiteNoiseMiddleware")
        base = importlib.import_module("backend.settings.base")
        self.assertNotIn("whitenoise.middleware.WhiteNoiseMiddleware", base.MIDDLEWARE)

    def test_missing_secret_key_is_refused(self):
        with self.assertRaises(ImproperlyConfigured):
            self._load(SECRET_KEY="")

    def test_dev_secret_key_is_refused(self):
        with self.assertRaises(ImproperlyConfigured):
            self._load(SECRET_KEY="dev-insecure-change-me")

    def test_sqlite_is_refused(self):
        with self.assertRaises(ImproperlyConfigured):
            self._load(DATABASE_URL="sqlite:///db.sqlite3")

    def test_plain_http_cors_origin_is_refused(self):
        with self.assertRaises(ImproperlyConfigured):
            self._load(CORS_ALLOWED_ORIGINS="http://erp.example.com")
