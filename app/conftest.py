"""
Project-wide pytest configuration.

- Test-only settings overrides
- unit / integration / e2e markers derived from the test file name
- Fixtures shared by every app (app fixtures live in <app>/tests/conftest.py)
"""

import os

import django
import pytest

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

E2E_FILES = {"test_integration.py"}

UNIT_FILES = {
    "test_models.py",
    "test_normalizer.py",
    "test_state_transitions.py",
    "test_signals.py",
    "test_locks.py",
    "test_stripe_gateway.py",
    "test_notifications.py",
    "test_email.py",
}


def pytest_configure(config):
    django.setup()

    from django.conf import settings

    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}
    settings.SECURE_SSL_REDIRECT = False
    settings.PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]


def pytest_collection_modifyitems(items):
    """
    Mark each test by its file name unless it is already marked.

    Everything not listed as unit or e2e touches the database through the
    engine, the workers or the views and counts as integration.
    """
    for item in items:
        if {m.name for m in item.iter_markers()} & {"unit", "integration", "e2e"}:
            continue

        filename = item.path.name
        if filename in E2E_FILES:
            item.add_marker(pytest.mark.e2e)
        elif filename in UNIT_FILES:
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


def _flush_with_cascade():
    """
    Make PostgreSQL flushes TRUNCATE ... CASCADE.

    transaction=True tests reset tables by truncation, which fails on tables
    referenced by foreign keys without CASCADE.
    """
    from django.db.backends.postgresql import operations

    sql_flush = operations.DatabaseOperations.sql_flush

    def sql_flush_cascade(self, style, tables, *, reset_sequences=False, allow_cascade=False):
        return sql_flush(self, style, tables, reset_sequences=reset_sequences, allow_cascade=True)

    operations.DatabaseOperations.sql_flush = sql_flush_cascade


_flush_with_cascade()


@pytest.fixture
def api_client():
    """Unauthenticated DRF client; call force_authenticate() as needed."""
    from rest_framework.test import APIClient

    return APIClient()
