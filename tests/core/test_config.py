"""Tests for Settings validation and derived values."""
import pytest
from pydantic import ValidationError

from editions.core.config import Settings, edition_link

REQUIRED = {
    "database_url": "sqlite://",
    "redis_url": "redis://localhost:6379/0",
    "celery_broker_url": "memory://",
    "celery_result_backend": "cache+memory://",
}


def test_defaults():
    s = Settings(**REQUIRED)

    assert s.access_cache_ttl == 86400
    assert s.access_cache_batch_size == 100
    assert s.notification_batch_size == 100
    assert s.emails_backoff_seconds == 60
    assert s.edition_release_timezone == "Europe/London"


def test_release_cron_fields():
    s = Settings(**REQUIRED, edition_release_cron="0 9 16 * *")

    assert s.release_cron_fields == {
        "minute": "0",
        "hour": "9",
        "day_of_month": "16",
        "month_of_year": "*",
        "day_of_week": "*",
    }


def test_bad_cron_is_rejected():
    with pytest.raises(ValidationError):
        Settings(**REQUIRED, edition_release_cron="0 9 16")


def test_zero_batch_size_is_rejected():
    with pytest.raises(ValidationError):
        Settings(**REQUIRED, access_cache_batch_size=0)


def test_edition_link_uses_frontend_url():
    assert edition_link("EDI03").endswith("/editions/EDI03")
