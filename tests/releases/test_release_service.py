"""Tests for EditionReleaseService — transition, unlock completeness, idempotence, fan-out."""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from editions.core.errors import EditionNotFoundError
from editions.models.edition import Edition
from editions.models.edition_access import EditionAccess
from editions.models.enums import AccessStatus, EditionStatus, PlanType
from editions.schemas.access import access_list_adapter
from editions.services.access.cache import CACHE_KEY_PREFIX, EntitlementCache
from editions.services.notifications.service import RELEASE_EMAIL_JOB, NotificationFanout
from editions.services.releases.service import EditionReleaseService
from tests.factories import make_access, make_edition, make_user


@pytest.fixture
def cache(fake_redis):
    return EntitlementCache(client=fake_redis, ttl_seconds=86400, batch_size=100, concurrency=4)


@pytest.fixture
def service(db, cache, fake_queue):
    return EditionReleaseService(db, cache, NotificationFanout(fake_queue))


def _statuses(db, edition):
    db.expire_all()
    return {a.user_id: a.status for a in db.query(EditionAccess).filter(EditionAccess.edition_id == edition.id)}


class TestReleaseEdition:
    def test_preorder_open_edition_unlocks_every_scheduled_grant(self, db, service, fake_redis, fake_queue):
        edition = make_edition(db, 3, status=EditionStatus.PREORDER_OPEN)
        user_a = make_user(db, email="a@example.com", name="A")
        user_b = make_user(db, email="b@example.com", name="B")
        make_access(db, user_a, edition, PlanType.DIGITAL)
        make_access(db, user_b, edition, PlanType.PHYSICAL, expires_at=None)

        result = service.release_edition(3)

        assert result.noop is False
        assert result.unlocked_count == 2
        assert {r.user_id for r in result.affected_users} == {user_a.id, user_b.id}

        db.expire_all()
        stored = db.query(Edition).filter(Edition.number == 3).one()
        assert stored.status == EditionStatus.ACTIVE.value
        assert stored.released_at is not None
        assert set(_statuses(db, edition).values()) == {AccessStatus.ACTIVE.value}

        cached = access_list_adapter.validate_json(fake_redis.store[f"{CACHE_KEY_PREFIX}{user_a.id}"])
        assert [item.edition.number for item in cached] == [3]
        assert f"{CACHE_KEY_PREFIX}{user_b.id}" not in fake_redis.store
        assert fake_redis.ttls[f"{CACHE_KEY_PREFIX}{user_a.id}"] == 86400

        jobs = fake_queue.named(RELEASE_EMAIL_JOB)
        assert len(jobs) == 1
        assert jobs[0]["queue"] == "emails"
        assert {r["user_id"] for r in jobs[0]["payload"]["recipients"]} == {user_a.id, user_b.id}

    def test_closed_edition_is_a_noop(self, db, service, fake_redis, fake_queue):
        edition = make_edition(db, 3, status=EditionStatus.CLOSED)
        user = make_user(db)
        make_access(db, user, edition, PlanType.DIGITAL)

        result = service.release_edition(3)

        assert result.noop is True
        assert result.unlocked_count == 0
        assert _statuses(db, edition) == {user.id: AccessStatus.SCHEDULED.value}
        assert fake_redis.store == {}
        assert fake_queue.jobs == []

    def test_second_release_is_a_noop(self, db, service, fake_queue):
        edition = make_edition(db, 1)
        make_access(db, make_user(db), edition)

        first = service.release_edition(1)
        second = service.release_edition(1)

        assert first.unlocked_count == 1
        assert second.noop is True
        assert second.unlocked_count == 0
        assert len(fake_queue.named(RELEASE_EMAIL_JOB)) == 1

    def test_release_without_grants_succeeds_with_no_fanout(self, db, service, fake_queue):
        make_edition(db, 2)

        result = service.release_edition(2)

        assert result.noop is False
        assert result.unlocked_count == 0
        assert result.affected_users == []
        assert fake_queue.jobs == []

    def test_unknown_edition_raises(self, service):
        with pytest.raises(EditionNotFoundError):
            service.release_edition(99)

    def test_other_editions_grants_are_untouched(self, db, service):
        target = make_edition(db, 1)
        other = make_edition(db, 2)
        user = make_user(db)
        make_access(db, user, target)
        make_access(db, user, other)

        service.release_edition(1)

        assert _statuses(db, other) == {user.id: AccessStatus.SCHEDULED.value}

    def test_cache_lists_include_previously_released_editions(self, db, service, fake_redis):
        user = make_user(db)
        old = make_edition(db, 1, status=EditionStatus.ACTIVE)
        new = make_edition(db, 2)
        make_access(db, user, old, status=AccessStatus.ACTIVE)
        make_access(db, user, new)

        service.release_edition(2)

        cached = access_list_adapter.validate_json(fake_redis.store[f"{CACHE_KEY_PREFIX}{user.id}"])
        assert [item.edition.number for item in cached] == [1, 2]

    def test_cache_failure_does_not_undo_release(self, db, fake_queue):
        cache = MagicMock()
        cache.refresh_users.side_effect = RuntimeError("cache exploded")
        service = EditionReleaseService(db, cache, NotificationFanout(fake_queue))
        edition = make_edition(db, 1)
        make_access(db, make_user(db), edition)

        result = service.release_edition(1)

        assert result.unlocked_count == 1
        assert len(fake_queue.named(RELEASE_EMAIL_JOB)) == 1
        db.expire_all()
        assert db.get(Edition, edition.id).status == EditionStatus.ACTIVE.value


class TestReleaseNextPendingEdition:
    def test_picks_earliest_due_ready_edition(self, db, service):
        now = datetime.now(timezone.utc)
        make_edition(db, 5, release_date=now - timedelta(days=1), ready=True)
        make_edition(db, 4, release_date=now - timedelta(days=3), ready=True)
        make_edition(db, 6, release_date=now + timedelta(days=30), ready=True)

        result = service.release_next_pending_edition()

        assert result.edition.number == 4

    def test_not_ready_edition_is_skipped(self, db, service):
        make_edition(db, 4, release_date=datetime.now(timezone.utc) - timedelta(days=1), ready=False)

        assert service.release_next_pending_edition() is None

    def test_nothing_due_returns_none(self, db, service):
        make_edition(db, 1, status=EditionStatus.ACTIVE, release_date=datetime.now(timezone.utc) - timedelta(days=30))

        assert service.release_next_pending_edition() is None


class TestExpireLapsedAccess:
    def test_lapsed_grants_expire_and_cache_is_dropped(self, db, service, fake_redis):
        user = make_user(db)
        keeper = make_user(db)
        edition = make_edition(db, 1, status=EditionStatus.ACTIVE)
        make_access(db, user, edition, status=AccessStatus.ACTIVE, expires_at=datetime.now(timezone.utc) - timedelta(days=1))
        make_access(db, keeper, edition, status=AccessStatus.ACTIVE)
        fake_redis.store[f"{CACHE_KEY_PREFIX}{user.id}"] = "[]"
        fake_redis.store[f"{CACHE_KEY_PREFIX}{keeper.id}"] = "[]"

        expired = service.expire_lapsed_access()

        assert expired == 1
        assert _statuses(db, edition) == {user.id: AccessStatus.EXPIRED.value, keeper.id: AccessStatus.ACTIVE.value}
        assert f"{CACHE_KEY_PREFIX}{user.id}" not in fake_redis.store
        assert f"{CACHE_KEY_PREFIX}{keeper.id}" in fake_redis.store

    def test_physical_grants_never_expire(self, db, service):
        user = make_user(db)
        edition = make_edition(db, 1, status=EditionStatus.ACTIVE)
        make_access(db, user, edition, PlanType.PHYSICAL, status=AccessStatus.ACTIVE, expires_at=None)

        assert service.expire_lapsed_access() == 0
