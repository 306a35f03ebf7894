"""
Test doubles and row factories shared across test modules.
"""
import hashlib
import hmac
import time
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import redis

from editions.models.edition import Edition
from editions.models.edition_access import EditionAccess
from editions.models.enums import AccessStatus, EditionStatus, PlanType
from editions.models.order import Preorder
from editions.models.subscription import Subscription, SubscriptionPlan
from editions.models.user import User
from editions.schemas.jobs import JobHandle

TWO_YEARS = object()


class FakeRedis:
    """get / set(nx, ex) / setex / delete over a dict; `fail` makes every call raise."""

    def __init__(self):
        self.store: dict[str, object] = {}
        self.ttls: dict[str, int] = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("redis down")

    def get(self, key):
        self._check()
        return self.store.get(key)

    def set(self, key, value, nx=False, ex=None):
        self._check()
        if nx and key in self.store:
            return None
        self.store[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    def setex(self, key, ttl, value):
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        self._check()
        deleted = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                deleted += 1
        return deleted


class FakeQueue:
    """Records jobs instead of talking to a broker. Honours dedup_key like JobQueue."""

    def __init__(self):
        self.jobs: list[dict] = []
        self._seen: set[str] = set()

    def enqueue(self, queue_name, job_name, payload, options=None):
        if options is not None and options.dedup_key:
            claim = f"{queue_name}:{job_name}:{options.dedup_key}"
            if claim in self._seen:
                return None
            self._seen.add(claim)
        self.jobs.append({"queue": queue_name, "job_name": job_name, "payload": payload, "options": options})
        return JobHandle(id=str(uuid4()), queue=queue_name, job_name=job_name)

    def add(self, job_name, payload, options=None):
        queue_name = {"payment": "payments", "email": "emails", "edition": "editions"}[job_name.split(".")[0]]
        return self.enqueue(queue_name, job_name, payload, options)

    def named(self, job_name):
        return [job for job in self.jobs if job["job_name"] == job_name]


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_user(db, email=None, name="Reader", **kwargs) -> User:
    user = User(email=email or f"{uuid4().hex[:8]}@example.com", name=name, **kwargs)
    db.add(user)
    db.commit()
    return user


def make_edition(db, number, status=EditionStatus.PENDING, release_date=None, ready=False) -> Edition:
    edition = Edition(
        number=number,
        code=f"EDI{number:02d}",
        title=f"Edition {number}",
        status=EditionStatus(status).value,
        release_date=release_date,
        ready_for_release=ready,
    )
    db.add(edition)
    db.commit()
    return edition


def make_access(
    db,
    user,
    edition,
    access_type=PlanType.DIGITAL,
    status=AccessStatus.SCHEDULED,
    expires_at=TWO_YEARS,
) -> EditionAccess:
    if expires_at is TWO_YEARS:
        expires_at = datetime.now(timezone.utc) + timedelta(days=730)
    access = EditionAccess(
        user_id=user.id,
        edition_id=edition.id,
        access_type=PlanType(access_type).value,
        status=AccessStatus(status).value,
        unlock_at=edition.release_date,
        expires_at=expires_at,
    )
    db.add(access)
    db.commit()
    return access


def make_plan(db, plan_type=PlanType.DIGITAL, price_cents=1500) -> SubscriptionPlan:
    plan = SubscriptionPlan(type=PlanType(plan_type).value, price_cents=price_cents, currency="GBP")
    db.add(plan)
    db.commit()
    return plan


def make_subscription(db, user, plan) -> Subscription:
    subscription = Subscription(user_id=user.id, plan_id=plan.id)
    db.add(subscription)
    db.commit()
    return subscription


def make_preorder(db, user, edition, choice=PlanType.DIGITAL, payment_link_id="plink_1", total_cents=2500) -> Preorder:
    preorder = Preorder(
        user_id=user.id,
        edition_id=edition.id,
        choice=PlanType(choice).value,
        payment_link_id=payment_link_id,
        total_cents=total_cents,
    )
    db.add(preorder)
    db.commit()
    return preorder


WEBHOOK_SECRET = "whsec_test"


def sign_stripe_payload(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    """Stripe-Signature header value for `payload`, as the provider would send it."""
    timestamp = int(time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def checkout_event(event_id="evt_1", **metadata) -> dict:
    md = {"userId": "u1", "type": "PREORDER", "plan": "FULL", "editionId": "ed3", "addressId": "addr_1"}
    md.update(metadata)
    return {
        "id": event_id,
        "object": "event",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "object": "checkout.session",
                "payment_status": "paid",
                "amount_total": 4500,
                "currency": "gbp",
                "payment_link": "plink_1",
                "metadata": md,
            }
        },
    }
