"""
EditionReleaseService — flip an edition to ACTIVE and unlock every scheduled grant for it.

One store transaction does the edition transition and the grant promotion; both are
conditional UPDATEs, so concurrent or repeated triggers for the same edition unlock
each grant at most once. Cache write-through and release emails run after commit and
are best-effort: the store is already correct if they fail.
"""
import logging
import time
from dataclasses import dataclass, field

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from editions.core.errors import EditionNotFoundError
from editions.db.session import transaction
from editions.models.edition import Edition
from editions.models.edition_access import EditionAccess
from editions.models.enums import (
    AccessStatus,
    EditionStatus,
    RELEASABLE_EDITION_STATUSES,
    RELEASED_EDITION_STATUSES,
)
from editions.models.user import User
from editions.services.access.cache import EntitlementCache
from editions.services.access.service import EditionAccessService
from editions.services.email.types import EmailType
from editions.services.notifications.service import NotificationFanout, Recipient
from editions.utils.metrics import (
    edition_access_expired_total,
    edition_access_unlocked_total,
    edition_release_noop_total,
    editions_released_total,
    release_duration_seconds,
)
from editions.utils.time import utcnow

logger = logging.getLogger(__name__)


@dataclass
class ReleaseResult:
    edition: Edition | None
    unlocked_count: int = 0
    affected_users: list[Recipient] = field(default_factory=list)
    noop: bool = False


class EditionReleaseService:
    def __init__(self, db: Session, cache: EntitlementCache, fanout: NotificationFanout):
        self.db = db
        self.cache = cache
        self.fanout = fanout
        self.access = EditionAccessService(db)

    def release_edition(self, edition_number: int) -> ReleaseResult:
        """
        Release edition `edition_number`.

        Returns noop=True when the edition was already ACTIVE/CLOSED (nothing touched).
        Raises EditionNotFoundError for an unknown number; store errors roll back and propagate.
        """
        start = time.time()
        with transaction(self.db):
            now = utcnow()
            moved = self.db.execute(
                update(Edition)
                .where(
                    Edition.number == edition_number,
                    Edition.status.notin_(RELEASED_EDITION_STATUSES),
                )
                .values(status=EditionStatus.ACTIVE.value, released_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            edition = self.db.query(Edition).filter(Edition.number == edition_number).one_or_none()
            if edition is None:
                raise EditionNotFoundError(edition_number)
            self.db.refresh(edition)

            if moved.rowcount == 0:
                edition_release_noop_total.inc()
                logger.info(
                    "edition_release_noop",
                    extra={"edition_number": edition_number, "status": edition.status},
                )
                return ReleaseResult(edition=edition, noop=True)

            unlocked = self.db.execute(
                update(EditionAccess)
                .where(
                    EditionAccess.edition_id == edition.id,
                    EditionAccess.status == AccessStatus.SCHEDULED.value,
                )
                .values(status=AccessStatus.ACTIVE.value, unlocked_at=now)
                .returning(EditionAccess.user_id, EditionAccess.access_type)
                .execution_options(synchronize_session=False)
            ).all()

            if not unlocked:
                editions_released_total.inc()
                logger.info(
                    "edition_released",
                    extra={"edition_number": edition_number, "edition_id": edition.id, "unlocked_count": 0},
                )
                return ReleaseResult(edition=edition)

            user_ids = list(dict.fromkeys(row.user_id for row in unlocked))
            users = self.db.execute(
                select(User.id, User.email, User.name).where(User.id.in_(user_ids))
            ).all()
            recipients = [Recipient(user_id=u.id, email=u.email, name=u.name) for u in users]

            digital_ids = self.access.digital_user_ids(user_ids)
            fresh_lists = self.access.list_active_access(
                [user_id for user_id in user_ids if user_id in digital_ids], now
            )

        editions_released_total.inc()
        edition_access_unlocked_total.inc(len(unlocked))
        logger.info(
            "edition_released",
            extra={
                "edition_number": edition_number,
                "edition_id": edition.id,
                "unlocked_count": len(unlocked),
                "affected_users": len(recipients),
            },
        )

        self._refresh_cache(edition_number, fresh_lists)
        self._notify(edition_number, recipients)
        release_duration_seconds.observe(time.time() - start)
        return ReleaseResult(
            edition=edition,
            unlocked_count=len(unlocked),
            affected_users=recipients,
        )

    def _refresh_cache(self, edition_number: int, fresh_lists: dict) -> None:
        try:
            written = self.cache.refresh_users(fresh_lists)
            logger.info(
                "edition_release_cache_refreshed",
                extra={"edition_number": edition_number, "affected_users": written},
            )
        except Exception as e:
            logger.exception("edition_release_cache_failed", extra={"edition_number": edition_number, "error": str(e)})

    def _notify(self, edition_number: int, recipients: list[Recipient]) -> None:
        try:
            self.fanout.send_edition_release_emails(edition_number, recipients, EmailType.NEW_EDITION_RELEASED)
        except Exception as e:
            logger.exception(
                "edition_release_notify_failed", extra={"edition_number": edition_number, "error": str(e)}
            )

    def release_next_pending_edition(self) -> ReleaseResult | None:
        """Timer entry point: release the earliest edition that is due and marked ready."""
        now = utcnow()
        edition = (
            self.db.query(Edition)
            .filter(
                Edition.ready_for_release.is_(True),
                Edition.release_date.is_not(None),
                Edition.release_date <= now,
                Edition.status.in_(RELEASABLE_EDITION_STATUSES),
            )
            .order_by(Edition.release_date.asc(), Edition.number.asc())
            .first()
        )
        if edition is None:
            logger.info("edition_release_nothing_due")
            return None
        return self.release_edition(edition.number)

    def expire_lapsed_access(self) -> int:
        """Sweep: ACTIVE grants past expires_at -> EXPIRED, drop affected users' cache entries."""
        with transaction(self.db):
            user_ids = self.access.expire_lapsed_access()
        if user_ids:
            edition_access_expired_total.inc(len(user_ids))
            self.cache.invalidate(user_ids)
        logger.info("edition_access_expired", extra={"affected_users": len(user_ids)})
        return len(user_ids)
