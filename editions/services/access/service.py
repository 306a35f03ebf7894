"""
EditionAccessService — store-side queries over edition_access.

Grants are created with insert-if-absent semantics (one row per user/edition),
promoted by the release engine and expired by the sweep.
"""
import logging
from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from editions.models.edition import Edition
from editions.models.edition_access import EditionAccess
from editions.models.enums import AccessStatus, PlanType, RELEASED_EDITION_STATUSES
from editions.schemas.access import AccessView, EditionSummary
from editions.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)


def is_edition_released(edition: Edition, now: datetime) -> bool:
    """Released = status ACTIVE/CLOSED, release date passed, or explicitly marked ready."""
    if edition.status in RELEASED_EDITION_STATUSES:
        return True
    if edition.ready_for_release:
        return True
    release_date = as_utc(edition.release_date)
    return release_date is not None and release_date <= now


def to_access_view(access: EditionAccess, edition: Edition) -> AccessView:
    return AccessView(
        id=access.id,
        user_id=access.user_id,
        edition_id=access.edition_id,
        status=access.status,
        access_type=access.access_type,
        unlock_at=as_utc(access.unlock_at),
        unlocked_at=as_utc(access.unlocked_at),
        granted_at=as_utc(access.granted_at),
        expires_at=as_utc(access.expires_at),
        subscription_id=access.subscription_id,
        edition=EditionSummary(
            id=edition.id,
            number=edition.number,
            code=edition.code,
            title=edition.title,
            status=edition.status,
            release_date=as_utc(edition.release_date),
            released_at=as_utc(edition.released_at),
        ),
    )


class EditionAccessService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str, edition_id: str) -> EditionAccess | None:
        return (
            self.db.query(EditionAccess)
            .filter(EditionAccess.user_id == user_id, EditionAccess.edition_id == edition_id)
            .one_or_none()
        )

    def list_active_access(
        self,
        user_ids: list[str],
        now: datetime | None = None,
    ) -> dict[str, list[AccessView]]:
        """
        Full current ACTIVE, non-expired, released access for each user, ordered by edition number.
        Users with nothing to show map to an empty list.
        """
        now = now or utcnow()
        result: dict[str, list[AccessView]] = {user_id: [] for user_id in user_ids}
        if not user_ids:
            return result

        rows = self.db.execute(
            select(EditionAccess, Edition)
            .join(Edition, Edition.id == EditionAccess.edition_id)
            .where(
                EditionAccess.user_id.in_(user_ids),
                EditionAccess.status == AccessStatus.ACTIVE.value,
                or_(EditionAccess.expires_at.is_(None), EditionAccess.expires_at > now),
            )
            .order_by(EditionAccess.user_id, Edition.number.asc())
        ).all()

        for access, edition in rows:
            if is_edition_released(edition, now):
                result[access.user_id].append(to_access_view(access, edition))
        return result

    def list_user_access(self, user_id: str, now: datetime | None = None) -> list[AccessView]:
        return self.list_active_access([user_id], now)[user_id]

    def digital_user_ids(self, user_ids: list[str]) -> set[str]:
        """Users holding at least one grant whose tier includes digital access."""
        if not user_ids:
            return set()
        rows = self.db.execute(
            select(EditionAccess.user_id)
            .where(
                EditionAccess.user_id.in_(user_ids),
                EditionAccess.access_type.in_([PlanType.DIGITAL.value, PlanType.FULL.value]),
            )
            .distinct()
        ).scalars()
        return set(rows)

    def next_unseen_edition(self, user_id: str) -> Edition | None:
        """Earliest edition (number >= 1) the user has no access row for."""
        granted = select(EditionAccess.edition_id).where(EditionAccess.user_id == user_id)
        return (
            self.db.query(Edition)
            .filter(Edition.number >= 1, Edition.id.notin_(granted))
            .order_by(Edition.number.asc())
            .first()
        )

    def upsert_access(
        self,
        user_id: str,
        edition: Edition,
        access_type: PlanType,
        expires_at: datetime | None,
        subscription_id: str | None = None,
    ) -> tuple[EditionAccess, bool]:
        """
        Insert-if-absent for (user_id, edition). Returns (row, created).

        New rows are SCHEDULED; if the edition has already been released the grant is ACTIVE
        immediately, since the release engine will not visit that edition again.

        The edition row is re-read FOR UPDATE first. release_edition updates that row before it
        promotes SCHEDULED grants, so the two serialize: either the release sees this grant
        committed, or this grant sees the edition already released.
        """
        self.db.refresh(edition, with_for_update=True)
        existing = self.get(user_id, edition.id)
        if existing is not None:
            logger.info(
                "edition_access_exists",
                extra={"user_id": user_id, "edition_id": edition.id, "status": existing.status},
            )
            return existing, False

        now = utcnow()
        released = edition.status in RELEASED_EDITION_STATUSES
        access = EditionAccess(
            user_id=user_id,
            edition_id=edition.id,
            access_type=PlanType(access_type).value,
            status=AccessStatus.ACTIVE.value if released else AccessStatus.SCHEDULED.value,
            unlock_at=as_utc(edition.release_date) or now,
            unlocked_at=now if released else None,
            granted_at=now,
            expires_at=expires_at,
            subscription_id=subscription_id,
        )
        # A concurrent insert of the same pair raises IntegrityError on flush; the caller's
        # transaction rolls back and the retried job finds the existing row above.
        self.db.add(access)
        self.db.flush()

        logger.info(
            "edition_access_granted",
            extra={"user_id": user_id, "edition_id": edition.id, "status": access.status},
        )
        return access, True

    def expire_lapsed_access(self, now: datetime | None = None) -> list[str]:
        """ACTIVE -> EXPIRED for grants past expires_at. Returns affected user ids (deduplicated)."""
        now = now or utcnow()
        rows = self.db.execute(
            update(EditionAccess)
            .where(
                EditionAccess.status == AccessStatus.ACTIVE.value,
                EditionAccess.expires_at.is_not(None),
                EditionAccess.expires_at <= now,
            )
            .values(status=AccessStatus.EXPIRED.value)
            .returning(EditionAccess.user_id)
            .execution_options(synchronize_session=False)
        ).scalars().all()
        return list(dict.fromkeys(rows))
