"""
SubscriptionSettlement — a paid subscription invoice unlocks the subscriber's next edition.
"""
import logging

from sqlalchemy.orm import Session

from editions.core.config import settings
from editions.core.errors import DomainInvariantError
from editions.models.enums import (
    OrderStatus,
    OrderType,
    PaymentStatus,
    PlanType,
    SubscriptionStatus,
    UserStatus,
)
from editions.models.order import Order, Payment, Shipment
from editions.models.subscription import Subscription, SubscriptionPlan
from editions.models.user import User
from editions.schemas.payments import SubscriptionRenewal, SubscriptionStarted
from editions.services.access.service import EditionAccessService
from editions.utils.time import add_months, add_years, from_unix, utcnow

logger = logging.getLogger(__name__)


class SubscriptionSettlement:
    def __init__(self, db: Session):
        self.db = db
        self.access = EditionAccessService(db)

    def _load(self, subscription_id: str, plan_id: str) -> tuple[Subscription, SubscriptionPlan, User]:
        subscription = self.db.get(Subscription, subscription_id)
        if subscription is None:
            raise DomainInvariantError(f"Subscription {subscription_id} not found")
        plan = self.db.get(SubscriptionPlan, plan_id)
        if plan is None:
            raise DomainInvariantError(f"Subscription plan {plan_id} not found")
        user = self.db.get(User, subscription.user_id)
        if user is None:
            raise DomainInvariantError(f"User {subscription.user_id} not found")
        return subscription, plan, user

    def renew(self, dto: SubscriptionRenewal) -> dict | None:
        """
        Settle one paid period. Returns email content, or None when this invoice was already
        settled (provider sends more than one event per invoice).
        """
        payment_ref = dto.invoice_id or dto.event_id
        if self.db.query(Payment.id).filter(Payment.provider_payment_id == payment_ref).first():
            logger.info(
                "subscription_invoice_already_settled",
                extra={"event_id": dto.event_id, "status": payment_ref},
            )
            return None

        subscription, plan, user = self._load(dto.subscription_id, dto.subscription_plan_id)
        plan_type = PlanType(plan.type)

        period_start = from_unix(dto.current_period_start) or utcnow()
        period_end = from_unix(dto.current_period_end) or add_months(period_start, 1)

        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.plan_id = plan.id
        if dto.provider_subscription_id:
            subscription.provider_subscription_id = dto.provider_subscription_id
        subscription.current_period_start = period_start
        subscription.current_period_end = period_end

        order = Order(
            user_id=user.id,
            subscription_id=subscription.id,
            type=OrderType.SUBSCRIPTION_RENEWAL.value,
            status=OrderStatus.PAID.value,
            total_cents=plan.price_cents,
            currency=plan.currency,
            provider_reference=payment_ref,
        )
        self.db.add(order)
        self.db.flush()
        self.db.add(
            Payment(
                user_id=user.id,
                order_id=order.id,
                provider_payment_id=payment_ref,
                status=PaymentStatus.SUCCEEDED.value,
                amount_cents=plan.price_cents,
                currency=plan.currency,
            )
        )

        next_edition = self.access.next_unseen_edition(user.id)
        if next_edition is None:
            logger.info("subscription_all_editions_unlocked", extra={"user_id": user.id})
        else:
            expires_at = None if plan_type == PlanType.PHYSICAL else add_years(utcnow(), settings.digital_access_years)
            self.access.upsert_access(
                user.id,
                next_edition,
                plan_type,
                expires_at=expires_at,
                subscription_id=subscription.id,
            )
            if dto.address_id and plan_type.includes_physical:
                self.db.add(Shipment(user_id=user.id, edition_id=next_edition.id, address_id=dto.address_id))
                logger.info(
                    "subscription_shipment_created",
                    extra={"user_id": user.id, "edition_id": next_edition.id},
                )

        if dto.is_new_subscription and user.status != UserStatus.ACTIVE.value:
            user.status = UserStatus.ACTIVE.value
        self.db.flush()

        logger.info(
            "subscription_renewed",
            extra={
                "user_id": user.id,
                "event_id": dto.event_id,
                "edition_number": next_edition.number if next_edition else None,
            },
        )
        return {
            "user_id": user.id,
            "email": user.email,
            "name": user.name or "",
            "plan": plan_type.value,
            "nextEdition": next_edition.number if next_edition else "",
            "renewedAt": utcnow().isoformat(),
            "periodStart": period_start.isoformat(),
            "periodEnd": period_end.isoformat(),
            "nextPeriodEnd": period_end.isoformat(),
        }

    def acknowledge_started(self, dto: SubscriptionStarted) -> dict:
        """Subscription created at the provider; nothing to settle until the first invoice."""
        plan = self.db.get(SubscriptionPlan, dto.subscription_plan_id)
        if plan is None:
            raise DomainInvariantError(f"Subscription plan {dto.subscription_plan_id} not found")
        user = self.db.get(User, dto.user_id)
        if user is None:
            raise DomainInvariantError(f"User {dto.user_id} not found")
        now = utcnow()
        return {
            "plan": plan.type,
            "email": user.email,
            "name": user.name or "",
            "periodStart": now.isoformat(),
            "periodEnd": add_months(now, 1).isoformat(),
        }
