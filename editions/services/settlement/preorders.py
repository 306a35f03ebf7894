"""
PreorderSettlement — completion of a paid one-off preorder.

Runs inside the caller's transaction: order + payment + preorder PAID + digital grant +
shipment either all land or none do.
"""
import logging

from sqlalchemy.orm import Session

from editions.core.config import settings
from editions.core.errors import DomainInvariantError, PreorderCompletionError
from editions.models.edition import Edition
from editions.models.enums import (
    OrderStatus,
    OrderType,
    PaymentStatus,
    PlanType,
    UserStatus,
)
from editions.models.order import Order, Payment, Preorder, Shipment
from editions.models.user import User
from editions.schemas.payments import PreorderCompletion
from editions.services.access.service import EditionAccessService
from editions.utils.time import add_years, utcnow

logger = logging.getLogger(__name__)


def format_amount(amount_cents: int, currency: str = "GBP") -> str:
    symbol = "£" if currency.upper() == "GBP" else f"{currency.upper()} "
    return f"{symbol}{amount_cents / 100:,.2f}"


class PreorderSettlement:
    def __init__(self, db: Session):
        self.db = db
        self.access = EditionAccessService(db)

    def complete(self, dto: PreorderCompletion) -> dict:
        """
        Settle a paid preorder. Returns the content for the confirmation emails.

        Raises PreorderCompletionError(PREORDER_NOT_FOUND | ALREADY_PAID) for stale events,
        DomainInvariantError for anything that needs operator attention.
        """
        preorder = (
            self.db.query(Preorder)
            .filter(Preorder.payment_link_id == dto.payment_link_id)
            .with_for_update()
            .one_or_none()
        )
        if preorder is None:
            raise PreorderCompletionError(
                PreorderCompletionError.PREORDER_NOT_FOUND,
                f"No preorder for payment_link_id={dto.payment_link_id}",
            )
        if preorder.status == OrderStatus.PAID.value:
            raise PreorderCompletionError(
                PreorderCompletionError.ALREADY_PAID,
                f"Preorder {preorder.id} is already paid",
            )

        user = self.db.get(User, dto.user_id)
        if user is None:
            raise DomainInvariantError(f"User {dto.user_id} not found")
        edition = self.db.get(Edition, dto.edition_id)
        if edition is None:
            raise DomainInvariantError(f"Edition {dto.edition_id} not found")

        order = Order(
            user_id=dto.user_id,
            edition_id=dto.edition_id,
            preorder_id=preorder.id,
            type=OrderType.PREORDER.value,
            status=OrderStatus.PAID.value,
            total_cents=dto.amount,
            currency=dto.currency,
            provider_reference=dto.event_id,
        )
        self.db.add(order)
        self.db.flush()
        self.db.add(
            Payment(
                user_id=dto.user_id,
                order_id=order.id,
                provider_payment_id=dto.event_id,
                status=PaymentStatus.SUCCEEDED.value,
                amount_cents=dto.amount,
                currency=dto.currency,
            )
        )
        preorder.status = OrderStatus.PAID.value

        plan = PlanType(dto.plan)
        if plan.includes_digital:
            self.access.upsert_access(
                dto.user_id,
                edition,
                plan,
                expires_at=add_years(utcnow(), settings.digital_access_years),
            )

        if plan.includes_physical:
            if not dto.address_id:
                raise DomainInvariantError("Address is not defined")
            self.db.add(Shipment(user_id=dto.user_id, edition_id=edition.id, address_id=dto.address_id))

        user.status = UserStatus.ACTIVE.value
        self.db.flush()

        logger.info(
            "preorder_completed",
            extra={"user_id": dto.user_id, "event_id": dto.event_id, "edition_id": edition.id, "status": plan.value},
        )
        return {
            "email": user.email,
            "name": user.name or "",
            "editionCode": edition.code,
            "plan": plan.value,
            "amount": format_amount(dto.amount, dto.currency),
        }

    def mark_pending_retry(self, user_id: str) -> None:
        """Separate unit of work: the settlement transaction has already rolled back."""
        updated = (
            self.db.query(User)
            .filter(User.id == user_id)
            .update({User.status: UserStatus.PENDING_RETRY.value}, synchronize_session=False)
        )
        self.db.commit()
        logger.warning("preorder_user_pending_retry", extra={"user_id": user_id, "status": str(updated)})
