"""
Order / Payment / Preorder / Shipment — financial and fulfilment records written by settlement.
Payment.provider_payment_id is unique: a second settlement of the same charge fails on insert.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from editions.db.base import Base
from editions.models.enums import OrderStatus, ShipmentStatus


class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    edition_id = Column(String, ForeignKey("editions.id"), nullable=True)
    subscription_id = Column(String, nullable=True, index=True)
    preorder_id = Column(String, nullable=True)
    type = Column(String, nullable=False)    # OrderType
    status = Column(String, nullable=False, default=OrderStatus.PENDING.value)
    total_cents = Column(Integer, nullable=False)
    currency = Column(String, nullable=False, default="GBP")
    provider_reference = Column(String, nullable=True)  # event id / invoice id
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False)
    provider = Column(String, nullable=False, default="STRIPE")
    provider_payment_id = Column(String, unique=True, nullable=False)
    status = Column(String, nullable=False)  # PaymentStatus
    amount_cents = Column(Integer, nullable=False)
    currency = Column(String, nullable=False, default="GBP")
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class Preorder(Base):
    __tablename__ = "preorders"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    edition_id = Column(String, ForeignKey("editions.id"), nullable=False)
    choice = Column(String, nullable=False)  # PlanType
    status = Column(String, nullable=False, default=OrderStatus.PENDING.value)
    payment_link_id = Column(String, unique=True, nullable=True)
    total_cents = Column(Integer, nullable=False)
    currency = Column(String, nullable=False, default="GBP")
    failed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class Shipment(Base):
    __tablename__ = "shipments"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    edition_id = Column(String, ForeignKey("editions.id"), nullable=False)
    address_id = Column(String, nullable=False)
    status = Column(String, nullable=False, default=ShipmentStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
