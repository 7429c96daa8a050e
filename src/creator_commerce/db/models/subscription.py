"""
Customer subscription models
"""
import enum

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ..base import Base, JSONType, TimestampMixin, new_id, utcnow
from ..tenancy import TenantScopedMixin


class SubscriptionStatus(str, enum.Enum):
    """Subscription status enum"""
    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class SubscriptionFrequency(str, enum.Enum):
    """Billing frequency enum"""
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    BIMONTHLY = "bimonthly"
    QUARTERLY = "quarterly"
    SEMIANNUALLY = "semiannually"
    ANNUALLY = "annually"


class SubscriptionActivityType(str, enum.Enum):
    CREATED = "created"
    PAUSED = "paused"
    RESUMED = "resumed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    RESCHEDULED = "rescheduled"
    FREQUENCY_CHANGED = "frequency_changed"
    QUANTITY_CHANGED = "quantity_changed"


class Subscription(TenantScopedMixin, TimestampMixin, Base):
    """Recurring product subscription held by a storefront customer"""
    __tablename__ = "customer_subscriptions"

    id = Column(String(36), primary_key=True, default=new_id)

    # Customer
    customer_id = Column(String(100), nullable=False, index=True)
    customer_email = Column(String(255), nullable=False)
    customer_name = Column(String(200), nullable=True)

    # Product
    product_id = Column(String(100), nullable=False, index=True)
    product_title = Column(String(255), nullable=False)
    variant_title = Column(String(255), nullable=True)

    # Pricing (minor units)
    quantity = Column(Integer, nullable=False, default=1)
    price_cents = Column(Integer, nullable=False, default=0)
    discount_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")

    # Schedule
    frequency = Column(String(20), nullable=False, default=SubscriptionFrequency.MONTHLY.value)
    frequency_interval = Column(Integer, nullable=False, default=1)
    next_billing_date = Column(Date, nullable=True, index=True)
    last_billing_date = Column(Date, nullable=True)

    # Status
    status = Column(String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value, index=True)
    pause_reason = Column(Text, nullable=True)
    cancel_reason = Column(Text, nullable=True)
    paused_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    auto_resume_at = Column(DateTime, nullable=True, index=True)

    # Counters
    total_orders = Column(Integer, nullable=False, default=0)
    total_spent_cents = Column(Integer, nullable=False, default=0)
    skipped_orders = Column(Integer, nullable=False, default=0)

    # "metadata" is reserved on declarative classes
    extra_metadata = Column("metadata", JSONType, nullable=True)

    activities = relationship(
        "SubscriptionActivity",
        back_populates="subscription",
        order_by="SubscriptionActivity.created_at",
        cascade="all, delete-orphan",
    )


class SubscriptionActivity(TenantScopedMixin, Base):
    """Timeline entry for a subscription"""
    __tablename__ = "subscription_activities"

    id = Column(String(36), primary_key=True, default=new_id)
    subscription_id = Column(String(36), ForeignKey("customer_subscriptions.id"), nullable=False, index=True)
    activity_type = Column(String(30), nullable=False, index=True)
    description = Column(Text, nullable=True)
    actor_type = Column(String(20), nullable=False, default="system")
    actor_id = Column(String(100), nullable=True)
    extra_metadata = Column("metadata", JSONType, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    subscription = relationship("Subscription", back_populates="activities")


class SubscriptionSettings(TenantScopedMixin, TimestampMixin, Base):
    """Per-tenant subscription policy"""
    __tablename__ = "subscription_settings"

    id = Column(String(36), primary_key=True, default=new_id)
    max_pause_days = Column(Integer, nullable=False, default=90)
    max_skips_per_year = Column(Integer, nullable=False, default=4)
    allow_customer_cancel = Column(Boolean, nullable=False, default=True)
    allow_customer_pause = Column(Boolean, nullable=False, default=True)
    allow_skip_orders = Column(Boolean, nullable=False, default=True)
    allow_frequency_changes = Column(Boolean, nullable=False, default=True)
    allow_quantity_changes = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("tenant_slug", name="uq_subscription_settings_tenant"),
    )
