"""
Subscription Service - customer subscriptions, billing schedule and self-service policy
"""
import logging
from datetime import date, datetime, time, timedelta
from fractions import Fraction
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..db import utcnow
from ..db.models import (
    Subscription,
    SubscriptionActivity,
    SubscriptionActivityType,
    SubscriptionSettings,
    SubscriptionStatus,
)
from ..exceptions import ForbiddenError, InvalidStateError, NotFoundError, ValidationFailedError
from .audit_log_service import SYSTEM_ACTOR, Actor, AuditAction, AuditLogService

logger = logging.getLogger(__name__)

FREQUENCIES_PATH = Path(__file__).parent.parent / "data" / "frequencies.yaml"

SORT_FIELDS = {
    "created_at": Subscription.created_at,
    "next_billing_date": Subscription.next_billing_date,
    "customer_email": Subscription.customer_email,
    "product_title": Subscription.product_title,
    "status": Subscription.status,
    "total_spent_cents": Subscription.total_spent_cents,
}

DEFAULT_SETTINGS = {
    "max_pause_days": 90,
    "max_skips_per_year": 4,
    "allow_customer_cancel": True,
    "allow_customer_pause": True,
    "allow_skip_orders": True,
    "allow_frequency_changes": True,
    "allow_quantity_changes": True,
}

MAX_RESCHEDULE_DAYS = 365
MAX_PAGE_SIZE = 200


@lru_cache(maxsize=1)
def load_frequency_table() -> Dict[str, Dict[str, Any]]:
    """Load the billing frequency table from YAML"""
    with open(FREQUENCIES_PATH, "r") as f:
        data = yaml.safe_load(f)
    return {
        name: {"days": int(entry["days"]), "monthly_factor": Fraction(str(entry["monthly_factor"]))}
        for name, entry in data.get("frequencies", {}).items()
    }


def _frequency_entry(frequency: str) -> Dict[str, Any]:
    table = load_frequency_table()
    if frequency not in table:
        raise ValidationFailedError(
            f"Invalid frequency '{frequency}'",
            details={"allowed": sorted(table)},
        )
    return table[frequency]


def _validate_interval(interval: int) -> None:
    if not isinstance(interval, int) or interval < 1:
        raise ValidationFailedError("Frequency interval must be at least 1")


def billing_interval_days(frequency: str, interval: int = 1) -> int:
    """Days between two orders"""
    _validate_interval(interval)
    return _frequency_entry(frequency)["days"] * interval


def next_billing_date(from_date: date, frequency: str, interval: int = 1) -> date:
    """Billing date one interval after from_date"""
    return from_date + timedelta(days=billing_interval_days(frequency, interval))


def monthly_recurring_cents(subscription: Subscription) -> Fraction:
    """Contribution of one subscription to MRR"""
    factor = _frequency_entry(subscription.frequency)["monthly_factor"]
    net = (subscription.price_cents - (subscription.discount_cents or 0)) * subscription.quantity
    return net * factor / (subscription.frequency_interval or 1)


class SubscriptionService:
    """Service for managing customer subscriptions"""

    def __init__(self, db: Session, today: Optional[date] = None):
        self.db = db
        self.audit = AuditLogService(db)
        self._today = today

    @property
    def today(self) -> date:
        return self._today or utcnow().date()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_subscription(self, subscription_id: str) -> Subscription:
        subscription = self.db.query(Subscription).filter(Subscription.id == subscription_id).first()
        if not subscription:
            raise NotFoundError(f"Subscription {subscription_id} not found")
        return subscription

    def list_subscriptions(
        self,
        status: Optional[str] = None,
        product_id: Optional[str] = None,
        frequency: Optional[str] = None,
        customer_id: Optional[str] = None,
        search: Optional[str] = None,
        created_from: Optional[date] = None,
        created_to: Optional[date] = None,
        sort_by: str = "created_at",
        sort_dir: str = "desc",
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Subscription], int]:
        """Filtered, sorted page of subscriptions plus the total match count"""
        query = self.db.query(Subscription)

        if status and status != "all":
            query = query.filter(Subscription.status == status)
        if product_id:
            query = query.filter(Subscription.product_id == product_id)
        if frequency:
            query = query.filter(Subscription.frequency == frequency)
        if customer_id:
            query = query.filter(Subscription.customer_id == customer_id)
        if search:
            term = f"%{search.strip().lower()}%"
            query = query.filter(
                or_(
                    func.lower(Subscription.customer_email).like(term),
                    func.lower(Subscription.customer_name).like(term),
                    func.lower(Subscription.product_title).like(term),
                )
            )
        if created_from:
            query = query.filter(Subscription.created_at >= datetime.combine(created_from, time.min))
        if created_to:
            query = query.filter(Subscription.created_at < datetime.combine(created_to + timedelta(days=1), time.min))

        total = query.count()

        column = SORT_FIELDS.get(sort_by, Subscription.created_at)
        order = column.asc() if sort_dir == "asc" else column.desc()
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        items = query.order_by(order, Subscription.id).offset(max(offset, 0)).limit(limit).all()
        return items, total

    def get_activity(self, subscription_id: str) -> List[SubscriptionActivity]:
        self.get_subscription(subscription_id)
        return (
            self.db.query(SubscriptionActivity)
            .filter(SubscriptionActivity.subscription_id == subscription_id)
            .order_by(SubscriptionActivity.created_at.desc())
            .all()
        )

    def status_counts(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in SubscriptionStatus}
        rows = (
            self.db.query(Subscription.status, func.count(Subscription.id))
            .group_by(Subscription.status)
            .all()
        )
        for status, count in rows:
            counts[status] = count
        counts["all"] = sum(counts.values())
        return counts

    def mrr_cents(self) -> int:
        """Monthly recurring revenue of active subscriptions, in minor units"""
        active = (
            self.db.query(Subscription)
            .filter(Subscription.status == SubscriptionStatus.ACTIVE.value)
            .all()
        )
        return round(sum((monthly_recurring_cents(s) for s in active), Fraction(0)))

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_settings(self) -> SubscriptionSettings:
        """Tenant settings, or unsaved defaults when none were stored"""
        settings = self.db.query(SubscriptionSettings).first()
        if settings is None:
            settings = SubscriptionSettings(**DEFAULT_SETTINGS)
        return settings

    def update_settings(self, updates: Dict[str, Any]) -> SubscriptionSettings:
        unknown = set(updates) - set(DEFAULT_SETTINGS)
        if unknown:
            raise ValidationFailedError(f"Unknown settings: {', '.join(sorted(unknown))}")
        if updates.get("max_pause_days") is not None and updates["max_pause_days"] < 1:
            raise ValidationFailedError("max_pause_days must be at least 1")
        if updates.get("max_skips_per_year") is not None and updates["max_skips_per_year"] < 0:
            raise ValidationFailedError("max_skips_per_year cannot be negative")

        settings = self.db.query(SubscriptionSettings).first()
        if settings is None:
            settings = SubscriptionSettings(**DEFAULT_SETTINGS)
            self.db.add(settings)
        for key, value in updates.items():
            if value is not None:
                setattr(settings, key, value)

        self.db.commit()
        self.db.refresh(settings)
        return settings

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _record(
        self,
        subscription: Subscription,
        activity_type: SubscriptionActivityType,
        audit_action: str,
        description: str,
        actor: Actor,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.db.add(
            SubscriptionActivity(
                subscription_id=subscription.id,
                activity_type=activity_type.value,
                description=description,
                actor_type=actor.type,
                actor_id=actor.id,
                extra_metadata=metadata or {},
            )
        )
        self.audit.log(
            entity_type="subscription",
            entity_id=subscription.id,
            action=audit_action,
            actor=actor,
            details=metadata,
        )

    def _commit(self, subscription: Subscription) -> Subscription:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(subscription)
        return subscription

    def create_subscription(
        self,
        customer_id: str,
        customer_email: str,
        product_id: str,
        product_title: str,
        price_cents: int,
        frequency: str = "monthly",
        frequency_interval: int = 1,
        quantity: int = 1,
        discount_cents: int = 0,
        currency: str = "USD",
        customer_name: Optional[str] = None,
        variant_title: Optional[str] = None,
        start_date: Optional[date] = None,
        metadata: Optional[Dict[str, Any]] = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Subscription:
        """Start an active subscription; the first renewal is one interval after start"""
        if quantity < 1:
            raise ValidationFailedError("Quantity must be at least 1")
        if price_cents < 0 or discount_cents < 0:
            raise ValidationFailedError("Amounts cannot be negative")
        start = start_date or self.today
        next_date = next_billing_date(start, frequency, frequency_interval)

        subscription = Subscription(
            customer_id=customer_id,
            customer_email=customer_email,
            customer_name=customer_name,
            product_id=product_id,
            product_title=product_title,
            variant_title=variant_title,
            quantity=quantity,
            price_cents=price_cents,
            discount_cents=discount_cents,
            currency=currency.upper(),
            frequency=frequency,
            frequency_interval=frequency_interval,
            status=SubscriptionStatus.ACTIVE.value,
            next_billing_date=next_date,
            extra_metadata=metadata or {},
        )
        self.db.add(subscription)
        self.db.flush()

        self._record(
            subscription,
            SubscriptionActivityType.CREATED,
            AuditAction.SUBSCRIPTION_CREATED,
            f"Subscribed to {product_title} ({frequency})",
            actor,
            {"next_billing_date": next_date.isoformat()},
        )
        self._commit(subscription)
        logger.info(f"Created subscription {subscription.id} for customer {customer_id}")
        return subscription

    def pause(
        self,
        subscription_id: str,
        reason: Optional[str] = None,
        resume_date: Optional[date] = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Subscription:
        """Pause an active subscription, optionally scheduling an automatic resume"""
        subscription = self.get_subscription(subscription_id)
        if subscription.status != SubscriptionStatus.ACTIVE.value:
            raise InvalidStateError("subscription", subscription.status, "pause")

        if resume_date is not None:
            max_pause_days = self.get_settings().max_pause_days
            if resume_date <= self.today:
                raise ValidationFailedError("Resume date must be in the future")
            if resume_date > self.today + timedelta(days=max_pause_days):
                raise ValidationFailedError(
                    f"Subscriptions can be paused for at most {max_pause_days} days",
                    details={"max_pause_days": max_pause_days},
                )

        subscription.status = SubscriptionStatus.PAUSED.value
        subscription.pause_reason = reason
        subscription.paused_at = utcnow()
        subscription.auto_resume_at = datetime.combine(resume_date, time.min) if resume_date else None

        self._record(
            subscription,
            SubscriptionActivityType.PAUSED,
            AuditAction.SUBSCRIPTION_PAUSED,
            "Subscription paused" + (f" until {resume_date.isoformat()}" if resume_date else ""),
            actor,
            {"reason": reason, "resume_date": resume_date.isoformat() if resume_date else None},
        )
        return self._commit(subscription)

    def _apply_resume(self, subscription: Subscription, actor: Actor, automatic: bool = False) -> None:
        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.pause_reason = None
        subscription.paused_at = None
        subscription.auto_resume_at = None
        if subscription.next_billing_date is None or subscription.next_billing_date <= self.today:
            subscription.next_billing_date = next_billing_date(
                self.today, subscription.frequency, subscription.frequency_interval
            )

        self._record(
            subscription,
            SubscriptionActivityType.RESUMED,
            AuditAction.SUBSCRIPTION_RESUMED,
            "Subscription resumed automatically" if automatic else "Subscription resumed",
            actor,
            {"next_billing_date": subscription.next_billing_date.isoformat()},
        )

    def resume(self, subscription_id: str, actor: Actor = SYSTEM_ACTOR) -> Subscription:
        subscription = self.get_subscription(subscription_id)
        if subscription.status != SubscriptionStatus.PAUSED.value:
            raise InvalidStateError("subscription", subscription.status, "resume")
        self._apply_resume(subscription, actor)
        return self._commit(subscription)

    def cancel(self, subscription_id: str, reason: Optional[str] = None, actor: Actor = SYSTEM_ACTOR) -> Subscription:
        subscription = self.get_subscription(subscription_id)
        if subscription.status in (SubscriptionStatus.CANCELLED.value, SubscriptionStatus.EXPIRED.value):
            raise InvalidStateError("subscription", subscription.status, "cancel")

        subscription.status = SubscriptionStatus.CANCELLED.value
        subscription.cancel_reason = reason
        subscription.cancelled_at = utcnow()
        subscription.auto_resume_at = None

        self._record(
            subscription,
            SubscriptionActivityType.CANCELLED,
            AuditAction.SUBSCRIPTION_CANCELLED,
            "Subscription cancelled",
            actor,
            {"reason": reason},
        )
        return self._commit(subscription)

    def _skips_in_last_year(self, subscription_id: str) -> int:
        since = utcnow() - timedelta(days=365)
        return (
            self.db.query(func.count(SubscriptionActivity.id))
            .filter(
                SubscriptionActivity.subscription_id == subscription_id,
                SubscriptionActivity.activity_type == SubscriptionActivityType.SKIPPED.value,
                SubscriptionActivity.created_at >= since,
            )
            .scalar()
        ) or 0

    def skip_next_order(self, subscription_id: str, actor: Actor = SYSTEM_ACTOR) -> Subscription:
        """Push the next order back by one billing interval"""
        subscription = self.get_subscription(subscription_id)
        if subscription.status != SubscriptionStatus.ACTIVE.value:
            raise InvalidStateError("subscription", subscription.status, "skip")

        max_skips = self.get_settings().max_skips_per_year
        if self._skips_in_last_year(subscription.id) >= max_skips:
            raise ValidationFailedError(
                f"Maximum of {max_skips} skipped orders per year reached",
                details={"max_skips_per_year": max_skips},
            )

        skipped_date = subscription.next_billing_date or self.today
        subscription.next_billing_date = next_billing_date(
            skipped_date, subscription.frequency, subscription.frequency_interval
        )
        subscription.skipped_orders = (subscription.skipped_orders or 0) + 1

        self._record(
            subscription,
            SubscriptionActivityType.SKIPPED,
            AuditAction.SUBSCRIPTION_SKIPPED,
            f"Skipped order of {skipped_date.isoformat()}",
            actor,
            {
                "skipped_date": skipped_date.isoformat(),
                "next_billing_date": subscription.next_billing_date.isoformat(),
            },
        )
        return self._commit(subscription)

    def reschedule(self, subscription_id: str, new_date: date, actor: Actor = SYSTEM_ACTOR) -> Subscription:
        subscription = self.get_subscription(subscription_id)
        if subscription.status not in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PAUSED.value):
            raise InvalidStateError("subscription", subscription.status, "reschedule")
        if new_date <= self.today:
            raise ValidationFailedError("New billing date must be in the future")
        if new_date > self.today + timedelta(days=MAX_RESCHEDULE_DAYS):
            raise ValidationFailedError("New billing date cannot be more than one year ahead")

        previous = subscription.next_billing_date
        subscription.next_billing_date = new_date

        self._record(
            subscription,
            SubscriptionActivityType.RESCHEDULED,
            AuditAction.SUBSCRIPTION_RESCHEDULED,
            f"Next order moved to {new_date.isoformat()}",
            actor,
            {"previous_date": previous.isoformat() if previous else None, "new_date": new_date.isoformat()},
        )
        return self._commit(subscription)

    def _require_open(self, subscription: Subscription, action: str) -> None:
        if subscription.status in (SubscriptionStatus.CANCELLED.value, SubscriptionStatus.EXPIRED.value):
            raise InvalidStateError("subscription", subscription.status, action)

    def update_frequency(
        self,
        subscription_id: str,
        frequency: str,
        frequency_interval: int = 1,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Subscription:
        subscription = self.get_subscription(subscription_id)
        self._require_open(subscription, "change frequency of")
        base = subscription.last_billing_date or self.today
        new_next = next_billing_date(base, frequency, frequency_interval)

        previous = {"frequency": subscription.frequency, "frequency_interval": subscription.frequency_interval}
        subscription.frequency = frequency
        subscription.frequency_interval = frequency_interval
        subscription.next_billing_date = new_next

        self._record(
            subscription,
            SubscriptionActivityType.FREQUENCY_CHANGED,
            AuditAction.SUBSCRIPTION_UPDATED,
            f"Frequency changed to every {frequency_interval} x {frequency}",
            actor,
            {"previous": previous, "next_billing_date": new_next.isoformat()},
        )
        return self._commit(subscription)

    def update_quantity(self, subscription_id: str, quantity: int, actor: Actor = SYSTEM_ACTOR) -> Subscription:
        if quantity < 1:
            raise ValidationFailedError("Quantity must be at least 1")
        subscription = self.get_subscription(subscription_id)
        self._require_open(subscription, "change quantity of")

        previous = subscription.quantity
        subscription.quantity = quantity

        self._record(
            subscription,
            SubscriptionActivityType.QUANTITY_CHANGED,
            AuditAction.SUBSCRIPTION_UPDATED,
            f"Quantity changed from {previous} to {quantity}",
            actor,
            {"previous_quantity": previous, "quantity": quantity},
        )
        return self._commit(subscription)

    # ------------------------------------------------------------------
    # Customer self-service
    # ------------------------------------------------------------------

    def get_customer_subscription(self, customer_id: str, subscription_id: str) -> Subscription:
        """Subscription owned by the customer; others are reported as missing"""
        subscription = (
            self.db.query(Subscription)
            .filter(Subscription.id == subscription_id, Subscription.customer_id == customer_id)
            .first()
        )
        if not subscription:
            raise NotFoundError(f"Subscription {subscription_id} not found")
        return subscription

    def _require_allowed(self, flag: str, action: str) -> None:
        if not getattr(self.get_settings(), flag):
            raise ForbiddenError(f"Customers cannot {action} subscriptions for this store")

    def customer_pause(
        self,
        customer_id: str,
        subscription_id: str,
        reason: Optional[str] = None,
        resume_date: Optional[date] = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Subscription:
        self.get_customer_subscription(customer_id, subscription_id)
        self._require_allowed("allow_customer_pause", "pause")
        return self.pause(subscription_id, reason=reason, resume_date=resume_date, actor=actor)

    def customer_resume(self, customer_id: str, subscription_id: str, actor: Actor = SYSTEM_ACTOR) -> Subscription:
        self.get_customer_subscription(customer_id, subscription_id)
        self._require_allowed("allow_customer_pause", "resume")
        return self.resume(subscription_id, actor=actor)

    def customer_cancel(
        self,
        customer_id: str,
        subscription_id: str,
        reason: Optional[str] = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Subscription:
        self.get_customer_subscription(customer_id, subscription_id)
        self._require_allowed("allow_customer_cancel", "cancel")
        return self.cancel(subscription_id, reason=reason, actor=actor)

    def customer_skip(self, customer_id: str, subscription_id: str, actor: Actor = SYSTEM_ACTOR) -> Subscription:
        self.get_customer_subscription(customer_id, subscription_id)
        self._require_allowed("allow_skip_orders", "skip orders on")
        return self.skip_next_order(subscription_id, actor=actor)

    def customer_reschedule(
        self, customer_id: str, subscription_id: str, new_date: date, actor: Actor = SYSTEM_ACTOR
    ) -> Subscription:
        self.get_customer_subscription(customer_id, subscription_id)
        self._require_allowed("allow_skip_orders", "reschedule")
        return self.reschedule(subscription_id, new_date, actor=actor)

    def customer_update_frequency(
        self,
        customer_id: str,
        subscription_id: str,
        frequency: str,
        frequency_interval: int = 1,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Subscription:
        self.get_customer_subscription(customer_id, subscription_id)
        self._require_allowed("allow_frequency_changes", "change the frequency of")
        return self.update_frequency(subscription_id, frequency, frequency_interval, actor=actor)

    def customer_update_quantity(
        self, customer_id: str, subscription_id: str, quantity: int, actor: Actor = SYSTEM_ACTOR
    ) -> Subscription:
        self.get_customer_subscription(customer_id, subscription_id)
        self._require_allowed("allow_quantity_changes", "change the quantity of")
        return self.update_quantity(subscription_id, quantity, actor=actor)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def auto_resume_due(self, now: Optional[datetime] = None) -> int:
        """Resume paused subscriptions whose scheduled resume time has passed"""
        now = now or utcnow()
        due = (
            self.db.query(Subscription)
            .filter(
                Subscription.status == SubscriptionStatus.PAUSED.value,
                Subscription.auto_resume_at.isnot(None),
                Subscription.auto_resume_at <= now,
            )
            .all()
        )
        for subscription in due:
            self._apply_resume(subscription, SYSTEM_ACTOR, automatic=True)

        if due:
            try:
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            logger.info(f"Auto-resumed {len(due)} subscriptions")
        return len(due)
