"""
Tests for subscription service
"""
import pytest
from datetime import date, datetime

from creator_commerce.db.models import AuditLog, SubscriptionActivity
from creator_commerce.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationFailedError,
)
from creator_commerce.services.audit_log_service import Actor
from creator_commerce.services.subscription_service import SubscriptionService

TODAY = date(2025, 1, 10)
ADMIN = Actor("admin", "admin-1", "Ada Admin")


@pytest.fixture
def service(db):
    return SubscriptionService(db, today=TODAY)


@pytest.fixture
def subscription(service):
    return service.create_subscription(
        customer_id="cust-1",
        customer_email="cara@example.com",
        customer_name="Cara Customer",
        product_id="prod-coffee",
        product_title="Coffee Beans",
        price_cents=1800,
        actor=ADMIN,
    )


class TestCreateSubscription:
    """Test subscription creation"""

    def test_create_is_active_with_first_renewal(self, subscription, db):
        assert subscription.status == "active"
        assert subscription.next_billing_date == date(2025, 2, 9)
        assert subscription.tenant_slug == "acme"
        assert subscription.currency == "USD"

        activity = db.query(SubscriptionActivity).filter_by(subscription_id=subscription.id).all()
        assert [a.activity_type for a in activity] == ["created"]

        audit = db.query(AuditLog).filter_by(entity_id=subscription.id).one()
        assert audit.action == "subscription.created"
        assert audit.actor_type == "admin"
        assert audit.actor_id == "admin-1"

    def test_create_rejects_zero_quantity(self, service):
        with pytest.raises(ValidationFailedError):
            service.create_subscription("c", "c@example.com", "p", "Product", 100, quantity=0)

    def test_create_rejects_unknown_frequency(self, service):
        with pytest.raises(ValidationFailedError):
            service.create_subscription("c", "c@example.com", "p", "Product", 100, frequency="hourly")


class TestPauseResume:
    """Test pausing and resuming"""

    def test_pause_then_resume(self, service, subscription):
        paused = service.pause(subscription.id, reason="Vacation", resume_date=date(2025, 1, 20), actor=ADMIN)
        assert paused.status == "paused"
        assert paused.pause_reason == "Vacation"
        assert paused.auto_resume_at == datetime(2025, 1, 20)

        resumed = service.resume(subscription.id, actor=ADMIN)
        assert resumed.status == "active"
        assert resumed.pause_reason is None
        assert resumed.auto_resume_at is None
        # billing date was still ahead, so it is kept
        assert resumed.next_billing_date == date(2025, 2, 9)

    def test_resume_after_billing_date_passed(self, db, subscription):
        SubscriptionService(db, today=TODAY).pause(subscription.id)
        later = SubscriptionService(db, today=date(2025, 3, 1))
        resumed = later.resume(subscription.id)
        assert resumed.next_billing_date == date(2025, 3, 31)

    def test_pause_twice_is_invalid(self, service, subscription):
        service.pause(subscription.id)
        with pytest.raises(InvalidStateError) as exc_info:
            service.pause(subscription.id)
        assert exc_info.value.message == "Cannot pause subscription in status 'paused'"

    def test_resume_active_is_invalid(self, service, subscription):
        with pytest.raises(InvalidStateError):
            service.resume(subscription.id)

    def test_resume_date_beyond_max_pause(self, service, subscription):
        with pytest.raises(ValidationFailedError) as exc_info:
            service.pause(subscription.id, resume_date=date(2025, 6, 1))
        assert exc_info.value.details == {"max_pause_days": 90}

    def test_resume_date_in_past(self, service, subscription):
        with pytest.raises(ValidationFailedError):
            service.pause(subscription.id, resume_date=TODAY)

    def test_auto_resume_due(self, service, subscription):
        service.pause(subscription.id, resume_date=date(2025, 1, 20))

        assert service.auto_resume_due(now=datetime(2025, 1, 19, 23, 0)) == 0
        assert service.auto_resume_due(now=datetime(2025, 1, 20, 1, 0)) == 1
        assert service.get_subscription(subscription.id).status == "active"


class TestCancel:
    def test_cancel(self, service, subscription):
        cancelled = service.cancel(subscription.id, reason="Too much coffee")
        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at is not None

    def test_cancel_twice_is_invalid(self, service, subscription):
        service.cancel(subscription.id)
        with pytest.raises(InvalidStateError):
            service.cancel(subscription.id)

    def test_cancelled_cannot_change_quantity(self, service, subscription):
        service.cancel(subscription.id)
        with pytest.raises(InvalidStateError):
            service.update_quantity(subscription.id, 3)


class TestScheduleChanges:
    """Test skip, reschedule, frequency and quantity changes"""

    def test_skip_pushes_one_interval(self, service, subscription):
        skipped = service.skip_next_order(subscription.id)
        assert skipped.next_billing_date == date(2025, 3, 11)
        assert skipped.skipped_orders == 1

    def test_skip_limit_per_year(self, service, subscription):
        service.update_settings({"max_skips_per_year": 1})
        service.skip_next_order(subscription.id)
        with pytest.raises(ValidationFailedError) as exc_info:
            service.skip_next_order(subscription.id)
        assert exc_info.value.details == {"max_skips_per_year": 1}

    def test_skip_paused_is_invalid(self, service, subscription):
        service.pause(subscription.id)
        with pytest.raises(InvalidStateError):
            service.skip_next_order(subscription.id)

    def test_reschedule(self, service, subscription):
        moved = service.reschedule(subscription.id, date(2025, 2, 1))
        assert moved.next_billing_date == date(2025, 2, 1)

    @pytest.mark.parametrize("new_date", [date(2025, 1, 10), date(2026, 2, 1)])
    def test_reschedule_out_of_range(self, service, subscription, new_date):
        with pytest.raises(ValidationFailedError):
            service.reschedule(subscription.id, new_date)

    def test_update_frequency_recomputes_next_date(self, service, subscription):
        updated = service.update_frequency(subscription.id, "weekly", 2)
        assert updated.frequency == "weekly"
        assert updated.frequency_interval == 2
        assert updated.next_billing_date == date(2025, 1, 24)

    def test_update_quantity(self, service, subscription):
        assert service.update_quantity(subscription.id, 4).quantity == 4
        with pytest.raises(ValidationFailedError):
            service.update_quantity(subscription.id, 0)

    def test_activity_newest_first(self, service, subscription):
        service.update_quantity(subscription.id, 2)
        activity = service.get_activity(subscription.id)
        assert len(activity) == 2
        assert {a.activity_type for a in activity} == {"created", "quantity_changed"}


class TestQueries:
    """Test listing, counts and MRR"""

    def _create(self, service, customer, product, price, frequency="monthly"):
        return service.create_subscription(
            customer_id=customer,
            customer_email=f"{customer}@example.com",
            product_id=product,
            product_title=product.title(),
            price_cents=price,
            frequency=frequency,
        )

    def test_list_filters_and_pages(self, service):
        self._create(service, "alice", "tea", 1000)
        self._create(service, "bob", "coffee", 2000)
        paused = self._create(service, "carol", "coffee", 3000)
        service.pause(paused.id)

        items, total = service.list_subscriptions(status="active")
        assert total == 2

        items, total = service.list_subscriptions(search="BOB")
        assert total == 1
        assert items[0].customer_id == "bob"

        items, total = service.list_subscriptions(sort_by="customer_email", sort_dir="asc", limit=2)
        assert total == 3
        assert [s.customer_id for s in items] == ["alice", "bob"]

        items, total = service.list_subscriptions(sort_by="not_a_column", offset=2)
        assert total == 3
        assert len(items) == 1

    def test_status_counts_and_mrr(self, service):
        self._create(service, "alice", "tea", 1000)
        self._create(service, "bob", "coffee", 1200, frequency="annually")
        paused = self._create(service, "carol", "coffee", 5000)
        service.pause(paused.id)

        counts = service.status_counts()
        assert counts["active"] == 2
        assert counts["paused"] == 1
        assert counts["cancelled"] == 0
        assert counts["all"] == 3

        # paused subscriptions do not contribute
        assert service.mrr_cents() == 1100


class TestSettings:
    def test_defaults_when_not_saved(self, service):
        settings = service.get_settings()
        assert settings.max_pause_days == 90
        assert settings.allow_customer_cancel is True

    def test_update_persists(self, service):
        service.update_settings({"allow_customer_cancel": False, "max_pause_days": 30})
        settings = service.get_settings()
        assert settings.allow_customer_cancel is False
        assert settings.max_pause_days == 30
        assert settings.tenant_slug == "acme"

    def test_unknown_setting_rejected(self, service):
        with pytest.raises(ValidationFailedError):
            service.update_settings({"allow_everything": True})


class TestCustomerSelfService:
    """Test customer actions honour ownership and store policy"""

    def test_other_customer_sees_not_found(self, service, subscription):
        with pytest.raises(NotFoundError):
            service.customer_cancel("cust-2", subscription.id)

    def test_cancel_disallowed_by_policy(self, service, subscription):
        service.update_settings({"allow_customer_cancel": False})
        with pytest.raises(ForbiddenError):
            service.customer_cancel("cust-1", subscription.id)

    def test_skip_allowed_by_default(self, service, subscription):
        customer = Actor("customer", "cust-1")
        skipped = service.customer_skip("cust-1", subscription.id, actor=customer)
        assert skipped.skipped_orders == 1

    def test_reschedule_follows_skip_policy(self, service, subscription):
        service.update_settings({"allow_skip_orders": False})
        with pytest.raises(ForbiddenError):
            service.customer_reschedule("cust-1", subscription.id, date(2025, 2, 1))

    def test_pause_disallowed_by_policy(self, service, subscription):
        service.update_settings({"allow_customer_pause": False})
        with pytest.raises(ForbiddenError):
            service.customer_pause("cust-1", subscription.id, reason="Travel")
        assert service.get_subscription(subscription.id).status == "active"

    def test_resume_follows_pause_policy(self, service, subscription):
        service.pause(subscription.id, actor=ADMIN)
        service.update_settings({"allow_customer_pause": False})
        with pytest.raises(ForbiddenError):
            service.customer_resume("cust-1", subscription.id)
        assert service.get_subscription(subscription.id).status == "paused"

    def test_frequency_change_disallowed_by_policy(self, service, subscription):
        service.update_settings({"allow_frequency_changes": False})
        with pytest.raises(ForbiddenError):
            service.customer_update_frequency("cust-1", subscription.id, "weekly")
        assert service.get_subscription(subscription.id).frequency == "monthly"

    def test_quantity_change_disallowed_by_policy(self, service, subscription):
        service.update_settings({"allow_quantity_changes": False})
        with pytest.raises(ForbiddenError):
            service.customer_update_quantity("cust-1", subscription.id, 2)
        assert service.get_subscription(subscription.id).quantity == 1

    def test_pause_and_resume_allowed_by_default(self, service, subscription):
        customer = Actor("customer", "cust-1")
        paused = service.customer_pause("cust-1", subscription.id, reason="Travel", actor=customer)
        assert paused.status == "paused"
        assert service.customer_resume("cust-1", subscription.id, actor=customer).status == "active"

    def test_frequency_and_quantity_allowed_by_default(self, service, subscription):
        updated = service.customer_update_frequency("cust-1", subscription.id, "biweekly")
        assert updated.frequency == "biweekly"
        assert service.customer_update_quantity("cust-1", subscription.id, 3).quantity == 3

    @pytest.mark.parametrize("action", [
        lambda s, sub_id: s.customer_pause("cust-2", sub_id),
        lambda s, sub_id: s.customer_resume("cust-2", sub_id),
        lambda s, sub_id: s.customer_skip("cust-2", sub_id),
        lambda s, sub_id: s.customer_reschedule("cust-2", sub_id, date(2025, 2, 1)),
        lambda s, sub_id: s.customer_update_frequency("cust-2", sub_id, "weekly"),
        lambda s, sub_id: s.customer_update_quantity("cust-2", sub_id, 2),
    ])
    def test_other_customer_cannot_act(self, service, subscription, action):
        """Ownership is checked before store policy"""
        service.update_settings({"allow_customer_pause": False, "allow_quantity_changes": False})
        with pytest.raises(NotFoundError):
            action(service, subscription.id)
