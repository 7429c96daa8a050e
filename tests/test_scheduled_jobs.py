"""
Tests for scheduled per-tenant jobs and the retry helper
"""
import pytest
from datetime import date, datetime
from unittest.mock import Mock

from creator_commerce.db import current_tenant, with_tenant
from creator_commerce.db.models import Subscription
from creator_commerce.services.relationship_service import RelationshipService
from creator_commerce.services.scheduled_jobs import (
    get_scheduler,
    run_esign_expiry_job,
    run_familiarity_decay_job,
    run_for_each_tenant,
    run_subscription_auto_resume_job,
    run_with_backoff,
    start_scheduler,
    stop_scheduler,
)
from creator_commerce.services.esign_service import EsignService
from creator_commerce.services.subscription_service import SubscriptionService
from creator_commerce.services.tenant_service import TenantService


class TestRunWithBackoff:
    """Test exponential backoff retries"""

    def test_success_first_try(self):
        sleep = Mock()
        assert run_with_backoff(lambda: 42, max_retries=3, base_delay=1.0, sleep=sleep) == 42
        sleep.assert_not_called()

    def test_retries_then_succeeds(self):
        fn = Mock(side_effect=[RuntimeError("boom"), RuntimeError("boom"), "ok"])
        delays = []
        assert run_with_backoff(fn, max_retries=3, base_delay=0.5, sleep=delays.append) == "ok"
        assert fn.call_count == 3
        assert delays == [0.5, 1.0]

    def test_gives_up_after_max_retries(self):
        fn = Mock(side_effect=ValueError("still broken"))
        delays = []
        with pytest.raises(ValueError):
            run_with_backoff(fn, max_retries=3, base_delay=2.0, sleep=delays.append)
        assert fn.call_count == 4
        assert delays == [2.0, 4.0, 8.0]

    def test_no_retries(self):
        fn = Mock(side_effect=RuntimeError("once"))
        sleep = Mock()
        with pytest.raises(RuntimeError):
            run_with_backoff(fn, max_retries=0, base_delay=1.0, sleep=sleep)
        assert fn.call_count == 1
        sleep.assert_not_called()


class TestRunForEachTenant:
    """Test per-tenant fan-out"""

    def test_runs_once_per_active_tenant(self, session_factory, tenants):
        seen = []

        def unit(db):
            seen.append(current_tenant(db))
            return 1

        stats = run_for_each_tenant("probe", unit, session_factory)
        assert seen == ["acme", "globex"]
        assert stats == {"tenants": 2, "updated": 2, "failed": 0}

    def test_suspended_tenant_skipped(self, db_session, session_factory, tenants):
        TenantService(db_session).suspend_tenant("globex")
        stats = run_for_each_tenant("probe", lambda db: 0, session_factory)
        assert stats["tenants"] == 1

    def test_failing_tenant_isolated(self, session_factory, tenants):
        calls = {"acme": 0, "globex": 0}

        def unit(db):
            tenant = current_tenant(db)
            calls[tenant] += 1
            if tenant == "acme":
                raise RuntimeError("acme is down")
            return 3

        stats = run_for_each_tenant("probe", unit, session_factory)
        assert stats == {"tenants": 1, "updated": 3, "failed": 1}
        # first attempt plus the configured retries
        assert calls["acme"] == 4
        assert calls["globex"] == 1


class TestJobs:
    """Test the registered maintenance jobs end to end"""

    def _paused_subscription(self, db, tenant):
        with with_tenant(db, tenant):
            service = SubscriptionService(db, today=date(2025, 1, 10))
            subscription = service.create_subscription(
                customer_id="cust-1",
                customer_email="cust@example.com",
                product_id="prod-1",
                product_title="Box",
                price_cents=1000,
            )
            service.pause(subscription.id, resume_date=date(2025, 1, 20))
            return subscription.id

    def test_auto_resume_job(self, db_session, session_factory, tenants):
        ids = [self._paused_subscription(db_session, "acme"), self._paused_subscription(db_session, "globex")]

        stats = run_subscription_auto_resume_job(session_factory=session_factory, now=datetime(2025, 1, 21))
        assert stats == {"tenants": 2, "updated": 2, "failed": 0}

        db_session.expire_all()
        statuses = {s.id: s.status for s in db_session.query(Subscription).all()}
        assert statuses == {ids[0]: "active", ids[1]: "active"}

    def test_familiarity_decay_job(self, db_session, session_factory, tenants):
        with with_tenant(db_session, "acme"):
            RelationshipService(db_session).record_interaction(
                "agent-1", "customer", "cust-1", 30, now=datetime(2025, 1, 1)
            )

        stats = run_familiarity_decay_job(session_factory=session_factory, now=datetime(2025, 1, 11))
        assert stats["updated"] == 1
        assert stats["failed"] == 0

    def test_esign_expiry_job(self, db_session, session_factory, tenants):
        with with_tenant(db_session, "globex"):
            service = EsignService(db_session)
            document = service.create_document(
                "NDA", [{"name": "Alice", "email": "alice@example.com"}], expires_at=datetime(2025, 1, 1)
            )
            service.send_document(document.id)

        stats = run_esign_expiry_job(session_factory=session_factory, now=datetime(2025, 1, 2))
        assert stats["updated"] == 1


class TestScheduler:
    def test_start_registers_jobs(self):
        scheduler = get_scheduler()
        try:
            start_scheduler()
            assert scheduler.running
            assert {job.id for job in scheduler.get_jobs()} == {
                "familiarity_decay",
                "subscription_auto_resume",
                "esign_expiry",
            }
        finally:
            stop_scheduler()
        assert not scheduler.running
