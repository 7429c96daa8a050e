"""
Scheduled Jobs Service
Periodic per-tenant maintenance: familiarity decay, subscription auto-resume, e-sign expiry
"""
import logging
import time
from datetime import datetime
from typing import Callable, Dict, Optional, TypeVar

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session

from ..config import config
from ..db.tenancy import with_tenant

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Global scheduler instance
_scheduler: Optional[BackgroundScheduler] = None


def run_with_backoff(
    fn: Callable[[], T],
    max_retries: Optional[int] = None,
    base_delay: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call fn, retrying failures with exponential backoff

    The n-th retry waits base_delay * 2**(n-1) seconds; after max_retries
    retries the last exception propagates.
    """
    max_retries = config.JOB_MAX_RETRIES if max_retries is None else max_retries
    base_delay = config.JOB_RETRY_BASE_DELAY if base_delay is None else base_delay

    attempt = 0
    while True:
        try:
            return fn()
        except Exception as e:
            if attempt >= max_retries:
                raise
            delay = base_delay * (2 ** attempt)
            attempt += 1
            logger.warning(f"Attempt {attempt}/{max_retries + 1} failed: {e}. Retrying in {delay:.2f}s")
            sleep(delay)


def run_for_each_tenant(
    job_name: str,
    unit: Callable[[Session], int],
    session_factory: Optional[Callable[[], Session]] = None,
) -> Dict[str, int]:
    """
    Run unit(db) once per active tenant inside that tenant's scope

    Each tenant is retried independently; a tenant that keeps failing is
    counted and logged without stopping the others.
    """
    from .tenant_service import TenantService

    if session_factory is None:
        from ..db.engine import SessionLocal
        session_factory = SessionLocal

    stats = {"tenants": 0, "updated": 0, "failed": 0}
    db = session_factory()
    try:
        slugs = TenantService(db).list_active_slugs()
        for slug in slugs:
            def attempt(slug=slug):
                try:
                    with with_tenant(db, slug):
                        return unit(db)
                except Exception:
                    db.rollback()
                    raise

            try:
                updated = run_with_backoff(attempt)
            except Exception as e:
                stats["failed"] += 1
                logger.error(f"[{job_name}] Tenant {slug} failed: {e}", exc_info=True)
                continue

            stats["tenants"] += 1
            stats["updated"] += updated
            if updated:
                logger.info(f"[{job_name}] Tenant {slug}: {updated} updated")
    finally:
        db.close()

    logger.info(
        f"[{job_name}] Finished: tenants={stats['tenants']}, "
        f"updated={stats['updated']}, failed={stats['failed']}"
    )
    return stats


def run_familiarity_decay_job(session_factory=None, now: Optional[datetime] = None) -> Dict[str, int]:
    """Daily: decay familiarity of idle agent relationships"""
    from .relationship_service import RelationshipService

    return run_for_each_tenant(
        "familiarity_decay",
        lambda db: RelationshipService(db).apply_decay(now),
        session_factory,
    )


def run_subscription_auto_resume_job(session_factory=None, now: Optional[datetime] = None) -> Dict[str, int]:
    """Hourly: resume paused subscriptions whose resume date has arrived"""
    from .subscription_service import SubscriptionService

    return run_for_each_tenant(
        "subscription_auto_resume",
        lambda db: SubscriptionService(db).auto_resume_due(now),
        session_factory,
    )


def run_esign_expiry_job(session_factory=None, now: Optional[datetime] = None) -> Dict[str, int]:
    """Hourly: expire documents past their signing deadline"""
    from .esign_service import EsignService

    return run_for_each_tenant(
        "esign_expiry",
        lambda db: EsignService(db).expire_overdue(now),
        session_factory,
    )


def get_scheduler() -> BackgroundScheduler:
    """
    Get or create the background scheduler instance

    Returns:
        BackgroundScheduler instance
    """
    global _scheduler

    if _scheduler is None:
        _scheduler = BackgroundScheduler(
            job_defaults={
                'coalesce': True,  # Combine missed runs
                'max_instances': 1,  # Only one instance at a time
                'misfire_grace_time': 3600,
            }
        )

    return _scheduler


def start_scheduler():
    """
    Start the background scheduler and register all jobs
    """
    scheduler = get_scheduler()

    if scheduler.running:
        logger.warning("Scheduler already running")
        return

    scheduler.add_job(
        func=run_familiarity_decay_job,
        trigger=CronTrigger(hour=config.FAMILIARITY_DECAY_HOUR, minute=0),
        id='familiarity_decay',
        name='Agent familiarity decay',
        replace_existing=True,
    )
    logger.info(f"Registered familiarity decay job (daily at {config.FAMILIARITY_DECAY_HOUR}:00)")

    scheduler.add_job(
        func=run_subscription_auto_resume_job,
        trigger=CronTrigger(minute=5),
        id='subscription_auto_resume',
        name='Resume paused subscriptions',
        replace_existing=True,
    )
    logger.info("Registered subscription auto-resume job (hourly)")

    scheduler.add_job(
        func=run_esign_expiry_job,
        trigger=CronTrigger(minute=15),
        id='esign_expiry',
        name='Expire overdue e-sign documents',
        replace_existing=True,
    )
    logger.info("Registered e-sign expiry job (hourly)")

    scheduler.start()
    logger.info("Background scheduler started")


def stop_scheduler():
    """
    Stop the background scheduler
    """
    scheduler = get_scheduler()

    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background scheduler stopped")
