"""
Background scheduler for periodic tasks.

This module manages background jobs that run on a schedule:
- Sweep stale pending orders: every ORDER_SWEEP_INTERVAL_MINUTES
- Refresh exhibition statuses from their dates: daily
"""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from artmarket.core.config import settings
from artmarket.core.database import SessionLocal
from artmarket.services.exhibition_service import exhibition_service
from artmarket.services.notifier import notifier
from artmarket.services.order_service import order_service
from artmarket.services.payments import payment_provider
import logging

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def sweep_pending_orders_job():
    """
    Reconcile orders stuck in pending.

    A pending order older than PENDING_ORDER_TTL_MINUTES either missed its
    completion webhook (fulfilled here) or was abandoned (cancelled here).
    """
    db = SessionLocal()
    try:
        counts = order_service.sweep_stale_orders(
            db, payment_provider, notifier, settings.PENDING_ORDER_TTL_MINUTES)
        if counts["checked"]:
            logger.info(
                f"Order sweep completed: checked {counts['checked']}, fulfilled {counts['fulfilled']}, "
                f"cancelled {counts['cancelled']}, skipped {counts['skipped']}")
        else:
            logger.info("Order sweep completed: No stale orders found")
    except Exception as e:
        logger.error(f"Error in sweep_pending_orders_job: {str(e)}")
        db.rollback()
    finally:
        db.close()


def refresh_exhibition_statuses_job():
    db = SessionLocal()
    try:
        exhibition_service.refresh_exhibition_statuses(db)
    except Exception as e:
        logger.error(f"Error in refresh_exhibition_statuses_job: {str(e)}")
        db.rollback()
    finally:
        db.close()


def start_scheduler():
    """
    Start the background scheduler.

    This should be called when the FastAPI app starts.
    """
    if not scheduler.running:
        scheduler.add_job(
            sweep_pending_orders_job,
            trigger=IntervalTrigger(minutes=settings.ORDER_SWEEP_INTERVAL_MINUTES),
            id="sweep_pending_orders",
            name="Sweep stale pending orders",
            replace_existing=True
        )
        scheduler.add_job(
            refresh_exhibition_statuses_job,
            trigger=IntervalTrigger(days=1),
            id="refresh_exhibition_statuses",
            name="Refresh exhibition statuses",
            replace_existing=True
        )

        scheduler.start()
        logger.info(
            f"Background scheduler started. Order sweep runs every "
            f"{settings.ORDER_SWEEP_INTERVAL_MINUTES} minutes.")


def stop_scheduler():
    """
    Stop the background scheduler.

    This should be called when the FastAPI app shuts down.
    """
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Background scheduler stopped.")
