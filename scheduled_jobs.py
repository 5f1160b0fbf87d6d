"""
Scheduled Jobs Module for TaskFi
Runs the notification outbox dispatcher on a fixed interval
"""

import logging

logger = logging.getLogger(__name__)


def dispatch_pending_notifications(app, dispatcher):
    """
    Deliver pending notifications inside an app context

    Args:
        app: Flask application instance
        dispatcher: NotificationDispatcher instance

    Returns:
        Delivery counts, or None if the run failed
    """
    with app.app_context():
        try:
            return dispatcher.dispatch_pending()
        except Exception as e:
            # Keep the scheduler thread alive; the next run retries
            logger.error(f"Notification dispatch job failed: {str(e)}")
            return None
        finally:
            dispatcher.db.session.remove()


def init_scheduler(app, dispatcher, interval_seconds=30):
    """
    Initialize APScheduler with all scheduled jobs

    Args:
        app: Flask application instance
        dispatcher: NotificationDispatcher instance
        interval_seconds: Seconds between notification dispatch runs

    Returns:
        scheduler: Configured APScheduler instance
    """
    from apscheduler.schedulers.background import BackgroundScheduler
    from apscheduler.triggers.interval import IntervalTrigger
    import atexit

    scheduler = BackgroundScheduler(daemon=True)

    scheduler.add_job(
        func=lambda: dispatch_pending_notifications(app, dispatcher),
        trigger=IntervalTrigger(seconds=interval_seconds),
        id='notification_dispatch',
        name='Deliver pending notifications',
        max_instances=1,
        coalesce=True,
        replace_existing=True
    )

    scheduler.start()
    logger.info(f"Scheduler started: notification dispatch every {interval_seconds}s")

    # Shut down the scheduler when exiting the app
    atexit.register(lambda: scheduler.shutdown())

    return scheduler
