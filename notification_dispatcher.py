"""
Notification Outbox Dispatcher
Delivers notification rows committed alongside business transactions to an
external sink. A row is marked delivered only after the sink accepts it, so
delivery is at-least-once; failures are retried up to a maximum number of
attempts.
"""

import json
import logging
from datetime import datetime
from typing import Dict

import requests
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class NotificationDeliveryError(Exception):
    """Raised by a sink that could not accept a notification"""


class LogNotificationSink:
    """Default sink: writes each notification to the application log"""

    def deliver(self, payload: Dict):
        logger.info(f"Notification {payload['id']} for user {payload['userId']}: {payload['title']}")


class WebhookNotificationSink:
    """POSTs each notification as JSON to a webhook endpoint"""

    def __init__(self, url, timeout=5):
        self.url = url
        self.timeout = timeout

    def deliver(self, payload: Dict):
        try:
            response = requests.post(
                self.url,
                json=payload,
                timeout=self.timeout,
                headers={'Content-Type': 'application/json'}
            )
        except requests.exceptions.RequestException as e:
            raise NotificationDeliveryError(f"Webhook request failed: {e}") from e

        if response.status_code >= 300:
            raise NotificationDeliveryError(f"Webhook returned HTTP {response.status_code}")


class NotificationDispatcher:
    """
    Drains undelivered notifications in id order.

    Args:
        db: SQLAlchemy database instance
        Notification: Notification model class
        sink: Object with a deliver(payload) method
        batch_size: Maximum rows handled per run
        max_attempts: Rows failing this many times are left for inspection
    """

    def __init__(self, db, Notification, sink=None, batch_size=100, max_attempts=5):
        self.db = db
        self.Notification = Notification
        self.sink = sink or LogNotificationSink()
        self.batch_size = batch_size
        self.max_attempts = max_attempts

    def pending(self):
        Notification = self.Notification
        return Notification.query.filter(
            Notification.delivered_at.is_(None),
            Notification.delivery_attempts < self.max_attempts
        ).order_by(Notification.id.asc()).limit(self.batch_size).all()

    @staticmethod
    def build_payload(notification) -> Dict:
        return {
            'id': notification.id,
            'userId': notification.user_id,
            'type': notification.notification_type,
            'title': notification.title,
            'message': notification.message,
            'data': json.loads(notification.data) if notification.data else None,
            'createdAt': notification.created_at.isoformat() if notification.created_at else None,
        }

    def dispatch_pending(self) -> Dict[str, int]:
        """
        Deliver one batch of pending notifications.

        Returns:
            Counts of delivered and failed notifications
        """
        stats = {'delivered': 0, 'failed': 0}

        for notification in self.pending():
            try:
                self.sink.deliver(self.build_payload(notification))
            except NotificationDeliveryError as e:
                notification.delivery_attempts = (notification.delivery_attempts or 0) + 1
                notification.last_error = str(e)[:500]
                stats['failed'] += 1
                logger.warning(f"Delivery of notification {notification.id} failed "
                               f"(attempt {notification.delivery_attempts}): {e}")
            else:
                notification.delivered_at = datetime.utcnow()
                notification.delivery_attempts = (notification.delivery_attempts or 0) + 1
                notification.last_error = None
                stats['delivered'] += 1

            # One commit per row: a crash mid-batch re-sends at most one row
            try:
                self.db.session.commit()
            except SQLAlchemyError as e:
                self.db.session.rollback()
                logger.error(f"Failed to record delivery of notification {notification.id}: {str(e)}")
                raise

        if stats['delivered'] or stats['failed']:
            logger.info(f"Notification dispatch: {stats['delivered']} delivered, {stats['failed']} failed")
        return stats
