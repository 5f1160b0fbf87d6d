"""
Security Event Logging Service
Structured (JSON line) log of authentication, authorization and financial
events, with optional syslog forwarding to a SIEM
"""
import json
import logging
import logging.handlers
import os
import socket
from typing import Optional, Dict, Any

from flask import has_request_context, request, session


class SecurityLogger:
    """
    Writes security and financial events to the 'security' logger
    """

    def __init__(self, app=None):
        self.app = app
        self.logger = logging.getLogger('security')
        self.syslog_handler = None

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize security logger with Flask app"""
        self.app = app
        self._setup_structured_logging()
        self._setup_siem_integration()
        app.extensions['security_logger'] = self

    def _setup_structured_logging(self):
        """Configure JSON formatted logs with file rotation"""
        self.logger.setLevel(logging.INFO)

        # Re-initialising the app must not stack duplicate handlers
        if any(getattr(h, '_taskfi_security', False) for h in self.logger.handlers):
            return

        log_dir = self.app.config.get('LOG_DIR') or os.path.join(
            os.path.dirname(os.path.abspath(__file__)), 'logs'
        )
        os.makedirs(log_dir, exist_ok=True)

        json_formatter = logging.Formatter(
            '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "event": %(message)s}'
        )

        # 50MB per file, keep 10 backups
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, 'security.log'),
            maxBytes=50 * 1024 * 1024,
            backupCount=10,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(json_formatter)
        file_handler._taskfi_security = True
        self.logger.addHandler(file_handler)

        if self.app.debug:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.DEBUG)
            console_handler.setFormatter(json_formatter)
            console_handler._taskfi_security = True
            self.logger.addHandler(console_handler)

    def _setup_siem_integration(self):
        """Forward events over syslog when SIEM_SYSLOG_HOST is set"""
        syslog_host = self.app.config.get('SIEM_SYSLOG_HOST')
        if not syslog_host or self.syslog_handler:
            return

        syslog_port = int(self.app.config.get('SIEM_SYSLOG_PORT', 514))
        try:
            self.syslog_handler = logging.handlers.SysLogHandler(
                address=(syslog_host, syslog_port),
                facility=logging.handlers.SysLogHandler.LOG_AUTH,
                socktype=socket.SOCK_STREAM
            )
            self.syslog_handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(self.syslog_handler)
        except OSError as e:
            self.app.logger.error(f"Failed to setup syslog handler: {e}")

    def _get_request_context(self) -> Dict[str, Any]:
        """Extract caller details from the current request, if there is one"""
        context = {
            'ip_address': None,
            'user_agent': None,
            'request_method': None,
            'request_path': None,
            'user_id': None
        }

        if not has_request_context():
            return context

        # First hop of X-Forwarded-For when behind a proxy
        ip_address = request.headers.get('X-Forwarded-For', request.remote_addr)
        if ip_address and ',' in ip_address:
            ip_address = ip_address.split(',')[0].strip()

        context['ip_address'] = ip_address
        context['user_agent'] = request.headers.get('User-Agent', '')
        context['request_method'] = request.method
        context['request_path'] = request.path
        context['user_id'] = session.get('user_id')
        return context

    def log_event(
        self,
        event_category: str,
        event_type: str,
        action: str,
        severity: str = 'medium',
        status: str = 'success',
        message: str = '',
        resource_type: Optional[str] = None,
        resource_id: Optional[Any] = None,
        details: Optional[Dict] = None,
        user_id: Optional[int] = None
    ):
        """
        Log a security event

        Args:
            event_category: Category (authentication, authorization, financial)
            event_type: Specific event type (order_placed, package_price_mismatch, etc.)
            action: Human-readable action description
            severity: Event severity (low, medium, high, critical)
            status: Event status (success, failure, blocked)
            message: Additional message
            resource_type: Type of resource affected (gig, payment, etc.)
            resource_id: ID of affected resource
            details: Additional context as dictionary
            user_id: Override user ID (if not in session)
        """
        context = self._get_request_context()
        if user_id:
            context['user_id'] = user_id

        log_data = {
            'event_category': event_category,
            'event_type': event_type,
            'severity': severity,
            'status': status,
            'action': action,
            'message': message,
            'resource_type': resource_type,
            'resource_id': resource_id,
            'details': details,
            **context
        }

        log_level = {
            'low': logging.INFO,
            'medium': logging.WARNING,
            'high': logging.ERROR,
            'critical': logging.CRITICAL
        }.get(severity, logging.INFO)

        self.logger.log(log_level, json.dumps(log_data, default=str))

    def log_authorization(self, event_type: str, action: str, status: str = 'blocked', **kwargs):
        """Log an access control decision"""
        self.log_event(
            event_category='authorization',
            event_type=event_type,
            action=action,
            severity='medium',
            status=status,
            **kwargs
        )


# Global security logger instance
security_logger = None


def init_security_logger(app):
    """Initialize the global security logger for the app"""
    global security_logger
    security_logger = SecurityLogger(app)
    return security_logger
