"""
Rate limiting for API endpoints

Request counting goes through a RateLimitStore so the counters can live in a
shared service when several app instances run behind one load balancer.
MemoryRateLimitStore keeps them in-process, which is only correct for a
single instance.
"""

import threading
import time
from functools import wraps

from flask import current_app, jsonify, request


class RateLimitStore:
    """Fixed-window request counter keyed by caller identity"""

    def hit(self, key, window_seconds):
        """Record one request for key and return the count in the current window"""
        raise NotImplementedError

    def reset(self, key):
        raise NotImplementedError


class MemoryRateLimitStore(RateLimitStore):
    """Process-local counters with lazy expiry"""

    CLEANUP_INTERVAL = 300

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._windows = {}
        self._last_cleanup = clock()

    def hit(self, key, window_seconds):
        now = self._clock()
        with self._lock:
            if now - self._last_cleanup > self.CLEANUP_INTERVAL:
                self._cleanup(now)

            started, count = self._windows.get(key, (now, 0))
            if now - started >= window_seconds:
                started, count = now, 0
            count += 1
            self._windows[key] = (started, count)
            return count

    def reset(self, key):
        with self._lock:
            self._windows.pop(key, None)

    def _cleanup(self, now):
        # Windows are at most an hour long in practice
        stale = [k for k, (started, _) in self._windows.items() if now - started > 3600]
        for k in stale:
            del self._windows[k]
        self._last_cleanup = now


class RateLimiter:
    """Builds per-endpoint rate limit decorators on top of a store"""

    def __init__(self, store=None):
        self.store = store or MemoryRateLimitStore()

    def api_rate_limit(self, requests_per_minute=60):
        """Rate limit decorator for API endpoints (per client IP and endpoint)"""
        def decorator(f):
            @wraps(f)
            def wrapped(*args, **kwargs):
                if not current_app.config.get('RATE_LIMIT_ENABLED', True):
                    return f(*args, **kwargs)

                identifier = f"{request.remote_addr}:{f.__name__}"
                if self.store.hit(identifier, 60) > requests_per_minute:
                    return jsonify({'error': 'Rate limit exceeded. Please wait a moment.'}), 429

                return f(*args, **kwargs)
            return wrapped
        return decorator
