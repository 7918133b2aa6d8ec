"""
Protection chain for the public survey submission endpoint.

Checks run in a fixed order: rate limit, Origin/Referer, survey session
cookie. The rate-limit counter is only incremented once every check passed,
so a request blocked by a later check does not use up a slot. The slot is
taken by a single locked check-and-increment, so concurrent requests from
one IP cannot overshoot the limit.
"""
import logging
import threading
import time
import uuid
from functools import wraps

import jwt
from flask import current_app, g, request

from controllers.auth_controller import decode_token, encode_token
from controllers.errors import OriginError, RateLimitError, SessionError
from models.database import local_now

logger = logging.getLogger(__name__)

SESSION_COOKIE = 'survey_session'
SESSION_PURPOSE = 'survey_session'
LOOPBACK_HOSTS = ('localhost', '127.0.0.1', '[::1]')


class RateLimiter:
    """Fixed-window submission counter keyed by client IP.

    Process local: several server processes each keep their own counts.
    Expired windows are swept once the table holds ``sweep_threshold`` keys,
    at most once per window.
    """

    def __init__(self, max_requests=5, window_seconds=600, clock=time.monotonic, sweep_threshold=1024):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self.sweep_threshold = sweep_threshold
        self._entries = {}
        self._next_sweep = 0
        self._lock = threading.Lock()

    def tracked(self):
        with self._lock:
            return len(self._entries)

    def _sweep(self, now):
        if len(self._entries) < self.sweep_threshold or now < self._next_sweep:
            return
        expired = [key for key, entry in self._entries.items() if now >= entry['reset_at']]
        for key in expired:
            del self._entries[key]
        self._next_sweep = now + self.window_seconds
        if expired:
            logger.debug("Swept %s expired rate limit windows", len(expired))

    def _wait(self, entry, now):
        if entry is None or now >= entry['reset_at'] or entry['count'] < self.max_requests:
            return 0
        return max(1, int(entry['reset_at'] - now + 0.999))

    def retry_after(self, key):
        """Seconds until ``key`` may submit again, or 0 when a slot is free. Never records anything."""
        with self._lock:
            now = self.clock()
            return self._wait(self._entries.get(key), now)

    def acquire(self, key):
        """Take a slot for ``key`` if one is free; return 0 on success, else the retry-after seconds."""
        with self._lock:
            now = self.clock()
            self._sweep(now)
            entry = self._entries.get(key)
            wait = self._wait(entry, now)
            if wait:
                return wait
            if entry is None or now >= entry['reset_at']:
                entry = {'count': 0, 'reset_at': now + self.window_seconds}
                self._entries[key] = entry
            entry['count'] += 1
            return 0


def client_ip():
    forwarded = request.headers.get('X-Forwarded-For', '')
    if forwarded:
        return forwarded.split(',')[0].strip()
    real_ip = request.headers.get('X-Real-IP')
    if real_ip:
        return real_ip.strip()
    return request.remote_addr or 'unknown'


def origin_allowed(origin, referer, host):
    for candidate in (origin, referer):
        if not candidate:
            continue
        if host and host in candidate:
            return True
        if any(loopback in candidate for loopback in LOOPBACK_HOSTS):
            return True
    return False


def issue_session_token():
    ttl = current_app.config['SURVEY_SESSION_TTL']
    token = encode_token({'sid': uuid.uuid4().hex}, ttl, SESSION_PURPOSE)
    logger.info("Survey session started for %s at %s", client_ip(), local_now().isoformat(timespec='seconds'))
    return token, ttl


def set_session_cookie(response, token, ttl):
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=ttl,
        httponly=True,
        samesite='Strict',
        secure=current_app.config['SECURE_COOKIES'],
    )
    return response


def verify_session_cookie():
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        raise SessionError()
    try:
        return decode_token(token, SESSION_PURPOSE)
    except jwt.InvalidTokenError as exc:
        logger.info("Rejected survey session from %s: %s", client_ip(), exc)
        raise SessionError()


def check_submission(limiter):
    ip = client_ip()

    wait = limiter.retry_after(ip)
    if wait:
        logger.warning("Rate limit exceeded for %s", ip)
        raise RateLimitError(wait)

    if not origin_allowed(request.headers.get('Origin'), request.headers.get('Referer'), request.host):
        logger.warning("Blocked submission without browser origin from %s", ip)
        raise OriginError()

    claims = verify_session_cookie()

    # Concurrent requests may all have passed the first check
    wait = limiter.acquire(ip)
    if wait:
        logger.warning("Rate limit exceeded for %s", ip)
        raise RateLimitError(wait)
    return claims


def gated(view):
    """Run the submission gate before ``view``; the limiter lives on the app."""
    @wraps(view)
    def wrapped(*args, **kwargs):
        g.survey_session = check_submission(current_app.extensions['rate_limiter'])
        return view(*args, **kwargs)
    return wrapped
