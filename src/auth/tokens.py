"""
Session tokens and request throttling for the API.

A session token has the form ``<token_id>.<signature>``. The token id keys an
in-memory session registry; the signature is an HMAC-SHA256 over the
session's user, creation time and expiry, so a token id cannot be reused with
a forged signature.
"""

import hashlib
import hmac
import logging
import secrets
import threading
import time
from collections import defaultdict, deque
from functools import wraps

from flask import g, request

from src.config import get_config
from src.errors import AuthenticationError, RateLimitError

logger = logging.getLogger(__name__)


class SessionTokenManager:
    """Issues, checks and revokes the session tokens of signed-in users."""

    def __init__(self, secret_key=None, token_lifetime=3600):
        self.secret_key = (secret_key or secrets.token_hex(32)).encode()
        self.token_lifetime = token_lifetime
        self.sessions = {}
        self.lock = threading.Lock()

    def _sign(self, token_id, session):
        message = f"{token_id}|{session['user_id']}|{session['created']}|{session['expiry']}"
        return hmac.new(self.secret_key, message.encode(), hashlib.sha256).hexdigest()

    def generate_token(self, user_id, ip_address=None):
        """Open a session; returns the token, its expiry and lifetime."""
        created = int(time.time())
        token_id = secrets.token_urlsafe(32)
        session = {
            "user_id": user_id,
            "created": created,
            "expiry": created + self.token_lifetime,
            "ip": ip_address,
        }

        with self.lock:
            self._drop_expired(created)
            self.sessions[token_id] = session

        return {
            "token": f"{token_id}.{self._sign(token_id, session)}",
            "expiry": session["expiry"],
            "lifetime": self.token_lifetime,
        }

    def validate_token(self, token, ip_address=None):
        """Return ``(user_id, None)`` for a live session, else ``(None, reason)``."""
        token_id, _, signature = token.partition(".")
        if not token_id or not signature or "." in signature:
            return None, "Invalid token format"

        with self.lock:
            session = self.sessions.get(token_id)
            if session is None:
                return None, "Session not found or expired"
            if time.time() > session["expiry"]:
                del self.sessions[token_id]
                return None, "Session expired"

        if not hmac.compare_digest(signature, self._sign(token_id, session)):
            return None, "Invalid token signature"

        if ip_address and session["ip"] and ip_address != session["ip"]:
            # Phones hop between networks; not a reason to reject
            logger.info(f"Session of user {session['user_id']} moved from {session['ip']} to {ip_address}")

        return session["user_id"], None

    def revoke_token(self, token):
        with self.lock:
            return self.sessions.pop(token.partition(".")[0], None) is not None

    def revoke_user_tokens(self, user_id, keep=None):
        """End every session of a user except the one in ``keep``."""
        keep_id = keep.partition(".")[0] if keep else None
        with self.lock:
            doomed = [
                token_id
                for token_id, session in self.sessions.items()
                if session["user_id"] == user_id and token_id != keep_id
            ]
            for token_id in doomed:
                del self.sessions[token_id]
        return len(doomed)

    def _drop_expired(self, now):
        expired = [token_id for token_id, session in self.sessions.items() if now > session["expiry"]]
        for token_id in expired:
            del self.sessions[token_id]
        if expired:
            logger.info(f"Dropped {len(expired)} expired sessions")


class RateLimiter:
    """Per-client request counts over a one minute and a one hour window."""

    WINDOWS = (("minute", 60), ("hour", 3600))

    def __init__(self, per_minute=10, per_hour=100):
        self.limits = {"minute": per_minute, "hour": per_hour}
        self.history = defaultdict(deque)
        self.last_sweep = time.time()

    def _forget_idle(self, now):
        """Drop clients with no request in the last hour."""
        idle = [
            key
            for key, stamps in self.history.items()
            if not stamps or stamps[-1] <= now - 3600
        ]
        for key in idle:
            del self.history[key]
        self.last_sweep = now

    def is_allowed(self, identifier):
        """Count a request for ``identifier``; returns ``(allowed, error)``."""
        now = time.time()
        if now - self.last_sweep > 60:
            self._forget_idle(now)
        stamps = self.history[identifier]
        while stamps and stamps[0] <= now - 3600:
            stamps.popleft()

        for window, seconds in self.WINDOWS:
            recent = sum(1 for stamp in stamps if stamp > now - seconds)
            if recent >= self.limits[window]:
                return False, f"Rate limit exceeded: too many requests per {window}"

        stamps.append(now)
        return True, None


# Rebuilt from config by init_token_manager
token_manager = None
rate_limiters = {
    "login": RateLimiter(),
    "upload": RateLimiter(per_minute=20, per_hour=200),
}


def init_token_manager(app):
    """Create the session manager and rate limiters for an app."""
    global token_manager

    config = get_config()
    lifetime = config.get("auth.session_lifetime_seconds", 3600)
    token_manager = SessionTokenManager(app.config.get("SECRET_KEY"), lifetime)

    rate_limiters["login"] = RateLimiter(
        config.get("auth.login_per_minute"), config.get("auth.login_per_hour")
    )
    rate_limiters["upload"] = RateLimiter(
        config.get("uploads.per_minute"), config.get("uploads.per_hour")
    )

    logger.info(f"Sessions last {lifetime}s")
    return token_manager


def get_token_manager():
    if token_manager is None:
        from flask import current_app

        return init_token_manager(current_app)
    return token_manager


def get_request_token():
    """Session token from the Authorization header, X-Session-Token or a cookie."""
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.headers.get("X-Session-Token") or request.cookies.get("session_token")


def require_session(f):
    """Reject the request unless it carries a live session; sets g.user."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = get_request_token()
        if not token:
            raise AuthenticationError("Sign in required")

        manager = get_token_manager()
        user_id, error = manager.validate_token(token, request.remote_addr)
        if user_id is None:
            logger.warning(f"Rejected session from {request.remote_addr}: {error}")
            raise AuthenticationError(error)

        from . import database as db

        user = db.get_user(user_id)
        if user is None:
            manager.revoke_token(token)
            raise AuthenticationError("Account no longer exists")

        g.user = user
        g.session_token = token
        return f(*args, **kwargs)

    return decorated_function


def rate_limit(name):
    """
    Throttle an endpoint with the named limiter.

    Behind require_session the bucket is the validated session; anywhere
    else it is the client address, since an unchecked token header costs
    the client nothing to change.
    """

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            identifier = g.get("session_token") or request.remote_addr
            allowed, error = rate_limiters[name].is_allowed(identifier)
            if not allowed:
                logger.warning(f"Throttled {request.remote_addr} on {request.path}")
                raise RateLimitError(error)
            return f(*args, **kwargs)

        return decorated_function

    return decorator
