import hmac
from functools import wraps

from flask import current_app, request

from siteapi.errors import AuthorizationError


def _bearer_token():
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def admin_required(func):
    """Reject the request with 401 unless it carries the configured admin token."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        expected = current_app.config.get("ADMIN_TOKEN")
        token = _bearer_token()
        if not expected or not token or not hmac.compare_digest(token.encode(), expected.encode()):
            raise AuthorizationError("Unauthorized")
        return func(*args, **kwargs)

    return wrapper
