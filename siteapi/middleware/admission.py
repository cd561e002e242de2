import logging
from functools import wraps

from flask import current_app, jsonify, request

from siteapi.admission.classifier import UNKNOWN_CLIENT

logger = logging.getLogger(__name__)


def client_ip():
    """First X-Forwarded-For entry, else Client-IP, else "Unknown"."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    return request.headers.get("Client-IP", "").strip() or UNKNOWN_CLIENT


def admission_required(action):
    """
    Run the abuse classifier for ``action`` before the wrapped handler.

    Rejections short-circuit with 403 (blocked) or 429 (rate limited); the
    body carries the reason and, for blocks, the appeal URL.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            classifier = current_app.extensions["siteapi"].classifier
            decision = classifier.classify(client_ip(), action)
            if not decision.allowed:
                body = decision.to_dict()
                body["error"] = decision.reason
                return jsonify(body), decision.status_code
            return func(*args, **kwargs)

        return wrapper

    return decorator
