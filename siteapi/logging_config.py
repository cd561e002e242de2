# siteapi/logging_config.py
import logging
import logging.config
import time

from flask import g, has_request_context, request
from pythonjsonlogger.json import JsonFormatter


class RequestIdFilter(logging.Filter):
    """
    Inject request_id into every log record if present.
    """

    def filter(self, record):
        if not hasattr(record, "request_id"):
            record.request_id = g.get("request_id") if has_request_context() else None
        return True


def build_logging_config(level="INFO"):
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {
                "()": RequestIdFilter,
            },
        },
        "formatters": {
            "json": {
                "()": JsonFormatter,
                "fmt": (
                    "%(asctime)s "
                    "%(levelname)s "
                    "%(name)s "
                    "%(message)s "
                    "%(request_id)s "
                    "%(module)s "
                    "%(funcName)s "
                    "%(lineno)d"
                ),
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "filters": ["request_id"],
            },
        },
        "loggers": {
            "werkzeug": {"level": "WARNING"},
            "urllib3": {"level": "WARNING"},
        },
        "root": {
            "level": level,
            "handlers": ["default"],
        },
    }


def setup_logging(app):
    """Configure structured JSON logging and the request/response log hooks."""
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    logging.config.dictConfig(build_logging_config(level))

    log = logging.getLogger("siteapi.requests")

    def enabled():
        return app.config.get("LOG_REQUESTS", False) or app.config.get("DEBUG", False)

    @app.before_request
    def log_request():
        if not enabled():
            return
        g.start_time = time.perf_counter()
        log.info(
            f"Request: {request.method} {request.path}",
            extra={
                "user_agent": request.user_agent.string if request.user_agent else None,
            },
        )

    @app.after_request
    def log_response(response):
        if enabled() and "start_time" in g:
            duration = (time.perf_counter() - g.start_time) * 1000
            log.info(
                f"Response: {request.method} {request.path} - {response.status_code}",
                extra={
                    "status_code": response.status_code,
                    "duration_ms": round(duration, 2),
                    "method": request.method,
                    "path": request.path,
                },
            )
        return response

    return app
