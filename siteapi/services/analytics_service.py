import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from siteapi.errors import ValidationError
from siteapi.integrations.tables import TableClient
from siteapi.moderation.models import format_timestamp, utcnow

logger = logging.getLogger(__name__)

PAGE_VIEWS = "PageViews"
STATS_SAMPLE = 1000
TOP_N = 5


def normalize_page(raw: Optional[str]) -> str:
    """Strip scheme, host, query and fragment; always return a leading slash."""
    if not raw:
        return "/"
    value = raw.strip()
    if value.startswith(("http://", "https://")):
        return urlparse(value).path or "/"
    cleaned = value.split("#")[0].split("?")[0]
    if not cleaned:
        return "/"
    return cleaned if cleaned.startswith("/") else f"/{cleaned}"


def normalize_referrer(raw: Optional[str]) -> str:
    if not raw or raw.strip() in ("", "-"):
        return "Direct"
    value = raw.strip()
    parsed = urlparse(value)
    if not parsed.scheme or not parsed.hostname:
        return value
    path = "" if parsed.path in ("", "/") else parsed.path
    return f"{parsed.hostname}{path}"


class AnalyticsService:

    def __init__(self, tables: TableClient):
        self.tables = tables

    def track(self, payload: Dict[str, Any], ip: str = "Unknown", now: Optional[datetime] = None) -> Dict[str, Any]:
        if not payload.get("page"):
            raise ValidationError("Page is required")

        fields = {
            "Page": normalize_page(payload.get("page")),
            "Referrer": normalize_referrer(payload.get("referrer")),
            "Device": payload.get("device") or "Unknown",
            "Browser": payload.get("browser") or "Unknown",
            "OS": payload.get("os") or "Unknown",
            "SessionId": payload.get("sessionId") or "",
            "IP": ip,
            "Timestamp": format_timestamp(now or utcnow()),
        }
        record = self.tables.create(PAGE_VIEWS, fields)
        logger.debug("Page view stored: %s", fields["Page"])
        return {"id": record.id, "page": fields["Page"], "referrer": fields["Referrer"]}

    def stats(self) -> Dict[str, Any]:
        records = self.tables.select(
            PAGE_VIEWS, sort=[("Timestamp", "desc")], max_records=STATS_SAMPLE
        )
        pages = Counter(r.get("Page", "/") for r in records)
        referrers = Counter(r.get("Referrer", "Direct") for r in records)
        visitors = {r.get("SessionId") or r.get("IP") for r in records} - {None, "", "Unknown"}

        return {
            "totalPageViews": len(records),
            "uniqueVisitors": len(visitors),
            "topPages": [{"page": p, "count": c} for p, c in pages.most_common(TOP_N)],
            "topReferrers": [{"referrer": r, "count": c} for r, c in referrers.most_common(TOP_N)],
        }
