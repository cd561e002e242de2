"""
Client for the external tabular data store (Airtable REST API).

The store is the system of record for subscribers, users, donations, page
views and the moderation ledger. Nothing read from it is cached beyond the
request that read it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import quote

import requests

from siteapi.config import ConfigurationError

logger = logging.getLogger(__name__)


class TableStoreError(Exception):
    """Raised when the data store rejects or cannot serve a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class Record:
    id: str
    fields: Dict[str, Any] = field(default_factory=dict)
    created_time: Optional[str] = None

    def get(self, name: str, default: Any = None) -> Any:
        value = self.fields.get(name)
        return default if value is None else value

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Record":
        return cls(
            id=data["id"],
            fields=dict(data.get("fields") or {}),
            created_time=data.get("createdTime"),
        )


def formula_value(value: Any) -> str:
    """Quote a value for use inside a filterByFormula expression."""
    text = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{text}'"


def field_equals(name: str, value: Any) -> str:
    return f"{{{name}}} = {formula_value(value)}"


def field_equals_ci(name: str, value: Any) -> str:
    return f"LOWER({{{name}}}) = {formula_value(str(value).lower())}"


def all_of(*formulas: str) -> str:
    parts = [f for f in formulas if f]
    if len(parts) == 1:
        return parts[0]
    return f"AND({', '.join(parts)})"


Sort = Sequence[Tuple[str, str]]


class TableClient:
    """Thin wrapper over the REST API, one instance per base."""

    PAGE_SIZE = 100

    def __init__(
        self,
        api_token: str,
        base_id: str,
        base_url: str = "https://api.airtable.com/v0",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        if not api_token or not base_id:
            raise TableStoreError("Data store credentials are not configured")
        self.base_id = base_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        })

    def _url(self, table: str, record_id: Optional[str] = None) -> str:
        url = f"{self.base_url}/{self.base_id}/{quote(table, safe='')}"
        if record_id:
            url = f"{url}/{quote(record_id, safe='')}"
        return url

    def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise TableStoreError(f"Data store unreachable: {e}") from e

        if response.status_code >= 400:
            raise TableStoreError(
                f"Data store returned {response.status_code} for {method} {url}: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            return response.json() if response.content else {}
        except ValueError as e:
            raise TableStoreError(f"Data store returned invalid JSON: {e}") from e

    def select(
        self,
        table: str,
        formula: Optional[str] = None,
        sort: Optional[Sort] = None,
        max_records: Optional[int] = None,
        fields: Optional[Iterable[str]] = None,
    ) -> List[Record]:
        """List records, following pagination until ``max_records`` is reached."""
        params: List[Tuple[str, Any]] = [("pageSize", self.PAGE_SIZE)]
        if formula:
            params.append(("filterByFormula", formula))
        if max_records:
            params.append(("maxRecords", max_records))
        for index, (name, direction) in enumerate(sort or ()):
            params.append((f"sort[{index}][field]", name))
            params.append((f"sort[{index}][direction]", direction))
        for name in fields or ():
            params.append(("fields[]", name))

        records: List[Record] = []
        offset = None
        while True:
            page_params = list(params)
            if offset:
                page_params.append(("offset", offset))
            payload = self._request("GET", self._url(table), params=page_params)
            records.extend(Record.from_api(r) for r in payload.get("records", []))
            offset = payload.get("offset")
            if not offset or (max_records and len(records) >= max_records):
                break

        return records[:max_records] if max_records else records

    def first(self, table: str, formula: str, sort: Optional[Sort] = None) -> Optional[Record]:
        records = self.select(table, formula=formula, sort=sort, max_records=1)
        return records[0] if records else None

    def find(self, table: str, record_id: str) -> Optional[Record]:
        try:
            return Record.from_api(self._request("GET", self._url(table, record_id)))
        except TableStoreError as e:
            if e.status_code == 404:
                return None
            raise

    def create(self, table: str, fields: Dict[str, Any]) -> Record:
        payload = self._request(
            "POST", self._url(table), json={"records": [{"fields": fields}], "typecast": True}
        )
        return Record.from_api(payload["records"][0])

    def update(self, table: str, record_id: str, fields: Dict[str, Any]) -> Record:
        payload = self._request(
            "PATCH",
            self._url(table),
            json={"records": [{"id": record_id, "fields": fields}], "typecast": True},
        )
        return Record.from_api(payload["records"][0])

    def delete(self, table: str, record_id: str) -> bool:
        payload = self._request("DELETE", self._url(table, record_id))
        return bool(payload.get("deleted", True))


class DisabledTableClient:
    """Stands in for TableClient when credentials are absent; every call fails."""

    def __getattr__(self, name):
        def unavailable(*args, **kwargs):
            raise ConfigurationError("Data store credentials are not configured")

        return unavailable
