"""In-memory stand-ins for the external collaborators."""

import copy
import itertools
import re
from datetime import datetime, timezone

from siteapi.admission.models import ReputationInfo
from siteapi.admission.reputation import ReputationError
from siteapi.integrations.mailer import MailerError
from siteapi.integrations.notifier import NotifierError
from siteapi.integrations.tables import Record, TableStoreError

CONDITION_RE = re.compile(r"(LOWER\()?\{([^}]+)\}\)? = '((?:\\.|[^'\\])*)'")


def _unescape(value):
    return re.sub(r"\\(.)", r"\1", value)


def _matches(fields, formula):
    if not formula:
        return True
    conditions = CONDITION_RE.findall(formula)
    if not conditions:
        raise ValueError(f"Unsupported formula: {formula}")
    for lower, name, raw in conditions:
        actual = fields.get(name)
        actual = "" if actual is None else str(actual)
        if lower:
            actual = actual.lower()
        if actual != _unescape(raw):
            return False
    return True


class FakeTableClient:
    """Evaluates the equality/AND formulas the app generates against dict rows."""

    def __init__(self):
        self.tables = {}
        self.error = None
        self._ids = itertools.count(1)
        self.calls = []

    def _check(self, operation, table):
        self.calls.append((operation, table))
        if self.error is not None:
            raise self.error

    def _rows(self, table):
        return self.tables.setdefault(table, {})

    def add(self, table, fields):
        """Seed a record directly, bypassing failure injection."""
        record_id = f"rec{next(self._ids):014d}"
        self._rows(table)[record_id] = {
            "fields": dict(fields),
            "createdTime": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }
        return self._record(table, record_id)

    def _record(self, table, record_id):
        row = self._rows(table)[record_id]
        return Record(id=record_id, fields=copy.deepcopy(row["fields"]), created_time=row["createdTime"])

    def records(self, table):
        return [self._record(table, record_id) for record_id in self._rows(table)]

    def select(self, table, formula=None, sort=None, max_records=None, fields=None):
        self._check("select", table)
        matches = [
            self._record(table, record_id)
            for record_id, row in self._rows(table).items()
            if _matches(row["fields"], formula)
        ]
        for name, direction in reversed(list(sort or ())):
            matches.sort(
                key=lambda r: (r.fields.get(name) is not None, r.fields.get(name) or ""),
                reverse=(direction == "desc"),
            )
        return matches[:max_records] if max_records else matches

    def first(self, table, formula, sort=None):
        records = self.select(table, formula=formula, sort=sort, max_records=1)
        return records[0] if records else None

    def find(self, table, record_id):
        self._check("find", table)
        if record_id not in self._rows(table):
            return None
        return self._record(table, record_id)

    def create(self, table, fields):
        self._check("create", table)
        return self.add(table, fields)

    def update(self, table, record_id, fields):
        self._check("update", table)
        if record_id not in self._rows(table):
            raise TableStoreError(f"Record {record_id} not found", status_code=404)
        self._rows(table)[record_id]["fields"].update(fields)
        return self._record(table, record_id)

    def delete(self, table, record_id):
        self._check("delete", table)
        if record_id not in self._rows(table):
            raise TableStoreError(f"Record {record_id} not found", status_code=404)
        del self._rows(table)[record_id]
        return True


class FakeReputation:

    def __init__(self, flagged=None, error=None):
        self.flagged = dict(flagged or {})
        self.error = error
        self.calls = []

    def flag(self, ip, type="VPN", risk="high", asn="AS64500", provider="Example Hosting"):
        self.flagged[ip] = ReputationInfo(
            is_flagged=True, type=type, risk=risk, risk_score=80, asn=asn, provider=provider
        )

    def lookup(self, ip):
        self.calls.append(ip)
        if self.error is not None:
            raise self.error
        return self.flagged.get(ip, ReputationInfo.unknown())


class TimeoutReputation(FakeReputation):
    def __init__(self):
        super().__init__(error=ReputationError("Reputation lookup timed out"))


class RecordingNotifier:

    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    @property
    def configured(self):
        return True

    def types(self):
        return [t for t, _, _ in self.sent]

    def send(self, type, data=None, mention=None):
        if self.fail:
            raise NotifierError("webhook down")
        self.sent.append((type, dict(data or {}), mention))
        return True


class RecordingMailer:

    def __init__(self, fail=False):
        self.messages = []
        self.fail = fail

    @property
    def configured(self):
        return True

    def send(self, to, subject, html_body=None, text_body=None, reply_to=None):
        if self.fail:
            raise MailerError("mail service down")
        self.messages.append({
            "to": to,
            "subject": subject,
            "html_body": html_body,
            "text_body": text_body,
            "reply_to": reply_to,
        })
        return True
