"""Moderation ledger records and their mapping to data store fields."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from siteapi.integrations.tables import Record


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class AppealStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    DENIED = "Denied"


class AppealType(str, Enum):
    IP_BLOCK = "IP_Block"
    ACCOUNT_SUSPENDED = "Account_Suspended"
    ACCOUNT_INACTIVE = "Account_Inactive"

    @property
    def is_account(self) -> bool:
        return self.value.startswith("Account_")


class AccountStatus(str, Enum):
    ACTIVE = "Active"
    SUSPENDED = "Suspended"
    INACTIVE = "Inactive"


class VpnAlertStatus(str, Enum):
    OPEN = "Open"
    RESOLVED = "Resolved"
    BLOCKED = "Blocked"
    ALLOWLISTED = "Allowlisted"
    IGNORED = "Ignored"


class InvalidStateTransition(Exception):
    pass


@dataclass
class BlockEntry:
    ip: str
    reason: str
    blocked_at: datetime = field(default_factory=utcnow)
    expires_at: Optional[datetime] = None
    auto_blocked: bool = False
    id: Optional[str] = None

    def is_active(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return True
        return self.expires_at > (now or utcnow())

    @classmethod
    def from_record(cls, record: Record) -> "BlockEntry":
        return cls(
            id=record.id,
            ip=record.get("IP", ""),
            reason=record.get("Reason", "Spam activity detected"),
            blocked_at=parse_timestamp(record.get("BlockedDate") or record.created_time) or utcnow(),
            expires_at=parse_timestamp(record.get("ExpiresAt")),
            auto_blocked=bool(record.get("AutoBlocked", False)),
        )

    def to_fields(self) -> Dict[str, Any]:
        fields = {
            "IP": self.ip,
            "Reason": self.reason,
            "BlockedDate": format_timestamp(self.blocked_at),
            "AutoBlocked": self.auto_blocked,
        }
        if self.expires_at:
            fields["ExpiresAt"] = format_timestamp(self.expires_at)
        return fields

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ip": self.ip,
            "reason": self.reason,
            "blockedAt": format_timestamp(self.blocked_at),
            "expiresAt": format_timestamp(self.expires_at),
            "autoBlocked": self.auto_blocked,
            "active": self.is_active(),
        }


@dataclass
class AllowEntry:
    ip: str
    note: str = ""
    added_at: datetime = field(default_factory=utcnow)
    expires_at: Optional[datetime] = None
    id: Optional[str] = None

    def is_active(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return True
        return self.expires_at > (now or utcnow())

    @classmethod
    def from_record(cls, record: Record) -> "AllowEntry":
        return cls(
            id=record.id,
            ip=record.get("IP", "Unknown"),
            note=record.get("Note", ""),
            added_at=parse_timestamp(record.get("AddedAt") or record.created_time) or utcnow(),
            expires_at=parse_timestamp(record.get("ExpiresAt")),
        )

    def to_fields(self) -> Dict[str, Any]:
        fields = {
            "IP": self.ip,
            "Note": self.note,
            "AddedAt": format_timestamp(self.added_at),
        }
        if self.expires_at:
            fields["ExpiresAt"] = format_timestamp(self.expires_at)
        return fields

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ip": self.ip,
            "note": self.note,
            "addedAt": format_timestamp(self.added_at),
        }


@dataclass
class Appeal:
    ip: str
    email: str
    reason: str
    appeal_type: AppealType = AppealType.IP_BLOCK
    status: AppealStatus = AppealStatus.PENDING
    submitted_at: datetime = field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None
    admin_notes: str = ""
    times_appealed: int = 1
    previous_status: str = ""
    user_agent: str = "Unknown"
    id: Optional[str] = None

    @property
    def subject(self) -> str:
        return self.email if self.appeal_type.is_account else self.ip

    def resolve(self, status: AppealStatus, admin_notes: str = "", now: Optional[datetime] = None) -> None:
        if self.status != AppealStatus.PENDING:
            raise InvalidStateTransition(
                f"Appeal {self.id} is already {self.status.value}"
            )
        if status == AppealStatus.PENDING:
            raise InvalidStateTransition("An appeal can only be resolved to Approved or Denied")
        self.status = status
        self.admin_notes = admin_notes or ""
        self.resolved_at = now or utcnow()

    @classmethod
    def from_record(cls, record: Record) -> "Appeal":
        try:
            appeal_type = AppealType(record.get("AppealType", AppealType.IP_BLOCK.value))
        except ValueError:
            appeal_type = AppealType.IP_BLOCK
        try:
            status = AppealStatus(record.get("Status", AppealStatus.PENDING.value))
        except ValueError:
            status = AppealStatus.PENDING
        return cls(
            id=record.id,
            ip=record.get("IP", ""),
            email=record.get("Email", ""),
            reason=record.get("Reason", ""),
            appeal_type=appeal_type,
            status=status,
            submitted_at=parse_timestamp(record.get("SubmittedDate") or record.created_time) or utcnow(),
            resolved_at=parse_timestamp(record.get("ResolvedDate")),
            admin_notes=record.get("AdminNotes", ""),
            times_appealed=int(record.get("TimesAppealed", 1)),
            previous_status=record.get("PreviousStatus", ""),
            user_agent=record.get("UserAgent", "Unknown"),
        )

    def to_fields(self) -> Dict[str, Any]:
        fields = {
            "IP": self.ip,
            "Email": self.email,
            "Reason": self.reason,
            "AppealType": self.appeal_type.value,
            "Status": self.status.value,
            "SubmittedDate": format_timestamp(self.submitted_at),
            "TimesAppealed": self.times_appealed,
            "PreviousStatus": self.previous_status,
            "UserAgent": self.user_agent,
            "AdminNotes": self.admin_notes,
        }
        if self.resolved_at:
            fields["ResolvedDate"] = format_timestamp(self.resolved_at)
        return fields

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "ip": self.ip,
            "reason": self.reason,
            "status": self.status.value,
            "appealType": self.appeal_type.value,
            "submittedDate": format_timestamp(self.submitted_at),
            "resolvedDate": format_timestamp(self.resolved_at),
            "adminNotes": self.admin_notes,
            "timesAppealed": self.times_appealed,
            "previousStatus": self.previous_status,
        }


@dataclass
class VpnAlert:
    ip: str
    action: str
    status: VpnAlertStatus = VpnAlertStatus.OPEN
    count: int = 1
    first_seen: datetime = field(default_factory=utcnow)
    last_seen: datetime = field(default_factory=utcnow)
    type: str = "Unknown"
    risk: str = "Unknown"
    asn: str = "Unknown"
    provider: str = "Unknown"
    note: str = ""
    last_action_at: Optional[datetime] = None
    id: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status == VpnAlertStatus.OPEN

    @classmethod
    def from_record(cls, record: Record) -> "VpnAlert":
        try:
            status = VpnAlertStatus(record.get("Status", VpnAlertStatus.OPEN.value))
        except ValueError:
            status = VpnAlertStatus.OPEN
        return cls(
            id=record.id,
            ip=record.get("IP", "Unknown"),
            action=record.get("Action", "Unknown"),
            status=status,
            count=int(record.get("Count", 1)),
            first_seen=parse_timestamp(record.get("FirstSeen") or record.created_time) or utcnow(),
            last_seen=parse_timestamp(record.get("LastSeen")) or utcnow(),
            type=record.get("Type", "Unknown"),
            risk=record.get("Risk", "Unknown"),
            asn=record.get("ASN", "Unknown"),
            provider=record.get("Provider", "Unknown"),
            note=record.get("AdminNote") or record.get("Note", ""),
            last_action_at=parse_timestamp(record.get("LastActionAt")),
        )

    def to_fields(self) -> Dict[str, Any]:
        fields = {
            "IP": self.ip,
            "Action": self.action,
            "Status": self.status.value,
            "Count": self.count,
            "FirstSeen": format_timestamp(self.first_seen),
            "LastSeen": format_timestamp(self.last_seen),
            "Type": self.type,
            "Risk": self.risk,
            "ASN": self.asn,
            "Provider": self.provider,
        }
        if self.note:
            fields["AdminNote"] = self.note
        if self.last_action_at:
            fields["LastActionAt"] = format_timestamp(self.last_action_at)
        return fields

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ip": self.ip,
            "action": self.action,
            "status": self.status.value,
            "count": self.count,
            "firstSeen": format_timestamp(self.first_seen),
            "lastSeen": format_timestamp(self.last_seen),
            "type": self.type,
            "risk": self.risk,
            "asn": self.asn,
            "provider": self.provider,
            "note": self.note,
        }
