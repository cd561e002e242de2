import logging
from datetime import datetime
from typing import List, Optional, Tuple

from siteapi.integrations.tables import (
    Record,
    TableClient,
    all_of,
    field_equals,
    field_equals_ci,
)
from siteapi.moderation.models import (
    AccountStatus,
    AllowEntry,
    Appeal,
    AppealStatus,
    BlockEntry,
    VpnAlert,
    VpnAlertStatus,
    format_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)


class ModerationLedger:
    """
    Durable record of blocks, allowlist entries, appeals and VPN alerts.

    Every call goes to the data store; results are never cached so moderation
    decisions are always current.
    """

    BLOCKED_IPS = "BlockedIPs"
    ALLOWLIST_IPS = "AllowlistIPs"
    APPEALS = "Appeals"
    VPN_ALERTS = "VpnAlerts"
    USERS = "Users"

    def __init__(self, tables: TableClient):
        self.tables = tables

    # -- blocks -------------------------------------------------------------

    def find_block(self, ip: str) -> Optional[BlockEntry]:
        record = self.tables.first(
            self.BLOCKED_IPS, field_equals("IP", ip), sort=[("BlockedDate", "desc")]
        )
        return BlockEntry.from_record(record) if record else None

    def find_active_block(self, ip: str, now: Optional[datetime] = None) -> Optional[BlockEntry]:
        entry = self.find_block(ip)
        if entry and entry.is_active(now):
            return entry
        return None

    def upsert_block(self, entry: BlockEntry) -> BlockEntry:
        existing = self.tables.first(self.BLOCKED_IPS, field_equals("IP", entry.ip))
        if existing:
            record = self.tables.update(self.BLOCKED_IPS, existing.id, entry.to_fields())
        else:
            record = self.tables.create(self.BLOCKED_IPS, entry.to_fields())
        logger.info("Block recorded for %s", entry.ip, extra={"auto_blocked": entry.auto_blocked})
        return BlockEntry.from_record(record)

    def list_blocks(self) -> List[BlockEntry]:
        records = self.tables.select(self.BLOCKED_IPS, sort=[("BlockedDate", "desc")])
        return [BlockEntry.from_record(r) for r in records]

    def remove_block(self, record_id: Optional[str] = None, ip: Optional[str] = None) -> bool:
        if not record_id and ip:
            existing = self.tables.first(self.BLOCKED_IPS, field_equals("IP", ip))
            record_id = existing.id if existing else None
        if not record_id:
            return False
        if not self.tables.find(self.BLOCKED_IPS, record_id):
            return False
        self.tables.delete(self.BLOCKED_IPS, record_id)
        return True

    # -- allowlist ----------------------------------------------------------

    def find_allow(self, ip: str) -> Optional[AllowEntry]:
        record = self.tables.first(self.ALLOWLIST_IPS, field_equals("IP", ip))
        return AllowEntry.from_record(record) if record else None

    def find_active_allow(self, ip: str, now: Optional[datetime] = None) -> Optional[AllowEntry]:
        entry = self.find_allow(ip)
        if entry and entry.is_active(now):
            return entry
        return None

    def upsert_allow(self, entry: AllowEntry) -> Tuple[AllowEntry, bool]:
        """Returns the stored entry and whether it was newly created."""
        existing = self.tables.first(self.ALLOWLIST_IPS, field_equals("IP", entry.ip))
        if existing:
            record = self.tables.update(self.ALLOWLIST_IPS, existing.id, entry.to_fields())
            return AllowEntry.from_record(record), False
        record = self.tables.create(self.ALLOWLIST_IPS, entry.to_fields())
        return AllowEntry.from_record(record), True

    def list_allowlist(self) -> List[AllowEntry]:
        records = self.tables.select(self.ALLOWLIST_IPS, sort=[("AddedAt", "desc")])
        return [AllowEntry.from_record(r) for r in records]

    def remove_allow(self, record_id: Optional[str] = None, ip: Optional[str] = None) -> bool:
        if not record_id and ip:
            existing = self.tables.first(self.ALLOWLIST_IPS, field_equals("IP", ip))
            record_id = existing.id if existing else None
        if not record_id:
            return False
        if not self.tables.find(self.ALLOWLIST_IPS, record_id):
            return False
        self.tables.delete(self.ALLOWLIST_IPS, record_id)
        return True

    # -- appeals ------------------------------------------------------------

    def create_appeal(self, appeal: Appeal) -> Appeal:
        record = self.tables.create(self.APPEALS, appeal.to_fields())
        return Appeal.from_record(record)

    def get_appeal(self, appeal_id: str) -> Optional[Appeal]:
        record = self.tables.find(self.APPEALS, appeal_id)
        return Appeal.from_record(record) if record else None

    def save_appeal(self, appeal: Appeal) -> Appeal:
        record = self.tables.update(self.APPEALS, appeal.id, appeal.to_fields())
        return Appeal.from_record(record)

    def appeals_for_subject(self, ip: Optional[str] = None, email: Optional[str] = None) -> List[Appeal]:
        """Prior appeals for an IP or an account email, newest first."""
        formula = field_equals_ci("Email", email) if email else field_equals("IP", ip)
        records = self.tables.select(self.APPEALS, formula=formula, sort=[("SubmittedDate", "desc")])
        return [Appeal.from_record(r) for r in records]

    def list_appeals(self, status: Optional[AppealStatus] = None, newest_first: bool = True) -> List[Appeal]:
        formula = field_equals("Status", status.value) if status else None
        direction = "desc" if newest_first else "asc"
        records = self.tables.select(
            self.APPEALS, formula=formula, sort=[("SubmittedDate", direction)]
        )
        return [Appeal.from_record(r) for r in records]

    # -- VPN alerts ---------------------------------------------------------

    def latest_alert(self, ip: str, action: str) -> Optional[VpnAlert]:
        record = self.tables.first(
            self.VPN_ALERTS,
            all_of(field_equals("IP", ip), field_equals("Action", action)),
            sort=[("LastSeen", "desc")],
        )
        return VpnAlert.from_record(record) if record else None

    def find_open_alert(self, ip: str, action: str) -> Optional[VpnAlert]:
        record = self.tables.first(
            self.VPN_ALERTS,
            all_of(
                field_equals("IP", ip),
                field_equals("Action", action),
                field_equals("Status", VpnAlertStatus.OPEN.value),
            ),
        )
        return VpnAlert.from_record(record) if record else None

    def create_alert(self, alert: VpnAlert) -> VpnAlert:
        return VpnAlert.from_record(self.tables.create(self.VPN_ALERTS, alert.to_fields()))

    def save_alert(self, alert: VpnAlert) -> VpnAlert:
        return VpnAlert.from_record(self.tables.update(self.VPN_ALERTS, alert.id, alert.to_fields()))

    def get_alert(self, alert_id: str) -> Optional[VpnAlert]:
        record = self.tables.find(self.VPN_ALERTS, alert_id)
        return VpnAlert.from_record(record) if record else None

    def list_alerts(self, limit: int = 200) -> List[VpnAlert]:
        records = self.tables.select(
            self.VPN_ALERTS, sort=[("LastSeen", "desc")], max_records=limit
        )
        return [VpnAlert.from_record(r) for r in records]

    # -- accounts -----------------------------------------------------------

    def find_account(self, email: str) -> Optional[Record]:
        return self.tables.first(self.USERS, field_equals_ci("Email", email))

    def account_status(self, email: str) -> Optional[AccountStatus]:
        record = self.find_account(email)
        if not record:
            return None
        try:
            return AccountStatus(record.get("Status", AccountStatus.ACTIVE.value))
        except ValueError:
            return AccountStatus.ACTIVE

    def set_account_status(self, email: str, status: AccountStatus) -> bool:
        record = self.find_account(email)
        if not record:
            return False
        self.tables.update(
            self.USERS, record.id, {"Status": status.value, "StatusChangedAt": format_timestamp(utcnow())}
        )
        return True
