import logging
from datetime import datetime
from typing import Any, Dict, Optional

from siteapi.admission.best_effort import best_effort
from siteapi.moderation.ledger import ModerationLedger
from siteapi.moderation.models import (
    AccountStatus,
    Appeal,
    AppealStatus,
    AppealType,
    utcnow,
)
from siteapi.validation import is_valid_email

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 2000


class AppealValidationError(ValueError):
    pass


class NoActiveRestriction(LookupError):
    """The subject has nothing to appeal."""


class AppealNotFound(LookupError):
    pass


class AppealService:
    """
    Dispute workflow for IP blocks and account restrictions.

    Appeals start Pending and end Approved or Denied; a resolved appeal is
    never changed again.
    """

    RESTRICTED_ACCOUNT_TYPES = {
        AccountStatus.SUSPENDED: AppealType.ACCOUNT_SUSPENDED,
        AccountStatus.INACTIVE: AppealType.ACCOUNT_INACTIVE,
    }

    def __init__(self, ledger: ModerationLedger, notifier=None):
        self.ledger = ledger
        self.notifier = notifier

    def submit(
        self,
        ip: str,
        email: Optional[str],
        reason: Optional[str],
        user_agent: str = "Unknown",
        now: Optional[datetime] = None,
    ) -> Appeal:
        email = (email or "").strip()
        reason = (reason or "").strip()
        if not email or not reason:
            raise AppealValidationError("Email and reason required")
        if not is_valid_email(email):
            raise AppealValidationError("Invalid email format")
        if len(reason) > MAX_REASON_LENGTH:
            raise AppealValidationError(f"Reason must be at most {MAX_REASON_LENGTH} characters")

        now = now or utcnow()
        appeal_type = self._restriction_for(ip, email, now)
        if appeal_type is None:
            raise NoActiveRestriction(
                "Your IP address is not currently blocked and your account is not restricted."
            )

        if appeal_type.is_account:
            history = self.ledger.appeals_for_subject(email=email)
        else:
            history = self.ledger.appeals_for_subject(ip=ip)

        appeal = self.ledger.create_appeal(Appeal(
            ip=ip,
            email=email,
            reason=reason,
            appeal_type=appeal_type,
            submitted_at=now,
            times_appealed=len(history) + 1,
            previous_status=history[0].status.value if history else "",
            user_agent=user_agent or "Unknown",
        ))
        logger.info("Appeal %s submitted for %s", appeal.id, appeal.subject)

        if self.notifier:
            best_effort(
                self.notifier.send,
                "block_appeal",
                {"ip": ip, "email": email, "reason": reason, "appealType": appeal_type.value},
                label="appeal notification",
            )
        return appeal

    def _restriction_for(self, ip: str, email: str, now: datetime) -> Optional[AppealType]:
        if self.ledger.find_active_block(ip, now):
            return AppealType.IP_BLOCK
        status = self.ledger.account_status(email)
        return self.RESTRICTED_ACCOUNT_TYPES.get(status)

    def _get(self, appeal_id: str) -> Appeal:
        appeal = self.ledger.get_appeal(appeal_id)
        if not appeal:
            raise AppealNotFound(f"Appeal {appeal_id} not found")
        return appeal

    def approve(self, appeal_id: str, admin_notes: str = "", now: Optional[datetime] = None) -> Dict[str, Any]:
        appeal = self._get(appeal_id)
        appeal.resolve(AppealStatus.APPROVED, admin_notes, now)
        appeal = self.ledger.save_appeal(appeal)

        result: Dict[str, Any] = {"appeal": appeal.to_dict()}

        # Approval lifts account restrictions only. An approved IP appeal keeps
        # its block until an admin removes it from the block list.
        if appeal.appeal_type.is_account:
            restored = self.ledger.set_account_status(appeal.email, AccountStatus.ACTIVE)
            result["accountRestored"] = restored
            result["message"] = (
                "Appeal approved and account unsuspended"
                if restored
                else "Appeal approved, but no matching account was found"
            )
        else:
            result["ipStillBlocked"] = self.ledger.find_active_block(appeal.ip, now) is not None
            result["message"] = "Appeal approved"

        logger.info("Appeal approved: %s", appeal_id)
        return result

    def deny(self, appeal_id: str, admin_notes: str = "", now: Optional[datetime] = None) -> Dict[str, Any]:
        appeal = self._get(appeal_id)
        appeal.resolve(AppealStatus.DENIED, admin_notes, now)
        appeal = self.ledger.save_appeal(appeal)
        logger.info("Appeal denied: %s", appeal_id)
        return {"appeal": appeal.to_dict(), "message": "Appeal denied"}

    def list(self, status: Optional[str] = None, sort: str = "newest") -> Dict[str, Any]:
        status_filter = None
        if status and status.lower() != "all":
            try:
                status_filter = AppealStatus(status.capitalize())
            except ValueError:
                raise AppealValidationError(f"Unknown appeal status: {status}") from None

        appeals = self.ledger.list_appeals(status_filter, newest_first=(sort != "oldest"))
        stats = {"total": len(appeals)}
        for appeal_status in AppealStatus:
            stats[appeal_status.value.lower()] = sum(1 for a in appeals if a.status == appeal_status)
        return {"appeals": [a.to_dict() for a in appeals], "stats": stats}
