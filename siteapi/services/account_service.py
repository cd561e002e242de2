import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from siteapi.admission.best_effort import best_effort
from siteapi.errors import AuthorizationError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from siteapi.integrations.tables import Record, TableClient, field_equals
from siteapi.moderation.ledger import ModerationLedger
from siteapi.moderation.models import AccountStatus, format_timestamp, parse_timestamp, utcnow
from siteapi.validation import is_disposable_email, is_valid_email, normalize_email

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 2
MIN_PASSWORD_LENGTH = 8
VERIFICATION_TTL = timedelta(hours=24)
PASSWORD_RESET_TTL = timedelta(hours=1)
DELETED_USERS = "DeletedUsers"

RESET_REQUESTED_MESSAGE = "If that email is registered, a password reset link has been sent."


def _public_profile(record: Record) -> Dict[str, Any]:
    return {
        "id": record.id,
        "name": record.get("Name", ""),
        "email": record.get("Email", ""),
        "status": record.get("Status", AccountStatus.ACTIVE.value),
        "emailVerified": bool(record.get("EmailVerified", False)),
        "createdAt": record.get("CreatedAt") or record.created_time,
        "lastLogin": record.get("LastLogin"),
    }


def _is_expired(value, now: datetime) -> bool:
    expires_at = parse_timestamp(value)
    return expires_at is None or expires_at < now


class AccountService:
    """User accounts stored in the Users table."""

    def __init__(self, tables: TableClient, mailer, notifier=None, site_url: str = ""):
        self.tables = tables
        self.ledger = ModerationLedger(tables)
        self.mailer = mailer
        self.notifier = notifier
        self.site_url = site_url.rstrip("/")

    def register(
        self,
        name: Optional[str],
        email: Optional[str],
        password: Optional[str],
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        name = (name or "").strip()
        email = normalize_email(email)
        password = password or ""

        if not name or not email or not password:
            raise ValidationError("Name, email, and password are required")
        if len(name) < MIN_NAME_LENGTH:
            raise ValidationError(f"Name must be at least {MIN_NAME_LENGTH} characters")
        if not is_valid_email(email):
            raise ValidationError("Invalid email address")
        if is_disposable_email(email):
            raise ValidationError("Disposable email addresses are not allowed")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        if self.ledger.find_account(email):
            raise ConflictError("Email address is already registered")

        now = now or utcnow()
        token = secrets.token_hex(32)
        record = self.tables.create(ModerationLedger.USERS, {
            "Name": name,
            "Email": email,
            "PasswordHash": generate_password_hash(password),
            "CreatedAt": format_timestamp(now),
            "EmailVerified": False,
            "Status": AccountStatus.ACTIVE.value,
            "VerificationToken": token,
            "VerificationExpiry": format_timestamp(now + VERIFICATION_TTL),
        })
        logger.info("User registered: %s", record.id)

        self._send_verification(email, name, token)
        if self.notifier:
            best_effort(
                self.notifier.send, "new_user_signup", {"name": name, "email": email},
                label="signup notification",
            )
        return _public_profile(record)

    def authenticate(self, email: Optional[str], password: Optional[str], now: Optional[datetime] = None) -> Dict[str, Any]:
        email = normalize_email(email)
        if not email or not password:
            raise ValidationError("Email and password are required")

        record = self.ledger.find_account(email)
        if not record or not check_password_hash(record.get("PasswordHash", ""), password):
            raise AuthorizationError("Invalid email or password")

        status = record.get("Status", AccountStatus.ACTIVE.value)
        if status != AccountStatus.ACTIVE.value:
            raise ForbiddenError(
                f"Your account is {status.lower()}. You can submit an appeal.",
                payload={"accountStatus": status, "appealUrl": "/blocked.html"},
            )

        best_effort(
            self.tables.update, ModerationLedger.USERS, record.id,
            {"LastLogin": format_timestamp(now or utcnow())},
            label="last login stamp",
        )
        logger.info("User logged in: %s", record.id)
        return _public_profile(record)

    def profile(self, user_id: str) -> Dict[str, Any]:
        record = self.tables.find(ModerationLedger.USERS, user_id)
        if not record:
            raise NotFoundError("User not found")
        return _public_profile(record)

    # -- email verification -------------------------------------------------

    def _send_verification(self, email: str, name: str, token: str) -> bool:
        link = f"{self.site_url}/verify-email.html?token={token}"
        sent = best_effort(
            self.mailer.send,
            email,
            "Verify your email address",
            html_body=f'<p>Hi {name},</p><p><a href="{link}">Verify your email</a> within 24 hours.</p>',
            default=False,
            label="verification email",
        )
        return bool(sent)

    def verify_email(self, token: Optional[str], now: Optional[datetime] = None) -> Dict[str, Any]:
        if not token:
            raise ValidationError("Verification token is required")

        record = self.tables.first(ModerationLedger.USERS, field_equals("VerificationToken", token))
        if not record:
            raise NotFoundError("Invalid verification token")

        email = record.get("Email", "")
        if record.get("EmailVerified"):
            return {"message": "Email is already verified", "email": email, "alreadyVerified": True}

        if _is_expired(record.get("VerificationExpiry"), now or utcnow()):
            raise ValidationError("Verification link has expired", payload={"expired": True})

        self.tables.update(ModerationLedger.USERS, record.id, {
            "EmailVerified": True,
            "VerificationToken": None,
            "VerificationExpiry": None,
        })
        logger.info("Email verified for user %s", record.id)
        return {"message": "Email verified successfully", "email": email, "alreadyVerified": False}

    def resend_verification(self, email: Optional[str], now: Optional[datetime] = None) -> Dict[str, Any]:
        email = normalize_email(email)
        if not email:
            raise ValidationError("Email is required")

        record = self.ledger.find_account(email)
        if not record:
            raise NotFoundError("Email not found")
        if record.get("EmailVerified"):
            raise ValidationError("Email is already verified")

        now = now or utcnow()
        token = secrets.token_hex(32)
        self.tables.update(ModerationLedger.USERS, record.id, {
            "VerificationToken": token,
            "VerificationExpiry": format_timestamp(now + VERIFICATION_TTL),
        })
        sent = self._send_verification(email, record.get("Name", ""), token)
        return {"message": "Verification email sent", "emailSent": sent}

    # -- password reset -----------------------------------------------------

    def request_password_reset(self, email: Optional[str], now: Optional[datetime] = None) -> Dict[str, Any]:
        """Issue a one-hour reset token. The reply never reveals whether the address exists."""
        email = normalize_email(email)
        if not email:
            raise ValidationError("Email is required")

        record = self.ledger.find_account(email)
        if not record:
            logger.info("Password reset requested for unknown address")
            return {"message": RESET_REQUESTED_MESSAGE}

        now = now or utcnow()
        token = secrets.token_hex(32)
        self.tables.update(ModerationLedger.USERS, record.id, {
            "PasswordResetToken": token,
            "PasswordResetExpiry": format_timestamp(now + PASSWORD_RESET_TTL),
        })

        link = f"{self.site_url}/reset-password.html?token={token}"
        best_effort(
            self.mailer.send,
            email,
            "Reset your password",
            html_body=(
                f'<p>Hi {record.get("Name", "")},</p>'
                f'<p><a href="{link}">Reset your password</a>. This link expires in 1 hour.</p>'
                "<p>If you didn't request a reset, you can ignore this email.</p>"
            ),
            label="password reset email",
        )
        return {"message": RESET_REQUESTED_MESSAGE}

    def reset_password(
        self, token: Optional[str], new_password: Optional[str], now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        if not token or not new_password:
            raise ValidationError("Token and new password are required")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        record = self.tables.first(ModerationLedger.USERS, field_equals("PasswordResetToken", token))
        if not record:
            raise ValidationError("Invalid or expired reset token")
        if _is_expired(record.get("PasswordResetExpiry"), now or utcnow()):
            raise ValidationError("Reset token has expired. Please request a new one.", payload={"expired": True})

        self.tables.update(ModerationLedger.USERS, record.id, {
            "PasswordHash": generate_password_hash(new_password),
            "PasswordResetToken": None,
            "PasswordResetExpiry": None,
        })
        logger.info("Password reset for user %s", record.id)
        return {"message": "Password reset successful. You can now log in with your new password."}

    # -- administration -----------------------------------------------------

    def list_users(
        self,
        search: Optional[str] = None,
        status: Optional[str] = None,
        verified: Optional[bool] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Dict[str, Any]:
        records = self.tables.select(ModerationLedger.USERS, sort=[("CreatedAt", "desc")])
        users = [_public_profile(r) for r in records]

        stats = {
            "total": len(users),
            "active": sum(1 for u in users if u["status"] == AccountStatus.ACTIVE.value),
            "suspended": sum(1 for u in users if u["status"] == AccountStatus.SUSPENDED.value),
            "inactive": sum(1 for u in users if u["status"] == AccountStatus.INACTIVE.value),
            "verified": sum(1 for u in users if u["emailVerified"]),
        }

        if search:
            needle = search.strip().lower()
            users = [u for u in users if needle in u["name"].lower() or needle in u["email"].lower()]
        if status and status != "all":
            users = [u for u in users if u["status"] == status]
        if verified is not None:
            users = [u for u in users if u["emailVerified"] is verified]

        page = max(1, page)
        limit = max(1, min(limit, 200))
        start = (page - 1) * limit
        return {
            "users": users[start:start + limit],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": len(users),
                "totalPages": -(-len(users) // limit),
            },
            "stats": stats,
        }

    def update_user(
        self, user_id: str, status: Optional[str] = None, email_verified: Optional[bool] = None
    ) -> Dict[str, Any]:
        """Set account status (Active, Suspended or Inactive) and/or the verified flag."""
        updates: Dict[str, Any] = {}
        if status is not None:
            try:
                updates["Status"] = AccountStatus(status).value
            except ValueError:
                raise ValidationError("Invalid status value") from None
            updates["StatusChangedAt"] = format_timestamp(utcnow())
        if email_verified is not None:
            updates["EmailVerified"] = bool(email_verified)
        if not updates:
            raise ValidationError("No fields to update")

        if not self.tables.find(ModerationLedger.USERS, user_id):
            raise NotFoundError("User not found")
        record = self.tables.update(ModerationLedger.USERS, user_id, updates)
        logger.info("User %s updated by admin", user_id, extra={"fields": sorted(updates)})
        return _public_profile(record)

    def delete_user(self, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Archive the account in DeletedUsers, then remove it from Users."""
        record = self.tables.find(ModerationLedger.USERS, user_id)
        if not record:
            raise NotFoundError("User not found")

        self.tables.create(DELETED_USERS, {
            "OriginalUserId": record.id,
            "Name": record.get("Name", ""),
            "Email": record.get("Email", ""),
            "Status": record.get("Status", AccountStatus.ACTIVE.value),
            "EmailVerified": bool(record.get("EmailVerified", False)),
            "CreatedAt": record.get("CreatedAt") or record.created_time,
            "LastLogin": record.get("LastLogin"),
            "DeletedAt": format_timestamp(now or utcnow()),
            "DeletedBy": "Admin",
        })
        self.tables.delete(ModerationLedger.USERS, record.id)
        logger.info("User %s moved to %s", record.id, DELETED_USERS)
        return {"userId": record.id, "email": record.get("Email", "")}
