from .account_service import AccountService
from .analytics_service import AnalyticsService
from .newsletter_service import NewsletterService
from .payment_service import DonationService

__all__ = ["AccountService", "AnalyticsService", "DonationService", "NewsletterService"]
