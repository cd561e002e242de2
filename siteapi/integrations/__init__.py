from .mailer import GraphMailer, MailerError, NullMailer
from .notifier import DiscordNotifier, NotifierError
from .payments import InvalidAmount, InvalidWebhook, PaymentError, PaymentsDisabledError, StripeGateway
from .tables import DisabledTableClient, Record, TableClient, TableStoreError

__all__ = [
    "DisabledTableClient",
    "DiscordNotifier",
    "GraphMailer",
    "InvalidAmount",
    "InvalidWebhook",
    "MailerError",
    "NotifierError",
    "NullMailer",
    "PaymentError",
    "PaymentsDisabledError",
    "Record",
    "StripeGateway",
    "TableClient",
    "TableStoreError",
]
