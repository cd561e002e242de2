from .appeals import AppealService, NoActiveRestriction
from .ledger import ModerationLedger
from .vpn_alerts import AlertNotFound, UnknownAlertAction, VpnAlertService

__all__ = [
    "AlertNotFound",
    "AppealService",
    "ModerationLedger",
    "NoActiveRestriction",
    "UnknownAlertAction",
    "VpnAlertService",
]
