"""SQLAlchemy models."""

from beautyhub.models.automation import AutomationExecution, MarketingAutomation
from beautyhub.models.booking import Booking
from beautyhub.models.finance_transaction import FinanceTransaction
from beautyhub.models.provider import Provider, ProviderMessagingSettings
from beautyhub.models.service_package import ServicePackage
from beautyhub.models.user import User
from beautyhub.models.wallet import WalletTopup, WalletTransaction

__all__ = [
    "AutomationExecution",
    "Booking",
    "FinanceTransaction",
    "MarketingAutomation",
    "Provider",
    "ProviderMessagingSettings",
    "ServicePackage",
    "User",
    "WalletTopup",
    "WalletTransaction",
]
