"""Ledger row reduction.

Each transaction type gives amount / fees / net its own meaning, so every
figure is a sum over an explicit set of types and one field.
"""

from collections.abc import Collection, Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from beautyhub.models.finance_transaction import TransactionType

LEDGER_FIELDS = frozenset({"amount", "fees", "commission", "net"})

PAYMENT = frozenset({TransactionType.PAYMENT.value})
ADDITIONAL_CHARGE = frozenset({TransactionType.ADDITIONAL_CHARGE_PAYMENT.value})
COMMISSION_BEARING = PAYMENT | ADDITIONAL_CHARGE
SERVICE_COLLECTED = frozenset(
    {
        TransactionType.PAYMENT.value,
        TransactionType.PROVIDER_EARNINGS.value,
        TransactionType.TIP.value,
        TransactionType.TAX.value,
        TransactionType.TRAVEL_FEE.value,
        TransactionType.SERVICE_FEE.value,
    }
)
REFUND = frozenset({TransactionType.REFUND.value})
TIP = frozenset({TransactionType.TIP.value})
TAX = frozenset({TransactionType.TAX.value})
PROVIDER_EARNINGS = frozenset({TransactionType.PROVIDER_EARNINGS.value})
SUBSCRIPTION = frozenset({TransactionType.PROVIDER_SUBSCRIPTION_PAYMENT.value})
ADS = frozenset({TransactionType.PROVIDER_ADS_PAYMENT.value})
GIFT_CARD = frozenset({TransactionType.GIFT_CARD_SALE.value})
MEMBERSHIP = frozenset({TransactionType.MEMBERSHIP_SALE.value})

ZERO = Decimal("0")


@dataclass(frozen=True)
class LedgerRow:
    transaction_type: str
    amount: Decimal | None = None
    fees: Decimal | None = None
    commission: Decimal | None = None
    net: Decimal | None = None
    created_at: datetime | None = None


def to_decimal(value: object) -> Decimal:
    """Null-safe conversion; floats go through str to avoid binary noise."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class LedgerRows:
    """Immutable batch of ledger rows with typed sums."""

    def __init__(self, rows: Iterable[LedgerRow]) -> None:
        self._rows = tuple(rows)

    def __len__(self) -> int:
        return len(self._rows)

    def sum(self, types: Collection[str], field: str) -> Decimal:
        """Sum ``field`` over rows whose type is in ``types``. Nulls count as 0."""
        if field not in LEDGER_FIELDS:
            raise ValueError(f"Unknown ledger field: {field}")
        total = ZERO
        for row in self._rows:
            if row.transaction_type in types:
                total += to_decimal(getattr(row, field))
        return total
