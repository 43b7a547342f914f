from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal

from services.money import to_cents


TAX_RATE = Decimal("0.15")


def _env_dollars(name: str, default: str) -> int:
    raw = (os.environ.get(name) or default).strip()
    return to_cents(raw)


@dataclass(frozen=True)
class RentalSettings:
    float_fee_cents: int = 15000
    security_deposit_cents: int = 50000
    booking_prefix: str = "UDR"
    insurance_prefix: str = "INS"
    payment_prefix: str = "PAY"
    max_attempts: int = 3
    retry_backoff_seconds: float = 0.05
    tax_rate: Decimal = TAX_RATE

    @classmethod
    def from_env(cls) -> "RentalSettings":
        return cls(
            float_fee_cents=_env_dollars("DEFAULT_FLOAT_FEE", "150"),
            security_deposit_cents=_env_dollars("SECURITY_DEPOSIT", "500"),
            booking_prefix=(os.environ.get("BOOKING_NUMBER_PREFIX") or "UDR").strip().upper(),
            max_attempts=max(1, int(os.environ.get("BOOKING_MAX_ATTEMPTS") or "3")),
        )
