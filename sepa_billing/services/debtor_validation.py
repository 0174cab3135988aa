"""Row-level validation of debtor data extracted from a batch file."""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from sepa_billing.utils.iban import is_valid_iban

CENTS = Decimal("0.01")
# Debtor.amount is Numeric(10, 2)
MAX_AMOUNT = Decimal("99999999.99")


@dataclass
class RowValidation:
    iban_valid: bool
    amount: Optional[Decimal] = None
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def parse_amount(raw: str) -> Optional[Decimal]:
    """Accept ``12.50``, ``12,50`` and ``1 234,50``; blank is None."""
    raw = (raw or "").strip().replace(" ", "").replace(" ", "")
    if not raw:
        return None
    if "," in raw and "." in raw:
        # Whichever separator comes last is the decimal one
        if raw.rfind(",") > raw.rfind("."):
            raw = raw.replace(".", "").replace(",", ".")
        else:
            raw = raw.replace(",", "")
    else:
        raw = raw.replace(",", ".")
    try:
        amount = Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"amount '{raw}' is not a number")
    if not amount.is_finite():
        raise ValueError(f"amount '{raw}' is not a number")
    if abs(amount) > MAX_AMOUNT:
        raise ValueError(f"amount '{raw}' exceeds {MAX_AMOUNT}")
    try:
        return amount.quantize(CENTS)
    except InvalidOperation:
        raise ValueError(f"amount '{raw}' is not a number")


def validate_row(values: Dict[str, str]) -> RowValidation:
    """
    Validate mapped row values.

    A row is billable when the IBAN passes the mod-97 check, at least one
    name field is present, and any given amount is a positive number.
    """
    errors: List[str] = []
    iban = values.get("iban", "")
    iban_valid = is_valid_iban(iban)
    if not iban:
        errors.append("IBAN is missing")
    elif not iban_valid:
        errors.append("IBAN checksum is invalid")

    if not values.get("first_name") and not values.get("last_name"):
        errors.append("Debtor name is missing")

    amount = None
    try:
        amount = parse_amount(values.get("amount", ""))
    except ValueError as e:
        errors.append(str(e))
    else:
        if amount is not None and amount <= 0:
            errors.append("amount must be positive")

    return RowValidation(iban_valid=iban_valid, amount=amount, errors=errors)
