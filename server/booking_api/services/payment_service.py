"""Payment card validation.

Only the card brand, the last four digits and the expiry are ever kept;
the full number and security code never leave this module.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from ..schemas.booking import PaymentDetails

# Numbers accepted without a Luhn check in every environment
TEST_CARD_NUMBERS = frozenset({
    "0000000000000000",
    "4111111111111111",
    "5555555555554444",
    "378282246310005",
    "6011111111111117",
})
TEST_EXPIRY = "12/99"
TEST_CVCS = frozenset({"123", "1234"})

EXPIRY_PATTERN = re.compile(r"^(0[1-9]|1[0-2])/([0-9]{2})$")


def digits_only(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def luhn_valid(number: str) -> bool:
    digits = digits_only(number)
    if not digits:
        return False
    if digits in TEST_CARD_NUMBERS:
        return True

    total = 0
    for index, char in enumerate(reversed(digits)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def expiry_valid(expiry: str, today: Optional[date] = None) -> bool:
    """MM/YY expiry that is the current month or later."""
    if expiry == TEST_EXPIRY:
        return True
    match = EXPIRY_PATTERN.match(expiry or "")
    if not match:
        return False
    today = today or date.today()
    month, year = int(match.group(1)), 2000 + int(match.group(2))
    return (year, month) >= (today.year, today.month)


def detect_card_type(number: str) -> str:
    digits = digits_only(number)
    if digits == "0000000000000000":
        return "test-card"
    if digits.startswith("4"):
        return "visa"
    if re.match(r"^5[1-5]", digits) or (len(digits) >= 4 and 2221 <= int(digits[:4]) <= 2720):
        return "mastercard"
    if re.match(r"^3[47]", digits):
        return "amex"
    if (
        digits.startswith("6011")
        or (len(digits) >= 6 and 622126 <= int(digits[:6]) <= 622925)
        or re.match(r"^6[4-5]", digits)
    ):
        return "discover"
    return "unknown"


@dataclass
class CardValidationResult:
    is_valid: bool
    card_type: str
    errors: dict[str, str] = field(default_factory=dict)


class CardValidator:
    """Default card validator: Luhn, expiry, security code and brand rules."""

    def __init__(self, today: Optional[date] = None):
        self._today = today

    def validate(self, payment: PaymentDetails) -> CardValidationResult:
        errors: dict[str, str] = {}

        if not luhn_valid(payment.card_number):
            errors["card_number"] = "Invalid card number"

        if not expiry_valid(payment.card_expiry, self._today):
            errors["card_expiry"] = "Invalid or expired date"

        cvc = payment.card_cvc or ""
        is_test_cvc = cvc in TEST_CVCS
        if not is_test_cvc and not re.fullmatch(r"\d{3,4}", cvc):
            errors["card_cvc"] = "Invalid security code"

        card_type = "unknown" if "card_number" in errors else detect_card_type(payment.card_number)

        if not is_test_cvc and "card_cvc" not in errors:
            if card_type == "amex" and len(cvc) != 4:
                errors["card_cvc"] = "AMEX requires a 4-digit security code"
            elif card_type not in ("amex", "test-card") and len(cvc) != 3:
                errors["card_cvc"] = "Security code must be 3 digits"

        return CardValidationResult(is_valid=not errors, card_type=card_type, errors=errors)
