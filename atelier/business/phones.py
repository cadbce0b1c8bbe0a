"""Egyptian phone number normalization used for heuristic matching."""

import re

_NON_DIGITS = re.compile(r"\D")
COUNTRY_CODE = "20"


def digits_only(phone: str | None) -> str:
    return _NON_DIGITS.sub("", phone or "")


def local_phone(phone: str | None) -> str:
    """Normalize to the local ``0XXXXXXXXXX`` form, ``""`` when empty."""
    digits = digits_only(phone)
    if not digits:
        return ""
    if digits.startswith(COUNTRY_CODE):
        digits = digits[len(COUNTRY_CODE):]
    if not digits.startswith("0"):
        digits = "0" + digits
    return digits


def phone_variants(phone: str | None) -> list[str]:
    """Spellings under which the same number may be stored on an order."""
    digits = digits_only(phone)
    if not digits:
        return []
    national = digits[len(COUNTRY_CODE):] if digits.startswith(COUNTRY_CODE) else digits
    variants = [digits, national, COUNTRY_CODE + digits, "0" + national]
    return list(dict.fromkeys(variant for variant in variants if variant))


def phone_matches(stored: str | None, variants: list[str]) -> bool:
    """Substring match of any variant against a stored phone."""
    stored_digits = digits_only(stored)
    return bool(stored_digits) and any(variant in stored_digits for variant in variants)


def zero_prefixed_phone(phone: str | None) -> str:
    """Digits with a leading ``0`` added when missing, as carrier rows are compared."""
    digits = digits_only(phone)
    if not digits:
        return ""
    return digits if digits.startswith("0") else "0" + digits
