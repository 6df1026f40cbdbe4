# app/domain/services/phone_service.py
import re
from typing import Optional

from app.domain.entities.risk import PHONE_PATTERN, PhoneNumber

COUNTRY_CODE = "880"

_NON_DIGITS = re.compile(r"[^0-9]")


def normalize_phone(raw) -> Optional[PhoneNumber]:
    """
    Normaliza un número local: quita todo lo que no sea dígito y reescribe
    880XXXXXXXXXX (13 dígitos) como 0XXXXXXXXXX. Devuelve None si no es válido.
    """
    if raw is None:
        return None
    if isinstance(raw, PhoneNumber):
        return raw
    if not isinstance(raw, str):
        raw = str(raw)

    digits = _NON_DIGITS.sub("", raw)

    if digits.startswith(COUNTRY_CODE) and len(digits) == 13:
        digits = "0" + digits[len(COUNTRY_CODE):]

    if not PHONE_PATTERN.match(digits):
        return None
    return PhoneNumber(digits)
