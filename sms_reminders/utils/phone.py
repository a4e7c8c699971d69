from __future__ import annotations

import re

DEFAULT_COUNTRY_CODE = "1"


def to_e164(phone: str | None, default_country_code: str = DEFAULT_COUNTRY_CODE) -> str | None:
    """Return the phone in E.164 form, or None when it cannot be used.

    Normalization:
    - strip whitespace and punctuation
    - keep a leading + as already canonical
    - 10 digits without + get the default country code
    - 11 digits starting with the default country code get a +
    """
    if not phone:
        return None

    stripped = phone.strip()
    digits = re.sub(r"\D", "", stripped)
    if not digits:
        return None

    if stripped.startswith("+"):
        normalized = f"+{digits}"
    elif len(digits) == 10:
        normalized = f"+{default_country_code}{digits}"
    elif len(digits) == 10 + len(default_country_code) and digits.startswith(default_country_code):
        normalized = f"+{digits}"
    else:
        return None

    if not re.fullmatch(r"\+[1-9]\d{7,14}", normalized):
        return None

    return normalized


def mask_phone(phone: str | None) -> str:
    """Mask all but the last four digits of a phone number."""
    if not phone:
        return ""
    digits = re.sub(r"\D", "", phone)
    visible = 4
    if len(digits) <= visible:
        return "*" * len(digits)
    return f"{'*' * (len(digits) - visible)}{digits[-visible:]}"
