from __future__ import annotations

import re

E164_RE = re.compile(r"^\+[1-9]\d{1,14}$")


def is_valid_e164(phone: str) -> bool:
    return bool(E164_RE.match(phone))


def mask_phone(phone: str) -> str:
    if not phone.startswith("+") or len(phone) <= 5:
        return phone
    prefix, tail = phone[:2], phone[-3:]
    return prefix + "X" * (len(phone) - len(prefix) - len(tail)) + tail
