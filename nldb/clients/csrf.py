"""
Console CSRF helpers.

The cloud console gateway expects an ``X-CsrfCode`` header derived from the
session key stored in the login cookie (the "g_tk" hash). This is a fixed
non-cryptographic hash; it only proves the caller can read the cookie.
"""

import re

_SKEY_PATTERN = re.compile(r"(?:^|;\s*)(?:p_)?skey=([^;]+)")


def extract_skey(cookie: str | None) -> str:
    """Return the ``skey`` (or ``p_skey``) value from a cookie header, or ''."""
    if not cookie:
        return ""
    match = _SKEY_PATTERN.search(cookie)
    return match.group(1) if match else ""


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def generate_csrf_code(session_key: str | None) -> str:
    """
    Compute the g_tk code for a session key.

    ``hash += (hash << 5) + code`` where the shift wraps like a 32-bit
    signed integer; the result is masked to 31 bits.
    """
    if not session_key:
        return ""

    value = 5381
    for char in session_key:
        value += _to_int32(value << 5) + ord(char)
    return str(value & 0x7FFFFFFF)


def csrf_code_from_cookie(cookie: str | None) -> str:
    return generate_csrf_code(extract_skey(cookie))
