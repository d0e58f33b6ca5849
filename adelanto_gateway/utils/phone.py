"""Phone and OTP token normalization"""

import re

from adelanto_gateway.domain.exceptions import ValidationError

PHONE_LENGTH = 8
TOKEN_LENGTH = 6

_WHITESPACE = re.compile(r"\s")
_PHONE = re.compile(rf"[0-9]{{{PHONE_LENGTH}}}")


def strip_whitespace(value: str) -> str:
    return _WHITESPACE.sub("", value or "")


def clean_phone(phone: str) -> str:
    """Strip whitespace and require exactly 8 digits"""
    cleaned = strip_whitespace(phone)
    if not _PHONE.fullmatch(cleaned):
        raise ValidationError(f"Phone number must have {PHONE_LENGTH} digits")
    return cleaned


def clean_token(token: str) -> str:
    """Strip whitespace, upper-case and require exactly 6 characters"""
    cleaned = strip_whitespace(token).upper()
    if len(cleaned) != TOKEN_LENGTH:
        raise ValidationError(f"Token must have {TOKEN_LENGTH} characters")
    return cleaned


def mask(value: str, visible: int = 2) -> str:
    """Mask all but the last characters, for logs"""
    if not value:
        return ""
    return "*" * max(len(value) - visible, 0) + value[-visible:]
