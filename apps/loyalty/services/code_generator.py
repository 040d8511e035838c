"""
Voucher code generation.

Codes are a short fixed prefix followed by random uppercase alphanumerics.
Uniqueness is enforced by the database; callers retry on collision.
"""

import secrets
import string

from django.conf import settings

CODE_ALPHABET = string.ascii_uppercase + string.digits
MIN_SUFFIX_LENGTH = 8


def new_voucher_code(prefix: str = None, length: int = None) -> str:
    """
    Return a fresh, unpredictable voucher code such as ``VCH7Q2K9XMA``.

    Args:
        prefix: Code prefix, defaults to ``settings.VOUCHER_CODE_PREFIX``
        length: Random suffix length, defaults to ``settings.VOUCHER_CODE_LENGTH``

    Raises:
        ValueError: If the suffix would be shorter than 8 characters
    """
    if prefix is None:
        prefix = getattr(settings, 'VOUCHER_CODE_PREFIX', 'VCH')
    if length is None:
        length = getattr(settings, 'VOUCHER_CODE_LENGTH', MIN_SUFFIX_LENGTH)

    if length < MIN_SUFFIX_LENGTH:
        raise ValueError(f"Voucher code suffix must be at least {MIN_SUFFIX_LENGTH} characters")

    suffix = ''.join(secrets.choice(CODE_ALPHABET) for _ in range(length))
    return f"{prefix}{suffix}"
