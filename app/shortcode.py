"""Random short code generation.

Codes are drawn uniformly from a 62-symbol alphanumeric alphabet using
nanoid, which reads from ``os.urandom``. Uniqueness is not checked here; the
mapping store's unique index is the collision detector.
"""

import string

from nanoid import generate

__all__ = ["ALPHABET", "MAX_CODE_LENGTH", "MIN_CODE_LENGTH", "generate_short_code", "is_valid_short_code"]

ALPHABET = string.ascii_letters + string.digits
MIN_CODE_LENGTH = 6
MAX_CODE_LENGTH = 10


def generate_short_code(length: int = MIN_CODE_LENGTH) -> str:
    assert MIN_CODE_LENGTH <= length <= MAX_CODE_LENGTH, f"length must be in [6, 10], got {length!r}"
    return generate(ALPHABET, length)


def is_valid_short_code(code: str) -> bool:
    return MIN_CODE_LENGTH <= len(code) <= MAX_CODE_LENGTH and all(c in ALPHABET for c in code)
