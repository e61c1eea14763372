"""
License code generation.

Format: {PREFIX}-{SUFFIX}
- PREFIX: admin-chosen label, uppercase alphanumerics (1-16 chars), default GIFT
- SUFFIX: random base32 characters from os.urandom (8 by default, 32^8 ≈ 10^12
  codes per prefix)

Codes are stored and looked up in normalized (trimmed, uppercase) form, so
users may type them in any case.
"""

import os
import re

# Base32 alphabet (uppercase + digits 2-7)
BASE32_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
DEFAULT_PREFIX = "GIFT"
DEFAULT_SUFFIX_LEN = 8
MAX_PREFIX_LEN = 16

_PREFIX_STRIP = re.compile(r"[^A-Z0-9]")


def normalize_code(raw: str) -> str:
    """Canonical form used for storage and lookup."""
    return raw.strip().upper()


def normalize_prefix(prefix: str | None, default: str = DEFAULT_PREFIX) -> str:
    """Uppercase, drop anything but A-Z/0-9, cap the length."""
    cleaned = _PREFIX_STRIP.sub("", (prefix or "").upper())[:MAX_PREFIX_LEN]
    return cleaned or default


def random_suffix(length: int = DEFAULT_SUFFIX_LEN) -> str:
    """Generate a random base32 suffix."""
    return "".join(BASE32_ALPHABET[b % 32] for b in os.urandom(length))


def generate_code(prefix: str, length: int = DEFAULT_SUFFIX_LEN) -> str:
    """Generate a single code; ``prefix`` is normalized first."""
    return f"{normalize_prefix(prefix)}-{random_suffix(length)}"


def generate_batch(
    prefix: str,
    count: int,
    length: int = DEFAULT_SUFFIX_LEN,
    max_attempts: int = 5,
    exclude: set[str] | None = None,
) -> list[str]:
    """
    Generate up to ``count`` codes unique within the batch and against ``exclude``.

    Each slot gets ``max_attempts`` tries; a slot that keeps colliding is
    dropped, so the result may be shorter than ``count``. Callers compare the
    length against what they asked for.
    """
    taken = set(exclude or ())
    codes: list[str] = []
    for _ in range(count):
        for _attempt in range(max_attempts):
            candidate = generate_code(prefix, length)
            if candidate not in taken:
                taken.add(candidate)
                codes.append(candidate)
                break
    return codes


def code_prefix(code: str) -> str:
    """Prefix part of a code, safe to log."""
    return code.split("-", 1)[0]
