"""Helpers for turning raw user search input into safe LIKE patterns.

Values are always passed as bound parameters; escaping here only stops
user-supplied ``%``/``_`` from acting as wildcards.
"""

MAX_SEARCH_LENGTH = 200
LIKE_ESCAPE = "\\"


def sanitize_search_input(value: str | None) -> str:
    """Trim, cap the length and escape LIKE metacharacters."""
    if not value or not isinstance(value, str):
        return ""
    sanitized = value.strip()[:MAX_SEARCH_LENGTH]
    # Escape the escape character first so it cannot neutralize the others.
    sanitized = sanitized.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
    sanitized = sanitized.replace("%", LIKE_ESCAPE + "%")
    sanitized = sanitized.replace("_", LIKE_ESCAPE + "_")
    return sanitized


def build_like_pattern(value: str | None) -> str | None:
    """Return a ``%term%`` contains-pattern, or None when there is nothing to search."""
    sanitized = sanitize_search_input(value)
    if not sanitized:
        return None
    return f"%{sanitized}%"
