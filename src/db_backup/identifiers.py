"""Safe-identifier validation and wildcard pattern matching.

Pure helpers with no I/O.  Every table, column, schema and constraint name
interpolated into generated SQL goes through ``require_safe_identifier``
first.

Usage:
    from db_backup.identifiers import matches_pattern, require_safe_identifier

    matches_pattern("temp_users", "temp_*")   # True
    matches_pattern("test12", "test?")        # False
    require_safe_identifier("orders")         # "orders"
    require_safe_identifier("orders; --")     # raises UnsafeIdentifierError
"""

import re

from db_backup.errors import UnsafeIdentifierError

_SAFE_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def is_safe_identifier(name: str | None) -> bool:
    """Return ``True`` if *name* is letters, digits and underscores only.

    The first character must be a letter or an underscore.  ``None``,
    empty and whitespace-only names are unsafe.

    Examples:
        >>> is_safe_identifier("order_items")
        True
        >>> is_safe_identifier("1st_table")
        False
        >>> is_safe_identifier("users`; DROP")
        False
    """
    if name is None or not name.strip():
        return False
    return _SAFE_IDENTIFIER.fullmatch(name) is not None


def require_safe_identifier(name: str | None) -> str:
    """Return *name* unchanged, or raise ``UnsafeIdentifierError``."""
    if not is_safe_identifier(name):
        raise UnsafeIdentifierError(name)
    return name


def is_wildcard(pattern: str) -> bool:
    """True if *pattern* contains ``*`` or ``?``."""
    return "*" in pattern or "?" in pattern


def wildcard_to_regex(pattern: str) -> str:
    """Convert a ``*``/``?`` wildcard pattern to an (unanchored) regex.

    ``*`` matches zero or more characters and ``?`` exactly one; every
    other character, regex metacharacters included, is matched literally.

    Examples:
        >>> wildcard_to_regex("temp_*")
        'temp_.*'
        >>> wildcard_to_regex("information_schema.*")
        'information_schema\\\\..*'
    """
    parts: list[str] = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return "".join(parts)


def matches_pattern(text: str | None, pattern: str | None) -> bool:
    """Case-insensitive whole-string wildcard match.

    A pattern without wildcards is compared as a plain case-insensitive
    equality.  ``None`` on either side never matches.

    Examples:
        >>> matches_pattern("Users", "users")
        True
        >>> matches_pattern("users_temp", "temp_*")
        False
        >>> matches_pattern("test1", "test?")
        True
    """
    if text is None or pattern is None:
        return False

    if not is_wildcard(pattern):
        return text.casefold() == pattern.casefold()

    regex = wildcard_to_regex(pattern)
    return re.fullmatch(regex, text, re.IGNORECASE | re.DOTALL) is not None
