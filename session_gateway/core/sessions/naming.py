"""
Session name normalization.

Caller-supplied session names (emails, phone-derived names, free text) are
mapped onto an alphabet safe for filesystem path components and client ids.
"""

import re

AT_MARKER = "_at_"
DOT_MARKER = "_dot_"

UNSAFE_CHAR_PATTERN = re.compile(r"[^A-Za-z0-9_-]")
UNDERSCORE_RUN_PATTERN = re.compile(r"_+")


def normalize_session_name(requested_name: str) -> str:
    """
    Normalize a requested session name to an internal id.

    Pure, total and idempotent. The result only contains
    ``[A-Za-z0-9_-]``, has no ``__`` and no leading or trailing ``_``.

    Examples:
        >>> normalize_session_name("sales@example.com")
        'sales_at_example_dot_com'
        >>> normalize_session_name("  Front Desk #2 ")
        'Front_Desk_2'
    """
    name = requested_name.replace("@", AT_MARKER).replace(".", DOT_MARKER)
    name = UNSAFE_CHAR_PATTERN.sub("_", name)
    name = UNDERSCORE_RUN_PATTERN.sub("_", name)
    return name.strip("_")
