"""ULID generation utility for blockgate.

Provides a single `generate_ulid()` function that returns a 26-character ULID
(Universally Unique Lexicographically Sortable Identifier) used as:
  - X-Request-ID header value on every outbound status API call
  - User record IDs and session IDs in the account store
  - The body of ``wz-<ULID>`` session tokens

Uses the `python-ulid` library (see pyproject.toml) - do NOT hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: A 26-character ULID string.
             Format: Crockford Base32 - charset ``[0-9A-HJKMNP-TV-Z]``, exactly 26 chars.
    """
    return str(ULID())
