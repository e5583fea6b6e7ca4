"""Identifier normalization for crowd intelligence lookups.

Reports, protection registrations, block lists, and risk checks all compare
identifiers by their canonical form, so the same function must run at every
write site and every read site.
"""

from __future__ import annotations

import re
from enum import Enum

_PHONE_PUNCTUATION = re.compile(r"[ \-()+.]")
_DIGITS_ONLY = re.compile(r"^[0-9]{10,15}$")


class EntityKind(str, Enum):
    """Kinds of contact identifiers tracked by the platform."""

    PHONE = "phone"
    EMAIL = "email"
    UPI = "upi"
    BANK = "bank"


def normalize_entity(raw: str | None) -> str:
    """Return the canonical form of a contact identifier.

    Lower-cases and trims the input. Values containing ``@`` (emails and
    payment handles) keep their internal structure; anything else has phone
    punctuation (spaces, hyphens, parentheses, plus signs, periods) removed so
    ``"(763) 274-3899"`` and ``"7632743899"`` compare equal.

    Args:
        raw: Identifier exactly as supplied by the caller.

    Returns:
        Canonical identifier. Empty input yields an empty string; callers must
        reject empty identifiers before storing or matching.
    """

    if not raw:
        return ""
    normalized = raw.lower().strip()
    if "@" in normalized:
        return normalized
    return _PHONE_PUNCTUATION.sub("", normalized)


normalize = normalize_entity


def infer_entity_kind(canonical: str) -> EntityKind:
    """Guess the identifier kind when the caller did not state one."""

    if "@" in canonical:
        _, _, domain = canonical.partition("@")
        return EntityKind.EMAIL if "." in domain else EntityKind.UPI
    if _DIGITS_ONLY.match(canonical):
        return EntityKind.PHONE
    return EntityKind.BANK


__all__ = ["EntityKind", "infer_entity_kind", "normalize", "normalize_entity"]
