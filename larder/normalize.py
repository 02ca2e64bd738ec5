"""Name canonicalization used for matching items across observations."""

from __future__ import annotations

NormalizedKey = str


def normalize(name: str) -> NormalizedKey:
    """Return the matching key for an item name.

    Lowercases, trims, collapses whitespace runs and naively singularizes
    the final word ("berries" -> "berry", "eggs" -> "egg"). Words ending in
    "ss" and one-letter final words are left alone so that applying the
    function twice is a no-op.
    """
    key = " ".join(name.lower().split())
    if not key:
        return key

    head, _, last = key.rpartition(" ")
    if len(last) < 2 or last.endswith("ss"):
        return key

    if last.endswith("ies"):
        last = last[:-3] + "y"
    elif last.endswith("s"):
        last = last[:-1]

    return f"{head} {last}" if head else last


def same_item(a: str, b: str) -> bool:
    """True if two display names refer to the same logical item."""
    return normalize(a) == normalize(b)
