"""Edit-distance based title similarity used for "did you mean" suggestions."""

from __future__ import annotations


def levenshtein_distance(a: str, b: str) -> int:
    """Number of single-character inserts, deletes or substitutions from a to b."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        cur = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + cost))
        prev = cur
    return prev[-1]


def similarity(a: str, b: str) -> float:
    """Normalised similarity in ``[0, 1]``: ``1 - distance / max(len)``.

    Either string being empty yields ``0.0``; comparison is case-sensitive,
    callers lower-case first when they want otherwise.
    """
    if not a or not b:
        return 0.0
    longest = max(len(a), len(b))
    return (longest - levenshtein_distance(a, b)) / longest
