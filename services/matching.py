from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence


# Resume-extracted text is untrusted; bound the quadratic edit distance
MAX_COMPARE_LENGTH = 256

_CORPORATE_SUFFIX = re.compile(
    r"\b(inc|co|company|corp|corporation|ltd|llc|plc)\b\.?", re.IGNORECASE
)


def normalize_name(name: Optional[str]) -> str:
    """Lowercase, keep letters only, collapse whitespace."""
    if not name:
        return ""
    letters = re.sub(r"[^a-z\s]", "", name.lower())
    return re.sub(r"\s+", " ", letters).strip()


def normalize_employer(name: Optional[str]) -> str:
    """Lowercase, strip corporate suffixes and punctuation, collapse whitespace."""
    if not name:
        return ""
    text = name.lower()
    text = _CORPORATE_SUFFIX.sub(" ", text)
    text = re.sub(r"[^a-z0-9\s]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def employers_match(a: Optional[str], b: Optional[str]) -> bool:
    """Normalized-equal, or either normalized name contains the other.

    Symmetric by construction; empty names never match anything.
    """
    na = normalize_employer(a)
    nb = normalize_employer(b)
    if not na or not nb:
        return False
    return na == nb or na in nb or nb in na


def find_employer(names: Iterable[str], target: str) -> Optional[int]:
    for idx, name in enumerate(names):
        if employers_match(name, target):
            return idx
    return None


def overlap_ratio(first: Sequence[str], second: Sequence[str]) -> float:
    """Matching-employer count over the size of the shorter list."""
    list1 = [e for e in first if normalize_employer(e)]
    list2 = [e for e in second if normalize_employer(e)]
    if not list1 or not list2:
        return 0.0
    shorter, longer = (list1, list2) if len(list1) <= len(list2) else (list2, list1)
    matches = sum(1 for e in shorter if any(employers_match(e, other) for other in longer))
    return matches / min(len(list1), len(list2))


def levenshtein(a: str, b: str, max_length: int = MAX_COMPARE_LENGTH) -> int:
    """Edit distance, O(len(a) * len(b)) time and O(min) memory.

    Both inputs are truncated to ``max_length`` characters first.
    """
    a = (a or "")[:max_length]
    b = (b or "")[:max_length]
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)
    previous: List[int] = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity_ratio(a: Optional[str], b: Optional[str]) -> float:
    """1 - distance / longer length, on normalized names; 0.0 if either is empty."""
    na = normalize_name(a)[:MAX_COMPARE_LENGTH]
    nb = normalize_name(b)[:MAX_COMPARE_LENGTH]
    if not na or not nb:
        return 0.0
    if na == nb:
        return 1.0
    longer = max(len(na), len(nb))
    return 1.0 - levenshtein(na, nb) / longer
