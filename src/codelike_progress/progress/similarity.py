"""Fuzzy matching of code submissions against reference solutions."""

import re

from pydantic import BaseModel

DEFAULT_SIMILARITY_THRESHOLD = 0.7

_WHITESPACE_RE = re.compile(r"\s+")


class MatchResult(BaseModel):
    """Outcome of comparing one submission with its reference solution."""

    similarity: float
    contains_reference: bool
    accepted: bool


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs to one space and trim both ends."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance (unit cost insert/delete/substitute).

    Fills the full (len(a) + 1) x (len(b) + 1) matrix.
    """
    rows = len(a) + 1
    cols = len(b) + 1
    matrix = [[0] * cols for _ in range(rows)]
    for i in range(rows):
        matrix[i][0] = i
    for j in range(cols):
        matrix[0][j] = j

    for i in range(1, rows):
        for j in range(1, cols):
            if a[i - 1] == b[j - 1]:
                matrix[i][j] = matrix[i - 1][j - 1]
            else:
                matrix[i][j] = 1 + min(
                    matrix[i - 1][j - 1],  # substitute
                    matrix[i][j - 1],  # insert
                    matrix[i - 1][j],  # delete
                )
    return matrix[-1][-1]


def similarity(submission: str, reference: str) -> float:
    """Normalized similarity in [0, 1] after whitespace normalization.

    Two empty strings are identical (1.0).
    """
    a = normalize_whitespace(submission)
    b = normalize_whitespace(reference)
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return (longest - edit_distance(a, b)) / longest


def match_submission(
    submission: str,
    reference: str,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> MatchResult:
    """Accept when similar enough or when the reference appears verbatim.

    A submission that contains the reference verbatim is accepted at any
    distance.
    """
    score = similarity(submission, reference)
    contains = normalize_whitespace(reference) in normalize_whitespace(submission)
    return MatchResult(
        similarity=round(score, 4),
        contains_reference=contains,
        accepted=score > threshold or contains,
    )
