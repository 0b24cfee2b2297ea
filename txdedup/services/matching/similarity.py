"""Per-criterion similarity primitives."""

from datetime import UTC, date, datetime
from decimal import Decimal

SECONDS_PER_DAY = 86400


def levenshtein_distance(s1: str, s2: str) -> int:
    """Compute Levenshtein edit distance between two strings.

    Dynamic programming over two rows, so memory is O(min(m, n)).

    Args:
        s1: First string
        s2: Second string

    Returns:
        Minimum number of single-character insertions, deletions and
        substitutions that turn s1 into s2.
    """
    if s1 == s2:
        return 0
    if not s1:
        return len(s2)
    if not s2:
        return len(s1)

    # Keep the shorter string on the inner loop
    if len(s1) > len(s2):
        s1, s2 = s2, s1

    prev_row = list(range(len(s1) + 1))
    curr_row = [0] * (len(s1) + 1)

    for j in range(1, len(s2) + 1):
        curr_row[0] = j
        for i in range(1, len(s1) + 1):
            cost = 0 if s1[i - 1] == s2[j - 1] else 1
            curr_row[i] = min(
                curr_row[i - 1] + 1,  # insertion
                prev_row[i] + 1,  # deletion
                prev_row[i - 1] + cost,  # substitution
            )
        prev_row, curr_row = curr_row, prev_row

    return prev_row[len(s1)]


def string_similarity(s1: str, s2: str) -> float:
    """Normalised Levenshtein similarity in [0, 1].

    Two empty strings are identical (1.0).
    """
    max_length = max(len(s1), len(s2))
    if max_length == 0:
        return 1.0
    return 1.0 - levenshtein_distance(s1, s2) / max_length


def normalize_text(value: str | None) -> str:
    """Lowercase and trim free text for comparison."""
    return (value or "").strip().lower()


def as_utc(value: date | datetime) -> date | datetime:
    """Treat a naive datetime as UTC; aware datetimes and dates pass through."""
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def day_difference(first: date | datetime, second: date | datetime) -> float:
    """Absolute distance in (fractional) days."""
    return abs((as_utc(first) - as_utc(second)).total_seconds()) / SECONDS_PER_DAY


def date_similarity(first: date | datetime, second: date | datetime, tolerance_days: float) -> float:
    """1.0 on the same instant, falling linearly to 0.0 at the tolerance."""
    diff_days = day_difference(first, second)
    if diff_days == 0:
        return 1.0
    if diff_days > tolerance_days:
        return 0.0
    return max(0.0, 1.0 - diff_days / tolerance_days)


def amount_similarity(first: Decimal, second: Decimal, tolerance_percent: float) -> float:
    """1.0 on equal amounts, falling linearly to 0.0 at the relative tolerance."""
    first, second = abs(Decimal(first)), abs(Decimal(second))
    if first == second:
        return 1.0

    percent_diff = abs(first - second) / max(first, second) * 100
    tolerance = Decimal(str(tolerance_percent))
    if percent_diff > tolerance:
        return 0.0
    return max(0.0, float(1 - percent_diff / tolerance))
