"""Fuzzy string matching used to compare merchant names with restaurant names."""

import jellyfish


def levenshtein_distance(str1: str, str2: str) -> int:
    """Return the edit distance (insertions, deletions, substitutions) between two strings."""
    return int(jellyfish.levenshtein_distance(str1 or "", str2 or ""))


def calculate_string_similarity(str1: str | None, str2: str | None) -> float:
    """Calculate a normalized similarity between two strings.

    Similarity is ``1 - distance / max(len(str1), len(str2))``.

    Args:
        str1: First string
        str2: Second string

    Returns:
        1.0 when both strings are empty, 0.0 when exactly one is empty,
        otherwise a value in [0, 1]
    """
    str1 = str1 or ""
    str2 = str2 or ""

    max_length = max(len(str1), len(str2))
    if max_length == 0:
        return 1.0
    if not str1 or not str2:
        return 0.0

    distance = levenshtein_distance(str1, str2)
    return 1 - distance / max_length
