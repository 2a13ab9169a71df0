"""Address canonicalization so equivalent addresses hash identically"""

import re

STREET_ABBREVIATIONS = (
    (re.compile(r"\bst\b"), "street"),
    (re.compile(r"\bave\b"), "avenue"),
    (re.compile(r"\bdr\b"), "drive"),
    (re.compile(r"\brd\b"), "road"),
    (re.compile(r"\bblvd\b"), "boulevard"),
    (re.compile(r"\bcrt\b"), "court"),
    (re.compile(r"\bct\b"), "court"),
    (re.compile(r"\bpl\b"), "place"),
    (re.compile(r"\bcres\b"), "crescent"),
    (re.compile(r"\bhwy\b"), "highway"),
)

WHITESPACE = re.compile(r"\s+")


def normalize_address(address: str) -> str:
    """Lower-case, expand street-type abbreviations and collapse whitespace.

    Expansions only match whole words, so running the result through again
    changes nothing.
    """
    if not address:
        return ""
    normalized = address.strip().lower()
    for pattern, replacement in STREET_ABBREVIATIONS:
        normalized = pattern.sub(replacement, normalized)
    return WHITESPACE.sub(" ", normalized).strip()

