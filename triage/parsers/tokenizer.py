"""
triage/parsers/tokenizer.py
Feature-field lexer. Pure Python, no state.

Splits raw field text into normalized tokens used to build the
token → cluster index. Called once per event per feature field at
load time, so it stays a single pass over the input.
"""

from typing import List

# ── OPTIONS ──────────────────────────────────────────────────

# Punctuation kept inside a token. Anything else non-alphanumeric separates.
TOKEN_CHARS = frozenset('._-@')

TOKEN_MIN_LENGTH   = 3
HEXCODE_MIN_LENGTH = 20    # hex runs this long are hashes / ids
REMOVE_DUPLICATES  = False

_HEX_DIGITS = frozenset('0123456789abcdefABCDEF')


def extract_tokens(text: str, remove_duplicates: bool = REMOVE_DUPLICATES) -> List[str]:
    """
    Return normalized tokens of `text` in first-occurrence order.

    Candidates are maximal runs of alphanumerics and TOKEN_CHARS. A
    candidate is lower-cased, then dropped when it is too short, purely
    numeric, a long hex run, or only digits and dots (IPs, versions).
    """
    tokens: List[str] = []
    seen: set = set()

    for candidate in _candidates(text):
        token = candidate.lower()
        if len(token) < TOKEN_MIN_LENGTH:
            continue
        if token.isnumeric():
            continue
        if len(token) >= HEXCODE_MIN_LENGTH and _is_hex(token):
            continue
        if _is_dot_digit(token):
            continue
        if remove_duplicates:
            if token in seen:
                continue
            seen.add(token)
        tokens.append(token)

    return tokens


def _candidates(text: str) -> List[str]:
    runs: List[str] = []
    begin = -1
    for idx, c in enumerate(text):
        if c.isalnum() or c in TOKEN_CHARS:
            if begin < 0:
                begin = idx
        elif begin >= 0:
            runs.append(text[begin:idx])
            begin = -1
    if begin >= 0:
        runs.append(text[begin:])
    return runs


def _is_hex(token: str) -> bool:
    return all(c in _HEX_DIGITS for c in token)


def _is_dot_digit(token: str) -> bool:
    return all(c.isnumeric() or c == '.' for c in token)
