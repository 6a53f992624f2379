"""Lexical normalization shared by indexing and querying.

Chunk text and query text must pass through the same tokenize() so that
recall is meaningful. The rules loosely follow an English full-text
configuration: lowercase, drop stopwords, fold common suffixes.
"""

import re

_TOKEN_RE = re.compile(r"[a-z0-9]+(?:'[a-z]+)?")

STOPWORDS = frozenset(
    """
    a about above after again against all am an and any are as at be because been
    before being below between both but by can could did do does doing down during
    each few for from further had has have having he her here hers herself him
    himself his how i if in into is it its itself just me more most my myself no
    nor not now of off on once only or other our ours ourselves out over own same
    she should so some such than that the their theirs them themselves then there
    these they this those through to too under until up very was we were what when
    where which while who whom why will with would you your yours yourself
    yourselves
    """.split()
)

# Longest suffix first
_SUFFIXES = ("ations", "ation", "ings", "ing", "ies", "ied", "ed", "es", "ly", "s")


def normalize_token(token: str) -> str:
    """Fold a lowercase token to its stem-like form."""
    token = token.split("'", 1)[0]
    for suffix in _SUFFIXES:
        if token.endswith(suffix) and len(token) - len(suffix) >= 3:
            stem = token[: -len(suffix)]
            if suffix in ("ies", "ied"):
                return stem + "y"
            if suffix == "s" and stem.endswith("s"):
                return token
            return stem
    return token


def tokenize(text: str) -> list[str]:
    """Tokenize text into normalized terms, dropping stopwords."""
    terms: list[str] = []
    for raw in _TOKEN_RE.findall(text.lower()):
        if raw in STOPWORDS:
            continue
        term = normalize_token(raw)
        if term:
            terms.append(term)
    return terms
