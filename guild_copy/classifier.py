"""Market category from a trade title.

Ordered keyword rules: the first category with a matching keyword wins,
even if a later category matches more keywords. No match -> social.
"""
from __future__ import annotations

import re
from typing import Sequence

from .models import Category

# Evaluation order matters.
CATEGORY_RULES: tuple[tuple[Category, tuple[str, ...]], ...] = (
    (Category.POLITICS, (
        "election", "president", "congress", "senate", "governor", "vote",
        "trump", "biden", "democrat", "republican",
    )),
    (Category.CRYPTO, (
        "bitcoin", "ethereum", "crypto", "btc", "eth", "token", "defi", "nft",
    )),
    (Category.SPORTS, (
        "nfl", "nba", "mlb", "super bowl", "championship", "playoffs",
        "world series", "mvp", "game",
    )),
    (Category.SCIENCE, (
        "ai", "gpt", "openai", "spacex", "fda", "climate", "vaccine", "research",
    )),
    (Category.CULTURE, (
        "oscar", "grammy", "emmy", "taylor swift", "movie", "album", "tiktok", "viral",
    )),
)

FALLBACK = Category.SOCIAL


SHORT_KEYWORD_LEN = 3


def _term(keyword: str) -> str:
    # Short keywords only match at a word start ("ai" not in "rain");
    # longer ones match anywhere ("election" in "reelection").
    escaped = re.escape(keyword)
    return rf"\b{escaped}" if len(keyword) <= SHORT_KEYWORD_LEN else escaped


def _compile(keywords: Sequence[str]) -> re.Pattern[str]:
    return re.compile("|".join(_term(k) for k in keywords), re.IGNORECASE)


_COMPILED: tuple[tuple[Category, re.Pattern[str]], ...] = tuple(
    (category, _compile(keywords)) for category, keywords in CATEGORY_RULES
)


def classify(title: str) -> Category:
    """Map a market title to its category."""
    text = title or ""
    for category, pattern in _COMPILED:
        if pattern.search(text):
            return category
    return FALLBACK
