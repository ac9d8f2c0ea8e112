"""Local heuristic that matches a free-text request against the action catalog."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from .dom_scanner import ActionCandidate

MIN_TOKEN_LENGTH = 3
TOKEN_MATCH_POINTS = 3
INTENT_MATCH_POINTS = 4
BUTTON_TAG_POINTS = 1

# Keywords must be at least MIN_TOKEN_LENGTH long to ever appear among request tokens.
INTENT_CATEGORIES: dict[str, frozenset[str]] = {
    "appointment": frozenset(
        {"appointment", "appointments", "book", "booking", "schedule", "reserve", "reservation"}
    ),
    "sign_in": frozenset({"signin", "sign", "login", "logon"}),
    "register": frozenset({"register", "registration", "signup", "enroll", "join"}),
    "checkout": frozenset({"checkout", "cart", "basket", "pay", "payment", "purchase", "buy"}),
    "contact": frozenset({"contact", "phone", "email", "support"}),
    "menu": frozenset({"menu", "navigation"}),
    "search": frozenset({"search", "find", "lookup"}),
}

_NON_ALNUM_RE = re.compile(r"[^\w\s]|_")


@dataclass
class ScoredTarget:
    candidate: ActionCandidate
    score: int

    @property
    def selector(self) -> str:
        return self.candidate.selector

    @property
    def label(self) -> str:
        return self.candidate.label


def tokenize(text: Optional[str]) -> list[str]:
    if not text:
        return []
    cleaned = _NON_ALNUM_RE.sub(" ", text.lower())
    return [token for token in cleaned.split() if len(token) >= MIN_TOKEN_LENGTH]


def matched_intents(request_tokens: Iterable[str]) -> list[str]:
    tokens = set(request_tokens)
    return [name for name, keywords in INTENT_CATEGORIES.items() if keywords & tokens]


def score_candidate(candidate: ActionCandidate, request_tokens: set[str], intents: Sequence[str]) -> int:
    label_tokens = set(tokenize(candidate.label))
    if not label_tokens:
        return 0

    score = TOKEN_MATCH_POINTS * len(label_tokens & request_tokens)

    lowered_label = candidate.label.lower()
    for name in intents:
        if any(keyword in lowered_label for keyword in INTENT_CATEGORIES[name]):
            score += INTENT_MATCH_POINTS

    # The button prior only breaks ties between real matches; on its own it is noise.
    if score and (candidate.tag or "").lower() == "button":
        score += BUTTON_TAG_POINTS
    return score


def pick_heuristic_target(
    candidates: Sequence[ActionCandidate], request_text: Optional[str]
) -> Optional[ScoredTarget]:
    """
    Return the best-scoring candidate for the request, or None when nothing
    scores above zero. Ties keep the candidate seen first in document order.
    """

    request_tokens = set(tokenize(request_text))
    if not request_tokens:
        return None

    intents = matched_intents(request_tokens)
    best: Optional[ScoredTarget] = None
    for candidate in candidates:
        if not tokenize(candidate.label):
            continue
        score = score_candidate(candidate, request_tokens, intents)
        if best is None or score > best.score:
            best = ScoredTarget(candidate=candidate, score=score)

    if best is None or best.score <= 0:
        return None
    return best
