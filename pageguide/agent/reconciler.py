"""Merge the local heuristic target with the answering collaborator's suggestion."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Literal, Optional, Sequence

from .dom_scanner import ActionCandidate
from .intent import ScoredTarget

NOT_FOUND_SENTINEL = "I can't find that on this page"

FALLBACK_ANSWER_TEMPLATE = (
    "I couldn't find a written answer on this page, but I found the control that matches your request.\n"
    'Step 1. Look for "{label}". It is highlighted on the page now.\n'
    'Step 2. Click "{label}" to continue with what you asked: "{request}".\n'
    "Step 3. Follow the instructions on the next screen."
)

_APOSTROPHES = str.maketrans({"’": "'", "‘": "'", "ʼ": "'", "′": "'", "`": "'"})
_WHITESPACE_RE = re.compile(r"\s+")

TargetSource = Literal["external", "heuristic"]


@dataclass
class SuggestedTarget:
    selector: str
    label: str = ""


@dataclass
class ResolvedTarget:
    selector: str
    label: str
    source: TargetSource

    def to_payload(self) -> dict[str, str]:
        return {"selector": self.selector, "label": self.label}


@dataclass
class Reconciliation:
    answer: str
    target: Optional[ResolvedTarget]
    used_fallback: bool = False


def normalize_answer_text(text: Optional[str]) -> str:
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text.translate(_APOSTROPHES)).strip().casefold()


_NORMALIZED_SENTINEL = normalize_answer_text(NOT_FOUND_SENTINEL)


def is_not_found_answer(answer: Optional[str]) -> bool:
    return _NORMALIZED_SENTINEL in normalize_answer_text(answer)


def build_fallback_answer(label: str, request: str) -> str:
    return FALLBACK_ANSWER_TEMPLATE.format(label=label, request=(request or "").strip())


def _label_for_selector(selector: str, catalog: Optional[Sequence[ActionCandidate]]) -> str:
    for candidate in catalog or []:
        if candidate.selector == selector:
            return candidate.label
    return selector


def resolve_target(
    heuristic: Optional[ScoredTarget],
    external: Optional[SuggestedTarget],
    catalog: Optional[Sequence[ActionCandidate]] = None,
) -> Optional[ResolvedTarget]:
    if external is not None and (external.selector or "").strip():
        selector = external.selector.strip()
        label = (external.label or "").strip() or _label_for_selector(selector, catalog)
        return ResolvedTarget(selector=selector, label=label, source="external")
    if heuristic is not None:
        return ResolvedTarget(selector=heuristic.selector, label=heuristic.label, source="heuristic")
    return None


def reconcile_targets(
    heuristic: Optional[ScoredTarget],
    external: Optional[SuggestedTarget],
    answer: Optional[str],
    request: Optional[str],
    catalog: Optional[Sequence[ActionCandidate]] = None,
) -> Reconciliation:
    """
    Pick the target to highlight and the answer to show.

    A well-formed external target always beats the heuristic one. When the
    answer is the not-found sentinel but a target resolved anyway, the answer
    is replaced by a short step list pointing at that target. Without a target
    the answer passes through untouched so the caller can say "not found".
    """

    target = resolve_target(heuristic, external, catalog)
    answer_text = answer or ""

    if target is not None and is_not_found_answer(answer_text):
        logging.info("answer_fallback source=%s selector=%s", target.source, target.selector)
        return Reconciliation(
            answer=build_fallback_answer(target.label, request or ""),
            target=target,
            used_fallback=True,
        )

    return Reconciliation(answer=answer_text, target=target)
