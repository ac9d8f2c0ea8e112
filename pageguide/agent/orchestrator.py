from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from playwright.async_api import Page

from ..config import settings
from .dom_scanner import ActionCandidate, scan_action_catalog
from .highlight import DEFAULT_NOTE, HighlightController, HighlightResult
from .intent import pick_heuristic_target
from .llm_client import AnsweringClient, GuidedAnswer, describe_llm_error
from .page_text import PageContent, read_page_content
from .prompts import NOT_FOUND_PHRASE
from .reconciler import Reconciliation, ResolvedTarget, reconcile_targets
from .speech import synthesize_speech

SpeakFn = Callable[[str], Awaitable[bytes]]


_run_lock: asyncio.Lock | None = None
_run_lock_loop: asyncio.AbstractEventLoop | None = None


def _get_run_lock() -> asyncio.Lock:
    """Ensure only one guided request drives the page per event loop.

    A second request arriving mid-flight would rescan a document the first one
    is still highlighting. The lock is recreated if a new event loop is used
    (e.g., when calling from the CLI via asyncio.run).
    """

    global _run_lock, _run_lock_loop

    loop = asyncio.get_running_loop()
    if _run_lock is None or _run_lock_loop is not loop:
        _run_lock = asyncio.Lock()
        _run_lock_loop = loop

    return _run_lock


@dataclass
class GuidedResult:
    answer: str
    target: Optional[ResolvedTarget]
    highlight: Optional[HighlightResult] = None
    audio: Optional[bytes] = None
    speech_error: Optional[str] = None
    answer_error: Optional[str] = None
    used_fallback: bool = False
    catalog_size: int = 0


async def resolve_guided_answer(
    content: PageContent,
    catalog: Sequence[ActionCandidate],
    question: str,
    answerer: Optional[AnsweringClient],
) -> tuple[Reconciliation, Optional[str]]:
    """
    Score the catalog locally, ask the answering collaborator, and reconcile.

    A failed or missing collaborator counts as "no external target, no answer":
    the not-found phrase stands in for the answer so a heuristic hit still
    yields usable instructions.
    """

    heuristic = pick_heuristic_target(catalog, question)
    logging.debug(
        "heuristic_target selector=%s score=%s",
        heuristic.selector if heuristic else None,
        heuristic.score if heuristic else None,
    )

    answer_error: Optional[str] = None
    if answerer is None:
        external = GuidedAnswer(answer=NOT_FOUND_PHRASE)
    else:
        try:
            external = await answerer.answer_guided(content, catalog, question)
        except Exception as exc:  # noqa: BLE001
            answer_error = describe_llm_error(exc)
            logging.warning("answering_failed reason=%s", exc)
            external = GuidedAnswer(answer=NOT_FOUND_PHRASE)

    reconciliation = reconcile_targets(
        heuristic,
        external.target,
        external.answer or NOT_FOUND_PHRASE,
        question,
        catalog,
    )
    return reconciliation, answer_error


async def _speak_safely(speak: SpeakFn, text: str) -> tuple[Optional[bytes], Optional[str]]:
    try:
        return await speak(text), None
    except Exception as exc:  # noqa: BLE001
        logging.warning("speech_failed reason=%s", exc)
        return None, str(exc) or exc.__class__.__name__


async def run_guided_request(
    page: Page,
    question: str,
    *,
    answerer: Optional[AnsweringClient],
    highlighter: Optional[HighlightController] = None,
    speak: SpeakFn = synthesize_speech,
    with_audio: bool = True,
    note: str = DEFAULT_NOTE,
    max_actions: int | None = None,
) -> GuidedResult:
    """Run one guided request end to end against the live page."""

    async with _get_run_lock():
        content = await read_page_content(page)
        catalog = await scan_action_catalog(page, max_actions or settings.max_catalog_actions)
        reconciliation, answer_error = await resolve_guided_answer(content, catalog, question, answerer)

        result = GuidedResult(
            answer=reconciliation.answer,
            target=reconciliation.target,
            answer_error=answer_error,
            used_fallback=reconciliation.used_fallback,
            catalog_size=len(catalog),
        )

        async def highlight() -> Optional[HighlightResult]:
            if highlighter is None or reconciliation.target is None:
                return None
            return await highlighter.activate(reconciliation.target.selector, note)

        async def speech() -> tuple[Optional[bytes], Optional[str]]:
            if not with_audio or not reconciliation.answer.strip():
                return None, None
            return await _speak_safely(speak, reconciliation.answer)

        # Highlight and speech do not depend on each other once the answer is final.
        result.highlight, (result.audio, result.speech_error) = await asyncio.gather(highlight(), speech())

    logging.info(
        "guided_request_done catalog=%s target=%s fallback=%s highlight_ok=%s audio_bytes=%s",
        result.catalog_size,
        result.target.selector if result.target else None,
        result.used_fallback,
        result.highlight.ok if result.highlight else None,
        len(result.audio) if result.audio else 0,
    )
    return result
