from __future__ import annotations

import base64
import logging
from typing import Any, Awaitable, Callable, List, Optional

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from websockets.exceptions import WebSocketException

from ..agent.dom_scanner import ActionCandidate
from ..agent.llm_client import AnsweringClient, create_answering_client, describe_llm_error
from ..agent.orchestrator import resolve_guided_answer
from ..agent.page_text import PageContent
from ..agent.safe_browsing import SafeBrowsingError, UrlVerdict, check_url
from ..agent.speech import SpeechConfigurationError, SpeechSynthesisError, is_speech_configured, synthesize_speech

app = FastAPI(title="pageguide")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


class PagePayload(BaseModel):
    title: str = "Unknown"
    url: str = "Unknown"
    text: str = ""
    language: str = "en"

    def to_content(self) -> PageContent:
        return PageContent(title=self.title, url=self.url, text=self.text)


class AskRequest(PagePayload):
    question: str = ""


class AskResponse(BaseModel):
    answer: str


class SummarizeRequest(PagePayload):
    mode: str = "readaloud"
    guide: Optional[str] = None


class SummarizeResponse(BaseModel):
    summary: str


class ActionPayload(BaseModel):
    selector: str
    label: str
    tag: str = ""


class TargetPayload(BaseModel):
    selector: str
    label: str


class GuideRequest(PagePayload):
    question: str = ""
    actions: List[ActionPayload] = Field(default_factory=list)


class GuideResponse(BaseModel):
    answer: str
    target: Optional[TargetPayload] = None
    error: Optional[str] = None


class SpeakRequest(BaseModel):
    text: str = ""


class SpeakResponse(BaseModel):
    audio: str


class CheckUrlRequest(BaseModel):
    url: str


class ThreatPayload(BaseModel):
    threat_type: str
    platform_type: str
    url: str
    description: str


class CheckUrlResponse(BaseModel):
    safe: bool
    threats: List[ThreatPayload] = Field(default_factory=list)


def get_answering_client() -> AnsweringClient:
    try:
        return create_answering_client()
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


def get_speaker() -> Callable[[str], Awaitable[bytes]]:
    if not is_speech_configured():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Speech synthesis not configured. Set GRADIUM_API_KEY in .env",
        )
    return synthesize_speech


def get_url_checker() -> Callable[[str], Awaitable[UrlVerdict]]:
    return check_url


def _answering_failed(exc: Exception) -> HTTPException:
    logging.error("answering_failed reason=%s", exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=describe_llm_error(exc))


@app.post("/ask", response_model=AskResponse)
async def ask(payload: AskRequest, answerer: AnsweringClient = Depends(get_answering_client)) -> Any:
    if not payload.question.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="question is required")
    try:
        answer = await answerer.answer_question(payload.to_content(), payload.question, payload.language)
    except Exception as exc:  # noqa: BLE001
        raise _answering_failed(exc) from exc
    return AskResponse(answer=answer)


@app.post("/summarize", response_model=SummarizeResponse)
async def summarize(
    payload: SummarizeRequest, answerer: AnsweringClient = Depends(get_answering_client)
) -> Any:
    try:
        if payload.guide:
            summary = await answerer.guide(payload.guide)
        else:
            summary = await answerer.summarize(payload.to_content(), payload.mode, payload.language)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:  # noqa: BLE001
        raise _answering_failed(exc) from exc
    return SummarizeResponse(summary=summary)


@app.post("/guide", response_model=GuideResponse)
async def guide(payload: GuideRequest, answerer: AnsweringClient = Depends(get_answering_client)) -> Any:
    """
    Guided request for a page read on the client side: the caller sends the
    page text and its action catalog, and gets back the answer plus the
    control to highlight.
    """

    if not payload.question.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="question is required")

    catalog = [ActionCandidate(selector=a.selector, label=a.label, tag=a.tag) for a in payload.actions]
    reconciliation, answer_error = await resolve_guided_answer(
        payload.to_content(), catalog, payload.question, answerer
    )
    target = reconciliation.target
    return GuideResponse(
        answer=reconciliation.answer,
        target=TargetPayload(selector=target.selector, label=target.label) if target else None,
        error=answer_error,
    )


@app.post("/speak", response_model=SpeakResponse)
async def speak(
    payload: SpeakRequest, speaker: Callable[[str], Awaitable[bytes]] = Depends(get_speaker)
) -> Any:
    if not payload.text.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="text is required")
    try:
        audio = await speaker(payload.text)
    except SpeechConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except (SpeechSynthesisError, WebSocketException, OSError) as exc:
        logging.error("speech_failed reason=%s", exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc) or "Speech synthesis failed") from exc
    return SpeakResponse(audio=base64.b64encode(audio).decode("ascii"))


@app.post("/check-url", response_model=CheckUrlResponse)
async def check_url_safety(
    payload: CheckUrlRequest,
    checker: Callable[[str], Awaitable[UrlVerdict]] = Depends(get_url_checker),
) -> Any:
    try:
        verdict = await checker(payload.url)
    except SafeBrowsingError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return CheckUrlResponse(
        safe=verdict.safe,
        threats=[ThreatPayload(**threat.to_payload()) for threat in verdict.threats],
    )
