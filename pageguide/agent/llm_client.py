from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from openai import OpenAI

from ..config import settings
from .dom_scanner import ActionCandidate
from .page_text import PageContent
from .prompts import build_guide_prompt, build_guided_prompt, build_question_prompt, build_summary_prompt
from .reconciler import SuggestedTarget

QUOTA_MESSAGE = "The answering service rate limit was reached. Wait a minute and try again, or check your quota."


class OpenAIChatPipeline:
    def __init__(self, model: str, api_key: str, base_url: str | None, max_new_tokens: int):
        self.client = OpenAI(api_key=api_key, base_url=base_url)
        self.model = model
        self.max_new_tokens = max_new_tokens

    def __call__(self, prompt, max_new_tokens: int | None = None, **_):
        max_tokens = max_new_tokens or self.max_new_tokens
        resp = self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=0,
            max_completion_tokens=max_tokens,
        )
        return [{"generated_text": resp.choices[0].message.content or ""}]


def _extract_json_object(text: str) -> Optional[dict]:
    """Extract the last JSON object from the provided text.

    The helper tolerates code fences and trailing commentary. It scans for JSON
    object boundaries and attempts to parse the last candidate.
    """

    try:
        cleaned = text.strip()
        fenced = re.findall(r"```(?:json)?\s*(.*?)```", cleaned, re.DOTALL | re.IGNORECASE)
        if fenced:
            cleaned = fenced[-1]

        spans: list[str] = []
        depth = 0
        start_idx: int | None = None
        for idx, ch in enumerate(cleaned):
            if ch == "{":
                if depth == 0:
                    start_idx = idx
                depth += 1
            elif ch == "}":
                if depth > 0:
                    depth -= 1
                    if depth == 0 and start_idx is not None:
                        spans.append(cleaned[start_idx : idx + 1])

        for candidate in reversed(spans):
            try:
                parsed = json.loads(candidate)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                return parsed
    except Exception:
        return None

    return None


@dataclass
class GuidedAnswer:
    answer: str
    target: Optional[SuggestedTarget] = None


def parse_guided_answer(raw: str) -> GuidedAnswer:
    """Read the model's ``{answer, target}`` object; plain prose becomes a target-less answer."""

    data = _extract_json_object(raw or "")
    if data is None or "answer" not in data:
        return GuidedAnswer(answer=(raw or "").strip())

    answer = str(data.get("answer") or "").strip()
    target_data = data.get("target")
    target = None
    if isinstance(target_data, dict):
        selector = str(target_data.get("selector") or "").strip()
        if selector:
            target = SuggestedTarget(selector=selector, label=str(target_data.get("label") or "").strip())
    return GuidedAnswer(answer=answer, target=target)


def describe_llm_error(exc: BaseException) -> str:
    message = str(exc) or "Answering request failed"
    lowered = message.lower()
    if "429" in message or "quota" in lowered or "resource_exhausted" in lowered or "rate limit" in lowered:
        return QUOTA_MESSAGE
    return message


class AnsweringClient:
    """Async facade over a text-generation pipeline for page questions and guides."""

    def __init__(self, pipeline: Any) -> None:
        self.pipeline = pipeline

    def _generate(self, prompt: str) -> str:
        out = self.pipeline(prompt)
        if isinstance(out, list) and out:
            item = out[0]
            if isinstance(item, dict) and "generated_text" in item:
                return (item["generated_text"] or "").strip()
            if isinstance(item, str):
                return item.strip()
        return str(out).strip()

    async def generate_text(self, prompt: str) -> str:
        return await asyncio.to_thread(self._generate, prompt)

    async def answer_question(self, page: PageContent, question: str, language: str = "en") -> str:
        return await self.generate_text(build_question_prompt(page, question, language))

    async def answer_guided(
        self, page: PageContent, actions: Sequence[ActionCandidate], question: str, language: str = "en"
    ) -> GuidedAnswer:
        raw = await self.generate_text(build_guided_prompt(page, actions, question, language))
        guided = parse_guided_answer(raw)
        logging.debug(
            "guided_answer parsed target=%s chars=%s",
            guided.target.selector if guided.target else None,
            len(guided.answer),
        )
        return guided

    async def summarize(self, page: PageContent, mode: str = "readaloud", language: str = "en") -> str:
        return await self.generate_text(build_summary_prompt(page, mode, language))

    async def guide(self, guide_id: str) -> str:
        return await self.generate_text(build_guide_prompt(guide_id))


def create_text_generation_pipeline(model_name: str | None = None, *, max_new_tokens: int = 512):
    if settings.llm_provider == "openai":
        if not settings.openai_api_key:
            raise ValueError("OPENAI_API_KEY is required when llm_provider=openai")
        return OpenAIChatPipeline(
            model=model_name or settings.openai_model,
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            max_new_tokens=max_new_tokens,
        )
    raise ValueError(f"Unsupported llm_provider: {settings.llm_provider}")


def create_answering_client(model_name: str | None = None, *, max_new_tokens: int = 512) -> AnsweringClient:
    return AnsweringClient(create_text_generation_pipeline(model_name=model_name, max_new_tokens=max_new_tokens))
